"""Runtime exceptions for the crawler supervisor.

pcraw-console runtime module v0.1.0
"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "OutputError",
    "PcrawError",
    "SpawnError",
    "StreamError",
]


class PcrawError(Exception):
    """Base exception for pcraw-console."""
    pass


class SpawnError(PcrawError):
    """The child process could not be created.

    Attributes:
        argv: The argument vector that was attempted
        cause: The underlying OS error
    """

    def __init__(self, argv: Sequence[str], cause: BaseException) -> None:
        self.argv = tuple(argv)
        self.cause = cause
        super().__init__(f"error executing {self.command}: {self.reason}")

    @property
    def command(self) -> str:
        """The attempted command, space-joined for diagnostics."""
        return " ".join(self.argv)

    @property
    def reason(self) -> str:
        if isinstance(self.cause, OSError) and self.cause.strerror:
            return self.cause.strerror
        return str(self.cause) or type(self.cause).__name__


class StreamError(PcrawError):
    """Reading one of the child's output streams failed mid-stream.

    Clean end-of-file is never a StreamError.

    Attributes:
        stream: Name of the affected stream ("stdout" or "stderr")
        cause: The underlying I/O error
        lines_relayed: Lines written before the failure
    """

    def __init__(self, stream: str, cause: BaseException, lines_relayed: int = 0) -> None:
        self.stream = stream
        self.cause = cause
        self.lines_relayed = lines_relayed
        super().__init__(f"[{stream}] read failed after {lines_relayed} line(s): {cause}")


class OutputError(PcrawError):
    """Writing a relayed line to the console failed.

    Raised for a closed terminal or a broken downstream pipe
    (e.g. ``pcraw-console | head``). The child's stream itself is intact.

    Attributes:
        stream: Name of the stream whose line could not be written
        cause: The underlying I/O error
        lines_relayed: Lines written before the failure
    """

    def __init__(self, stream: str, cause: BaseException, lines_relayed: int = 0) -> None:
        self.stream = stream
        self.cause = cause
        self.lines_relayed = lines_relayed
        super().__init__(f"[{stream}] console write failed after {lines_relayed} line(s): {cause}")
