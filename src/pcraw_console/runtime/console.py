"""Terminal sink shared by the stdout and stderr relays.

Every write is one unit (text plus terminator) emitted under a lock and
flushed immediately, so a line is never split by a write from the other
relay and never held back in a buffer.
"""

from __future__ import annotations

import sys
import threading
from typing import TextIO

__all__ = ["ConsoleSink"]

OVERWRITE = "\r"
COMMIT = "\n"


class ConsoleSink:
    """Line-atomic console writer with in-place overwrite support.

    Tracks whether the current terminal row is mid-overwrite (last write
    ended with a carriage return) or settled (last write ended with a
    newline).

    Example:
        sink = ConsoleSink()
        sink.overwrite("|####......")
        sink.overwrite("|##########")
        sink.commit("Done.")
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        """Create a sink.

        Args:
            stream: Destination text stream. None resolves sys.stdout at
                write time, so redirections made after construction apply.
        """
        self._stream = stream
        self._lock = threading.Lock()
        self._mid_overwrite = False

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def mid_overwrite(self) -> bool:
        """True if the next write will overwrite the current row."""
        return self._mid_overwrite

    def overwrite(self, text: str) -> None:
        """Write text followed by a carriage return (row stays open)."""
        self._emit(text, OVERWRITE)

    def commit(self, text: str) -> None:
        """Write text followed by a newline (row is committed)."""
        self._emit(text, COMMIT)

    def settle(self) -> None:
        """Move past an open progress row so later output starts clean."""
        with self._lock:
            if not self._mid_overwrite:
                return
            self._write(COMMIT)
            self._mid_overwrite = False

    def _emit(self, text: str, terminator: str) -> None:
        with self._lock:
            self._write(text + terminator)
            self._mid_overwrite = terminator == OVERWRITE

    def _write(self, data: str) -> None:
        stream = self.stream
        stream.write(data)
        stream.flush()
