"""Stream relay: drain one child output stream into the console.

pcraw-console runtime module v0.1.0

This module provides:
- iter_lines: lazy, single-pass decoding of a byte stream into lines
- StreamRelay: classify each line and write it with the matching
  terminal behaviour (overwrite the row vs commit the row)

Line terminators are "\\n", "\\r\\n" and a lone "\\r". A lone "\\r" ends the
line as soon as it arrives so that progress bars redrawn in place by the
child reach the terminal in real time.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Protocol

from ..classifier import DEFAULT_PROGRESS_WIDTH, LineKind, classify, clear_signal
from .console import ConsoleSink
from .errors import OutputError, StreamError

__all__ = [
    "ByteSource",
    "StreamRelay",
    "iter_lines",
]

logger = logging.getLogger(__name__)

# Bytes requested per read; read() returns as soon as any data is available
CHUNK_SIZE = 4096

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class ByteSource(Protocol):
    """Anything readable like asyncio.StreamReader (b"" means end-of-file)."""

    async def read(self, n: int = -1) -> bytes: ...


async def iter_lines(
    source: ByteSource,
    *,
    encoding: str = "utf-8",
    chunk_size: int = CHUNK_SIZE,
) -> AsyncIterator[str]:
    """Yield decoded lines from source until end-of-file.

    Args:
        source: Byte stream to drain
        encoding: Text encoding; undecodable bytes are replaced
        chunk_size: Maximum bytes per read

    Yields:
        Lines without their terminator. A trailing fragment with no
        terminator is yielded at end-of-file.

    Raises:
        OSError: If reading from source fails
    """
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    pending = ""
    # Set when the last chunk ended on "\r"; a leading "\n" is then swallowed
    skip_lf = False

    while True:
        chunk = await source.read(chunk_size)
        at_eof = not chunk
        pending += decoder.decode(chunk, final=at_eof)

        if pending:
            if skip_lf:
                if pending[0] == "\n":
                    pending = pending[1:]
                skip_lf = False

            start = 0
            for match in _LINE_BREAK.finditer(pending):
                yield pending[start:match.start()]
                start = match.end()

            if start:
                skip_lf = start == len(pending) and pending.endswith("\r")
                pending = pending[start:]

        if at_eof:
            if pending:
                yield pending
            return


@dataclass
class StreamRelay:
    """Relay one output stream of the child to the console.

    Attributes:
        name: Stream name used in logs and errors ("stdout" / "stderr")
        sink: Console sink shared with the other relay
        progress_width: Width of the clear-progress-row signal
        encoding: Text encoding of the stream

    Example:
        relay = StreamRelay("stdout", ConsoleSink())
        count = await relay.run(process.stdout)
    """

    name: str
    sink: ConsoleSink
    progress_width: int = DEFAULT_PROGRESS_WIDTH
    encoding: str = "utf-8"

    async def run(self, source: ByteSource) -> int:
        """Drain source until end-of-file.

        Returns:
            Number of lines relayed

        Raises:
            StreamError: If reading the stream fails before end-of-file
            OutputError: If writing a line to the sink fails
        """
        count = 0
        async with aclosing(iter_lines(source, encoding=self.encoding)) as lines:
            while True:
                try:
                    line = await anext(lines)
                except StopAsyncIteration:
                    break
                except OSError as e:
                    raise StreamError(self.name, e, lines_relayed=count) from e

                try:
                    self.emit(line)
                except OSError as e:
                    raise OutputError(self.name, e, lines_relayed=count) from e
                count += 1

        logger.debug(f"Relay finished stream={self.name} lines={count}")
        return count

    def emit(self, line: str) -> LineKind:
        """Classify one line and write it to the sink."""
        kind = classify(line, self.progress_width)
        if kind is LineKind.PROGRESS:
            self.sink.overwrite(line)
        elif kind is LineKind.CLEAR:
            self.sink.overwrite(clear_signal(self.progress_width))
        else:
            self.sink.commit(line)
        return kind
