"""Runtime module for crawler process supervision and output relaying.

This module provides real-time relaying of the crawler's stdout and stderr
to the console, with progress lines redrawn in place, plus isolated process
execution and reliable termination.
"""

from __future__ import annotations

from .console import ConsoleSink
from .errors import OutputError, PcrawError, SpawnError, StreamError
from .relay import StreamRelay, iter_lines
from .supervisor import (
    CommandLine,
    ProcessSpec,
    ProcessSupervisor,
    RunResult,
    SupervisorState,
    supervise,
)

__all__ = [
    "CommandLine",
    "ConsoleSink",
    "OutputError",
    "PcrawError",
    "ProcessSpec",
    "ProcessSupervisor",
    "RunResult",
    "SpawnError",
    "StreamError",
    "StreamRelay",
    "SupervisorState",
    "iter_lines",
    "supervise",
]
