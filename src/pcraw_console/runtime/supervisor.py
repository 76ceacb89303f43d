"""Process supervisor: spawn the crawler and relay both output streams.

pcraw-console runtime module v0.1.0

This module provides:
- Spawning the child with stdout/stderr piped and stdin closed
- Concurrent stdout/stderr relays in one anyio task group
- Stream error isolation (a failing stream never stops the other one)
- Cancellation that terminates the child's process group and lets both
  relays drain to end-of-file
- Cancel-safe cleanup using asyncio.shield

Key design points:
- The child is never awaited before its output is being drained; both
  pipes are read concurrently so a full pipe buffer cannot block the child
- POSIX: start_new_session=True to create a new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Termination: SIGTERM -> timeout -> SIGKILL on the whole group
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import anyio

from ..classifier import DEFAULT_PROGRESS_WIDTH
from .console import ConsoleSink
from .errors import OutputError, PcrawError, SpawnError, StreamError
from .relay import CHUNK_SIZE, ByteSource, StreamRelay

__all__ = [
    "CommandLine",
    "ProcessSpec",
    "ProcessSupervisor",
    "RunResult",
    "SupervisorState",
    "supervise",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# Exit code when the child status could not be used
EXIT_FAILURE = 1


@dataclass(frozen=True)
class CommandLine:
    """Crawler invocation: fixed interpreter and script, then user arguments.

    Attributes:
        interpreter: Interpreter executable (e.g. "perl")
        script: Script passed to the interpreter (e.g. "pcraw.pl")
        args: Caller arguments, forwarded unmodified and in order
    """

    interpreter: str
    script: str
    args: tuple[str, ...] = ()

    @property
    def argv(self) -> tuple[str, ...]:
        return (self.interpreter, self.script, *self.args)

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for the child process.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory (None = inherit parent)
        env: Environment variables (None = inherit parent)
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("argv must not be empty")

    @classmethod
    def from_command(
        cls,
        command: CommandLine,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "ProcessSpec":
        return cls(argv=command.argv, cwd=cwd, env=env)


class SupervisorState(str, Enum):
    """Supervisor lifecycle.

    NOT_STARTED -> SPAWNING -> RUNNING -> DRAINING -> FINISHED
    NOT_STARTED -> SPAWNING -> FAILED (spawn error, no relay started)
    """

    NOT_STARTED = "not_started"
    SPAWNING = "spawning"
    RUNNING = "running"      # both relays active
    DRAINING = "draining"    # one relay finished
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of one supervised run.

    Attributes:
        returncode: Child exit status (None if never observed; negative
            values mean the child died of that signal on POSIX)
        lines: Lines relayed per stream name
        errors: Stream and console errors reported by the relays
        cancelled: True if the run was cancelled via cancel()/kill()
    """

    returncode: int | None = None
    lines: dict[str, int] = field(default_factory=dict)
    errors: list[PcrawError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.errors

    @property
    def exit_code(self) -> int:
        """Exit code for the wrapper process.

        Mirrors the child's status; 128 + signum when the child was killed
        by a signal; 1 when the status is unknown or the child reported
        success but a stream failed.
        """
        if self.returncode is None:
            return EXIT_FAILURE
        if self.returncode < 0:
            return 128 - self.returncode
        if self.returncode == 0 and self.errors:
            return EXIT_FAILURE
        return self.returncode


@dataclass
class ProcessSupervisor:
    """Run the crawler and relay its output to the console in real time.

    A supervisor instance runs one child process.

    Example:
        supervisor = ProcessSupervisor()
        spec = ProcessSpec.from_command(CommandLine("perl", "pcraw.pl", ("-v",)))
        result = await supervisor.run(spec)
        sys.exit(result.exit_code)
    """

    sink: ConsoleSink = field(default_factory=ConsoleSink)
    progress_width: int = DEFAULT_PROGRESS_WIDTH
    encoding: str = "utf-8"
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    state: SupervisorState = field(default=SupervisorState.NOT_STARTED, init=False)
    _process: asyncio.subprocess.Process | None = field(default=None, init=False, repr=False)
    _cancelled: bool = field(default=False, init=False, repr=False)
    _pending_stop: str | None = field(default=None, init=False, repr=False)
    _stop_tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(self, spec: ProcessSpec) -> RunResult:
        """Spawn the child, relay stdout and stderr, wait for exit.

        This method:
        1. Starts the child in an isolated process group/session
        2. Relays stdout and stderr concurrently until both reach EOF
        3. Waits for the child to exit
        4. Ensures the child is terminated if the caller is cancelled

        Args:
            spec: Process specification

        Returns:
            RunResult with the exit status, line counts and stream errors

        Raises:
            SpawnError: If the child process could not be created
            RuntimeError: If this supervisor was already used
        """
        if self.state is not SupervisorState.NOT_STARTED:
            raise RuntimeError(f"Supervisor already used (state={self.state.value})")

        self.state = SupervisorState.SPAWNING
        kwargs = self._build_subprocess_kwargs(spec)

        try:
            # stdin=DEVNULL: the crawler must not steal the terminal's input
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=spec.cwd,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            self.state = SupervisorState.FAILED
            logger.debug(f"Spawn failed argv={list(spec.argv)} error={e!r}")
            raise SpawnError(spec.argv, e) from e

        self._process = process
        self.state = SupervisorState.RUNNING
        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={list(spec.argv)} cwd={spec.cwd}"
        )

        # A stop requested while spawning applies as soon as there is a child
        if self._pending_stop is not None:
            pending, self._pending_stop = self._pending_stop, None
            logger.debug(f"Applying {pending} requested during spawn pid={process.pid}")
            if pending == "kill":
                self.kill()
            else:
                self.cancel()

        try:
            assert process.stdout is not None and process.stderr is not None
            result = await self.drain({"stdout": process.stdout, "stderr": process.stderr})

            result.returncode = await process.wait()
            result.cancelled = self._cancelled
            self.state = SupervisorState.FINISHED

            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={process.returncode} lines={result.lines}"
            )
            return result

        finally:
            # Ensure cleanup with shield to prevent cancel interruption
            await self._safe_cleanup(process)

    async def drain(self, sources: Mapping[str, ByteSource]) -> RunResult:
        """Relay every source concurrently until each reaches end-of-file.

        A StreamError in one relay is logged and recorded; the other
        relays keep running. An OutputError also stops the child, since
        nothing it prints can be shown any more. Either way the failed
        source is read and discarded until end-of-file so the child never
        blocks on a full pipe.

        Args:
            sources: Stream name -> byte source

        Returns:
            RunResult with lines and errors filled in (no returncode)
        """
        result = RunResult()
        async with anyio.create_task_group() as tg:
            for name, source in sources.items():
                relay = StreamRelay(
                    name=name,
                    sink=self.sink,
                    progress_width=self.progress_width,
                    encoding=self.encoding,
                )
                tg.start_soon(self._relay_one, relay, source, result, name=f"relay-{name}")
        return result

    async def _relay_one(
        self,
        relay: StreamRelay,
        source: ByteSource,
        result: RunResult,
    ) -> None:
        try:
            try:
                result.lines[relay.name] = await relay.run(source)
                return
            except StreamError as e:
                logger.warning(f"Stream error, remaining streams continue: {e}")
                failure: StreamError | OutputError = e
            except OutputError as e:
                logger.warning(f"Console output failed, stopping crawler: {e}")
                failure = e
                self.cancel()

            result.lines[relay.name] = failure.lines_relayed
            result.errors.append(failure)
            await self._discard(relay.name, source)
        finally:
            if self.state is SupervisorState.RUNNING:
                self.state = SupervisorState.DRAINING

    async def _discard(self, name: str, source: ByteSource) -> None:
        """Read and drop whatever is left on a failed stream."""
        dropped = 0
        try:
            while True:
                chunk = await source.read(CHUNK_SIZE)
                if not chunk:
                    break
                dropped += len(chunk)
        except OSError as e:
            logger.debug(f"Stopped discarding stream={name}: {e}")
            return
        logger.debug(f"Discarded {dropped} byte(s) from stream={name}")

    def cancel(self) -> bool:
        """Terminate the child gracefully (SIGTERM -> timeout -> SIGKILL).

        The relays are not interrupted; they drain what the child wrote
        and finish at end-of-file. A call made while the child is being
        spawned is applied right after the spawn.

        Returns:
            False if there is no live child to cancel
        """
        if self.state is SupervisorState.SPAWNING:
            return self._defer_stop("cancel")
        if any(not task.done() for task in self._stop_tasks):
            return self._is_alive()
        return self._schedule_stop(self._terminate_process, "cancel")

    def kill(self) -> bool:
        """Kill the child's process group immediately.

        Returns:
            False if there is no live child to kill
        """
        if self.state is SupervisorState.SPAWNING:
            return self._defer_stop("kill")
        return self._schedule_stop(self._kill_process, "kill")

    def _defer_stop(self, label: str) -> bool:
        # kill wins over a pending cancel
        if self._pending_stop != "kill":
            self._pending_stop = label
        self._cancelled = True
        logger.debug(f"Deferred {label} until the child is spawned")
        return True

    def _is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _schedule_stop(self, action: Any, label: str) -> bool:
        if not self._is_alive():
            return False
        assert self._process is not None

        self._cancelled = True
        task = asyncio.get_running_loop().create_task(
            action(self._process), name=f"supervisor-{label}"
        )
        self._stop_tasks.add(task)
        task.add_done_callback(self._stop_tasks.discard)
        logger.debug(f"Scheduled {label} for pid={self._process.pid}")
        return True

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        # Environment
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        # Platform-specific isolation
        if IS_WINDOWS:
            # Windows: CREATE_NEW_PROCESS_GROUP
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    async def _safe_cleanup(self, process: asyncio.subprocess.Process) -> None:
        """Safely cleanup the subprocess, shielded from cancellation.

        Args:
            process: The subprocess to terminate
        """
        try:
            # Shield entire cleanup from cancellation
            await asyncio.shield(self._do_cleanup(process))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process)
            raise

    async def _do_cleanup(self, process: asyncio.subprocess.Process) -> None:
        """Perform actual cleanup.

        Args:
            process: The subprocess to terminate
        """
        # Terminate subprocess if still running
        if process.returncode is None:
            await self._terminate_process(process)

        # Let pending cancel()/kill() calls finish
        if self._stop_tasks:
            await asyncio.gather(*self._stop_tasks, return_exceptions=True)

        if self.state not in (SupervisorState.FINISHED, SupervisorState.FAILED):
            self.state = SupervisorState.FINISHED

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            # Step 1: Graceful termination
            if IS_WINDOWS:
                await self._windows_terminate(process)
            else:
                await self._posix_terminate(process)

            # Step 2: Wait for graceful exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            # Step 3 + 4: Force kill and wait
            logger.debug(f"Force killing subprocess pid={pid}")
            await self._kill_process(process)

        except ProcessLookupError:
            # Process already exited
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    async def _kill_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Force kill the subprocess and wait up to kill_timeout."""
        pid = process.pid
        if IS_WINDOWS:
            await self._windows_kill(process)
        else:
            await self._posix_kill(process)

        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            logger.debug(
                f"Subprocess killed pid={pid} "
                f"returncode={process.returncode}"
            )
        except asyncio.TimeoutError:
            logger.warning(f"Subprocess did not exit after kill pid={pid}")

    async def _posix_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send SIGTERM to process group on POSIX systems.

        Args:
            process: The subprocess
        """
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGTERM)
            logger.debug(f"Sent SIGTERM to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            # Fallback to terminating just the process
            logger.debug(f"killpg failed, falling back to terminate: {e}")
            process.terminate()

    async def _posix_kill(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send SIGKILL to process group on POSIX systems.

        Args:
            process: The subprocess
        """
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()

    async def _windows_terminate(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Send CTRL_BREAK_EVENT on Windows.

        Args:
            process: The subprocess
        """
        try:
            # Works because the child has its own process group
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()

    async def _windows_kill(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Force kill on Windows.

        Args:
            process: The subprocess
        """
        try:
            process.kill()
            logger.debug(f"Called kill() on pid={process.pid}")
        except ProcessLookupError:
            pass


async def supervise(
    command: CommandLine,
    *,
    sink: ConsoleSink | None = None,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    progress_width: int = DEFAULT_PROGRESS_WIDTH,
    encoding: str = "utf-8",
) -> RunResult:
    """Run command under a fresh supervisor.

    Convenience function for callers that need no cancellation handle.

    Raises:
        SpawnError: If the child process could not be created
    """
    supervisor = ProcessSupervisor(
        sink=sink if sink is not None else ConsoleSink(),
        progress_width=progress_width,
        encoding=encoding,
    )
    return await supervisor.run(ProcessSpec.from_command(command, cwd=cwd, env=env))
