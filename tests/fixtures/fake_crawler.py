#!/usr/bin/env python3
"""Fake crawler for integration testing.

This script stands in for pcraw.pl: it writes progress bars, clear-progress
signals and log lines on stdout and stderr, then exits with a chosen code.

Usage:
    python fake_crawler.py [--line TEXT]... [--progress STEPS] [--clear]
                           [--stdout-lines N] [--stderr-lines N] [--pad N]
                           [--sleep SECONDS] [--exit-code CODE] [--echo-args]

Arguments:
    --line: Emit TEXT verbatim on stdout (repeatable, in order)
    --err-line: Emit TEXT verbatim on stderr (repeatable)
    --progress: Draw a progress bar of STEPS steps, one line per step
    --cr: Terminate progress lines with a bare carriage return
    --clear: Emit the 79-space clear-progress signal
    --stdout-lines / --stderr-lines: Emit N numbered lines, interleaved,
        without flushing in between
    --pad: Extra characters appended to numbered lines
    --sleep: Print "started" and sleep before exiting
    --exit-code: Exit code (default 0)
    --echo-args: Print every argument received, one per line
"""

from __future__ import annotations

import argparse
import sys
import time
from typing import NoReturn


def emit(stream, text: str, end: str = "\n") -> None:
    stream.write(text + end)
    stream.flush()


def main() -> NoReturn:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fake crawler for testing")
    parser.add_argument("--line", action="append", default=[], help="stdout line")
    parser.add_argument("--err-line", action="append", default=[], help="stderr line")
    parser.add_argument("--progress", type=int, default=0, help="Progress steps")
    parser.add_argument("--cr", action="store_true", help="Bare CR after progress")
    parser.add_argument("--clear", action="store_true", help="Emit clear signal")
    parser.add_argument("--stdout-lines", type=int, default=0)
    parser.add_argument("--stderr-lines", type=int, default=0)
    parser.add_argument("--pad", type=int, default=0)
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--echo-args", action="store_true")

    args, _unknown = parser.parse_known_args()

    if args.echo_args:
        for arg in sys.argv[1:]:
            emit(sys.stdout, f"arg:{arg}")

    for line in args.line:
        emit(sys.stdout, line)
    for line in args.err_line:
        emit(sys.stderr, line)

    for step in range(1, args.progress + 1):
        bar = "|" + "#" * step + "." * (args.progress - step)
        emit(sys.stdout, bar, end="\r" if args.cr else "\n")

    if args.clear:
        emit(sys.stdout, " " * 79)

    # No flush per line: fill both pipes as fast as possible
    padding = "x" * args.pad
    for i in range(max(args.stdout_lines, args.stderr_lines)):
        if i < args.stdout_lines:
            sys.stdout.write(f"out {i} {padding}\n")
        if i < args.stderr_lines:
            sys.stderr.write(f"err {i} {padding}\n")
    sys.stdout.flush()
    sys.stderr.flush()

    if args.sleep:
        emit(sys.stdout, "started")
        time.sleep(args.sleep)

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
