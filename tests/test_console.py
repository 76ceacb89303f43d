"""ConsoleSink unit tests.

Test coverage:
- Overwrite vs commit terminators
- One write and one flush per line
- Cursor state tracking and settle()
- Line atomicity under concurrent writers
"""

from __future__ import annotations

import sys
import threading

from pcraw_console.runtime.console import ConsoleSink


class TestTerminators:
    """Test terminal write behaviour."""

    def test_overwrite_ends_with_carriage_return(self, stream):
        sink = ConsoleSink(stream)
        sink.overwrite("|####......")
        assert stream.writes == ["|####......\r"]
        assert sink.mid_overwrite

    def test_commit_ends_with_newline(self, stream):
        sink = ConsoleSink(stream)
        sink.commit("Done.")
        assert stream.writes == ["Done.\n"]
        assert not sink.mid_overwrite

    def test_flush_per_line(self, stream):
        """Each line is flushed as soon as it is written."""
        sink = ConsoleSink(stream)
        sink.overwrite("|#")
        sink.commit("a")
        sink.commit("b")
        assert stream.flushes == 3


class TestSettle:
    """Test settling an open progress row."""

    def test_settle_after_progress(self, stream):
        sink = ConsoleSink(stream)
        sink.overwrite("|##########")
        sink.settle()
        assert stream.getvalue() == "|##########\r\n"
        assert not sink.mid_overwrite

    def test_settle_noop_when_settled(self, stream):
        sink = ConsoleSink(stream)
        sink.commit("Done.")
        sink.settle()
        sink.settle()
        assert stream.writes == ["Done.\n"]

    def test_settle_noop_when_nothing_written(self, stream):
        sink = ConsoleSink(stream)
        sink.settle()
        assert stream.writes == []


class TestDefaultStream:
    """Test default destination."""

    def test_resolves_stdout_at_write_time(self, capsys):
        sink = ConsoleSink()
        sink.commit("hello")
        captured = capsys.readouterr()
        assert captured.out == "hello\n"

    def test_stream_property(self, stream):
        assert ConsoleSink(stream).stream is stream
        assert ConsoleSink().stream is sys.stdout


class TestAtomicity:
    """Test that concurrent writers never split a line."""

    def test_concurrent_commits(self, stream):
        sink = ConsoleSink(stream)
        per_thread = 200

        def writer(tag: str) -> None:
            for i in range(per_thread):
                sink.commit(f"{tag}-{i}")

        threads = [threading.Thread(target=writer, args=(t,)) for t in ("a", "b", "c")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = stream.getvalue().splitlines()
        assert len(lines) == 3 * per_thread
        for tag in ("a", "b", "c"):
            mine = [l for l in lines if l.startswith(f"{tag}-")]
            # Per-writer order preserved, nothing split or merged
            assert mine == [f"{tag}-{i}" for i in range(per_thread)]
