"""应用入口测试。

测试 run_crawler / main 的退出码、诊断输出与参数透传。
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from unittest import mock

import pytest

from pcraw_console.app import EXIT_FORCED, configure_logging, main, run_crawler
from pcraw_console.config import Config, reload_config
from pcraw_console.runtime import CommandLine, ConsoleSink


@pytest.fixture
def config(fake_crawler: Path) -> Config:
    """指向模拟爬虫的配置。"""
    return Config(interpreter=sys.executable, script=str(fake_crawler), term_timeout=0.5)


def _command(config: Config, *args: str) -> CommandLine:
    return CommandLine(config.interpreter, config.script, args)


class TestRunCrawler:
    """run_crawler 测试。"""

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_success(self, config, stream):
        """正常结束返回 0。"""
        code = await run_crawler(_command(config, "--line", "Done."), config, ConsoleSink(stream))

        assert code == 0
        assert stream.writes == ["Done.\n"]

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_child_exit_code_propagated(self, config, stream):
        """子进程退出码原样返回。"""
        code = await run_crawler(_command(config, "--exit-code", "4"), config, ConsoleSink(stream))
        assert code == 4

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_progress_row_settled(self, config, stream):
        """结束时进度行未换行则补换行。"""
        code = await run_crawler(_command(config, "--progress", "2"), config, ConsoleSink(stream))

        assert code == 0
        assert stream.writes == ["|#.\r", "|##\r", "\n"]

    @pytest.mark.asyncio
    async def test_spawn_failure(self, stream, capsys):
        """spawn 失败：一行诊断信息，返回 1，不输出任何行。"""
        config = Config(interpreter="nonexistent_interpreter_xyz", script="pcraw.pl")
        code = await run_crawler(_command(config, "-v"), config, ConsoleSink(stream))

        assert code == 1
        assert stream.writes == []
        err_lines = capsys.readouterr().err.splitlines()
        assert len(err_lines) == 1
        assert err_lines[0].startswith(
            "error executing nonexistent_interpreter_xyz pcraw.pl -v"
        )

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_report_exit_status(self, config, stream, capsys):
        """PCRAW_EXIT_STATUS 打开时输出退出码。"""
        config.report_exit_status = True
        code = await run_crawler(_command(config, "--exit-code", "2"), config, ConsoleSink(stream))

        assert code == 2
        assert "Exit status=2" in capsys.readouterr().err

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_force_exit_code(self, config, stream):
        """双击 Ctrl+C 返回 130。"""
        with mock.patch(
            "pcraw_console.signal_manager.SignalManager.is_force_exit",
            new_callable=mock.PropertyMock,
            return_value=True,
        ):
            code = await run_crawler(_command(config), config, ConsoleSink(stream))
        assert code == EXIT_FORCED


class TestMain:
    """main 入口测试。"""

    @pytest.mark.timeout(30)
    def test_arguments_forwarded(self, fake_crawler: Path, capsys):
        """命令行参数追加在解释器和脚本之后。"""
        env = {"PCRAW_INTERPRETER": sys.executable, "PCRAW_SCRIPT": str(fake_crawler)}
        with mock.patch.dict(os.environ, env, clear=False):
            reload_config()
            with pytest.raises(SystemExit) as exc_info:
                main(["--echo-args", "-v", "--line", "|##"])
        reload_config()

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert out == "arg:--echo-args\narg:-v\narg:--line\narg:|##\n|##\r\n"


class TestConfigureLogging:
    """日志配置测试。"""

    def test_default_level_warning(self):
        configure_logging(Config())
        assert logging.getLogger("pcraw_console").level == logging.WARNING

    def test_debug_level(self, tmp_path: Path):
        log_file = tmp_path / "debug.log"
        configure_logging(Config(log_debug=True, log_file=str(log_file)))
        assert logging.getLogger("pcraw_console").level == logging.DEBUG
        logging.getLogger("pcraw_console").setLevel(logging.NOTSET)
