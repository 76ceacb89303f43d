"""pcraw-console 应用入口。

启动 pcraw.pl，实时转发其 stdout/stderr 到终端，并将进度行原地刷新。
所有命令行参数原样追加到 `perl pcraw.pl` 之后。

用法:
    pcraw-console -v
    python -m pcraw_console -v
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Sequence

from .config import Config, get_config
from .runtime import CommandLine, ConsoleSink, ProcessSpec, ProcessSupervisor, SpawnError
from .runtime.supervisor import EXIT_FAILURE
from .signal_manager import SignalManager

__all__ = ["run_crawler", "configure_logging", "main"]

logger = logging.getLogger(__name__)

# 128 + SIGINT(2)
EXIT_FORCED = 130

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


async def run_crawler(
    command: CommandLine,
    config: Config,
    sink: ConsoleSink | None = None,
) -> int:
    """运行爬虫并返回退出码。

    - spawn 失败：stderr 输出一行诊断信息，返回 1
    - 正常结束：返回子进程退出码（被信号终止时为 128 + signum）
    - 双击 Ctrl+C：返回 130

    Args:
        command: 爬虫命令行
        config: 配置
        sink: 终端输出（默认 stdout）

    Returns:
        进程退出码
    """
    supervisor = ProcessSupervisor(
        sink=sink if sink is not None else ConsoleSink(),
        progress_width=config.progress_width,
        encoding=config.encoding,
        term_timeout=config.term_timeout,
    )
    signal_manager = SignalManager(
        supervisor,
        double_tap_window=config.sigint_double_tap_window,
    )
    logger.debug(f"Running crawler: {command} ({config})")

    await signal_manager.start()
    try:
        result = await supervisor.run(ProcessSpec.from_command(command, cwd=config.workdir))
    except SpawnError as e:
        logger.debug(f"Spawn failed: {e!r}")
        print(str(e), file=sys.stderr, flush=True)
        return EXIT_FAILURE
    finally:
        await signal_manager.stop()
        # 进度行未换行时补一个换行，避免 shell 提示符覆盖
        try:
            supervisor.sink.settle()
        except OSError as e:
            # 终端已关闭或管道已断开
            logger.debug(f"Could not settle terminal: {e}")

    for error in result.errors:
        logger.warning(f"Output may be incomplete: {error}")

    if config.report_exit_status:
        print(f"Exit status={result.returncode}", file=sys.stderr, flush=True)

    if signal_manager.is_force_exit:
        logger.warning(f"Force exit requested, terminating with exit code {EXIT_FORCED}")
        return EXIT_FORCED

    return result.exit_code


def configure_logging(config: Config) -> None:
    """配置日志输出。

    默认只把 WARNING 以上输出到 stderr，避免与爬虫输出混在一起；
    PCRAW_LOG_DEBUG 模式下 DEBUG 日志写入临时文件。
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.WARNING

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("pcraw_console").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    config = get_config()
    configure_logging(config)

    args = tuple(sys.argv[1:] if argv is None else argv)
    command = CommandLine(config.interpreter, config.script, args)

    sys.exit(asyncio.run(run_crawler(command, config)))


if __name__ == "__main__":
    main()
