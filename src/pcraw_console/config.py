"""PCRAW 环境变量配置管理。

环境变量:
    PCRAW_INTERPRETER: 启动爬虫脚本的解释器
        - 默认 perl

    PCRAW_SCRIPT: 爬虫脚本路径
        - 默认 pcraw.pl（相对于工作目录）

    PCRAW_WORKDIR: 子进程工作目录
        - 未设置 = 继承当前目录

    PCRAW_PROGRESS_WIDTH: 进度条宽度（清除信号的空格数）
        - 默认 79，无效值或小于 1 时回退为 79

    PCRAW_ENCODING: 子进程输出编码
        - 默认 utf-8，未知编码回退为 utf-8

    PCRAW_EXIT_STATUS: 结束时在 stderr 打印 "Exit status=N"
        - true/1/yes = 打印
        - false/0/no = 不打印 (默认)

    PCRAW_TERM_TIMEOUT: 取消时 SIGTERM 到 SIGKILL 的等待时间（秒）
        - 默认 2.0 秒，限制在 0.1-60 秒

    PCRAW_SIGINT_DOUBLE_TAP_WINDOW: 双击 Ctrl+C 强制退出的窗口时间（秒）
        - 默认 1.0 秒，限制在 0.1-10 秒

    PCRAW_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，只有 WARNING 以上输出到 stderr)
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .classifier import DEFAULT_PROGRESS_WIDTH

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_INTERPRETER = "perl"
DEFAULT_SCRIPT = "pcraw.pl"
DEFAULT_ENCODING = "utf-8"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_str(value: str | None, default: str) -> str:
    """解析字符串环境变量，空白视为未设置。"""
    if value is None or not value.strip():
        return default
    return value.strip()


def _parse_width(value: str | None) -> int:
    """解析进度条宽度。"""
    if not value:
        return DEFAULT_PROGRESS_WIDTH
    try:
        width = int(value)
    except ValueError:
        return DEFAULT_PROGRESS_WIDTH
    return width if width >= 1 else DEFAULT_PROGRESS_WIDTH


def _parse_encoding(value: str | None) -> str:
    """解析输出编码，未知编码回退为 utf-8。"""
    encoding = _parse_str(value, DEFAULT_ENCODING)
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        return DEFAULT_ENCODING


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量并限制范围。"""
    if not value:
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    return max(low, min(number, high))


def _parse_workdir(value: str | None) -> Path | None:
    """解析工作目录，~ 展开为用户目录。"""
    if value is None or not value.strip():
        return None
    return Path(value.strip()).expanduser()


@dataclass
class Config:
    """PCRAW 配置。

    Attributes:
        interpreter: 解释器
        script: 爬虫脚本
        workdir: 子进程工作目录（None = 继承）
        progress_width: 进度条宽度
        encoding: 子进程输出编码
        report_exit_status: 结束时打印退出码
        term_timeout: SIGTERM 后等待时间（秒）
        sigint_double_tap_window: 双击退出窗口时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    interpreter: str = DEFAULT_INTERPRETER
    script: str = DEFAULT_SCRIPT
    workdir: Path | None = None
    progress_width: int = DEFAULT_PROGRESS_WIDTH
    encoding: str = DEFAULT_ENCODING
    report_exit_status: bool = False
    term_timeout: float = 2.0
    sigint_double_tap_window: float = 1.0
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(interpreter={self.interpreter}, "
            f"script={self.script}, "
            f"workdir={self.workdir}, "
            f"progress_width={self.progress_width}, "
            f"encoding={self.encoding}, "
            f"report_exit_status={self.report_exit_status}, "
            f"term_timeout={self.term_timeout}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "pcraw-console"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pcraw_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("PCRAW_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        interpreter=_parse_str(os.environ.get("PCRAW_INTERPRETER"), DEFAULT_INTERPRETER),
        script=_parse_str(os.environ.get("PCRAW_SCRIPT"), DEFAULT_SCRIPT),
        workdir=_parse_workdir(os.environ.get("PCRAW_WORKDIR")),
        progress_width=_parse_width(os.environ.get("PCRAW_PROGRESS_WIDTH")),
        encoding=_parse_encoding(os.environ.get("PCRAW_ENCODING")),
        report_exit_status=_parse_bool(os.environ.get("PCRAW_EXIT_STATUS"), default=False),
        term_timeout=_parse_float(
            os.environ.get("PCRAW_TERM_TIMEOUT"), 2.0, 0.1, 60.0
        ),
        sigint_double_tap_window=_parse_float(
            os.environ.get("PCRAW_SIGINT_DOUBLE_TAP_WINDOW"), 1.0, 0.1, 10.0
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
