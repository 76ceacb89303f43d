"""行分类器。

根据爬虫 (pcraw.pl) 输出行的内容决定终端写入方式：
- PROGRESS: 进度行，以回车结尾，下一次写入覆盖同一行
- CLEAR: 清除信号，一行恰好 progress_width 个空格，用于擦除进度行
- NORMAL: 普通日志行，以换行结尾，永久保留

纯函数，无状态、无 I/O。
"""

from __future__ import annotations

from enum import Enum
from typing import Final

__all__ = [
    "LineKind",
    "DEFAULT_PROGRESS_WIDTH",
    "PROGRESS_PREFIXES",
    "classify",
    "clear_signal",
]

# pcraw.pl 进度条宽度（终端 80 列减去光标位）
DEFAULT_PROGRESS_WIDTH: Final[int] = 79

# 进度行前缀，按 pcraw.pl 的输出约定
PROGRESS_PREFIXES: Final[tuple[str, ...]] = (
    "|",
    "parsing links, please wait",
    "wait for ",
)


class LineKind(str, Enum):
    """行分类结果。"""

    PROGRESS = "progress"  # 覆盖当前行
    CLEAR = "clear"        # 擦除进度行
    NORMAL = "normal"      # 提交并换行


def clear_signal(width: int = DEFAULT_PROGRESS_WIDTH) -> str:
    """返回指定宽度的清除信号（全空格字符串）。

    Raises:
        ValueError: width 小于 1
    """
    if width < 1:
        raise ValueError(f"progress width must be >= 1, got {width}")
    return " " * width


def classify(line: str, progress_width: int = DEFAULT_PROGRESS_WIDTH) -> LineKind:
    """对一行输出进行分类。

    前缀检查优先于清除信号的精确匹配；其余一律视为 NORMAL，
    任何内容都不会导致分类失败。

    Args:
        line: 已去掉行结束符的文本
        progress_width: 清除信号的空格数（默认 79）

    Returns:
        对应的 LineKind
    """
    if line.startswith(PROGRESS_PREFIXES):
        return LineKind.PROGRESS
    if line == clear_signal(progress_width):
        return LineKind.CLEAR
    return LineKind.NORMAL
