"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 模拟爬虫脚本
FAKE_CRAWLER_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_crawler.py"


class RecordingStream(io.StringIO):
    """记录每一次 write 调用的文本流。"""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []
        self.flushes = 0

    def write(self, s: str) -> int:
        self.writes.append(s)
        return super().write(s)

    def flush(self) -> None:
        self.flushes += 1
        super().flush()


@pytest.fixture
def stream() -> RecordingStream:
    """记录写入的终端流。"""
    return RecordingStream()


@pytest.fixture
def fake_crawler() -> Path:
    """模拟爬虫脚本路径。"""
    return FAKE_CRAWLER_PATH


class BrokenTerminal(io.StringIO):
    """写入即失败的终端流（模拟 `| head` 退出后的断开管道）。"""

    def write(self, s: str) -> int:
        raise BrokenPipeError(32, "Broken pipe")
