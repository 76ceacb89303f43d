"""信号管理模块。

爬虫子进程运行在独立的进程组中，终端的 Ctrl+C 不会直接到达子进程，
因此由本模块将 OS 信号转换为对 supervisor 的操作：
- SIGINT: 取消运行（终止子进程，输出继续排空直到 EOF）
- 双击窗口内第二次 SIGINT: 立即 kill 子进程并强制退出
- SIGTERM: 取消运行

支持的配置：
- PCRAW_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Optional

from .config import get_config
from .runtime.supervisor import ProcessSupervisor

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)


class SignalManager:
    """信号管理器。

    Example:
        ```python
        supervisor = ProcessSupervisor()
        signal_manager = SignalManager(supervisor)

        async def main():
            await signal_manager.start()
            try:
                await supervisor.run(spec)
            finally:
                await signal_manager.stop()

        asyncio.run(main())
        ```

    Attributes:
        supervisor: 被管理的 supervisor
        double_tap_window: 双击退出窗口时间（秒）
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        double_tap_window: Optional[float] = None,
    ) -> None:
        """初始化信号管理器。

        Args:
            supervisor: 被管理的 supervisor
            double_tap_window: 双击退出窗口时间（默认从配置读取）
        """
        self.supervisor = supervisor
        self.double_tap_window = (
            double_tap_window
            if double_tap_window is not None
            else get_config().sigint_double_tap_window
        )

        # 内部状态
        self._last_sigint_time: float = 0.0
        self._cancel_requested: bool = False
        self._force_exit: bool = False
        self._original_sigint_handler: Optional[signal.Handlers] = None
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_cancel_requested(self) -> bool:
        """是否已请求取消。"""
        return self._cancel_requested

    @property
    def is_force_exit(self) -> bool:
        """是否请求强制退出（双击 SIGINT）。"""
        return self._force_exit

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
            logger.debug(
                f"Signal handlers installed (double_tap_window={self.double_tap_window}s)"
            )
        else:
            # Windows: 使用 signal.signal() 设置处理器
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._handle_sigint(),
            )
            logger.debug("SIGINT handler installed on Windows")

    async def stop(self) -> None:
        """停止信号监听，恢复原始处理器。"""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop.remove_signal_handler(signal.SIGTERM)
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)

        logger.debug("Signal handlers removed")

    def _handle_sigint(self) -> None:
        """处理 SIGINT 信号。

        - 第一次：优雅取消（SIGTERM -> 超时 -> SIGKILL）
        - 双击窗口内再次收到：立即 kill 并标记强制退出
        """
        current_time = time.time()
        time_since_last = current_time - self._last_sigint_time
        self._last_sigint_time = current_time

        if self._cancel_requested and time_since_last < self.double_tap_window:
            logger.warning("Double SIGINT detected, killing crawler")
            self._force_shutdown()
            return

        logger.info(
            f"SIGINT received, stopping crawler. "
            f"Press Ctrl+C again within {self.double_tap_window}s to kill it."
        )
        self._request_cancel()

    def _handle_sigterm(self) -> None:
        """处理 SIGTERM 信号：优雅取消。"""
        logger.info("SIGTERM received, stopping crawler")
        self._request_cancel()

    def _request_cancel(self) -> None:
        """请求取消。"""
        self._cancel_requested = True
        if not self.supervisor.cancel():
            logger.debug("No running crawler to cancel")

    def _force_shutdown(self) -> None:
        """强制退出。

        设置 force_exit 标志并 kill 子进程。
        实际的进程退出由 app 在排空输出后执行。
        """
        self._force_exit = True
        self._cancel_requested = True
        if not self.supervisor.kill():
            logger.debug("No running crawler to kill")
