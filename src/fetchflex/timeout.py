"""
超时控制模块

为单次尝试提供独立的取消作用域：合并调用方的取消信号和本次尝试的超时信号，
超时只取消当前尝试，不在多次重试之间累计。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from fetchflex.exceptions import FetchTimeoutError
from fetchflex.signals import AbortController, AbortSignal, MergedSignal, any_signal

logger = logging.getLogger(__name__)


class AttemptScope:
    """
    单次尝试的取消作用域

    作为异步上下文管理器使用：进入时检查调用方信号并启动超时计时器，
    退出时（无论成功或失败）清除计时器并解除与调用方信号的关联。

    参数:
        caller_signal: 调用方提供的取消信号（可选）
        timeout: 超时时间（毫秒），0 表示不限制
        on_timeout: 超时触发时的回调，接收 FetchTimeoutError，可以是异步函数
        request_id: 请求 ID，用于日志

    属性:
        signal: 合并后的信号，任一来源触发即触发
        timed_out: 本次尝试是否因超时而被取消

    使用示例:
        >>> async with AttemptScope(caller_signal, timeout=5000) as scope:
        ...     response = await race_with_signal(send(), scope.signal)
    """

    def __init__(
        self,
        caller_signal: AbortSignal | None = None,
        timeout: int = 0,
        on_timeout: Callable[[FetchTimeoutError], Any] | None = None,
        request_id: str = "",
    ):
        self.caller_signal = caller_signal
        self.timeout = timeout
        self.on_timeout = on_timeout
        self.request_id = request_id
        self.timed_out = False
        self.signal: MergedSignal | None = None
        self._controller = AbortController()
        self._timer: asyncio.TimerHandle | None = None
        self._callback_task: asyncio.Future | None = None

    async def __aenter__(self) -> AttemptScope:
        # 调用方信号优先于客户端自身的超时处理
        if self.caller_signal is not None:
            self.caller_signal.throw_if_aborted()

        self.signal = any_signal(self.caller_signal, self._controller.signal)
        if self.timeout > 0:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.timeout / 1000, self._fire)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel_timer()
        if self.signal is not None:
            self.signal.detach()
        if self._callback_task is not None:
            await self._await_callback()

    def cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self.signal is not None and self.signal.aborted:
            return

        error = FetchTimeoutError(f"Request timed out after {self.timeout}ms", timeout=self.timeout)
        self.timed_out = True
        logger.warning(f"[{self.request_id}] Attempt deadline of {self.timeout}ms exceeded, aborting")
        self._controller.abort(error)

        if self.on_timeout is not None:
            try:
                result = self.on_timeout(error)
            except Exception:
                logger.exception(f"[{self.request_id}] on_timeout callback failed")
                return
            if inspect.isawaitable(result):
                self._callback_task = asyncio.ensure_future(result)

    async def _await_callback(self) -> None:
        try:
            await self._callback_task
        except Exception:
            logger.exception(f"[{self.request_id}] on_timeout callback failed")
        finally:
            self._callback_task = None
