"""
取消信号模块

提供可中止的取消信号（AbortSignal）及其控制器（AbortController），
以及把多个信号合并为一个信号的 any_signal 原语。

注意:
    - 信号是协作式的，只应在创建它的事件循环线程中触发
    - 跨线程触发不受支持
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from fetchflex.exceptions import FetchCancellationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
AbortListener = Callable[["AbortSignal"], None]


class AbortSignal:
    """
    取消信号

    只能被触发一次。触发后 aborted 为 True，reason 保存触发原因，
    所有已注册的监听器按注册顺序被同步调用。
    """

    def __init__(self):
        self._aborted = False
        self._reason: Any = None
        self._listeners: list[AbortListener] = []
        self._event: asyncio.Event | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def add_listener(self, listener: AbortListener) -> None:
        """注册监听器；信号已触发时立即调用"""
        if self._aborted:
            listener(self)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def wait(self) -> Any:
        """挂起直到信号被触发，返回触发原因"""
        if self._aborted:
            return self._reason
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()
        return self._reason

    def throw_if_aborted(self) -> None:
        """信号已触发时抛出其原因"""
        if self._aborted:
            raise abort_error(self)

    def _abort(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(self)

    def __repr__(self) -> str:
        return f"<AbortSignal aborted={self._aborted} reason={self._reason!r}>"


class AbortController:
    """
    取消信号控制器

    使用示例:
        >>> controller = AbortController()
        >>> task = asyncio.create_task(client.get(url, {"signal": controller.signal}))
        >>> controller.abort()
    """

    def __init__(self):
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> None:
        """
        触发信号

        参数:
            reason: 取消原因。为 None 时使用 FetchCancellationError；
                    非异常对象会被包装进 FetchCancellationError.reason
        """
        if reason is None:
            reason = FetchCancellationError()
        elif not isinstance(reason, BaseException):
            reason = FetchCancellationError(f"Request was cancelled: {reason}", reason=reason)
        self.signal._abort(reason)


class MergedSignal(AbortSignal):
    """
    合并信号

    任一来源信号触发时随之触发，reason 取最先触发的来源的 reason。
    使用完毕后应调用 detach() 解除与来源信号的关联，避免监听器泄漏。
    """

    def __init__(self, sources: tuple[AbortSignal, ...]):
        super().__init__()
        self.sources = sources
        self.source: AbortSignal | None = None
        for signal in sources:
            signal.add_listener(self._on_source_abort)
            if self._aborted:
                break

    def _on_source_abort(self, signal: AbortSignal) -> None:
        if self._aborted:
            return
        self.source = signal
        self._abort(signal.reason)

    def detach(self) -> None:
        for signal in self.sources:
            signal.remove_listener(self._on_source_abort)


def abort_error(signal: AbortSignal) -> BaseException:
    """把信号的触发原因转换为要抛出的异常"""
    if isinstance(signal.reason, BaseException):
        return signal.reason
    return FetchCancellationError(reason=signal.reason)


async def race_with_signal(awaitable: Awaitable[T], signal: AbortSignal | None) -> T:
    """
    在取消信号的约束下等待 awaitable

    信号先触发时取消正在执行的任务（底层连接随之被中止，而不只是丢弃结果），
    然后抛出信号的触发原因。

    参数:
        awaitable: 要执行的协程
        signal: 取消信号，None 表示不受约束

    返回:
        awaitable 的结果
    """
    if signal is None:
        return await awaitable

    if signal.aborted:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise abort_error(signal)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Aborted task settled with {e!r}")
    raise abort_error(signal)


def any_signal(*signals: AbortSignal | None) -> MergedSignal:
    """
    合并多个取消信号

    参数:
        *signals: 来源信号，None 会被忽略

    返回:
        MergedSignal，其 source 属性记录最先触发的来源信号
    """
    return MergedSignal(tuple(signal for signal in signals if signal is not None))
