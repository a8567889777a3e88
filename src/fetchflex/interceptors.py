"""
拦截器管道模块

维护请求、响应和错误三条只增不减的拦截器链。拦截器可以是同步函数，
也可以是返回可等待对象的异步函数，按注册顺序依次执行，前一个的输出是后一个的输入。

注意:
    请求进行中注册新的拦截器不受支持：每次调用在开始时获取一份拦截器快照，
    之后注册的拦截器只对后续调用生效。
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar, Union

from fetchflex.models import RequestDescriptor, ResponseEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")

Interceptor = Callable[[T], Union[T, Awaitable[T]]]
RequestInterceptor = Interceptor[RequestDescriptor]
ResponseInterceptor = Interceptor[ResponseEnvelope]
ErrorInterceptor = Callable[[BaseException], Union[BaseException, Awaitable[BaseException]]]


async def maybe_await(value: Any) -> Any:
    """值是可等待对象时等待其结果，否则原样返回"""
    if inspect.isawaitable(value):
        return await value
    return value


async def run_chain(interceptors: tuple[Callable, ...], value: Any, request_id: str = "") -> Any:
    """
    依次执行拦截器链

    参数:
        interceptors: 拦截器元组
        value: 初始值
        request_id: 请求 ID，用于日志

    返回:
        最后一个拦截器的输出。任一拦截器抛出的异常原样向上传播。
    """
    for interceptor in interceptors:
        name = getattr(interceptor, "__name__", repr(interceptor))
        logger.debug(f"[{request_id}] Running interceptor {name}")
        value = await maybe_await(interceptor(value))
    return value


@dataclass(frozen=True)
class InterceptorSnapshot:
    """某次调用开始时的拦截器快照"""

    request: tuple[RequestInterceptor, ...] = ()
    response: tuple[ResponseInterceptor, ...] = ()
    error: tuple[ErrorInterceptor, ...] = ()

    async def apply_request(self, descriptor: RequestDescriptor, request_id: str = "") -> RequestDescriptor:
        result = await run_chain(self.request, descriptor, request_id)
        if not isinstance(result, RequestDescriptor):
            raise TypeError(f"Request interceptor must return a RequestDescriptor, got {type(result).__name__}")
        return result

    async def apply_response(self, envelope: ResponseEnvelope, request_id: str = "") -> ResponseEnvelope:
        result = await run_chain(self.response, envelope, request_id)
        if not isinstance(result, ResponseEnvelope):
            raise TypeError(f"Response interceptor must return a ResponseEnvelope, got {type(result).__name__}")
        return result

    async def apply_error(self, error: BaseException, request_id: str = "") -> BaseException:
        """
        执行错误拦截器链

        每个错误拦截器接收当前异常并返回要抛出的异常，也可以直接抛出新的异常。

        返回:
            最终要抛给调用方的异常
        """
        for interceptor in self.error:
            result = await maybe_await(interceptor(error))
            if not isinstance(result, BaseException):
                raise TypeError(f"Error interceptor must return an exception, got {type(result).__name__}")
            error = result
        return error


class InterceptorPipeline:
    """
    拦截器注册表

    使用示例:
        >>> pipeline = InterceptorPipeline()
        >>> pipeline.use_request(lambda d: d.with_headers({"X-Trace": "1"}))
        >>> snapshot = pipeline.snapshot()
    """

    def __init__(self):
        self._request: list[RequestInterceptor] = []
        self._response: list[ResponseInterceptor] = []
        self._error: list[ErrorInterceptor] = []

    def use_request(self, interceptor: RequestInterceptor) -> RequestInterceptor:
        self._request.append(self._check(interceptor))
        return interceptor

    def use_response(self, interceptor: ResponseInterceptor) -> ResponseInterceptor:
        self._response.append(self._check(interceptor))
        return interceptor

    def use_error(self, interceptor: ErrorInterceptor) -> ErrorInterceptor:
        self._error.append(self._check(interceptor))
        return interceptor

    def snapshot(self) -> InterceptorSnapshot:
        return InterceptorSnapshot(
            request=tuple(self._request),
            response=tuple(self._response),
            error=tuple(self._error),
        )

    @staticmethod
    def _check(interceptor: Callable) -> Callable:
        if not callable(interceptor):
            raise TypeError(f"Interceptor must be callable, got {type(interceptor).__name__}")
        logger.debug(f"Registered interceptor: {getattr(interceptor, '__name__', repr(interceptor))}")
        return interceptor
