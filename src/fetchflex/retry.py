"""
重试与退避控制模块

在每次尝试结束后（得到响应或抛出传输异常）判断是否需要再次尝试，
以及再次尝试之前需要等待多久。同一请求的多次尝试严格串行执行。
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from fetchflex.constants import DEFAULT_MAX_RETRY_DELAY, MAX_RETRIES_CEILING
from fetchflex.exceptions import FetchCancellationError, FetchTimeoutError, FetchTransportError
from fetchflex.interceptors import maybe_await
from fetchflex.models import RequestDescriptor, ResponseEnvelope, RetryOn
from fetchflex.parser import StreamBody
from fetchflex.signals import AbortSignal, race_with_signal

logger = logging.getLogger(__name__)

# 可以重试的异常类型；调用方取消、解码失败、配置错误和拦截器异常都不在其中
RETRYABLE_ERRORS = (FetchTransportError, FetchTimeoutError)

AttemptFunc = Callable[[int], Awaitable[ResponseEnvelope]]
InterceptFunc = Callable[[ResponseEnvelope], Awaitable[ResponseEnvelope]]


async def backoff_sleep(delay: float, signal: AbortSignal | None = None) -> None:
    """
    非阻塞等待 delay 毫秒

    等待期间调用方信号被触发时立即抛出其取消原因
    """
    await race_with_signal(asyncio.sleep(max(delay, 0) / 1000), signal)


async def release_stream(outcome: ResponseEnvelope | BaseException) -> None:
    """关闭被丢弃的流式响应，归还连接池中的连接"""
    if isinstance(outcome, ResponseEnvelope) and isinstance(outcome.data, StreamBody):
        await outcome.data.aclose()


@dataclass(frozen=True)
class RetryPolicy:
    """
    重试策略

    属性:
        retries: 重试次数（已按 MAX_RETRIES_CEILING 截断）
        retry_delay: 基础退避间隔（毫秒）
        retry_on: 需要重试的状态码集合，或作用于响应信封的判定函数
        exponential_backoff: 是否每次尝试将间隔翻倍
        jitter_factor: 抖动系数
        max_retry_delay: 退避间隔上限（毫秒）
        signal: 调用方的取消信号，已触发时不再重试
        rng: 随机数来源，返回 [0, 1) 的浮点数
    """

    retries: int = 0
    retry_delay: float = 0
    retry_on: RetryOn = frozenset()
    exponential_backoff: bool = False
    jitter_factor: float = 0.0
    max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    signal: AbortSignal | None = None
    rng: Callable[[], float] = field(default=random.random, compare=False)

    @classmethod
    def from_descriptor(cls, descriptor: RequestDescriptor, **overrides) -> RetryPolicy:
        retries = descriptor.retries
        if retries > MAX_RETRIES_CEILING:
            logger.warning(f"retries={retries} exceeds the ceiling, capped at {MAX_RETRIES_CEILING}")
            retries = MAX_RETRIES_CEILING

        kwargs = dict(
            retries=retries,
            retry_delay=descriptor.retry_delay,
            retry_on=descriptor.retry_on,
            exponential_backoff=descriptor.exponential_backoff,
            jitter_factor=descriptor.jitter_factor,
            max_retry_delay=descriptor.max_retry_delay,
            signal=descriptor.signal,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def status_matches(self, envelope: ResponseEnvelope) -> bool:
        if callable(self.retry_on):
            return bool(self.retry_on(envelope))
        return envelope.status_code in self.retry_on

    def should_retry_response(self, envelope: ResponseEnvelope, attempt: int) -> bool:
        return attempt <= self.retries and self.status_matches(envelope)

    def should_retry_error(self, error: BaseException, attempt: int) -> bool:
        if attempt > self.retries:
            return False
        if isinstance(error, FetchCancellationError):
            return False
        # 调用方信号已触发时，无论异常类型如何都不再重试
        if self.signal is not None and self.signal.aborted:
            return False
        return isinstance(error, RETRYABLE_ERRORS)

    def compute_delay(self, attempt: int) -> float:
        """
        计算第 attempt 次尝试之后的退避间隔（毫秒）

        计算步骤:
            1. 以 retry_delay 为基础
            2. 启用指数退避时乘以 2 ** (attempt - 1)
            3. 抖动系数大于 0 时乘以 (1 + random() * jitter_factor)
            4. 不超过 max_retry_delay
        """
        delay = float(self.retry_delay)
        if self.exponential_backoff:
            delay *= 2 ** (attempt - 1)
        if self.jitter_factor > 0:
            delay *= 1 + self.rng() * self.jitter_factor
        return min(delay, self.max_retry_delay)


class RetryController:
    """
    重试控制器

    参数:
        policy: 重试策略
        on_retry: 每次退避等待之前调用，参数为 (本次结果, 尝试序号, 退避毫秒数)
        request_id: 请求 ID，用于日志
    """

    def __init__(self, policy: RetryPolicy, on_retry: Callable | None = None, request_id: str = ""):
        self.policy = policy
        self.on_retry = on_retry
        self.request_id = request_id

    async def run(self, send: AttemptFunc, intercept: InterceptFunc) -> ResponseEnvelope:
        """
        执行带重试的请求

        参数:
            send: 执行一次尝试的函数，参数为尝试序号
            intercept: 对每次得到的响应执行响应拦截器

        返回:
            最终的 ResponseEnvelope。因状态码耗尽重试时返回最后一次的响应

        异常:
            因异常耗尽重试时抛出最后一次的异常；不可重试的异常立即抛出
        """
        attempt = 1
        while True:
            try:
                envelope = await send(attempt)
            except Exception as error:
                if not self.policy.should_retry_error(error, attempt):
                    if attempt > 1:
                        logger.error(f"[{self.request_id}] Giving up after {attempt} attempts: {error}")
                    raise
                outcome: ResponseEnvelope | BaseException = error
            else:
                # 响应拦截器的异常直接向上传播，不参与重试
                try:
                    envelope = await intercept(envelope)
                except BaseException:
                    await release_stream(envelope)
                    raise
                if not self.policy.should_retry_response(envelope, attempt):
                    return envelope
                outcome = envelope

            delay = self.policy.compute_delay(attempt)
            logger.warning(
                f"[{self.request_id}] Attempt {attempt} failed ({self._describe(outcome)}), "
                f"retrying in {delay:.0f}ms"
            )
            await self._notify(outcome, attempt, delay)
            await release_stream(outcome)
            await backoff_sleep(delay, self.policy.signal)
            attempt += 1

    async def _notify(self, outcome: ResponseEnvelope | BaseException, attempt: int, delay: float) -> None:
        if self.on_retry is None:
            return
        try:
            await maybe_await(self.on_retry(outcome, attempt, delay))
        except Exception:
            logger.exception(f"[{self.request_id}] on_retry callback failed")

    @staticmethod
    def _describe(outcome: ResponseEnvelope | BaseException) -> str:
        if isinstance(outcome, ResponseEnvelope):
            return f"status {outcome.status_code}"
        return f"{type(outcome).__name__}: {outcome}"
