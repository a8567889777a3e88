"""
通用测试 Fixture 定义

提供测试所需的 Mock 传输、客户端工厂和工具函数
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from fetchflex import ClientDefaults, FetchClient


class RecordingHandler:
    """
    可记录请求的 MockTransport 处理器

    按顺序返回 responses 中的元素：httpx.Response 直接返回，
    异常实例被抛出，可调用对象以请求为参数调用（可为异步函数）。
    最后一个元素会被重复使用。
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [httpx.Response(200, json={"result": True})]
        self.requests: list[httpx.Request] = []
        self.call_times: list[float] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.call_times.append(asyncio.get_running_loop().time())
        index = min(len(self.requests), len(self.responses)) - 1
        outcome = self.responses[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            outcome = outcome(request)
            if asyncio.iscoroutine(outcome):
                outcome = await outcome
        # 同一个响应可能被多次返回，每次复制一份
        return httpx.Response(outcome.status_code, headers=outcome.headers, content=outcome.content)


def sleeping(seconds: float, response: httpx.Response | None = None):
    """返回一个先休眠再响应的处理函数"""

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(seconds)
        return response if response is not None else httpx.Response(200, json={"slow": True})

    return handler


@pytest.fixture
def no_retry_defaults():
    """不重试、不限时的默认配置"""
    return ClientDefaults(retries=0, timeout=0, retry_delay=0)


@pytest.fixture
def make_client(no_retry_defaults):
    """
    客户端工厂

    使用 httpx.MockTransport 包装处理器，返回 (client, handler)
    """

    def factory(*responses, defaults=None, **client_kwargs):
        handler = responses[0] if len(responses) == 1 and isinstance(responses[0], RecordingHandler) else None
        handler = handler or RecordingHandler(*responses)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = FetchClient(
            base_url=client_kwargs.pop("base_url", "https://api.example.com"),
            defaults=defaults or no_retry_defaults,
            http_client=http_client,
            **client_kwargs,
        )
        return client, handler

    return factory


@pytest.fixture
def slow_handler():
    """慢响应处理器工厂，见 sleeping()"""
    return sleeping


@pytest.fixture
def no_backoff():
    """跳过重试之间的退避等待，返回记录退避间隔的 Mock"""
    with patch("fetchflex.retry.backoff_sleep", new_callable=AsyncMock) as sleep_mock:
        yield sleep_mock
