"""
便捷请求函数模块

fetch_with_retry 只带重试，fetch_with_timeout 只带超时。
未提供 client 时使用临时客户端，请求完成后自动关闭。
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from fetchflex.client import FetchClient
from fetchflex.exceptions import FetchConfigError
from fetchflex.models import ResponseDecoding, ResponseEnvelope

logger = logging.getLogger(__name__)


async def _run(request_input: Any, config: dict[str, Any], client: FetchClient | None) -> ResponseEnvelope:
    if client is not None:
        return await client.request(request_input, config)

    decoding = config.get("response_decoding") or config.get("responseDecoding")
    if decoding == ResponseDecoding.STREAM:
        raise FetchConfigError("Streaming responses need a long-lived client; pass client=")

    async with FetchClient() as temp_client:
        return await temp_client.request(request_input, config)


async def fetch_with_retry(
    request_input: Any,
    *,
    retries: int | None = None,
    retry_delay: int | None = None,
    retry_on: Any = None,
    on_retry: Callable | None = None,
    client: FetchClient | None = None,
    **config: Any,
) -> ResponseEnvelope:
    """
    带重试机制的请求函数（不限制单次尝试时长）

    参数:
        request_input: URL、配置字典、httpx.Request 等 request() 可接受的输入
        retries: 最大重试次数，缺省使用客户端默认值
        retry_delay: 重试间隔（毫秒）
        retry_on: 需要重试的状态码集合或判定函数
        on_retry: 每次重试前的回调 (结果或异常, 尝试序号, 退避毫秒数)
        client: 使用的客户端，缺省时使用临时客户端
        **config: 其他请求配置

    使用示例:
        >>> response = await fetch_with_retry(
        ...     "https://api.example.com/data",
        ...     retries=3,
        ...     retry_delay=1000,
        ...     retry_on=[500, 502, 503],
        ...     on_retry=lambda outcome, attempt, delay: print(f"第 {attempt} 次尝试失败"),
        ... )
    """
    config.setdefault("timeout", 0)
    config.update(
        {
            key: value
            for key, value in {
                "retries": retries,
                "retry_delay": retry_delay,
                "retry_on": retry_on,
                "on_retry": on_retry,
            }.items()
            if value is not None
        }
    )
    return await _run(request_input, config, client)


async def fetch_with_timeout(
    request_input: Any,
    *,
    timeout: int = 0,
    on_timeout: Callable | None = None,
    client: FetchClient | None = None,
    **config: Any,
) -> ResponseEnvelope:
    """
    带超时机制的请求函数（不重试）

    参数:
        request_input: URL、配置字典、httpx.Request 等 request() 可接受的输入
        timeout: 超时时间（毫秒），0 表示不限制
        on_timeout: 超时回调，接收 FetchTimeoutError
        client: 使用的客户端，缺省时使用临时客户端
        **config: 其他请求配置

    异常:
        FetchTimeoutError: 请求超时
    """
    config.update({"timeout": timeout, "retries": 0, "on_timeout": on_timeout})
    return await _run(request_input, config, client)
