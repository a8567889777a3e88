"""
请求规范化模块

把各种形式的调用参数（URL 字符串、URL 对象、配置字典、预构建的 httpx.Request、
已有的 RequestDescriptor）统一转换为一个 RequestDescriptor。该过程是纯函数，没有副作用。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import fields
from typing import Any
from urllib.parse import urlparse

import httpx

from fetchflex.constants import SUPPORTED_METHODS
from fetchflex.exceptions import FetchConfigError
from fetchflex.models import ClientDefaults, RequestConfig, RequestDescriptor, ResponseDecoding
from fetchflex.signals import AbortSignal
from fetchflex.utils import append_query

logger = logging.getLogger(__name__)

# 配置键别名：驼峰写法和常见的请求体字段名
CONFIG_KEY_ALIASES = {
    "retryDelay": "retry_delay",
    "retryOn": "retry_on",
    "retryOnStatusCodes": "retry_on",
    "responseDecoding": "response_decoding",
    "responseType": "response_decoding",
    "exponentialBackoff": "exponential_backoff",
    "jitterFactor": "jitter_factor",
    "maxRetryDelay": "max_retry_delay",
    "onRetry": "on_retry",
    "onTimeout": "on_timeout",
    "json": "body",
    "data": "body",
}

DESCRIPTOR_FIELDS = frozenset(f.name for f in fields(RequestDescriptor))

# 从 httpx.Request 提取请求头时丢弃的字段，由传输层根据最终请求体重新计算
_TRANSPORT_MANAGED_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})

_NON_NEGATIVE_FIELDS = ("timeout", "retries", "retry_delay", "max_retry_delay", "jitter_factor")


def normalize_config(config: Mapping[str, Any] | None) -> RequestConfig:
    """
    规范化配置字典的键名

    参数:
        config: 调用方传入的配置字典

    返回:
        只包含 RequestDescriptor 字段名的新字典
    """
    if not config:
        return {}

    normalized: RequestConfig = {}
    for key, value in config.items():
        name = CONFIG_KEY_ALIASES.get(key, key)
        if name not in DESCRIPTOR_FIELDS:
            logger.debug(f"Ignoring unknown request config key: {key}")
            continue
        normalized[name] = value
    return normalized


def _extract_input(request_input: Any) -> RequestConfig:
    """从不同形式的输入中提取配置字典"""
    if isinstance(request_input, RequestDescriptor):
        extracted = {f.name: getattr(request_input, f.name) for f in fields(request_input)}
        # url 已经附加过查询串，避免重复拼接
        extracted["_appended_params"] = extracted.pop("params")
        return extracted

    if isinstance(request_input, httpx.Request):
        try:
            body = request_input.content or None
        except httpx.RequestNotRead:
            body = request_input.stream
        return {
            "url": str(request_input.url),
            "method": request_input.method,
            "headers": {
                key: value
                for key, value in request_input.headers.items()
                if key.lower() not in _TRANSPORT_MANAGED_HEADERS
            },
            "body": body,
        }

    if isinstance(request_input, Mapping):
        return normalize_config(request_input)

    if isinstance(request_input, str):
        return {"url": request_input}

    if isinstance(request_input, httpx.URL):
        return {"url": str(request_input)}

    # urllib.parse 的 ParseResult / SplitResult 等 URL 对象
    if callable(getattr(request_input, "geturl", None)):
        return {"url": request_input.geturl()}

    if request_input is None:
        return {}

    raise FetchConfigError(f"Unsupported request input type: {type(request_input).__name__}")


def resolve_url(url: Any, base_url: str = "") -> str:
    """
    解析出绝对 URL

    参数:
        url: 请求地址，可以是绝对地址或相对于 base_url 的路径
        base_url: 基础地址

    返回:
        绝对 URL

    异常:
        FetchConfigError: 无法得到可用的 URL 时抛出
    """
    if isinstance(url, httpx.URL):
        url = str(url)
    if url is not None and not isinstance(url, str):
        url = str(url)

    if not url:
        if base_url:
            return base_url
        raise FetchConfigError("A request URL must be provided")

    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return url

    if not base_url:
        raise FetchConfigError(f"Cannot resolve relative URL without a base_url: {url}")

    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def _coerce_retry_on(retry_on: Any, default: Any) -> Any:
    if retry_on is None:
        return default
    if callable(retry_on):
        return retry_on
    if isinstance(retry_on, int):
        return frozenset({retry_on})
    try:
        return frozenset(int(code) for code in retry_on)
    except (TypeError, ValueError) as e:
        raise FetchConfigError(f"retry_on must be a collection of status codes or a predicate: {e}") from e


def normalize_request(
    request_input: Any,
    config: Mapping[str, Any] | None = None,
    *,
    defaults: ClientDefaults | None = None,
    base_url: str = "",
    default_headers: Mapping[str, str] | None = None,
) -> RequestDescriptor:
    """
    构建规范化的请求描述

    参数:
        request_input: URL 字符串、httpx.URL、配置字典、httpx.Request 或 RequestDescriptor
        config: 覆盖配置字典，优先级最高
        defaults: 客户端默认配置
        base_url: 用于解析相对地址的基础 URL
        default_headers: 客户端级默认请求头

    返回:
        RequestDescriptor

    执行步骤:
        1. 从输入中提取 url、method 等字段
        2. 合并覆盖配置，请求头按 默认 < 客户端 < 输入 < 覆盖 的顺序合并
        3. 为缺省字段应用默认值，并校验取值
        4. 将 params 附加为查询串

    异常:
        FetchConfigError: 没有可解析的 URL，或配置取值非法时抛出
    """
    defaults = defaults or ClientDefaults()
    extracted = _extract_input(request_input)
    overlay = normalize_config(config)

    headers = {
        **defaults.headers,
        **(default_headers or {}),
        **(extracted.get("headers") or {}),
        **(overlay.get("headers") or {}),
    }
    appended_params = extracted.pop("_appended_params", None) or {}
    pending_params = {**(extracted.get("params") or {}), **(overlay.get("params") or {})}

    merged = {**extracted, **overlay}

    url = resolve_url(merged.get("url"), base_url)

    method = (merged.get("method") or defaults.method).upper()
    if method not in SUPPORTED_METHODS:
        raise FetchConfigError(f"Unsupported HTTP method: {method}")

    numeric = {}
    for name in _NON_NEGATIVE_FIELDS:
        value = merged.get(name)
        if value is None:
            value = getattr(defaults, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FetchConfigError(f"{name} must be a number, got {type(value).__name__}")
        if value < 0:
            raise FetchConfigError(f"{name} must not be negative, got {value}")
        numeric[name] = value

    try:
        response_decoding = ResponseDecoding(merged.get("response_decoding") or defaults.response_decoding)
    except ValueError as e:
        raise FetchConfigError(f"Unknown response decoding: {merged.get('response_decoding')}") from e

    signal = merged.get("signal")
    if signal is not None and not isinstance(signal, AbortSignal):
        raise FetchConfigError("signal must be an AbortSignal")

    exponential_backoff = merged.get("exponential_backoff")
    if exponential_backoff is None:
        exponential_backoff = defaults.exponential_backoff

    return RequestDescriptor(
        url=append_query(url, pending_params),
        method=method,
        headers=headers,
        body=merged.get("body"),
        params={**appended_params, **pending_params},
        retry_on=_coerce_retry_on(merged.get("retry_on"), defaults.retry_on),
        signal=signal,
        response_decoding=response_decoding,
        exponential_backoff=bool(exponential_backoff),
        on_retry=merged.get("on_retry"),
        on_timeout=merged.get("on_timeout"),
        **numeric,
    )
