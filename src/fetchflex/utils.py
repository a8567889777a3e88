"""工具函数模块

提供查询串拼接、请求 ID 生成和敏感信息脱敏等实用功能
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse


# 默认敏感请求头名称集合
DEFAULT_SENSITIVE_HEADERS = {
    "Authorization",
    "Cookie",
    "X-API-Key",
    "X-Auth-Token",
    "X-Access-Token",
    "API-Key",
    "Auth-Token",
    "Session-ID",
}

# 默认敏感URL参数名称集合
DEFAULT_SENSITIVE_PARAMS = {
    "token",
    "password",
    "secret",
    "key",
    "api_key",
    "apikey",
    "access_token",
    "auth_token",
    "session",
    "pwd",
}


def generate_request_id(suffix: Any = None) -> str:
    """生成全局唯一的请求 ID，用于日志追踪"""
    timestamp = int(time.time() * 1000)  # 毫秒级时间戳
    short_uuid = uuid.uuid4().hex[:8]
    if suffix is None:
        return f"REQ-{timestamp}-{short_uuid}"
    return f"REQ-{timestamp}-{short_uuid}-{suffix}"


def append_query(url: str, params: Mapping[str, Any] | None) -> str:
    """
    将查询参数拼接到 URL 末尾

    URL 已包含 "?" 时使用 "&" 连接，否则使用 "?"。
    值为列表或元组时展开为同名的多个参数，值为 None 的参数被忽略。

    示例:
        >>> append_query("https://api.example.com/users?page=1", {"limit": 10})
        "https://api.example.com/users?page=1&limit=10"
    """
    if not params:
        return url

    pairs = [(key, value) for key, value in params.items() if value is not None]
    if not pairs:
        return url

    query_string = urlencode(pairs, doseq=True)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query_string}"


def sanitize_headers(
    headers: Mapping[str, str],
    sensitive_keys: set[str] | None = None,
    mask: str = "***",
) -> dict[str, str]:
    """
    脱敏请求头中的敏感信息

    参数:
        headers: 原始请求头
        sensitive_keys: 敏感键名集合，不区分大小写。None 时使用默认集合
        mask: 脱敏后的替换字符串

    返回:
        脱敏后的请求头字典（新字典，不修改原字典）

    示例:
        >>> headers = {"Authorization": "Bearer token123", "Content-Type": "application/json"}
        >>> sanitize_headers(headers)
        {"Authorization": "***", "Content-Type": "application/json"}
    """
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_HEADERS

    # 创建不区分大小写的查找集合
    sensitive_keys_lower = {k.lower() for k in sensitive_keys}

    return {k: mask if k.lower() in sensitive_keys_lower else v for k, v in headers.items()}


def sanitize_url(
    url: str,
    sensitive_params: set[str] | None = None,
    mask: str = "***",
) -> str:
    """
    脱敏 URL 中的敏感参数

    参数:
        url: 原始 URL
        sensitive_params: 敏感参数名集合，不区分大小写。None 时使用默认集合
        mask: 脱敏后的替换字符串

    返回:
        脱敏后的 URL

    示例:
        >>> sanitize_url("https://api.example.com/user?token=abc123&page=1")
        "https://api.example.com/user?token=***&page=1"
    """
    if sensitive_params is None:
        sensitive_params = DEFAULT_SENSITIVE_PARAMS

    sensitive_params_lower = {p.lower() for p in sensitive_params}

    parsed = urlparse(url)

    # 如果没有查询参数，直接返回
    if not parsed.query:
        return url

    params = parse_qs(parsed.query, keep_blank_values=True)

    sanitized_params = {}
    for key, values in params.items():
        if key.lower() in sensitive_params_lower:
            # 保持参数结构，但值替换为 mask
            sanitized_params[key] = [mask] * len(values)
        else:
            sanitized_params[key] = values

    sanitized_query = urlencode(sanitized_params, doseq=True)
    return urlunparse(parsed._replace(query=sanitized_query))

