"""
数据模型模块

定义请求描述（RequestDescriptor）、响应信封（ResponseEnvelope）、
响应解码方式（ResponseDecoding）以及客户端默认配置（ClientDefaults）
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TypeAlias, Union

from fetchflex.constants import (
    DEFAULT_JITTER_FACTOR,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_METHOD,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    RETRY_STATUS_CODES,
    SUCCESS_STATUS_MAX,
    SUCCESS_STATUS_MIN,
)
from fetchflex.signals import AbortSignal

# 类型别名定义
RequestConfig: TypeAlias = dict[str, Any]
RetryPredicate: TypeAlias = Callable[["ResponseEnvelope"], bool]
RetryOn: TypeAlias = Union[frozenset, RetryPredicate]


class ResponseDecoding(str, Enum):
    """响应体解码方式"""

    JSON = "json"
    TEXT = "text"
    BLOB = "blob"
    ARRAY_BUFFER = "array_buffer"
    FORM_DATA = "form_data"
    STREAM = "stream"

    @classmethod
    def _missing_(cls, value):
        # 兼容 arrayBuffer / formData 这类驼峰写法
        if isinstance(value, str):
            snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in value).lstrip("_")
            for member in cls:
                if member.value in (value.lower(), snake):
                    return member
        return None


@dataclass(frozen=True)
class Blob:
    """blob 解码结果：原始字节和内容类型"""

    content: bytes
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class ClientDefaults:
    """
    客户端默认配置

    在客户端构造时注入的不可变配置值，取代进程级的可变全局状态。
    每次请求的配置都以它为底，再叠加调用方传入的配置。

    属性:
        method: 默认 HTTP 方法
        timeout: 单次尝试超时（毫秒），0 表示不限制
        retries: 重试次数，0 表示不重试
        retry_delay: 重试基础间隔（毫秒）
        retry_on: 需要重试的状态码集合，或作用于响应信封的判定函数
        response_decoding: 默认响应解码方式
        exponential_backoff: 是否按尝试次数指数退避
        jitter_factor: 抖动系数，延迟乘以 (1 + random() * jitter_factor)
        max_retry_delay: 退避延迟上限（毫秒）
        headers: 默认请求头
    """

    method: str = DEFAULT_METHOD
    timeout: int = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    retry_delay: int = DEFAULT_RETRY_DELAY
    retry_on: RetryOn = RETRY_STATUS_CODES
    response_decoding: ResponseDecoding = ResponseDecoding.JSON
    exponential_backoff: bool = False
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_retry_delay: int = DEFAULT_MAX_RETRY_DELAY
    headers: dict[str, str] = field(default_factory=dict)

    def replace(self, **changes) -> ClientDefaults:
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class RequestDescriptor:
    """
    请求描述

    规范化后的完整请求配置。一次调用独占一个描述对象，
    拦截器通过 replace() 返回修改后的副本，而不是原地修改。

    url 在交给传输层之前始终是绝对地址，且已附加 params 查询串。
    """

    url: str
    method: str = DEFAULT_METHOD
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    params: dict[str, Any] = field(default_factory=dict)
    timeout: int = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    retry_delay: int = DEFAULT_RETRY_DELAY
    retry_on: RetryOn = RETRY_STATUS_CODES
    signal: AbortSignal | None = None
    response_decoding: ResponseDecoding = ResponseDecoding.JSON
    exponential_backoff: bool = False
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_retry_delay: int = DEFAULT_MAX_RETRY_DELAY
    on_retry: Callable | None = None
    on_timeout: Callable | None = None

    def replace(self, **changes) -> RequestDescriptor:
        return dataclasses.replace(self, **changes)

    def with_headers(self, headers: Mapping[str, str]) -> RequestDescriptor:
        """返回合并了额外请求头的副本"""
        return self.replace(headers={**self.headers, **headers})


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    响应信封

    与底层传输的原生响应类型解耦的规范化响应。每次完成的尝试创建一个，
    响应拦截器通过 replace() 返回新的信封。

    属性:
        data: 按 response_decoding 解码后的响应体
        status_code: HTTP 状态码
        status_text: 状态描述（reason phrase）
        headers: 响应头
        config: 产生该响应的请求描述
        attempt: 产生该响应的尝试序号（从 1 开始）
        url: 最终请求地址
    """

    data: Any
    status_code: int
    status_text: str
    headers: Mapping[str, str]
    config: RequestDescriptor
    attempt: int = 1
    url: str = ""

    @property
    def success(self) -> bool:
        return SUCCESS_STATUS_MIN <= self.status_code < SUCCESS_STATUS_MAX

    def replace(self, **changes) -> ResponseEnvelope:
        return dataclasses.replace(self, **changes)
