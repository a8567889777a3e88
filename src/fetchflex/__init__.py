"""
fetchflex 异步 HTTP 客户端模块

在 httpx 之上实现请求策略：请求如何成形、失败如何分类和重试、响应如何规范化，
以及调用方如何通过拦截器叠加行为

主要组件:
    - FetchClient: 客户端，提供 request/get/post/put/patch/delete
    - AbortController / AbortSignal: 调用方取消信号
    - ClientDefaults: 注入客户端的不可变默认配置
    - RequestDescriptor / ResponseEnvelope: 规范化的请求和响应
    - 异常类: FetchClientError 及其子类
    - 解析器: JSONResponseParser, StreamResponseParser 等

使用示例:
    >>> from fetchflex import FetchClient
    >>>
    >>> async with FetchClient(base_url="https://api.example.com") as client:
    ...     response = await client.get("/users", {"params": {"page": 1}})
    ...     print(response.success, response.data)
"""

# 核心客户端
from fetchflex.client import FetchClient

# 数据模型
from fetchflex.models import (
    Blob,
    ClientDefaults,
    RequestDescriptor,
    ResponseDecoding,
    ResponseEnvelope,
)

# 取消信号
from fetchflex.signals import AbortController, AbortSignal, any_signal

# 异常类
from fetchflex.exceptions import (
    FetchCancellationError,
    FetchClientError,
    FetchConfigError,
    FetchDecodeError,
    FetchTimeoutError,
    FetchTransportError,
    StreamUnavailableError,
)

# 响应解析器
from fetchflex.parser import (
    BaseResponseParser,
    BlobResponseParser,
    ContentResponseParser,
    FormDataResponseParser,
    JSONResponseParser,
    StreamBody,
    StreamResponseParser,
    TextResponseParser,
)

# 拦截器
from fetchflex.interceptors import InterceptorPipeline

# 重试与超时
from fetchflex.retry import RetryController, RetryPolicy
from fetchflex.timeout import AttemptScope

# 规范化与传输
from fetchflex.normalizer import normalize_request
from fetchflex.transport import TransportInvoker

# 批量执行器
from fetchflex.executor import BaseBatchExecutor, GatherBatchExecutor

# 便捷函数
from fetchflex.shortcuts import fetch_with_retry, fetch_with_timeout

# 工具函数
from fetchflex.utils import append_query, sanitize_headers, sanitize_url

# 常量配置
from fetchflex.constants import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_PATCH,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
    MAX_RETRIES_CEILING,
    RETRY_STATUS_CODES,
)

# 默认客户端实例；跨事件循环使用时应创建独立的客户端
fetch = FetchClient()

__all__ = [
    # 核心类
    "FetchClient",
    "fetch",
    # 数据模型
    "Blob",
    "ClientDefaults",
    "RequestDescriptor",
    "ResponseDecoding",
    "ResponseEnvelope",
    # 取消信号
    "AbortController",
    "AbortSignal",
    "any_signal",
    # 异常
    "FetchClientError",
    "FetchConfigError",
    "FetchTimeoutError",
    "FetchCancellationError",
    "FetchTransportError",
    "FetchDecodeError",
    "StreamUnavailableError",
    # 解析器
    "BaseResponseParser",
    "JSONResponseParser",
    "TextResponseParser",
    "BlobResponseParser",
    "ContentResponseParser",
    "FormDataResponseParser",
    "StreamResponseParser",
    "StreamBody",
    # 管道组件
    "InterceptorPipeline",
    "RetryController",
    "RetryPolicy",
    "AttemptScope",
    "TransportInvoker",
    "normalize_request",
    # 执行器
    "BaseBatchExecutor",
    "GatherBatchExecutor",
    # 便捷函数
    "fetch_with_retry",
    "fetch_with_timeout",
    # 工具函数
    "append_query",
    "sanitize_headers",
    "sanitize_url",
    # 常量
    "DEFAULT_TIMEOUT",
    "DEFAULT_RETRIES",
    "DEFAULT_RETRY_DELAY",
    "MAX_RETRIES_CEILING",
    "RETRY_STATUS_CODES",
    "HTTP_METHOD_GET",
    "HTTP_METHOD_POST",
    "HTTP_METHOD_PUT",
    "HTTP_METHOD_DELETE",
    "HTTP_METHOD_PATCH",
]

__version__ = "0.1.0"
