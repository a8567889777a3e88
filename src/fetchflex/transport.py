"""
传输调用模块

每次调用只发起一次网络请求：序列化请求体、附加取消信号、等待传输层响应，
并按照 response_decoding 把响应映射为 ResponseEnvelope。本模块从不重试。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx

from fetchflex.constants import (
    CONTENT_TYPE_FORM_URLENCODED,
    CONTENT_TYPE_HEADER,
    CONTENT_TYPE_JSON,
    SUCCESS_STATUS_MAX,
    SUCCESS_STATUS_MIN,
)
from fetchflex.exceptions import (
    FetchConfigError,
    FetchDecodeError,
    FetchTimeoutError,
    FetchTransportError,
    StreamUnavailableError,
)
from fetchflex.models import RequestDescriptor, ResponseDecoding, ResponseEnvelope
from fetchflex.parser import DEFAULT_PARSERS, BaseResponseParser
from fetchflex.signals import AbortSignal, race_with_signal
from fetchflex.utils import DEFAULT_SENSITIVE_HEADERS, DEFAULT_SENSITIVE_PARAMS, sanitize_headers, sanitize_url

logger = logging.getLogger(__name__)

# 需要序列化为 JSON 文本的结构化请求体类型
STRUCTURED_BODY_TYPES = (dict, list, tuple, int, float, bool)


def _find_header(headers: Mapping[str, str], name: str) -> str | None:
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def serialize_body(body: Any, headers: dict[str, str]) -> Any:
    """
    序列化请求体

    参数:
        body: 原始请求体
        headers: 请求头字典，必要时会补充 Content-Type（原地修改）

    返回:
        可直接交给 httpx 的 content

    规则:
        - None 表示没有请求体
        - str / bytes / bytearray 原样发送
        - Content-Type 为表单编码且请求体是字典时，按表单编码
        - 其他结构化数据编码为 JSON 文本，未指定 Content-Type 时补充 application/json
        - 其余对象（字节迭代器、文件等）原样交给传输层
    """
    if body is None:
        return None

    if isinstance(body, (str, bytes)):
        return body
    if isinstance(body, bytearray):
        return bytes(body)

    content_type = _find_header(headers, CONTENT_TYPE_HEADER)

    if isinstance(body, Mapping) and content_type and content_type.startswith(CONTENT_TYPE_FORM_URLENCODED):
        return urlencode(body, doseq=True)

    if isinstance(body, (Mapping,) + STRUCTURED_BODY_TYPES):
        if content_type is None:
            headers[CONTENT_TYPE_HEADER] = CONTENT_TYPE_JSON
        return json.dumps(body if not isinstance(body, Mapping) else dict(body))

    return body


class TransportInvoker:
    """
    传输调用器

    参数:
        http_client: 底层 httpx.AsyncClient，连接池、TLS、DNS 均由其负责
        parsers: 解码方式到解析器实例的映射，缺省时使用 DEFAULT_PARSERS
        enable_sanitization: 日志中是否脱敏 URL 和请求头
        sensitive_headers: 敏感请求头名称集合
        sensitive_params: 敏感 URL 参数名称集合
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        parsers: Mapping[ResponseDecoding, BaseResponseParser] | None = None,
        enable_sanitization: bool = True,
        sensitive_headers: set[str] | None = None,
        sensitive_params: set[str] | None = None,
    ):
        self.http_client = http_client
        self.parsers = dict(parsers) if parsers else {mode: cls() for mode, cls in DEFAULT_PARSERS.items()}
        self.enable_sanitization = enable_sanitization
        self.sensitive_headers = sensitive_headers or DEFAULT_SENSITIVE_HEADERS
        self.sensitive_params = sensitive_params or DEFAULT_SENSITIVE_PARAMS

    def get_parser(self, decoding: ResponseDecoding) -> BaseResponseParser:
        try:
            return self.parsers[decoding]
        except KeyError:
            raise FetchConfigError(f"No response parser registered for decoding {decoding.value!r}") from None

    def build_request(self, descriptor: RequestDescriptor) -> httpx.Request:
        """根据请求描述构建 httpx.Request"""
        headers = dict(descriptor.headers)
        content = serialize_body(descriptor.body, headers)
        try:
            return self.http_client.build_request(descriptor.method, descriptor.url, headers=headers, content=content)
        except httpx.InvalidURL as e:
            raise FetchConfigError(f"Invalid request URL {descriptor.url!r}: {e}") from e

    def _safe_url(self, url: str) -> str:
        return sanitize_url(url, self.sensitive_params) if self.enable_sanitization else url

    async def invoke(
        self,
        descriptor: RequestDescriptor,
        signal: AbortSignal | None = None,
        attempt: int = 1,
        request_id: str = "",
    ) -> ResponseEnvelope:
        """
        执行一次请求

        参数:
            descriptor: 最终确定的请求描述
            signal: 本次尝试的取消信号
            attempt: 尝试序号
            request_id: 请求 ID，用于日志

        返回:
            ResponseEnvelope，任何状态码都会正常返回

        异常:
            FetchTimeoutError: 超时（本次尝试的计时器或传输层超时）
            FetchCancellationError: 调用方取消
            FetchTransportError: 网络传输失败
            FetchDecodeError: 2xx 响应体无法按要求解码；非 2xx 响应解码失败时退回文本
        """
        parser = self.get_parser(descriptor.response_decoding)
        request = self.build_request(descriptor)

        logger.info(f"[{request_id}] Attempt {attempt}: {descriptor.method} {self._safe_url(descriptor.url)}")
        if logger.isEnabledFor(logging.DEBUG):
            headers = dict(request.headers.items())
            if self.enable_sanitization:
                headers = sanitize_headers(headers, self.sensitive_headers)
            logger.debug(f"[{request_id}] Request headers: {headers}, decoding: {descriptor.response_decoding.value}")

        return await race_with_signal(self._send(request, descriptor, parser, attempt, request_id), signal)

    async def _send(
        self,
        request: httpx.Request,
        descriptor: RequestDescriptor,
        parser: BaseResponseParser,
        attempt: int,
        request_id: str,
    ) -> ResponseEnvelope:
        safe_url = self._safe_url(descriptor.url)
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"Request to {safe_url} timed out in transport: {e}") from e
        except (httpx.HTTPError, OSError) as e:
            raise FetchTransportError(f"Request to {safe_url} failed: {e}", request=descriptor) from e

        logger.info(f"[{request_id}] Received {response.status_code} response")
        logger.debug(f"[{request_id}] Response headers: {response.headers}")

        try:
            data = await parser.parse(response)
        except httpx.TimeoutException as e:
            await response.aclose()
            raise FetchTimeoutError(f"Reading response from {safe_url} timed out: {e}") from e
        except httpx.HTTPError as e:
            await response.aclose()
            raise FetchTransportError(f"Reading response from {safe_url} failed: {e}", request=descriptor) from e
        except FetchDecodeError as e:
            await response.aclose()
            if isinstance(e, StreamUnavailableError) or SUCCESS_STATUS_MIN <= response.status_code < SUCCESS_STATUS_MAX:
                raise
            # 错误页通常不是请求的格式，退回文本以便按状态码重试或返回
            logger.warning(
                f"[{request_id}] Could not decode {response.status_code} response as "
                f"{descriptor.response_decoding.value}, returning text body: {e}"
            )
            data = response.text
        except BaseException:
            await response.aclose()
            raise

        if not parser.is_stream:
            await response.aclose()

        return ResponseEnvelope(
            data=data,
            status_code=response.status_code,
            status_text=response.reason_phrase,
            headers=httpx.Headers(response.headers),
            config=descriptor,
            attempt=attempt,
            url=str(response.url),
        )
