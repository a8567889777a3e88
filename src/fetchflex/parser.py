"""
响应解析器模块

每种响应解码方式（json、text、blob、array_buffer、form_data、stream）对应一个解析器，
负责把 httpx.Response 的响应体解码为调用方需要的数据
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from email.parser import BytesParser
from email.policy import HTTP
from typing import Any, AsyncIterator
from urllib.parse import parse_qs

import httpx

from fetchflex.constants import (
    BODYLESS_STATUS_CODES,
    CONTENT_TYPE_FORM_URLENCODED,
    CONTENT_TYPE_MULTIPART,
    CONTENT_TYPE_OCTET_STREAM,
    DEFAULT_CHUNK_SIZE,
)
from fetchflex.exceptions import FetchDecodeError, StreamUnavailableError
from fetchflex.models import Blob, ResponseDecoding

logger = logging.getLogger(__name__)


def has_body(response: httpx.Response) -> bool:
    """判断响应是否带有响应体"""
    if response.status_code in BODYLESS_STATUS_CODES:
        return False
    return response.headers.get("Content-Length") != "0"


def _media_type(response: httpx.Response) -> str:
    return response.headers.get("Content-Type", "").split(";")[0].strip().lower()


class BaseResponseParser(ABC):
    """响应解析器基类，定义解析 httpx.Response 的接口。"""

    # 是否以流式方式交付响应体；为 False 时传输层在解析后关闭响应
    is_stream: bool = False

    @abstractmethod
    async def parse(self, response: httpx.Response) -> Any:
        """解析 httpx.Response 对象并返回所需格式的数据。"""


class JSONResponseParser(BaseResponseParser):
    """解析响应为 JSON 数据，空响应体解析为 None"""

    async def parse(self, response: httpx.Response) -> Any:
        logger.debug("Parsing response as JSON")
        content = await response.aread()
        if not content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FetchDecodeError(f"Response body is not valid JSON: {e}", status_code=response.status_code) from e


class TextResponseParser(BaseResponseParser):
    """解析响应为文本"""

    async def parse(self, response: httpx.Response) -> str:
        logger.debug("Parsing response as text")
        await response.aread()
        return response.text


class BlobResponseParser(BaseResponseParser):
    """解析响应为 Blob（字节内容 + 内容类型）"""

    async def parse(self, response: httpx.Response) -> Blob:
        logger.debug("Parsing response as blob")
        content = await response.aread()
        return Blob(content=content, content_type=response.headers.get("Content-Type", CONTENT_TYPE_OCTET_STREAM))


class ContentResponseParser(BaseResponseParser):
    """解析响应为 Content 字节数据（array_buffer）"""

    async def parse(self, response: httpx.Response) -> bytes:
        logger.debug("Parsing response as content bytes")
        return await response.aread()


class FormDataResponseParser(BaseResponseParser):
    """
    表单响应解析器

    支持 application/x-www-form-urlencoded 和 multipart/form-data 两种格式，
    返回 {字段名: [值, ...]}。multipart 中带文件名的部分解析为 Blob。
    """

    async def parse(self, response: httpx.Response) -> dict[str, list[Any]]:
        logger.debug("Parsing response as form data")
        content = await response.aread()
        media_type = _media_type(response)

        if media_type == CONTENT_TYPE_MULTIPART:
            return self._parse_multipart(response.headers["Content-Type"], content, response.status_code)

        if media_type in (CONTENT_TYPE_FORM_URLENCODED, ""):
            try:
                return parse_qs(content.decode(response.encoding or "utf-8"), keep_blank_values=True)
            except UnicodeDecodeError as e:
                raise FetchDecodeError(f"Form body is not valid text: {e}", status_code=response.status_code) from e

        raise FetchDecodeError(
            f"Cannot decode content type {media_type!r} as form data", status_code=response.status_code
        )

    def _parse_multipart(self, content_type: str, content: bytes, status_code: int) -> dict[str, list[Any]]:
        header = f"Content-Type: {content_type}\r\n\r\n".encode("latin-1")
        message = BytesParser(policy=HTTP).parsebytes(header + content)
        if not message.is_multipart():
            raise FetchDecodeError("Multipart body has no parts", status_code=status_code)

        form: dict[str, list[Any]] = {}
        for part in message.iter_parts():
            name = part.get_param("name", header="content-disposition")
            if not name:
                continue
            payload = part.get_payload(decode=True) or b""
            if part.get_filename():
                value: Any = Blob(content=payload, content_type=part.get_content_type())
            else:
                value = payload.decode(part.get_content_charset() or "utf-8", errors="replace")
            form.setdefault(name, []).append(value)
        return form


class StreamBody:
    """
    未缓冲的响应体字节流

    注意:
        - 响应内容不会自动加载到内存
        - 使用 async for 逐块读取，读取完毕或调用 aclose() 后连接被释放
        - 客户端关闭后将无法读取响应内容

    使用示例:
        >>> envelope = await client.get(url, {"response_decoding": "stream"})
        >>> async with envelope.data as body:
        ...     async for chunk in body:
        ...         process_chunk(chunk)
    """

    def __init__(self, response: httpx.Response, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._response = response
        self.chunk_size = chunk_size

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._response.aiter_bytes(chunk_size=self.chunk_size)

    async def aread(self) -> bytes:
        """读取剩余全部内容"""
        return await self._response.aread()

    async def aclose(self) -> None:
        await self._response.aclose()

    async def __aenter__(self) -> StreamBody:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class StreamResponseParser(BaseResponseParser):
    """流式响应解析器，返回 StreamBody；响应没有响应体时抛出 StreamUnavailableError"""

    is_stream: bool = True

    async def parse(self, response: httpx.Response) -> StreamBody:
        if not has_body(response):
            raise StreamUnavailableError(
                f"Response with status {response.status_code} has no body to stream",
                status_code=response.status_code,
            )
        logger.debug("Returning unbuffered response stream")
        return StreamBody(response)


# 解码方式 -> 解析器类
DEFAULT_PARSERS: dict[ResponseDecoding, type[BaseResponseParser]] = {
    ResponseDecoding.JSON: JSONResponseParser,
    ResponseDecoding.TEXT: TextResponseParser,
    ResponseDecoding.BLOB: BlobResponseParser,
    ResponseDecoding.ARRAY_BUFFER: ContentResponseParser,
    ResponseDecoding.FORM_DATA: FormDataResponseParser,
    ResponseDecoding.STREAM: StreamResponseParser,
}
