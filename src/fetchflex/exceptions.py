"""
HTTP 客户端异常模块

定义所有请求客户端相关的异常类，提供统一的错误处理机制
"""

from __future__ import annotations

from typing import Any


class FetchClientError(Exception):
    """
    客户端异常基类

    所有自定义异常的基类，用于统一捕获和处理客户端相关错误
    """


class FetchConfigError(FetchClientError):
    """
    请求配置异常

    当无法从调用参数中解析出可用的 URL，或配置字段取值非法时抛出此异常
    """


class FetchTimeoutError(FetchClientError, TimeoutError):
    """
    单次尝试超时异常

    当某一次尝试的执行时间超过 timeout 设定时抛出。
    只由客户端内部的超时控制器产生，与调用方主动取消区分开。

    参数:
        message: 错误描述信息
        timeout: 触发超时的时长（毫秒）
    """

    def __init__(self, message: str, timeout: int | None = None):
        super().__init__(message)
        self.timeout = timeout


class FetchCancellationError(FetchClientError):
    """
    调用方取消异常

    当调用方提供的取消信号（AbortSignal）被触发时抛出，永远不会被重试

    参数:
        message: 错误描述信息
        reason: 调用方传入的取消原因（可选）
    """

    def __init__(self, message: str = "Request was cancelled", reason: Any = None):
        super().__init__(message)
        self.reason = reason


class FetchTransportError(FetchClientError):
    """
    网络传输异常

    当网络连接失败、DNS 解析失败等传输层问题时抛出此异常

    参数:
        message: 错误描述信息
        request: 发生错误的请求描述（可选）
    """

    def __init__(self, message: str, request: Any = None):
        super().__init__(message)
        self.request = request


class FetchDecodeError(FetchClientError):
    """
    响应解码异常

    当响应体无法按照 response_decoding 指定的方式解码时抛出

    参数:
        message: 错误描述信息
        status_code: 响应的 HTTP 状态码（可选）
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamUnavailableError(FetchDecodeError):
    """
    流式响应不可用异常

    请求使用 stream 解码方式，但传输层返回的响应没有响应体时抛出
    """
