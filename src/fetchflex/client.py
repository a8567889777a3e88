"""HTTP 客户端核心模块

提供可配置的异步 HTTP 请求客户端，支持：
- 请求/响应/错误拦截器管道
- 按状态码或传输异常自动重试，支持指数退避和抖动
- 单次尝试超时与调用方取消信号
- 多种响应解码方式
- 批量并发请求

使用示例:
    >>> async with FetchClient(base_url="https://api.example.com") as client:
    ...     client.use_request_interceptor(lambda d: d.with_headers({"X-Trace": "1"}))
    ...     response = await client.get("/users", {"params": {"page": 1}, "retries": 2})
    ...     print(response.status_code, response.data)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import partial
from typing import Any

import httpx

from fetchflex.constants import (
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_PATCH,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
)
from fetchflex.exceptions import FetchConfigError
from fetchflex.executor import BaseBatchExecutor, GatherBatchExecutor
from fetchflex.interceptors import (
    ErrorInterceptor,
    InterceptorPipeline,
    InterceptorSnapshot,
    RequestInterceptor,
    ResponseInterceptor,
)
from fetchflex.models import ClientDefaults, RequestConfig, RequestDescriptor, ResponseDecoding, ResponseEnvelope
from fetchflex.normalizer import CONFIG_KEY_ALIASES, normalize_request, resolve_url
from fetchflex.parser import DEFAULT_PARSERS, BaseResponseParser
from fetchflex.retry import RetryController, RetryPolicy
from fetchflex.timeout import AttemptScope
from fetchflex.transport import TransportInvoker
from fetchflex.utils import DEFAULT_SENSITIVE_HEADERS, DEFAULT_SENSITIVE_PARAMS, generate_request_id

# 配置日志
logger = logging.getLogger(__name__)


class FetchClient:
    """
    异步 HTTP 客户端

    类属性:
        base_url: 解析相对地址时使用的基础 URL
        default_headers: 默认请求头
        defaults: 默认请求配置（不可变）
        response_parser_classes: 解码方式到解析器类或实例的映射
        batch_executor_class: 批量执行器类或实例
        sensitive_headers: 日志中需要脱敏的请求头
        sensitive_params: 日志中需要脱敏的 URL 参数
        enable_sanitization: 是否启用日志脱敏

    注意:
        拦截器只能追加，不能移除；在请求进行中注册拦截器不受支持，
        新注册的拦截器只对之后发起的调用生效。
    """

    # ========== 基础配置 ==========
    # 基础 URL，可在子类中设置，相对地址将基于此 URL 构建完整路径
    base_url: str = ""

    # 默认请求头字典，所有请求都会携带（可在请求时合并或覆盖）
    default_headers: dict[str, str] = {}

    # 默认请求配置：超时、重试、解码方式等
    defaults: ClientDefaults = ClientDefaults()

    # ========== 安全性配置 ==========
    sensitive_headers: set[str] = DEFAULT_SENSITIVE_HEADERS
    sensitive_params: set[str] = DEFAULT_SENSITIVE_PARAMS
    enable_sanitization: bool = True

    # ========== 可插拔组件配置 ==========
    # 解码方式 -> 解析器类或实例，可替换某一种解码方式的实现
    response_parser_classes: Mapping[ResponseDecoding, type[BaseResponseParser] | BaseResponseParser] = DEFAULT_PARSERS

    # 批量执行器类或实例，用于 request_many
    batch_executor_class: type[BaseBatchExecutor] | BaseBatchExecutor = GatherBatchExecutor

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        defaults: ClientDefaults | None = None,
        http_client: httpx.AsyncClient | None = None,
        parsers: Mapping[Any, type[BaseResponseParser] | BaseResponseParser] | None = None,
        executor: BaseBatchExecutor | type[BaseBatchExecutor] | None = None,
        **httpx_kwargs,
    ):
        """
        初始化客户端实例

        参数:
            base_url: 基础 URL（覆盖类属性）
            headers: 额外的默认请求头，与类级别请求头合并
            defaults: 默认请求配置（覆盖类属性）
            http_client: 外部提供的 httpx.AsyncClient；提供时由调用方负责关闭
            parsers: 解码方式到解析器类或实例的映射，与类级别映射合并
            executor: 批量执行器类或实例
            **httpx_kwargs: 创建 httpx.AsyncClient 时的额外参数（如 proxy、verify、limits）

        执行步骤:
            1. 规范化 base_url 并合并默认配置和请求头
            2. 解析各解码方式的解析器和批量执行器
            3. 初始化拦截器管道
            4. 保存 httpx 客户端配置，首次请求时再创建
        """
        self.base_url = (base_url if base_url is not None else self.base_url).rstrip("/")
        self.defaults = defaults or self.defaults
        self.default_headers = {**self.default_headers, **(headers or {})}

        self.parsers = self._resolve_parsers(parsers)
        self.batch_executor_instance = self._resolve_batch_executor(executor)

        self.interceptors = InterceptorPipeline()

        self._owns_http_client = http_client is None
        self._http_client = http_client
        # 超时由每次尝试的超时控制器负责，httpx 自身默认不限时
        self._httpx_kwargs = {"timeout": None, **httpx_kwargs}
        self._transport: TransportInvoker | None = None

    # ========== 组件解析 ==========

    def _resolve_parsers(self, parsers) -> dict[ResponseDecoding, BaseResponseParser]:
        """
        合并并实例化解析器

        参数:
            parsers: 实例级别的解析器映射

        返回:
            解码方式 -> 解析器实例

        异常:
            FetchConfigError: 解码方式未知或解析器类型无效时抛出
        """
        merged = {**self.response_parser_classes, **(parsers or {})}
        resolved = {}
        for mode, source in merged.items():
            try:
                decoding = ResponseDecoding(mode)
            except ValueError as e:
                raise FetchConfigError(f"Unknown response decoding: {mode}") from e

            if isinstance(source, type) and issubclass(source, BaseResponseParser):
                resolved[decoding] = source()
            elif isinstance(source, BaseResponseParser):
                resolved[decoding] = source
            else:
                raise FetchConfigError(f"Parser for {decoding.value!r} must be a BaseResponseParser subclass or instance")
        return resolved

    def _resolve_batch_executor(self, executor) -> BaseBatchExecutor:
        source = executor if executor is not None else self.batch_executor_class
        if isinstance(source, type) and issubclass(source, BaseBatchExecutor):
            return source()
        if isinstance(source, BaseBatchExecutor):
            return source
        raise FetchConfigError("executor must be a BaseBatchExecutor subclass or instance")

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(**self._httpx_kwargs)
        return self._http_client

    @property
    def transport(self) -> TransportInvoker:
        if self._transport is None:
            self._transport = TransportInvoker(
                self.http_client,
                parsers=self.parsers,
                enable_sanitization=self.enable_sanitization,
                sensitive_headers=self.sensitive_headers,
                sensitive_params=self.sensitive_params,
            )
        return self._transport

    # ========== 拦截器注册 ==========

    def use_request_interceptor(self, interceptor: RequestInterceptor) -> RequestInterceptor:
        """注册请求拦截器：接收 RequestDescriptor，返回 RequestDescriptor（可为异步函数）"""
        return self.interceptors.use_request(interceptor)

    def use_response_interceptor(self, interceptor: ResponseInterceptor) -> ResponseInterceptor:
        """注册响应拦截器：接收 ResponseEnvelope，返回 ResponseEnvelope（可为异步函数）"""
        return self.interceptors.use_response(interceptor)

    def use_error_interceptor(self, interceptor: ErrorInterceptor) -> ErrorInterceptor:
        """注册错误拦截器：接收最终异常，返回要抛出的异常（可为异步函数）"""
        return self.interceptors.use_error(interceptor)

    # ========== 请求执行 ==========

    async def request(self, request_input: Any, config: RequestConfig | None = None) -> ResponseEnvelope:
        """
        执行 HTTP 请求的统一入口方法

        参数:
            request_input: URL 字符串、httpx.URL、配置字典、httpx.Request 或 RequestDescriptor
            config: 覆盖配置字典

        返回:
            ResponseEnvelope。非 2xx 状态码同样正常返回，通过 success 判断

        异常:
            FetchConfigError: 无法解析出 URL 或配置非法
            FetchTimeoutError: 最后一次尝试超时
            FetchCancellationError: 调用方取消
            FetchTransportError: 重试耗尽后仍然网络失败
            FetchDecodeError: 响应体无法解码
            拦截器抛出的异常原样传播

        执行步骤:
            1. 生成请求 ID 并获取拦截器快照
            2. 规范化请求输入
            3. 执行请求拦截器（每次调用只执行一次，所有尝试共享结果）
            4. 在重试控制器中逐次执行尝试，每次尝试后执行响应拦截器
            5. 失败时执行错误拦截器并抛出最终异常
        """
        request_id = generate_request_id()
        snapshot = self.interceptors.snapshot()

        try:
            descriptor = normalize_request(
                request_input,
                config,
                defaults=self.defaults,
                base_url=self.base_url,
                default_headers=self.default_headers,
            )
            descriptor = await snapshot.apply_request(descriptor, request_id)
            descriptor = self._finalize(descriptor)

            controller = RetryController(
                RetryPolicy.from_descriptor(descriptor),
                on_retry=descriptor.on_retry,
                request_id=request_id,
            )
            envelope = await controller.run(
                partial(self._attempt, descriptor, request_id),
                partial(snapshot.apply_response, request_id=request_id),
            )
        except Exception as error:
            logger.error(f"[{request_id}] Request failed: {error!r}")
            await self._raise_through_error_interceptors(snapshot, error, request_id)
            raise

        logger.info(f"[{request_id}] Completed with status {envelope.status_code} after {envelope.attempt} attempt(s)")
        return envelope

    def _finalize(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        # 请求拦截器可能改写 url，交给传输层之前再次确认其可解析
        url = resolve_url(descriptor.url, self.base_url)
        if url != descriptor.url:
            descriptor = descriptor.replace(url=url)
        return descriptor

    async def _attempt(self, descriptor: RequestDescriptor, request_id: str, attempt: int) -> ResponseEnvelope:
        """在独立的取消作用域中执行一次尝试"""
        async with AttemptScope(
            descriptor.signal,
            descriptor.timeout,
            on_timeout=descriptor.on_timeout,
            request_id=request_id,
        ) as scope:
            return await self.transport.invoke(descriptor, scope.signal, attempt, request_id)

    @staticmethod
    async def _raise_through_error_interceptors(
        snapshot: InterceptorSnapshot, error: Exception, request_id: str
    ) -> None:
        if not snapshot.error:
            return
        final_error = await snapshot.apply_error(error, request_id)
        if final_error is not error:
            raise final_error from error

    async def get(self, url: Any, config: RequestConfig | None = None) -> ResponseEnvelope:
        """
        发送 GET 请求

        使用示例:
            >>> response = await client.get("https://api.example.com/posts", {"params": {"userId": 1}})
        """
        return await self.request(url, {**(config or {}), "method": HTTP_METHOD_GET})

    async def post(self, url: Any, body: Any = None, config: RequestConfig | None = None) -> ResponseEnvelope:
        """
        发送 POST 请求，结构化的 body 会被序列化为 JSON 文本

        使用示例:
            >>> response = await client.post("https://api.example.com/posts", {"title": "foo", "userId": 1})
        """
        return await self.request(url, self._with_body(config, HTTP_METHOD_POST, body))

    async def put(self, url: Any, body: Any = None, config: RequestConfig | None = None) -> ResponseEnvelope:
        return await self.request(url, self._with_body(config, HTTP_METHOD_PUT, body))

    async def patch(self, url: Any, body: Any = None, config: RequestConfig | None = None) -> ResponseEnvelope:
        return await self.request(url, self._with_body(config, HTTP_METHOD_PATCH, body))

    async def delete(self, url: Any, config: RequestConfig | None = None) -> ResponseEnvelope:
        return await self.request(url, {**(config or {}), "method": HTTP_METHOD_DELETE})

    @staticmethod
    def _with_body(config: RequestConfig | None, method: str, body: Any) -> RequestConfig:
        """合并请求方法和位置参数 body；body 为 None 时保留配置中的请求体"""
        config = {**(config or {}), "method": method}
        if body is None:
            return config
        conflicting = [key for key, name in CONFIG_KEY_ALIASES.items() if name == "body" and key in config]
        if "body" in config or conflicting:
            raise FetchConfigError(f"{method} body given both as argument and in config")
        config["body"] = body
        return config

    async def request_many(
        self, request_inputs: list[Any], max_concurrency: int | None = None
    ) -> list[ResponseEnvelope | Exception]:
        """
        并发执行多个请求

        参数:
            request_inputs: 请求输入列表，元素为 request() 可接受的输入，或 (输入, 配置字典) 二元组
            max_concurrency: 本次批量的最大并发数（覆盖执行器配置）

        返回:
            与输入顺序一致的 ResponseEnvelope 或异常列表
        """
        executor = self.batch_executor_instance
        if max_concurrency is not None:
            executor = type(executor)(max_concurrency=max_concurrency)
        return await executor.execute(self, request_inputs)

    # ========== 生命周期 ==========

    async def aclose(self) -> None:
        """关闭客户端自己创建的 httpx.AsyncClient，释放连接池资源"""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            self._transport = None
            logger.info("HTTP client closed")

    async def __aenter__(self) -> FetchClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
