"""
测试 fetchflex.interceptors 模块

测试拦截器注册、快照和链式执行
"""

import pytest

from fetchflex.interceptors import InterceptorPipeline, maybe_await, run_chain
from fetchflex.models import RequestDescriptor, ResponseEnvelope


def make_envelope(status=200, data=None):
    return ResponseEnvelope(
        data=data,
        status_code=status,
        status_text="OK",
        headers={},
        config=RequestDescriptor(url="https://a.test/"),
    )


class TestRunChain:
    """测试 run_chain 函数"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_runs_in_registration_order(self):
        """UT-INT-001: 按注册顺序执行，前一个的输出是后一个的输入"""
        result = await run_chain((lambda v: v + "a", lambda v: v + "b"), "")

        assert result == "ab"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_async_interceptors(self):
        """UT-INT-002: 支持异步拦截器"""

        async def double(value):
            return value * 2

        assert await run_chain((double, lambda v: v + 1, double), 1) == 6

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_error_propagates(self):
        """UT-INT-003: 拦截器异常原样传播"""

        def broken(value):
            raise RuntimeError("interceptor failed")

        with pytest.raises(RuntimeError, match="interceptor failed"):
            await run_chain((broken,), 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_maybe_await(self):
        """UT-INT-004: maybe_await 兼容普通值和协程"""

        async def value():
            return 2

        assert await maybe_await(1) == 1
        assert await maybe_await(value()) == 2


class TestInterceptorPipeline:
    """测试 InterceptorPipeline"""

    @pytest.mark.unit
    def test_use_returns_interceptor(self):
        """UT-INT-005: 注册方法返回拦截器本身，可用作装饰器"""
        pipeline = InterceptorPipeline()

        @pipeline.use_request
        def add_header(descriptor):
            return descriptor

        assert callable(add_header)
        assert pipeline.snapshot().request == (add_header,)

    @pytest.mark.unit
    def test_rejects_non_callable(self):
        """UT-INT-006: 拒绝不可调用对象"""
        pipeline = InterceptorPipeline()

        with pytest.raises(TypeError, match="callable"):
            pipeline.use_response("not callable")

    @pytest.mark.unit
    def test_snapshot_isolated_from_later_registration(self):
        """UT-INT-007: 快照不受之后注册的拦截器影响"""
        pipeline = InterceptorPipeline()
        pipeline.use_request(lambda d: d)

        snapshot = pipeline.snapshot()
        pipeline.use_request(lambda d: d)

        assert len(snapshot.request) == 1
        assert len(pipeline.snapshot().request) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_request(self):
        """UT-INT-008: 请求拦截器修改请求头"""
        pipeline = InterceptorPipeline()
        pipeline.use_request(lambda d: d.with_headers({"Authorization": "Bearer t"}))

        descriptor = await pipeline.snapshot().apply_request(RequestDescriptor(url="https://a.test/"))

        assert descriptor.headers["Authorization"] == "Bearer t"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_request_wrong_type(self):
        """UT-INT-009: 请求拦截器返回类型错误时抛出 TypeError"""
        pipeline = InterceptorPipeline()
        pipeline.use_request(lambda d: None)

        with pytest.raises(TypeError, match="RequestDescriptor"):
            await pipeline.snapshot().apply_request(RequestDescriptor(url="https://a.test/"))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_response(self):
        """UT-INT-010: 响应拦截器替换数据"""
        pipeline = InterceptorPipeline()

        async def unwrap(envelope):
            return envelope.replace(data=envelope.data["payload"])

        pipeline.use_response(unwrap)

        envelope = await pipeline.snapshot().apply_response(make_envelope(data={"payload": [1, 2]}))

        assert envelope.data == [1, 2]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_response_wrong_type(self):
        """UT-INT-011: 响应拦截器返回类型错误时抛出 TypeError"""
        pipeline = InterceptorPipeline()
        pipeline.use_response(lambda e: e.data)

        with pytest.raises(TypeError, match="ResponseEnvelope"):
            await pipeline.snapshot().apply_response(make_envelope(data={}))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_error_chain(self):
        """UT-INT-012: 错误拦截器依次转换异常"""
        pipeline = InterceptorPipeline()
        pipeline.use_error(lambda e: ValueError(f"wrapped: {e}"))
        pipeline.use_error(lambda e: LookupError(str(e)))

        result = await pipeline.snapshot().apply_error(RuntimeError("boom"))

        assert isinstance(result, LookupError)
        assert str(result) == "wrapped: boom"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_apply_error_must_return_exception(self):
        """UT-INT-013: 错误拦截器必须返回异常"""
        pipeline = InterceptorPipeline()
        pipeline.use_error(lambda e: "oops")

        with pytest.raises(TypeError, match="exception"):
            await pipeline.snapshot().apply_error(RuntimeError("boom"))
