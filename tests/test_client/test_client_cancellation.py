"""
FetchClient 超时与取消测试

测试单次尝试超时、调用方取消以及并发请求之间的隔离
"""

import asyncio

import httpx
import pytest

from fetchflex import AbortController
from fetchflex.exceptions import FetchCancellationError, FetchTimeoutError


class TestAttemptTimeout:
    """测试单次尝试超时"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_timeout_raises(self, make_client, slow_handler):
        """测试请求超过 timeout 时抛出 FetchTimeoutError"""
        # Arrange
        client, handler = make_client(slow_handler(5))
        loop = asyncio.get_running_loop()
        started = loop.time()

        # Act & Assert
        with pytest.raises(FetchTimeoutError) as exc_info:
            await client.get("/slow", {"timeout": 50})

        assert loop.time() - started < 2
        assert exc_info.value.timeout == 50
        assert handler.call_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, make_client, slow_handler):
        """测试超时可以重试，且超时按每次尝试单独计算"""
        # Arrange
        client, handler = make_client(slow_handler(5), slow_handler(0.03))

        # Act
        response = await client.get("/slow", {"timeout": 100, "retries": 1, "retry_delay": 1})

        # Assert
        assert handler.call_count == 2
        assert response.attempt == 2
        assert response.data == {"slow": True}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_on_timeout_callback(self, make_client, slow_handler):
        """测试超时回调"""
        # Arrange
        client, _ = make_client(slow_handler(5))
        seen = []

        # Act
        with pytest.raises(FetchTimeoutError):
            await client.get("/slow", {"timeout": 20, "onTimeout": seen.append})

        # Assert
        assert len(seen) == 1
        assert isinstance(seen[0], FetchTimeoutError)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_timeout_does_not_affect_siblings(self, make_client, slow_handler):
        """测试一个请求超时不影响并发的其他请求"""
        # Arrange
        fast = httpx.Response(200, json={"fast": True})

        def route(request):
            if request.url.path == "/slow":
                return slow_handler(5)(request)
            return fast

        client, _ = make_client(route)

        # Act
        slow_result, fast_result = await asyncio.gather(
            client.get("/slow", {"timeout": 30}),
            client.get("/fast", {"timeout": 1000}),
            return_exceptions=True,
        )

        # Assert
        assert isinstance(slow_result, FetchTimeoutError)
        assert fast_result.data == {"fast": True}


class TestCallerCancellation:
    """测试调用方取消"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_abort_in_flight(self, make_client, slow_handler):
        """测试请求进行中取消，抛出 FetchCancellationError 且不重试"""
        # Arrange
        client, handler = make_client(slow_handler(5))
        controller = AbortController()
        asyncio.get_running_loop().call_later(0.03, controller.abort)

        # Act & Assert
        with pytest.raises(FetchCancellationError):
            await client.get("/slow", {"signal": controller.signal, "retries": 3, "retry_delay": 1})

        assert handler.call_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_abort_before_request(self, make_client):
        """测试请求开始前已取消时不发送请求"""
        # Arrange
        client, handler = make_client()
        controller = AbortController()
        controller.abort("navigated away")

        # Act & Assert
        with pytest.raises(FetchCancellationError) as exc_info:
            await client.get("/users", {"signal": controller.signal})

        assert exc_info.value.reason == "navigated away"
        assert handler.call_count == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_abort_during_backoff(self, make_client):
        """测试退避等待期间取消立即结束"""
        # Arrange
        client, handler = make_client(httpx.Response(503))
        controller = AbortController()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, controller.abort)
        started = loop.time()

        # Act & Assert
        with pytest.raises(FetchCancellationError):
            await client.get("/flaky", {"signal": controller.signal, "retries": 3, "retry_delay": 10_000})

        assert loop.time() - started < 2
        assert handler.call_count == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_caller_abort_wins_over_timeout(self, make_client, slow_handler):
        """测试调用方取消先于超时触发时抛出取消异常而非超时异常"""
        # Arrange
        client, _ = make_client(slow_handler(5))
        controller = AbortController()
        asyncio.get_running_loop().call_later(0.02, controller.abort)

        # Act & Assert
        with pytest.raises(FetchCancellationError):
            await client.get("/slow", {"signal": controller.signal, "timeout": 2000, "retries": 2})

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, make_client, slow_handler):
        """测试 asyncio 任务取消原样传播"""
        # Arrange
        client, _ = make_client(slow_handler(5))
        task = asyncio.create_task(client.get("/slow", {"timeout": 0}))
        await asyncio.sleep(0.02)

        # Act
        task.cancel()

        # Assert
        with pytest.raises(asyncio.CancelledError):
            await task
