"""
测试 fetchflex.timeout 模块

测试单次尝试的超时作用域
"""

import asyncio

import pytest

from fetchflex.exceptions import FetchCancellationError, FetchTimeoutError
from fetchflex.signals import AbortController, race_with_signal
from fetchflex.timeout import AttemptScope


class TestAttemptScope:
    """测试 AttemptScope"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_aborts_attempt(self):
        """UT-TIME-001: 超时后中止并抛出 FetchTimeoutError"""
        async with AttemptScope(timeout=20) as scope:
            with pytest.raises(FetchTimeoutError) as exc_info:
                await race_with_signal(asyncio.sleep(5), scope.signal)

        assert scope.timed_out is True
        assert exc_info.value.timeout == 20

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_completes_before_deadline(self):
        """UT-TIME-002: 按时完成时不触发超时"""

        async def work():
            return "done"

        async with AttemptScope(timeout=1000) as scope:
            result = await race_with_signal(work(), scope.signal)

        assert result == "done"
        assert scope.timed_out is False
        assert scope.signal.aborted is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timer_cleared_on_exit(self):
        """UT-TIME-003: 退出作用域后计时器被清除"""
        async with AttemptScope(timeout=20) as scope:
            pass

        await asyncio.sleep(0.05)

        assert scope.timed_out is False
        assert scope.signal.aborted is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_zero_timeout_disables_timer(self):
        """UT-TIME-004: timeout 为 0 时不限时"""
        async with AttemptScope(timeout=0) as scope:
            await race_with_signal(asyncio.sleep(0.03), scope.signal)

        assert scope.timed_out is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_caller_signal_already_aborted(self):
        """UT-TIME-005: 调用方信号已触发时进入作用域即抛出"""
        controller = AbortController()
        controller.abort()

        with pytest.raises(FetchCancellationError):
            async with AttemptScope(controller.signal, timeout=1000):
                pass

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_caller_abort_is_cancellation(self):
        """UT-TIME-006: 调用方取消与超时区分"""
        controller = AbortController()
        asyncio.get_running_loop().call_later(0.01, controller.abort)

        async with AttemptScope(controller.signal, timeout=5000) as scope:
            with pytest.raises(FetchCancellationError):
                await race_with_signal(asyncio.sleep(5), scope.signal)

        assert scope.timed_out is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_detached_from_caller_after_exit(self):
        """UT-TIME-007: 退出后调用方信号不再影响该作用域"""
        controller = AbortController()

        async with AttemptScope(controller.signal, timeout=0) as scope:
            pass
        controller.abort()

        assert scope.signal.aborted is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_on_timeout_callback(self):
        """UT-TIME-008: 超时触发时调用 on_timeout"""
        seen = []

        async with AttemptScope(timeout=10, on_timeout=seen.append) as scope:
            with pytest.raises(FetchTimeoutError):
                await race_with_signal(asyncio.sleep(5), scope.signal)

        assert len(seen) == 1
        assert isinstance(seen[0], FetchTimeoutError)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_async_on_timeout_awaited(self):
        """UT-TIME-009: 异步 on_timeout 在退出作用域前完成"""
        seen = []

        async def on_timeout(error):
            await asyncio.sleep(0)
            seen.append(error.timeout)

        async with AttemptScope(timeout=10, on_timeout=on_timeout) as scope:
            with pytest.raises(FetchTimeoutError):
                await race_with_signal(asyncio.sleep(5), scope.signal)

        assert seen == [10]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_on_timeout_failure_does_not_mask_timeout(self):
        """UT-TIME-010: on_timeout 回调异常不影响超时异常"""

        def broken(error):
            raise RuntimeError("callback failed")

        async with AttemptScope(timeout=10, on_timeout=broken) as scope:
            with pytest.raises(FetchTimeoutError):
                await race_with_signal(asyncio.sleep(5), scope.signal)

        assert scope.timed_out is True
