"""批量执行器模块

提供并发执行多个请求的策略，结果顺序与输入一致，
单个请求失败不会中断整体执行
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fetchflex.constants import DEFAULT_MAX_CONCURRENCY
from fetchflex.models import ResponseEnvelope

logger = logging.getLogger(__name__)


class BaseBatchExecutor:
    """
    批量执行器基类

    定义执行多个请求的统一接口，子类需实现具体的执行策略

    参数:
        max_concurrency: 最大并发请求数
    """

    def __init__(self, max_concurrency: int | None = None):
        self.max_concurrency = max_concurrency

    async def execute(
        self,
        client_instance: FetchClient,  # noqa: F821
        request_inputs: list[Any],
    ) -> list[ResponseEnvelope | Exception]:
        """
        执行多个请求

        参数:
            client_instance: 调用此执行器的 FetchClient 实例
            request_inputs: 请求输入列表，元素为 request() 可接受的输入，
                            或 (输入, 配置字典) 二元组

        返回:
            ResponseEnvelope 或异常的列表
        """
        raise NotImplementedError("Subclasses must implement the 'execute' method.")


class GatherBatchExecutor(BaseBatchExecutor):
    """
    基于 asyncio.gather 的批量执行器

    执行流程:
        1. 为每个请求创建协程，使用信号量限制并发数
        2. 并发执行请求，各请求之间互不影响
        3. 收集所有结果，保持原始顺序返回
        4. 捕获单个请求的异常并作为结果返回
    """

    async def execute(
        self,
        client_instance: FetchClient,  # noqa: F821
        request_inputs: list[Any],
    ) -> list[ResponseEnvelope | Exception]:
        if not request_inputs:
            logger.warning("Empty request list provided")
            return []

        max_concurrency = self.max_concurrency or DEFAULT_MAX_CONCURRENCY
        logger.info(f"Starting {len(request_inputs)} concurrent requests with concurrency {max_concurrency}")
        semaphore = asyncio.Semaphore(max_concurrency)

        async def run_one(index: int, request_input: Any) -> ResponseEnvelope | Exception:
            request_input, config = request_input if isinstance(request_input, tuple) else (request_input, None)
            async with semaphore:
                try:
                    return await client_instance.request(request_input, config)
                except Exception as e:
                    logger.error(f"Batch request #{index} failed: {e!r}")
                    return e

        return list(await asyncio.gather(*(run_one(i, item) for i, item in enumerate(request_inputs))))
