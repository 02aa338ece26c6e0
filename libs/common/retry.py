from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from libs.common.logging import get_logger

T = TypeVar("T")

logger = get_logger("libs.common.retry")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay_seconds: float,
    max_delay_seconds: float,
    retry_filter: Callable[[Exception], bool],
) -> T:
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= retries or not retry_filter(exc):
                raise

            delay = min(base_delay_seconds * (2**attempt), max_delay_seconds)
            jitter = random.uniform(0, delay * 0.2)
            logger.warning("retry_scheduled", attempt=attempt + 1, delay_seconds=round(delay + jitter, 3), error=str(exc))
            await asyncio.sleep(delay + jitter)
            attempt += 1
