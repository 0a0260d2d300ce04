"""Async retry helper used by network-backed loaders."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from siftlist.logging import logger as default_logger

T = TypeVar("T")
AsyncFactory = Callable[[], Awaitable[T]]


async def retry_async(
    operation: AsyncFactory[T],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    logger=None,
    operation_name: str = "operation",
) -> T:
    """Retry ``operation`` with linear backoff on the listed exception types."""

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    log = logger if logger is not None else default_logger
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            delay = base_delay * attempt
            log.warning(
                "retrying_operation",
                operation=operation_name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
            attempt += 1


__all__ = ["retry_async"]
