"""
TCG Appraiser — Async retry with exponential backoff

Shared by the price sources (per-request retry) and the workflow
(extract-features and per-branch retry). Delay before retry n (0-based) is
base_backoff * 2**n, so a base of 2s gives 2s, 4s, 8s.

Only exceptions listed in `retry_on` are retried; anything else propagates
immediately. asyncio.CancelledError is never caught.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def backoff_delay(base_backoff: float, attempt: int) -> float:
    """Delay in seconds before retry number `attempt` (0-based)."""
    return base_backoff * (2 ** attempt)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_backoff: float,
    retry_on: tuple[type[BaseException], ...],
    operation_name: str,
    give_up_on: tuple[type[BaseException], ...] = (),
    **log_context: Any,
) -> T:
    """
    Await `operation()` up to max_retries + 1 times.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        max_retries: Retries after the first attempt.
        base_backoff: Base delay in seconds.
        retry_on: Exception types that trigger a retry.
        operation_name: Prefix for log event names.
        give_up_on: Subclasses of retry_on that are raised without retrying.
        **log_context: Extra key/value pairs attached to every log line.

    Raises:
        The last exception raised by `operation` once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as e:
            if isinstance(e, give_up_on):
                logger.error(
                    f"{operation_name}_not_retryable",
                    attempts=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                    **log_context,
                )
                raise
            if attempt >= max_retries:
                logger.error(
                    f"{operation_name}_retries_exhausted",
                    attempts=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                    **log_context,
                )
                raise
            wait_time = backoff_delay(base_backoff, attempt)
            logger.warning(
                f"{operation_name}_retrying",
                attempt=attempt + 1,
                wait_seconds=wait_time,
                error=str(e),
                error_type=type(e).__name__,
                **log_context,
            )
            await asyncio.sleep(wait_time)
            attempt += 1
