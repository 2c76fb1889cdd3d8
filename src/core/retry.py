"""Retry helper for platform lookups (core domain)."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from core.config import RetryConfig

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimitedError(RuntimeError):
    """Raised by adapters when the platform asks us to slow down.

    Never retried automatically: the operator should wait before retrying.
    """

    def __init__(self, message: str, wait_seconds: Optional[int] = None) -> None:
        super().__init__(message)
        self.wait_seconds = wait_seconds


async def retry_call(
    op: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 1.5,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    no_retry: tuple[type[BaseException], ...] = (RateLimitedError,),
    label: str = "call",
) -> T:
    """Await ``op`` until it succeeds or ``max_attempts`` failures happened.

    The delay between attempts starts at ``initial_delay`` seconds and is
    multiplied by ``backoff_factor`` after every failure. The last failure is
    re-raised once attempts are exhausted. Exceptions listed in ``no_retry``
    propagate immediately.
    """

    attempts = max(1, max_attempts)
    delay = initial_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await op()
        except no_retry:
            raise
        except Exception as exc:
            if attempt >= attempts:
                raise
            LOGGER.info(
                "%s failed (attempt %s/%s): %s; retrying in %.2fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            await sleep(delay)
            delay *= backoff_factor


async def retry_with_config(
    op: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    label: str = "call",
) -> T:
    return await retry_call(
        op,
        max_attempts=config.max_attempts,
        initial_delay=config.initial_delay,
        backoff_factor=config.backoff_factor,
        sleep=sleep,
        label=label,
    )
