from __future__ import annotations

import asyncio

import pytest

from core.config import RetryConfig
from core.retry import RateLimitedError, retry_call, retry_with_config


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _flaky(failures: int, exc: Exception):
    state = {"calls": 0}

    async def op() -> str:
        state["calls"] += 1
        if state["calls"] <= failures:
            raise exc
        return "ok"

    return op, state


def test_backoff_delays_grow_geometrically() -> None:
    sleep = FakeSleep()
    op, state = _flaky(2, ConnectionError("down"))

    result = asyncio.run(retry_call(op, max_attempts=3, initial_delay=1.0, backoff_factor=1.5, sleep=sleep))

    assert result == "ok"
    assert state["calls"] == 3
    assert sleep.delays == [1.0, 1.5]


def test_last_failure_is_raised_after_max_attempts() -> None:
    sleep = FakeSleep()
    op, state = _flaky(5, ConnectionError("down"))

    with pytest.raises(ConnectionError):
        asyncio.run(retry_with_config(op, RetryConfig(max_attempts=3), sleep=sleep))

    assert state["calls"] == 3
    assert len(sleep.delays) == 2


def test_rate_limit_is_not_retried() -> None:
    sleep = FakeSleep()
    op, state = _flaky(1, RateLimitedError("flood", wait_seconds=30))

    with pytest.raises(RateLimitedError) as excinfo:
        asyncio.run(retry_call(op, sleep=sleep))

    assert excinfo.value.wait_seconds == 30
    assert state["calls"] == 1
    assert sleep.delays == []
