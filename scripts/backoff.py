"""Retry schedule and async retry loop for provider calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from random import SystemRandom
from typing import TypeVar

_T = TypeVar("_T")


def exponential_backoff(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    factor: float = 2.0,
    max_delay: float = 20.0,
    jitter: float = 0.25,
) -> Iterator[tuple[int, float]]:
    """Yield ``(attempt, delay)``; the delay is how long to wait after that attempt fails."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0 or jitter < 0:
        raise ValueError("base_delay and jitter must be >= 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")

    rng = SystemRandom()
    for attempt in range(1, max_attempts + 1):
        delay = min(base_delay * factor ** (attempt - 1), max_delay)
        spread = rng.uniform(0, delay * jitter) if delay and jitter else 0.0
        yield attempt, min(delay + spread, max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[_T]],
    *,
    retry_on: Callable[[Exception], bool],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> _T:
    """Await ``operation`` until it succeeds, re-raising once attempts run out or ``retry_on`` says no."""
    last_error: Exception | None = None
    for attempt, delay in exponential_backoff(max_attempts=max_attempts, base_delay=base_delay):
        try:
            return await operation()
        except Exception as exc:
            if attempt == max_attempts or not retry_on(exc):
                raise
            last_error = exc
            if on_retry is not None:
                on_retry(attempt, exc)
            await asyncio.sleep(delay)
    raise RuntimeError("retry loop exited without a result") from last_error  # pragma: no cover
