from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    *,
    predicate: Callable[[T], bool],
    attempts: int,
    base_delay_seconds: float,
    max_delay_seconds: float,
    retry_filter: Callable[[Exception], bool] = lambda exc: False,
) -> T | None:
    """`predicate`를 만족하는 값이 나올 때까지 백오프하며 `fetch`를 반복 호출해요.

    최종 일관성(eventual consistency)을 기다리는 용도예요. `retry_filter`가 허용한
    예외는 "아직 준비되지 않음"으로 간주하고, 시도 횟수를 다 쓰면 ``None``을 반환해요.
    """
    for attempt in range(attempts):
        try:
            value = await fetch()
        except Exception as exc:
            if not retry_filter(exc):
                raise
        else:
            if predicate(value):
                return value

        if attempt < attempts - 1:
            await asyncio.sleep(_backoff_delay(attempt, base_delay_seconds, max_delay_seconds))
    return None


def _backoff_delay(attempt: int, base_delay_seconds: float, max_delay_seconds: float) -> float:
    delay = min(base_delay_seconds * (2**attempt), max_delay_seconds)
    jitter = random.uniform(0, delay * 0.2)
    return delay + jitter
