"""
Retry with backoff for collaborator calls (navigation, performance audits).

Strategies:
    fixed                 constant delay between attempts
    exponential           base * 2**attempt, capped at max_delay_ms
    decorrelated-jitter   min(cap, random_between(base, previous * 3)), never below base
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DELAY_MS = 30_000


def compute_delay(
    strategy: str,
    base_delay_ms: int,
    max_delay_ms: int,
    attempt: int,
    previous_delay: int,
) -> int:
    if strategy == "fixed":
        return base_delay_ms
    if strategy == "exponential":
        return min(max_delay_ms, base_delay_ms * 2**attempt)
    if strategy == "decorrelated-jitter":
        ceiling = min(max_delay_ms, previous_delay * 3)
        if ceiling <= base_delay_ms:
            return base_delay_ms
        return max(base_delay_ms, random.randint(base_delay_ms, ceiling))
    raise ValueError(f"Unknown retry strategy: {strategy}")


def retry(
    fn: Callable[[], T],
    max_retries: int,
    base_delay_ms: int,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    strategy: str = "decorrelated-jitter",
    is_retryable: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    previous_delay = base_delay_ms
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as exc:
            if is_retryable is not None and not is_retryable(exc):
                raise
            if attempt >= max_retries:
                raise
            delay = compute_delay(strategy, base_delay_ms, max_delay_ms, attempt, previous_delay)
            previous_delay = delay
            logger.warning("Attempt %d/%d failed (next in %dms): %s", attempt + 1, max_retries, delay, exc)
            sleep(delay / 1000)
            attempt += 1
