from __future__ import annotations

import time
from datetime import UTC, datetime


def now_iso(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing ``Z``."""
    current = now or datetime.now(UTC)
    return current.strftime("%Y-%m-%dT%H:%M:%S.") + f"{current.microsecond // 1000:03d}Z"


def start_timer() -> float:
    return time.monotonic()


def duration_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))
