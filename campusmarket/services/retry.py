from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone


def compute_backoff_seconds(attempt: int, base: int = 10, cap: int = 900, *, jitter: bool = True) -> int:
    # exponential backoff, optionally with up to a third of jitter (max 30s)
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    if not jitter:
        return exp
    return exp + random.randint(0, min(30, exp // 3))


def next_attempt_at(attempt: int, *, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=compute_backoff_seconds(attempt))


def exhausted(attempts: int, max_attempts: int) -> bool:
    return attempts >= max_attempts
