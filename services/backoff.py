"""Retry scheduling for failed queue operations."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from core.settings import BACKOFF
from datetime_utils import utc_now


def backoff_delay(
    retry_count: int,
    *,
    base: float = BACKOFF.base,
    unit_sec: float = BACKOFF.unit_sec,
    max_delay_sec: Optional[float] = BACKOFF.max_delay_sec,
) -> timedelta:
    """Exponential delay: ``unit_sec * base ** retry_count`` (2, 4, 8... seconds by default)."""

    seconds = unit_sec * (base ** max(retry_count, 0))
    if max_delay_sec is not None:
        seconds = min(seconds, max_delay_sec)
    return timedelta(seconds=seconds)


def next_retry_at(retry_count: int, now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) + backoff_delay(retry_count)


__all__ = ["backoff_delay", "next_retry_at"]
