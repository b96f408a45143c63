"""SQLModel table backing the local read-cache."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class CacheEntry(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str
    cached_at: datetime = Field(default_factory=utc_now)
    ttl_seconds: int = Field(default=24 * 60 * 60)


__all__ = ["CacheEntry"]
