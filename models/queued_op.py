"""SQLModel table for operations waiting to be replayed against the remote store."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class QueuedOp(SQLModel, table=True):
    # AUTOINCREMENT keeps SQLite from handing out the id of a deleted row again
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    op_type: str = Field(index=True)
    owner_id: str = Field(index=True)
    payload: str
    status: str = Field(default="PENDING", index=True)
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    priority: int = Field(default=1)
    last_error: Optional[str] = None
    conflict_json: Optional[str] = None
    metadata_json: Optional[str] = None
    enqueued_at: datetime = Field(default_factory=utc_now)
    next_retry_at: datetime = Field(default_factory=utc_now, index=True)


__all__ = ["QueuedOp"]
