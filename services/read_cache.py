"""Local read-cache of synced records, with per-entry TTL."""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlmodel import Session, select

from core.operations import RecordKind
from core.settings import CACHE
from datetime_utils import ensure_utc, utc_now
from models.cache_entry import CacheEntry
from storage.db import get_session


def cache_key(kind: RecordKind | str, record_id: Any) -> str:
    namespace = kind.value if isinstance(kind, RecordKind) else str(kind)
    return f"{namespace}{CACHE.key_separator}{record_id}"


def _is_expired(entry: CacheEntry, now: datetime) -> bool:
    if entry.ttl_seconds <= 0:
        return False
    return ensure_utc(entry.cached_at) + timedelta(seconds=entry.ttl_seconds) < now


class ReadCache:
    def __init__(
        self,
        session_factory: Callable[[], Session] = get_session,
        *,
        default_ttl_sec: int = CACHE.default_ttl_sec,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self.default_ttl_sec = default_ttl_sec
        self._clock = clock

    def write(self, key: str, value: Any, ttl_sec: Optional[int] = None) -> None:
        payload = json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
        ttl = self.default_ttl_sec if ttl_sec is None else ttl_sec
        with self._session_factory() as session:
            entry = session.get(CacheEntry, key)
            if entry is None:
                entry = CacheEntry(key=key, value=payload)
            entry.value = payload
            entry.cached_at = self._clock()
            entry.ttl_seconds = ttl
            session.add(entry)
            session.commit()

    def read(self, key: str) -> Optional[Any]:
        with self._session_factory() as session:
            entry = session.get(CacheEntry, key)
            if entry is None:
                return None
            if _is_expired(entry, self._clock()):
                session.delete(entry)
                session.commit()
                return None
            try:
                return json.loads(entry.value)
            except json.JSONDecodeError:
                return None

    def remove(self, key: str) -> None:
        with self._session_factory() as session:
            entry = session.get(CacheEntry, key)
            if entry is not None:
                session.delete(entry)
                session.commit()

    def clean_expired(self) -> int:
        now = self._clock()
        with self._session_factory() as session:
            expired = [e for e in session.exec(select(CacheEntry)).all() if _is_expired(e, now)]
            for entry in expired:
                session.delete(entry)
            if expired:
                session.commit()
            return len(expired)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._session_factory() as session:
            entries = session.exec(select(CacheEntry)).all()
            return {
                "totalItems": len(entries),
                "expiredCount": sum(1 for e in entries if _is_expired(e, now)),
            }

    def clear(self) -> int:
        with self._session_factory() as session:
            entries = session.exec(select(CacheEntry)).all()
            for entry in entries:
                session.delete(entry)
            session.commit()
            return len(entries)


__all__ = ["ReadCache", "cache_key"]
