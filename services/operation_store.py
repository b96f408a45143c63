"""Durable persistence for queued operations."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session, select
from sqlalchemy import func

from core.operations import OperationStatus, OperationType
from core.settings import QUEUE
from datetime_utils import ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now
from models.queued_op import QueuedOp
from services.sync_log import ensure_logger
from storage.db import get_session


logger = ensure_logger("store")


@dataclass
class ConflictData:
    local_payload: Dict[str, Any]
    server_payload: Any
    detected_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "localPayload": self.local_payload,
            "serverPayload": self.server_payload,
            "detectedAt": to_rfc3339_utc(self.detected_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConflictData":
        return cls(
            local_payload=data.get("localPayload") or {},
            server_payload=data.get("serverPayload"),
            detected_at=parse_rfc3339(data.get("detectedAt")) or utc_now(),
        )


@dataclass
class Operation:
    type: OperationType
    payload: Dict[str, Any]
    owner_id: str
    id: Optional[int] = None
    status: OperationStatus = OperationStatus.PENDING
    retry_count: int = 0
    max_retries: int = QUEUE.default_max_retries
    priority: int = QUEUE.default_priority
    enqueued_at: datetime = field(default_factory=utc_now)
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None
    conflict_data: Optional[ConflictData] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_retries_left(self) -> bool:
        return self.retry_count < self.max_retries


def _dumps(value: Any) -> str:
    # Adapter payloads may carry datetimes or Decimals
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _loads_dict(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _to_operation(row: QueuedOp) -> Operation:
    conflict = _loads_dict(row.conflict_json)
    return Operation(
        id=row.id,
        type=OperationType(row.op_type),
        payload=_loads_dict(row.payload),
        owner_id=row.owner_id,
        status=OperationStatus(row.status),
        retry_count=row.retry_count,
        max_retries=row.max_retries,
        priority=row.priority,
        enqueued_at=ensure_utc(row.enqueued_at),
        next_retry_at=ensure_utc(row.next_retry_at),
        last_error=row.last_error,
        conflict_data=ConflictData.from_dict(conflict) if conflict else None,
        metadata=_loads_dict(row.metadata_json),
    )


def _apply(row: QueuedOp, operation: Operation) -> QueuedOp:
    row.op_type = OperationType(operation.type).value
    row.owner_id = operation.owner_id
    row.payload = _dumps(operation.payload or {})
    row.status = OperationStatus(operation.status).value
    row.retry_count = operation.retry_count
    row.max_retries = operation.max_retries
    row.priority = operation.priority
    row.enqueued_at = ensure_utc(operation.enqueued_at)
    row.next_retry_at = ensure_utc(operation.next_retry_at or operation.enqueued_at)
    row.last_error = operation.last_error[: QUEUE.last_error_max_length] if operation.last_error else None
    row.conflict_json = _dumps(operation.conflict_data.to_dict()) if operation.conflict_data else None
    row.metadata_json = _dumps(operation.metadata) if operation.metadata else None
    return row


class OperationStore:
    """Keyed persistence of queue records; every write commits before returning."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def enqueue(self, operation: Operation) -> int:
        if operation.id is not None:
            raise ValueError("Operation already has an id; use save() instead")
        row = _apply(QueuedOp(op_type="", owner_id="", payload=""), operation)
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            operation.id = row.id
        operation.next_retry_at = operation.next_retry_at or operation.enqueued_at
        return operation.id

    def get(self, op_id: int) -> Optional[Operation]:
        with self._session_factory() as session:
            row = session.get(QueuedOp, op_id)
            return _to_operation(row) if row else None

    def list_pending(self, owner_id: Optional[str] = None) -> List[Operation]:
        """All records that are not COMPLETED, oldest id first."""
        with self._session_factory() as session:
            stmt = select(QueuedOp).where(QueuedOp.status != OperationStatus.COMPLETED.value)
            if owner_id is not None:
                stmt = stmt.where(QueuedOp.owner_id == owner_id)
            rows = session.exec(stmt.order_by(QueuedOp.id.asc())).all()
            return [_to_operation(row) for row in rows]

    def list_by_status(
        self, status: OperationStatus, owner_id: Optional[str] = None
    ) -> List[Operation]:
        with self._session_factory() as session:
            stmt = select(QueuedOp).where(QueuedOp.status == OperationStatus(status).value)
            if owner_id is not None:
                stmt = stmt.where(QueuedOp.owner_id == owner_id)
            rows = session.exec(stmt.order_by(QueuedOp.id.asc())).all()
            return [_to_operation(row) for row in rows]

    def save(self, operation: Operation) -> bool:
        """Overwrite the stored record. Returns False if it was already removed."""
        if operation.id is None:
            raise ValueError("Cannot save an operation that was never enqueued")
        with self._session_factory() as session:
            row = session.get(QueuedOp, operation.id)
            if row is None:
                logger.warning("Skipping save of removed operation %s", operation.id)
                return False
            session.add(_apply(row, operation))
            session.commit()
            return True

    def remove(self, op_id: int) -> None:
        with self._session_factory() as session:
            row = session.get(QueuedOp, op_id)
            if row:
                session.delete(row)
                session.commit()

    def clear_failed(self, owner_id: Optional[str] = None) -> int:
        """Delete FAILED records that have no retries left."""
        removed = 0
        with self._session_factory() as session:
            stmt = select(QueuedOp).where(QueuedOp.status == OperationStatus.FAILED.value)
            if owner_id is not None:
                stmt = stmt.where(QueuedOp.owner_id == owner_id)
            for row in session.exec(stmt).all():
                if row.retry_count >= row.max_retries:
                    session.delete(row)
                    removed += 1
            if removed:
                session.commit()
        return removed

    def count(self, status: Optional[OperationStatus] = None) -> int:
        with self._session_factory() as session:
            stmt = select(func.count()).select_from(QueuedOp)
            if status is not None:
                stmt = stmt.where(QueuedOp.status == OperationStatus(status).value)
            return int(session.exec(stmt).one())

    def recover_interrupted(self) -> int:
        """Return records stranded IN_PROGRESS by a killed process to PENDING."""
        with self._session_factory() as session:
            stmt = select(QueuedOp).where(QueuedOp.status == OperationStatus.IN_PROGRESS.value)
            rows = session.exec(stmt).all()
            for row in rows:
                row.status = OperationStatus.PENDING.value
                session.add(row)
            if rows:
                session.commit()
                logger.info("Recovered %d interrupted operations", len(rows))
            return len(rows)


__all__ = ["ConflictData", "Operation", "OperationStore"]
