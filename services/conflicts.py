"""Holding area and explicit resolution for operations in CONFLICT."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.operations import RECORD_ID_FIELDS, OperationStatus, Resolution, target_of
from datetime_utils import utc_now
from services.operation_store import ConflictData, Operation, OperationStore
from services.read_cache import ReadCache, cache_key
from services.sync_log import ensure_logger


logger = ensure_logger("conflicts")


class ConflictRegistry:
    def __init__(
        self,
        store: OperationStore,
        cache: Optional[ReadCache] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.cache = cache
        self._clock = clock

    def record(self, operation: Operation, server_payload: Any) -> Operation:
        operation.status = OperationStatus.CONFLICT
        operation.conflict_data = ConflictData(
            local_payload=dict(operation.payload),
            server_payload=server_payload,
            detected_at=self._clock(),
        )
        self.store.save(operation)
        logger.info("Operation %s (%s) is in conflict", operation.id, operation.type.value)
        return operation

    def list(self, owner_id: Optional[str] = None) -> List[Operation]:
        return self.store.list_by_status(OperationStatus.CONFLICT, owner_id=owner_id)

    def get(self, operation_id: int) -> Optional[Operation]:
        operation = self.store.get(operation_id)
        if operation is None or operation.status is not OperationStatus.CONFLICT:
            return None
        return operation

    def resolve(
        self,
        operation_id: int,
        resolution: Resolution | str,
        merged_payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            choice = Resolution(resolution)
        except ValueError:
            return {"success": False, "error": "Invalid resolution type"}

        operation = self.get(operation_id)
        if operation is None:
            return {"success": False, "error": "Operation not found or not in conflict state"}

        if choice is Resolution.MERGE and merged_payload is None:
            return {"success": False, "error": "Merged data required for merge resolution"}

        if choice is Resolution.USE_SERVER:
            self._apply_server_payload(operation)
            self.store.remove(operation.id)
            logger.info("Conflict %s resolved with server data", operation.id)
            return {"success": True}

        if choice is Resolution.MERGE:
            operation.payload = dict(merged_payload)
        operation.status = OperationStatus.PENDING
        operation.retry_count = 0
        operation.conflict_data = None
        operation.last_error = None
        operation.next_retry_at = self._clock()
        self.store.save(operation)
        logger.info("Conflict %s resolved with %s; requeued", operation.id, choice.value)
        return {"success": True}

    def _apply_server_payload(self, operation: Operation) -> None:
        if self.cache is None or operation.conflict_data is None:
            return
        server = operation.conflict_data.server_payload
        kind, _ = target_of(operation.type)
        id_field = RECORD_ID_FIELDS[kind]
        record_id = None
        if isinstance(server, dict):
            record_id = server.get("id") or server.get(id_field)
        record_id = record_id or operation.payload.get(id_field)
        if record_id in (None, ""):
            logger.warning("Server payload for operation %s has no id; cache not updated", operation.id)
            return
        try:
            self.cache.write(cache_key(kind, record_id), server)
        except Exception:
            logger.exception("Failed to cache server payload for operation %s", operation.id)


__all__ = ["ConflictRegistry"]
