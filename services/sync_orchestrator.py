from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from core.operations import (
    OperationStatus,
    OperationType,
    Resolution,
    normalize_priority,
    parse_operation_type,
)
from core.settings import QUEUE, SYNC
from datetime_utils import to_rfc3339_utc, utc_now
from services.backoff import next_retry_at
from services.conflicts import ConflictRegistry
from services.connectivity import ConnectivityMonitor
from services.executor import ExecutionResult, OperationExecutor
from services.operation_store import Operation, OperationStore
from services.progress import ProgressBus, ProgressCallback
from services.sync_log import ensure_logger
from storage.config import load_last_sync, save_last_sync


SKIPPED_REASON = "sync_in_progress_or_offline"

_COUNTERS = {"synced": "synced", "failed": "failed", "conflict": "conflicts"}


def _sort_key(operation: Operation):
    return (-operation.priority, operation.enqueued_at, operation.id or 0)


class SyncOrchestrator:
    """Drains the operation queue against the remote store, one pass at a time.

    A pass is started by ``enqueue`` while online, by the connectivity monitor
    on reconnect, by the periodic loop, or by calling ``run_sync_pass``
    directly. Each queued operation ends up removed (synced), back in
    ``PENDING`` with a later ``next_retry_at``, terminally ``FAILED``, or in
    ``CONFLICT`` waiting for ``resolve``.
    """

    def __init__(
        self,
        store: OperationStore,
        executor: OperationExecutor,
        connectivity: ConnectivityMonitor,
        *,
        bus: Optional[ProgressBus] = None,
        conflicts: Optional[ConflictRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
        backoff: Callable[[int, datetime], datetime] = next_retry_at,
        auto_sync: Optional[bool] = None,
        state_path: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.connectivity = connectivity
        self.bus = bus or ProgressBus()
        self.conflicts = conflicts or ConflictRegistry(store, executor.cache, clock=clock)
        self.auto_sync = SYNC.auto_sync_on_reconnect if auto_sync is None else auto_sync
        self.logger = ensure_logger()
        self._clock = clock
        self._backoff = backoff
        self._in_progress = False
        self._state_path = state_path
        self._last_sync_at: Optional[datetime] = load_last_sync(state_path) if state_path else None
        self._tasks: Set[asyncio.Task] = set()
        self._periodic_task: Optional[asyncio.Task] = None
        self._detach_connectivity = connectivity.add_listener(self._on_connectivity_change)

    # ------------------------------------------------------------------
    # Public API
    def enqueue(
        self,
        op_type: OperationType | str,
        payload: Mapping[str, Any],
        *,
        owner_id: str,
        max_retries: Optional[int] = None,
        priority: Optional[int] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[int]:
        op_type = parse_operation_type(op_type)
        if not owner_id:
            raise ValueError("owner_id is required")
        if not isinstance(payload, Mapping):
            raise ValueError(f"Payload for {op_type.value} must be a mapping")
        retries = QUEUE.default_max_retries if max_retries is None else int(max_retries)
        if retries < 1:
            raise ValueError(f"max_retries must be positive, got {max_retries}")

        now = self._clock()
        operation = Operation(
            type=op_type,
            payload=dict(payload),
            owner_id=str(owner_id),
            max_retries=retries,
            priority=normalize_priority(priority),
            enqueued_at=now,
            next_retry_at=now,
            metadata=dict(metadata or {}),
        )
        try:
            op_id = self.store.enqueue(operation)
        except Exception:
            self.logger.exception("Failed to queue %s", op_type.value)
            return None

        self.logger.debug("Queued %s as operation %s", op_type.value, op_id)
        if SYNC.sync_on_enqueue and self.connectivity.is_online():
            self._schedule_pass("enqueue")
        return op_id

    async def run_sync_pass(self) -> Dict[str, Any]:
        if self._in_progress or not self.connectivity.is_online():
            return {"success": False, "reason": SKIPPED_REASON}

        self._in_progress = True
        try:
            try:
                self.bus.publish({"status": "started"})
                counts = await self._drain()
            except Exception as exc:
                self.logger.error("Sync pass aborted: %s", exc)
                self.bus.publish({"status": "error", "error": str(exc)})
                return {"success": False, "error": str(exc)}

            self._mark_synced()
            self.logger.info(
                "Sync pass finished: %(synced)d synced, %(failed)d failed, %(conflicts)d conflicts",
                counts,
            )
            # subscribers of "completed" still observe the pass as running
            self.bus.publish({"status": "completed", **counts})
            return {"success": True, **counts}
        finally:
            self._in_progress = False

    def resolve(
        self,
        operation_id: int,
        resolution: Resolution | str,
        merged_payload: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            return self.conflicts.resolve(
                operation_id,
                resolution,
                dict(merged_payload) if merged_payload is not None else None,
            )
        except Exception as exc:
            self.logger.exception("Failed to resolve conflict %s", operation_id)
            return {"success": False, "error": str(exc)}

    def list_conflicts(self, owner_id: Optional[str] = None) -> List[Operation]:
        return self.conflicts.list(owner_id=owner_id)

    def subscribe_to_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        return self.bus.subscribe(callback)

    def status(self) -> Dict[str, Any]:
        return {
            "inProgress": self._in_progress,
            "isOnline": self.connectivity.is_online(),
            "lastSyncAt": to_rfc3339_utc(self._last_sync_at),
        }

    def clear_terminal_failures(self, owner_id: Optional[str] = None) -> Dict[str, int]:
        cleared = self.store.clear_failed(owner_id=owner_id)
        if cleared:
            self.logger.info("Cleared %d failed operations", cleared)
        return {"cleared": cleared}

    def start_periodic_sync(self, interval_sec: Optional[float] = None) -> asyncio.Task:
        self.stop_periodic_sync()
        interval = SYNC.periodic_interval_sec if interval_sec is None else interval_sec

        async def _loop():
            while True:
                if self.connectivity.is_online():
                    await self.run_sync_pass()
                await asyncio.sleep(interval)

        self._periodic_task = asyncio.get_running_loop().create_task(_loop())
        return self._periodic_task

    def stop_periodic_sync(self) -> None:
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None

    def close(self) -> None:
        self.stop_periodic_sync()
        self._detach_connectivity()

    # ------------------------------------------------------------------
    # Pass internals
    async def _drain(self) -> Dict[str, int]:
        self.store.recover_interrupted()
        now = self._clock()
        due = sorted(
            (op for op in self.store.list_pending() if self._is_eligible(op, now)),
            key=_sort_key,
        )
        counts = {"synced": 0, "failed": 0, "conflicts": 0}
        total = len(due)

        for index, operation in enumerate(due, start=1):
            operation.status = OperationStatus.IN_PROGRESS
            if not self.store.save(operation):
                continue

            try:
                result = await self.executor.execute(operation)
            except Exception as exc:
                self.logger.exception("Executor crashed on operation %s", operation.id)
                result = ExecutionResult(success=False, error=str(exc) or exc.__class__.__name__)

            try:
                outcome = self._settle(operation, result)
            except Exception as exc:
                self.logger.exception("Could not store outcome of operation %s", operation.id)
                operation.conflict_data = None
                self._register_failure(operation, f"Could not store outcome: {exc}")
                outcome = "failed"
            counts[_COUNTERS[outcome]] += 1

            self.bus.publish(
                {
                    "status": "progress",
                    "completed": index,
                    "total": total,
                    "operationId": operation.id,
                    "outcome": outcome,
                }
            )
        return counts

    def _settle(self, operation: Operation, result: ExecutionResult) -> str:
        if result.success:
            operation.status = OperationStatus.COMPLETED
            self.store.save(operation)
            self.store.remove(operation.id)
            return "synced"
        if result.conflict:
            self.conflicts.record(operation, result.server_payload)
            self.bus.publish(
                {
                    "status": "conflict",
                    "operationId": operation.id,
                    "localPayload": operation.payload,
                    "serverPayload": result.server_payload,
                }
            )
            return "conflict"
        self._register_failure(operation, result.error)
        return "failed"

    def _mark_synced(self) -> None:
        self._last_sync_at = self._clock()
        if self._state_path is None:
            return
        try:
            save_last_sync(self._last_sync_at, self._state_path)
        except OSError:
            self.logger.exception("Failed to persist last sync time to %s", self._state_path)

    @staticmethod
    def _is_eligible(operation: Operation, now: datetime) -> bool:
        # FAILED is selectable only while retries remain; CONFLICT never is
        selectable = operation.status is OperationStatus.PENDING or (
            operation.status is OperationStatus.FAILED and operation.has_retries_left
        )
        if not selectable:
            return False
        return operation.next_retry_at is None or operation.next_retry_at <= now

    def _register_failure(self, operation: Operation, error: Optional[str]) -> None:
        operation.retry_count += 1
        operation.last_error = error or "Unknown error"
        if operation.retry_count >= operation.max_retries:
            operation.status = OperationStatus.FAILED
            self.logger.warning(
                "Operation %s (%s) failed permanently after %d attempts: %s",
                operation.id,
                operation.type.value,
                operation.retry_count,
                operation.last_error,
            )
        else:
            operation.status = OperationStatus.PENDING
            operation.next_retry_at = self._backoff(operation.retry_count, self._clock())
            self.logger.info(
                "Operation %s (%s) failed, retry %d/%d at %s: %s",
                operation.id,
                operation.type.value,
                operation.retry_count,
                operation.max_retries,
                to_rfc3339_utc(operation.next_retry_at),
                operation.last_error,
            )
        self.store.save(operation)

    # ------------------------------------------------------------------
    # Triggers
    def _on_connectivity_change(self, online: bool) -> None:
        if online and self.auto_sync:
            self._schedule_pass("reconnect")

    def _schedule_pass(self, reason: str) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop; %s sync deferred", reason)
            return None
        task = loop.create_task(self.run_sync_pass())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


__all__ = ["SKIPPED_REASON", "SyncOrchestrator"]
