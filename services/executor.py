"""Replays a single queued operation against its remote-store adapter."""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from googleapiclient.errors import HttpError

from core.operations import RECORD_ID_FIELDS, Action, RecordKind, target_of
from services.adapters import AdapterRegistry
from services.operation_store import Operation
from services.read_cache import ReadCache, cache_key
from services.sync_log import ensure_logger


logger = ensure_logger("executor")


@dataclass
class ExecutionResult:
    success: bool
    conflict: bool = False
    data: Any = None
    error: Optional[str] = None
    server_payload: Any = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.conflict:
            result["conflict"] = True
            result["serverPayload"] = self.server_payload
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        return result


def _failure(error: str) -> ExecutionResult:
    return ExecutionResult(success=False, error=error)


def _http_status(exc: HttpError) -> int:
    status = getattr(exc, "status_code", None) or (
        getattr(exc, "resp", None) and getattr(exc.resp, "status", None)
    )
    try:
        return int(status or 0)
    except (TypeError, ValueError):
        return 0


def _describe(error: Any) -> str:
    if error is None:
        return "Remote store reported failure"
    if isinstance(error, Mapping):
        return str(error.get("message") or error.get("code") or error)
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    return str(error)


def _record_id(kind: RecordKind, item: Any, fallback: Any = None) -> Any:
    if isinstance(item, Mapping):
        for field in ("id", RECORD_ID_FIELDS[kind]):
            if item.get(field) not in (None, ""):
                return item[field]
    return fallback


async def _call(fn, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class OperationExecutor:
    def __init__(self, registry: AdapterRegistry, cache: Optional[ReadCache] = None):
        self.registry = registry
        self.cache = cache

    async def execute(self, operation: Operation) -> ExecutionResult:
        try:
            kind, action = target_of(operation.type)
        except ValueError as exc:
            return _failure(str(exc))

        adapter = self.registry.get(kind)
        if adapter is None:
            return _failure(f"No adapter registered for {kind.value}")

        payload = dict(operation.payload or {})
        record_id = payload.get(RECORD_ID_FIELDS[kind])
        if action is not Action.CREATE and record_id in (None, ""):
            return _failure(f"{operation.type.value} payload is missing {RECORD_ID_FIELDS[kind]}")

        try:
            if action is Action.CREATE:
                raw = await _call(adapter.create, payload)
            elif action is Action.UPDATE:
                raw = await _call(adapter.update, record_id, dict(payload.get("updates") or {}))
            else:
                raw = await _call(adapter.delete, record_id)
        except HttpError as exc:
            status = _http_status(exc)
            if action is Action.DELETE and status == 404:
                logger.info("%s %s already gone remotely", kind.value, record_id)
                self._forget(kind, record_id)
                return ExecutionResult(success=True)
            logger.warning("Operation %s failed with HTTP %s", operation.id, status)
            return _failure(f"HTTP {status}: {exc}")
        except Exception as exc:
            logger.warning("Operation %s raised %s", operation.id, exc.__class__.__name__)
            return _failure(_describe(exc))

        if not isinstance(raw, Mapping):
            return _failure(f"Malformed adapter response: {raw!r}")

        if raw.get("success"):
            item = raw.get("item")
            if item is None:
                item = raw.get("data")
            if action is Action.DELETE:
                self._forget(kind, record_id)
            else:
                self._remember(kind, _record_id(kind, item, record_id), item)
            return ExecutionResult(success=True, data=item)

        if raw.get("conflict"):
            server = raw.get("serverData")
            if server is None:
                server = raw.get("serverPayload")
            if server is None:
                logger.error(
                    "Adapter for %s reported a conflict without server data (operation %s)",
                    kind.value,
                    operation.id,
                )
                return _failure("Conflict reported without server data")
            return ExecutionResult(success=False, conflict=True, server_payload=server)

        return _failure(_describe(raw.get("error")))

    # ------------------------------------------------------------------
    # Write-through cache; never allowed to change the sync outcome
    def _remember(self, kind: RecordKind, record_id: Any, item: Any) -> None:
        if self.cache is None or item is None:
            return
        if record_id in (None, ""):
            logger.warning("Synced %s record has no id; cache not updated", kind.value)
            return
        try:
            self.cache.write(cache_key(kind, record_id), item)
        except Exception:
            logger.exception("Failed to update local cache for %s %s", kind.value, record_id)

    def _forget(self, kind: RecordKind, record_id: Any) -> None:
        if self.cache is None:
            return
        try:
            self.cache.remove(cache_key(kind, record_id))
        except Exception:
            logger.exception("Failed to remove %s %s from local cache", kind.value, record_id)


__all__ = ["ExecutionResult", "OperationExecutor"]
