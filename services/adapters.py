"""Registry binding record kinds to remote-store adapters."""
from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, Optional, Protocol

from core.operations import RecordKind


class RemoteAdapter(Protocol):
    """CRUD surface of one remote record family.

    Methods may be plain or ``async``. They return a mapping shaped like
    ``{"success": bool, "item" | "data": ..., "error": ..., "conflict": bool,
    "serverData": ...}`` or raise on transport errors.
    """

    def create(self, payload: Dict[str, Any]) -> Any: ...

    def update(self, record_id: Any, updates: Dict[str, Any]) -> Any: ...

    def delete(self, record_id: Any) -> Any: ...


class AdapterRegistry:
    def __init__(self, adapters: Optional[Mapping[RecordKind, RemoteAdapter]] = None):
        self._adapters: Dict[RecordKind, RemoteAdapter] = {}
        for kind, adapter in (adapters or {}).items():
            self.register(kind, adapter)

    def register(self, kind: RecordKind | str, adapter: RemoteAdapter) -> None:
        kind = RecordKind(kind)
        for method in ("create", "update", "delete"):
            if not callable(getattr(adapter, method, None)):
                raise TypeError(f"Adapter for {kind.value} lacks a callable {method}()")
        self._adapters[kind] = adapter

    def get(self, kind: RecordKind) -> Optional[RemoteAdapter]:
        return self._adapters.get(RecordKind(kind))

    def __contains__(self, kind: object) -> bool:
        try:
            return RecordKind(kind) in self._adapters
        except ValueError:
            return False

    def __iter__(self) -> Iterator[RecordKind]:
        return iter(self._adapters)


__all__ = ["AdapterRegistry", "RemoteAdapter"]
