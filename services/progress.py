from __future__ import annotations

from typing import Any, Callable, Dict, List

from services.sync_log import ensure_logger


logger = ensure_logger("progress")

ProgressEvent = Dict[str, Any]
ProgressCallback = Callable[[ProgressEvent], None]


class ProgressBus:
    """Fan-out of sync lifecycle events (``started``, ``progress``, ``completed``, ``error``, ``conflict``)."""

    def __init__(self) -> None:
        self._subscribers: List[ProgressCallback] = []

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(dict(event))
            except Exception:
                logger.exception("Progress subscriber failed on %s event", event.get("status"))

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["ProgressBus", "ProgressCallback", "ProgressEvent"]
