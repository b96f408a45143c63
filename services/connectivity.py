"""In-process holder of the network reachability signal."""
from __future__ import annotations

from typing import Callable, List

from services.sync_log import ensure_logger


logger = ensure_logger("connectivity")

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Reachability probing lives elsewhere; whoever owns it calls ``set_online``."""

    def __init__(self, online: bool = True):
        self._online = bool(online)
        self._listeners: List[ConnectivityListener] = []

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)

    def add_listener(self, callback: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe


__all__ = ["ConnectivityListener", "ConnectivityMonitor"]
