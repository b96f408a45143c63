from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from core.settings import SYNC, SYNC_LOG_PATH


LOGGER_NAME = "familysync.sync"


def ensure_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return a logger under ``familysync.sync`` with the rotating file handler attached."""

    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        SYNC_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            SYNC_LOG_PATH,
            maxBytes=SYNC.log_max_bytes,
            backupCount=SYNC.log_backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if name == LOGGER_NAME:
        return root
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


__all__ = ["LOGGER_NAME", "ensure_logger"]
