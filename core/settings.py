"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    override = environ.get("FAMILYSYNC_DATA_DIR")
    if override:
        return Path(override).expanduser()

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "FamilySync"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

DB_PATH = DATA_DIR / "queue.db"
PREFERENCES_PATH = DATA_DIR / "preferences.json"
SYNC_STATE_PATH = DATA_DIR / "sync_state.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"
CLI_LOG_PATH = LOG_DIR / "cli.log"


@dataclass(frozen=True)
class QueueSettings:
    default_max_retries: int = 3
    default_priority: int = 1
    last_error_max_length: int = 1000


QUEUE = QueueSettings()


@dataclass(frozen=True)
class BackoffSettings:
    # delay = unit_sec * base ** retry_count
    base: float = 2.0
    unit_sec: float = 1.0
    max_delay_sec: Optional[float] = None


BACKOFF = BackoffSettings()


@dataclass(frozen=True)
class CacheSettings:
    default_ttl_sec: int = 24 * 60 * 60
    key_separator: str = ":"


CACHE = CacheSettings()


@dataclass(frozen=True)
class SyncSettings:
    auto_sync_on_reconnect: bool = True
    sync_on_enqueue: bool = True
    periodic_interval_sec: int = 5 * 60
    log_max_bytes: int = 1_000_000
    log_backup_count: int = 3


SYNC = SyncSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "PREFERENCES_PATH",
    "SYNC_STATE_PATH",
    "SYNC_LOG_PATH",
    "CLI_LOG_PATH",
    "QUEUE",
    "BACKOFF",
    "CACHE",
    "SYNC",
    "get_default_data_dir",
]
