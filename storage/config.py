"""JSON-backed user preferences and sync state for the sync engine."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import PREFERENCES_PATH, SYNC, SYNC_STATE_PATH
from datetime_utils import parse_rfc3339, to_rfc3339_utc


@dataclass
class SyncPreferences:
    """User-changeable knobs persisted to ``preferences.json``."""

    auto_sync_enabled: bool = SYNC.auto_sync_on_reconnect
    periodic_sync_interval_sec: int = SYNC.periodic_interval_sec


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _write_raw(path: Path, data: Dict[str, Any]) -> None:
    _ensure_parent(path)
    payload = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
    tmp = path.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(path)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def load_preferences(path: Optional[Path] = None) -> SyncPreferences:
    target = path or PREFERENCES_PATH
    data = _load_raw(target)
    defaults = SyncPreferences()
    interval = data.get("periodic_sync_interval_sec", defaults.periodic_sync_interval_sec)
    try:
        interval = int(interval)
    except (TypeError, ValueError):
        interval = defaults.periodic_sync_interval_sec
    return SyncPreferences(
        auto_sync_enabled=bool(data.get("auto_sync_enabled", defaults.auto_sync_enabled)),
        periodic_sync_interval_sec=max(1, interval),
    )


def save_preferences(prefs: SyncPreferences, path: Optional[Path] = None) -> None:
    _write_raw(path or PREFERENCES_PATH, asdict(prefs))


def update_preferences(path: Optional[Path] = None, **changes: Any) -> SyncPreferences:
    target = path or PREFERENCES_PATH
    prefs = load_preferences(target)
    for key, value in changes.items():
        if hasattr(prefs, key):
            setattr(prefs, key, value)
    save_preferences(prefs, target)
    return prefs


def load_last_sync(path: Optional[Path] = None) -> Optional[datetime]:
    """Timestamp of the last completed sync pass, or None if none was recorded."""
    raw = _load_raw(path or SYNC_STATE_PATH).get("last_sync_at")
    return parse_rfc3339(raw) if isinstance(raw, str) else None


def save_last_sync(value: datetime, path: Optional[Path] = None) -> None:
    target = path or SYNC_STATE_PATH
    data = _load_raw(target)
    data["last_sync_at"] = to_rfc3339_utc(value)
    _write_raw(target, data)


__all__ = [
    "SyncPreferences",
    "load_last_sync",
    "load_preferences",
    "save_last_sync",
    "save_preferences",
    "update_preferences",
]
