"""Inspect and maintain the local offline operation queue."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.operations import OperationStatus, RecordKind
from core.settings import CLI_LOG_PATH, PREFERENCES_PATH, SYNC_STATE_PATH
from datetime_utils import to_rfc3339_utc
from services.adapters import AdapterRegistry, RemoteAdapter
from services.connectivity import ConnectivityMonitor
from services.executor import OperationExecutor
from services.operation_store import Operation, OperationStore
from services.read_cache import ReadCache
from services.sync_orchestrator import SyncOrchestrator
from storage.config import load_last_sync, load_preferences, update_preferences
from storage.db import init_db


def build_orchestrator(
    adapters: Mapping[RecordKind, RemoteAdapter],
    *,
    connectivity: Optional[ConnectivityMonitor] = None,
    preferences_path: Optional[Path] = None,
    state_path: Optional[Path] = None,
) -> SyncOrchestrator:
    """Wire the queue, cache, executor and orchestrator against the local database."""

    init_db()
    prefs = load_preferences(preferences_path)
    cache = ReadCache()
    store = OperationStore()
    executor = OperationExecutor(AdapterRegistry(adapters), cache)
    return SyncOrchestrator(
        store,
        executor,
        connectivity or ConnectivityMonitor(),
        auto_sync=prefs.auto_sync_enabled,
        state_path=state_path or SYNC_STATE_PATH,
    )


def _describe(op: Operation) -> dict:
    entry = {
        "id": op.id,
        "type": op.type.value,
        "ownerId": op.owner_id,
        "status": op.status.value,
        "priority": op.priority,
        "retryCount": op.retry_count,
        "maxRetries": op.max_retries,
        "enqueuedAt": to_rfc3339_utc(op.enqueued_at),
        "nextRetryAt": to_rfc3339_utc(op.next_retry_at),
        "lastError": op.last_error,
    }
    if op.conflict_data is not None:
        entry["conflict"] = op.conflict_data.to_dict()
    return entry


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _cmd_status(args, store: OperationStore, cache: ReadCache) -> int:
    counts = {status.value: store.count(status) for status in OperationStatus}
    prefs = load_preferences(args.preferences)
    _print_json(
        {
            "queue": counts,
            "cache": cache.stats(),
            "autoSyncEnabled": prefs.auto_sync_enabled,
            "periodicSyncIntervalSec": prefs.periodic_sync_interval_sec,
            "lastSyncAt": to_rfc3339_utc(load_last_sync(args.state)),
        }
    )
    return 0


def _cmd_list(args, store: OperationStore, cache: ReadCache) -> int:
    if args.status:
        ops = store.list_by_status(OperationStatus(args.status), owner_id=args.owner)
    else:
        ops = store.list_pending(owner_id=args.owner)
    _print_json([_describe(op) for op in ops])
    return 0


def _cmd_conflicts(args, store: OperationStore, cache: ReadCache) -> int:
    ops = store.list_by_status(OperationStatus.CONFLICT, owner_id=args.owner)
    _print_json([_describe(op) for op in ops])
    return 0


def _cmd_clear_failed(args, store: OperationStore, cache: ReadCache) -> int:
    cleared = store.clear_failed(owner_id=args.owner)
    logging.info("Cleared %d failed operations", cleared)
    print(f"Cleared {cleared} failed operations.")
    return 0


def _cmd_clean_cache(args, store: OperationStore, cache: ReadCache) -> int:
    removed = cache.clear() if args.all else cache.clean_expired()
    logging.info("Removed %d cache entries", removed)
    print(f"Removed {removed} cache entries.")
    return 0


def _cmd_auto_sync(args, store: OperationStore, cache: ReadCache) -> int:
    prefs = update_preferences(args.preferences, auto_sync_enabled=args.state == "on")
    print(f"Auto sync on reconnect: {'on' if prefs.auto_sync_enabled else 'off'}")
    return 0


def _setup_logging(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_path),
        filemode="a",
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument(
        "--log",
        type=Path,
        default=CLI_LOG_PATH,
        help="Path to a log file (default: %(default)s)",
    )
    parser.add_argument(
        "--preferences",
        type=Path,
        default=PREFERENCES_PATH,
        help="Path to the preferences file (default: %(default)s)",
    )
    parser.add_argument(
        "--state",
        type=Path,
        default=SYNC_STATE_PATH,
        help="Path to the sync state file (default: %(default)s)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Queue counts per status and cache statistics").set_defaults(
        handler=_cmd_status
    )

    list_cmd = sub.add_parser("list", help="List queued operations")
    list_cmd.add_argument("--status", choices=[s.value for s in OperationStatus])
    list_cmd.add_argument("--owner")
    list_cmd.set_defaults(handler=_cmd_list)

    conflicts_cmd = sub.add_parser("conflicts", help="List operations waiting for resolution")
    conflicts_cmd.add_argument("--owner")
    conflicts_cmd.set_defaults(handler=_cmd_conflicts)

    clear_cmd = sub.add_parser("clear-failed", help="Remove operations that exhausted their retries")
    clear_cmd.add_argument("--owner")
    clear_cmd.set_defaults(handler=_cmd_clear_failed)

    cache_cmd = sub.add_parser("clean-cache", help="Drop expired read-cache entries")
    cache_cmd.add_argument("--all", action="store_true", help="Drop every entry, expired or not")
    cache_cmd.set_defaults(handler=_cmd_clean_cache)

    auto_cmd = sub.add_parser("auto-sync", help="Toggle syncing on reconnect")
    auto_cmd.add_argument("state", choices=["on", "off"])
    auto_cmd.set_defaults(handler=_cmd_auto_sync)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.log)
    try:
        init_db()
        return args.handler(args, OperationStore(), ReadCache())
    except Exception as exc:  # pragma: no cover
        logging.exception("Command %s failed: %s", args.command, exc)
        raise


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
