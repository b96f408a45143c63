"""Ad-hoc database migrations for the operation queue."""

from __future__ import annotations

from sqlalchemy import text


def ensure_queuedop_indexes(conn) -> None:
    # Composite index used by pass selection; create_all only builds per-column ones.
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_queuedop_selection
            ON queuedop (status, priority, enqueued_at)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_queuedop_indexes(conn)


__all__ = ["run_all"]
