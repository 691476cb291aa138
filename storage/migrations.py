"""Ad-hoc database migrations for the local task database."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_task_columns(conn) -> None:
    # Columns added after the first release of the cache table.
    columns = {
        "pending_server": "BOOLEAN NOT NULL DEFAULT 0",
        "estimated_minutes": "INTEGER NOT NULL DEFAULT 0",
        "actual_minutes": "INTEGER NOT NULL DEFAULT 0",
        "is_tracking": "BOOLEAN NOT NULL DEFAULT 0",
        "tracking_started_at": "DATETIME",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "task", name):
            conn.execute(text(f"ALTER TABLE task ADD COLUMN {name} {ddl_type}"))

    # Rows written before the flag existed: an owner_ref equal to the id
    # means the server never assigned its own id.
    conn.execute(
        text(
            """
            UPDATE task
            SET pending_server = 1
            WHERE owner_ref IS NOT NULL AND owner_ref = id AND pending_server = 0
            """
        )
    )


def ensure_outbox_index(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_pendingop_enqueued_at
            ON pendingop (enqueued_at)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_task_columns(conn)
        # SQLModel creates the pendingop table, but ensure indexes exist in legacy DBs
        ensure_outbox_index(conn)


__all__ = ["run_all"]
