"""Ad-hoc database migrations for TaskSync."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_task_columns(conn) -> None:
    columns = {
        "last_error": "TEXT",
        "error_kind": "TEXT",
        "position": "INTEGER NOT NULL DEFAULT 0",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "task", name):
            conn.execute(text(f"ALTER TABLE task ADD COLUMN {name} {ddl_type}"))


def ensure_error_kind(conn) -> None:
    # Databases written before error_kind existed treat every error as transport.
    conn.execute(
        text(
            """
            UPDATE task
            SET error_kind = 'transport'
            WHERE sync_status = 'error' AND error_kind IS NULL
            """
        )
    )


def ensure_positions(conn) -> None:
    conn.execute(
        text(
            """
            UPDATE task
            SET position = (
                SELECT COUNT(*) FROM task AS earlier
                WHERE earlier.created_at < task.created_at
                   OR (earlier.created_at = task.created_at AND earlier.id < task.id)
            )
            WHERE NOT EXISTS (SELECT 1 FROM task WHERE position <> 0)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_task_columns(conn)
        ensure_error_kind(conn)
        ensure_positions(conn)


__all__ = ["run_all"]
