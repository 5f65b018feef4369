"""Ad-hoc database migrations for the desktop store."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_task_columns(conn) -> None:
    # Columns added after the first release of the task table.
    columns = {
        "due_time": "VARCHAR",
        "status": "VARCHAR NOT NULL DEFAULT 'active'",
        "context": "VARCHAR",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "task", name):
            conn.execute(text(f"ALTER TABLE task ADD COLUMN {name} {ddl_type}"))


def ensure_completion_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_completion_task_completed
            ON completion (task_id, completed_at)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_task_columns(conn)
        ensure_completion_indexes(conn)


__all__ = ["run_all"]
