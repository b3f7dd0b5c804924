from __future__ import annotations

import logging

from sqlalchemy import inspect, text

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "semesters": {"id", "name", "is_active"},
    "unit_assignments": {"id", "unit_id", "semester_id", "class_id", "lecturer_code", "is_active"},
    "enrollments": {"id", "student_code", "class_id", "unit_id", "semester_id", "status"},
    "venues": {"id", "code", "capacity", "type", "is_active"},
    "scheduled_sessions": {"id", "batch_id", "semester_id", "kind", "venue_id", "is_locked", "session_number", "teaching_mode"},
    "scheduling_batches": {"id", "semester_id", "kind", "status", "retried_from_batch_id", "options"},
    "scheduling_failures": {"id", "batch_id", "semester_id", "kind", "failure_kind", "status", "retry_of_id"},
}


def _ensure_failure_kind_column() -> None:
    # Failure tables created before exam and class failures were unified lack `kind`.
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "scheduling_failures" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("scheduling_failures")}
        if "kind" in column_names:
            return
        column_type = "timetable_kind" if connection.dialect.name == "postgresql" else "VARCHAR(15)"
        connection.execute(
            text(
                "ALTER TABLE scheduling_failures "
                f"ADD COLUMN kind {column_type} NOT NULL DEFAULT 'exam_timetable'"
            )
        )


def _ensure_failure_retry_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "scheduling_failures" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("scheduling_failures")}
        if "retry_of_id" not in column_names:
            connection.execute(text("ALTER TABLE scheduling_failures ADD COLUMN retry_of_id VARCHAR(36)"))
        if "attempted_venue_code" not in column_names:
            connection.execute(text("ALTER TABLE scheduling_failures ADD COLUMN attempted_venue_code VARCHAR(50)"))


def _ensure_batch_retry_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "scheduling_batches" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("scheduling_batches")}
        if "retried_from_batch_id" not in column_names:
            connection.execute(text("ALTER TABLE scheduling_batches ADD COLUMN retried_from_batch_id VARCHAR(36)"))
        if "options" in column_names:
            return
        if connection.dialect.name == "postgresql":
            connection.execute(
                text("ALTER TABLE scheduling_batches ADD COLUMN options JSONB NOT NULL DEFAULT '{}'::jsonb")
            )
            return
        connection.execute(text("ALTER TABLE scheduling_batches ADD COLUMN options JSON NOT NULL DEFAULT '{}'"))


def _ensure_session_lock_column() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "scheduled_sessions" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("scheduled_sessions")}
        if "is_locked" in column_names:
            return
        connection.execute(text("ALTER TABLE scheduled_sessions ADD COLUMN is_locked BOOLEAN NOT NULL DEFAULT FALSE"))


def _ensure_session_mode_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        if "scheduled_sessions" in table_names:
            column_names = {item["name"] for item in inspector.get_columns("scheduled_sessions")}
            if "session_number" not in column_names:
                connection.execute(
                    text("ALTER TABLE scheduled_sessions ADD COLUMN session_number INTEGER NOT NULL DEFAULT 1")
                )
            if "teaching_mode" not in column_names:
                connection.execute(
                    text("ALTER TABLE scheduled_sessions ADD COLUMN teaching_mode VARCHAR(20) NOT NULL DEFAULT 'physical'")
                )
            if connection.dialect.name == "postgresql":
                connection.execute(text("ALTER TABLE scheduled_sessions ALTER COLUMN venue_id DROP NOT NULL"))
        if "scheduling_failures" in table_names:
            column_names = {item["name"] for item in inspector.get_columns("scheduling_failures")}
            if "session_number" not in column_names:
                connection.execute(
                    text("ALTER TABLE scheduling_failures ADD COLUMN session_number INTEGER NOT NULL DEFAULT 1")
                )


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_failure_kind_column()
        _ensure_failure_retry_columns()
        _ensure_batch_retry_columns()
        _ensure_session_lock_column()
        _ensure_session_mode_columns()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
