from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from subcover.core.config import get_settings
from subcover.db.base import Base
from subcover.db.session import engine
from subcover.models.substitute_assignment import SubstituteAssignment

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "teachers": {"id", "email", "department", "role", "is_active", "substitute_count"},
    "lectures": {
        "id",
        "scheduled_teacher_id",
        "substitute_teacher_id",
        "date",
        "start_time",
        "end_time",
        "room",
        "status",
    },
    "leave_requests": {"id", "teacher_id", "status", "submitted_at", "hod_decision_at", "affected_lectures"},
    "substitute_assignments": {"id", "lecture_id", "status", "assignment_type", "response_deadline"},
    "notifications": {"id", "teacher_id", "kind", "is_read"},
    "activity_logs": {"id", "action", "details"},
}

PENDING_INDEX_NAME = "uq_substitute_assignments_pending_lecture"


def _ensure_pending_assignment_index(bind: Engine) -> None:
    with bind.begin() as connection:
        inspector = inspect(connection)
        if "substitute_assignments" not in set(inspector.get_table_names()):
            return
        index_names = {item["name"] for item in inspector.get_indexes("substitute_assignments")}
        if PENDING_INDEX_NAME in index_names:
            return
        for index in SubstituteAssignment.__table__.indexes:
            if index.name == PENDING_INDEX_NAME:
                index.create(bind=connection, checkfirst=True)
                logger.info("Created missing index %s", PENDING_INDEX_NAME)


def _assert_required_columns(bind: Engine) -> None:
    with bind.begin() as connection:
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


def ensure_runtime_schema(bind: Engine | None = None, *, create_tables: bool | None = None) -> None:
    bind = bind or engine
    if create_tables is None:
        create_tables = get_settings().auto_create_schema
    try:
        if create_tables:
            Base.metadata.create_all(bind=bind)
        _ensure_pending_assignment_index(bind)
        _assert_required_columns(bind)
    except Exception as exc:
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc
