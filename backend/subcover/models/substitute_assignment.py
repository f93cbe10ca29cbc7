import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from subcover.db.base import Base


class AssignmentStatus(str, Enum):
    pending = "pending"
    assigned = "assigned"
    auto_assigned = "auto-assigned"
    unassigned = "unassigned"


class AssignmentType(str, Enum):
    manual = "manual"
    auto = "auto"
    manual_override = "manual_override"


class SubstituteAssignment(Base):
    __tablename__ = "substitute_assignments"
    __table_args__ = (
        Index(
            "uq_substitute_assignments_pending_lecture",
            "lecture_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lecture_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    leave_request_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    original_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False)
    substitute_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        SAEnum(
            AssignmentStatus,
            name="assignment_status",
            values_callable=lambda items: [item.value for item in items],
        ),
        nullable=False,
        default=AssignmentStatus.pending,
        index=True,
    )
    assignment_type: Mapped[AssignmentType] = mapped_column(
        SAEnum(AssignmentType, name="assignment_type"),
        nullable=False,
        default=AssignmentType.auto,
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    response_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
