import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from subcover.db.base import Base


class LeaveType(str, Enum):
    casual = "casual"
    medical = "medical"
    earned = "earned"
    duty = "duty"
    unpaid = "unpaid"
    custom = "custom"


class LeaveStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    auto_approved = "auto-approved"
    rejected = "rejected"


ACCEPTED_LEAVE_STATUSES = (LeaveStatus.approved, LeaveStatus.auto_approved)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(200), nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(
        SAEnum(LeaveType, name="leave_type"),
        nullable=False,
        default=LeaveType.casual,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        SAEnum(LeaveStatus, name="leave_status", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=LeaveStatus.pending,
        index=True,
    )
    affected_lectures: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    hod_decision_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    review_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
