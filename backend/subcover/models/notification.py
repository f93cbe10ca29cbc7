import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from subcover.db.base import Base


class NotificationKind(str, Enum):
    leave_request = "leave_request"
    leave_status = "leave_status"
    auto_assign = "auto_assign"
    substitute_found = "substitute_found"
    substitute_missing = "substitute_missing"
    lecture_update = "lecture_update"


class NotificationPriority(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    lecture_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    kind: Mapped[NotificationKind] = mapped_column(SAEnum(NotificationKind, name="notification_kind"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[NotificationPriority] = mapped_column(
        SAEnum(NotificationPriority, name="notification_priority"),
        nullable=False,
        default=NotificationPriority.normal,
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
