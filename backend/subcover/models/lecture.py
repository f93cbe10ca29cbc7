import uuid
from datetime import date as calendar_date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from subcover.db.base import Base


class LectureStatus(str, Enum):
    scheduled = "scheduled"
    sub_assigned = "sub_assigned"
    completed = "completed"
    cancelled = "cancelled"


class Lecture(Base):
    __tablename__ = "lectures"
    __table_args__ = (
        Index("ix_lectures_date_start_time", "date", "start_time"),
        Index("ix_lectures_date_room", "date", "room"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    scheduled_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    substitute_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    department: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    class_year: Mapped[str] = mapped_column(String(50), nullable=False)
    room: Mapped[str | None] = mapped_column(String(100), nullable=True)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False)
    day_of_week: Mapped[str] = mapped_column(String(10), nullable=False)
    # Zero-padded HH:MM, so string order is time order.
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[LectureStatus] = mapped_column(
        SAEnum(LectureStatus, name="lecture_status"),
        nullable=False,
        default=LectureStatus.scheduled,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
