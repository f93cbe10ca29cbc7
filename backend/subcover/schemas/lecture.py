from __future__ import annotations

from datetime import date as calendar_date, datetime
import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from subcover.models.lecture import LectureStatus

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def normalize_time(value: str) -> str:
    trimmed = value.strip()
    # Accept "9:00" but always store the zero-padded form.
    if re.match(r"^\d:\d\d$", trimmed):
        trimmed = f"0{trimmed}"
    if not TIME_PATTERN.match(trimmed):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return trimmed


def parse_time_to_minutes(value: str) -> int:
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


class TimeSlot(BaseModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalize_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlot":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class RecurrenceSpec(BaseModel):
    type: Literal["daily", "weekly"]
    count: int = Field(ge=1, le=52)


class LectureCreate(TimeSlot):
    teacher_id: str = Field(min_length=1, max_length=36)
    subject: str = Field(min_length=1, max_length=200)
    class_year: str = Field(min_length=1, max_length=50)
    room: str | None = Field(default=None, max_length=100)
    date: calendar_date
    recurring: RecurrenceSpec | None = None

    @field_validator("subject", "class_year")
    @classmethod
    def strip_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Value cannot be empty")
        return trimmed

    @field_validator("room")
    @classmethod
    def normalize_room(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None


class LectureReschedule(TimeSlot):
    new_date: calendar_date
    new_room: str | None = Field(default=None, max_length=100)


class LectureCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class MarkAbsentRequest(BaseModel):
    teacher_id: str | None = Field(default=None, max_length=36)
    date: calendar_date | None = None


class MarkAbsentOut(BaseModel):
    assigned_count: int
    total: int
    logs: list[str]


class SubstituteAssign(BaseModel):
    substitute_teacher_id: str = Field(min_length=1, max_length=36)


class LectureOut(BaseModel):
    id: str
    scheduled_teacher_id: str
    substitute_teacher_id: str | None = None
    department: str
    subject: str
    class_year: str
    room: str | None = None
    date: calendar_date
    day_of_week: str
    start_time: str
    end_time: str
    status: LectureStatus
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ConflictCheckOut(BaseModel):
    has_conflicts: bool
    conflicts: list[LectureOut]


class CandidateOut(BaseModel):
    teacher_id: str
    name: str
    department: str
    workload: int
    substitute_count: int

    model_config = {"from_attributes": True}
