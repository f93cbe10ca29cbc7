from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from subcover.models.leave_request import LeaveStatus, LeaveType


class LeaveRequestCreate(BaseModel):
    start_date: date
    end_date: date
    leave_type: LeaveType = LeaveType.casual
    reason: str = Field(min_length=3, max_length=1000)
    # HODs and admins may file on behalf of a teacher.
    teacher_id: str | None = Field(default=None, max_length=36)
    affected_lectures: list[str] | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def validate_range(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class LeaveReview(BaseModel):
    decision: Literal["approve", "reject"]
    comments: str | None = Field(default=None, max_length=1000)


class LeaveRequestOut(BaseModel):
    id: str
    teacher_id: str
    teacher_name: str | None = None
    department: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str
    status: LeaveStatus
    affected_lectures: list[str] | None = None
    submitted_at: datetime
    hod_decision_at: datetime | None = None
    reviewed_by_id: str | None = None
    review_comment: str | None = None

    model_config = {"from_attributes": True}


class LeaveReviewOut(BaseModel):
    leave: LeaveRequestOut
    assignments_created: int = 0
    skipped_lecture_ids: list[str] = Field(default_factory=list)


class LeaveTypeOut(BaseModel):
    value: LeaveType
    label: str
