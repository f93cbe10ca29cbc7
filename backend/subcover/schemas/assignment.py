from datetime import date as calendar_date, datetime

from pydantic import BaseModel, Field

from subcover.models.substitute_assignment import AssignmentStatus, AssignmentType


class SubstituteAssignmentOut(BaseModel):
    id: str
    lecture_id: str
    leave_request_id: str
    original_teacher_id: str
    substitute_teacher_id: str | None = None
    status: AssignmentStatus
    assignment_type: AssignmentType
    assigned_at: datetime
    response_deadline: datetime
    resolved_at: datetime | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class PendingAssignmentOut(BaseModel):
    id: str
    lecture_id: str
    leave_request_id: str
    original_teacher_id: str
    original_teacher_name: str
    subject: str
    class_year: str
    room: str | None = None
    date: calendar_date
    start_time: str
    end_time: str
    response_deadline: datetime
    time_remaining_seconds: int


class AssignmentOverride(BaseModel):
    assignment_id: str = Field(min_length=1, max_length=36)
    substitute_teacher_id: str = Field(min_length=1, max_length=36)


class EscalationSummaryOut(BaseModel):
    leaves_auto_approved: int = 0
    assignments_created: int = 0
    auto_assigned: int = 0
    unassigned: int = 0
    already_covered: int = 0
    deferred: int = 0
    errors: int = 0


class AutomationStatusOut(BaseModel):
    system_active: bool
    interval_seconds: int
    leave_auto_approve_minutes: int
    assignment_response_minutes: int
    pending_leave_requests: int
    pending_assignments: int
    overdue_assignments: int
    last_run_at: datetime | None = None
    last_summary: EscalationSummaryOut | None = None


class ActivityLogOut(BaseModel):
    id: str
    actor_id: str | None = None
    action: str
    entity_type: str | None = None
    entity_id: str | None = None
    details: dict
    created_at: datetime

    model_config = {"from_attributes": True}
