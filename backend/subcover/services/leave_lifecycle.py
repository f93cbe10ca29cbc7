from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from subcover.core.exceptions import InvalidTransitionError, ResourceNotFoundError, ValidationError
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.leave_request import ACCEPTED_LEAVE_STATUSES, LeaveRequest, LeaveStatus, LeaveType
from subcover.models.notification import NotificationKind, NotificationPriority
from subcover.models.substitute_assignment import AssignmentStatus, AssignmentType, SubstituteAssignment
from subcover.models.teacher import Teacher, TeacherRole
from subcover.services.audit import log_activity
from subcover.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

ReviewDecision = Literal["approve", "reject"]

OPEN_LECTURE_STATUSES = (LectureStatus.scheduled,)


@dataclass
class FanOutSummary:
    leave_request_id: str
    status: LeaveStatus
    assignment_ids: list[str] = field(default_factory=list)
    skipped_lecture_ids: list[str] = field(default_factory=list)

    @property
    def assignments_created(self) -> int:
        return len(self.assignment_ids)


def department_hod_ids(db: Session, department: str) -> list[str]:
    return list(
        db.execute(
            select(Teacher.id).where(
                Teacher.department == department,
                Teacher.role == TeacherRole.hod,
                Teacher.is_active.is_(True),
            )
        ).scalars()
    )


def _reviewer_ids(db: Session, requester: Teacher) -> list[str]:
    # Teachers report to their department's HOD; HODs and admins report to admins.
    if requester.role == TeacherRole.teacher:
        return department_hod_ids(db, requester.department)
    return list(
        db.execute(
            select(Teacher.id).where(
                Teacher.role == TeacherRole.admin,
                Teacher.is_active.is_(True),
            )
        ).scalars()
    )


def _validate_affected_lectures(db: Session, teacher: Teacher, lecture_ids: list[str]) -> list[str]:
    unique_ids = list(dict.fromkeys(item for item in lecture_ids if item))
    if not unique_ids:
        return []
    owned = set(
        db.execute(
            select(Lecture.id).where(
                Lecture.id.in_(unique_ids),
                Lecture.scheduled_teacher_id == teacher.id,
            )
        ).scalars()
    )
    unknown = [item for item in unique_ids if item not in owned]
    if unknown:
        raise ValidationError(
            "Affected lectures must be existing lectures of the absent teacher",
            details={"lecture_ids": unknown},
        )
    return unique_ids


def submit_leave_request(
    db: Session,
    *,
    teacher: Teacher,
    start_date: date,
    end_date: date,
    reason: str,
    now: datetime,
    notifier: NotificationDispatcher,
    leave_type: LeaveType = LeaveType.casual,
    affected_lectures: list[str] | None = None,
    submitted_by_id: str | None = None,
) -> LeaveRequest:
    if end_date < start_date:
        raise ValidationError("End date cannot be before start date")
    if start_date < now.date():
        raise ValidationError("Leave dates cannot be in the past")
    reason = reason.strip()
    if not reason:
        raise ValidationError("A reason is required")

    lecture_ids = _validate_affected_lectures(db, teacher, affected_lectures or [])

    request = LeaveRequest(
        teacher_id=teacher.id,
        department=teacher.department,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
        status=LeaveStatus.pending,
        affected_lectures=lecture_ids or None,
        submitted_at=now,
    )
    db.add(request)
    db.flush()

    notifier.notify_many(
        _reviewer_ids(db, teacher),
        NotificationKind.leave_request,
        "New Leave Request",
        f"Incoming {leave_type.value} leave request from {teacher.name} "
        f"({start_date.isoformat()} to {end_date.isoformat()}).",
        NotificationPriority.high,
        exclude_teacher_id=teacher.id,
    )
    log_activity(
        db,
        actor_id=submitted_by_id or teacher.id,
        action="leave.submit",
        entity_type="leave_request",
        entity_id=request.id,
        details={
            "teacher_id": teacher.id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "affected_lectures": len(lecture_ids),
        },
    )
    return request


def affected_lectures_for(db: Session, leave: LeaveRequest) -> list[Lecture]:
    query = select(Lecture).where(
        Lecture.status.in_(OPEN_LECTURE_STATUSES),
        Lecture.substitute_teacher_id.is_(None),
    )
    if leave.affected_lectures:
        query = query.where(Lecture.id.in_(leave.affected_lectures))
    else:
        query = query.where(
            Lecture.scheduled_teacher_id == leave.teacher_id,
            Lecture.date >= leave.start_date,
            Lecture.date <= leave.end_date,
        )
    return list(db.execute(query.order_by(Lecture.date, Lecture.start_time, Lecture.id)).scalars())


def fan_out_substitute_assignments(
    db: Session,
    leave: LeaveRequest,
    *,
    now: datetime,
    response_minutes: int,
) -> FanOutSummary:
    """Open one pending assignment per uncovered lecture of an accepted leave, one lecture at a time."""
    if leave.status not in ACCEPTED_LEAVE_STATUSES:
        raise InvalidTransitionError(
            "Only accepted leave requests fan out into substitute assignments",
            details={"leave_request_id": leave.id, "status": leave.status.value},
        )

    summary = FanOutSummary(leave_request_id=leave.id, status=leave.status)
    deadline = now + timedelta(minutes=response_minutes)
    for lecture in affected_lectures_for(db, leave):
        open_assignment = db.execute(
            select(SubstituteAssignment.id).where(
                SubstituteAssignment.lecture_id == lecture.id,
                SubstituteAssignment.status == AssignmentStatus.pending,
            )
        ).scalar_one_or_none()
        if open_assignment is not None:
            summary.skipped_lecture_ids.append(lecture.id)
            continue

        assignment = SubstituteAssignment(
            lecture_id=lecture.id,
            leave_request_id=leave.id,
            original_teacher_id=leave.teacher_id,
            status=AssignmentStatus.pending,
            assignment_type=AssignmentType.auto,
            assigned_at=now,
            response_deadline=deadline,
        )
        db.add(assignment)
        db.flush()
        summary.assignment_ids.append(assignment.id)

    logger.info(
        "Leave %s fanned out into %d pending assignment(s), %d lecture(s) already pending",
        leave.id,
        summary.assignments_created,
        len(summary.skipped_lecture_ids),
    )
    return summary


def _decide(
    db: Session,
    *,
    leave_id: str,
    status: LeaveStatus,
    now: datetime,
    reviewer_id: str | None,
    comments: str | None,
) -> bool:
    result = db.execute(
        update(LeaveRequest)
        .where(LeaveRequest.id == leave_id, LeaveRequest.status == LeaveStatus.pending)
        .values(
            status=status,
            hod_decision_at=now,
            reviewed_by_id=reviewer_id,
            review_comment=comments,
        )
    )
    return result.rowcount == 1


def _notify_requester(
    notifier: NotificationDispatcher,
    leave: LeaveRequest,
    summary: FanOutSummary | None,
    comments: str | None,
) -> None:
    label = {
        LeaveStatus.approved: "Approved",
        LeaveStatus.auto_approved: "Auto-approved",
        LeaveStatus.rejected: "Rejected",
    }[leave.status]
    message = (
        f"Your {leave.leave_type.value} leave for {leave.start_date.isoformat()} to "
        f"{leave.end_date.isoformat()} has been {label.lower()}."
    )
    if summary is not None and summary.assignments_created:
        message += f" Substitutes are being arranged for {summary.assignments_created} lecture(s)."
    if comments:
        message += f" Comment: {comments}"
    notifier.notify(
        leave.teacher_id,
        NotificationKind.leave_status,
        f"Leave Request {label}",
        message,
        NotificationPriority.high if leave.status in ACCEPTED_LEAVE_STATUSES else NotificationPriority.normal,
    )


def review_leave_request(
    db: Session,
    *,
    leave_id: str,
    decision: ReviewDecision,
    reviewer_id: str,
    comments: str | None,
    now: datetime,
    response_minutes: int,
    notifier: NotificationDispatcher,
) -> FanOutSummary | None:
    leave = db.get(LeaveRequest, leave_id)
    if leave is None:
        raise ResourceNotFoundError("Leave request", leave_id)

    target = LeaveStatus.approved if decision == "approve" else LeaveStatus.rejected
    comments = (comments or "").strip() or None
    if not _decide(db, leave_id=leave.id, status=target, now=now, reviewer_id=reviewer_id, comments=comments):
        db.refresh(leave)
        raise InvalidTransitionError(
            f"Leave request is already {leave.status.value}",
            details={"leave_request_id": leave.id, "status": leave.status.value},
        )
    db.refresh(leave)

    summary = None
    if target == LeaveStatus.approved:
        summary = fan_out_substitute_assignments(db, leave, now=now, response_minutes=response_minutes)

    _notify_requester(notifier, leave, summary, comments)
    log_activity(
        db,
        actor_id=reviewer_id,
        action="leave.review",
        entity_type="leave_request",
        entity_id=leave.id,
        details={
            "status": leave.status.value,
            "assignments_created": summary.assignments_created if summary else 0,
        },
    )
    return summary


def auto_approve_leave_request(
    db: Session,
    *,
    leave_id: str,
    now: datetime,
    response_minutes: int,
    notifier: NotificationDispatcher,
) -> FanOutSummary | None:
    """Escalate a stale request. Returns None when a human already decided it."""
    if not _decide(db, leave_id=leave_id, status=LeaveStatus.auto_approved, now=now, reviewer_id=None, comments=None):
        return None
    leave = db.get(LeaveRequest, leave_id)
    db.refresh(leave)

    summary = fan_out_substitute_assignments(db, leave, now=now, response_minutes=response_minutes)
    _notify_requester(notifier, leave, summary, None)
    log_activity(
        db,
        actor_id=None,
        action="leave.auto_approve",
        entity_type="leave_request",
        entity_id=leave.id,
        details={"assignments_created": summary.assignments_created},
    )
    return summary
