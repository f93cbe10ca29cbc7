from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
import logging

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from subcover.core.clock import as_utc
from subcover.core.config import Settings
from subcover.core.exceptions import (
    InvalidTransitionError,
    ResourceNotFoundError,
    SubstituteRaceError,
    ValidationError,
)
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.leave_request import ACCEPTED_LEAVE_STATUSES, LeaveRequest, LeaveStatus, LeaveType
from subcover.models.notification import NotificationKind, NotificationPriority
from subcover.models.substitute_assignment import AssignmentStatus, AssignmentType, SubstituteAssignment
from subcover.models.teacher import Teacher
from subcover.services.audit import log_activity
from subcover.services.matching import assign_substitute, find_substitute
from subcover.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

CLOSED_LECTURE_STATUSES = (LectureStatus.cancelled, LectureStatus.completed)


@dataclass
class MarkAbsentReport:
    assigned_count: int = 0
    total: int = 0
    logs: list[str] = field(default_factory=list)


def _resolve_pending_for_lecture(
    db: Session,
    *,
    lecture_id: str,
    substitute_teacher_id: str,
    now: datetime,
    assignment_type: AssignmentType,
    notes: str,
) -> None:
    # A lecture covered outside the escalation path must not leave its pending row behind.
    db.execute(
        update(SubstituteAssignment)
        .where(
            SubstituteAssignment.lecture_id == lecture_id,
            SubstituteAssignment.status == AssignmentStatus.pending,
        )
        .values(
            status=AssignmentStatus.assigned,
            assignment_type=assignment_type,
            substitute_teacher_id=substitute_teacher_id,
            resolved_at=now,
            notes=notes,
        )
    )


def _record_absence(db: Session, *, teacher: Teacher, on_date: date, now: datetime, actor_id: str) -> LeaveRequest:
    """Store the absence as an approved full-day leave so matching skips the teacher all day."""
    existing = db.execute(
        select(LeaveRequest).where(
            LeaveRequest.teacher_id == teacher.id,
            LeaveRequest.status.in_(ACCEPTED_LEAVE_STATUSES),
            LeaveRequest.start_date <= on_date,
            LeaveRequest.end_date >= on_date,
            LeaveRequest.affected_lectures.is_(None),
        )
    ).scalars().first()
    if existing is not None:
        return existing

    absence = LeaveRequest(
        teacher_id=teacher.id,
        department=teacher.department,
        leave_type=LeaveType.casual,
        start_date=on_date,
        end_date=on_date,
        reason="Marked absent",
        status=LeaveStatus.approved,
        submitted_at=now,
        hod_decision_at=now,
        reviewed_by_id=actor_id,
    )
    db.add(absence)
    db.flush()
    log_activity(
        db,
        actor_id=actor_id,
        action="leave.mark_absent",
        entity_type="leave_request",
        entity_id=absence.id,
        details={"teacher_id": teacher.id, "date": on_date.isoformat()},
    )
    return absence


def mark_absent_today(
    db: Session,
    *,
    teacher: Teacher,
    on_date: date,
    now: datetime,
    settings: Settings,
    actor_id: str,
) -> MarkAbsentReport:
    """Cover every open lecture of ``teacher`` on ``on_date`` right away.

    The absence is committed first, so the teacher drops off the candidate
    list for the rest of the day. Each lecture is then matched and committed
    on its own; a lecture that finds no one, or loses a race, only shows up in
    the report.
    """
    teacher_id = teacher.id
    teacher_name = teacher.name
    department = teacher.department
    _record_absence(db, teacher=teacher, on_date=on_date, now=now, actor_id=actor_id)
    db.commit()

    lectures = list(
        db.execute(
            select(Lecture)
            .where(
                Lecture.scheduled_teacher_id == teacher_id,
                Lecture.date == on_date,
                Lecture.status == LectureStatus.scheduled,
                Lecture.substitute_teacher_id.is_(None),
            )
            .order_by(Lecture.start_time, Lecture.id)
        ).scalars()
    )
    report = MarkAbsentReport(total=len(lectures))

    for lecture in lectures:
        label = f"Class {lecture.start_time}"
        notifier = NotificationDispatcher()
        try:
            candidate = find_substitute(
                db,
                lecture,
                department=department,
                exclude_teacher_id=teacher_id,
                policy=settings.mark_absent_workload_policy,
                cap=settings.mark_absent_workload_cap,
            )
            if candidate is None:
                db.rollback()
                report.logs.append(f"{label}: No teachers available")
                continue
            assign_substitute(db, lecture, candidate, notifier=notifier, absent_teacher_name=teacher_name)
            _resolve_pending_for_lecture(
                db,
                lecture_id=lecture.id,
                substitute_teacher_id=candidate.teacher_id,
                now=now,
                assignment_type=AssignmentType.auto,
                notes="Covered when the teacher was marked absent",
            )
            log_activity(
                db,
                actor_id=actor_id,
                action="lecture.mark_absent",
                entity_type="lecture",
                entity_id=lecture.id,
                details={"absent_teacher_id": teacher_id, "substitute_teacher_id": candidate.teacher_id},
            )
            db.commit()
        except SubstituteRaceError:
            db.rollback()
            report.logs.append(f"{label}: Assignment conflict")
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Mark-absent assignment failed for lecture %s", lecture.id)
            report.logs.append(f"{label}: Error during assignment")
            continue

        report.assigned_count += 1
        report.logs.append(f"{label}: Assigned to {candidate.name}")
        notifier.deliver(db)

    logger.info(
        "Marked %s absent on %s: %d/%d lecture(s) covered",
        teacher_id,
        on_date.isoformat(),
        report.assigned_count,
        report.total,
    )
    return report


def _get_lecture(db: Session, lecture_id: str) -> Lecture:
    lecture = db.get(Lecture, lecture_id)
    if lecture is None:
        raise ResourceNotFoundError("Lecture", lecture_id)
    return lecture


def _get_substitute(db: Session, teacher_id: str, lecture: Lecture) -> Teacher:
    substitute = db.get(Teacher, teacher_id)
    if substitute is None:
        raise ResourceNotFoundError("Teacher", teacher_id)
    if not substitute.is_active:
        raise ValidationError("Substitute teacher is inactive", details={"teacher_id": teacher_id})
    if substitute.id == lecture.scheduled_teacher_id:
        raise ValidationError("A teacher cannot substitute their own lecture")
    return substitute


def _ensure_open(lecture: Lecture) -> None:
    if lecture.status in CLOSED_LECTURE_STATUSES:
        raise InvalidTransitionError(
            f"Lecture is {lecture.status.value}",
            details={"lecture_id": lecture.id, "status": lecture.status.value},
        )


def assign_substitute_manually(
    db: Session,
    *,
    lecture_id: str,
    substitute_teacher_id: str,
    actor_id: str,
    now: datetime,
    notifier: NotificationDispatcher,
) -> Lecture:
    """Put a chosen teacher on an uncovered lecture without running the eligibility filter."""
    lecture = _get_lecture(db, lecture_id)
    _ensure_open(lecture)
    substitute = _get_substitute(db, substitute_teacher_id, lecture)
    if lecture.substitute_teacher_id is not None:
        raise InvalidTransitionError(
            "Lecture is already covered; override its assignment instead",
            details={"lecture_id": lecture.id, "substitute_teacher_id": lecture.substitute_teacher_id},
        )

    result = db.execute(
        update(Lecture)
        .where(
            Lecture.id == lecture.id,
            Lecture.substitute_teacher_id.is_(None),
            Lecture.status == LectureStatus.scheduled,
        )
        .values(substitute_teacher_id=substitute.id, status=LectureStatus.sub_assigned)
    )
    if result.rowcount == 0:
        raise SubstituteRaceError(lecture.id)
    db.execute(
        update(Teacher).where(Teacher.id == substitute.id).values(substitute_count=Teacher.substitute_count + 1)
    )
    _resolve_pending_for_lecture(
        db,
        lecture_id=lecture.id,
        substitute_teacher_id=substitute.id,
        now=now,
        assignment_type=AssignmentType.manual,
        notes=f"Manually assigned to {substitute.name}",
    )

    when = f"{lecture.date.isoformat()} at {lecture.start_time}"
    notifier.notify(
        substitute.id,
        NotificationKind.auto_assign,
        "New Substitution Assigned",
        f"You have been assigned {lecture.subject} ({lecture.class_year}) on {when}.",
        NotificationPriority.high,
        lecture_id=lecture.id,
    )
    notifier.notify(
        lecture.scheduled_teacher_id,
        NotificationKind.substitute_found,
        "Substitute Found",
        f"{substitute.name} will cover {lecture.subject} on {when}.",
        lecture_id=lecture.id,
    )
    log_activity(
        db,
        actor_id=actor_id,
        action="lecture.assign_substitute",
        entity_type="lecture",
        entity_id=lecture.id,
        details={"substitute_teacher_id": substitute.id},
    )
    db.refresh(lecture)
    return lecture


def override_assignment(
    db: Session,
    *,
    assignment_id: str,
    substitute_teacher_id: str,
    actor_id: str,
    now: datetime,
    notifier: NotificationDispatcher,
) -> SubstituteAssignment:
    """Replace whatever the automation decided with a human pick. Allowed once per assignment."""
    assignment = db.get(SubstituteAssignment, assignment_id)
    if assignment is None:
        raise ResourceNotFoundError("Substitute assignment", assignment_id)
    if assignment.assignment_type == AssignmentType.manual_override:
        raise InvalidTransitionError(
            "Assignment has already been overridden",
            details={"assignment_id": assignment.id},
        )

    lecture = _get_lecture(db, assignment.lecture_id)
    _ensure_open(lecture)
    substitute = _get_substitute(db, substitute_teacher_id, lecture)
    previous_id = lecture.substitute_teacher_id

    result = db.execute(
        update(SubstituteAssignment)
        .where(
            SubstituteAssignment.id == assignment.id,
            SubstituteAssignment.assignment_type != AssignmentType.manual_override,
        )
        .values(
            status=AssignmentStatus.assigned,
            assignment_type=AssignmentType.manual_override,
            substitute_teacher_id=substitute.id,
            resolved_at=now,
            notes=f"Manually overridden to {substitute.name}",
        )
    )
    if result.rowcount == 0:
        raise InvalidTransitionError(
            "Assignment has already been overridden",
            details={"assignment_id": assignment.id},
        )

    # Only move the lecture if it still carries the substitute read above.
    current = (
        Lecture.substitute_teacher_id.is_(None)
        if previous_id is None
        else Lecture.substitute_teacher_id == previous_id
    )
    result = db.execute(
        update(Lecture)
        .where(
            Lecture.id == lecture.id,
            current,
            Lecture.status.in_((LectureStatus.scheduled, LectureStatus.sub_assigned)),
        )
        .values(substitute_teacher_id=substitute.id, status=LectureStatus.sub_assigned)
    )
    if result.rowcount == 0:
        raise SubstituteRaceError(lecture.id)

    if previous_id != substitute.id:
        db.execute(
            update(Teacher).where(Teacher.id == substitute.id).values(substitute_count=Teacher.substitute_count + 1)
        )
        if previous_id is not None:
            db.execute(
                update(Teacher)
                .where(Teacher.id == previous_id, Teacher.substitute_count > 0)
                .values(substitute_count=Teacher.substitute_count - 1)
            )
            notifier.notify(
                previous_id,
                NotificationKind.lecture_update,
                "Substitution Reassigned",
                f"You are no longer covering {lecture.subject} on {lecture.date.isoformat()} at {lecture.start_time}.",
                lecture_id=lecture.id,
            )

    when = f"{lecture.date.isoformat()} at {lecture.start_time}"
    notifier.notify(
        substitute.id,
        NotificationKind.auto_assign,
        "New Substitution Assigned",
        f"You have been assigned {lecture.subject} ({lecture.class_year}) on {when}.",
        NotificationPriority.high,
        lecture_id=lecture.id,
    )
    notifier.notify(
        assignment.original_teacher_id,
        NotificationKind.substitute_found,
        "Substitute Updated",
        f"{substitute.name} will cover {lecture.subject} on {when}.",
        lecture_id=lecture.id,
    )
    log_activity(
        db,
        actor_id=actor_id,
        action="assignment.override",
        entity_type="substitute_assignment",
        entity_id=assignment.id,
        details={"previous_substitute_id": previous_id, "substitute_teacher_id": substitute.id},
    )
    db.refresh(assignment)
    return assignment


def pending_assignments(db: Session, *, now: datetime, department: str | None = None) -> list[dict]:
    query = (
        select(SubstituteAssignment, Lecture, Teacher)
        .join(Lecture, Lecture.id == SubstituteAssignment.lecture_id)
        .join(Teacher, Teacher.id == SubstituteAssignment.original_teacher_id)
        .where(SubstituteAssignment.status == AssignmentStatus.pending)
    )
    if department:
        query = query.where(Lecture.department == department)
    rows = db.execute(query.order_by(SubstituteAssignment.response_deadline, SubstituteAssignment.id)).all()

    payload = []
    for assignment, lecture, teacher in rows:
        deadline = as_utc(assignment.response_deadline)
        payload.append(
            {
                "id": assignment.id,
                "lecture_id": lecture.id,
                "leave_request_id": assignment.leave_request_id,
                "original_teacher_id": teacher.id,
                "original_teacher_name": teacher.name,
                "subject": lecture.subject,
                "class_year": lecture.class_year,
                "room": lecture.room,
                "date": lecture.date,
                "start_time": lecture.start_time,
                "end_time": lecture.end_time,
                "response_deadline": deadline,
                "time_remaining_seconds": max(0, int((deadline - now).total_seconds())),
            }
        )
    return payload


def lectures_needing_substitutes(
    db: Session,
    *,
    from_date: date,
    department: str | None = None,
) -> list[Lecture]:
    """Uncovered scheduled lectures whose teacher is on accepted leave that day."""
    on_leave = and_(
        LeaveRequest.teacher_id == Lecture.scheduled_teacher_id,
        LeaveRequest.status.in_(ACCEPTED_LEAVE_STATUSES),
        LeaveRequest.start_date <= Lecture.date,
        LeaveRequest.end_date >= Lecture.date,
    )
    query = select(Lecture).where(
        Lecture.status == LectureStatus.scheduled,
        Lecture.substitute_teacher_id.is_(None),
        Lecture.date >= from_date,
        select(LeaveRequest.id).where(on_leave).exists(),
    )
    if department:
        query = query.where(Lecture.department == department)
    lectures = list(db.execute(query.order_by(Lecture.date, Lecture.start_time, Lecture.id)).scalars())
    if not lectures:
        return []

    leaves = db.execute(
        select(
            LeaveRequest.teacher_id,
            LeaveRequest.start_date,
            LeaveRequest.end_date,
            LeaveRequest.affected_lectures,
        ).where(
            LeaveRequest.teacher_id.in_({item.scheduled_teacher_id for item in lectures}),
            LeaveRequest.status.in_(ACCEPTED_LEAVE_STATUSES),
            LeaveRequest.end_date >= from_date,
        )
    ).all()

    def _freed_by_leave(lecture: Lecture) -> bool:
        # Ad-hoc leave only frees the lectures it lists.
        return any(
            teacher_id == lecture.scheduled_teacher_id
            and start <= lecture.date <= end
            and (not affected or lecture.id in affected)
            for teacher_id, start, end, affected in leaves
        )

    return [item for item in lectures if _freed_by_leave(item)]


def teachers_on_leave_between(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    department: str | None = None,
) -> list[tuple[LeaveRequest, Teacher]]:
    query = (
        select(LeaveRequest, Teacher)
        .join(Teacher, Teacher.id == LeaveRequest.teacher_id)
        .where(
            LeaveRequest.status.in_(ACCEPTED_LEAVE_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
    )
    if department:
        query = query.where(LeaveRequest.department == department)
    return list(db.execute(query.order_by(LeaveRequest.start_date, Teacher.name)).tuples())
