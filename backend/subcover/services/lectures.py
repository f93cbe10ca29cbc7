from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
from typing import Literal

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from subcover.core.exceptions import (
    InvalidTransitionError,
    ResourceNotFoundError,
    ScheduleConflictError,
    ValidationError,
)
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.notification import NotificationKind
from subcover.models.substitute_assignment import AssignmentStatus, SubstituteAssignment
from subcover.models.teacher import Teacher
from subcover.services.audit import log_activity
from subcover.services.conflict_service import describe_conflict, find_conflict
from subcover.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

Recurrence = Literal["daily", "weekly"]

MAX_RECURRENCE = 52


def occurrence_dates(start: date, recurrence: Recurrence | None, count: int) -> list[date]:
    if recurrence is None:
        return [start]
    if count < 1 or count > MAX_RECURRENCE:
        raise ValidationError(f"Recurrence count must be between 1 and {MAX_RECURRENCE}")
    step = timedelta(days=1 if recurrence == "daily" else 7)
    return [start + step * index for index in range(count)]


def _check_slot(
    db: Session,
    *,
    on_date: date,
    start_time: str,
    end_time: str,
    room: str | None,
    teacher_ids: list[str],
    exclude_lecture_id: str | None = None,
) -> None:
    if room:
        clash = find_conflict(
            db,
            on_date=on_date,
            start_time=start_time,
            end_time=end_time,
            room=room,
            exclude_lecture_id=exclude_lecture_id,
        )
        if clash is not None:
            raise ScheduleConflictError(
                f"Room conflict: {room} is booked for {clash.subject} on {on_date.isoformat()}",
                describe_conflict(clash),
            )
    for teacher_id in teacher_ids:
        clash = find_conflict(
            db,
            on_date=on_date,
            start_time=start_time,
            end_time=end_time,
            teacher_id=teacher_id,
            exclude_lecture_id=exclude_lecture_id,
        )
        if clash is not None:
            raise ScheduleConflictError(
                f"Teacher conflict: already teaching {clash.subject} on {on_date.isoformat()}",
                describe_conflict(clash),
            )


def create_lectures(
    db: Session,
    *,
    teacher: Teacher,
    subject: str,
    class_year: str,
    room: str | None,
    start_date: date,
    start_time: str,
    end_time: str,
    actor_id: str,
    recurrence: Recurrence | None = None,
    count: int = 1,
) -> list[Lecture]:
    """Create a lecture, or a daily/weekly series of them, refusing any double booking."""
    if not teacher.is_active:
        raise ValidationError("Cannot schedule lectures for an inactive teacher")

    created: list[Lecture] = []
    for on_date in occurrence_dates(start_date, recurrence, count):
        _check_slot(
            db,
            on_date=on_date,
            start_time=start_time,
            end_time=end_time,
            room=room,
            teacher_ids=[teacher.id],
        )
        lecture = Lecture(
            scheduled_teacher_id=teacher.id,
            department=teacher.department,
            subject=subject,
            class_year=class_year,
            room=room,
            date=on_date,
            day_of_week=on_date.strftime("%A"),
            start_time=start_time,
            end_time=end_time,
            status=LectureStatus.scheduled,
        )
        db.add(lecture)
        db.flush()
        created.append(lecture)

    log_activity(
        db,
        actor_id=actor_id,
        action="lecture.create",
        entity_type="lecture",
        entity_id=created[0].id,
        details={"count": len(created), "subject": subject, "class_year": class_year},
    )
    logger.info("Created %d lecture(s) of %s for teacher %s", len(created), subject, teacher.id)
    return created


def get_lecture(db: Session, lecture_id: str) -> Lecture:
    lecture = db.get(Lecture, lecture_id)
    if lecture is None:
        raise ResourceNotFoundError("Lecture", lecture_id)
    return lecture


def reschedule_lecture(
    db: Session,
    lecture: Lecture,
    *,
    new_date: date,
    start_time: str,
    end_time: str,
    room: str | None,
    actor_id: str,
    notifier: NotificationDispatcher,
) -> Lecture:
    if lecture.status in (LectureStatus.cancelled, LectureStatus.completed):
        raise InvalidTransitionError(
            f"Cannot reschedule a {lecture.status.value} lecture",
            details={"lecture_id": lecture.id},
        )
    target_room = room or lecture.room
    teacher_ids = [lecture.scheduled_teacher_id]
    if lecture.substitute_teacher_id:
        teacher_ids.append(lecture.substitute_teacher_id)
    _check_slot(
        db,
        on_date=new_date,
        start_time=start_time,
        end_time=end_time,
        room=target_room,
        teacher_ids=teacher_ids,
        exclude_lecture_id=lecture.id,
    )

    previous = f"{lecture.date.isoformat()} {lecture.start_time}"
    lecture.date = new_date
    lecture.day_of_week = new_date.strftime("%A")
    lecture.start_time = start_time
    lecture.end_time = end_time
    lecture.room = target_room
    db.flush()

    notifier.notify_many(
        teacher_ids,
        NotificationKind.lecture_update,
        f"{lecture.subject} Rescheduled",
        f"{lecture.subject} ({lecture.class_year}) moved from {previous} to "
        f"{new_date.isoformat()} {start_time}-{end_time}" + (f" in {target_room}." if target_room else "."),
        exclude_teacher_id=actor_id,
    )
    log_activity(
        db,
        actor_id=actor_id,
        action="lecture.reschedule",
        entity_type="lecture",
        entity_id=lecture.id,
        details={"from": previous, "to": f"{new_date.isoformat()} {start_time}", "room": target_room},
    )
    return lecture


def cancel_lecture(
    db: Session,
    lecture: Lecture,
    *,
    reason: str | None,
    actor_id: str,
    now: datetime,
    notifier: NotificationDispatcher,
) -> Lecture:
    result = db.execute(
        update(Lecture)
        .where(
            Lecture.id == lecture.id,
            Lecture.status.in_((LectureStatus.scheduled, LectureStatus.sub_assigned)),
        )
        .values(status=LectureStatus.cancelled)
    )
    if result.rowcount == 0:
        db.refresh(lecture)
        raise InvalidTransitionError(
            f"Cannot cancel a {lecture.status.value} lecture",
            details={"lecture_id": lecture.id},
        )
    db.execute(
        update(SubstituteAssignment)
        .where(
            SubstituteAssignment.lecture_id == lecture.id,
            SubstituteAssignment.status == AssignmentStatus.pending,
        )
        .values(status=AssignmentStatus.unassigned, resolved_at=now, notes="Lecture cancelled")
    )
    db.refresh(lecture)

    message = f"Cancelled: {reason}" if reason else "Lecture cancelled"
    recipients = [lecture.scheduled_teacher_id]
    if lecture.substitute_teacher_id:
        recipients.append(lecture.substitute_teacher_id)
    notifier.notify_many(
        recipients,
        NotificationKind.lecture_update,
        f"{lecture.subject} Cancelled",
        f"{message} ({lecture.date.isoformat()} at {lecture.start_time}).",
        exclude_teacher_id=actor_id,
    )
    log_activity(
        db,
        actor_id=actor_id,
        action="lecture.cancel",
        entity_type="lecture",
        entity_id=lecture.id,
        details={"reason": reason},
    )
    return lecture


def list_lectures(
    db: Session,
    *,
    department: str | None = None,
    teacher_id: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    status: LectureStatus | None = None,
) -> list[Lecture]:
    query = select(Lecture)
    if department:
        query = query.where(Lecture.department == department)
    if teacher_id:
        query = query.where(
            or_(Lecture.scheduled_teacher_id == teacher_id, Lecture.substitute_teacher_id == teacher_id)
        )
    if from_date:
        query = query.where(Lecture.date >= from_date)
    if to_date:
        query = query.where(Lecture.date <= to_date)
    if status:
        query = query.where(Lecture.status == status)
    return list(db.execute(query.order_by(Lecture.date, Lecture.start_time, Lecture.id)).scalars())
