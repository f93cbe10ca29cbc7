"""Substitute eligibility and selection.

A candidate for a lecture must belong to the absent teacher's department, be
active, be someone other than the absent teacher, be free for the whole
lecture interval, not be on accepted full-day leave that date, and sit below
the workload cap of the policy in force. Eligible candidates are ranked by
that day's workload, then by how many substitutions they have taken overall,
then by name, so the same snapshot always yields the same pick.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from subcover.core.exceptions import SubstituteRaceError
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.leave_request import ACCEPTED_LEAVE_STATUSES, LeaveRequest
from subcover.models.notification import NotificationKind, NotificationPriority
from subcover.models.teacher import Teacher
from subcover.services.conflict_service import busy_teacher_ids
from subcover.services.notifications import NotificationDispatcher
from subcover.services.workload import WorkloadPolicy, daily_workloads


@dataclass(frozen=True)
class Candidate:
    teacher_id: str
    name: str
    department: str
    workload: int
    substitute_count: int


def teachers_on_leave(db: Session, *, on_date: date, teacher_ids: list[str]) -> set[str]:
    if not teacher_ids:
        return set()
    rows = db.execute(
        select(LeaveRequest.teacher_id, LeaveRequest.affected_lectures).where(
            LeaveRequest.teacher_id.in_(teacher_ids),
            LeaveRequest.status.in_(ACCEPTED_LEAVE_STATUSES),
            LeaveRequest.start_date <= on_date,
            LeaveRequest.end_date >= on_date,
        )
    ).all()
    # Ad-hoc leave only frees specific lectures; the teacher is otherwise around.
    return {teacher_id for teacher_id, affected in rows if not affected}


def rank_candidates(
    db: Session,
    lecture: Lecture,
    *,
    department: str,
    exclude_teacher_id: str,
    policy: WorkloadPolicy,
    cap: int,
    ignore_department: bool = False,
) -> list[Candidate]:
    query = select(Teacher).where(
        Teacher.is_active.is_(True),
        Teacher.id != exclude_teacher_id,
    )
    if not ignore_department:
        query = query.where(Teacher.department == department)
    teachers = list(db.execute(query).scalars())
    teacher_ids = [item.id for item in teachers]

    busy = busy_teacher_ids(
        db,
        on_date=lecture.date,
        start_time=lecture.start_time,
        end_time=lecture.end_time,
        teacher_ids=teacher_ids,
    )
    absent = teachers_on_leave(db, on_date=lecture.date, teacher_ids=teacher_ids)
    workloads = daily_workloads(db, teacher_ids=teacher_ids, on_date=lecture.date, policy=policy)

    ranked: list[Candidate] = []
    for teacher in teachers:
        if teacher.id in busy or teacher.id in absent:
            continue
        workload = workloads.get(teacher.id, 0)
        if workload >= cap:
            continue
        ranked.append(
            Candidate(
                teacher_id=teacher.id,
                name=teacher.name,
                department=teacher.department,
                workload=workload,
                substitute_count=teacher.substitute_count,
            )
        )

    ranked.sort(key=lambda item: (item.workload, item.substitute_count, item.name.lower(), item.teacher_id))
    return ranked


def find_substitute(
    db: Session,
    lecture: Lecture,
    *,
    department: str,
    exclude_teacher_id: str,
    policy: WorkloadPolicy,
    cap: int,
) -> Candidate | None:
    ranked = rank_candidates(
        db,
        lecture,
        department=department,
        exclude_teacher_id=exclude_teacher_id,
        policy=policy,
        cap=cap,
    )
    return ranked[0] if ranked else None


def assign_substitute(
    db: Session,
    lecture: Lecture,
    candidate: Candidate,
    *,
    notifier: NotificationDispatcher,
    absent_teacher_name: str | None = None,
) -> None:
    """Stamp the lecture with ``candidate`` and bump their substitution count.

    The write only lands while the lecture is still scheduled and uncovered.
    Raises SubstituteRaceError otherwise; the caller owns the rollback.
    """
    result = db.execute(
        update(Lecture)
        .where(
            Lecture.id == lecture.id,
            Lecture.substitute_teacher_id.is_(None),
            Lecture.status == LectureStatus.scheduled,
        )
        .values(substitute_teacher_id=candidate.teacher_id, status=LectureStatus.sub_assigned)
    )
    if result.rowcount == 0:
        raise SubstituteRaceError(lecture.id)

    db.execute(
        update(Teacher)
        .where(Teacher.id == candidate.teacher_id)
        .values(substitute_count=Teacher.substitute_count + 1)
    )

    owner = absent_teacher_name or "a colleague"
    when = f"{lecture.date.isoformat()} at {lecture.start_time}"
    notifier.notify(
        candidate.teacher_id,
        NotificationKind.auto_assign,
        "New Substitution Assigned",
        f"You have been assigned {owner}'s class: {lecture.subject} ({lecture.class_year}) on {when}.",
        NotificationPriority.high,
        lecture_id=lecture.id,
    )
    notifier.notify(
        lecture.scheduled_teacher_id,
        NotificationKind.substitute_found,
        "Substitute Found",
        f"{candidate.name} will cover {lecture.subject} on {when}.",
        NotificationPriority.normal,
        lecture_id=lecture.id,
    )
