from __future__ import annotations

from collections import Counter
from datetime import date
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from subcover.models.lecture import Lecture, LectureStatus


class WorkloadPolicy(str, Enum):
    """How busy a candidate already is on the lecture date."""

    # Substitutions already taken that day.
    daily_substitutions = "daily_substitutions"
    # Every lecture taught that day, own classes included.
    daily_load = "daily_load"


def _count_by(db: Session, column, teacher_ids: list[str], on_date: date) -> Counter:
    rows = db.execute(
        select(column, func.count(Lecture.id))
        .where(
            column.in_(teacher_ids),
            Lecture.date == on_date,
            Lecture.status != LectureStatus.cancelled,
        )
        .group_by(column)
    ).all()
    return Counter({teacher_id: count for teacher_id, count in rows})


def daily_workloads(
    db: Session,
    *,
    teacher_ids: list[str],
    on_date: date,
    policy: WorkloadPolicy,
) -> dict[str, int]:
    if not teacher_ids:
        return {}
    counts = _count_by(db, Lecture.substitute_teacher_id, teacher_ids, on_date)
    if policy == WorkloadPolicy.daily_load:
        counts += _count_by(db, Lecture.scheduled_teacher_id, teacher_ids, on_date)
    return {teacher_id: counts.get(teacher_id, 0) for teacher_id in teacher_ids}
