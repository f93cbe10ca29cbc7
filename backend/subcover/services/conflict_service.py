from __future__ import annotations

from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from subcover.models.lecture import Lecture, LectureStatus


def _conflict_query(
    *,
    on_date: date,
    start_time: str,
    end_time: str,
    teacher_id: str | None,
    room: str | None,
    exclude_lecture_id: str | None,
):
    scopes = []
    if teacher_id:
        scopes.append(Lecture.scheduled_teacher_id == teacher_id)
        scopes.append(Lecture.substitute_teacher_id == teacher_id)
    if room:
        scopes.append(Lecture.room == room)
    if not scopes:
        raise ValueError("A teacher or a room is required to check for conflicts")

    # Half-open overlap: [10:00, 11:00) and [11:00, 12:00) do not collide.
    query = select(Lecture).where(
        Lecture.date == on_date,
        Lecture.status != LectureStatus.cancelled,
        Lecture.start_time < end_time,
        Lecture.end_time > start_time,
        or_(*scopes),
    )
    if exclude_lecture_id:
        query = query.where(Lecture.id != exclude_lecture_id)
    return query.order_by(Lecture.start_time, Lecture.id)


def find_conflicts(
    db: Session,
    *,
    on_date: date,
    start_time: str,
    end_time: str,
    teacher_id: str | None = None,
    room: str | None = None,
    exclude_lecture_id: str | None = None,
) -> list[Lecture]:
    query = _conflict_query(
        on_date=on_date,
        start_time=start_time,
        end_time=end_time,
        teacher_id=teacher_id,
        room=room,
        exclude_lecture_id=exclude_lecture_id,
    )
    return list(db.execute(query).scalars())


def find_conflict(
    db: Session,
    *,
    on_date: date,
    start_time: str,
    end_time: str,
    teacher_id: str | None = None,
    room: str | None = None,
    exclude_lecture_id: str | None = None,
) -> Lecture | None:
    query = _conflict_query(
        on_date=on_date,
        start_time=start_time,
        end_time=end_time,
        teacher_id=teacher_id,
        room=room,
        exclude_lecture_id=exclude_lecture_id,
    )
    return db.execute(query.limit(1)).scalars().first()


def has_conflict(
    db: Session,
    *,
    on_date: date,
    start_time: str,
    end_time: str,
    teacher_id: str | None = None,
    room: str | None = None,
    exclude_lecture_id: str | None = None,
) -> bool:
    return (
        find_conflict(
            db,
            on_date=on_date,
            start_time=start_time,
            end_time=end_time,
            teacher_id=teacher_id,
            room=room,
            exclude_lecture_id=exclude_lecture_id,
        )
        is not None
    )


def busy_teacher_ids(
    db: Session,
    *,
    on_date: date,
    start_time: str,
    end_time: str,
    teacher_ids: list[str],
) -> set[str]:
    """Teachers among ``teacher_ids`` who teach or cover an overlapping lecture."""
    if not teacher_ids:
        return set()
    rows = db.execute(
        select(Lecture.scheduled_teacher_id, Lecture.substitute_teacher_id).where(
            Lecture.date == on_date,
            Lecture.status != LectureStatus.cancelled,
            Lecture.start_time < end_time,
            Lecture.end_time > start_time,
            or_(
                Lecture.scheduled_teacher_id.in_(teacher_ids),
                Lecture.substitute_teacher_id.in_(teacher_ids),
            ),
        )
    ).all()
    wanted = set(teacher_ids)
    busy: set[str] = set()
    for scheduled_id, substitute_id in rows:
        if scheduled_id in wanted:
            busy.add(scheduled_id)
        if substitute_id in wanted:
            busy.add(substitute_id)
    return busy


def describe_conflict(lecture: Lecture) -> dict:
    return {
        "id": lecture.id,
        "subject": lecture.subject,
        "class_year": lecture.class_year,
        "room": lecture.room,
        "date": lecture.date.isoformat(),
        "start_time": lecture.start_time,
        "end_time": lecture.end_time,
        "scheduled_teacher_id": lecture.scheduled_teacher_id,
        "substitute_teacher_id": lecture.substitute_teacher_id,
    }
