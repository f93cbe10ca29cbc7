from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from subcover.api.deps import (
    ensure_department_access,
    get_app_settings,
    get_clock,
    get_current_teacher,
    get_db,
    require_roles,
)
from subcover.core.clock import Clock
from subcover.core.config import Settings
from subcover.core.exceptions import ResourceNotFoundError, ValidationError
from subcover.models.lecture import LectureStatus
from subcover.models.teacher import Teacher, TeacherRole
from subcover.schemas.lecture import (
    CandidateOut,
    ConflictCheckOut,
    LectureCancel,
    LectureCreate,
    LectureOut,
    LectureReschedule,
    MarkAbsentOut,
    MarkAbsentRequest,
    SubstituteAssign,
    TimeSlot,
)
from subcover.services.conflict_service import find_conflicts
from subcover.services.lectures import (
    cancel_lecture,
    create_lectures,
    get_lecture,
    list_lectures,
    reschedule_lecture,
)
from subcover.services.matching import rank_candidates
from subcover.services.notifications import NotificationDispatcher
from subcover.services.substitutions import assign_substitute_manually, mark_absent_today

router = APIRouter()


@router.get("/lectures", response_model=list[LectureOut])
def get_lectures(
    department: str | None = Query(default=None, max_length=200),
    teacher_id: str | None = Query(default=None, max_length=36),
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    lecture_status: LectureStatus | None = Query(default=None, alias="status"),
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> list[LectureOut]:
    if current_teacher.role == TeacherRole.teacher:
        teacher_id = current_teacher.id
        department = None
    elif current_teacher.role == TeacherRole.hod:
        department = current_teacher.department
    return list_lectures(
        db,
        department=department,
        teacher_id=teacher_id,
        from_date=from_date,
        to_date=to_date,
        status=lecture_status,
    )


@router.post("/lectures", response_model=list[LectureOut], status_code=status.HTTP_201_CREATED)
def create_lecture(
    payload: LectureCreate,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> list[LectureOut]:
    teacher = db.get(Teacher, payload.teacher_id)
    if teacher is None:
        raise ResourceNotFoundError("Teacher", payload.teacher_id)
    ensure_department_access(current_teacher, teacher.department)

    lectures = create_lectures(
        db,
        teacher=teacher,
        subject=payload.subject,
        class_year=payload.class_year,
        room=payload.room,
        start_date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        recurrence=payload.recurring.type if payload.recurring else None,
        count=payload.recurring.count if payload.recurring else 1,
        actor_id=current_teacher.id,
    )
    db.commit()
    for lecture in lectures:
        db.refresh(lecture)
    return lectures


@router.get("/lectures/conflicts", response_model=ConflictCheckOut)
def check_conflicts(
    on_date: date = Query(alias="date"),
    start_time: str = Query(),
    end_time: str = Query(),
    room: str | None = Query(default=None, max_length=100),
    teacher_id: str | None = Query(default=None, max_length=36),
    exclude_id: str | None = Query(default=None, max_length=36),
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> ConflictCheckOut:
    if not room and not teacher_id:
        raise ValidationError("Provide a room or a teacher_id to check")
    try:
        slot = TimeSlot(start_time=start_time, end_time=end_time)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    conflicts = find_conflicts(
        db,
        on_date=on_date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        teacher_id=teacher_id,
        room=room,
        exclude_lecture_id=exclude_id,
    )
    return ConflictCheckOut(
        has_conflicts=bool(conflicts),
        conflicts=[LectureOut.model_validate(item) for item in conflicts],
    )


@router.post("/lectures/mark-absent", response_model=MarkAbsentOut)
def mark_absent(
    payload: MarkAbsentRequest,
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> MarkAbsentOut:
    teacher_id = payload.teacher_id or current_teacher.id
    if teacher_id != current_teacher.id and current_teacher.role != TeacherRole.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized action")
    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise ResourceNotFoundError("Teacher", teacher_id)

    now = clock()
    report = mark_absent_today(
        db,
        teacher=teacher,
        on_date=payload.date or now.date(),
        now=now,
        settings=settings,
        actor_id=current_teacher.id,
    )
    return MarkAbsentOut(assigned_count=report.assigned_count, total=report.total, logs=report.logs)


@router.post("/lectures/{lecture_id}/substitute", response_model=LectureOut)
def assign_lecture_substitute(
    lecture_id: str,
    payload: SubstituteAssign,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> LectureOut:
    lecture = get_lecture(db, lecture_id)
    ensure_department_access(current_teacher, lecture.department)

    notifier = NotificationDispatcher()
    lecture = assign_substitute_manually(
        db,
        lecture_id=lecture.id,
        substitute_teacher_id=payload.substitute_teacher_id,
        actor_id=current_teacher.id,
        now=clock(),
        notifier=notifier,
    )
    db.commit()
    notifier.deliver(db)
    db.refresh(lecture)
    return lecture


@router.post("/lectures/{lecture_id}/reschedule", response_model=LectureOut)
def reschedule(
    lecture_id: str,
    payload: LectureReschedule,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> LectureOut:
    lecture = get_lecture(db, lecture_id)
    ensure_department_access(current_teacher, lecture.department)

    notifier = NotificationDispatcher()
    reschedule_lecture(
        db,
        lecture,
        new_date=payload.new_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        room=payload.new_room,
        actor_id=current_teacher.id,
        notifier=notifier,
    )
    db.commit()
    notifier.deliver(db)
    db.refresh(lecture)
    return lecture


@router.post("/lectures/{lecture_id}/cancel", response_model=LectureOut)
def cancel(
    lecture_id: str,
    payload: LectureCancel,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> LectureOut:
    lecture = get_lecture(db, lecture_id)
    ensure_department_access(current_teacher, lecture.department)

    notifier = NotificationDispatcher()
    cancel_lecture(
        db,
        lecture,
        reason=(payload.reason or "").strip() or None,
        actor_id=current_teacher.id,
        now=clock(),
        notifier=notifier,
    )
    db.commit()
    notifier.deliver(db)
    db.refresh(lecture)
    return lecture


@router.get("/lectures/{lecture_id}/candidates", response_model=list[CandidateOut])
def list_candidates(
    lecture_id: str,
    ignore_department: bool = Query(default=False),
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> list[CandidateOut]:
    lecture = get_lecture(db, lecture_id)
    ensure_department_access(current_teacher, lecture.department)
    if ignore_department and current_teacher.role != TeacherRole.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can search across departments")

    owner = db.get(Teacher, lecture.scheduled_teacher_id)
    return rank_candidates(
        db,
        lecture,
        department=owner.department if owner is not None else lecture.department,
        exclude_teacher_id=lecture.scheduled_teacher_id,
        policy=settings.escalation_workload_policy,
        cap=settings.escalation_workload_cap,
        ignore_department=ignore_department,
    )
