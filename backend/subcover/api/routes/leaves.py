from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
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
from subcover.core.exceptions import ResourceNotFoundError
from subcover.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from subcover.models.teacher import Teacher, TeacherRole
from subcover.schemas.leave import (
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveReview,
    LeaveReviewOut,
    LeaveTypeOut,
)
from subcover.services.leave_lifecycle import review_leave_request, submit_leave_request
from subcover.services.notifications import NotificationDispatcher

router = APIRouter()


def _hydrate_leave_requests(db: Session, requests: list[LeaveRequest]) -> list[LeaveRequestOut]:
    teacher_ids = {item.teacher_id for item in requests}
    names = {}
    if teacher_ids:
        names = dict(db.execute(select(Teacher.id, Teacher.name).where(Teacher.id.in_(teacher_ids))).all())
    payload = []
    for item in requests:
        out = LeaveRequestOut.model_validate(item)
        out.teacher_name = names.get(item.teacher_id)
        payload.append(out)
    return payload


@router.get("/leaves/types", response_model=list[LeaveTypeOut])
def list_leave_types(current_teacher: Teacher = Depends(get_current_teacher)) -> list[LeaveTypeOut]:
    return [LeaveTypeOut(value=item, label=item.value.replace("_", " ").title()) for item in LeaveType]


@router.get("/leaves", response_model=list[LeaveRequestOut])
def list_leave_requests(
    leave_status: LeaveStatus | None = Query(default=None, alias="status"),
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> list[LeaveRequestOut]:
    query = select(LeaveRequest)
    if current_teacher.role == TeacherRole.teacher:
        query = query.where(LeaveRequest.teacher_id == current_teacher.id)
    elif current_teacher.role == TeacherRole.hod:
        query = query.where(LeaveRequest.department == current_teacher.department)
    if leave_status is not None:
        query = query.where(LeaveRequest.status == leave_status)
    query = query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.submitted_at.desc())
    return _hydrate_leave_requests(db, list(db.execute(query).scalars()))


@router.get("/leaves/pending", response_model=list[LeaveRequestOut])
def list_pending_leave_requests(
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> list[LeaveRequestOut]:
    query = select(LeaveRequest).where(LeaveRequest.status == LeaveStatus.pending)
    if current_teacher.role == TeacherRole.hod:
        query = query.where(
            LeaveRequest.department == current_teacher.department,
            LeaveRequest.teacher_id != current_teacher.id,
        )
    query = query.order_by(LeaveRequest.submitted_at, LeaveRequest.id)
    return _hydrate_leave_requests(db, list(db.execute(query).scalars()))


@router.post(
    "/leaves",
    response_model=LeaveRequestOut,
    status_code=status.HTTP_201_CREATED,
)
def create_leave_request(
    payload: LeaveRequestCreate,
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> LeaveRequestOut:
    teacher = current_teacher
    if payload.teacher_id and payload.teacher_id != current_teacher.id:
        if current_teacher.role == TeacherRole.teacher:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only request leave for yourself")
        teacher = db.get(Teacher, payload.teacher_id)
        if teacher is None:
            raise ResourceNotFoundError("Teacher", payload.teacher_id)
        ensure_department_access(current_teacher, teacher.department)

    notifier = NotificationDispatcher()
    request = submit_leave_request(
        db,
        teacher=teacher,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        leave_type=payload.leave_type,
        affected_lectures=payload.affected_lectures,
        now=clock(),
        notifier=notifier,
        submitted_by_id=current_teacher.id,
    )
    db.commit()
    notifier.deliver(db)
    db.refresh(request)
    return _hydrate_leave_requests(db, [request])[0]


@router.put("/leaves/{leave_id}/review", response_model=LeaveReviewOut)
def review_leave(
    leave_id: str,
    payload: LeaveReview,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> LeaveReviewOut:
    request = db.get(LeaveRequest, leave_id)
    if request is None:
        raise ResourceNotFoundError("Leave request", leave_id)
    ensure_department_access(current_teacher, request.department)
    if current_teacher.role == TeacherRole.hod and request.teacher_id == current_teacher.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot review your own leave")

    notifier = NotificationDispatcher()
    summary = review_leave_request(
        db,
        leave_id=leave_id,
        decision=payload.decision,
        reviewer_id=current_teacher.id,
        comments=payload.comments,
        now=clock(),
        response_minutes=settings.assignment_response_minutes,
        notifier=notifier,
    )
    db.commit()
    notifier.deliver(db)
    db.refresh(request)
    return LeaveReviewOut(
        leave=_hydrate_leave_requests(db, [request])[0],
        assignments_created=summary.assignments_created if summary else 0,
        skipped_lecture_ids=summary.skipped_lecture_ids if summary else [],
    )
