from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from subcover.api.deps import ensure_department_access, get_current_teacher, get_db, require_roles
from subcover.core.exceptions import ResourceNotFoundError
from subcover.models.teacher import Teacher, TeacherRole
from subcover.schemas.teacher import TeacherCreate, TeacherOut
from subcover.services.audit import log_activity

router = APIRouter()


class TeacherActiveUpdate(BaseModel):
    is_active: bool


@router.get("/", response_model=list[TeacherOut])
def list_teachers(
    department: str | None = Query(default=None, max_length=200),
    include_inactive: bool = Query(default=False),
    current_teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
) -> list[TeacherOut]:
    if current_teacher.role != TeacherRole.admin:
        department = current_teacher.department
    query = select(Teacher)
    if department:
        query = query.where(Teacher.department == department)
    if not include_inactive:
        query = query.where(Teacher.is_active.is_(True))
    return list(db.execute(query.order_by(Teacher.name, Teacher.id)).scalars())


@router.get("/me", response_model=TeacherOut)
def get_my_profile(current_teacher: Teacher = Depends(get_current_teacher)) -> TeacherOut:
    return current_teacher


@router.post("/", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreate,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> TeacherOut:
    if current_teacher.role == TeacherRole.hod:
        ensure_department_access(current_teacher, payload.department)
        if payload.role != TeacherRole.teacher:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="HODs can only add teachers")
    existing = db.execute(select(Teacher).where(Teacher.email == payload.email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Teacher email already exists")

    teacher = Teacher(**payload.model_dump())
    db.add(teacher)
    db.flush()
    log_activity(
        db,
        actor_id=current_teacher.id,
        action="teacher.create",
        entity_type="teacher",
        entity_id=teacher.id,
        details={"department": teacher.department, "role": teacher.role.value},
    )
    db.commit()
    db.refresh(teacher)
    return teacher


@router.put("/{teacher_id}/active", response_model=TeacherOut)
def set_teacher_active(
    teacher_id: str,
    payload: TeacherActiveUpdate,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> TeacherOut:
    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise ResourceNotFoundError("Teacher", teacher_id)
    ensure_department_access(current_teacher, teacher.department)
    if teacher.id == current_teacher.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate yourself")

    teacher.is_active = payload.is_active
    log_activity(
        db,
        actor_id=current_teacher.id,
        action="teacher.activate" if payload.is_active else "teacher.deactivate",
        entity_type="teacher",
        entity_id=teacher.id,
    )
    db.commit()
    db.refresh(teacher)
    return teacher
