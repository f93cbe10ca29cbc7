from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from subcover.api.deps import get_clock, get_db, require_roles
from subcover.core.clock import Clock
from subcover.core.exceptions import ValidationError
from subcover.models.teacher import Teacher, TeacherRole
from subcover.schemas.lecture import LectureOut
from subcover.services.substitutions import lectures_needing_substitutes, teachers_on_leave_between

router = APIRouter()


class TeacherOnLeaveOut(BaseModel):
    leave_request_id: str
    teacher_id: str
    teacher_name: str
    start_date: date
    end_date: date


def _department_scope(current_teacher: Teacher, department: str | None) -> str | None:
    if current_teacher.role == TeacherRole.admin:
        return department
    return current_teacher.department


@router.get("/substitutes/needed", response_model=list[LectureOut])
def get_lectures_needing_substitutes(
    department: str | None = Query(default=None, max_length=200),
    from_date: date | None = Query(default=None),
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> list[LectureOut]:
    return lectures_needing_substitutes(
        db,
        from_date=from_date or clock().date(),
        department=_department_scope(current_teacher, department),
    )


@router.get("/substitutes/on-leave", response_model=list[TeacherOnLeaveOut])
def get_teachers_on_leave(
    start_date: date = Query(),
    end_date: date = Query(),
    department: str | None = Query(default=None, max_length=200),
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> list[TeacherOnLeaveOut]:
    if end_date < start_date:
        raise ValidationError("end_date cannot be before start_date")
    rows = teachers_on_leave_between(
        db,
        start_date=start_date,
        end_date=end_date,
        department=_department_scope(current_teacher, department),
    )
    return [
        TeacherOnLeaveOut(
            leave_request_id=leave.id,
            teacher_id=teacher.id,
            teacher_name=teacher.name,
            start_date=leave.start_date,
            end_date=leave.end_date,
        )
        for leave, teacher in rows
    ]
