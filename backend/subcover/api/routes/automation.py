from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from subcover.api.deps import (
    ensure_department_access,
    get_app_settings,
    get_clock,
    get_db,
    get_scheduler,
    require_roles,
)
from subcover.core.clock import Clock
from subcover.core.config import Settings
from subcover.core.exceptions import ResourceNotFoundError
from subcover.models.activity_log import ActivityLog
from subcover.models.lecture import Lecture
from subcover.models.leave_request import LeaveRequest, LeaveStatus
from subcover.models.substitute_assignment import AssignmentStatus, SubstituteAssignment
from subcover.models.teacher import Teacher, TeacherRole
from subcover.schemas.assignment import (
    ActivityLogOut,
    AssignmentOverride,
    AutomationStatusOut,
    EscalationSummaryOut,
    PendingAssignmentOut,
    SubstituteAssignmentOut,
)
from subcover.services.escalation import EscalationScheduler, run_escalation_tick
from subcover.services.notifications import NotificationDispatcher
from subcover.services.substitutions import override_assignment, pending_assignments

router = APIRouter()


@router.get("/automation/pending", response_model=list[PendingAssignmentOut])
def list_pending_assignments(
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> list[PendingAssignmentOut]:
    department = None if current_teacher.role == TeacherRole.admin else current_teacher.department
    return pending_assignments(db, now=clock(), department=department)


@router.post("/automation/override", response_model=SubstituteAssignmentOut)
def override(
    payload: AssignmentOverride,
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SubstituteAssignmentOut:
    assignment = db.get(SubstituteAssignment, payload.assignment_id)
    if assignment is None:
        raise ResourceNotFoundError("Substitute assignment", payload.assignment_id)
    lecture = db.get(Lecture, assignment.lecture_id)
    if lecture is not None:
        ensure_department_access(current_teacher, lecture.department)

    notifier = NotificationDispatcher()
    assignment = override_assignment(
        db,
        assignment_id=assignment.id,
        substitute_teacher_id=payload.substitute_teacher_id,
        actor_id=current_teacher.id,
        now=clock(),
        notifier=notifier,
    )
    db.commit()
    notifier.deliver(db)
    db.refresh(assignment)
    return assignment


@router.get("/automation/status", response_model=AutomationStatusOut)
def automation_status(
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
    scheduler: EscalationScheduler | None = Depends(get_scheduler),
) -> AutomationStatusOut:
    now = clock()
    pending_leaves = db.execute(
        select(func.count(LeaveRequest.id)).where(LeaveRequest.status == LeaveStatus.pending)
    ).scalar_one()
    pending = db.execute(
        select(func.count(SubstituteAssignment.id)).where(SubstituteAssignment.status == AssignmentStatus.pending)
    ).scalar_one()
    overdue = db.execute(
        select(func.count(SubstituteAssignment.id)).where(
            SubstituteAssignment.status == AssignmentStatus.pending,
            SubstituteAssignment.response_deadline <= now,
        )
    ).scalar_one()

    last_summary = None
    if scheduler is not None and scheduler.last_summary is not None:
        last_summary = EscalationSummaryOut(**scheduler.last_summary.as_dict())
    return AutomationStatusOut(
        system_active=scheduler is not None and scheduler.is_running,
        interval_seconds=settings.escalation_interval_seconds,
        leave_auto_approve_minutes=settings.leave_auto_approve_minutes,
        assignment_response_minutes=settings.assignment_response_minutes,
        pending_leave_requests=pending_leaves,
        pending_assignments=pending,
        overdue_assignments=overdue,
        last_run_at=scheduler.last_run_at if scheduler is not None else None,
        last_summary=last_summary,
    )


@router.get("/automation/logs", response_model=list[ActivityLogOut])
def automation_logs(
    limit: int = Query(default=50, ge=1, le=500),
    current_teacher: Teacher = Depends(require_roles(TeacherRole.hod, TeacherRole.admin)),
    db: Session = Depends(get_db),
) -> list[ActivityLogOut]:
    # Scheduler actions carry no actor; overrides are the human side of the same flow.
    query = (
        select(ActivityLog)
        .where(or_(ActivityLog.actor_id.is_(None), ActivityLog.action == "assignment.override"))
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id)
        .limit(limit)
    )
    return list(db.execute(query).scalars())


@router.post("/automation/run", response_model=EscalationSummaryOut)
def run_automation(
    current_teacher: Teacher = Depends(require_roles(TeacherRole.admin)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
    scheduler: EscalationScheduler | None = Depends(get_scheduler),
) -> EscalationSummaryOut:
    # Going through the scheduler serialises with background ticks and updates its status.
    if scheduler is not None:
        summary = scheduler.run_once(clock(), db=db)
    else:
        summary = run_escalation_tick(db, now=clock(), settings=settings)
    return EscalationSummaryOut(**summary.as_dict())
