"""Time-boxed escalation of leave requests and substitute assignments.

Every tick auto-approves leave nobody reviewed within the approval window,
then resolves pending assignments whose response deadline has passed through
the matching engine. Rows are handled one at a time, each in its own
transaction, so a failing row is logged and left for the next tick while the
rest of the batch goes through.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
import logging
import threading

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from subcover.core.clock import Clock, utc_now
from subcover.core.config import Settings
from subcover.core.exceptions import SubstituteRaceError
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.leave_request import LeaveRequest, LeaveStatus
from subcover.models.notification import NotificationKind, NotificationPriority
from subcover.models.substitute_assignment import AssignmentStatus, SubstituteAssignment
from subcover.models.teacher import Teacher
from subcover.services.audit import log_activity
from subcover.services.leave_lifecycle import auto_approve_leave_request, department_hod_ids
from subcover.services.matching import assign_substitute, find_substitute
from subcover.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

NO_CANDIDATE_NOTE = "No available teachers found"


class ResolutionOutcome(str, Enum):
    auto_assigned = "auto_assigned"
    unassigned = "unassigned"
    already_covered = "already_covered"
    skipped = "skipped"


@dataclass
class EscalationSummary:
    leaves_auto_approved: int = 0
    assignments_created: int = 0
    auto_assigned: int = 0
    unassigned: int = 0
    already_covered: int = 0
    deferred: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _close_assignment(
    db: Session,
    assignment_id: str,
    *,
    status: AssignmentStatus,
    now: datetime,
    notes: str,
    substitute_teacher_id: str | None = None,
) -> bool:
    result = db.execute(
        update(SubstituteAssignment)
        .where(
            SubstituteAssignment.id == assignment_id,
            SubstituteAssignment.status == AssignmentStatus.pending,
        )
        .values(
            status=status,
            substitute_teacher_id=substitute_teacher_id,
            resolved_at=now,
            notes=notes,
        )
    )
    return result.rowcount == 1


def resolve_overdue_assignment(
    db: Session,
    assignment_id: str,
    *,
    now: datetime,
    settings: Settings,
    notifier: NotificationDispatcher,
) -> ResolutionOutcome:
    """Resolve one pending assignment. The caller commits, or rolls back on error."""
    assignment = db.get(SubstituteAssignment, assignment_id)
    if assignment is None or assignment.status != AssignmentStatus.pending:
        return ResolutionOutcome.skipped

    lecture = db.get(Lecture, assignment.lecture_id)
    if lecture is None or lecture.status in (LectureStatus.cancelled, LectureStatus.completed):
        note = "Lecture no longer scheduled" if lecture is not None else "Lecture no longer exists"
        if not _close_assignment(db, assignment_id, status=AssignmentStatus.unassigned, now=now, notes=note):
            return ResolutionOutcome.skipped
        return ResolutionOutcome.unassigned

    if lecture.substitute_teacher_id is not None:
        if not _close_assignment(
            db,
            assignment_id,
            status=AssignmentStatus.assigned,
            now=now,
            notes="Lecture already covered",
            substitute_teacher_id=lecture.substitute_teacher_id,
        ):
            return ResolutionOutcome.skipped
        return ResolutionOutcome.already_covered

    original = db.get(Teacher, assignment.original_teacher_id)
    department = original.department if original is not None else lecture.department
    candidate = find_substitute(
        db,
        lecture,
        department=department,
        exclude_teacher_id=assignment.original_teacher_id,
        policy=settings.escalation_workload_policy,
        cap=settings.escalation_workload_cap,
    )

    if candidate is None:
        if not _close_assignment(
            db, assignment_id, status=AssignmentStatus.unassigned, now=now, notes=NO_CANDIDATE_NOTE
        ):
            return ResolutionOutcome.skipped
        when = f"{lecture.date.isoformat()} at {lecture.start_time}"
        notifier.notify(
            assignment.original_teacher_id,
            NotificationKind.substitute_missing,
            "No Substitute Available",
            f"No colleague is free to cover {lecture.subject} on {when}.",
            NotificationPriority.high,
            lecture_id=lecture.id,
        )
        notifier.notify_many(
            department_hod_ids(db, department),
            NotificationKind.substitute_missing,
            "Lecture Needs Cover",
            f"{lecture.subject} ({lecture.class_year}) on {when} has no substitute.",
            NotificationPriority.high,
            exclude_teacher_id=assignment.original_teacher_id,
        )
        log_activity(
            db,
            actor_id=None,
            action="assignment.unassigned",
            entity_type="substitute_assignment",
            entity_id=assignment_id,
            details={"lecture_id": lecture.id},
        )
        logger.warning("No substitute available for lecture %s (assignment %s)", lecture.id, assignment_id)
        return ResolutionOutcome.unassigned

    if not _close_assignment(
        db,
        assignment_id,
        status=AssignmentStatus.auto_assigned,
        now=now,
        notes=f"Auto-assigned to {candidate.name}",
        substitute_teacher_id=candidate.teacher_id,
    ):
        return ResolutionOutcome.skipped
    assign_substitute(
        db,
        lecture,
        candidate,
        notifier=notifier,
        absent_teacher_name=original.name if original is not None else None,
    )
    log_activity(
        db,
        actor_id=None,
        action="assignment.auto_assign",
        entity_type="substitute_assignment",
        entity_id=assignment_id,
        details={"lecture_id": lecture.id, "substitute_teacher_id": candidate.teacher_id},
    )
    logger.info("Auto-assigned %s to lecture %s", candidate.teacher_id, lecture.id)
    return ResolutionOutcome.auto_assigned


def escalate_stale_leave_requests(
    db: Session,
    *,
    now: datetime,
    settings: Settings,
    summary: EscalationSummary | None = None,
) -> EscalationSummary:
    summary = summary or EscalationSummary()
    cutoff = now - timedelta(minutes=settings.leave_auto_approve_minutes)
    leave_ids = list(
        db.execute(
            select(LeaveRequest.id)
            .where(LeaveRequest.status == LeaveStatus.pending, LeaveRequest.submitted_at <= cutoff)
            .order_by(LeaveRequest.submitted_at, LeaveRequest.id)
        ).scalars()
    )

    for leave_id in leave_ids:
        notifier = NotificationDispatcher()
        try:
            fan_out = auto_approve_leave_request(
                db,
                leave_id=leave_id,
                now=now,
                response_minutes=settings.assignment_response_minutes,
                notifier=notifier,
            )
            db.commit()
        except Exception:
            db.rollback()
            summary.errors += 1
            logger.exception("Auto-approval failed for leave request %s", leave_id)
            continue

        if fan_out is None:
            continue
        summary.leaves_auto_approved += 1
        summary.assignments_created += fan_out.assignments_created
        logger.info(
            "Leave request %s auto-approved, %d assignment(s) opened",
            leave_id,
            fan_out.assignments_created,
        )
        notifier.deliver(db)
    return summary


def escalate_overdue_assignments(
    db: Session,
    *,
    now: datetime,
    settings: Settings,
    summary: EscalationSummary | None = None,
) -> EscalationSummary:
    summary = summary or EscalationSummary()
    assignment_ids = list(
        db.execute(
            select(SubstituteAssignment.id)
            .where(
                SubstituteAssignment.status == AssignmentStatus.pending,
                SubstituteAssignment.response_deadline <= now,
            )
            .order_by(SubstituteAssignment.response_deadline, SubstituteAssignment.id)
        ).scalars()
    )

    for assignment_id in assignment_ids:
        notifier = NotificationDispatcher()
        try:
            outcome = resolve_overdue_assignment(
                db, assignment_id, now=now, settings=settings, notifier=notifier
            )
            db.commit()
        except SubstituteRaceError:
            db.rollback()
            summary.deferred += 1
            logger.info("Assignment %s lost a lecture race, retrying next tick", assignment_id)
            continue
        except Exception:
            db.rollback()
            summary.errors += 1
            logger.exception("Escalation failed for assignment %s", assignment_id)
            continue

        if outcome == ResolutionOutcome.auto_assigned:
            summary.auto_assigned += 1
        elif outcome == ResolutionOutcome.unassigned:
            summary.unassigned += 1
        elif outcome == ResolutionOutcome.already_covered:
            summary.already_covered += 1
        notifier.deliver(db)
    return summary


def run_escalation_tick(db: Session, *, now: datetime, settings: Settings) -> EscalationSummary:
    summary = EscalationSummary()
    escalate_stale_leave_requests(db, now=now, settings=settings, summary=summary)
    escalate_overdue_assignments(db, now=now, settings=settings, summary=summary)
    return summary


class EscalationScheduler:
    """Runs escalation ticks on a background thread until stopped.

    The first tick fires immediately on start so rows that went overdue while
    the process was down are picked up without waiting a full interval.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock
        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.last_run_at: datetime | None = None
        self.last_summary: EscalationSummary | None = None

    @property
    def interval_seconds(self) -> int:
        return self._settings.escalation_interval_seconds

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="escalation-scheduler", daemon=True)
        self._thread.start()
        logger.info("Escalation scheduler started (interval %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout if timeout is not None else self.interval_seconds + 5)
        self._thread = None
        logger.info("Escalation scheduler stopped")

    def run_once(self, now: datetime | None = None, *, db: Session | None = None) -> EscalationSummary:
        """Run one tick under the tick lock, on ``db`` when given or on a fresh session."""
        now = now or self._clock()
        with self._tick_lock:
            session = db if db is not None else self._session_factory()
            try:
                summary = run_escalation_tick(session, now=now, settings=self._settings)
            finally:
                if db is None:
                    session.close()
        self.last_run_at = now
        self.last_summary = summary
        if summary.errors:
            logger.warning("Escalation tick at %s finished with %d error(s)", now.isoformat(), summary.errors)
        return summary

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Escalation tick failed")
            self._stop_event.wait(self.interval_seconds)
