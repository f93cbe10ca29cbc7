from datetime import date, datetime, timedelta, timezone

import pytest

from subcover.core.clock import as_utc
from subcover.core.config import Settings
from subcover.core.exceptions import SubstituteRaceError
from subcover.models.activity_log import ActivityLog
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.leave_request import LeaveRequest, LeaveStatus
from subcover.models.notification import Notification, NotificationKind
from subcover.models.substitute_assignment import AssignmentStatus, SubstituteAssignment
from subcover.models.teacher import Teacher, TeacherRole
from subcover.services import escalation
from subcover.services.escalation import (
    NO_CANDIDATE_NOTE,
    EscalationScheduler,
    run_escalation_tick,
)
from subcover.services.leave_lifecycle import review_leave_request, submit_leave_request
from subcover.services.notifications import NotificationDispatcher

DAY = date(2026, 2, 10)
T0 = datetime(2026, 2, 10, 10, 0, tzinfo=timezone.utc)


def _file_leave(db, teacher, *, submitted_at=T0):
    request = submit_leave_request(
        db,
        teacher=teacher,
        start_date=DAY,
        end_date=DAY,
        reason="Sick",
        now=submitted_at,
        notifier=NotificationDispatcher(),
    )
    db.commit()
    return request


def _tick(db, settings, minutes):
    summary = run_escalation_tick(db, now=T0 + timedelta(minutes=minutes), settings=settings)
    db.expire_all()
    return summary


def test_leave_stays_pending_inside_the_approval_window(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    make_lecture(teacher, start_time="11:00", end_time="12:00")
    leave = _file_leave(db_session, teacher)

    summary = _tick(db_session, settings, 29)

    assert summary.leaves_auto_approved == 0
    assert db_session.get(LeaveRequest, leave.id).status == LeaveStatus.pending
    assert db_session.query(SubstituteAssignment).count() == 0


def test_leave_is_auto_approved_at_the_window_boundary(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    make_lecture(teacher, start_time="11:00", end_time="12:00")
    leave = _file_leave(db_session, teacher)

    summary = _tick(db_session, settings, 30)

    stored = db_session.get(LeaveRequest, leave.id)
    assert summary.leaves_auto_approved == 1
    assert stored.status == LeaveStatus.auto_approved
    assert stored.reviewed_by_id is None
    assert as_utc(stored.hod_decision_at) == T0 + timedelta(minutes=30)


def test_auto_approval_opens_assignments_with_a_fresh_deadline(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    make_teacher("Helper")
    lecture = make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)

    summary = _tick(db_session, settings, 31)

    assignment = db_session.query(SubstituteAssignment).one()
    assert summary.assignments_created == 1
    assert summary.auto_assigned == 0
    assert assignment.lecture_id == lecture.id
    assert assignment.status == AssignmentStatus.pending
    assert as_utc(assignment.response_deadline) == datetime(2026, 2, 10, 10, 46, tzinfo=timezone.utc)

    inbox = db_session.query(Notification).filter(Notification.teacher_id == teacher.id).all()
    assert [item.title for item in inbox] == ["Leave Request Auto-approved"]


def test_overdue_assignment_is_auto_assigned(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    helper = make_teacher("Helper")
    lecture = make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)

    assert _tick(db_session, settings, 45).auto_assigned == 0
    summary = _tick(db_session, settings, 46)

    assignment = db_session.query(SubstituteAssignment).one()
    stored_lecture = db_session.get(Lecture, lecture.id)
    assert summary.auto_assigned == 1
    assert assignment.status == AssignmentStatus.auto_assigned
    assert assignment.substitute_teacher_id == helper.id
    assert assignment.notes == "Auto-assigned to Helper"
    assert stored_lecture.substitute_teacher_id == helper.id
    assert stored_lecture.status == LectureStatus.sub_assigned
    assert db_session.get(Teacher, helper.id).substitute_count == 1

    kinds = {item.kind for item in db_session.query(Notification).filter(Notification.lecture_id == lecture.id)}
    assert kinds == {NotificationKind.auto_assign, NotificationKind.substitute_found}
    assert (
        db_session.query(ActivityLog).filter(ActivityLog.action == "assignment.auto_assign").count() == 1
    )


def test_overdue_assignment_without_candidates_is_unassigned(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    hod = make_teacher("Head", role=TeacherRole.hod)
    make_lecture(hod, start_time="11:00", end_time="12:00", subject="Compilers")
    lecture = make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)

    summary = _tick(db_session, settings, 46)

    assignment = db_session.query(SubstituteAssignment).one()
    assert summary.unassigned == 1
    assert assignment.status == AssignmentStatus.unassigned
    assert assignment.substitute_teacher_id is None
    assert assignment.notes == NO_CANDIDATE_NOTE
    assert db_session.get(Lecture, lecture.id).substitute_teacher_id is None

    missing = db_session.query(Notification).filter(Notification.kind == NotificationKind.substitute_missing).all()
    assert {item.teacher_id for item in missing} == {teacher.id, hod.id}


def test_covered_lecture_closes_its_assignment(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    helper = make_teacher("Helper")
    lecture = make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)

    db_session.get(Lecture, lecture.id).substitute_teacher_id = helper.id
    db_session.get(Lecture, lecture.id).status = LectureStatus.sub_assigned
    db_session.commit()

    summary = _tick(db_session, settings, 46)

    assignment = db_session.query(SubstituteAssignment).one()
    assert summary.already_covered == 1
    assert assignment.status == AssignmentStatus.assigned
    assert assignment.substitute_teacher_id == helper.id


def test_repeated_ticks_change_nothing(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    helper = make_teacher("Helper")
    make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)
    _tick(db_session, settings, 46)

    again = _tick(db_session, settings, 47)

    assert again.as_dict() == escalation.EscalationSummary().as_dict()
    assert db_session.get(Teacher, helper.id).substitute_count == 1
    assert db_session.query(SubstituteAssignment).count() == 1


def test_reviewed_leave_is_left_alone(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    hod = make_teacher("Head", role=TeacherRole.hod)
    make_lecture(teacher, start_time="11:00", end_time="12:00")
    leave = _file_leave(db_session, teacher)
    review_leave_request(
        db_session,
        leave_id=leave.id,
        decision="reject",
        reviewer_id=hod.id,
        comments=None,
        now=T0 + timedelta(minutes=10),
        response_minutes=15,
        notifier=NotificationDispatcher(),
    )
    db_session.commit()

    summary = _tick(db_session, settings, 31)

    assert summary.leaves_auto_approved == 0
    assert db_session.get(LeaveRequest, leave.id).status == LeaveStatus.rejected
    assert db_session.query(SubstituteAssignment).count() == 0


def test_failing_leave_does_not_block_the_batch(db_session, settings, make_teacher, make_lecture, monkeypatch):
    first = make_teacher("Xavier")
    second = make_teacher("Yolanda")
    broken = _file_leave(db_session, first)
    healthy = _file_leave(db_session, second, submitted_at=T0 + timedelta(minutes=1))
    original = escalation.auto_approve_leave_request

    def flaky(db, *, leave_id, **kwargs):
        if leave_id == broken.id:
            raise RuntimeError("boom")
        return original(db, leave_id=leave_id, **kwargs)

    monkeypatch.setattr(escalation, "auto_approve_leave_request", flaky)

    summary = _tick(db_session, settings, 40)

    assert summary.errors == 1
    assert summary.leaves_auto_approved == 1
    assert db_session.get(LeaveRequest, broken.id).status == LeaveStatus.pending
    assert db_session.get(LeaveRequest, healthy.id).status == LeaveStatus.auto_approved


def test_failing_assignment_is_retried_next_tick(db_session, settings, make_teacher, make_lecture, monkeypatch):
    teacher = make_teacher("Xavier")
    helper = make_teacher("Helper")
    make_lecture(teacher, start_time="11:00", end_time="12:00")
    make_lecture(teacher, start_time="13:00", end_time="14:00", subject="Databases")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)
    failures = []
    original = escalation.resolve_overdue_assignment

    def flaky(db, assignment_id, **kwargs):
        if not failures:
            failures.append(assignment_id)
            raise RuntimeError("boom")
        return original(db, assignment_id, **kwargs)

    monkeypatch.setattr(escalation, "resolve_overdue_assignment", flaky)

    summary = _tick(db_session, settings, 46)

    assert summary.errors == 1
    assert summary.auto_assigned == 1
    assert db_session.get(SubstituteAssignment, failures[0]).status == AssignmentStatus.pending

    retry = _tick(db_session, settings, 47)

    assert retry.auto_assigned == 1
    assert db_session.get(Teacher, helper.id).substitute_count == 2


def test_lost_race_is_deferred(db_session, settings, make_teacher, make_lecture, monkeypatch):
    teacher = make_teacher("Xavier")
    helper = make_teacher("Helper")
    lecture = make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)

    def lose_race(db, target, candidate, **kwargs):
        raise SubstituteRaceError(target.id)

    monkeypatch.setattr(escalation, "assign_substitute", lose_race)

    summary = _tick(db_session, settings, 46)

    assert summary.deferred == 1
    assert summary.auto_assigned == 0
    assert db_session.query(SubstituteAssignment).one().status == AssignmentStatus.pending
    assert db_session.get(Lecture, lecture.id).substitute_teacher_id is None
    assert db_session.get(Teacher, helper.id).substitute_count == 0


def test_cancelled_lecture_assignment_is_closed(db_session, settings, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    make_teacher("Helper")
    lecture = make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    _tick(db_session, settings, 31)

    db_session.get(Lecture, lecture.id).status = LectureStatus.cancelled
    db_session.commit()

    summary = _tick(db_session, settings, 46)

    assignment = db_session.query(SubstituteAssignment).one()
    assert summary.unassigned == 1
    assert assignment.status == AssignmentStatus.unassigned
    assert assignment.notes == "Lecture no longer scheduled"


def test_scheduler_run_once_uses_its_clock(session_factory, db_session, settings, clock, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    make_lecture(teacher, start_time="11:00", end_time="12:00")
    _file_leave(db_session, teacher)
    clock.now = T0 + timedelta(minutes=31)
    scheduler = EscalationScheduler(session_factory, settings=settings, clock=clock)

    summary = scheduler.run_once()

    assert summary.leaves_auto_approved == 1
    assert scheduler.last_run_at == clock.now
    assert scheduler.last_summary is summary


def test_scheduler_start_and_stop(session_factory, clock):
    scheduler = EscalationScheduler(
        session_factory,
        settings=Settings(escalation_enabled=True, escalation_interval_seconds=60),
        clock=clock,
    )

    scheduler.start()
    try:
        assert scheduler.is_running
        assert scheduler.interval_seconds == 60
    finally:
        scheduler.stop(timeout=5)

    assert not scheduler.is_running


@pytest.mark.parametrize("interval", [0, -5])
def test_scheduler_interval_must_be_positive(interval):
    with pytest.raises(ValueError):
        Settings(escalation_interval_seconds=interval)
