from datetime import date, datetime, timedelta, timezone

import pytest

from subcover.core.exceptions import InvalidTransitionError, ValidationError
from subcover.models.leave_request import LeaveRequest, LeaveStatus
from subcover.models.lecture import LectureStatus
from subcover.models.notification import Notification, NotificationKind
from subcover.models.substitute_assignment import AssignmentStatus, AssignmentType, SubstituteAssignment
from subcover.models.teacher import TeacherRole
from subcover.services.leave_lifecycle import (
    auto_approve_leave_request,
    fan_out_substitute_assignments,
    review_leave_request,
    submit_leave_request,
)
from subcover.services.notifications import NotificationDispatcher

DAY = date(2026, 2, 10)
SUBMITTED_AT = datetime(2026, 2, 10, 10, 0, tzinfo=timezone.utc)


def _submit(db, teacher, **overrides):
    values = {
        "teacher": teacher,
        "start_date": DAY,
        "end_date": DAY,
        "reason": "Fever",
        "now": SUBMITTED_AT,
        "notifier": NotificationDispatcher(),
    }
    values.update(overrides)
    request = submit_leave_request(db, **values)
    db.commit()
    return request


def test_teacher_leave_request_flow(client, make_teacher, make_lecture, auth_headers, db_session):
    hod = make_teacher("Head", role=TeacherRole.hod)
    teacher = make_teacher("Xavier")
    make_teacher("Helper")
    make_lecture(teacher, room="101")

    create_response = client.post(
        "/api/leaves",
        json={"start_date": "2026-02-10", "end_date": "2026-02-10", "leave_type": "medical", "reason": "Fever"},
        headers=auth_headers(teacher),
    )
    assert create_response.status_code == 201
    body = create_response.json()
    assert body["status"] == "pending"
    assert body["teacher_name"] == "Xavier"
    leave_id = body["id"]

    hod_inbox = client.get("/api/notifications", headers=auth_headers(hod))
    assert hod_inbox.status_code == 200
    assert [item["kind"] for item in hod_inbox.json()] == ["leave_request"]

    pending = client.get("/api/leaves/pending", headers=auth_headers(hod))
    assert [item["id"] for item in pending.json()] == [leave_id]

    review = client.put(
        f"/api/leaves/{leave_id}/review",
        json={"decision": "approve", "comments": "Get well"},
        headers=auth_headers(hod),
    )
    assert review.status_code == 200
    reviewed = review.json()
    assert reviewed["leave"]["status"] == "approved"
    assert reviewed["leave"]["reviewed_by_id"] == hod.id
    assert reviewed["assignments_created"] == 1

    assignment = db_session.query(SubstituteAssignment).one()
    assert assignment.status == AssignmentStatus.pending
    assert assignment.assignment_type == AssignmentType.auto
    deadline = assignment.response_deadline.replace(tzinfo=timezone.utc)
    assert deadline == SUBMITTED_AT + timedelta(minutes=15)

    teacher_inbox = client.get("/api/notifications", headers=auth_headers(teacher))
    assert any(item["title"] == "Leave Request Approved" for item in teacher_inbox.json())


def test_decided_leave_cannot_be_reviewed_again(client, make_teacher, auth_headers):
    hod = make_teacher("Head", role=TeacherRole.hod)
    teacher = make_teacher("Xavier")
    headers = auth_headers(teacher)

    leave_id = client.post(
        "/api/leaves",
        json={"start_date": "2026-02-11", "end_date": "2026-02-12", "reason": "Family event"},
        headers=headers,
    ).json()["id"]

    rejected = client.put(
        f"/api/leaves/{leave_id}/review",
        json={"decision": "reject"},
        headers=auth_headers(hod),
    )
    assert rejected.status_code == 200
    assert rejected.json()["leave"]["status"] == "rejected"
    assert rejected.json()["assignments_created"] == 0

    again = client.put(
        f"/api/leaves/{leave_id}/review",
        json={"decision": "approve"},
        headers=auth_headers(hod),
    )
    assert again.status_code == 409
    assert again.json()["details"]["status"] == "rejected"


def test_leave_validation_errors(client, make_teacher, auth_headers):
    teacher = make_teacher("Xavier")
    headers = auth_headers(teacher)

    past = client.post(
        "/api/leaves",
        json={"start_date": "2026-02-09", "end_date": "2026-02-09", "reason": "Too late"},
        headers=headers,
    )
    assert past.status_code == 400
    assert past.json()["message"] == "Leave dates cannot be in the past"

    reversed_range = client.post(
        "/api/leaves",
        json={"start_date": "2026-02-12", "end_date": "2026-02-11", "reason": "Backwards"},
        headers=headers,
    )
    assert reversed_range.status_code == 422


def test_department_scoping_for_review_and_proxy_requests(client, make_teacher, auth_headers):
    teacher = make_teacher("Xavier")
    other_hod = make_teacher("Other Head", department="Math", role=TeacherRole.hod)
    colleague = make_teacher("Colleague")

    proxy = client.post(
        "/api/leaves",
        json={"start_date": "2026-02-10", "end_date": "2026-02-10", "reason": "Filed for someone", "teacher_id": teacher.id},
        headers=auth_headers(colleague),
    )
    assert proxy.status_code == 403

    leave_id = client.post(
        "/api/leaves",
        json={"start_date": "2026-02-10", "end_date": "2026-02-10", "reason": "Appointment"},
        headers=auth_headers(teacher),
    ).json()["id"]

    review = client.put(
        f"/api/leaves/{leave_id}/review",
        json={"decision": "approve"},
        headers=auth_headers(other_hod),
    )
    assert review.status_code == 403

    as_teacher = client.put(
        f"/api/leaves/{leave_id}/review",
        json={"decision": "approve"},
        headers=auth_headers(colleague),
    )
    assert as_teacher.status_code == 403


def test_hod_leave_is_routed_to_admins(db_session, make_teacher):
    hod = make_teacher("Head", role=TeacherRole.hod)
    admin = make_teacher("Admin", department="Office", role=TeacherRole.admin)
    notifier = NotificationDispatcher()

    _submit(db_session, hod, notifier=notifier)

    assert [item.teacher_id for item in notifier.pending] == [admin.id]


def test_affected_lectures_must_belong_to_the_teacher(db_session, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    other = make_teacher("Other")
    foreign = make_lecture(other)

    with pytest.raises(ValidationError):
        _submit(db_session, teacher, affected_lectures=[foreign.id])


def test_fan_out_creates_one_pending_assignment_per_open_lecture(db_session, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    helper = make_teacher("Helper")
    first = make_lecture(teacher, start_time="09:00", end_time="10:00")
    second = make_lecture(teacher, on_date=DAY + timedelta(days=1), start_time="08:00", end_time="09:00")
    make_lecture(teacher, start_time="11:00", end_time="12:00", status=LectureStatus.cancelled)
    make_lecture(teacher, start_time="13:00", end_time="14:00", substitute=helper, status=LectureStatus.sub_assigned)
    make_lecture(teacher, on_date=DAY + timedelta(days=5))

    leave = _submit(db_session, teacher, end_date=DAY + timedelta(days=1))
    summary = review_leave_request(
        db_session,
        leave_id=leave.id,
        decision="approve",
        reviewer_id=helper.id,
        comments=None,
        now=SUBMITTED_AT,
        response_minutes=15,
        notifier=NotificationDispatcher(),
    )
    db_session.commit()

    assignments = db_session.query(SubstituteAssignment).all()
    assert summary.assignments_created == 2
    assert {item.lecture_id for item in assignments} == {first.id, second.id}
    assert all(item.status == AssignmentStatus.pending for item in assignments)


def test_fan_out_skips_lectures_with_a_pending_assignment(db_session, make_teacher, make_lecture):
    teacher = make_teacher("Xavier")
    make_lecture(teacher)
    leave = _submit(db_session, teacher)
    auto_approve_leave_request(
        db_session,
        leave_id=leave.id,
        now=SUBMITTED_AT,
        response_minutes=15,
        notifier=NotificationDispatcher(),
    )
    db_session.commit()

    again = fan_out_substitute_assignments(db_session, leave, now=SUBMITTED_AT, response_minutes=15)
    db_session.commit()

    assert again.assignments_created == 0
    assert len(again.skipped_lecture_ids) == 1
    pending = (
        db_session.query(SubstituteAssignment).filter(SubstituteAssignment.status == AssignmentStatus.pending).count()
    )
    assert pending == 1


def test_status_is_monotonic(db_session, make_teacher):
    teacher = make_teacher("Xavier")
    leave = _submit(db_session, teacher)
    review_leave_request(
        db_session,
        leave_id=leave.id,
        decision="reject",
        reviewer_id=teacher.id,
        comments="No cover available",
        now=SUBMITTED_AT,
        response_minutes=15,
        notifier=NotificationDispatcher(),
    )
    db_session.commit()

    assert (
        auto_approve_leave_request(
            db_session,
            leave_id=leave.id,
            now=SUBMITTED_AT + timedelta(hours=1),
            response_minutes=15,
            notifier=NotificationDispatcher(),
        )
        is None
    )
    with pytest.raises(InvalidTransitionError):
        review_leave_request(
            db_session,
            leave_id=leave.id,
            decision="approve",
            reviewer_id=teacher.id,
            comments=None,
            now=SUBMITTED_AT,
            response_minutes=15,
            notifier=NotificationDispatcher(),
        )
    db_session.rollback()

    stored = db_session.get(LeaveRequest, leave.id)
    assert stored.status == LeaveStatus.rejected
    assert stored.review_comment == "No cover available"


def test_rejection_only_notifies_the_requester(db_session, make_teacher):
    teacher = make_teacher("Xavier")
    hod = make_teacher("Head", role=TeacherRole.hod)
    leave = _submit(db_session, teacher)
    notifier = NotificationDispatcher()

    review_leave_request(
        db_session,
        leave_id=leave.id,
        decision="reject",
        reviewer_id=hod.id,
        comments=None,
        now=SUBMITTED_AT,
        response_minutes=15,
        notifier=notifier,
    )
    db_session.commit()
    delivered = notifier.deliver(db_session)

    assert delivered == 1
    stored = db_session.query(Notification).filter(Notification.kind == NotificationKind.leave_status).one()
    assert stored.teacher_id == teacher.id


def test_leave_types_are_listed(client, make_teacher, auth_headers):
    teacher = make_teacher("Xavier")

    response = client.get("/api/leaves/types", headers=auth_headers(teacher))

    assert response.status_code == 200
    assert {item["value"] for item in response.json()} == {"casual", "medical", "earned", "duty", "unpaid", "custom"}
