from datetime import date

import pytest

from subcover.core.exceptions import SubstituteRaceError
from subcover.models.leave_request import LeaveRequest, LeaveStatus
from subcover.models.lecture import Lecture, LectureStatus
from subcover.models.notification import NotificationKind
from subcover.models.teacher import Teacher, TeacherRole
from subcover.services.matching import Candidate, assign_substitute, find_substitute, rank_candidates
from subcover.services.notifications import NotificationDispatcher
from subcover.services.workload import WorkloadPolicy, daily_workloads

DAY = date(2026, 2, 10)


def _find(db, lecture, *, policy=WorkloadPolicy.daily_load, cap=4):
    return find_substitute(
        db,
        lecture,
        department="CS",
        exclude_teacher_id=lecture.scheduled_teacher_id,
        policy=policy,
        cap=cap,
    )


def test_lower_workload_wins(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    light = make_teacher("Yara")
    busy = make_teacher("Zane")
    make_lecture(busy, start_time="11:00", end_time="12:00")
    make_lecture(busy, start_time="13:00", end_time="14:00")
    lecture = make_lecture(absent, room="101")

    candidate = _find(db_session, lecture)

    assert candidate is not None
    assert candidate.teacher_id == light.id
    assert candidate.workload == 0


def test_no_free_teacher_returns_none(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    for name in ("Yara", "Zane"):
        make_lecture(make_teacher(name), start_time="08:30", end_time="09:30")
    lecture = make_lecture(absent)

    assert _find(db_session, lecture) is None


def test_selected_substitute_is_sound(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    make_teacher("Inactive", is_active=False)
    make_teacher("Elsewhere", department="Math")
    clashing = make_teacher("Clash")
    make_lecture(clashing, start_time="09:45", end_time="10:45")
    free = make_teacher("Free")
    lecture = make_lecture(absent)

    ranked = rank_candidates(
        db_session,
        lecture,
        department="CS",
        exclude_teacher_id=absent.id,
        policy=WorkloadPolicy.daily_load,
        cap=4,
    )

    assert [item.teacher_id for item in ranked] == [free.id]


def test_ignore_department_widens_the_pool(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    outsider = make_teacher("Outsider", department="Math")
    lecture = make_lecture(absent)

    ranked = rank_candidates(
        db_session,
        lecture,
        department="CS",
        exclude_teacher_id=absent.id,
        policy=WorkloadPolicy.daily_load,
        cap=4,
        ignore_department=True,
    )

    assert [item.teacher_id for item in ranked] == [outsider.id]


def test_workload_cap_excludes_saturated_teachers(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    helper = make_teacher("Helper")
    other = make_teacher("Other")
    make_lecture(other, start_time="11:00", end_time="12:00", substitute=helper, status=LectureStatus.sub_assigned)
    lecture = make_lecture(absent)

    # One substitution already taken that day hits the daily_substitutions cap of 1.
    assert _find(db_session, lecture, policy=WorkloadPolicy.daily_substitutions, cap=1).teacher_id == other.id

    # Under daily_load both carry one lecture, so the cap of 1 rules both out.
    assert _find(db_session, lecture, policy=WorkloadPolicy.daily_load, cap=1) is None


def test_daily_workloads_by_policy(db_session, make_teacher, make_lecture):
    owner = make_teacher("Owner")
    helper = make_teacher("Helper")
    make_lecture(helper, start_time="08:00", end_time="09:00")
    make_lecture(owner, start_time="11:00", end_time="12:00", substitute=helper, status=LectureStatus.sub_assigned)
    make_lecture(helper, start_time="14:00", end_time="15:00", status=LectureStatus.cancelled)

    subs = daily_workloads(
        db_session, teacher_ids=[helper.id], on_date=DAY, policy=WorkloadPolicy.daily_substitutions
    )
    load = daily_workloads(db_session, teacher_ids=[helper.id], on_date=DAY, policy=WorkloadPolicy.daily_load)

    assert subs == {helper.id: 1}
    assert load == {helper.id: 2}


def test_ties_break_on_substitute_count_then_name(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    make_teacher("Bob", substitute_count=2)
    alice = make_teacher("alice", substitute_count=1)
    carol = make_teacher("Carol", substitute_count=1)
    lecture = make_lecture(absent)

    ranked = rank_candidates(
        db_session,
        lecture,
        department="CS",
        exclude_teacher_id=absent.id,
        policy=WorkloadPolicy.daily_load,
        cap=4,
    )

    assert [item.name for item in ranked] == ["alice", "Carol", "Bob"]
    assert ranked[0].teacher_id == alice.id
    assert ranked[1].teacher_id == carol.id


def test_teacher_on_full_day_leave_is_not_a_candidate(db_session, make_teacher, make_lecture, clock):
    absent = make_teacher("Xavier")
    away = make_teacher("Away")
    present = make_teacher("Present")
    db_session.add(
        LeaveRequest(
            teacher_id=away.id,
            department="CS",
            start_date=DAY,
            end_date=DAY,
            reason="Conference",
            status=LeaveStatus.approved,
            submitted_at=clock(),
        )
    )
    db_session.commit()
    lecture = make_lecture(absent)

    candidate = _find(db_session, lecture)

    assert candidate.teacher_id == present.id


def test_assign_substitute_stamps_lecture_and_notifies(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    helper = make_teacher("Helper")
    lecture = make_lecture(absent)
    notifier = NotificationDispatcher()

    candidate = _find(db_session, lecture)
    assign_substitute(db_session, lecture, candidate, notifier=notifier, absent_teacher_name="Xavier")
    db_session.commit()

    stored = db_session.get(Lecture, lecture.id)
    assert stored.substitute_teacher_id == helper.id
    assert stored.status == LectureStatus.sub_assigned
    assert db_session.get(Teacher, helper.id).substitute_count == 1
    kinds = {(item.teacher_id, item.kind) for item in notifier.pending}
    assert kinds == {(helper.id, NotificationKind.auto_assign), (absent.id, NotificationKind.substitute_found)}


def test_assign_substitute_refuses_a_covered_lecture(db_session, make_teacher, make_lecture):
    absent = make_teacher("Xavier")
    first = make_teacher("First")
    second = make_teacher("Second", role=TeacherRole.teacher)
    lecture = make_lecture(absent, substitute=first, status=LectureStatus.sub_assigned)
    candidate = Candidate(teacher_id=second.id, name="Second", department="CS", workload=0, substitute_count=0)

    with pytest.raises(SubstituteRaceError):
        assign_substitute(db_session, lecture, candidate, notifier=NotificationDispatcher())
    db_session.rollback()

    assert db_session.get(Lecture, lecture.id).substitute_teacher_id == first.id
    assert db_session.get(Teacher, second.id).substitute_count == 0
