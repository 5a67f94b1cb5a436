from datetime import datetime, time, timedelta

import pytest

from facecheck.attendance import (
    REASON_TOO_SOON,
    AttendancePolicy,
    confidence_from_distance,
    late_after,
)
from facecheck.models import METHOD_FACE, STATUS_LATE, STATUS_PRESENT, AttendanceRecord

MORNING = datetime(2024, 5, 2, 7, 0, 0)


def _record(student_id, when, record_id='old'):
    return AttendanceRecord(id=record_id, student_id=student_id, student_name='Ayu', timestamp=when)


def test_first_check_in_of_day_is_accepted():
    decision = AttendancePolicy().decide('s1', 0.3, MORNING, [], student_name='Ayu')

    assert decision.accepted
    record = decision.record
    assert record.student_id == 's1'
    assert record.student_name == 'Ayu'
    assert record.status == STATUS_PRESENT
    assert record.method == METHOD_FACE
    assert record.confidence == 70
    assert record.timestamp == MORNING


def test_second_check_in_within_window_is_rejected():
    policy = AttendancePolicy()
    first = policy.decide('s1', 0.3, MORNING, []).record

    decision = policy.decide('s1', 0.3, MORNING + timedelta(seconds=59), [first])

    assert not decision.accepted
    assert decision.reason == REASON_TOO_SOON
    assert decision.previous == first
    assert decision.record is None


def test_check_ins_a_minute_apart_are_both_accepted():
    policy = AttendancePolicy()
    first = policy.decide('s1', 0.3, MORNING, []).record

    second = policy.decide('s1', 0.3, MORNING + timedelta(seconds=61), [first])

    assert second.accepted
    assert second.record.id != first.id


def test_window_boundary_is_accepted():
    history = [_record('s1', MORNING)]

    decision = AttendancePolicy().decide('s1', 0.2, MORNING + timedelta(seconds=60), history)

    assert decision.accepted


def test_record_before_midnight_does_not_block():
    just_after_midnight = datetime(2024, 5, 3, 0, 0, 10)
    history = [_record('s1', just_after_midnight - timedelta(seconds=30))]

    decision = AttendancePolicy().decide('s1', 0.2, just_after_midnight, history)

    assert decision.accepted
    assert decision.previous is None


def test_other_students_do_not_block():
    decision = AttendancePolicy().decide('s1', 0.2, MORNING, [_record('s2', MORNING)])

    assert decision.accepted


def test_latest_same_day_record_is_used():
    history = [
        _record('s1', MORNING - timedelta(hours=1), 'early'),
        _record('s1', MORNING - timedelta(seconds=10), 'recent'),
    ]

    decision = AttendancePolicy().decide('s1', 0.2, MORNING, history)

    assert decision.previous.id == 'recent'


def test_late_resolver_marks_after_cutoff():
    policy = AttendancePolicy(status_resolver=late_after(time(7, 30)))

    on_time = policy.decide('s1', 0.2, MORNING, [])
    late = policy.decide('s2', 0.2, MORNING.replace(hour=8), [])

    assert on_time.record.status == STATUS_PRESENT
    assert late.record.status == STATUS_LATE


def test_id_factory_is_used():
    policy = AttendancePolicy(id_factory=lambda: 'fixed-id')

    assert policy.decide('s1', 0.2, MORNING, []).record.id == 'fixed-id'


@pytest.mark.parametrize('distance, expected', [
    (0.0, 100),
    (0.3, 70),
    (0.55, 45),
    (1.0, 0),
    (1.4, 0),
])
def test_confidence_from_distance(distance, expected):
    assert confidence_from_distance(distance) == expected
