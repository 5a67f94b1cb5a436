import json
from datetime import datetime

import pytest

from facecheck.models import (
    METHOD_MANUAL,
    STATUS_LATE,
    AttendanceRecord,
    Student,
    parse_timestamp,
)


def test_student_json_round_trip_keeps_descriptor_and_timestamp():
    student = Student(
        id='s1',
        name='Ayu',
        nis='1001',
        class_name='10 IPA 1',
        face_descriptor=[0.1, -0.2, 0.3],
        registered_at=datetime(2024, 5, 2, 7, 15, 30),
        extra_descriptors=[[0.2, 0.2, 0.2]],
    )

    restored = Student.from_dict(json.loads(json.dumps(student.to_dict())))

    assert restored == student


def test_student_without_descriptor_serializes_null():
    student = Student(id='s2', name='Budi')

    data = student.to_dict()

    assert data['face_descriptor'] is None
    assert Student.from_dict(data).face_descriptor is None
    assert not student.has_face()


def test_descriptors_lists_primary_first_and_skips_empty():
    student = Student(id='s3', name='Citra', face_descriptor=[1.0], extra_descriptors=[[], [2.0]])

    assert student.descriptors() == [[1.0], [2.0]]


def test_record_round_trip_and_day():
    record = AttendanceRecord(
        id='r1',
        student_id='s1',
        student_name='Ayu',
        timestamp=datetime(2024, 5, 2, 7, 15),
        method=METHOD_MANUAL,
        status=STATUS_LATE,
        confidence=100,
    )

    assert AttendanceRecord.from_dict(record.to_dict()) == record
    assert record.day.isoformat() == '2024-05-02'


@pytest.mark.parametrize('field, value', [
    ('method', 'fingerprint'),
    ('status', 'excused'),
    ('confidence', 101),
    ('confidence', -1),
])
def test_record_rejects_invalid_values(field, value):
    kwargs = dict(id='r1', student_id='s1', student_name='Ayu', timestamp=datetime(2024, 5, 2))
    kwargs[field] = value

    with pytest.raises(ValueError):
        AttendanceRecord(**kwargs)


def test_record_is_immutable():
    record = AttendanceRecord(id='r1', student_id='s1', student_name='Ayu', timestamp=datetime(2024, 5, 2))

    with pytest.raises(AttributeError):
        record.confidence = 50


def test_parse_timestamp_accepts_trailing_z():
    parsed = parse_timestamp('2024-05-02T07:15:00Z')

    assert parsed.hour == 7
    assert parsed.utcoffset().total_seconds() == 0
