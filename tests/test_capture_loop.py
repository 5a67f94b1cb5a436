import threading
import time

import pytest

from conftest import FakeProvider, FakeSource, make_student
from facecheck.attendance import AttendancePolicy, AttendanceService
from facecheck.errors import CameraError, StorageError
from facecheck.inference import DegradedProvider
from facecheck.recognition import Gallery, Matcher
from facecheck.vision import CaptureLoop, CaptureState, CaptureStatus
from facecheck.vision.capture_loop import (
    OUTCOME_ACCEPTED,
    OUTCOME_NO_FACE,
    OUTCOME_REJECTED,
    OUTCOME_STORAGE_ERROR,
    OUTCOME_UNKNOWN,
)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def gallery(db):
    db.save_student(make_student('s1', [0.0, 0.0, 0.0, 0.0], name='Ayu'))
    gallery = Gallery()
    gallery.rebuild(db.list_students())
    return gallery


@pytest.fixture
def attendance(db):
    return AttendanceService(store=db, policy=AttendancePolicy(), student_lookup=db.get_student)


@pytest.fixture
def outcomes():
    return []


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def make_loop(gallery, attendance, outcomes, statuses):
    loops = []

    def build(provider, source, interval=0.01, **kwargs):
        loop = CaptureLoop(
            source=source,
            provider=provider,
            matcher=Matcher(gallery),
            attendance=kwargs.pop('attendance', attendance),
            on_outcome=outcomes.append,
            on_status=lambda status, message: statuses.append((status, message)),
            interval=interval,
        )
        loops.append(loop)
        return loop

    yield build
    for loop in loops:
        loop.stop(timeout=2)


def test_recognized_face_is_checked_in(make_loop, provider, source, db):
    provider.next_embedding([0.3, 0.0, 0.0, 0.0])
    source.start()
    loop = make_loop(provider, source)

    outcome = loop.tick()

    assert outcome.kind == OUTCOME_ACCEPTED
    assert outcome.student_id == 's1'
    assert outcome.confidence == 70
    assert outcome.message == "Welcome, Ayu! Attendance Recorded."
    assert db.list_records()[0].student_id == 's1'
    assert loop.state == CaptureState.IDLE


def test_repeat_scan_reports_already_checked_in(make_loop, provider, source, db):
    provider.next_embedding([0.1, 0.0, 0.0, 0.0])
    provider.next_embedding([0.1, 0.0, 0.0, 0.0])
    source.start()
    loop = make_loop(provider, source)

    loop.tick()
    outcome = loop.tick()

    assert outcome.kind == OUTCOME_REJECTED
    assert outcome.message == "Ayu, you are already checked in."
    assert len(db.list_records()) == 1


def test_unknown_face_is_not_stored(make_loop, provider, source, db):
    provider.next_embedding([0.0, 0.0, 0.0, 0.8])
    source.start()
    loop = make_loop(provider, source)

    outcome = loop.tick()

    assert outcome.kind == OUTCOME_UNKNOWN
    assert outcome.box == (10, 10, 50, 50)
    assert db.list_records() == []


def test_no_face_outcome(make_loop, provider, source):
    source.start()
    loop = make_loop(provider, source)

    outcome = loop.tick()

    assert outcome.kind == OUTCOME_NO_FACE
    assert outcome.message == "Look at the camera to check in"


def test_tick_skipped_until_frame_size_known(make_loop, provider):
    source = FakeSource(dimensions=(0, 0))
    source.start()
    loop = make_loop(provider, source)

    assert loop.tick() is None
    assert provider.calls == 0


def test_tick_while_cycle_in_flight_is_skipped(make_loop, source):
    release = threading.Event()
    provider = FakeProvider(block=release)
    source.start()
    loop = make_loop(provider, source)

    assert loop.schedule_tick() is True
    assert provider.started.wait(2)

    assert loop.schedule_tick() is False
    assert loop.tick() is None

    release.set()
    assert loop.wait_idle(2)
    assert provider.calls == 1
    assert loop.describe()['skipped_ticks'] == 2


def test_provider_error_returns_to_idle(make_loop, source):
    class ExplodingProvider(FakeProvider):
        def detect(self, frame):
            raise RuntimeError("model crashed")

    source.start()
    loop = make_loop(ExplodingProvider(), source)

    assert loop.tick() is None
    assert loop.state == CaptureState.IDLE


def test_storage_failure_is_distinct_outcome(make_loop, provider, source, db):
    class FailingAttendance:
        def check_in(self, student_id, distance):
            raise StorageError("database is locked")

    provider.next_embedding([0.0, 0.0, 0.0, 0.0])
    source.start()
    loop = make_loop(provider, source, attendance=FailingAttendance())

    outcome = loop.tick()

    assert outcome.kind == OUTCOME_STORAGE_ERROR
    assert db.list_records() == []


def test_start_and_stop_release_camera(make_loop, provider, source, outcomes):
    loop = make_loop(provider, source)

    loop.start()
    assert loop.is_running
    assert wait_for(lambda: len(outcomes) >= 2)
    loop.stop(timeout=2)

    assert not loop.is_running
    assert source.started == 1
    assert source.stopped == 1
    assert loop.status == CaptureStatus.STOPPED

    emitted = len(outcomes)
    time.sleep(0.1)
    assert len(outcomes) == emitted


def test_camera_denied_on_start(make_loop, provider, statuses):
    source = FakeSource(fail_start=True)
    loop = make_loop(provider, source)

    with pytest.raises(CameraError):
        loop.start()

    assert not loop.is_running
    assert loop.status == CaptureStatus.CAMERA_ERROR
    assert statuses[-1][0] == CaptureStatus.CAMERA_ERROR


def test_stream_failure_ends_session_and_releases_camera(make_loop, provider, statuses):
    source = FakeSource(fail_read=True)
    loop = make_loop(provider, source)

    loop.start()

    assert wait_for(lambda: source.stopped == 1)
    assert not loop.is_running
    assert loop.status == CaptureStatus.CAMERA_ERROR
    assert (CaptureStatus.CAMERA_ERROR, "Camera stream failed: Unable to read frame from camera") in statuses
    assert provider.calls == 0


def test_degraded_provider_keeps_ticking(make_loop, source, outcomes):
    loop = make_loop(DegradedProvider("no models"), source)

    loop.start()

    assert loop.status == CaptureStatus.DEGRADED
    assert wait_for(lambda: len(outcomes) >= 2)
    assert all(o.kind == OUTCOME_NO_FACE for o in outcomes)


def test_session_releases_camera_on_error(make_loop, provider, source):
    loop = make_loop(provider, source)

    with pytest.raises(RuntimeError):
        with loop.session():
            assert source.is_open
            raise RuntimeError("page closed")

    assert source.stopped == 1
    assert not loop.is_running
