import io
import threading
from datetime import datetime

import numpy as np
import pytest
from PIL import Image

from database import DatabaseManager
from facecheck.errors import CameraError
from facecheck.inference.engine import Detection, EmbeddingProvider
from facecheck.models import Student


class FakeProvider(EmbeddingProvider):
    """Returns scripted detections; ``None`` entries mean no face."""

    name = "fake"
    embedding_size = 4

    def __init__(self, detections=None, ready=True, block=None):
        self.detections = list(detections or [])
        self.default = None
        self._ready = ready
        self.block = block
        self.calls = 0
        self.started = threading.Event()

    def ready(self):
        return self._ready

    def next_embedding(self, embedding, box=(10, 10, 50, 50)):
        self.detections.append(Detection(box=box, embedding=np.asarray(embedding, dtype=float)))

    def detect(self, frame):
        self.calls += 1
        self.started.set()
        if self.block is not None:
            self.block.wait(5)
        if self.detections:
            return self.detections.pop(0)
        return self.default


class FakeSource:
    def __init__(self, dimensions=(640, 480), fail_start=False, fail_read=False):
        self._dimensions = dimensions
        self.fail_start = fail_start
        self.fail_read = fail_read
        self.started = 0
        self.stopped = 0
        self.reads = 0

    @property
    def is_open(self):
        return self.started > self.stopped

    def start(self):
        if self.fail_start:
            raise CameraError("Permission denied")
        self.started += 1

    def stop(self):
        self.stopped += 1

    def dimensions(self):
        return self._dimensions if self.is_open else (0, 0)

    def read(self):
        self.reads += 1
        if self.fail_read:
            raise CameraError("Unable to read frame from camera")
        return np.zeros((480, 640, 3), dtype=np.uint8)


def make_student(student_id, descriptor, name=None, **kwargs):
    return Student(
        id=student_id,
        name=name or student_id.upper(),
        face_descriptor=list(descriptor) if descriptor is not None else None,
        registered_at=kwargs.pop('registered_at', datetime(2024, 1, 1, 7, 0)),
        **kwargs,
    )


def make_photo(size=64, fmt='PNG'):
    """Noise image, large enough to pass the minimum upload size."""
    rng = np.random.default_rng(0)
    pixels = rng.integers(0, 255, size=(size, size, 3), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(tmp_path / 'test.db')


@pytest.fixture
def app(tmp_path, provider, source):
    from kiosk import create_app

    app = create_app({
        'TESTING': True,
        'DATABASE_PATH': str(tmp_path / 'kiosk.db'),
        'FACE_DATA_DIR': tmp_path / 'faces',
        'LOG_DIR': tmp_path / 'logs',
        'LOG_LEVEL': 'WARNING',
        'DEMO_MODE': False,
        'LATE_CUTOFF': None,
        'CAPTURE_INTERVAL_SECONDS': 0.05,
        'EMBEDDING_PROVIDER': provider,
        'CAMERA_SOURCE_FACTORY': lambda: source,
    })
    yield app
    app.extensions['facecheck'].capture.cleanup()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    from kiosk import get_services
    return get_services(app)
