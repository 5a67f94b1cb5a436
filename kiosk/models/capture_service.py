"""
Capture Service - one kiosk capture session at a time
Owns the CaptureLoop lifecycle and relays its outcomes to SSE clients
"""
import threading
from typing import Callable, Optional

from facecheck.vision import CameraConfig, CameraManager, CaptureLoop, CaptureOutcome, CaptureStatus
from facecheck.vision.capture_loop import OUTCOME_ACCEPTED, OUTCOME_NO_FACE, OUTCOME_REJECTED, OUTCOME_UNKNOWN
from logging_config import face_recognition_logger


class CaptureService:
    """Starts and stops the capture loop for the kiosk page"""

    def __init__(
        self,
        *,
        provider,
        matcher,
        attendance,
        camera_config: Optional[CameraConfig] = None,
        interval: float = 0.5,
        broadcaster=None,
        source_factory: Optional[Callable[[], object]] = None,
        logger=None,
    ):
        self.provider = provider
        self.matcher = matcher
        self.attendance = attendance
        self.camera_config = camera_config or CameraConfig()
        self.interval = interval
        self.broadcaster = broadcaster
        self.source_factory = source_factory or (lambda: CameraManager(self.camera_config))
        self.logger = logger

        self._loop: Optional[CaptureLoop] = None
        self._lock = threading.Lock()
        self._last_status = CaptureStatus.STOPPED.value
        self._last_message = ''

    def start(self) -> dict:
        """Start a session; CameraError propagates when the camera cannot be opened"""
        with self._lock:
            if self._loop is not None and self._loop.is_running:
                return self.get_status()
            loop = CaptureLoop(
                source=self.source_factory(),
                provider=self.provider,
                matcher=self.matcher,
                attendance=self.attendance,
                on_outcome=self._on_outcome,
                on_status=self._on_status,
                interval=self.interval,
                logger=self.logger,
            )
            self._loop = loop
            loop.start()
            return self.get_status()

    def stop(self) -> dict:
        with self._lock:
            loop = self._loop
            if loop is not None:
                loop.stop()
            return self.get_status()

    def is_running(self) -> bool:
        loop = self._loop
        return bool(loop is not None and loop.is_running)

    def get_status(self) -> dict:
        loop = self._loop
        if loop is not None:
            return loop.describe()
        return {
            'running': False,
            'status': self._last_status,
            'message': self._last_message,
            'state': 'idle',
            'interval': self.interval,
            'provider': self.provider.describe(),
            'last_outcome': None,
        }

    def _on_status(self, status: CaptureStatus, message: str):
        self._last_status = status.value
        self._last_message = message
        if status == CaptureStatus.CAMERA_ERROR:
            face_recognition_logger.log_recognition_error(message)
        if self.broadcaster:
            self.broadcaster.broadcast_capture_status(status.value, message)

    def _on_outcome(self, outcome: CaptureOutcome):
        if outcome.kind == OUTCOME_NO_FACE:
            return
        if outcome.box is not None:
            face_recognition_logger.log_face_detected(outcome.box)
        if outcome.kind == OUTCOME_ACCEPTED:
            face_recognition_logger.log_face_recognized(
                outcome.student_name, outcome.confidence, student_id=outcome.student_id
            )
            face_recognition_logger.log_attendance_marked(
                outcome.student_name, outcome.student_id, confidence=outcome.confidence
            )
        elif outcome.kind == OUTCOME_REJECTED:
            face_recognition_logger.log_duplicate(outcome.student_name, outcome.student_id)
        elif outcome.kind != OUTCOME_UNKNOWN:
            face_recognition_logger.log_recognition_error(outcome.message)

        if self.broadcaster:
            self.broadcaster.broadcast_recognition_event(outcome.to_dict())

    def cleanup(self):
        self.stop()
        self._loop = None
