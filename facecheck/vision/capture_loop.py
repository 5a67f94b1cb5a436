"""Periodic detect -> match -> decide loop over a live camera.

A scheduler thread fires a tick every ``interval`` seconds. Each tick runs on
a short-lived worker thread guarded by a non-blocking lock: if the previous
cycle is still in flight the tick is dropped, never queued. The scheduler
thread owns the camera for the whole session and releases it on every exit
path.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Protocol

from facecheck.attendance.policy import REASON_TOO_SOON, Decision
from facecheck.errors import StorageError
from facecheck.inference.engine import Box, Detection, EmbeddingProvider
from facecheck.models import AttendanceRecord
from facecheck.recognition.matcher import Matcher, MatchResult
from facecheck.vision.camera_manager import CameraError, VideoSource

CAPTURE_INTERVAL_SECONDS = 0.5

OUTCOME_NO_FACE = "no_face"
OUTCOME_UNKNOWN = "unknown"
OUTCOME_ACCEPTED = "accepted"
OUTCOME_REJECTED = "rejected"
OUTCOME_STORAGE_ERROR = "storage_error"

SCANNING_MESSAGE = "Look at the camera to check in"


class CaptureState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    MATCHING = "matching"
    DECIDING = "deciding"


class CaptureStatus(str, Enum):
    STOPPED = "stopped"
    SCANNING = "scanning"
    DEGRADED = "degraded"
    CAMERA_ERROR = "camera_error"


@dataclass(frozen=True)
class CaptureOutcome:
    kind: str
    message: str = ""
    box: Optional[Box] = None
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    distance: Optional[float] = None
    confidence: Optional[int] = None
    record: Optional[AttendanceRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "box": list(self.box) if self.box else None,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "distance": self.distance,
            "confidence": self.confidence,
            "record": self.record.to_dict() if self.record else None,
        }


class CheckInService(Protocol):
    """What the loop needs from :class:`facecheck.attendance.AttendanceService`."""

    def check_in(self, student_id: str, distance: float) -> Decision:
        ...


OutcomeCallback = Callable[[CaptureOutcome], None]
StatusCallback = Callable[[CaptureStatus, str], None]


class CaptureLoop:
    def __init__(
        self,
        *,
        source: VideoSource,
        provider: EmbeddingProvider,
        matcher: Matcher,
        attendance: CheckInService,
        on_outcome: Optional[OutcomeCallback] = None,
        on_status: Optional[StatusCallback] = None,
        interval: float = CAPTURE_INTERVAL_SECONDS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._source = source
        self._provider = provider
        self._matcher = matcher
        self._attendance = attendance
        self._on_outcome = on_outcome
        self._on_status = on_status
        self.interval = max(float(interval), 0.01)
        self._logger = logger or logging.getLogger(__name__)

        self._in_flight = threading.Lock()
        self._lifecycle_lock = threading.RLock()
        self._source_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._scheduler: Optional[threading.Thread] = None
        self._source_open = False

        self._state = CaptureState.IDLE
        self._status = CaptureStatus.STOPPED
        self._status_message = ""
        self._last_outcome: Optional[CaptureOutcome] = None
        self._ticks = 0
        self._cycles = 0
        self._skipped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        scheduler = self._scheduler
        return bool(scheduler is not None and scheduler.is_alive() and not self._stop_event.is_set())

    def start(self) -> None:
        """Acquire the camera and begin ticking. Raises :class:`CameraError` on denial."""
        with self._lifecycle_lock:
            if self.is_running:
                return
            try:
                self._source.start()
            except CameraError as exc:
                self._logger.error("[Capture] Camera unavailable: %s", exc)
                self._set_status(CaptureStatus.CAMERA_ERROR, f"Camera access denied: {exc}")
                raise
            self._source_open = True
            self._stop_event.clear()

            if self._provider.ready():
                self._set_status(CaptureStatus.SCANNING, SCANNING_MESSAGE)
            else:
                self._set_status(
                    CaptureStatus.DEGRADED,
                    "Face models failed to load; recognition is unavailable",
                )

            scheduler = threading.Thread(target=self._run, name="capture-loop", daemon=True)
            try:
                scheduler.start()
            except Exception:
                self._release_source()
                raise
            self._scheduler = scheduler
            self._logger.info("[Capture] Started (interval %.2fs)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the timer, wait for the in-flight cycle and release the camera."""
        with self._lifecycle_lock:
            self._stop_event.set()
            scheduler = self._scheduler
            if scheduler is not None and scheduler is not threading.current_thread():
                scheduler.join(timeout)
            if scheduler is None or scheduler is not threading.current_thread():
                self._scheduler = None
                self._release_source()
            if self._status != CaptureStatus.CAMERA_ERROR:
                self._set_status(CaptureStatus.STOPPED, "Capture stopped")
            self._logger.info("[Capture] Stopped")

    @contextmanager
    def session(self) -> Iterator["CaptureLoop"]:
        self.start()
        try:
            yield self
        finally:
            self.stop()

    def _run(self) -> None:
        try:
            while not self._stop_event.wait(self.interval):
                self.schedule_tick()
            self.wait_idle()
        except Exception:  # pragma: no cover - scheduler must never take the host down
            self._logger.exception("[Capture] Scheduler crashed")
        finally:
            self._release_source()

    def _release_source(self) -> None:
        with self._source_lock:
            if not self._source_open:
                return
            self._source_open = False
        try:
            self._source.stop()
        except Exception as exc:
            self._logger.warning("[Capture] Camera release failed: %s", exc)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def schedule_tick(self) -> bool:
        """Run one cycle on a worker thread unless one is already in flight."""
        if self._stop_event.is_set():
            return False
        if not self._in_flight.acquire(blocking=False):
            self._skipped += 1
            self._logger.debug("[Capture] Previous cycle still running, tick skipped")
            return False
        worker = threading.Thread(target=self._run_cycle_and_release, name="capture-cycle", daemon=True)
        try:
            worker.start()
        except Exception:
            self._in_flight.release()
            raise
        return True

    def tick(self) -> Optional[CaptureOutcome]:
        """Run one cycle on the calling thread; ``None`` when skipped."""
        if not self._in_flight.acquire(blocking=False):
            self._skipped += 1
            return None
        try:
            return self._cycle()
        finally:
            self._in_flight.release()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        acquired = self._in_flight.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._in_flight.release()
        return acquired

    def _run_cycle_and_release(self) -> None:
        try:
            self._cycle()
        except Exception:
            self._logger.exception("[Capture] Cycle crashed")
        finally:
            self._in_flight.release()

    def _cycle(self) -> Optional[CaptureOutcome]:
        self._ticks += 1
        width, height = self._source.dimensions()
        if width <= 0 or height <= 0:
            self._logger.debug("[Capture] Frame size not available yet, retrying next tick")
            return None

        outcome: Optional[CaptureOutcome] = None
        try:
            self._set_state(CaptureState.DETECTING)
            try:
                frame = self._source.read()
            except CameraError as exc:
                self._fail_session(exc)
                return None

            try:
                detection = self._provider.detect(frame)
                match = None
                if detection is not None:
                    self._set_state(CaptureState.MATCHING)
                    match = self._matcher.match(detection.embedding)
            except Exception as exc:
                self._logger.warning("[Capture] Detection failed, treating as no face: %s", exc)
                return None

            if detection is None:
                outcome = CaptureOutcome(kind=OUTCOME_NO_FACE, message=SCANNING_MESSAGE)
            elif match.is_unknown:
                outcome = self._unknown(detection)
            else:
                self._set_state(CaptureState.DECIDING)
                outcome = self._decide(detection, match)
        finally:
            self._set_state(CaptureState.IDLE)
            self._cycles += 1

        self._emit(outcome)
        return outcome

    def _unknown(self, detection: Detection) -> CaptureOutcome:
        return CaptureOutcome(
            kind=OUTCOME_UNKNOWN,
            message="Face not recognized",
            box=detection.box,
            confidence=0,
        )

    def _decide(self, detection: Detection, match: MatchResult) -> CaptureOutcome:
        try:
            decision = self._attendance.check_in(match.student_id, match.distance)
        except StorageError as exc:
            self._logger.error("[Capture] Attendance for %s not saved: %s", match.student_id, exc)
            return CaptureOutcome(
                kind=OUTCOME_STORAGE_ERROR,
                message="Attendance could not be saved",
                box=detection.box,
                student_id=match.student_id,
                distance=match.distance,
            )

        if decision.accepted:
            record = decision.record
            return CaptureOutcome(
                kind=OUTCOME_ACCEPTED,
                message=f"Welcome, {record.student_name}! Attendance Recorded.",
                box=detection.box,
                student_id=record.student_id,
                student_name=record.student_name,
                distance=match.distance,
                confidence=record.confidence,
                record=record,
            )
        if decision.reason == REASON_TOO_SOON:
            previous = decision.previous
            name = previous.student_name if previous else match.student_id
            return CaptureOutcome(
                kind=OUTCOME_REJECTED,
                message=f"{name}, you are already checked in.",
                box=detection.box,
                student_id=match.student_id,
                student_name=name,
                distance=match.distance,
            )
        # matched an id the directory no longer knows
        return self._unknown(detection)

    def _fail_session(self, exc: CameraError) -> None:
        self._logger.error("[Capture] Camera stream failed, stopping session: %s", exc)
        self._stop_event.set()
        self._set_status(CaptureStatus.CAMERA_ERROR, f"Camera stream failed: {exc}")

    # ------------------------------------------------------------------
    # State and notifications
    # ------------------------------------------------------------------
    def _set_state(self, state: CaptureState) -> None:
        self._state = state

    def _set_status(self, status: CaptureStatus, message: str) -> None:
        changed = status != self._status or message != self._status_message
        self._status = status
        self._status_message = message
        if changed and self._on_status:
            try:
                self._on_status(status, message)
            except Exception:
                self._logger.exception("[Capture] Status callback failed")

    def _emit(self, outcome: Optional[CaptureOutcome]) -> None:
        if outcome is None:
            return
        self._last_outcome = outcome
        if self._stop_event.is_set() or not self._on_outcome:
            return
        try:
            self._on_outcome(outcome)
        except Exception:
            self._logger.exception("[Capture] Outcome callback failed")

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def status(self) -> CaptureStatus:
        return self._status

    def describe(self) -> Dict[str, Any]:
        last = self._last_outcome
        return {
            "running": self.is_running,
            "status": self._status.value,
            "message": self._status_message,
            "state": self._state.value,
            "interval": self.interval,
            "ticks": self._ticks,
            "cycles": self._cycles,
            "skipped_ticks": self._skipped,
            "provider": self._provider.describe(),
            "last_outcome": last.to_dict() if last else None,
        }
