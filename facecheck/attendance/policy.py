"""Check-in decision rules: same-day de-duplication and record synthesis."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, time
from typing import Callable, Iterable, Optional

from facecheck.models import (
    METHOD_FACE,
    STATUS_LATE,
    STATUS_PRESENT,
    AttendanceRecord,
)

DEDUP_WINDOW_SECONDS = 60.0

REASON_TOO_SOON = "too_soon"
REASON_UNKNOWN_STUDENT = "unknown_student"

StatusResolver = Callable[[datetime], str]
IdFactory = Callable[[], str]


def always_present(now: datetime) -> str:
    return STATUS_PRESENT


def late_after(cutoff: time) -> StatusResolver:
    """Status resolver marking check-ins after ``cutoff`` (local time of day) as late."""

    def resolve(now: datetime) -> str:
        return STATUS_LATE if now.time() > cutoff else STATUS_PRESENT

    return resolve


def confidence_from_distance(distance: float) -> int:
    return max(0, min(100, int(round((1.0 - distance) * 100))))


@dataclass(frozen=True)
class Decision:
    accepted: bool
    record: Optional[AttendanceRecord] = None
    reason: Optional[str] = None
    previous: Optional[AttendanceRecord] = None

    @classmethod
    def accept(cls, record: AttendanceRecord, previous: Optional[AttendanceRecord] = None) -> "Decision":
        return cls(accepted=True, record=record, previous=previous)

    @classmethod
    def reject(cls, reason: str, previous: Optional[AttendanceRecord] = None) -> "Decision":
        return cls(accepted=False, reason=reason, previous=previous)


def latest_same_day(
    student_id: str, now: datetime, history: Iterable[AttendanceRecord]
) -> Optional[AttendanceRecord]:
    today = now.date()
    latest: Optional[AttendanceRecord] = None
    for record in history:
        if record.student_id != student_id or record.timestamp.date() != today:
            continue
        if latest is None or record.timestamp > latest.timestamp:
            latest = record
    return latest


class AttendancePolicy:
    """Pure decision function; persistence is the caller's job."""

    def __init__(
        self,
        *,
        dedup_window: float = DEDUP_WINDOW_SECONDS,
        status_resolver: Optional[StatusResolver] = None,
        id_factory: Optional[IdFactory] = None,
    ) -> None:
        self.dedup_window = max(float(dedup_window), 0.0)
        self._status_resolver = status_resolver or always_present
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def decide(
        self,
        student_id: str,
        distance: float,
        now: datetime,
        history: Iterable[AttendanceRecord],
        *,
        student_name: Optional[str] = None,
        method: str = METHOD_FACE,
    ) -> Decision:
        previous = latest_same_day(student_id, now, history)
        if previous is not None:
            elapsed = (now - previous.timestamp).total_seconds()
            if elapsed < self.dedup_window:
                return Decision.reject(REASON_TOO_SOON, previous=previous)

        record = AttendanceRecord(
            id=self._id_factory(),
            student_id=student_id,
            student_name=student_name or student_id,
            timestamp=now,
            method=method,
            status=self._status_resolver(now),
            confidence=confidence_from_distance(distance),
        )
        return Decision.accept(record, previous=previous)
