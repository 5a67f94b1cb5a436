"""Attendance service: policy decision plus event-store append under one lock."""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from facecheck.attendance.policy import REASON_UNKNOWN_STUDENT, AttendancePolicy, Decision
from facecheck.models import METHOD_FACE, METHOD_MANUAL, AttendanceRecord, Student

StudentLookup = Callable[[str], Optional[Student]]
EventBroadcaster = Callable[[Dict[str, Any]], None]


class EventStore(Protocol):
    def append_record(self, record: AttendanceRecord) -> None:
        ...

    def query_by_student_and_day(self, student_id: str, day: date) -> List[AttendanceRecord]:
        ...

    def list_records(self) -> List[AttendanceRecord]:
        ...


class AttendanceService:
    """Applies :class:`AttendancePolicy` and persists accepted records.

    The same-day history read and the append run under one lock, so two
    check-ins for one student cannot both pass the de-duplication window.
    Store failures propagate as :class:`~facecheck.errors.StorageError`.
    """

    def __init__(
        self,
        *,
        store: EventStore,
        policy: AttendancePolicy,
        student_lookup: StudentLookup,
        broadcaster: Optional[EventBroadcaster] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._policy = policy
        self._lookup = student_lookup
        self._broadcast = broadcaster
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()

    @property
    def policy(self) -> AttendancePolicy:
        return self._policy

    def check_in(
        self,
        student_id: str,
        distance: float,
        now: Optional[datetime] = None,
        *,
        method: str = METHOD_FACE,
    ) -> Decision:
        now = now or datetime.now()
        student = self._lookup(student_id)
        if student is None:
            self._logger.info("[Attendance] Ignoring check-in for unregistered id %s", student_id)
            return Decision.reject(REASON_UNKNOWN_STUDENT)

        with self._lock:
            history = self._store.query_by_student_and_day(student_id, now.date())
            decision = self._policy.decide(
                student_id,
                distance,
                now,
                history,
                student_name=student.name,
                method=method,
            )
            if not decision.accepted:
                self._logger.info(
                    "[Attendance] %s already checked in at %s (%s)",
                    student.name,
                    decision.previous.timestamp.isoformat() if decision.previous else "-",
                    decision.reason,
                )
                return decision
            self._store.append_record(decision.record)

        record = decision.record
        self._logger.info(
            "[Attendance] Check-in recorded for %s (%s), confidence %d%%",
            record.student_name,
            record.student_id,
            record.confidence,
        )
        if self._broadcast:
            self._broadcast(
                {
                    "type": "attendance_updated",
                    "data": {
                        "event": "check_in",
                        "record": record.to_dict(),
                    },
                }
            )
        return decision

    def manual_check_in(self, student_id: str, now: Optional[datetime] = None) -> Decision:
        return self.check_in(student_id, 0.0, now, method=METHOD_MANUAL)

    def today_records(self, today: Optional[date] = None) -> List[AttendanceRecord]:
        today = today or date.today()
        return [r for r in self._store.list_records() if r.timestamp.date() == today]
