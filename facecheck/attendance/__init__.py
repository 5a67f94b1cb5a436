from .policy import (
    AttendancePolicy,
    Decision,
    DEDUP_WINDOW_SECONDS,
    REASON_TOO_SOON,
    REASON_UNKNOWN_STUDENT,
    always_present,
    late_after,
    confidence_from_distance,
)
from .service import AttendanceService

__all__ = [
    'AttendancePolicy',
    'AttendanceService',
    'Decision',
    'DEDUP_WINDOW_SECONDS',
    'REASON_TOO_SOON',
    'REASON_UNKNOWN_STUDENT',
    'always_present',
    'late_after',
    'confidence_from_distance',
]
