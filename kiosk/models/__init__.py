"""
Models package
Service objects wired together by the app factory
"""
from .capture_service import CaptureService
from .event_broadcaster import EventBroadcaster
from .student_registry import StudentRegistry

__all__ = [
    'CaptureService',
    'EventBroadcaster',
    'StudentRegistry',
]
