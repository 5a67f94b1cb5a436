from .camera_manager import CameraConfig, CameraError, CameraManager, VideoSource
from .capture_loop import (
    CAPTURE_INTERVAL_SECONDS,
    CaptureLoop,
    CaptureOutcome,
    CaptureState,
    CaptureStatus,
)

__all__ = [
    'CAPTURE_INTERVAL_SECONDS',
    'CameraConfig',
    'CameraError',
    'CameraManager',
    'CaptureLoop',
    'CaptureOutcome',
    'CaptureState',
    'CaptureStatus',
    'VideoSource',
]
