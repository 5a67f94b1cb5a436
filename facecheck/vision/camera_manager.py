"""Camera ownership for a capture session."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np

from facecheck.errors import CameraError

logger = logging.getLogger(__name__)


class VideoSource(Protocol):
    """What the capture loop needs from a camera."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def read(self) -> np.ndarray:
        ...

    def dimensions(self) -> Tuple[int, int]:
        ...


class CaptureFactory(Protocol):
    """Abstraction for objects that can supply cv2.VideoCapture."""

    def open(self, index: int) -> cv2.VideoCapture:
        ...


class DefaultCaptureFactory:
    def open(self, index: int) -> cv2.VideoCapture:
        capture = cv2.VideoCapture(index)
        if not capture or not capture.isOpened():
            if capture is not None:
                capture.release()
            raise CameraError(f"Cannot open camera index {index} (access denied or device busy)")
        return capture


@dataclass
class CameraConfig:
    index: int = 0
    width: Optional[int] = 640
    height: Optional[int] = 480
    warmup_frames: int = 3
    buffer_size: Optional[int] = 2


class CameraManager:
    """Owns one ``cv2.VideoCapture``; usable as a context manager."""

    def __init__(
        self,
        config: Optional[CameraConfig] = None,
        factory: Optional[CaptureFactory] = None,
    ) -> None:
        self.config = config or CameraConfig()
        self.factory = factory or DefaultCaptureFactory()
        self._capture: Optional[cv2.VideoCapture] = None

    def __enter__(self) -> "CameraManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def is_open(self) -> bool:
        capture = self._capture
        return bool(capture is not None and capture.isOpened())

    def start(self) -> None:
        if self.is_open():
            return
        capture = self.factory.open(self.config.index)
        try:
            self._configure(capture)
        except Exception:
            capture.release()
            raise
        self._capture = capture

    def _configure(self, capture: cv2.VideoCapture) -> None:
        if self.config.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        if self.config.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        if self.config.buffer_size is not None and hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
            capture.set(cv2.CAP_PROP_BUFFERSIZE, self.config.buffer_size)

        logger.info(
            "[Camera] Ready: %sx%s @ %.2f fps",
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            capture.get(cv2.CAP_PROP_FPS) or 0,
        )

        warmup = max(0, self.config.warmup_frames)
        if warmup:
            success = 0
            for _ in range(warmup):
                ret, _frame = capture.read()
                if ret:
                    success += 1
                time.sleep(0.05)
            logger.debug("[Camera] Warmup frames ok=%s/%s", success, warmup)

    def stop(self) -> None:
        capture = self._capture
        self._capture = None
        if capture is not None:
            capture.release()
            logger.info("[Camera] Released camera %s", self.config.index)

    def dimensions(self) -> Tuple[int, int]:
        capture = self._capture
        if capture is None:
            return 0, 0
        return (
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
        )

    def read(self) -> np.ndarray:
        capture = self._capture
        if capture is None:
            raise CameraError("Camera is not started")
        ret, frame = capture.read()
        if not ret or frame is None:
            raise CameraError("Unable to read frame from camera")
        return frame
