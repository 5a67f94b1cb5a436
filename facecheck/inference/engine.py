"""Embedding providers: frame in, at most one face embedding out.

The attendance core never talks to a model library directly. A provider wraps
one backend (dlib through ``face_recognition``, or ``deepface``) and exposes
``detect(frame)`` returning a :class:`Detection` or ``None``. When no backend
can be loaded the kiosk runs on a :class:`DegradedProvider` that never finds a
face, so the capture loop keeps ticking harmlessly.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from facecheck.errors import ProviderUnavailable

Box = Tuple[int, int, int, int]  # x, y, w, h


@dataclass
class Detection:
    box: Box
    embedding: np.ndarray

    @property
    def area(self) -> int:
        return int(self.box[2]) * int(self.box[3])


def l2_normalize(vector) -> np.ndarray:
    values = np.asarray(vector, dtype=np.float64).ravel()
    norm = np.linalg.norm(values)
    if norm == 0 or not np.isfinite(norm):
        return values
    return values / norm


def _largest(detections: Iterable[Detection]) -> Optional[Detection]:
    best: Optional[Detection] = None
    for detection in detections:
        if best is None or detection.area > best.area:
            best = detection
    return best


class EmbeddingProvider:
    """Protocol-ish base class for duck-typed providers."""

    name: str = "provider"
    embedding_size: int = 128
    # Euclidean distance at or under which two embeddings are the same person
    match_threshold: float = 0.6

    def ready(self) -> bool:
        return True

    def detect(self, frame: np.ndarray) -> Optional[Detection]:  # pragma: no cover - interface
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ready": self.ready(),
            "embedding_size": self.embedding_size,
            "match_threshold": self.match_threshold,
        }


class DegradedProvider(EmbeddingProvider):
    """Stand-in used while no face model is available."""

    name = "degraded"

    def __init__(self, reason: str = "No face model available") -> None:
        self.reason = reason

    def ready(self) -> bool:
        return False

    def detect(self, frame: np.ndarray) -> Optional[Detection]:
        return None

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["reason"] = self.reason
        return info


class FaceRecognitionProvider(EmbeddingProvider):
    """dlib ResNet embeddings (128-d, Euclidean, 0.6 tolerance) via ``face_recognition``."""

    name = "face_recognition"

    def __init__(
        self,
        *,
        model: str = "hog",
        num_jitters: int = 1,
        upsample: int = 1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        try:
            self._lib = importlib.import_module("face_recognition")
        except Exception as exc:
            raise ProviderUnavailable(f"face_recognition could not be imported: {exc}") from exc
        self._model = model
        self._num_jitters = num_jitters
        self._upsample = upsample
        self._logger = logger or logging.getLogger(__name__)

    def detect(self, frame: np.ndarray) -> Optional[Detection]:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        locations = self._lib.face_locations(
            rgb, number_of_times_to_upsample=self._upsample, model=self._model
        )
        if not locations:
            return None
        # face_locations yields (top, right, bottom, left)
        top, right, bottom, left = max(
            locations, key=lambda loc: (loc[2] - loc[0]) * (loc[1] - loc[3])
        )
        encodings = self._lib.face_encodings(
            rgb, known_face_locations=[(top, right, bottom, left)], num_jitters=self._num_jitters
        )
        if not encodings:
            return None
        box = (int(left), int(top), int(right - left), int(bottom - top))
        return Detection(box=box, embedding=np.asarray(encodings[0], dtype=np.float64))


class DeepFaceProvider(EmbeddingProvider):
    """DeepFace ``represent`` (Facenet by default), L2-normalized.

    Raw DeepFace vectors are unit-less, so embeddings are scaled to unit
    length and matched with deepface's ``euclidean_l2`` threshold for the
    chosen model.
    """

    name = "deepface"
    # model name -> (embedding size, euclidean_l2 threshold)
    MODELS = {
        "Facenet": (128, 0.80),
        "Facenet512": (512, 1.04),
        "ArcFace": (512, 1.13),
        "VGG-Face": (4096, 1.17),
        "SFace": (128, 1.055),
        "OpenFace": (128, 0.55),
        "Dlib": (128, 0.4),
    }

    def __init__(
        self,
        *,
        model_name: str = "Facenet",
        detector_backend: str = "opencv",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        try:
            module = importlib.import_module("deepface")
            self._deepface = module.DeepFace
        except Exception as exc:
            raise ProviderUnavailable(f"deepface could not be imported: {exc}") from exc
        self._model_name = model_name
        self._detector_backend = detector_backend
        self.embedding_size, self.match_threshold = self.MODELS.get(model_name, (128, 0.80))
        self._logger = logger or logging.getLogger(__name__)

    def detect(self, frame: np.ndarray) -> Optional[Detection]:
        try:
            representations = self._deepface.represent(
                img_path=frame,
                model_name=self._model_name,
                detector_backend=self._detector_backend,
                enforce_detection=True,
            )
        except ValueError:
            # enforce_detection raises ValueError when the frame holds no face
            return None
        detections: List[Detection] = []
        for rep in representations or []:
            area = rep.get("facial_area") or {}
            box = (
                int(area.get("x", 0)),
                int(area.get("y", 0)),
                int(area.get("w", 0)),
                int(area.get("h", 0)),
            )
            detections.append(Detection(box=box, embedding=l2_normalize(rep["embedding"])))
        return _largest(detections)


PROVIDERS = {
    FaceRecognitionProvider.name: FaceRecognitionProvider,
    DeepFaceProvider.name: DeepFaceProvider,
}


def load_embedding_provider(
    backend: str = FaceRecognitionProvider.name,
    *,
    fallbacks: Sequence[str] = (DeepFaceProvider.name,),
    options: Optional[Dict[str, Dict[str, Any]]] = None,
    logger: Optional[logging.Logger] = None,
) -> EmbeddingProvider:
    """Load the preferred backend, then each fallback; degrade if none loads.

    ``options`` maps a backend name to extra constructor keyword arguments.
    """
    options = options or {}
    logger = logger or logging.getLogger(__name__)
    order = [backend] + [name for name in fallbacks if name != backend]
    errors: List[str] = []
    for name in order:
        factory = PROVIDERS.get(name)
        if factory is None:
            errors.append(f"{name}: unknown backend")
            continue
        try:
            provider = factory(logger=logger, **options.get(name, {}))
        except ProviderUnavailable as exc:
            errors.append(f"{name}: {exc}")
            logger.warning("[Inference] Backend %s unavailable: %s", name, exc)
            continue
        logger.info("[Inference] Using %s embedding provider", provider.name)
        return provider

    reason = "; ".join(errors) or "no backend configured"
    logger.error("[Inference] No embedding provider could be loaded, running degraded (%s)", reason)
    return DegradedProvider(reason)


__all__ = [
    "Box",
    "Detection",
    "EmbeddingProvider",
    "DegradedProvider",
    "FaceRecognitionProvider",
    "DeepFaceProvider",
    "l2_normalize",
    "load_embedding_provider",
]
