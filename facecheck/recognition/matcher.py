"""Nearest-neighbour identity matching against the gallery."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from facecheck.errors import MatcherError
from facecheck.recognition.gallery import Gallery, GallerySnapshot

FACE_MATCH_THRESHOLD = 0.6
UNKNOWN = "unknown"
NO_MATCH_DISTANCE = 1.0

Vector = Union[np.ndarray, Sequence[float]]


@dataclass(frozen=True)
class MatchResult:
    student_id: Optional[str]
    distance: float

    @property
    def is_unknown(self) -> bool:
        return self.student_id is None

    @property
    def label(self) -> str:
        return self.student_id if self.student_id is not None else UNKNOWN


def euclidean_distances(embeddings: np.ndarray, query: np.ndarray) -> np.ndarray:
    return np.linalg.norm(embeddings - query, axis=1)


class Matcher:
    """Returns the closest enrolled student, or unknown past ``threshold``.

    Equal distances resolve to the first row of the snapshot (student order,
    then enrollment order); this tie-break is incidental, not a guarantee.
    """

    def __init__(
        self,
        gallery: Gallery,
        threshold: float = FACE_MATCH_THRESHOLD,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.gallery = gallery
        self.threshold = float(threshold)
        self._logger = logger or logging.getLogger(__name__)

    def match(self, embedding: Vector) -> MatchResult:
        snapshot = self.gallery.snapshot()
        return self.match_snapshot(snapshot, embedding)

    def match_snapshot(self, snapshot: GallerySnapshot, embedding: Vector) -> MatchResult:
        if snapshot.is_empty:
            return MatchResult(student_id=None, distance=NO_MATCH_DISTANCE)

        query = np.asarray(embedding, dtype=np.float64).ravel()
        if query.size != snapshot.dimension:
            raise MatcherError(
                f"Query embedding has {query.size} values, gallery expects {snapshot.dimension}"
            )

        distances = euclidean_distances(snapshot.embeddings, query)
        best = int(np.argmin(distances))
        distance = float(distances[best])
        if distance <= self.threshold:
            self._logger.debug(
                "[Matcher] Match %s at distance %.4f (threshold %.2f)",
                snapshot.owners[best],
                distance,
                self.threshold,
            )
            return MatchResult(student_id=snapshot.owners[best], distance=distance)

        self._logger.debug(
            "[Matcher] No match: best distance %.4f > threshold %.2f", distance, self.threshold
        )
        return MatchResult(student_id=None, distance=NO_MATCH_DISTANCE)
