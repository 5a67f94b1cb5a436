"""In-memory gallery of enrolled face embeddings."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from facecheck.errors import GalleryError
from facecheck.models import Student


@dataclass(frozen=True)
class GallerySnapshot:
    """Immutable view the matcher reads from.

    ``embeddings`` is an ``(N, D)`` matrix and ``owners[i]`` the student id of
    row ``i``. Rows keep student order, then enrollment order.
    """

    embeddings: Optional[np.ndarray]
    owners: Tuple[str, ...]
    version: int = 0

    @property
    def is_empty(self) -> bool:
        return self.embeddings is None

    @property
    def dimension(self) -> Optional[int]:
        if self.embeddings is None:
            return None
        return int(self.embeddings.shape[1])

    def __len__(self) -> int:
        return len(self.owners)


EMPTY_SNAPSHOT = GallerySnapshot(embeddings=None, owners=())


class Gallery:
    """Thread-safe holder for the active snapshot; replaced wholesale on rebuild."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._snapshot = EMPTY_SNAPSHOT
        self._lock = threading.RLock()
        self._version = 0
        self._last_built: Optional[datetime] = None
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _collect(students: Iterable[Student]) -> Tuple[List[np.ndarray], List[str]]:
        rows: List[np.ndarray] = []
        owners: List[str] = []
        dimension: Optional[int] = None
        for student in students:
            for descriptor in student.descriptors():
                vector = np.asarray(descriptor, dtype=np.float64)
                if vector.ndim != 1 or vector.size == 0:
                    raise GalleryError(f"Student {student.id} has a malformed face descriptor")
                if not np.all(np.isfinite(vector)):
                    raise GalleryError(f"Student {student.id} has a non-finite face descriptor")
                if dimension is None:
                    dimension = vector.size
                elif vector.size != dimension:
                    raise GalleryError(
                        f"Student {student.id} descriptor has {vector.size} values, expected {dimension}"
                    )
                rows.append(vector)
                owners.append(student.id)
        return rows, owners

    @classmethod
    def validate(cls, students: Iterable[Student]) -> int:
        """Raise :class:`GalleryError` if ``students`` cannot be built; return the row count."""
        rows, _ = cls._collect(students)
        return len(rows)

    def rebuild(self, students: Iterable[Student]) -> GallerySnapshot:
        """Replace the active snapshot with one built from ``students``.

        The new snapshot is assembled completely before the swap, so a
        malformed descriptor leaves the previous gallery in place.
        """
        rows, owners = self._collect(students)
        with self._lock:
            self._version += 1
            if rows:
                snapshot = GallerySnapshot(
                    embeddings=np.vstack(rows),
                    owners=tuple(owners),
                    version=self._version,
                )
            else:
                snapshot = GallerySnapshot(embeddings=None, owners=(), version=self._version)
            self._snapshot = snapshot
            self._last_built = datetime.now()

        if snapshot.is_empty:
            self._logger.info("[Gallery] Cleared (no students with a face descriptor)")
        else:
            self._logger.info(
                "[Gallery] Rebuilt with %d embeddings for %d students",
                len(snapshot),
                len(set(snapshot.owners)),
            )
        return snapshot

    def snapshot(self) -> GallerySnapshot:
        with self._lock:
            return self._snapshot

    @property
    def is_empty(self) -> bool:
        return self.snapshot().is_empty

    def student_ids(self) -> List[str]:
        return list(dict.fromkeys(self.snapshot().owners))

    def describe(self) -> Dict[str, Any]:
        with self._lock:
            snapshot = self._snapshot
            return {
                "empty": snapshot.is_empty,
                "entries": len(snapshot),
                "students": len(set(snapshot.owners)),
                "dimension": snapshot.dimension,
                "version": snapshot.version,
                "last_built": self._last_built.isoformat() if self._last_built else None,
            }
