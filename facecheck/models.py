"""Records exchanged between the registration workflow, the core and storage."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

METHOD_FACE = "face"
METHOD_MANUAL = "manual"
ATTENDANCE_METHODS = (METHOD_FACE, METHOD_MANUAL)

STATUS_PRESENT = "present"
STATUS_LATE = "late"
STATUS_ABSENT = "absent"
ATTENDANCE_STATUSES = (STATUS_PRESENT, STATUS_LATE, STATUS_ABSENT)

Descriptor = List[float]


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime or an ISO-8601 string (a trailing ``Z`` is tolerated)."""
    if isinstance(value, datetime):
        return value
    if not value:
        raise ValueError("timestamp is required")
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _descriptor_or_none(value: Optional[Sequence[float]]) -> Optional[Descriptor]:
    if value is None:
        return None
    return [float(v) for v in value]


@dataclass
class Student:
    id: str
    name: str
    nis: str = ""
    class_name: str = ""
    photo_url: str = ""
    face_descriptor: Optional[Descriptor] = None
    registered_at: datetime = field(default_factory=datetime.now)
    extra_descriptors: List[Descriptor] = field(default_factory=list)

    def descriptors(self) -> List[Descriptor]:
        """Every enrolled embedding of this student, primary first, empty ones dropped."""
        found: List[Descriptor] = []
        if self.face_descriptor:
            found.append(self.face_descriptor)
        found.extend(d for d in self.extra_descriptors if d)
        return found

    def has_face(self) -> bool:
        return bool(self.descriptors())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "nis": self.nis,
            "class_name": self.class_name,
            "photo_url": self.photo_url,
            "face_descriptor": self.face_descriptor,
            "registered_at": self.registered_at.isoformat(),
            "extra_descriptors": [list(d) for d in self.extra_descriptors],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Student":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            nis=data.get("nis") or "",
            class_name=data.get("class_name") or "",
            photo_url=data.get("photo_url") or "",
            face_descriptor=_descriptor_or_none(data.get("face_descriptor")),
            registered_at=parse_timestamp(data.get("registered_at") or datetime.now()),
            extra_descriptors=[
                _descriptor_or_none(d) for d in (data.get("extra_descriptors") or []) if d
            ],
        )


@dataclass(frozen=True)
class AttendanceRecord:
    """One accepted check-in. Never mutated once created."""

    id: str
    student_id: str
    student_name: str
    timestamp: datetime
    method: str = METHOD_FACE
    status: str = STATUS_PRESENT
    confidence: int = 0

    def __post_init__(self) -> None:
        if self.method not in ATTENDANCE_METHODS:
            raise ValueError(f"Unsupported attendance method: {self.method}")
        if self.status not in ATTENDANCE_STATUSES:
            raise ValueError(f"Unsupported attendance status: {self.status}")
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence out of range: {self.confidence}")

    @property
    def day(self):
        return self.timestamp.date()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "status": self.status,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttendanceRecord":
        return cls(
            id=str(data["id"]),
            student_id=str(data["student_id"]),
            student_name=data.get("student_name") or "",
            timestamp=parse_timestamp(data["timestamp"]),
            method=data.get("method") or METHOD_FACE,
            status=data.get("status") or STATUS_PRESENT,
            confidence=int(data.get("confidence") or 0),
        )


__all__ = [
    "Student",
    "AttendanceRecord",
    "Descriptor",
    "parse_timestamp",
    "METHOD_FACE",
    "METHOD_MANUAL",
    "STATUS_PRESENT",
    "STATUS_LATE",
    "STATUS_ABSENT",
]
