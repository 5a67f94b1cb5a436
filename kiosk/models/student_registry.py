"""
Student Registry - enrollment workflow
Turns registration photos into face descriptors and keeps the directory in sync
"""
import logging
import math
import threading
import uuid
from typing import List, Optional, Sequence

import numpy as np

from facecheck.errors import GalleryError, ProviderUnavailable, RegistrationError
from facecheck.models import Student
from facecheck.recognition import Gallery
from kiosk.utils.file_utils import (
    image_bytes_to_frame,
    remove_student_images,
    safe_delete_file,
    save_face_image,
    validate_image_bytes,
)

NO_FACE_MESSAGE = "No face detected. Please position yourself clearly."


class StudentRegistry:
    """Register, edit and delete students; every change rebuilds the gallery through the database listeners"""

    def __init__(
        self,
        database,
        provider,
        face_dir,
        *,
        gallery=None,
        demo_mode: bool = False,
        broadcaster=None,
        logger=None,
    ):
        self.database = database
        self.provider = provider
        self.face_dir = face_dir
        self.gallery = gallery
        self.demo_mode = demo_mode
        self.broadcaster = broadcaster
        self.logger = logger or logging.getLogger(__name__)
        # directory check and write happen together
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------
    def _random_descriptor(self) -> List[float]:
        size = getattr(self.provider, 'embedding_size', 128) or 128
        return np.random.random_sample(size).tolist()

    def _embed(self, photo: bytes):
        """Validate a photo and return ``(descriptor, image_format)``."""
        try:
            image_format = validate_image_bytes(photo)
            frame = image_bytes_to_frame(photo)
        except ValueError as exc:
            raise RegistrationError(str(exc)) from exc

        if not self.provider.ready():
            if self.demo_mode:
                self.logger.warning("[Registry] Face models unavailable, using a simulated descriptor")
                return self._random_descriptor(), image_format
            raise ProviderUnavailable("Face models are not loaded; cannot enroll a face")

        detection = self.provider.detect(frame)
        if detection is None:
            raise RegistrationError(NO_FACE_MESSAGE)
        return [float(v) for v in np.asarray(detection.embedding).ravel()], image_format

    def _check_descriptor(self, descriptor: Sequence[float], student_id: Optional[str] = None) -> List[float]:
        values = [float(v) for v in descriptor]
        if not values or not all(math.isfinite(v) for v in values):
            raise RegistrationError("Face descriptor must be a non-empty list of finite numbers")
        if self.gallery is not None:
            snapshot = self.gallery.snapshot()
            others = [owner for owner in snapshot.owners if owner != student_id]
            if others and snapshot.dimension != len(values):
                raise RegistrationError(
                    f"Face descriptor has {len(values)} values, enrolled faces have {snapshot.dimension}"
                )
        return values

    def _check_gallery(self, student: Student) -> None:
        """Reject an edit that would leave the directory unbuildable as a gallery."""
        students = [s for s in self.database.list_students() if s.id != student.id]
        students.append(student)
        try:
            Gallery.validate(students)
        except GalleryError as exc:
            raise RegistrationError(f"Face descriptor rejected: {exc}") from exc

    def _save(self, student: Student, new_photo=None, old_photo=None) -> None:
        """Persist ``student``; a failed save removes ``new_photo``, a successful one ``old_photo``."""
        with self._lock:
            try:
                self._check_gallery(student)
                self.database.save_student(student)
            except Exception:
                safe_delete_file(new_photo)
                raise
        if new_photo and old_photo and old_photo != new_photo:
            safe_delete_file(old_photo)

    def _resolve_face(self, student_id, name, photo, descriptor):
        """Descriptor plus saved photo path for a new or recaptured face."""
        if descriptor is not None:
            return self._check_descriptor(descriptor, student_id), None
        if photo:
            values, image_format = self._embed(photo)
            values = self._check_descriptor(values, student_id)
            path = save_face_image(photo, self.face_dir, student_id, name, image_format=image_format)
            return values, path
        return None, None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def register(self, name, nis='', class_name='', photo: Optional[bytes] = None, descriptor=None) -> Student:
        name = (name or '').strip()
        nis = (nis or '').strip()
        if not name:
            raise RegistrationError("Name is required")
        if nis and self.database.find_student_by_nis(nis):
            raise RegistrationError(f"NIS {nis} is already registered")

        student_id = uuid.uuid4().hex
        face, photo_path = self._resolve_face(student_id, name, photo, descriptor)
        if face is None:
            if not self.demo_mode:
                raise RegistrationError("A face photo is required to register")
            self.logger.warning("[Registry] No photo for %s, using a simulated descriptor", name)
            face = self._random_descriptor()

        student = Student(
            id=student_id,
            name=name,
            nis=nis,
            class_name=(class_name or '').strip(),
            photo_url=photo_path or '',
            face_descriptor=face,
        )
        self._save(student, new_photo=photo_path)
        self.logger.info("[Registry] Registered %s (%s)", student.name, student.id)
        self._announce('created', student)
        return student

    def update(self, student_id, *, name=None, nis=None, class_name=None, photo=None, descriptor=None) -> Optional[Student]:
        """Edit fields; a new photo or descriptor replaces the primary face."""
        student = self.database.get_student(student_id)
        if student is None:
            return None

        if name is not None:
            name = name.strip()
            if not name:
                raise RegistrationError("Name is required")
            student.name = name
        if nis is not None:
            nis = nis.strip()
            owner = self.database.find_student_by_nis(nis) if nis else None
            if owner is not None and owner.id != student_id:
                raise RegistrationError(f"NIS {nis} is already registered")
            student.nis = nis
        if class_name is not None:
            student.class_name = class_name.strip()

        old_photo = student.photo_url
        face, photo_path = self._resolve_face(student_id, student.name, photo, descriptor)
        if face is not None:
            student.face_descriptor = face
        if photo_path:
            student.photo_url = photo_path

        self._save(student, new_photo=photo_path, old_photo=old_photo)
        self.logger.info("[Registry] Updated %s (%s)", student.name, student.id)
        self._announce('updated', student)
        return student

    def enroll_face(self, student_id, photo: bytes) -> Optional[Student]:
        """Add another enrollment photo; the first one becomes the primary face."""
        student = self.database.get_student(student_id)
        if student is None:
            return None
        if not photo:
            raise RegistrationError("A face photo is required")

        face, photo_path = self._resolve_face(
            student_id, student.name, photo, None
        )
        old_photo = None
        if student.face_descriptor:
            student.extra_descriptors.append(face)
        else:
            old_photo = student.photo_url
            student.face_descriptor = face
            student.photo_url = photo_path or student.photo_url

        self._save(student, new_photo=photo_path, old_photo=old_photo)
        self.logger.info(
            "[Registry] Enrolled face %d for %s", len(student.descriptors()), student.name
        )
        self._announce('updated', student)
        return student

    def delete(self, student_id) -> bool:
        student = self.database.get_student(student_id)
        if student is None:
            return False
        self.database.delete_student(student_id)
        remove_student_images(self.face_dir, student_id)
        self.logger.info("[Registry] Deleted %s (%s)", student.name, student_id)
        self._announce('deleted', student)
        return True

    def _announce(self, action, student):
        if self.broadcaster:
            self.broadcaster.broadcast_student_change(action, student.id, student.name)
