"""
File utilities
Face photo upload decoding, validation and storage
"""
import base64
import binascii
import io
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from config import ALLOWED_EXTENSIONS, MAX_FILE_SIZE, MIN_FILE_SIZE, SUPPORTED_IMAGE_FORMATS

logger = logging.getLogger(__name__)


def safe_delete_file(path):
    """Remove a file, logging instead of raising when that fails."""
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        logger.debug("Could not remove file %s", path)


def _generate_face_image_filename(student_id, full_name, *, suffix=None, extension='jpg', timestamp=None):
    safe_base = secure_filename(f"{student_id}_{full_name}".strip()) or secure_filename(str(student_id)) or 'student'
    timestamp = timestamp or datetime.now().strftime('%Y%m%d%H%M%S%f')
    suffix_part = f"_{suffix}" if suffix is not None else ''
    return f"{safe_base}_{timestamp}{suffix_part}.{extension}"


def build_student_image_path(face_dir, student_id, filename):
    student_dir = Path(face_dir) / secure_filename(str(student_id))
    student_dir.mkdir(parents=True, exist_ok=True)
    return student_dir / filename


def check_extension(filename):
    _, ext = os.path.splitext(filename or '')
    ext = ext.lower().lstrip('.')
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Unsupported file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
    return ext


def decode_base64_image(image_data):
    """Decode a base64 payload, with or without a ``data:image/...;base64,`` prefix."""
    if not image_data:
        raise ValueError('Missing image data')
    if ',' in image_data:
        image_data = image_data.split(',', 1)[1]
    try:
        return base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError('Invalid image: base64 data could not be decoded') from exc


def validate_image_bytes(img_bytes):
    """
    Check size limits and that Pillow recognises the payload as a supported image.
    Returns the detected format ('JPEG', 'PNG', 'WEBP').
    """
    size = len(img_bytes or b'')
    if size < MIN_FILE_SIZE:
        raise ValueError(f"Image too small (minimum {MIN_FILE_SIZE} bytes)")
    if size > MAX_FILE_SIZE:
        raise ValueError(f"Image too large (maximum {MAX_FILE_SIZE} bytes)")
    try:
        with Image.open(io.BytesIO(img_bytes)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"Invalid image: {exc}") from exc
    if image_format not in SUPPORTED_IMAGE_FORMATS:
        raise ValueError(f"Unsupported image format: {image_format}")
    return image_format


def image_bytes_to_frame(img_bytes):
    """Decode image bytes to the BGR array the face providers expect."""
    buffer = np.frombuffer(img_bytes, dtype=np.uint8)
    frame = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError('Invalid image: could not decode pixels')
    return frame


def save_face_image(img_bytes, face_dir, student_id, full_name, *, image_format='JPEG', suffix=None):
    """Write an already validated photo under ``<face_dir>/<student_id>/``."""
    extension = 'png' if image_format == 'PNG' else 'webp' if image_format == 'WEBP' else 'jpg'
    filename = _generate_face_image_filename(student_id, full_name, suffix=suffix, extension=extension)
    file_path = build_student_image_path(face_dir, student_id, filename)
    with open(file_path, 'wb') as fp:
        fp.write(img_bytes)
    return str(file_path)


def remove_student_images(face_dir, student_id):
    student_dir = Path(face_dir) / secure_filename(str(student_id))
    if student_dir.is_dir():
        shutil.rmtree(student_dir, ignore_errors=True)
