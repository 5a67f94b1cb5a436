# config.py - Configuration and constants for the attendance kiosk

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = '0') -> bool:
    return os.getenv(name, default).strip().lower() in {'1', 'true', 'yes', 'on'}


# Flask app configuration
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB
HOST = os.getenv('HOST', '0.0.0.0')
PORT = int(os.getenv('PORT', '5000'))
FLASK_DEBUG = _env_bool('FLASK_DEBUG')

# Upload configuration
ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'webp'}
SUPPORTED_IMAGE_FORMATS = {'JPEG', 'PNG', 'WEBP'}
MIN_FILE_SIZE = 1024  # 1 KB
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB

# Demo mode: enroll students with random descriptors when no face model loads
DEMO_MODE = _env_bool('DEMO_MODE')

# Face model backend: face_recognition (dlib) or deepface
FACE_BACKEND = os.getenv('FACE_BACKEND', 'face_recognition')
FACE_DETECTION_MODEL = os.getenv('FACE_DETECTION_MODEL', 'hog')
DEEPFACE_MODEL_NAME = os.getenv('DEEPFACE_MODEL_NAME', 'Facenet')

# Matching and check-in rules
# Unset means the embedding provider's own threshold (0.6 for dlib)
_threshold = os.getenv('FACE_MATCH_THRESHOLD', '').strip()
FACE_MATCH_THRESHOLD = float(_threshold) if _threshold else None
DEDUP_WINDOW_SECONDS = float(os.getenv('DEDUP_WINDOW_SECONDS', '60'))
# HH:MM; check-ins after this time of day are marked late. Empty disables it.
LATE_CUTOFF = os.getenv('LATE_CUTOFF', '').strip() or None

# Capture loop
CAPTURE_INTERVAL_SECONDS = int(os.getenv('CAPTURE_INTERVAL_MS', '500')) / 1000.0

# Camera configuration
CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', '0'))
CAMERA_WIDTH = int(os.getenv('CAMERA_WIDTH', '640'))
CAMERA_HEIGHT = int(os.getenv('CAMERA_HEIGHT', '480'))
CAMERA_WARMUP_FRAMES = int(os.getenv('CAMERA_WARMUP_FRAMES', '3'))
CAMERA_BUFFER_SIZE = int(os.getenv('CAMERA_BUFFER_SIZE', '2'))

# Storage
DATABASE_PATH = os.getenv('DATABASE_PATH', 'facecheck.db')
DATA_DIR = Path(os.getenv('DATA_DIR', 'data'))
FACE_DATA_DIR = Path(os.getenv('FACE_DATA_DIR', str(DATA_DIR / 'faces')))

# Logging
LOG_DIR = Path(os.getenv('LOG_DIR', 'logs'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Classes offered by the registration form
DEFAULT_CLASSES = [
    '10 IPA 1',
    '10 IPA 2',
    '11 IPS 1',
    '12 IPA 1',
]


def as_dict() -> dict:
    """Snapshot of the settings above, keyed the way ``app.config`` expects."""
    return {
        'SECRET_KEY': SECRET_KEY,
        'MAX_CONTENT_LENGTH': MAX_CONTENT_LENGTH,
        'DEMO_MODE': DEMO_MODE,
        'FACE_BACKEND': FACE_BACKEND,
        'FACE_DETECTION_MODEL': FACE_DETECTION_MODEL,
        'DEEPFACE_MODEL_NAME': DEEPFACE_MODEL_NAME,
        'FACE_MATCH_THRESHOLD': FACE_MATCH_THRESHOLD,
        'DEDUP_WINDOW_SECONDS': DEDUP_WINDOW_SECONDS,
        'LATE_CUTOFF': LATE_CUTOFF,
        'CAPTURE_INTERVAL_SECONDS': CAPTURE_INTERVAL_SECONDS,
        'CAMERA_INDEX': CAMERA_INDEX,
        'CAMERA_WIDTH': CAMERA_WIDTH,
        'CAMERA_HEIGHT': CAMERA_HEIGHT,
        'CAMERA_WARMUP_FRAMES': CAMERA_WARMUP_FRAMES,
        'CAMERA_BUFFER_SIZE': CAMERA_BUFFER_SIZE,
        'DATABASE_PATH': DATABASE_PATH,
        'FACE_DATA_DIR': FACE_DATA_DIR,
        'LOG_DIR': LOG_DIR,
        'LOG_LEVEL': LOG_LEVEL,
        'DEFAULT_CLASSES': list(DEFAULT_CLASSES),
    }
