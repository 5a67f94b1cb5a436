"""Face-matching attendance core.

Contains the recognition and attendance logic of the kiosk: embedding
providers, the gallery of enrolled faces, nearest-neighbour matching, the
check-in policy and the capture loop that drives them from a camera. The
Flask surface lives in the ``kiosk`` package and only wires these together.
"""

from .models import AttendanceRecord, Student
from .recognition import Gallery, Matcher
from .attendance import AttendancePolicy, AttendanceService
from .vision import CaptureLoop

__all__ = [
    'Student',
    'AttendanceRecord',
    'Gallery',
    'Matcher',
    'AttendancePolicy',
    'AttendanceService',
    'CaptureLoop',
]

# Model libraries (dlib, TensorFlow) are only imported by the provider that
# needs them, when it is constructed.
