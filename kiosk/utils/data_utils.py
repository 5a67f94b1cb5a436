"""
Data utilities
Request parsing helpers
"""
from datetime import date, datetime

from flask import request


def get_request_data():
    """Request payload from JSON or form fields."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def parse_bool(value, default=None):
    """
    Parse a boolean from a string, int or bool.
    Returns True, False, or default when the value is not recognised.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ('true', '1', 'yes', 'on'):
            return True
        if lower in ('false', '0', 'no', 'off'):
            return False
    return default


def parse_date(value, default=None):
    """YYYY-MM-DD to ``date``; raises ValueError on anything else."""
    if not value:
        return default
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def parse_descriptor(value):
    """A JSON list of numbers to a list of floats, or None when absent."""
    if value is None or value == '':
        return None
    if not isinstance(value, (list, tuple)) or not value:
        raise ValueError('face_descriptor must be a non-empty list of numbers')
    try:
        return [float(v) for v in value]
    except (TypeError, ValueError) as exc:
        raise ValueError('face_descriptor must be a non-empty list of numbers') from exc
