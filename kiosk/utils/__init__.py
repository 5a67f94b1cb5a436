"""
Utils package
"""
from .data_utils import get_request_data, parse_bool, parse_date, parse_descriptor
from .file_utils import (
    check_extension,
    decode_base64_image,
    image_bytes_to_frame,
    safe_delete_file,
    validate_image_bytes,
)
from .attendance_utils import (
    build_report_rows,
    dashboard_summary,
    filter_report_rows,
    report_filename,
    rows_to_csv,
    weekly_chart,
)

__all__ = [
    'get_request_data',
    'parse_bool',
    'parse_date',
    'parse_descriptor',
    'check_extension',
    'decode_base64_image',
    'image_bytes_to_frame',
    'safe_delete_file',
    'validate_image_bytes',
    'build_report_rows',
    'dashboard_summary',
    'filter_report_rows',
    'report_filename',
    'rows_to_csv',
    'weekly_chart',
]
