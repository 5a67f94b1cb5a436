"""
Logging setup for the attendance kiosk
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

_HANDLER_TAG = '_facecheck_handler'


def _tag(handler):
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(app, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Configure logging for the Flask app

    Args:
        app: Flask app instance
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: directory for attendance_system.log and errors.log
        max_log_size: size in bytes before a log file rotates
        backup_count: number of rotated files to keep
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = _tag(logging.handlers.RotatingFileHandler(
        log_dir / 'attendance_system.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    ))
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = _tag(logging.StreamHandler())
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    error_handler = _tag(logging.handlers.RotatingFileHandler(
        log_dir / 'errors.log',
        maxBytes=max_log_size,
        backupCount=backup_count,
        encoding='utf-8'
    ))
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Replace only what an earlier call installed; leave foreign handlers alone
    for handler in root_logger.handlers[:]:
        if getattr(handler, _HANDLER_TAG, False):
            root_logger.removeHandler(handler)
            handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    for channel in ('face_recognition', 'database', 'api'):
        logging.getLogger(channel).setLevel(logging.INFO)

    app.logger.setLevel(level)

    app.logger.info("=" * 50)
    app.logger.info("ATTENDANCE KIOSK STARTUP")
    app.logger.info(f"Timestamp: {datetime.now().isoformat()}")
    app.logger.info(f"Log Level: {logging.getLevelName(level)}")
    app.logger.info(f"Log Directory: {log_dir.absolute()}")
    app.logger.info("=" * 50)


class FaceRecognitionLogger:
    """Channel logger for recognition and check-in events"""

    def __init__(self):
        self.logger = logging.getLogger('face_recognition')

    def log_face_detected(self, box, frame_size=None):
        frame_info = f", Frame: {frame_size}" if frame_size else ""
        self.logger.debug(f"Face detected - Box: {box}{frame_info}")

    def log_face_recognized(self, name, confidence, student_id=None):
        student_info = f", Student ID: {student_id}" if student_id else ""
        self.logger.info(f"Face recognized - Name: {name}, Confidence: {confidence}%{student_info}")

    def log_attendance_marked(self, name, student_id, confidence=None, method='face'):
        confidence_info = f", Confidence: {confidence}%" if confidence is not None else ""
        self.logger.info(
            f"Attendance marked - Name: {name}, Student ID: {student_id}, Method: {method}{confidence_info}"
        )

    def log_duplicate(self, name, student_id):
        self.logger.info(f"Duplicate check-in ignored - Name: {name}, Student ID: {student_id}")

    def log_recognition_error(self, error_message):
        self.logger.error(f"Recognition error - {error_message}")


class DatabaseLogger:
    """Channel logger for database operations"""

    def __init__(self):
        self.logger = logging.getLogger('database')

    def log_query(self, query_type, table, duration=None):
        duration_info = f", Duration: {duration:.3f}s" if duration else ""
        self.logger.debug(f"DB Query - Type: {query_type}, Table: {table}{duration_info}")

    def log_error(self, operation, error_message):
        self.logger.error(f"DB Error - Operation: {operation}, Error: {error_message}")


class APILogger:
    """Channel logger for API calls"""

    def __init__(self):
        self.logger = logging.getLogger('api')

    def log_request(self, method, endpoint, ip_address=None):
        ip_info = f", IP: {ip_address}" if ip_address else ""
        self.logger.info(f"API Request - {method} {endpoint}{ip_info}")

    def log_response(self, endpoint, status_code, duration=None):
        duration_info = f", Duration: {duration:.3f}s" if duration else ""
        self.logger.info(f"API Response - {endpoint}, Status: {status_code}{duration_info}")

    def log_error(self, endpoint, error_message, status_code=500):
        self.logger.error(f"API Error - {endpoint}, Status: {status_code}, Error: {error_message}")


face_recognition_logger = FaceRecognitionLogger()
database_logger = DatabaseLogger()
api_logger = APILogger()


def get_client_ip(request):
    """Client IP, honouring reverse-proxy headers"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr


def log_request_info(request):
    ip_address = get_client_ip(request)
    api_logger.log_request(request.method, request.endpoint, ip_address=ip_address)
    return ip_address
