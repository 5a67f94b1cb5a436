"""
Routes package
Registers every blueprint
"""
from .api_attendance import attendance_api_bp
from .api_capture import capture_api_bp
from .api_classes import class_api_bp
from .api_events import events_api_bp
from .api_reports import reports_api_bp
from .api_stats import stats_api_bp
from .api_students import student_api_bp


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    app.register_blueprint(student_api_bp)
    app.register_blueprint(class_api_bp)
    app.register_blueprint(attendance_api_bp)
    app.register_blueprint(capture_api_bp)
    app.register_blueprint(reports_api_bp)
    app.register_blueprint(stats_api_bp)
    app.register_blueprint(events_api_bp)

    app.logger.info("Registered all blueprints")
