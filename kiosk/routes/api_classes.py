"""
API routes for classes
"""
from flask import Blueprint, current_app, jsonify

from kiosk.extensions import get_services

class_api_bp = Blueprint('class_api', __name__, url_prefix='/api/classes')


@class_api_bp.route('', methods=['GET'])
def get_classes():
    """Configured classes plus any class already used by a registered student."""
    classes = list(current_app.config['DEFAULT_CLASSES'])
    for student in get_services().database.list_students():
        if student.class_name and student.class_name not in classes:
            classes.append(student.class_name)
    return jsonify({'success': True, 'data': sorted(classes)})
