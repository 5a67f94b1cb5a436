"""
API routes for attendance records
"""
from datetime import date

from flask import Blueprint, jsonify, request

from facecheck.attendance import REASON_UNKNOWN_STUDENT
from kiosk.extensions import get_services
from kiosk.utils import get_request_data, parse_date

attendance_api_bp = Blueprint('attendance_api', __name__, url_prefix='/api/attendance')


@attendance_api_bp.route('', methods=['GET'])
def get_attendance():
    """Records for one day (``?date=YYYY-MM-DD``, default today), newest first."""
    try:
        day = parse_date(request.args.get('date'), default=date.today())
    except ValueError as exc:
        return jsonify({'success': False, 'message': str(exc)}), 400

    records = get_services().database.list_records_for_day(day)
    return jsonify({
        'success': True,
        'date': day.isoformat(),
        'data': [r.to_dict() for r in records],
    })


@attendance_api_bp.route('/manual', methods=['POST'])
def manual_check_in():
    """Check a student in without the camera; the same-day window still applies."""
    data = get_request_data()
    student_id = (data.get('student_id') or '').strip()
    if not student_id:
        return jsonify({'success': False, 'message': 'student_id is required'}), 400

    decision = get_services().attendance.manual_check_in(student_id)
    if decision.accepted:
        return jsonify({
            'success': True,
            'message': f'{decision.record.student_name} checked in',
            'data': decision.record.to_dict(),
        }), 201
    if decision.reason == REASON_UNKNOWN_STUDENT:
        return jsonify({'success': False, 'message': 'Student not found'}), 404
    return jsonify({
        'success': False,
        'message': 'Already checked in recently',
        'reason': decision.reason,
        'data': decision.previous.to_dict() if decision.previous else None,
    }), 409
