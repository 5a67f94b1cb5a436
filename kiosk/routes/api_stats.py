"""
API routes for dashboard statistics
"""
from datetime import date, timedelta

from flask import Blueprint, jsonify

from kiosk.extensions import get_services
from kiosk.utils import dashboard_summary, weekly_chart

stats_api_bp = Blueprint('stats_api', __name__, url_prefix='/api/stats')


@stats_api_bp.route('/dashboard', methods=['GET'])
def dashboard():
    database = get_services().database
    today = date.today()
    student_ids = [s.id for s in database.list_students()]
    total_students = len(student_ids)

    today_records = database.list_records_for_day(today)
    week_records = database.list_records_between(today - timedelta(days=6), today)

    summary = dashboard_summary(total_students, today_records, student_ids)
    summary['recent'] = [r.to_dict() for r in today_records[:5]]
    summary['weekly'] = weekly_chart(week_records, total_students, today, student_ids=student_ids)
    return jsonify({'success': True, 'data': summary})
