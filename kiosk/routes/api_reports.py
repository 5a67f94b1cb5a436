"""
API routes for reports
"""
from flask import Blueprint, Response, jsonify, request

from kiosk.extensions import get_services
from kiosk.utils import build_report_rows, filter_report_rows, report_filename, rows_to_csv

reports_api_bp = Blueprint('reports_api', __name__, url_prefix='/api/reports')


def _report_rows():
    database = get_services().database
    students = {s.id: s for s in database.list_students()}
    rows = build_report_rows(database.list_records(), students)
    return filter_report_rows(rows, request.args.get('q'))


@reports_api_bp.route('', methods=['GET'])
def get_report():
    """All check-ins, newest first, filtered by ``?q=`` on name or NIS."""
    rows = _report_rows()
    return jsonify({'success': True, 'data': rows, 'total': len(rows)})


@reports_api_bp.route('/export.csv', methods=['GET'])
def export_report():
    rows = _report_rows()
    return Response(
        rows_to_csv(rows),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={report_filename()}'},
    )
