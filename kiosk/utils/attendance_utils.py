"""
Attendance utilities
Report rows, CSV export and dashboard figures built from attendance records
"""
import csv
import io
from datetime import date, timedelta

from facecheck.models import STATUS_LATE

REPORT_HEADERS = ['Name', 'NIS', 'Date', 'Time', 'Status', 'Confidence']


def build_report_rows(records, students_by_id):
    """One dict per record, newest first, joined with the student's NIS."""
    rows = []
    for record in sorted(records, key=lambda r: r.timestamp, reverse=True):
        student = students_by_id.get(record.student_id)
        rows.append({
            'id': record.id,
            'student_id': record.student_id,
            'name': record.student_name,
            'nis': student.nis if student and student.nis else '-',
            'class_name': student.class_name if student else '',
            'date': record.timestamp.date().isoformat(),
            'time': record.timestamp.strftime('%H:%M:%S'),
            'status': record.status,
            'method': record.method,
            'confidence': record.confidence,
        })
    return rows


def filter_report_rows(rows, query):
    """Case-insensitive match on name, or substring match on NIS."""
    query = (query or '').strip()
    if not query:
        return list(rows)
    needle = query.lower()
    return [row for row in rows if needle in row['name'].lower() or query in row['nis']]


def rows_to_csv(rows):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(REPORT_HEADERS)
    for row in rows:
        writer.writerow([
            row['name'],
            row['nis'],
            row['date'],
            row['time'],
            row['status'],
            f"{row['confidence']}%",
        ])
    return output.getvalue()


def report_filename(today=None):
    today = today or date.today()
    return f"attendance_report_{today.isoformat()}.csv"


def unique_students(records, status=None, student_ids=None):
    """Distinct student ids in ``records``; ``student_ids`` limits them to the current directory."""
    found = {r.student_id for r in records if status is None or r.status == status}
    if student_ids is not None:
        found &= set(student_ids)
    return found


def dashboard_summary(total_students, today_records, student_ids=None):
    present = len(unique_students(today_records, student_ids=student_ids))
    late = len(unique_students(today_records, STATUS_LATE, student_ids))
    absent = max(0, total_students - present)
    rate = round(present / total_students * 100) if total_students > 0 else 0
    return {
        'total_students': total_students,
        'present_today': present,
        'absent_today': absent,
        'late_today': late,
        'attendance_rate': rate,
        'checkins_today': len(today_records),
    }


def weekly_chart(records, total_students, today=None, days=7, student_ids=None):
    """Present/absent counts for the ``days`` days ending today, oldest first."""
    today = today or date.today()
    known = set(student_ids) if student_ids is not None else None
    by_day = {}
    for record in records:
        if known is not None and record.student_id not in known:
            continue
        by_day.setdefault(record.timestamp.date(), set()).add(record.student_id)

    chart = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        present = len(by_day.get(day, ()))
        chart.append({
            'name': day.strftime('%a'),
            'date': day.isoformat(),
            'present': present,
            'absent': max(0, total_students - present),
        })
    return chart
