"""
Report routes: attendance, debts and payments as JSON, CSV or Excel,
plus the dashboard summary.
"""

import io
import logging

from flask import Blueprint, g, request, send_file

from school_admin.routes.api_utils import get_services, login_required, query_int
from school_admin.utils.helpers import create_response, current_month, error_response, result_response
from school_admin.utils.validators import normalize_month

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')
dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

REPORT_FORMATS = ('json', 'csv', 'xlsx')


def _render(report, records_key, name):
    """Return the report as JSON or as a download, per ``format``."""
    export_format = request.args.get('format', 'json').lower()
    if export_format not in REPORT_FORMATS:
        return error_response(f"Unsupported format. Allowed: {', '.join(REPORT_FORMATS)}", 400)

    if not report.get('success'):
        return result_response(report)

    if export_format == 'json':
        data = {key: value for key, value in report.items()
                if key not in ('success', 'columns')}
        return create_response(True, data=data)

    export = get_services().reports.export_table(
        report[records_key], report['columns'], export_format, name
    )
    if not export['success']:
        return result_response(export)

    return send_file(
        io.BytesIO(export['content']),
        mimetype=export['mimetype'],
        as_attachment=True,
        download_name=export['filename']
    )


def _month_param(name, default=None):
    raw = request.args.get(name)
    if not raw:
        return default, None
    month = normalize_month(raw)
    if not month:
        return None, error_response(f'{name} must be in YYYY-MM format', 400)
    return month, None


@reports_bp.route('/attendance', methods=['GET'])
@login_required
def attendance_report():
    """Attendance by student, by group, or for every visible group"""
    services = get_services()
    teacher_id = None if g.user['role'] == 'admin' else g.user['id']
    groups = services.groups.list_groups(teacher_id=teacher_id)

    student_id = query_int('studentId')
    group_id = query_int('groupId')
    report = services.reports.attendance_report(groups, student_id=student_id, group_id=group_id)

    if student_id:
        name = f"attendance_student_{student_id}"
    elif group_id:
        name = f"attendance_group_{group_id}"
    else:
        name = 'attendance_all_groups'
    return _render(report, 'records', name)


@reports_bp.route('/debts', methods=['GET'])
@login_required
def debts_report():
    month, error = _month_param('month', current_month())
    if error:
        return error

    report = get_services().reports.debts_report(month)
    return _render(report, 'debtors', f"debts_{month[:7]}")


@reports_bp.route('/payments', methods=['GET'])
@login_required
def payments_report():
    start_month, error = _month_param('startMonth')
    if error:
        return error
    end_month, error = _month_param('endMonth')
    if error:
        return error

    report = get_services().reports.payments_report(
        start_month, end_month, group_id=query_int('groupId'), course_id=query_int('courseId')
    )
    return _render(report, 'payments', 'payments')


@dashboard_bp.route('', methods=['GET'])
@login_required
def dashboard():
    """Headline numbers and upcoming lessons"""
    return create_response(True, data=get_services().reports.dashboard_stats(g.user))
