"""
Group routes: CRUD, status, membership, history, lessons, attendance
statistics and monthly payment status.
"""

import logging

from flask import Blueprint, current_app, g, request

from school_admin.routes.api_utils import (
    admin_required, check_password_confirmation, get_json_body, get_services,
    login_required, query_bool, query_int, query_int_list
)
from school_admin.utils.exceptions import NotFoundError, ValidationError
from school_admin.utils.helpers import create_response, current_month, error_response, result_response
from school_admin.utils.validators import normalize_month, parse_date

logger = logging.getLogger(__name__)

groups_bp = Blueprint('groups', __name__, url_prefix='/api/groups')


def _load_group(group_id):
    """Return (group, None) or (None, error response) honouring group access."""
    services = get_services()
    group = services.groups.get_group(group_id)
    if not group:
        return None, error_response('Group not found', 404)
    if not services.auth.check_group_access(g.user, group_id):
        return None, error_response('You do not have access to this group', 403)
    return group, None


@groups_bp.route('', methods=['GET'])
@login_required
def list_groups():
    """List groups filtered by course, teacher, status, title and weekday"""
    teacher_id = query_int('teacherId')
    if g.user['role'] != 'admin':
        teacher_id = g.user['id']

    groups = get_services().groups.list_groups(
        course_id=query_int('courseId'),
        teacher_id=teacher_id,
        status=request.args.get('status') or None,
        search=request.args.get('search', '').strip() or None,
        include_inactive=query_bool('includeInactive'),
        days=query_int_list('days') or None
    )
    return create_response(True, data={'groups': groups})


@groups_bp.route('', methods=['POST'])
@admin_required
def create_group():
    result = get_services().groups.create_group(get_json_body(), g.user)
    return result_response(result, {'group': result.get('group')}, success_status=201)


@groups_bp.route('/<int:group_id>', methods=['GET'])
@login_required
def get_group(group_id):
    """Group with members, recent history and price history"""
    group, error = _load_group(group_id)
    if error:
        return error

    services = get_services()
    return create_response(True, data={
        'group': group,
        'students': services.groups.get_group_students(group_id),
        'history': services.history.get_recent(group_id),
        'prices': services.groups.get_price_history(group_id),
    })


@groups_bp.route('/<int:group_id>', methods=['PUT'])
@admin_required
def update_group(group_id):
    """Partial update; a body with only ``status`` changes the status"""
    data = get_json_body()
    groups = get_services().groups

    if set(data) == {'status'}:
        result = groups.update_status(group_id, data['status'], g.user)
    else:
        result = groups.update_group(group_id, data, g.user)
    return result_response(result, {'group': result.get('group')})


@groups_bp.route('/<int:group_id>/archive', methods=['POST'])
@admin_required
def archive_group(group_id):
    result = get_services().groups.archive_group(group_id, g.user)
    return result_response(result, {'group': result.get('group')})


@groups_bp.route('/<int:group_id>/restore', methods=['POST'])
@admin_required
def restore_group(group_id):
    result = get_services().groups.restore_group(group_id, g.user)
    return result_response(result, {'group': result.get('group')})


@groups_bp.route('/<int:group_id>', methods=['DELETE'])
@admin_required
def delete_group(group_id):
    password_error = check_password_confirmation(get_json_body())
    if password_error:
        return password_error

    result = get_services().groups.delete_group(group_id)
    if not result['success'] and result.get('dependencies'):
        return create_response(False, result['error'], {'dependencies': result['dependencies']}, 409)
    return result_response(result)


@groups_bp.route('/<int:group_id>/students', methods=['GET'])
@login_required
def group_students(group_id):
    group, error = _load_group(group_id)
    if error:
        return error
    return create_response(True, data={'students': get_services().groups.get_group_students(group_id)})


@groups_bp.route('/<int:group_id>/students', methods=['POST'])
@admin_required
def add_student(group_id):
    data = get_json_body()
    if not data.get('student_id'):
        return error_response('student_id is required', 400)

    result = get_services().groups.add_student(
        group_id, data['student_id'], data.get('join_date'), g.user
    )
    return result_response(result, success_status=201)


@groups_bp.route('/<int:group_id>/students/<int:student_id>', methods=['DELETE'])
@admin_required
def remove_student(group_id, student_id):
    return result_response(
        get_services().groups.remove_student(group_id, student_id=student_id, user=g.user)
    )


@groups_bp.route('/<int:group_id>/students', methods=['DELETE'])
@admin_required
def remove_membership(group_id):
    """Remove a membership identified by ``student_group_id`` or ``student_id``"""
    data = get_json_body()
    return result_response(get_services().groups.remove_student(
        group_id,
        student_id=data.get('student_id'),
        student_group_id=data.get('student_group_id'),
        user=g.user
    ))


@groups_bp.route('/<int:group_id>/history', methods=['GET'])
@login_required
def group_history(group_id):
    group, error = _load_group(group_id)
    if error:
        return error
    history = get_services().history.get_history(group_id, query_int('limit'))
    return create_response(True, data={'history': history})


@groups_bp.route('/<int:group_id>/lessons', methods=['GET'])
@login_required
def group_lessons(group_id):
    group, error = _load_group(group_id)
    if error:
        return error

    start_date = parse_date(request.args.get('startDate'))
    end_date = parse_date(request.args.get('endDate'))
    lessons = get_services().lessons.get_lessons_for_group(
        group_id,
        start_date.isoformat() if start_date else None,
        end_date.isoformat() if end_date else None
    )
    return create_response(True, data={'lessons': lessons})


@groups_bp.route('/<int:group_id>/lessons', methods=['POST'])
@admin_required
def generate_group_lessons(group_id):
    """Generate upcoming weekly lessons for the group"""
    data = get_json_body()
    weeks = data.get('weeks', data.get('weeks_ahead', current_app.config['DEFAULT_WEEKS_AHEAD']))

    try:
        result = get_services().lessons.generate_lessons_for_group(
            group_id, weeks, created_by=g.user['id']
        )
    except ValidationError as e:
        return error_response(str(e), 400)
    except NotFoundError:
        return error_response('Group not found', 404)

    return create_response(
        True,
        f"Generated {result['generated']} lessons, skipped {result['skipped']}",
        result
    )


@groups_bp.route('/<int:group_id>/attendance', methods=['GET'])
@login_required
def group_attendance(group_id):
    group, error = _load_group(group_id)
    if error:
        return error

    attendance = get_services().attendance
    return create_response(True, data={
        'stats': attendance.get_group_stats(group_id),
        'students': attendance.get_group_student_stats(group_id),
    })


@groups_bp.route('/<int:group_id>/payments', methods=['GET'])
@login_required
def group_payments(group_id):
    """Payment status of every member for one month"""
    group, error = _load_group(group_id)
    if error:
        return error

    month = normalize_month(request.args.get('month')) if request.args.get('month') else current_month()
    if not month:
        return error_response('Month must be in YYYY-MM format', 400)

    students = get_services().payments.get_payment_status_for_group_month(group_id, month)
    return create_response(True, data={'month': month, 'students': students})
