"""
Teacher routes.
"""

import logging

from flask import Blueprint

from school_admin.routes.api_utils import (
    admin_required, check_password_confirmation, get_json_body, get_services,
    login_required, query_bool
)
from school_admin.utils.helpers import create_response, error_response, result_response

logger = logging.getLogger(__name__)

teachers_bp = Blueprint('teachers', __name__, url_prefix='/api/teachers')


@teachers_bp.route('', methods=['GET'])
@login_required
def list_teachers():
    teachers = get_services().teachers.list_teachers(query_bool('includeInactive'))
    return create_response(True, data={'teachers': teachers})


@teachers_bp.route('', methods=['POST'])
@admin_required
def create_teacher():
    """Create a teacher; the generated password is shown once"""
    result = get_services().teachers.create_teacher(get_json_body())
    return result_response(
        result,
        {'teacher': result.get('teacher'), 'auto_password': result.get('auto_password')},
        success_status=201
    )


@teachers_bp.route('/<int:teacher_id>', methods=['GET'])
@login_required
def get_teacher(teacher_id):
    teacher = get_services().teachers.get_teacher(teacher_id)
    if not teacher:
        return error_response('Teacher not found', 404)
    return create_response(True, data={'teacher': teacher})


@teachers_bp.route('/<int:teacher_id>', methods=['PUT'])
@admin_required
def update_teacher(teacher_id):
    result = get_services().teachers.update_teacher(teacher_id, get_json_body())
    return result_response(result, {'teacher': result.get('teacher')})


@teachers_bp.route('/<int:teacher_id>', methods=['DELETE'])
@admin_required
def delete_teacher(teacher_id):
    """
    Remove a teacher.

    ``check=true`` only reports the teacher's groups. Without flags the
    teacher is deactivated, which active groups prevent. ``permanent=true``
    deletes the account; with groups it also needs ``force=true``, and it
    always needs the caller's password.
    """
    teachers = get_services().teachers
    teacher = teachers.get_teacher(teacher_id)
    if not teacher:
        return error_response('Teacher not found', 404)

    if query_bool('check'):
        if teacher['groups']:
            return create_response(
                False, 'Teacher is assigned to groups', {'groups': teacher['groups']}, 409
            )
        return create_response(True, 'Teacher can be removed', {'groups': []})

    if not query_bool('permanent'):
        result = teachers.deactivate_teacher(teacher_id)
        if not result['success'] and result.get('groups'):
            return create_response(False, result['error'], {'groups': result['groups']}, 409)
        return result_response(result)

    if teacher['groups'] and not query_bool('force'):
        return create_response(
            False, 'Teacher is assigned to groups. Confirm with force=true.',
            {'groups': teacher['groups']}, 409
        )

    password_error = check_password_confirmation(get_json_body())
    if password_error:
        return password_error

    return result_response(teachers.delete_teacher(teacher_id))
