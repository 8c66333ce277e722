"""
Student routes.
"""

import logging

from flask import Blueprint, request

from school_admin.routes.api_utils import (
    admin_required, get_json_body, get_services, login_required, query_bool, query_int
)
from school_admin.utils.helpers import create_response, error_response, result_response

logger = logging.getLogger(__name__)

students_bp = Blueprint('students', __name__, url_prefix='/api/students')


@students_bp.route('', methods=['GET'])
@login_required
def list_students():
    """List or search students"""
    students = get_services().students
    include_inactive = query_bool('includeInactive')
    limit = query_int('limit')
    search = request.args.get('search', '').strip()

    if search:
        rows = students.search_students(search, include_inactive, limit)
    elif query_bool('withGroupCount'):
        rows = students.list_students_with_group_count(include_inactive)
    else:
        rows = students.list_students(include_inactive, limit)
    return create_response(True, data={'students': rows})


@students_bp.route('/quick-search', methods=['GET'])
@login_required
def quick_search():
    """Short list of active students for pickers"""
    search = request.args.get('q', '').strip()
    if not search:
        return create_response(True, data={'students': []})
    rows = get_services().students.quick_search(search, query_int('limit') or 10)
    return create_response(True, data={'students': rows})


@students_bp.route('', methods=['POST'])
@admin_required
def create_student():
    result = get_services().students.create_student(get_json_body())
    return result_response(result, {'student': result.get('student')}, success_status=201)


@students_bp.route('/<int:student_id>', methods=['GET'])
@login_required
def get_student(student_id):
    """Student card with active groups"""
    student = get_services().students.get_student_with_groups(student_id)
    if not student:
        return error_response('Student not found', 404)
    return create_response(True, data={'student': student})


@students_bp.route('/<int:student_id>', methods=['PUT'])
@admin_required
def update_student(student_id):
    result = get_services().students.update_student(student_id, get_json_body())
    return result_response(result, {'student': result.get('student')})


@students_bp.route('/<int:student_id>', methods=['PATCH'])
@admin_required
def restore_student(student_id):
    """Bring an archived student back"""
    result = get_services().students.restore_student(student_id)
    return result_response(result, {'student': result.get('student')})


@students_bp.route('/<int:student_id>', methods=['DELETE'])
@admin_required
def delete_student(student_id):
    """Archive a student, or delete permanently with ?permanent=true"""
    permanent = query_bool('permanent')
    result = get_services().students.delete_student(student_id, permanent=permanent)
    return result_response(result)


@students_bp.route('/<int:student_id>/attendance', methods=['GET'])
@login_required
def student_attendance(student_id):
    services = get_services()
    if not services.students.get_student(student_id):
        return error_response('Student not found', 404)

    return create_response(True, data={
        'history': services.students.get_attendance_history(student_id, query_int('limit') or 50),
        'stats': services.attendance.get_student_stats(student_id, query_int('groupId')),
    })


@students_bp.route('/<int:student_id>/payments', methods=['GET'])
@login_required
def student_payments(student_id):
    students = get_services().students
    if not students.get_student(student_id):
        return error_response('Student not found', 404)
    return create_response(True, data={'payments': students.get_payment_history(student_id)})
