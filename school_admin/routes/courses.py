"""
Course routes: CRUD, archive, related groups and students, flyer and
program PDF.
"""

import io
import logging

from flask import Blueprint, current_app, request, send_file

from school_admin.routes.api_utils import (
    admin_required, check_password_confirmation, get_json_body, get_services,
    login_required, query_bool
)
from school_admin.utils.exceptions import ValidationError
from school_admin.utils.helpers import create_response, error_response, result_response

logger = logging.getLogger(__name__)

courses_bp = Blueprint('courses', __name__, url_prefix='/api/courses')


@courses_bp.route('', methods=['GET'])
@login_required
def list_courses():
    """List courses, optionally with group/student counts or a search term"""
    courses = get_services().courses
    include_inactive = query_bool('includeInactive')
    search = request.args.get('search', '').strip()

    if search:
        rows = courses.search_courses(search, include_inactive)
    elif query_bool('withStats'):
        rows = courses.list_courses_with_stats(include_inactive)
    else:
        rows = courses.list_courses(include_inactive)
    return create_response(True, data={'courses': rows})


@courses_bp.route('', methods=['POST'])
@admin_required
def create_course():
    result = get_services().courses.create_course(get_json_body())
    return result_response(result, {'course': result.get('course')}, success_status=201)


@courses_bp.route('/<int:course_id>', methods=['GET'])
@login_required
def get_course(course_id):
    course = get_services().courses.get_course(course_id)
    if not course:
        return error_response('Course not found', 404)
    return create_response(True, data={'course': course})


@courses_bp.route('/<int:course_id>', methods=['PUT'])
@admin_required
def update_course(course_id):
    result = get_services().courses.update_course(course_id, get_json_body())
    return result_response(result, {'course': result.get('course')})


@courses_bp.route('/<int:course_id>/archive', methods=['POST'])
@admin_required
def archive_course(course_id):
    return result_response(get_services().courses.archive_course(course_id))


@courses_bp.route('/<int:course_id>/restore', methods=['POST'])
@admin_required
def restore_course(course_id):
    return result_response(get_services().courses.restore_course(course_id))


@courses_bp.route('/<int:course_id>', methods=['DELETE'])
@admin_required
def delete_course(course_id):
    """Delete a course and its groups; requires the caller's password"""
    password_error = check_password_confirmation(get_json_body())
    if password_error:
        return password_error

    services = get_services()
    result = services.courses.delete_course(course_id)
    if result['success'] and result.get('flyer_path'):
        services.media.delete(result['flyer_path'])
    return result_response(result, {'deleted_groups': result.get('deleted_groups')})


@courses_bp.route('/<int:course_id>/groups', methods=['GET'])
@login_required
def course_groups(course_id):
    courses = get_services().courses
    if not courses.get_course(course_id):
        return error_response('Course not found', 404)
    groups = courses.get_course_groups(course_id, query_bool('includeInactive'))
    return create_response(True, data={'groups': groups})


@courses_bp.route('/<int:course_id>/students', methods=['GET'])
@login_required
def course_students(course_id):
    courses = get_services().courses
    if not courses.get_course(course_id):
        return error_response('Course not found', 404)
    return create_response(True, data=courses.get_course_students(course_id))


@courses_bp.route('/<int:course_id>/flyer', methods=['POST'])
@admin_required
def upload_flyer(course_id):
    """Store a flyer image and replace the previous one"""
    services = get_services()
    if not services.courses.get_course(course_id):
        return error_response('Course not found', 404)

    try:
        stored = services.media.save_image(
            request.files.get('file'), current_app.config['FLYER_FOLDER']
        )
    except ValidationError as e:
        return error_response(str(e), 400)

    result = services.courses.set_flyer(course_id, stored['url'])
    if result['success'] and result.get('previous_path'):
        services.media.delete(result['previous_path'])
    return result_response(result, {'flyer_path': stored['url']})


@courses_bp.route('/<int:course_id>/flyer', methods=['DELETE'])
@admin_required
def delete_flyer(course_id):
    services = get_services()
    result = services.courses.clear_flyer(course_id)
    if result['success'] and result.get('previous_path'):
        services.media.delete(result['previous_path'])
    return result_response(result, {'flyer_path': None})


@courses_bp.route('/<int:course_id>/program-pdf', methods=['GET'])
@login_required
def program_pdf(course_id):
    """Download the course program as PDF"""
    services = get_services()
    course = services.courses.get_course(course_id)
    if not course:
        return error_response('Course not found', 404)

    pdf = services.reports.course_program_pdf(course)
    return send_file(
        io.BytesIO(pdf['content']),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=pdf['filename']
    )
