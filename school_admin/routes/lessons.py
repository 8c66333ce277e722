"""
Lesson, attendance and schedule routes.
"""

import logging

from flask import Blueprint, current_app, g, request

from school_admin.routes.api_utils import (
    admin_required, get_json_body, get_services, login_required, query_int
)
from school_admin.utils.exceptions import ValidationError
from school_admin.utils.helpers import create_response, error_response, result_response
from school_admin.utils.validators import parse_date

logger = logging.getLogger(__name__)

lessons_bp = Blueprint('lessons', __name__, url_prefix='/api/lessons')
schedule_bp = Blueprint('schedule', __name__, url_prefix='/api/schedule')

ATTENDANCE_ACTIONS = ('set', 'setAll', 'clear', 'copyPrevious')


def _load_lesson(lesson_id):
    services = get_services()
    lesson = services.lessons.get_lesson(lesson_id)
    if not lesson:
        return None, error_response('Lesson not found', 404)
    if not services.auth.check_group_access(g.user, lesson['group_id']):
        return None, error_response('You do not have access to this lesson', 403)
    return lesson, None


@lessons_bp.route('/<int:lesson_id>', methods=['GET'])
@login_required
def get_lesson(lesson_id):
    lesson, error = _load_lesson(lesson_id)
    if error:
        return error
    return create_response(True, data={'lesson': lesson})


@lessons_bp.route('/<int:lesson_id>', methods=['PATCH'])
@login_required
def update_lesson(lesson_id):
    """Change topic, status, date or start time"""
    lesson, error = _load_lesson(lesson_id)
    if error:
        return error

    result = get_services().lessons.update_lesson(lesson_id, get_json_body(), g.user)
    return result_response(result, {'lesson': result.get('lesson')})


@lessons_bp.route('/<int:lesson_id>', methods=['DELETE'])
@admin_required
def delete_lesson(lesson_id):
    return result_response(get_services().lessons.delete_lesson(lesson_id))


@lessons_bp.route('/<int:lesson_id>/cancel', methods=['POST'])
@login_required
def cancel_lesson(lesson_id):
    lesson, error = _load_lesson(lesson_id)
    if error:
        return error

    result = get_services().lessons.cancel_lesson(lesson_id, get_json_body().get('reason'))
    return result_response(result, {'lesson': result.get('lesson')})


@lessons_bp.route('/<int:lesson_id>/reschedule', methods=['POST'])
@login_required
def reschedule_lesson(lesson_id):
    lesson, error = _load_lesson(lesson_id)
    if error:
        return error

    data = get_json_body()
    result = get_services().lessons.reschedule_lesson(
        lesson_id,
        data.get('new_date') or data.get('newDate'),
        data.get('new_time') or data.get('newTime')
    )
    return result_response(result, {'lesson': result.get('lesson')})


@lessons_bp.route('/<int:lesson_id>/attendance', methods=['GET'])
@login_required
def get_attendance(lesson_id):
    """Attendance sheet for the lesson"""
    lesson, error = _load_lesson(lesson_id)
    if error:
        return error

    students = get_services().attendance.get_attendance_for_lesson(lesson_id)
    return create_response(True, data={'lesson': lesson, 'students': students})


@lessons_bp.route('/<int:lesson_id>/attendance', methods=['POST'])
@login_required
def update_attendance(lesson_id):
    """
    Attendance actions:
      set           one student (student_id, status, comment, makeup_lesson_id)
      setAll        every member gets ``status``
      clear         remove all marks
      copyPrevious  copy marks from the previous lesson
    """
    lesson, error = _load_lesson(lesson_id)
    if error:
        return error

    data = get_json_body()
    action = data.get('action', 'set')
    attendance = get_services().attendance
    user_id = g.user['id']

    if action not in ATTENDANCE_ACTIONS:
        return error_response(f"Unknown action. Allowed: {', '.join(ATTENDANCE_ACTIONS)}", 400)

    if action == 'set':
        student_id = data.get('student_id') or data.get('studentId')
        if not student_id:
            return error_response('student_id is required', 400)
        result = attendance.set_attendance(
            lesson_id, student_id, data.get('status'), user_id,
            comment=data.get('comment'),
            makeup_lesson_id=data.get('makeup_lesson_id') or data.get('makeupLessonId')
        )
    elif action == 'setAll':
        result = attendance.set_attendance_for_all(lesson_id, data.get('status'), user_id)
    elif action == 'clear':
        result = attendance.clear_attendance(lesson_id)
    else:
        result = attendance.copy_from_previous_lesson(lesson_id, user_id)

    return result_response(result)


@schedule_bp.route('', methods=['GET'])
@login_required
def get_schedule():
    """Lessons grouped by day, current week by default"""
    start_date = None
    end_date = None
    if request.args.get('startDate'):
        start_date = parse_date(request.args['startDate'])
        if not start_date:
            return error_response('startDate must be in YYYY-MM-DD format', 400)
    if request.args.get('endDate'):
        end_date = parse_date(request.args['endDate'])
        if not end_date:
            return error_response('endDate must be in YYYY-MM-DD format', 400)
    if start_date and end_date and end_date < start_date:
        return error_response('endDate cannot be before startDate', 400)

    teacher_id = query_int('teacherId')
    if g.user['role'] != 'admin':
        teacher_id = g.user['id']

    schedule = get_services().lessons.get_week_schedule(
        start_date, end_date, group_id=query_int('groupId'), teacher_id=teacher_id
    )
    return create_response(True, data=schedule)


@schedule_bp.route('/generate-all', methods=['POST'])
@admin_required
def generate_all():
    """Generate lessons for every active group"""
    data = get_json_body()
    weeks = data.get('weeks', data.get('weeks_ahead', current_app.config['DEFAULT_WEEKS_AHEAD']))

    try:
        result = get_services().lessons.generate_lessons_for_all_groups(weeks, created_by=g.user['id'])
    except ValidationError as e:
        return error_response(str(e), 400)

    return create_response(
        True,
        f"Generated {result['total_generated']} lessons for {len(result['results'])} groups",
        result
    )
