"""
Group Manager Module - School Administration System

This module handles groups: class sections of a course that meet once a
week on a fixed day and time with one teacher. It also manages which
students belong to a group and keeps the group history and price history
in step with every change.

Features:
- Filtered group listing
- Group creation with generated titles
- Partial updates with history entries
- Status changes, archive and restore
- Guarded deletion
- Student membership (add, reactivate, remove)
- Capacity enforcement
- Monthly price history
"""

import logging
import sqlite3
from datetime import date
from typing import Dict, List, Any, Optional

import pytz

from school_admin.modules.group_history import (
    format_field_changed, format_status_changed, format_student_added,
    format_student_removed, format_teacher_changed
)
from school_admin.modules.public_id import new_public_id
from school_admin.utils.helpers import failure
from school_admin.utils.validators import (
    normalize_time, parse_date, parse_int, validate_time, validate_url
)

DAY_SHORT = {
    1: 'Mon',
    2: 'Tue',
    3: 'Wed',
    4: 'Thu',
    5: 'Fri',
    6: 'Sat',
    7: 'Sun',
}

DAY_NAMES = {
    1: 'Monday',
    2: 'Tuesday',
    3: 'Wednesday',
    4: 'Thursday',
    5: 'Friday',
    6: 'Saturday',
    7: 'Sunday',
}

GROUP_STATUSES = ('active', 'graduate', 'inactive')

# Fields a client may write, in the order they are validated
EDITABLE_FIELDS = (
    'course_id', 'teacher_id', 'weekly_day', 'start_time', 'duration_minutes',
    'timezone', 'start_date', 'end_date', 'capacity', 'monthly_price', 'status',
    'note', 'photos_folder_url'
)

GROUP_SELECT = """
    SELECT g.*, c.title AS course_title, u.name AS teacher_name,
           (SELECT COUNT(*) FROM student_groups sg
            WHERE sg.group_id = g.id AND sg.is_active = 1) AS students_count
    FROM groups g
    JOIN courses c ON c.id = g.course_id
    LEFT JOIN users u ON u.id = g.teacher_id
"""


def generate_group_title(weekly_day: int, start_time: str, course_title: str) -> str:
    """Build the display title, e.g. ``Mon 16:30 Robotics``."""
    return f"{DAY_SHORT.get(weekly_day, '')} {start_time} {course_title}".strip()


class GroupManager:
    """
    Group and membership management.
    """

    def __init__(self, database_manager, history_manager,
                 default_timezone: str = 'Europe/Uzhgorod',
                 default_duration: int = 90, currency: str = 'UAH'):
        """
        Initialize the group manager.

        Args:
            database_manager: Database manager instance
            history_manager: GroupHistoryManager used for the audit trail
            default_timezone (str): Timezone for groups created without one
            default_duration (int): Lesson length in minutes
            currency (str): Currency recorded in the price history
        """
        self.db = database_manager
        self.history = history_manager
        self.logger = logging.getLogger(__name__)
        self.default_timezone = default_timezone
        self.default_duration = default_duration
        self.currency = currency

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_groups(self, course_id: Optional[int] = None, teacher_id: Optional[int] = None,
                    status: Optional[str] = None, search: Optional[str] = None,
                    include_inactive: bool = False,
                    days: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        """
        List groups matching all of the given filters.

        Args:
            course_id (int): Only groups of this course
            teacher_id (int): Only groups taught by this user
            status (str): Only groups in this status
            search (str): Substring of the group or course title
            include_inactive (bool): Include archived groups
            days (List[int]): Only groups meeting on these weekdays (1..7)

        Returns:
            List[Dict[str, Any]]: Groups with course_title, teacher_name and
            students_count
        """
        where_conditions = []
        params = []

        if course_id:
            where_conditions.append("g.course_id = ?")
            params.append(course_id)

        if teacher_id:
            where_conditions.append("g.teacher_id = ?")
            params.append(teacher_id)

        if status:
            where_conditions.append("g.status = ?")
            params.append(status)

        if search:
            where_conditions.append("(g.title LIKE ? OR c.title LIKE ?)")
            pattern = f"%{search.strip()}%"
            params.extend([pattern, pattern])

        if not include_inactive:
            where_conditions.append("g.is_active = 1")

        if days:
            where_conditions.append(f"g.weekly_day IN ({', '.join('?' for _ in days)})")
            params.extend(days)

        where_clause = " AND ".join(where_conditions) if where_conditions else "1=1"

        return self.db.execute_query(
            f"{GROUP_SELECT} WHERE {where_clause} ORDER BY g.weekly_day, g.start_time, g.id",
            tuple(params)
        )

    def get_group(self, group_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            f"{GROUP_SELECT} WHERE g.id = ?",
            (group_id,),
            fetch_all=False
        )

    def get_group_students(self, group_id: int) -> List[Dict[str, Any]]:
        """Active members of a group."""
        return self.db.execute_query("""
            SELECT s.id, s.public_id, s.full_name, s.phone, s.email, s.parent_name,
                   s.parent_phone, s.photo, s.discount, sg.id AS student_group_id,
                   sg.join_date
            FROM student_groups sg
            JOIN students s ON s.id = sg.student_id
            WHERE sg.group_id = ? AND sg.is_active = 1
            ORDER BY s.full_name
        """, (group_id,))

    def get_price_history(self, group_id: int) -> List[Dict[str, Any]]:
        return self.db.execute_query("""
            SELECT id, monthly_price, currency, effective_from, effective_to
            FROM pricing WHERE group_id = ?
            ORDER BY effective_from DESC, id DESC
        """, (group_id,))

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    def create_group(self, group_data: Dict[str, Any],
                     user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a group with a generated title.

        Args:
            group_data (Dict[str, Any]): course_id, weekly_day, start_time and
                start_date are required; other editable fields are optional
            user (Dict[str, Any]): Acting user for the history entry

        Returns:
            Dict[str, Any]: Creation result
        """
        for field in ('course_id', 'weekly_day', 'start_time', 'start_date'):
            if group_data.get(field) in (None, ''):
                return failure(f'Missing required field: {field}')

        validation_result = self._validate_group_data(group_data)
        if not validation_result['valid']:
            return failure(validation_result['error'])
        values = validation_result['values']

        course = self._get_course(values['course_id'])
        if not course:
            return failure('Course not found')
        if values.get('teacher_id') and not self._get_teacher(values['teacher_id']):
            return failure('Teacher not found')

        values.setdefault('duration_minutes', self.default_duration)
        values.setdefault('timezone', self.default_timezone)
        values.setdefault('monthly_price', 0)
        values.setdefault('status', 'active')
        values['title'] = generate_group_title(values['weekly_day'], values['start_time'], course['title'])
        values['public_id'] = new_public_id(self.db, 'group')
        values['is_active'] = 0 if values['status'] == 'inactive' else 1

        columns = list(values.keys())
        with self.db.transaction() as conn:
            group_id = conn.execute(
                f"INSERT INTO groups ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                tuple(values.values())
            ).lastrowid
            conn.execute("""
                INSERT INTO pricing (group_id, monthly_price, currency, effective_from)
                VALUES (?, ?, ?, ?)
            """, (group_id, values['monthly_price'], self.currency, values['start_date']))
            self.history.add_entry(
                group_id, 'created', f"Group created: {values['title']}", user, conn=conn
            )

        self.logger.info(f"Group created successfully: {values['title']} (ID: {group_id})")

        return {
            'success': True,
            'group': self.get_group(group_id),
            'message': 'Group created successfully'
        }

    def update_group(self, group_id: int, update_data: Dict[str, Any],
                     user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Update the given group fields and record what changed.

        The title is regenerated when the day, time or course changes and a
        price change closes the current price period.
        """
        group = self.get_group(group_id)
        if not group:
            return failure('Group not found', 'not_found')

        validation_result = self._validate_group_data(update_data, partial=True)
        if not validation_result['valid']:
            return failure(validation_result['error'])

        changes = {field: value for field, value in validation_result['values'].items()
                   if value != group.get(field)}
        if not changes:
            return {'success': True, 'group': group, 'message': 'No changes'}

        course_title = group['course_title']
        if 'course_id' in changes:
            course = self._get_course(changes['course_id'])
            if not course:
                return failure('Course not found')
            course_title = course['title']

        new_teacher = None
        if changes.get('teacher_id'):
            new_teacher = self._get_teacher(changes['teacher_id'])
            if not new_teacher:
                return failure('Teacher not found')

        start_date = changes.get('start_date', group['start_date'])
        end_date = changes.get('end_date', group['end_date'])
        if start_date and end_date and end_date < start_date:
            return failure('End date cannot be before start date')

        if changes.keys() & {'course_id', 'weekly_day', 'start_time'}:
            changes['title'] = generate_group_title(
                changes.get('weekly_day', group['weekly_day']),
                changes.get('start_time', group['start_time']),
                course_title
            )
        if 'status' in changes:
            changes['is_active'] = 0 if changes['status'] == 'inactive' else 1

        set_clause = ', '.join(f"{field} = ?" for field in changes)
        with self.db.transaction() as conn:
            conn.execute(
                f"UPDATE groups SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*changes.values(), group_id)
            )
            if 'monthly_price' in changes:
                self._record_price_change(conn, group_id, changes['monthly_price'])
            self._record_changes(conn, group, changes, course_title, new_teacher, user)

        self.logger.info(f"Group updated: {group_id} ({', '.join(changes)})")
        return {
            'success': True,
            'group': self.get_group(group_id),
            'message': 'Group updated successfully'
        }

    def update_status(self, group_id: int, status: str,
                      user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Change only the group status (active, graduate, inactive)."""
        if status not in GROUP_STATUSES:
            return failure(f"Invalid status. Allowed: {', '.join(GROUP_STATUSES)}")

        group = self.get_group(group_id)
        if not group:
            return failure('Group not found', 'not_found')
        if group['status'] == status:
            return {'success': True, 'group': group, 'message': 'No changes'}

        with self.db.transaction() as conn:
            conn.execute("""
                UPDATE groups SET status = ?, is_active = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (status, 0 if status == 'inactive' else 1, group_id))
            self.history.add_entry(
                group_id, 'status_changed',
                format_status_changed(group['status'], status),
                user, group['status'], status, conn=conn
            )

        self.logger.info(f"Group {group_id} status changed: {group['status']} -> {status}")
        return {
            'success': True,
            'group': self.get_group(group_id),
            'message': 'Group status updated'
        }

    def archive_group(self, group_id: int, user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.update_status(group_id, 'inactive', user)

    def restore_group(self, group_id: int, user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.update_status(group_id, 'active', user)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def check_deletion(self, group_id: int) -> Dict[str, int]:
        """Count the records that keep a group from being deleted."""
        return {
            'students': self.db.execute_scalar(
                "SELECT COUNT(*) FROM student_groups WHERE group_id = ?", (group_id,)),
            'lessons': self.db.execute_scalar(
                "SELECT COUNT(*) FROM lessons WHERE group_id = ?", (group_id,)),
            'payments': self.db.execute_scalar(
                "SELECT COUNT(*) FROM payments WHERE group_id = ?", (group_id,)),
        }

    def delete_group(self, group_id: int) -> Dict[str, Any]:
        """
        Delete a group that has no students, lessons or payments.

        Groups with data should be archived instead.
        """
        group = self.get_group(group_id)
        if not group:
            return failure('Group not found', 'not_found')

        dependencies = self.check_deletion(group_id)
        if any(dependencies.values()):
            result = failure(
                'Group has students, lessons or payments and cannot be deleted. Archive it instead.',
                'conflict'
            )
            result['dependencies'] = dependencies
            return result

        self.db.execute_update("DELETE FROM groups WHERE id = ?", (group_id,))
        self.logger.info(f"Group deleted: {group['title']} (ID: {group_id})")
        return {'success': True, 'message': 'Group deleted successfully'}

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def is_student_in_group(self, group_id: int, student_id: int) -> bool:
        return self.db.execute_query("""
            SELECT id FROM student_groups
            WHERE group_id = ? AND student_id = ? AND is_active = 1
        """, (group_id, student_id), fetch_all=False) is not None

    def add_student(self, group_id: int, student_id: int, join_date: Any = None,
                    user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Add a student to a group, reactivating an earlier membership if any.

        Args:
            group_id (int): Group ID
            student_id (int): Student ID
            join_date: ISO date, defaults to today
            user (Dict[str, Any]): Acting user for the history entry

        Returns:
            Dict[str, Any]: Result with ``student_group_id`` and ``reactivated``
        """
        group = self.get_group(group_id)
        if not group:
            return failure('Group not found', 'not_found')

        student = self.db.execute_query(
            "SELECT id, full_name, is_active FROM students WHERE id = ?",
            (student_id,),
            fetch_all=False
        )
        if not student:
            return failure('Student not found', 'not_found')
        if not student['is_active']:
            return failure('Student is archived')

        if join_date:
            parsed = parse_date(join_date)
            if not parsed:
                return failure('Invalid join date')
            join_date = parsed.isoformat()
        else:
            join_date = date.today().isoformat()

        if self.is_student_in_group(group_id, student_id):
            return failure('Student is already in this group')

        if group['capacity'] and group['students_count'] >= group['capacity']:
            return failure('Group is full', 'conflict')

        previous = self.db.execute_query("""
            SELECT id FROM student_groups
            WHERE group_id = ? AND student_id = ? AND is_active = 0
            ORDER BY join_date DESC, id DESC LIMIT 1
        """, (group_id, student_id), fetch_all=False)

        try:
            with self.db.transaction() as conn:
                if previous:
                    conn.execute("""
                        UPDATE student_groups
                        SET is_active = 1, leave_date = NULL, join_date = ?
                        WHERE id = ?
                    """, (join_date, previous['id']))
                    student_group_id = previous['id']
                else:
                    student_group_id = conn.execute("""
                        INSERT INTO student_groups (student_id, group_id, join_date)
                        VALUES (?, ?, ?)
                    """, (student_id, group_id, join_date)).lastrowid

                self.history.add_entry(
                    group_id, 'student_added', format_student_added(student['full_name']),
                    user, new_value=student_id, conn=conn
                )
        except sqlite3.IntegrityError as e:
            self.logger.warning(f"Membership conflict for student {student_id} in group {group_id}: {str(e)}")
            return failure('Student already has a membership starting on this date', 'conflict')

        self.logger.info(f"Student {student_id} added to group {group_id}")
        return {
            'success': True,
            'student_group_id': student_group_id,
            'reactivated': previous is not None,
            'message': 'Student added to group'
        }

    def remove_student(self, group_id: int, student_id: Optional[int] = None,
                       student_group_id: Optional[int] = None,
                       user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        End a student's active membership (leave date is today).

        Either the student ID or the membership row ID identifies the link.
        """
        if not student_id and not student_group_id:
            return failure('student_id or student_group_id is required')

        query = """
            SELECT sg.id, sg.student_id, s.full_name
            FROM student_groups sg
            JOIN students s ON s.id = sg.student_id
            WHERE sg.group_id = ? AND sg.is_active = 1
        """
        if student_group_id:
            query += " AND sg.id = ?"
            params = (group_id, student_group_id)
        else:
            query += " AND sg.student_id = ?"
            params = (group_id, student_id)

        link = self.db.execute_query(query, params, fetch_all=False)
        if not link:
            return failure('Student is not in this group', 'not_found')

        with self.db.transaction() as conn:
            conn.execute("""
                UPDATE student_groups SET is_active = 0, leave_date = ?
                WHERE id = ?
            """, (date.today().isoformat(), link['id']))
            self.history.add_entry(
                group_id, 'student_removed', format_student_removed(link['full_name']),
                user, old_value=link['student_id'], conn=conn
            )

        self.logger.info(f"Student {link['student_id']} removed from group {group_id}")
        return {'success': True, 'message': 'Student removed from group'}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_course(self, course_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            "SELECT id, title FROM courses WHERE id = ?", (course_id,), fetch_all=False
        )

    def _get_teacher(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            "SELECT id, name FROM users WHERE id = ? AND role = 'teacher' AND is_active = 1",
            (user_id,), fetch_all=False
        )

    def _record_price_change(self, conn, group_id: int, monthly_price: int) -> None:
        today = date.today().isoformat()
        conn.execute("""
            UPDATE pricing SET effective_to = ?
            WHERE group_id = ? AND effective_to IS NULL
        """, (today, group_id))
        conn.execute("""
            INSERT INTO pricing (group_id, monthly_price, currency, effective_from)
            VALUES (?, ?, ?, ?)
        """, (group_id, monthly_price, self.currency, today))

    def _record_changes(self, conn, group: Dict[str, Any], changes: Dict[str, Any],
                        course_title: str, new_teacher: Optional[Dict[str, Any]],
                        user: Optional[Dict[str, Any]]) -> None:
        group_id = group['id']
        for field, new_value in changes.items():
            old_value = group.get(field)

            if field in ('title', 'is_active'):
                continue
            if field == 'teacher_id':
                self.history.add_entry(
                    group_id, 'teacher_changed',
                    format_teacher_changed(group['teacher_name'], new_teacher['name'] if new_teacher else None),
                    user, old_value, new_value, conn=conn
                )
            elif field == 'status':
                self.history.add_entry(
                    group_id, 'status_changed', format_status_changed(old_value, new_value),
                    user, old_value, new_value, conn=conn
                )
            elif field == 'course_id':
                self.history.add_entry(
                    group_id, 'edited',
                    format_field_changed(field, group['course_title'], course_title),
                    user, old_value, new_value, conn=conn
                )
            elif field == 'weekly_day':
                self.history.add_entry(
                    group_id, 'edited',
                    format_field_changed(field, DAY_NAMES.get(old_value), DAY_NAMES.get(new_value)),
                    user, old_value, new_value, conn=conn
                )
            else:
                self.history.add_entry(
                    group_id, 'edited', format_field_changed(field, old_value, new_value),
                    user, old_value, new_value, conn=conn
                )

    def _validate_group_data(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Validate group fields and collect normalized values.

        Returns:
            Dict[str, Any]: {'valid': bool, 'error': str, 'values': dict}
        """
        values = {}

        def invalid(message):
            return {'valid': False, 'error': message}

        for field in EDITABLE_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if isinstance(value, str):
                value = value.strip()

            if field == 'course_id':
                value = parse_int(value, 1)
                if value is None:
                    return invalid('Invalid course')

            elif field == 'teacher_id':
                if value in (None, ''):
                    value = None
                else:
                    value = parse_int(value, 1)
                    if value is None:
                        return invalid('Invalid teacher')

            elif field == 'weekly_day':
                value = parse_int(value, 1, 7)
                if value is None:
                    return invalid('Day of week must be a number from 1 (Monday) to 7 (Sunday)')

            elif field == 'start_time':
                if not validate_time(value):
                    return invalid('Start time must be in HH:MM format')
                value = normalize_time(value)

            elif field == 'duration_minutes':
                value = parse_int(value, 15, 600)
                if value is None:
                    return invalid('Duration must be between 15 and 600 minutes')

            elif field == 'timezone':
                if not value:
                    value = self.default_timezone
                elif value not in pytz.all_timezones_set:
                    return invalid(f'Unknown timezone: {value}')

            elif field in ('start_date', 'end_date'):
                if value in (None, ''):
                    if field == 'start_date':
                        return invalid('Start date is required')
                    value = None
                else:
                    parsed = parse_date(value)
                    if not parsed:
                        return invalid(f'Invalid {field.replace("_", " ")}')
                    value = parsed.isoformat()

            elif field == 'capacity':
                if value in (None, ''):
                    value = None
                else:
                    value = parse_int(value, 1)
                    if value is None:
                        return invalid('Capacity must be a positive whole number')

            elif field == 'monthly_price':
                value = parse_int(value if value not in (None, '') else 0, 0)
                if value is None:
                    return invalid('Monthly price must be a non-negative whole number')

            elif field == 'status':
                if value not in GROUP_STATUSES:
                    return invalid(f"Invalid status. Allowed: {', '.join(GROUP_STATUSES)}")

            elif field == 'photos_folder_url':
                if not value:
                    value = None
                elif not validate_url(value):
                    return invalid('Photos folder must be an http(s) URL')

            elif field == 'note':
                value = value or None

            values[field] = value

        if values.get('start_date') and values.get('end_date') and values['end_date'] < values['start_date']:
            return invalid('End date cannot be before start date')

        return {'valid': True, 'values': values}
