"""
Course Manager Module - School Administration System

This module handles the course catalogue. A course is the subject that
groups are opened for; it carries the description, the minimum age,
the duration in months and the program text used for the program PDF.

Features:
- Course creation, update, archive and restore
- Course statistics (groups and students)
- Course search
- Cascading course deletion
- Students across all groups of a course
- Flyer image path management
"""

import logging
from typing import Dict, List, Any, Optional

from school_admin.modules.public_id import new_public_id
from school_admin.utils.helpers import failure
from school_admin.utils.validators import parse_int


class CourseManager:
    """
    Course catalogue management.
    """

    def __init__(self, database_manager):
        """
        Initialize the course manager with database connection.

        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        self.DEFAULT_AGE_MIN = 6
        self.DEFAULT_DURATION_MONTHS = 1

    def list_courses(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = "SELECT * FROM courses"
        if not include_inactive:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at DESC, id DESC"
        return self.db.execute_query(query)

    def list_courses_with_stats(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """
        Courses with the number of active groups and distinct active students.
        """
        query = """
            SELECT c.*,
                   COUNT(DISTINCT g.id) AS groups_count,
                   COUNT(DISTINCT sg.student_id) AS students_count
            FROM courses c
            LEFT JOIN groups g ON g.course_id = c.id AND g.is_active = 1
            LEFT JOIN student_groups sg ON sg.group_id = g.id AND sg.is_active = 1
        """
        if not include_inactive:
            query += " WHERE c.is_active = 1"
        query += " GROUP BY c.id ORDER BY c.created_at DESC, c.id DESC"
        return self.db.execute_query(query)

    def get_course(self, course_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            "SELECT * FROM courses WHERE id = ?",
            (course_id,),
            fetch_all=False
        )

    def search_courses(self, search_query: str, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """Case-insensitive search on title and description."""
        pattern = f"%{search_query.strip()}%"
        query = """
            SELECT * FROM courses
            WHERE (title LIKE ? OR description LIKE ?)
        """
        if not include_inactive:
            query += " AND is_active = 1"
        query += " ORDER BY title"
        return self.db.execute_query(query, (pattern, pattern))

    def create_course(self, course_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new course.

        Args:
            course_data (Dict[str, Any]): title, description, age_min,
                duration_months, program

        Returns:
            Dict[str, Any]: Creation result
        """
        validation_result = self._validate_course_data(course_data)
        if not validation_result['valid']:
            return failure(validation_result['error'])

        values = validation_result['values']
        public_id = new_public_id(self.db, 'course')

        course_id = self.db.execute_update(
            """INSERT INTO courses (public_id, title, description, age_min,
                                    duration_months, program)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                public_id,
                values['title'],
                values.get('description'),
                values.get('age_min', self.DEFAULT_AGE_MIN),
                values.get('duration_months', self.DEFAULT_DURATION_MONTHS),
                values.get('program'),
            )
        )

        self.logger.info(f"Course created successfully: {values['title']} (ID: {course_id})")

        return {
            'success': True,
            'course': self.get_course(course_id),
            'message': 'Course created successfully'
        }

    def update_course(self, course_id: int, update_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update course fields present in update_data.

        Returns:
            Dict[str, Any]: Update result
        """
        if not self.get_course(course_id):
            return failure('Course not found', 'not_found')

        validation_result = self._validate_course_data(update_data, partial=True)
        if not validation_result['valid']:
            return failure(validation_result['error'])

        values = validation_result['values']
        if not values:
            return failure('No valid fields to update')

        set_clause = ', '.join(f"{field} = ?" for field in values)
        self.db.execute_update(
            f"UPDATE courses SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*values.values(), course_id)
        )

        self.logger.info(f"Course updated: {course_id}")
        return {
            'success': True,
            'course': self.get_course(course_id),
            'message': 'Course updated successfully'
        }

    def archive_course(self, course_id: int) -> Dict[str, Any]:
        return self._set_active(course_id, False)

    def restore_course(self, course_id: int) -> Dict[str, Any]:
        return self._set_active(course_id, True)

    def delete_course(self, course_id: int) -> Dict[str, Any]:
        """
        Permanently delete a course together with its groups.

        Group rows cascade to memberships, lessons, attendance and payments.
        """
        course = self.get_course(course_id)
        if not course:
            return failure('Course not found', 'not_found')

        with self.db.transaction() as conn:
            deleted_groups = conn.execute(
                "DELETE FROM groups WHERE course_id = ?", (course_id,)
            ).rowcount
            conn.execute("DELETE FROM courses WHERE id = ?", (course_id,))

        self.logger.info(f"Course deleted: {course['title']} (ID: {course_id}, groups: {deleted_groups})")
        return {
            'success': True,
            'deleted_groups': deleted_groups,
            'flyer_path': course.get('flyer_path'),
            'message': 'Course deleted successfully'
        }

    def get_course_groups(self, course_id: int, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = """
            SELECT g.*, u.name AS teacher_name,
                   (SELECT COUNT(*) FROM student_groups sg
                    WHERE sg.group_id = g.id AND sg.is_active = 1) AS students_count
            FROM groups g
            LEFT JOIN users u ON u.id = g.teacher_id
            WHERE g.course_id = ?
        """
        if not include_inactive:
            query += " AND g.is_active = 1"
        query += " ORDER BY g.weekly_day, g.start_time"
        return self.db.execute_query(query, (course_id,))

    def get_course_students(self, course_id: int) -> Dict[str, Any]:
        """
        Unique students across the course's groups, each with the list of
        groups they attend.
        """
        rows = self.db.execute_query("""
            SELECT s.id, s.public_id, s.full_name, s.phone, s.email, s.parent_name,
                   s.parent_phone, g.id AS group_id, g.title AS group_title,
                   g.status AS group_status, sg.join_date
            FROM student_groups sg
            JOIN students s ON s.id = sg.student_id
            JOIN groups g ON g.id = sg.group_id
            WHERE g.course_id = ? AND sg.is_active = 1 AND s.is_active = 1
            ORDER BY s.full_name, g.title
        """, (course_id,))

        students = {}
        for row in rows:
            student = students.setdefault(row['id'], {
                'id': row['id'],
                'public_id': row['public_id'],
                'full_name': row['full_name'],
                'phone': row['phone'],
                'email': row['email'],
                'parent_name': row['parent_name'],
                'parent_phone': row['parent_phone'],
                'groups': [],
            })
            student['groups'].append({
                'id': row['group_id'],
                'title': row['group_title'],
                'status': row['group_status'],
                'join_date': row['join_date'],
            })

        return {'students': list(students.values()), 'total': len(students)}

    def set_flyer(self, course_id: int, flyer_path: Optional[str]) -> Dict[str, Any]:
        """
        Store (or clear, with None) the course flyer path.

        Returns:
            Dict[str, Any]: Result with the replaced path in ``previous_path``
        """
        course = self.get_course(course_id)
        if not course:
            return failure('Course not found', 'not_found')

        self.db.execute_update(
            "UPDATE courses SET flyer_path = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (flyer_path, course_id)
        )
        return {
            'success': True,
            'flyer_path': flyer_path,
            'previous_path': course.get('flyer_path'),
            'message': 'Flyer updated' if flyer_path else 'Flyer removed'
        }

    def clear_flyer(self, course_id: int) -> Dict[str, Any]:
        return self.set_flyer(course_id, None)

    def _set_active(self, course_id: int, active: bool) -> Dict[str, Any]:
        if not self.get_course(course_id):
            return failure('Course not found', 'not_found')

        self.db.execute_update(
            "UPDATE courses SET is_active = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (1 if active else 0, course_id)
        )
        self.logger.info(f"Course {'restored' if active else 'archived'}: {course_id}")
        return {
            'success': True,
            'course': self.get_course(course_id),
            'message': 'Course restored' if active else 'Course archived'
        }

    def _validate_course_data(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Validate course fields and collect the values to store.

        Returns:
            Dict[str, Any]: {'valid': bool, 'error': str, 'values': dict}
        """
        values = {}

        if 'title' in data or not partial:
            title = (data.get('title') or '').strip()
            if len(title) < 2:
                return {'valid': False, 'error': 'Title must be at least 2 characters long'}
            values['title'] = title

        if data.get('age_min') is not None:
            age_min = parse_int(data['age_min'], 0, 99)
            if age_min is None:
                return {'valid': False, 'error': 'Minimum age must be a whole number from 0 to 99'}
            values['age_min'] = age_min

        if data.get('duration_months') is not None:
            duration = parse_int(data['duration_months'], 1, 36)
            if duration is None:
                return {'valid': False, 'error': 'Duration must be a whole number of months from 1 to 36'}
            values['duration_months'] = duration

        for field in ('description', 'program'):
            if field in data:
                value = data.get(field)
                values[field] = value.strip() if isinstance(value, str) and value.strip() else None

        return {'valid': True, 'values': values}
