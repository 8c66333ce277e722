"""
Student Manager Module - School Administration System

This module handles student records: contact and parent information,
group memberships, attendance and payment history, and monthly debts.

Features:
- Student registration and profile management
- Archive, restore and permanent deletion
- Search and quick search
- Group membership overview
- Attendance and payment history
- Monthly debt calculation
- Student data validation
"""

import json
import logging
from typing import Dict, List, Any, Optional

from school_admin.modules.public_id import new_public_id
from school_admin.utils.helpers import failure
from school_admin.utils.validators import parse_date, parse_int, validate_email

# Columns a client may write
STUDENT_FIELDS = (
    'full_name', 'phone', 'email', 'parent_name', 'parent_phone', 'notes',
    'birth_date', 'photo', 'school', 'discount', 'parent_relation',
    'parent2_name', 'parent2_relation', 'interested_courses', 'source'
)

DEBT_QUERY = """
    SELECT * FROM (
        SELECT s.id AS student_id, s.public_id, s.full_name, s.phone,
               s.parent_name, s.parent_phone,
               g.id AS group_id, g.title AS group_title, c.title AS course_title,
               g.monthly_price,
               COALESCE((SELECT SUM(p.amount) FROM payments p
                         WHERE p.student_id = s.id AND p.group_id = g.id
                           AND p.month = :month), 0) AS paid,
               g.monthly_price - COALESCE((SELECT SUM(p.amount) FROM payments p
                                           WHERE p.student_id = s.id AND p.group_id = g.id
                                             AND p.month = :month), 0) AS debt
        FROM student_groups sg
        JOIN students s ON s.id = sg.student_id
        JOIN groups g ON g.id = sg.group_id
        JOIN courses c ON c.id = g.course_id
        WHERE sg.is_active = 1 AND s.is_active = 1
          AND g.is_active = 1 AND g.status = 'active'
          AND sg.join_date < date(:month, '+1 month')
    )
    WHERE debt > 0
"""


class StudentManager:
    """
    Student management for the school administration system.
    Handles all aspects of student administration and data management.
    """

    def __init__(self, database_manager):
        """
        Initialize the student manager with database connection.

        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def create_student(self, student_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new student record.

        Args:
            student_data (Dict[str, Any]): Student information; full_name
                is required

        Returns:
            Dict[str, Any]: Creation result
        """
        if not (student_data.get('full_name') or '').strip():
            return failure('Missing required field: full_name')

        validation_result = self._validate_student_data(student_data)
        if not validation_result['valid']:
            return failure(validation_result['error'])

        values = validation_result['values']
        values['public_id'] = new_public_id(self.db, 'student')

        columns = list(values.keys())
        student_id = self.db.execute_update(
            f"INSERT INTO students ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(values.values())
        )

        self.logger.info(f"Student created successfully: {values['full_name']} (ID: {student_id})")

        return {
            'success': True,
            'student': self.get_student(student_id),
            'message': 'Student created successfully'
        }

    def update_student(self, student_id: int, update_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update student information.

        Args:
            student_id (int): Student database ID
            update_data (Dict[str, Any]): Fields to change

        Returns:
            Dict[str, Any]: Update result
        """
        if not self.get_student(student_id):
            return failure('Student not found', 'not_found')

        validation_result = self._validate_student_data(update_data, partial=True)
        if not validation_result['valid']:
            return failure(validation_result['error'])

        values = validation_result['values']
        if not values:
            return failure('No valid fields to update')

        set_clause = ', '.join(f"{field} = ?" for field in values)
        self.db.execute_update(
            f"UPDATE students SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*values.values(), student_id)
        )

        self.logger.info(f"Student updated successfully: {student_id}")
        return {
            'success': True,
            'student': self.get_student(student_id),
            'message': 'Student updated successfully'
        }

    def archive_student(self, student_id: int) -> Dict[str, Any]:
        return self._set_active(student_id, False)

    def restore_student(self, student_id: int) -> Dict[str, Any]:
        return self._set_active(student_id, True)

    def delete_student(self, student_id: int, permanent: bool = False) -> Dict[str, Any]:
        """
        Archive a student, or delete the record with everything attached
        to it when ``permanent`` is set.
        """
        if not permanent:
            return self.archive_student(student_id)

        student = self.get_student(student_id)
        if not student:
            return failure('Student not found', 'not_found')

        self.db.execute_update("DELETE FROM students WHERE id = ?", (student_id,))
        self.logger.info(f"Student permanently deleted: {student['full_name']} (ID: {student_id})")
        return {'success': True, 'message': 'Student deleted permanently'}

    def list_students(self, include_inactive: bool = False,
                      limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM students"
        if not include_inactive:
            query += " WHERE is_active = 1"
        query += " ORDER BY full_name"
        params = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)
        return [self._decode(row) for row in self.db.execute_query(query, params)]

    def list_students_with_group_count(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = """
            SELECT s.*,
                   (SELECT COUNT(*) FROM student_groups sg
                    JOIN groups g ON g.id = sg.group_id
                    WHERE sg.student_id = s.id AND sg.is_active = 1 AND g.is_active = 1) AS groups_count
            FROM students s
        """
        if not include_inactive:
            query += " WHERE s.is_active = 1"
        query += " ORDER BY s.full_name"
        return [self._decode(row) for row in self.db.execute_query(query)]

    def get_student(self, student_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.execute_query(
            "SELECT * FROM students WHERE id = ?",
            (student_id,),
            fetch_all=False
        )
        return self._decode(row) if row else None

    def get_student_with_groups(self, student_id: int) -> Optional[Dict[str, Any]]:
        """Student record plus the active groups they attend."""
        student = self.get_student(student_id)
        if not student:
            return None

        student['groups'] = self.db.execute_query("""
            SELECT g.id, g.public_id, g.title, g.status, g.weekly_day, g.start_time,
                   g.monthly_price, c.id AS course_id, c.title AS course_title,
                   u.name AS teacher_name, sg.id AS student_group_id, sg.join_date
            FROM student_groups sg
            JOIN groups g ON g.id = sg.group_id
            JOIN courses c ON c.id = g.course_id
            LEFT JOIN users u ON u.id = g.teacher_id
            WHERE sg.student_id = ? AND sg.is_active = 1
            ORDER BY g.weekly_day, g.start_time
        """, (student_id,))
        return student

    def search_students(self, search_query: str, include_inactive: bool = False,
                        limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Search by student name, phone, parent name or parent phone.

        Args:
            search_query (str): Substring to look for
            include_inactive (bool): Include archived students
            limit (int): Maximum number of results

        Returns:
            List[Dict[str, Any]]: Matching students
        """
        pattern = f"%{search_query.strip()}%"
        query = """
            SELECT * FROM students
            WHERE (full_name LIKE ? OR phone LIKE ? OR parent_name LIKE ? OR parent_phone LIKE ?)
        """
        params = [pattern, pattern, pattern, pattern]
        if not include_inactive:
            query += " AND is_active = 1"
        query += " ORDER BY full_name"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        return [self._decode(row) for row in self.db.execute_query(query, tuple(params))]

    def quick_search(self, search_query: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self.search_students(search_query, limit=limit)

    def get_attendance_history(self, student_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return self.db.execute_query("""
            SELECT a.id, a.status, a.comment, a.updated_at, l.id AS lesson_id,
                   l.lesson_date, l.start_datetime, l.topic, l.status AS lesson_status,
                   g.id AS group_id, g.title AS group_title, c.title AS course_title
            FROM attendance a
            JOIN lessons l ON l.id = a.lesson_id
            JOIN groups g ON g.id = l.group_id
            JOIN courses c ON c.id = g.course_id
            WHERE a.student_id = ?
            ORDER BY l.start_datetime DESC
            LIMIT ?
        """, (student_id, limit))

    def get_payment_history(self, student_id: int) -> List[Dict[str, Any]]:
        return self.db.execute_query("""
            SELECT p.*, g.title AS group_title, c.title AS course_title
            FROM payments p
            JOIN groups g ON g.id = p.group_id
            JOIN courses c ON c.id = g.course_id
            WHERE p.student_id = ?
            ORDER BY p.month DESC, p.paid_at DESC
        """, (student_id,))

    def get_students_with_debt(self, month: str) -> List[Dict[str, Any]]:
        """
        Memberships whose payments for the month are below the group price.

        Args:
            month (str): First day of the month, YYYY-MM-01

        Returns:
            List[Dict[str, Any]]: One row per student and group, largest debt first
        """
        return self.db.execute_query(
            DEBT_QUERY + " ORDER BY debt DESC, full_name",
            {'month': month}
        )

    def get_total_debt(self, month: str) -> int:
        return self.db.execute_scalar(
            f"SELECT SUM(debt) FROM ({DEBT_QUERY})",
            {'month': month}
        )

    def count_students(self, include_inactive: bool = False) -> int:
        query = "SELECT COUNT(*) FROM students"
        if not include_inactive:
            query += " WHERE is_active = 1"
        return self.db.execute_scalar(query)

    def _set_active(self, student_id: int, active: bool) -> Dict[str, Any]:
        if not self.get_student(student_id):
            return failure('Student not found', 'not_found')

        self.db.execute_update(
            "UPDATE students SET is_active = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (1 if active else 0, student_id)
        )
        self.logger.info(f"Student {'restored' if active else 'archived'}: {student_id}")
        return {
            'success': True,
            'student': self.get_student(student_id),
            'message': 'Student restored' if active else 'Student archived'
        }

    def _decode(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Turn the stored interested_courses JSON back into a list."""
        raw = row.get('interested_courses')
        if raw:
            try:
                row['interested_courses'] = json.loads(raw)
            except ValueError:
                self.logger.warning(f"Malformed interested_courses for student {row.get('id')}")
                row['interested_courses'] = []
        else:
            row['interested_courses'] = []
        return row

    def _validate_student_data(self, student_data: Dict[str, Any],
                               partial: bool = False) -> Dict[str, Any]:
        """
        Validate student data and normalize the values to store.

        Args:
            student_data (Dict[str, Any]): Student data to validate
            partial (bool): Whether this is a partial update

        Returns:
            Dict[str, Any]: {'valid': bool, 'error': str, 'values': dict}
        """
        values = {}

        for field in STUDENT_FIELDS:
            if field not in student_data:
                continue
            value = student_data[field]
            if isinstance(value, str):
                value = value.strip()

            if field == 'full_name':
                if not value:
                    return {'valid': False, 'error': 'Full name cannot be empty'}

            elif field == 'email':
                if value and not validate_email(value):
                    return {'valid': False, 'error': 'Invalid email format'}

            elif field == 'birth_date':
                if value:
                    parsed = parse_date(value)
                    if not parsed:
                        return {'valid': False, 'error': 'Birth date must be in YYYY-MM-DD format'}
                    value = parsed.isoformat()

            elif field == 'discount':
                if value in (None, ''):
                    value = 0
                value = parse_int(value, 0, 100)
                if value is None:
                    return {'valid': False, 'error': 'Discount must be a whole number from 0 to 100'}

            elif field == 'interested_courses':
                if value in (None, ''):
                    value = None
                elif isinstance(value, list):
                    value = json.dumps(value, ensure_ascii=False)
                else:
                    return {'valid': False, 'error': 'Interested courses must be a list'}

            if value == '' and field != 'full_name':
                value = None
            values[field] = value

        return {'valid': True, 'values': values}
