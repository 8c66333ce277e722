"""
Teacher Manager Module - School Administration System

Teachers are user accounts with the ``teacher`` role. They are assigned to
groups; they do not sign in to the back office themselves.
"""

import logging
import secrets
import string
from typing import Dict, List, Any, Optional

from werkzeug.security import generate_password_hash

from school_admin.modules.public_id import new_public_id
from school_admin.utils.helpers import failure
from school_admin.utils.validators import validate_email

TEACHER_COLUMNS = """id, public_id, name, email, role, phone, telegram_id, photo_url, notes,
                     is_active, created_at, updated_at"""

TEACHER_FIELDS = ('name', 'email', 'phone', 'telegram_id', 'photo_url', 'notes')

PASSWORD_ALPHABET = string.ascii_letters + string.digits


class TeacherManager:
    """Teacher accounts and their group assignments."""

    def __init__(self, database_manager, password_length: int = 10):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)
        self.password_length = password_length

    def list_teachers(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """
        Teachers with their active groups.

        Returns:
            List[Dict[str, Any]]: Teachers with ``groups`` and ``active_groups_count``
        """
        query = f"SELECT {TEACHER_COLUMNS} FROM users WHERE role = 'teacher'"
        if not include_inactive:
            query += " AND is_active = 1"
        query += " ORDER BY name"

        teachers = self.db.execute_query(query)
        groups_by_teacher = {}
        for group in self.db.execute_query("""
            SELECT g.id, g.public_id, g.title, g.status, g.weekly_day, g.start_time,
                   g.teacher_id, c.title AS course_title
            FROM groups g
            JOIN courses c ON c.id = g.course_id
            WHERE g.is_active = 1 AND g.teacher_id IS NOT NULL
            ORDER BY g.weekly_day, g.start_time
        """):
            groups_by_teacher.setdefault(group.pop('teacher_id'), []).append(group)

        for teacher in teachers:
            teacher['groups'] = groups_by_teacher.get(teacher['id'], [])
            teacher['active_groups_count'] = len(teacher['groups'])
        return teachers

    def get_teacher(self, teacher_id: int) -> Optional[Dict[str, Any]]:
        """Teacher record with every group assigned to them."""
        teacher = self.db.execute_query(
            f"SELECT {TEACHER_COLUMNS} FROM users WHERE id = ? AND role = 'teacher'",
            (teacher_id,),
            fetch_all=False
        )
        if not teacher:
            return None

        teacher['groups'] = self.get_teacher_groups(teacher_id, include_inactive=True)
        teacher['active_groups_count'] = sum(1 for group in teacher['groups'] if group['is_active'])
        return teacher

    def get_teacher_groups(self, teacher_id: int, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = """
            SELECT g.id, g.public_id, g.title, g.status, g.is_active, g.weekly_day,
                   g.start_time, c.title AS course_title,
                   (SELECT COUNT(*) FROM student_groups sg
                    WHERE sg.group_id = g.id AND sg.is_active = 1) AS students_count
            FROM groups g
            JOIN courses c ON c.id = g.course_id
            WHERE g.teacher_id = ?
        """
        if not include_inactive:
            query += " AND g.is_active = 1"
        query += " ORDER BY g.weekly_day, g.start_time"
        return self.db.execute_query(query, (teacher_id,))

    def count_teachers(self) -> int:
        return self.db.execute_scalar(
            "SELECT COUNT(*) FROM users WHERE role = 'teacher' AND is_active = 1"
        )

    def create_teacher(self, teacher_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a teacher account with a generated password.

        The password is returned once as ``auto_password``; only its hash
        is stored.
        """
        validation_result = self._validate_teacher_data(teacher_data)
        if not validation_result['valid']:
            return failure(validation_result['error'])
        values = validation_result['values']

        if self._email_taken(values['email']):
            return failure('A user with this email already exists')

        auto_password = ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(self.password_length))
        values['public_id'] = new_public_id(self.db, 'teacher')
        values['password_hash'] = generate_password_hash(auto_password)
        values['role'] = 'teacher'

        columns = list(values.keys())
        teacher_id = self.db.execute_update(
            f"INSERT INTO users ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(values.values())
        )

        self.logger.info(f"Teacher created: {values['name']} (ID: {teacher_id})")
        return {
            'success': True,
            'teacher': self.get_teacher(teacher_id),
            'auto_password': auto_password,
            'message': 'Teacher created successfully'
        }

    def update_teacher(self, teacher_id: int, update_data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.get_teacher(teacher_id):
            return failure('Teacher not found', 'not_found')

        validation_result = self._validate_teacher_data(update_data, partial=True)
        if not validation_result['valid']:
            return failure(validation_result['error'])
        values = validation_result['values']

        if 'is_active' in update_data:
            values['is_active'] = 1 if update_data['is_active'] else 0
        if not values:
            return failure('No valid fields to update')

        if values.get('email') and self._email_taken(values['email'], exclude_id=teacher_id):
            return failure('A user with this email already exists')

        set_clause = ', '.join(f"{field} = ?" for field in values)
        self.db.execute_update(
            f"UPDATE users SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*values.values(), teacher_id)
        )

        self.logger.info(f"Teacher updated: {teacher_id}")
        return {
            'success': True,
            'teacher': self.get_teacher(teacher_id),
            'message': 'Teacher updated successfully'
        }

    def deactivate_teacher(self, teacher_id: int) -> Dict[str, Any]:
        """
        Deactivate a teacher who no longer teaches any active group.
        """
        teacher = self.get_teacher(teacher_id)
        if not teacher:
            return failure('Teacher not found', 'not_found')

        active_groups = [group for group in teacher['groups'] if group['is_active']]
        if active_groups:
            result = failure('Teacher has active groups. Reassign or archive them first.', 'conflict')
            result['groups'] = active_groups
            return result

        self.db.execute_update(
            "UPDATE users SET is_active = 0, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (teacher_id,)
        )
        self.db.execute_update("DELETE FROM sessions WHERE user_id = ?", (teacher_id,))
        self.logger.info(f"Teacher deactivated: {teacher['name']} (ID: {teacher_id})")
        return {'success': True, 'message': 'Teacher deactivated'}

    def delete_teacher(self, teacher_id: int) -> Dict[str, Any]:
        """
        Permanently delete a teacher. Their groups stay, without a teacher.
        """
        teacher = self.get_teacher(teacher_id)
        if not teacher:
            return failure('Teacher not found', 'not_found')

        with self.db.transaction() as conn:
            unassigned = conn.execute(
                "UPDATE groups SET teacher_id = NULL, updated_at = CURRENT_TIMESTAMP WHERE teacher_id = ?",
                (teacher_id,)
            ).rowcount
            conn.execute("DELETE FROM users WHERE id = ?", (teacher_id,))

        self.logger.info(f"Teacher deleted: {teacher['name']} (ID: {teacher_id}, groups unassigned: {unassigned})")
        return {
            'success': True,
            'unassigned_groups': unassigned,
            'message': 'Teacher deleted permanently'
        }

    def _email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        query = "SELECT id FROM users WHERE email = ?"
        params = [email]
        if exclude_id:
            query += " AND id != ?"
            params.append(exclude_id)
        return self.db.execute_query(query, tuple(params), fetch_all=False) is not None

    def _validate_teacher_data(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        values = {}

        for field in TEACHER_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if isinstance(value, str):
                value = value.strip()
            values[field] = value or None

        if not partial:
            if not values.get('name') or not values.get('email'):
                return {'valid': False, 'error': 'Name and email are required'}
        else:
            if 'name' in values and not values['name']:
                return {'valid': False, 'error': 'Name cannot be empty'}
            if 'email' in values and not values['email']:
                return {'valid': False, 'error': 'Email cannot be empty'}

        if values.get('email'):
            values['email'] = values['email'].lower()
            if not validate_email(values['email']):
                return {'valid': False, 'error': 'Invalid email format'}

        return {'valid': True, 'values': values}
