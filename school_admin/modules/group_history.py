"""
Group History Module - School Administration System

Audit trail of what happened to a group: creation, edits, teacher and
status changes, membership changes and conducted lessons.
"""

import logging
from typing import Dict, List, Any, Optional

ACTION_TYPES = (
    'created',
    'edited',
    'teacher_changed',
    'student_added',
    'student_removed',
    'lesson_conducted',
    'status_changed',
    'deleted',
)

STATUS_LABELS = {
    'active': 'Active',
    'graduate': 'Graduated',
    'inactive': 'Inactive',
}

FIELD_LABELS = {
    'title': 'title',
    'course_id': 'course',
    'teacher_id': 'teacher',
    'weekly_day': 'day of week',
    'start_time': 'start time',
    'duration_minutes': 'duration',
    'start_date': 'start date',
    'end_date': 'end date',
    'capacity': 'capacity',
    'monthly_price': 'monthly price',
    'status': 'status',
    'note': 'note',
    'photos_folder_url': 'photos folder',
}


def format_student_added(student_name: str) -> str:
    return f"Student added: {student_name}"


def format_student_removed(student_name: str) -> str:
    return f"Student removed: {student_name}"


def format_teacher_changed(old_name: Optional[str], new_name: Optional[str]) -> str:
    return f"Teacher changed: {old_name or 'none'} -> {new_name or 'none'}"


def format_status_changed(old_status: str, new_status: str) -> str:
    old_label = STATUS_LABELS.get(old_status, old_status)
    new_label = STATUS_LABELS.get(new_status, new_status)
    return f"Status changed: {old_label} -> {new_label}"


def format_lesson_conducted(lesson_date: str, topic: Optional[str] = None) -> str:
    if topic:
        return f"Lesson conducted: {lesson_date} ({topic})"
    return f"Lesson conducted: {lesson_date}"


def format_field_changed(field: str, old_value: Any, new_value: Any) -> str:
    label = FIELD_LABELS.get(field, field)
    old_text = '' if old_value is None else old_value
    new_text = '' if new_value is None else new_value
    return f"Changed {label}: {old_text} -> {new_text}"


class GroupHistoryManager:
    """Reads and writes group_history rows."""

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def add_entry(self, group_id: int, action_type: str, description: str,
                  user: Optional[Dict[str, Any]] = None, old_value: Any = None,
                  new_value: Any = None, conn=None) -> int:
        """
        Record a history entry.

        Args:
            group_id (int): Group the entry belongs to
            action_type (str): One of ACTION_TYPES
            description (str): Human readable description
            user (Dict[str, Any]): Acting user (id and name are stored)
            old_value, new_value: Optional before/after values
            conn: Open transaction connection to write through

        Returns:
            int: New entry ID
        """
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Unknown history action: {action_type}")

        params = (
            group_id,
            action_type,
            description,
            None if old_value is None else str(old_value),
            None if new_value is None else str(new_value),
            user.get('id') if user else None,
            user.get('name') if user else None,
        )
        query = """
            INSERT INTO group_history (group_id, action_type, action_description,
                                       old_value, new_value, user_id, user_name)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """

        if conn is not None:
            return conn.execute(query, params).lastrowid
        return self.db.execute_update(query, params)

    def get_history(self, group_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Entries for a group, newest first."""
        query = """
            SELECT id, group_id, action_type, action_description, old_value, new_value,
                   user_id, user_name, created_at
            FROM group_history
            WHERE group_id = ?
            ORDER BY created_at DESC, id DESC
        """
        params = [group_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        return self.db.execute_query(query, tuple(params))

    def get_recent(self, group_id: int, limit: int = 4) -> List[Dict[str, Any]]:
        return self.get_history(group_id, limit)
