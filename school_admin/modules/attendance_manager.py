"""
Attendance Manager Module - School Administration System

This module handles attendance marking for lessons. Every active member
of the lesson's group can be marked present, absent, or as having a
make-up lesson planned or done.

Features:
- Attendance sheet for a lesson (all active group members)
- Single and bulk marking
- Copying marks from the previous lesson
- Clearing a lesson's marks
- Attendance statistics per student and per group
"""

import logging
from typing import Dict, List, Optional, Any

from school_admin.utils.helpers import failure, percent

ATTENDANCE_STATUSES = ('present', 'absent', 'makeup_planned', 'makeup_done')

UPSERT_ATTENDANCE = """
    INSERT INTO attendance (lesson_id, student_id, status, comment, makeup_lesson_id,
                            updated_by, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
    ON CONFLICT(lesson_id, student_id) DO UPDATE SET
        status = excluded.status,
        comment = excluded.comment,
        makeup_lesson_id = excluded.makeup_lesson_id,
        updated_by = excluded.updated_by,
        updated_at = CURRENT_TIMESTAMP
"""


class AttendanceManager:
    """
    Lesson attendance management and statistics.
    """

    def __init__(self, database_manager):
        """
        Initialize the attendance manager with database connection.

        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        # Attendance status constants
        self.STATUS_PRESENT = 'present'
        self.STATUS_ABSENT = 'absent'
        self.STATUS_MAKEUP_PLANNED = 'makeup_planned'
        self.STATUS_MAKEUP_DONE = 'makeup_done'

    def get_attendance_for_lesson(self, lesson_id: int) -> List[Dict[str, Any]]:
        """
        Attendance sheet: every active group member with their mark, if any.

        Args:
            lesson_id (int): Lesson ID

        Returns:
            List[Dict[str, Any]]: One row per student; ``status`` is None
            for students not marked yet
        """
        return self.db.execute_query("""
            SELECT s.id AS student_id, s.public_id, s.full_name, s.photo,
                   a.id AS attendance_id, a.status, a.comment, a.makeup_lesson_id,
                   a.updated_at
            FROM lessons l
            JOIN student_groups sg ON sg.group_id = l.group_id AND sg.is_active = 1
            JOIN students s ON s.id = sg.student_id
            LEFT JOIN attendance a ON a.lesson_id = l.id AND a.student_id = s.id
            WHERE l.id = ?
            ORDER BY s.full_name
        """, (lesson_id,))

    def set_attendance(self, lesson_id: int, student_id: int, status: str,
                       user_id: Optional[int] = None, comment: Optional[str] = None,
                       makeup_lesson_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Mark (or re-mark) one student for a lesson.

        Returns:
            Dict[str, Any]: Operation result
        """
        if status not in ATTENDANCE_STATUSES:
            return failure(f"Invalid attendance status. Allowed: {', '.join(ATTENDANCE_STATUSES)}")

        if not self._lesson_exists(lesson_id):
            return failure('Lesson not found', 'not_found')

        student = self.db.execute_query(
            "SELECT id FROM students WHERE id = ?", (student_id,), fetch_all=False
        )
        if not student:
            return failure('Student not found', 'not_found')

        if makeup_lesson_id and not self._lesson_exists(makeup_lesson_id):
            return failure('Make-up lesson not found')

        self.db.execute_update(
            UPSERT_ATTENDANCE,
            (lesson_id, student_id, status, comment or None, makeup_lesson_id or None, user_id)
        )

        self.logger.info(f"Attendance set: lesson {lesson_id}, student {student_id}, {status}")
        return {'success': True, 'message': 'Attendance saved'}

    def set_attendance_for_all(self, lesson_id: int, status: str,
                               user_id: Optional[int] = None) -> Dict[str, Any]:
        """Mark every active group member with the same status."""
        if status not in ATTENDANCE_STATUSES:
            return failure(f"Invalid attendance status. Allowed: {', '.join(ATTENDANCE_STATUSES)}")

        if not self._lesson_exists(lesson_id):
            return failure('Lesson not found', 'not_found')

        students = self.get_attendance_for_lesson(lesson_id)
        with self.db.transaction() as conn:
            conn.executemany(UPSERT_ATTENDANCE, [
                (lesson_id, student['student_id'], status, student['comment'],
                 student['makeup_lesson_id'], user_id)
                for student in students
            ])

        self.logger.info(f"Attendance set for all ({len(students)}) in lesson {lesson_id}: {status}")
        return {'success': True, 'updated': len(students), 'message': 'Attendance saved'}

    def copy_from_previous_lesson(self, lesson_id: int,
                                  user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Copy marks from the group's latest earlier lesson that was not canceled.

        Only students still active in the group are copied.
        """
        lesson = self.db.execute_query(
            "SELECT id, group_id, start_datetime FROM lessons WHERE id = ?",
            (lesson_id,),
            fetch_all=False
        )
        if not lesson:
            return failure('Lesson not found', 'not_found')

        previous = self.db.execute_query("""
            SELECT id FROM lessons
            WHERE group_id = ? AND start_datetime < ? AND status != 'canceled'
            ORDER BY start_datetime DESC
            LIMIT 1
        """, (lesson['group_id'], lesson['start_datetime']), fetch_all=False)
        if not previous:
            return failure('No previous lesson to copy from', 'not_found')

        marks = self.db.execute_query("""
            SELECT a.student_id, a.status, a.comment
            FROM attendance a
            JOIN student_groups sg ON sg.student_id = a.student_id
                                   AND sg.group_id = ? AND sg.is_active = 1
            WHERE a.lesson_id = ?
        """, (lesson['group_id'], previous['id']))

        with self.db.transaction() as conn:
            conn.executemany(UPSERT_ATTENDANCE, [
                (lesson_id, mark['student_id'], mark['status'], mark['comment'], None, user_id)
                for mark in marks
            ])

        self.logger.info(f"Copied {len(marks)} attendance marks from lesson {previous['id']} to {lesson_id}")
        return {
            'success': True,
            'copied': len(marks),
            'source_lesson_id': previous['id'],
            'message': f'Copied {len(marks)} marks'
        }

    def clear_attendance(self, lesson_id: int) -> Dict[str, Any]:
        if not self._lesson_exists(lesson_id):
            return failure('Lesson not found', 'not_found')

        removed = self.db.execute_update("DELETE FROM attendance WHERE lesson_id = ?", (lesson_id,))
        self.logger.info(f"Attendance cleared for lesson {lesson_id}: {removed} marks")
        return {'success': True, 'removed': removed, 'message': 'Attendance cleared'}

    def get_student_stats(self, student_id: int, group_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Count a student's marks per status.

        Args:
            student_id (int): Student ID
            group_id (int): Restrict to one group

        Returns:
            Dict[str, Any]: Counts, total and attendance_rate (percent present)
        """
        query = """
            SELECT a.status, COUNT(*) AS count
            FROM attendance a
            JOIN lessons l ON l.id = a.lesson_id
            WHERE a.student_id = ?
        """
        params = [student_id]
        if group_id:
            query += " AND l.group_id = ?"
            params.append(group_id)
        query += " GROUP BY a.status"

        return self._build_stats(self.db.execute_query(query, tuple(params)))

    def get_group_stats(self, group_id: int) -> Dict[str, Any]:
        """Marks per status across all lessons of a group."""
        rows = self.db.execute_query("""
            SELECT a.status, COUNT(*) AS count
            FROM attendance a
            JOIN lessons l ON l.id = a.lesson_id
            WHERE l.group_id = ?
            GROUP BY a.status
        """, (group_id,))
        stats = self._build_stats(rows)
        stats['lessons_total'] = self.db.execute_scalar(
            "SELECT COUNT(*) FROM lessons WHERE group_id = ? AND status != 'canceled'", (group_id,)
        )
        stats['lessons_done'] = self.db.execute_scalar(
            "SELECT COUNT(*) FROM lessons WHERE group_id = ? AND status = 'done'", (group_id,)
        )
        return stats

    def get_group_student_stats(self, group_id: int) -> List[Dict[str, Any]]:
        """Per-student statistics for the active members of a group."""
        students = self.db.execute_query("""
            SELECT s.id, s.full_name
            FROM student_groups sg
            JOIN students s ON s.id = sg.student_id
            WHERE sg.group_id = ? AND sg.is_active = 1
            ORDER BY s.full_name
        """, (group_id,))

        rows = []
        for student in students:
            stats = self.get_student_stats(student['id'], group_id)
            rows.append({'student_id': student['id'], 'full_name': student['full_name'], **stats})
        return rows

    def _build_stats(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        stats = {status: 0 for status in ATTENDANCE_STATUSES}
        for row in rows:
            stats[row['status']] = row['count']

        total = sum(stats.values())
        stats['total'] = total
        stats['attendance_rate'] = percent(stats[self.STATUS_PRESENT], total)
        return stats

    def _lesson_exists(self, lesson_id: int) -> bool:
        return self.db.execute_query(
            "SELECT id FROM lessons WHERE id = ?", (lesson_id,), fetch_all=False
        ) is not None
