"""
Lesson Manager Module - School Administration System

This module handles lessons: the dated occurrences of a group's weekly
meeting. Lessons are generated ahead of time from the group schedule and
can then be renamed, moved, canceled, conducted or deleted.

Features:
- Weekly lesson generation for one group or all active groups
- Idempotent generation (existing dates are skipped)
- Lesson lookup and upcoming lessons
- Topic, status, date and time updates
- Cancel and reschedule
- Weekly schedule view
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Any, Optional

import pytz

from school_admin.modules.group_history import format_lesson_conducted
from school_admin.modules.group_manager import DAY_NAMES
from school_admin.utils.exceptions import NotFoundError, ValidationError
from school_admin.utils.helpers import failure
from school_admin.utils.validators import normalize_time, parse_date, parse_int, validate_time

LESSON_STATUSES = ('scheduled', 'done', 'canceled')

DATETIME_FORMAT = '%Y-%m-%d %H:%M:%S'

LESSON_SELECT = """
    SELECT l.*, g.title AS group_title, g.teacher_id, g.course_id,
           g.duration_minutes, c.title AS course_title, u.name AS teacher_name
    FROM lessons l
    JOIN groups g ON g.id = l.group_id
    JOIN courses c ON c.id = g.course_id
    LEFT JOIN users u ON u.id = g.teacher_id
"""


def _format_datetime(value: datetime) -> str:
    return value.strftime(DATETIME_FORMAT)


def _parse_datetime(value: str) -> datetime:
    return datetime.strptime(value[:19], DATETIME_FORMAT)


class LessonManager:
    """
    Lesson generation, editing and scheduling.
    """

    def __init__(self, database_manager, history_manager,
                 default_timezone: str = 'Europe/Uzhgorod',
                 default_duration: int = 90, max_weeks_ahead: int = 52):
        """
        Initialize the lesson manager.

        Args:
            database_manager: Database manager instance
            history_manager: GroupHistoryManager for conducted lessons
            default_timezone (str): Used when a group's timezone is unknown
            default_duration (int): Lesson length when a group has none
            max_weeks_ahead (int): Upper bound for the generation horizon
        """
        self.db = database_manager
        self.history = history_manager
        self.logger = logging.getLogger(__name__)
        self.default_timezone = default_timezone
        self.default_duration = default_duration
        self.max_weeks_ahead = max_weeks_ahead

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_lessons_for_group(self, group_id: int, weeks_ahead: int = 8,
                                   created_by: Optional[int] = None,
                                   today: Optional[date] = None) -> Dict[str, Any]:
        """
        Create the group's lessons for the coming weeks.

        Lessons fall on the group's weekly day, from the later of the group
        start date and today, up to ``weeks_ahead`` weeks from today or the
        group end date, whichever comes first. Dates that already have a
        lesson are skipped, so repeated runs do not create duplicates.

        Args:
            group_id (int): Group ID
            weeks_ahead (int): Generation horizon in weeks
            created_by (int): User recorded as the lessons' creator
            today (date): Reference date, defaults to today in the group's timezone

        Returns:
            Dict[str, Any]: {'group_id', 'generated', 'skipped'}

        Raises:
            NotFoundError: If the group does not exist
            ValidationError: If weeks_ahead is out of range
        """
        weeks = parse_int(weeks_ahead, 1, self.max_weeks_ahead)
        if weeks is None:
            raise ValidationError(f"weeks_ahead must be between 1 and {self.max_weeks_ahead}")

        group = self.db.execute_query(
            "SELECT * FROM groups WHERE id = ?",
            (group_id,),
            fetch_all=False
        )
        if not group:
            raise NotFoundError(f"Group not found: {group_id}")

        if today is None:
            today = self._today(group['timezone'])

        window_start = today
        group_start = parse_date(group['start_date'])
        if group_start and group_start > window_start:
            window_start = group_start

        window_end = today + timedelta(days=7 * weeks)
        group_end = parse_date(group['end_date'])
        if group_end and group_end < window_end:
            window_end = group_end

        if window_start > window_end:
            return {'group_id': group_id, 'generated': 0, 'skipped': 0}

        existing = {
            row['lesson_date'] for row in self.db.execute_query("""
                SELECT lesson_date FROM lessons
                WHERE group_id = ? AND lesson_date BETWEEN ? AND ?
            """, (group_id, window_start.isoformat(), window_end.isoformat()))
        }

        hours, minutes = (int(part) for part in group['start_time'].split(':'))
        duration = timedelta(minutes=group['duration_minutes'] or self.default_duration)

        # ISO weekday: Monday is 1, Sunday is 7
        current = window_start + timedelta(days=(group['weekly_day'] - window_start.isoweekday()) % 7)
        new_lessons = []
        skipped = 0

        while current <= window_end:
            if current.isoformat() in existing:
                skipped += 1
            else:
                start = datetime.combine(current, time(hours, minutes))
                new_lessons.append((
                    group_id,
                    current.isoformat(),
                    _format_datetime(start),
                    _format_datetime(start + duration),
                    created_by,
                ))
            current += timedelta(days=7)

        if new_lessons:
            with self.db.transaction() as conn:
                conn.executemany("""
                    INSERT INTO lessons (group_id, lesson_date, start_datetime, end_datetime,
                                         status, created_by)
                    VALUES (?, ?, ?, ?, 'scheduled', ?)
                """, new_lessons)

        self.logger.info(
            f"Lessons generated for group {group_id}: {len(new_lessons)} new, {skipped} skipped "
            f"({window_start} .. {window_end})"
        )
        return {'group_id': group_id, 'generated': len(new_lessons), 'skipped': skipped}

    def generate_lessons_for_all_groups(self, weeks_ahead: int = 8,
                                        created_by: Optional[int] = None,
                                        today: Optional[date] = None) -> Dict[str, Any]:
        """Run lesson generation for every active group."""
        groups = self.db.execute_query("""
            SELECT id, title FROM groups
            WHERE is_active = 1 AND status = 'active'
            ORDER BY id
        """)

        results = []
        for group in groups:
            result = self.generate_lessons_for_group(group['id'], weeks_ahead, created_by, today)
            result['group_title'] = group['title']
            results.append(result)

        return {
            'results': results,
            'total_generated': sum(result['generated'] for result in results),
            'total_skipped': sum(result['skipped'] for result in results),
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_lesson(self, lesson_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            f"{LESSON_SELECT} WHERE l.id = ?",
            (lesson_id,),
            fetch_all=False
        )

    def get_lessons_for_group(self, group_id: int, start_date: Optional[str] = None,
                              end_date: Optional[str] = None) -> List[Dict[str, Any]]:
        query = f"""
            {LESSON_SELECT}
            WHERE l.group_id = ?
        """
        params = [group_id]
        if start_date:
            query += " AND l.lesson_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND l.lesson_date <= ?"
            params.append(end_date)
        query += " ORDER BY l.start_datetime"
        return self.db.execute_query(query, tuple(params))

    def get_upcoming_lessons(self, limit: int = 10, today: Optional[date] = None) -> List[Dict[str, Any]]:
        today = today or date.today()
        return self.db.execute_query(f"""
            {LESSON_SELECT}
            WHERE l.lesson_date >= ? AND l.status != 'canceled'
            ORDER BY l.start_datetime
            LIMIT ?
        """, (today.isoformat(), limit))

    def get_upcoming_lessons_for_teacher(self, teacher_id: int, limit: int = 10,
                                         today: Optional[date] = None) -> List[Dict[str, Any]]:
        today = today or date.today()
        return self.db.execute_query(f"""
            {LESSON_SELECT}
            WHERE g.teacher_id = ? AND l.lesson_date >= ? AND l.status != 'canceled'
            ORDER BY l.start_datetime
            LIMIT ?
        """, (teacher_id, today.isoformat(), limit))

    # ------------------------------------------------------------------
    # Changes
    # ------------------------------------------------------------------

    def update_lesson(self, lesson_id: int, update_data: Dict[str, Any],
                      user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Update topic, status, date or start time of a lesson.

        Moving the date or time keeps the group's lesson duration. Marking
        a lesson done records it in the group history.
        """
        lesson = self.get_lesson(lesson_id)
        if not lesson:
            return failure('Lesson not found', 'not_found')

        changes = {}

        if 'topic' in update_data:
            topic = update_data['topic']
            changes['topic'] = topic.strip() if isinstance(topic, str) and topic.strip() else None

        if 'status' in update_data:
            if update_data['status'] not in LESSON_STATUSES:
                return failure(f"Invalid status. Allowed: {', '.join(LESSON_STATUSES)}")
            changes['status'] = update_data['status']

        if update_data.get('lesson_date') or update_data.get('start_time'):
            new_date = parse_date(update_data.get('lesson_date') or lesson['lesson_date'])
            if not new_date:
                return failure('Lesson date must be in YYYY-MM-DD format')

            new_time = update_data.get('start_time') or lesson['start_datetime'][11:16]
            if not validate_time(new_time):
                return failure('Start time must be in HH:MM format')

            start = datetime.combine(new_date, self._parse_time(new_time))
            duration = timedelta(minutes=lesson['duration_minutes'] or self.default_duration)
            changes['lesson_date'] = new_date.isoformat()
            changes['start_datetime'] = _format_datetime(start)
            changes['end_datetime'] = _format_datetime(start + duration)

        if not changes:
            return failure('No valid fields to update')

        set_clause = ', '.join(f"{field} = ?" for field in changes)
        with self.db.transaction() as conn:
            conn.execute(
                f"UPDATE lessons SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*changes.values(), lesson_id)
            )
            if changes.get('status') == 'done' and lesson['status'] != 'done':
                self.history.add_entry(
                    lesson['group_id'], 'lesson_conducted',
                    format_lesson_conducted(
                        changes.get('lesson_date', lesson['lesson_date']),
                        changes.get('topic', lesson['topic'])
                    ),
                    user, new_value=lesson_id, conn=conn
                )

        self.logger.info(f"Lesson updated: {lesson_id} ({', '.join(changes)})")
        return {
            'success': True,
            'lesson': self.get_lesson(lesson_id),
            'message': 'Lesson updated successfully'
        }

    def mark_done(self, lesson_id: int, user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.update_lesson(lesson_id, {'status': 'done'}, user)

    def cancel_lesson(self, lesson_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        """Cancel a lesson, keeping the reason as its topic."""
        lesson = self.get_lesson(lesson_id)
        if not lesson:
            return failure('Lesson not found', 'not_found')
        if lesson['status'] == 'canceled':
            return failure('Lesson is already canceled')

        topic = reason.strip() if isinstance(reason, str) and reason.strip() else 'Canceled'
        self.db.execute_update("""
            UPDATE lessons SET status = 'canceled', topic = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (topic, lesson_id))

        self.logger.info(f"Lesson canceled: {lesson_id}")
        return {
            'success': True,
            'lesson': self.get_lesson(lesson_id),
            'message': 'Lesson canceled'
        }

    def reschedule_lesson(self, lesson_id: int, new_date: Any,
                          new_time: Optional[str] = None) -> Dict[str, Any]:
        """
        Move a lesson to another date (and optionally time).

        The lesson keeps its length and becomes scheduled again.
        """
        lesson = self.get_lesson(lesson_id)
        if not lesson:
            return failure('Lesson not found', 'not_found')

        if not new_date:
            return failure('New date is required')
        parsed_date = parse_date(new_date)
        if not parsed_date:
            return failure('New date must be in YYYY-MM-DD format')

        new_time = new_time or lesson['start_datetime'][11:16]
        if not validate_time(new_time):
            return failure('New time must be in HH:MM format')

        duration = _parse_datetime(lesson['end_datetime']) - _parse_datetime(lesson['start_datetime'])
        if duration <= timedelta(0):
            duration = timedelta(minutes=lesson['duration_minutes'] or self.default_duration)

        start = datetime.combine(parsed_date, self._parse_time(new_time))
        self.db.execute_update("""
            UPDATE lessons
            SET lesson_date = ?, start_datetime = ?, end_datetime = ?, status = 'scheduled',
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (parsed_date.isoformat(), _format_datetime(start), _format_datetime(start + duration), lesson_id))

        self.logger.info(f"Lesson rescheduled: {lesson_id} -> {_format_datetime(start)}")
        return {
            'success': True,
            'lesson': self.get_lesson(lesson_id),
            'message': 'Lesson rescheduled'
        }

    def delete_lesson(self, lesson_id: int) -> Dict[str, Any]:
        """Delete a lesson that has no attendance marked."""
        if not self.get_lesson(lesson_id):
            return failure('Lesson not found', 'not_found')

        attendance_count = self.db.execute_scalar(
            "SELECT COUNT(*) FROM attendance WHERE lesson_id = ?", (lesson_id,)
        )
        if attendance_count:
            return failure('Lesson has attendance records and cannot be deleted. Cancel it instead.')

        self.db.execute_update("DELETE FROM lessons WHERE id = ?", (lesson_id,))
        self.logger.info(f"Lesson deleted: {lesson_id}")
        return {'success': True, 'message': 'Lesson deleted'}

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    def get_week_schedule(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                          group_id: Optional[int] = None, teacher_id: Optional[int] = None,
                          today: Optional[date] = None) -> Dict[str, Any]:
        """
        Lessons grouped by day for a date range, Monday to Sunday of the
        current week by default.

        Returns:
            Dict[str, Any]: {'days', 'weekStart', 'weekEnd', 'totalLessons'}
        """
        if start_date is None:
            today = today or date.today()
            start_date = today - timedelta(days=today.isoweekday() - 1)
        if end_date is None:
            end_date = start_date + timedelta(days=6)

        query = f"""
            {LESSON_SELECT}
            WHERE l.lesson_date BETWEEN ? AND ?
        """
        params = [start_date.isoformat(), end_date.isoformat()]
        if group_id:
            query += " AND l.group_id = ?"
            params.append(group_id)
        if teacher_id:
            query += " AND g.teacher_id = ?"
            params.append(teacher_id)
        query += " ORDER BY l.start_datetime"

        lessons_by_date = {}
        lessons = self.db.execute_query(query, tuple(params))
        for lesson in lessons:
            lessons_by_date.setdefault(lesson['lesson_date'], []).append({
                'id': lesson['id'],
                'groupId': lesson['group_id'],
                'groupTitle': lesson['group_title'],
                'courseId': lesson['course_id'],
                'courseTitle': lesson['course_title'],
                'teacherId': lesson['teacher_id'],
                'teacherName': lesson['teacher_name'],
                'startTime': lesson['start_datetime'][11:16],
                'endTime': lesson['end_datetime'][11:16],
                'status': lesson['status'],
                'topic': lesson['topic'],
            })

        days = []
        current = start_date
        while current <= end_date:
            days.append({
                'date': current.isoformat(),
                'dayOfWeek': current.isoweekday(),
                'dayName': DAY_NAMES[current.isoweekday()],
                'lessons': lessons_by_date.get(current.isoformat(), []),
            })
            current += timedelta(days=1)

        return {
            'days': days,
            'weekStart': start_date.isoformat(),
            'weekEnd': end_date.isoformat(),
            'totalLessons': len(lessons),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _today(self, timezone_name: Optional[str]) -> date:
        try:
            zone = pytz.timezone(timezone_name or self.default_timezone)
        except pytz.UnknownTimeZoneError:
            self.logger.warning(f"Unknown timezone {timezone_name}, using {self.default_timezone}")
            zone = pytz.timezone(self.default_timezone)
        return datetime.now(zone).date()

    def _parse_time(self, value: str) -> time:
        hours, minutes = normalize_time(value).split(':')
        return time(int(hours), int(minutes))
