"""
Modules package for the school administration system.

Each manager wraps the shared DatabaseManager and owns the queries for one
part of the domain.
"""

from school_admin.modules.database_manager import DatabaseManager
from school_admin.modules.auth_manager import AuthManager
from school_admin.modules.course_manager import CourseManager
from school_admin.modules.group_history import GroupHistoryManager
from school_admin.modules.group_manager import GroupManager
from school_admin.modules.student_manager import StudentManager
from school_admin.modules.teacher_manager import TeacherManager
from school_admin.modules.lesson_manager import LessonManager
from school_admin.modules.attendance_manager import AttendanceManager
from school_admin.modules.payment_manager import PaymentManager
from school_admin.modules.report_generator import ReportGenerator
from school_admin.modules.media_storage import MediaStorage

__all__ = [
    'DatabaseManager',
    'AuthManager',
    'CourseManager',
    'GroupHistoryManager',
    'GroupManager',
    'StudentManager',
    'TeacherManager',
    'LessonManager',
    'AttendanceManager',
    'PaymentManager',
    'ReportGenerator',
    'MediaStorage',
]
