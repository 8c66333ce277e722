"""
Report Generator Module - School Administration System

This module builds the reports of the administration system and exports
them. Reports are returned as plain data for the JSON API or rendered in
memory as CSV or Excel files; course programs are rendered as PDF.

Features:
- Attendance reports (per student, per group, all groups)
- Monthly debt report
- Payment statistics report
- Dashboard summary
- CSV/Excel export with pandas
- Course program PDF with ReportLab
"""

import io
import logging
import os
import re
from datetime import date, datetime
from typing import Dict, List, Any, Optional, Tuple
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

EXPORT_FORMATS = {
    'csv': 'text/csv; charset=utf-8',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}

ATTENDANCE_STUDENT_COLUMNS = [
    ('lesson_date', 'Date'),
    ('group_title', 'Group'),
    ('course_title', 'Course'),
    ('topic', 'Topic'),
    ('status', 'Status'),
    ('comment', 'Comment'),
]

STATS_COLUMNS = [
    ('present', 'Present'),
    ('absent', 'Absent'),
    ('makeup_planned', 'Make-up planned'),
    ('makeup_done', 'Make-up done'),
    ('total', 'Total'),
    ('attendance_rate', 'Attendance %'),
]

ATTENDANCE_GROUP_COLUMNS = [('full_name', 'Student')] + STATS_COLUMNS

ATTENDANCE_ALL_COLUMNS = [
    ('group_title', 'Group'),
    ('course_title', 'Course'),
    ('teacher_name', 'Teacher'),
] + STATS_COLUMNS

DEBT_COLUMNS = [
    ('full_name', 'Student'),
    ('phone', 'Phone'),
    ('parent_name', 'Parent'),
    ('parent_phone', 'Parent phone'),
    ('group_title', 'Group'),
    ('course_title', 'Course'),
    ('monthly_price', 'Price'),
    ('paid', 'Paid'),
    ('debt', 'Debt'),
]

PAYMENT_COLUMNS = [
    ('paid_at', 'Paid at'),
    ('month', 'Month'),
    ('student_name', 'Student'),
    ('course_title', 'Course'),
    ('group_title', 'Group'),
    ('amount', 'Amount'),
    ('method', 'Method'),
    ('note', 'Note'),
]


def sanitize_filename(value: str, fallback: str = 'export') -> str:
    """Reduce a title to letters, digits, dashes and underscores."""
    cleaned = re.sub(r'[^\w\-]+', '_', value or '', flags=re.UNICODE).strip('_')
    return cleaned[:80] or fallback


class ReportGenerator:
    """
    Report generation for the administration system.
    Supports JSON data, CSV and Excel exports, and program PDFs.
    """

    def __init__(self, database_manager, student_manager, payment_manager,
                 attendance_manager, lesson_manager, teacher_manager,
                 pdf_font_path: Optional[str] = None):
        """
        Initialize the report generator.

        Args:
            database_manager: Database manager instance
            student_manager: StudentManager (debts)
            payment_manager: PaymentManager (payment statistics)
            attendance_manager: AttendanceManager (attendance statistics)
            lesson_manager: LessonManager (upcoming lessons)
            teacher_manager: TeacherManager (teacher counts)
            pdf_font_path (str): Optional TrueType font for non-Latin PDF text
        """
        self.db = database_manager
        self.students = student_manager
        self.payments = payment_manager
        self.attendance = attendance_manager
        self.lessons = lesson_manager
        self.teachers = teacher_manager
        self.logger = logging.getLogger(__name__)

        self.font_name, self.bold_font_name = self._register_font(pdf_font_path)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def attendance_report(self, groups: List[Dict[str, Any]], student_id: Optional[int] = None,
                          group_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Attendance report for one student, one group, or every group given.

        Args:
            groups (List[Dict[str, Any]]): Groups the caller may see
            student_id (int): Report on this student
            group_id (int): Report on this group

        Returns:
            Dict[str, Any]: Report with ``type``, ``stats`` and ``records``
        """
        if student_id:
            student = self.students.get_student(student_id)
            if not student:
                return {'success': False, 'error': 'Student not found', 'error_type': 'not_found'}
            return {
                'success': True,
                'type': 'student',
                'student': {'id': student['id'], 'full_name': student['full_name']},
                'stats': self.attendance.get_student_stats(student_id, group_id),
                'records': self.students.get_attendance_history(student_id, limit=1000),
                'columns': ATTENDANCE_STUDENT_COLUMNS,
            }

        if group_id:
            group = next((g for g in groups if g['id'] == group_id), None)
            if not group:
                return {'success': False, 'error': 'Group not found', 'error_type': 'not_found'}
            return {
                'success': True,
                'type': 'group',
                'group': {'id': group['id'], 'title': group['title']},
                'stats': self.attendance.get_group_stats(group_id),
                'records': self.attendance.get_group_student_stats(group_id),
                'columns': ATTENDANCE_GROUP_COLUMNS,
            }

        records = []
        for group in groups:
            stats = self.attendance.get_group_stats(group['id'])
            records.append({
                'group_id': group['id'],
                'group_title': group['title'],
                'course_title': group.get('course_title'),
                'teacher_name': group.get('teacher_name'),
                **stats,
            })
        return {
            'success': True,
            'type': 'all',
            'records': records,
            'columns': ATTENDANCE_ALL_COLUMNS,
        }

    def debts_report(self, month: str) -> Dict[str, Any]:
        debtors = self.students.get_students_with_debt(month)
        return {
            'success': True,
            'month': month,
            'totalDebt': sum(row['debt'] for row in debtors),
            'studentsCount': len({row['student_id'] for row in debtors}),
            'debtors': debtors,
            'columns': DEBT_COLUMNS,
        }

    def payments_report(self, start_month: Optional[str] = None, end_month: Optional[str] = None,
                        group_id: Optional[int] = None, course_id: Optional[int] = None) -> Dict[str, Any]:
        return {
            'success': True,
            'stats': self.payments.get_payment_stats(start_month, end_month, group_id, course_id),
            'payments': self.payments.get_payments_for_export(
                start_month=start_month, end_month=end_month, group_id=group_id, course_id=course_id
            ),
            'columns': PAYMENT_COLUMNS,
        }

    def dashboard_stats(self, user: Optional[Dict[str, Any]] = None,
                        today: Optional[date] = None) -> Dict[str, Any]:
        """Headline numbers for the back-office start page.

        A teacher sees only the upcoming lessons of their own groups.
        """
        today = today or date.today()
        month = today.replace(day=1).isoformat()

        if user and user['role'] != 'admin':
            upcoming = self.lessons.get_upcoming_lessons_for_teacher(user['id'], limit=5, today=today)
        else:
            upcoming = self.lessons.get_upcoming_lessons(limit=5, today=today)

        return {
            'students': self.students.count_students(),
            'groups': self.db.execute_scalar(
                "SELECT COUNT(*) FROM groups WHERE is_active = 1 AND status = 'active'"),
            'courses': self.db.execute_scalar("SELECT COUNT(*) FROM courses WHERE is_active = 1"),
            'teachers': self.teachers.count_teachers(),
            'month': month,
            'month_debt': self.students.get_total_debt(month),
            'month_payments': self.payments.get_payment_stats(month, month),
            'upcoming_lessons': upcoming,
        }

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_table(self, records: List[Dict[str, Any]], columns: List[Tuple[str, str]],
                     export_format: str, name: str) -> Dict[str, Any]:
        """
        Render records as a CSV or Excel file in memory.

        Args:
            records: Rows to export
            columns: (key, header) pairs selecting and naming the columns
            export_format: 'csv' or 'xlsx'
            name: File name stem

        Returns:
            Dict[str, Any]: {'success', 'content', 'mimetype', 'filename'}
        """
        if export_format not in EXPORT_FORMATS:
            return {
                'success': False,
                'error': f"Unsupported format. Allowed: {', '.join(EXPORT_FORMATS)}",
                'error_type': 'validation_error'
            }

        df = pd.DataFrame(records, columns=[key for key, _ in columns])
        df = df.rename(columns=dict(columns))
        filename = f"{sanitize_filename(name)}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{export_format}"

        if export_format == 'csv':
            # BOM so spreadsheet programs detect UTF-8
            content = df.to_csv(index=False).encode('utf-8-sig')
        else:
            buffer = io.BytesIO()
            with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
                df.to_excel(writer, sheet_name=sanitize_filename(name)[:31], index=False)
            content = buffer.getvalue()

        self.logger.info(f"Export generated: {filename} ({len(df)} rows)")
        return {
            'success': True,
            'content': content,
            'mimetype': EXPORT_FORMATS[export_format],
            'filename': filename,
        }

    def course_program_pdf(self, course: Dict[str, Any]) -> Dict[str, Any]:
        """
        Render a course program as an A4 PDF.

        Args:
            course (Dict[str, Any]): Course record

        Returns:
            Dict[str, Any]: {'success', 'content', 'filename'}
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=A4,
            leftMargin=2 * cm, rightMargin=2 * cm, topMargin=2 * cm, bottomMargin=2 * cm,
            title=course['title']
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            'ProgramTitle',
            parent=styles['Heading1'],
            fontName=self.bold_font_name,
            fontSize=18,
            spaceAfter=18,
            alignment=1  # Center alignment
        )
        heading_style = ParagraphStyle(
            'ProgramHeading', parent=styles['Heading2'], fontName=self.bold_font_name
        )
        body_style = ParagraphStyle(
            'ProgramBody', parent=styles['Normal'], fontName=self.font_name, fontSize=11, leading=15
        )

        elements = [Paragraph(escape(course['title']), title_style)]

        info_table = Table([
            ['Minimum age:', f"{course.get('age_min') or 0}+"],
            ['Duration:', f"{course.get('duration_months') or 1} month(s)"],
        ], colWidths=[4 * cm, 10 * cm])
        info_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), self.bold_font_name),
            ('FONTNAME', (1, 0), (1, -1), self.font_name),
            ('FONTSIZE', (0, 0), (-1, -1), 11),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('LINEBELOW', (0, -1), (-1, -1), 0.5, colors.grey),
        ]))
        elements.append(info_table)
        elements.append(Spacer(1, 16))

        if course.get('description'):
            elements.append(Paragraph('Description', heading_style))
            elements.extend(self._paragraphs(course['description'], body_style))
            elements.append(Spacer(1, 12))

        elements.append(Paragraph('Program', heading_style))
        if course.get('program'):
            elements.extend(self._paragraphs(course['program'], body_style))
        else:
            elements.append(Paragraph('The program has not been published yet.', body_style))

        doc.build(elements)

        self.logger.info(f"Program PDF generated for course {course['id']}")
        return {
            'success': True,
            'content': buffer.getvalue(),
            'filename': f"{sanitize_filename(course['title'], 'program')}_program.pdf",
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _paragraphs(self, text: str, style) -> List[Paragraph]:
        """One Paragraph per non-empty line; ReportLab wraps long lines."""
        return [Paragraph(escape(line.strip()), style)
                for line in text.splitlines() if line.strip()]

    def _register_font(self, font_path: Optional[str]) -> Tuple[str, str]:
        if font_path and os.path.exists(font_path):
            pdfmetrics.registerFont(TTFont('ProgramFont', font_path))
            return 'ProgramFont', 'ProgramFont'
        if font_path:
            self.logger.warning(f"PDF font not found, using Helvetica: {font_path}")
        return 'Helvetica', 'Helvetica-Bold'
