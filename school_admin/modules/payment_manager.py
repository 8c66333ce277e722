"""
Payment Manager Module - School Administration System

Monthly tuition payments per student and group, paid in cash or to the
school account. A month is stored as its first day (YYYY-MM-01).
"""

import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Any, Optional

from school_admin.utils.helpers import failure
from school_admin.utils.validators import normalize_month, parse_int

PAYMENT_METHODS = ('cash', 'account')

PAYMENT_SELECT = """
    SELECT p.*, s.full_name AS student_name, g.title AS group_title,
           c.id AS course_id, c.title AS course_title, u.name AS created_by_name
    FROM payments p
    JOIN students s ON s.id = p.student_id
    JOIN groups g ON g.id = p.group_id
    JOIN courses c ON c.id = g.course_id
    LEFT JOIN users u ON u.id = p.created_by
"""


class PaymentManager:
    """Payments, payment status per group and month, and payment statistics."""

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def get_payment_status_for_group_month(self, group_id: int, month: str) -> List[Dict[str, Any]]:
        """
        What every active member of a group paid for a month.

        Args:
            group_id (int): Group ID
            month (str): First day of the month (YYYY-MM-01)

        Returns:
            List[Dict[str, Any]]: Per student: monthly_price, total_paid,
            debt (never negative) and that month's payments
        """
        students = self.db.execute_query("""
            SELECT s.id AS student_id, s.public_id, s.full_name, s.phone, s.parent_name,
                   s.parent_phone, s.discount, g.monthly_price
            FROM student_groups sg
            JOIN students s ON s.id = sg.student_id
            JOIN groups g ON g.id = sg.group_id
            WHERE sg.group_id = ? AND sg.is_active = 1
            ORDER BY s.full_name
        """, (group_id,))

        payments_by_student = {}
        for payment in self.db.execute_query("""
            SELECT id, student_id, amount, method, paid_at, note
            FROM payments
            WHERE group_id = ? AND month = ?
            ORDER BY paid_at
        """, (group_id, month)):
            payments_by_student.setdefault(payment['student_id'], []).append(payment)

        for student in students:
            payments = payments_by_student.get(student['student_id'], [])
            total_paid = sum(payment['amount'] for payment in payments)
            student['payments'] = payments
            student['total_paid'] = total_paid
            student['debt'] = max(0, (student['monthly_price'] or 0) - total_paid)
        return students

    def get_payment(self, payment_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            f"{PAYMENT_SELECT} WHERE p.id = ?",
            (payment_id,),
            fetch_all=False
        )

    def list_payments(self, student_id: Optional[int] = None, group_id: Optional[int] = None,
                      course_id: Optional[int] = None, start_month: Optional[str] = None,
                      end_month: Optional[str] = None, method: Optional[str] = None,
                      limit: Optional[int] = None) -> List[Dict[str, Any]]:
        where_clause, params = self._build_filters(
            student_id=student_id, group_id=group_id, course_id=course_id,
            start_month=start_month, end_month=end_month, method=method
        )
        query = f"{PAYMENT_SELECT} WHERE {where_clause} ORDER BY p.paid_at DESC, p.id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        return self.db.execute_query(query, tuple(params))

    def get_payments_for_export(self, **filters) -> List[Dict[str, Any]]:
        """Payment rows flattened for CSV/Excel export, oldest first."""
        where_clause, params = self._build_filters(**filters)
        return self.db.execute_query(f"""
            SELECT p.paid_at, p.month, s.full_name AS student_name, c.title AS course_title,
                   g.title AS group_title, p.amount, p.method, p.note
            FROM payments p
            JOIN students s ON s.id = p.student_id
            JOIN groups g ON g.id = p.group_id
            JOIN courses c ON c.id = g.course_id
            WHERE {where_clause}
            ORDER BY p.paid_at, p.id
        """, tuple(params))

    def get_payment_stats(self, start_month: Optional[str] = None, end_month: Optional[str] = None,
                          group_id: Optional[int] = None,
                          course_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Totals by method for the filtered payments.

        Returns:
            Dict[str, Any]: {'total', 'cash', 'account', 'count'}
        """
        where_clause, params = self._build_filters(
            group_id=group_id, course_id=course_id, start_month=start_month, end_month=end_month
        )
        row = self.db.execute_query(f"""
            SELECT COALESCE(SUM(p.amount), 0) AS total,
                   COALESCE(SUM(CASE WHEN p.method = 'cash' THEN p.amount END), 0) AS cash,
                   COALESCE(SUM(CASE WHEN p.method = 'account' THEN p.amount END), 0) AS account,
                   COUNT(p.id) AS count
            FROM payments p
            JOIN groups g ON g.id = p.group_id
            WHERE {where_clause}
        """, tuple(params), fetch_all=False)
        return row

    def create_payment(self, payment_data: Dict[str, Any],
                       user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Record a payment.

        Args:
            payment_data (Dict[str, Any]): student_id, group_id, month,
                amount and method are required; paid_at and note optional
            user_id (int): Recording user

        Returns:
            Dict[str, Any]: Creation result
        """
        for field in ('student_id', 'group_id', 'month', 'amount', 'method'):
            if payment_data.get(field) in (None, ''):
                return failure(f'Missing required field: {field}')

        validation_result = self._validate_payment_data(payment_data)
        if not validation_result['valid']:
            return failure(validation_result['error'])
        values = validation_result['values']

        if not self._exists('students', values['student_id']):
            return failure('Student not found')
        if not self._exists('groups', values['group_id']):
            return failure('Group not found')

        values.setdefault('paid_at', datetime.now().strftime('%Y-%m-%d %H:%M:%S'))

        try:
            payment_id = self.db.execute_update("""
                INSERT INTO payments (student_id, group_id, month, amount, method, paid_at,
                                      note, created_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                values['student_id'], values['group_id'], values['month'], values['amount'],
                values['method'], values['paid_at'], values.get('note'), user_id
            ))
        except sqlite3.IntegrityError as e:
            self.logger.warning(f"Duplicate payment rejected: {str(e)}")
            return failure('This payment has already been recorded', 'conflict')

        self.logger.info(
            f"Payment recorded: {values['amount']} ({values['method']}) for student "
            f"{values['student_id']}, group {values['group_id']}, {values['month']}"
        )
        return {
            'success': True,
            'payment': self.get_payment(payment_id),
            'message': 'Payment recorded'
        }

    def update_payment(self, payment_id: int, update_data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.get_payment(payment_id):
            return failure('Payment not found', 'not_found')

        validation_result = self._validate_payment_data(update_data, partial=True)
        if not validation_result['valid']:
            return failure(validation_result['error'])
        values = {field: value for field, value in validation_result['values'].items()
                  if field in ('month', 'amount', 'method', 'paid_at', 'note')}
        if not values:
            return failure('No valid fields to update')

        set_clause = ', '.join(f"{field} = ?" for field in values)
        try:
            self.db.execute_update(
                f"UPDATE payments SET {set_clause} WHERE id = ?",
                (*values.values(), payment_id)
            )
        except sqlite3.IntegrityError as e:
            self.logger.warning(f"Payment update conflict for {payment_id}: {str(e)}")
            return failure('A matching payment already exists', 'conflict')

        self.logger.info(f"Payment updated: {payment_id}")
        return {
            'success': True,
            'payment': self.get_payment(payment_id),
            'message': 'Payment updated'
        }

    def delete_payment(self, payment_id: int) -> Dict[str, Any]:
        if not self.get_payment(payment_id):
            return failure('Payment not found', 'not_found')

        self.db.execute_update("DELETE FROM payments WHERE id = ?", (payment_id,))
        self.logger.info(f"Payment deleted: {payment_id}")
        return {'success': True, 'message': 'Payment deleted'}

    def _exists(self, table: str, row_id: int) -> bool:
        return self.db.execute_query(
            f"SELECT id FROM {table} WHERE id = ?", (row_id,), fetch_all=False
        ) is not None

    def _build_filters(self, student_id=None, group_id=None, course_id=None,
                       start_month=None, end_month=None, method=None):
        where_conditions = []
        params = []

        if student_id:
            where_conditions.append("p.student_id = ?")
            params.append(student_id)
        if group_id:
            where_conditions.append("p.group_id = ?")
            params.append(group_id)
        if course_id:
            where_conditions.append("g.course_id = ?")
            params.append(course_id)
        if start_month:
            where_conditions.append("p.month >= ?")
            params.append(start_month)
        if end_month:
            where_conditions.append("p.month <= ?")
            params.append(end_month)
        if method:
            where_conditions.append("p.method = ?")
            params.append(method)

        where_clause = " AND ".join(where_conditions) if where_conditions else "1=1"
        return where_clause, params

    def _validate_payment_data(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        values = {}

        for field in ('student_id', 'group_id'):
            if field in data:
                value = parse_int(data[field], 1)
                if value is None:
                    return {'valid': False, 'error': f'Invalid {field}'}
                values[field] = value

        if 'month' in data:
            month = normalize_month(data['month'])
            if not month:
                return {'valid': False, 'error': 'Month must be in YYYY-MM format'}
            values['month'] = month

        if 'amount' in data:
            amount = parse_int(data['amount'], 1)
            if amount is None:
                return {'valid': False, 'error': 'Amount must be a positive whole number'}
            values['amount'] = amount

        if 'method' in data:
            if data['method'] not in PAYMENT_METHODS:
                return {'valid': False, 'error': f"Invalid payment method. Allowed: {', '.join(PAYMENT_METHODS)}"}
            values['method'] = data['method']

        if data.get('paid_at'):
            paid_at = str(data['paid_at']).strip().replace('T', ' ')[:19]
            parsed = None
            for fmt in ('%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M', '%Y-%m-%d'):
                try:
                    parsed = datetime.strptime(paid_at, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                return {'valid': False, 'error': 'paid_at must be a date or date-time'}
            values['paid_at'] = parsed.strftime('%Y-%m-%d %H:%M:%S')

        if 'note' in data:
            note = data['note']
            values['note'] = note.strip() if isinstance(note, str) and note.strip() else None

        return {'valid': True, 'values': values}
