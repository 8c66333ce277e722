"""
Payment routes.
"""

import logging

from flask import Blueprint, g, request

from school_admin.routes.api_utils import (
    admin_required, get_json_body, get_services, login_required, query_int
)
from school_admin.utils.helpers import create_response, current_month, error_response, result_response
from school_admin.utils.validators import normalize_month

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__, url_prefix='/api/payments')


def _month_arg(name):
    """(month, error) for an optional YYYY-MM query parameter."""
    raw = request.args.get(name)
    if not raw:
        return None, None
    month = normalize_month(raw)
    if not month:
        return None, error_response(f'{name} must be in YYYY-MM format', 400)
    return month, None


@payments_bp.route('', methods=['GET'])
@login_required
def list_payments():
    """
    With ``groupId`` and no other list filter: payment status of the
    group's members for ``month`` (current month by default).
    Otherwise: payments matching the filters.
    """
    services = get_services()
    group_id = query_int('groupId')

    if group_id and not request.args.get('startMonth') and not request.args.get('studentId'):
        if not services.groups.get_group(group_id):
            return error_response('Group not found', 404)
        if not services.auth.check_group_access(g.user, group_id):
            return error_response('You do not have access to this group', 403)

        month, error = _month_arg('month')
        if error:
            return error
        month = month or current_month()
        students = services.payments.get_payment_status_for_group_month(group_id, month)
        return create_response(True, data={'month': month, 'students': students})

    start_month, error = _month_arg('startMonth')
    if error:
        return error
    end_month, error = _month_arg('endMonth')
    if error:
        return error

    payments = services.payments.list_payments(
        student_id=query_int('studentId'),
        group_id=group_id,
        course_id=query_int('courseId'),
        start_month=start_month,
        end_month=end_month,
        method=request.args.get('method') or None,
        limit=query_int('limit')
    )
    return create_response(True, data={'payments': payments})


@payments_bp.route('', methods=['POST'])
@admin_required
def create_payment():
    result = get_services().payments.create_payment(get_json_body(), g.user['id'])
    return result_response(result, {'payment': result.get('payment')}, success_status=201)


@payments_bp.route('/<int:payment_id>', methods=['GET'])
@login_required
def get_payment(payment_id):
    payment = get_services().payments.get_payment(payment_id)
    if not payment:
        return error_response('Payment not found', 404)
    return create_response(True, data={'payment': payment})


@payments_bp.route('/<int:payment_id>', methods=['PUT'])
@admin_required
def update_payment(payment_id):
    result = get_services().payments.update_payment(payment_id, get_json_body())
    return result_response(result, {'payment': result.get('payment')})


@payments_bp.route('/<int:payment_id>', methods=['DELETE'])
@admin_required
def delete_payment(payment_id):
    return result_response(get_services().payments.delete_payment(payment_id))
