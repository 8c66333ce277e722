"""
Helper utilities
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from flask import jsonify

LOG_FORMAT = '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'

# Manager error types mapped to HTTP status codes
ERROR_STATUS = {
    'validation_error': 400,
    'invalid_password': 401,
    'forbidden': 403,
    'not_found': 404,
    'conflict': 409,
    'server_error': 500,
}


def setup_logging(app) -> None:
    """Setup application logging"""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger('school_admin').setLevel(level)
    app.logger.setLevel(level)


def create_response(success: bool, message: str = '', data: Any = None,
                    status: int = 200):
    """
    Build a JSON response in the common envelope.

    Args:
        success: Operation outcome
        message: Human readable message
        data: Optional payload
        status: HTTP status code

    Returns:
        (Response, status) tuple
    """
    body: Dict[str, Any] = {'success': success, 'message': message}
    if data is not None:
        body['data'] = data
    return jsonify(body), status


def error_response(message: str, status: int = 400):
    return create_response(False, message, status=status)


def result_response(result: Dict[str, Any], data: Any = None,
                    success_status: int = 200):
    """
    Translate a manager result dict into a JSON response.

    Failed results carry an ``error_type`` that selects the status code.
    Without an explicit ``data`` the result minus its bookkeeping keys is used.
    """
    if not result.get('success'):
        status = ERROR_STATUS.get(result.get('error_type'), 400)
        return error_response(result.get('error', 'Request failed'), status)

    if data is None:
        data = {key: value for key, value in result.items()
                if key not in ('success', 'message')} or None
    return create_response(True, result.get('message', ''), data, success_status)


def failure(error: str, error_type: str = 'validation_error') -> Dict[str, Any]:
    """Standard failed-operation result used by the managers."""
    return {'success': False, 'error': error, 'error_type': error_type}


def current_month(today: Optional[date] = None) -> str:
    """First day of the current month as YYYY-MM-01."""
    today = today or date.today()
    return today.replace(day=1).isoformat()


def percent(part: int, whole: int) -> int:
    """Whole-number percentage with halves rounded up (1 of 8 is 13)."""
    if not whole:
        return 0
    ratio = Decimal(part * 100) / Decimal(whole)
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
