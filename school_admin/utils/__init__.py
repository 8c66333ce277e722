"""
Utilities package initialization
"""

from school_admin.utils.exceptions import (
    SchoolAdminError, ValidationError, AuthenticationError,
    AuthorizationError, NotFoundError, DatabaseError, PublicIdError
)
from school_admin.utils.validators import (
    validate_email, validate_time, normalize_time, validate_url, parse_date,
    parse_int, normalize_month, parse_bool
)
from school_admin.utils.helpers import (
    setup_logging, create_response, error_response, result_response,
    failure, current_month, percent, ERROR_STATUS
)

__all__ = [
    'SchoolAdminError', 'ValidationError', 'AuthenticationError',
    'AuthorizationError', 'NotFoundError', 'DatabaseError', 'PublicIdError',
    'validate_email', 'validate_time', 'normalize_time', 'validate_url', 'parse_date',
    'parse_int', 'normalize_month', 'parse_bool',
    'setup_logging', 'create_response', 'error_response', 'result_response',
    'failure', 'current_month', 'percent', 'ERROR_STATUS'
]
