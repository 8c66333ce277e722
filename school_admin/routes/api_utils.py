"""
Shared helpers for the API blueprints: access decorators, manager lookup
and request parsing.
"""

from functools import wraps
from typing import Any, Dict, List, Optional

from flask import current_app, g, request, session

from school_admin.utils.helpers import error_response
from school_admin.utils.validators import parse_bool, parse_int


def get_services():
    """Managers built by the app factory."""
    return current_app.extensions['school_admin']


def login_required(f):
    """Decorator to require a valid back-office session"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_services().auth.get_session_user(session.get('session_id'))
        if not user:
            return error_response('Authentication required', 401)
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require admin privileges"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_services().auth.get_session_user(session.get('session_id'))
        if not user:
            return error_response('Authentication required', 401)
        if user['role'] != 'admin':
            return error_response('Admin privileges required', 403)
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def get_json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def query_int(name: str) -> Optional[int]:
    """Positive integer query parameter, None when absent or malformed."""
    return parse_int(request.args.get(name), 1)


def query_bool(name: str) -> bool:
    return parse_bool(request.args.get(name))


def query_int_list(name: str) -> List[int]:
    """Comma separated integers such as ``days=1,3,5``."""
    raw = request.args.get(name, '')
    values = [parse_int(part.strip(), 1) for part in raw.split(',') if part.strip()]
    return [value for value in values if value is not None]


def check_password_confirmation(data: Dict[str, Any]):
    """
    Re-check the signed-in user's password for destructive actions.

    Returns:
        An error response, or None when the password is correct
    """
    password = data.get('password') or request.args.get('password')
    if not password:
        return error_response('Password confirmation is required', 400)
    if not get_services().auth.verify_password(g.user['id'], password):
        return error_response('Incorrect password', 401)
    return None
