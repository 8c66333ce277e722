"""
Authentication, administrator accounts and user settings routes.
"""

import logging

from flask import Blueprint, g, session

from school_admin.routes.api_utils import (
    admin_required, get_json_body, get_services, login_required, query_bool
)
from school_admin.utils.helpers import create_response, result_response

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')
users_bp = Blueprint('users', __name__, url_prefix='/api/users')
settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


@auth_bp.route('/login', methods=['POST'])
def login():
    """Sign in with email and password"""
    data = get_json_body()
    auth = get_services().auth

    result = auth.authenticate_user(data.get('email', ''), data.get('password', ''))
    if not result['success']:
        return result_response(result)

    user = result['user']
    session.clear()
    session.permanent = True
    session['session_id'] = auth.create_session(user['id'])
    session['user_id'] = user['id']

    logger.info(f"User {user['email']} logged in successfully")
    return create_response(True, f"Welcome back, {user['name']}!", {'user': user})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Sign out and drop the server-side session"""
    session_id = session.get('session_id')
    if session_id:
        get_services().auth.delete_session(session_id)
    session.clear()
    return create_response(True, 'You have been logged out successfully')


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return create_response(True, data={'user': g.user})


@users_bp.route('', methods=['GET'])
@admin_required
def list_users():
    admins = get_services().auth.list_admins(include_inactive=query_bool('includeInactive'))
    return create_response(True, data={'users': admins})


@users_bp.route('', methods=['POST'])
@admin_required
def create_user():
    """Create another administrator account"""
    result = get_services().auth.create_admin(get_json_body())
    return result_response(result, {'user': result.get('user')}, success_status=201)


@settings_bp.route('', methods=['GET'])
@login_required
def get_settings():
    return create_response(True, data={'settings': get_services().auth.get_settings(g.user['id'])})


@settings_bp.route('', methods=['PUT'])
@login_required
def update_settings():
    auth = get_services().auth
    result = auth.update_settings(g.user['id'], get_json_body())
    return result_response(result, {'settings': auth.get_settings(g.user['id'])})


@settings_bp.route('/password', methods=['PUT'])
@login_required
def change_password():
    data = get_json_body()
    result = get_services().auth.change_password(
        g.user['id'],
        data.get('currentPassword', ''),
        data.get('newPassword', ''),
        data.get('confirmPassword', '')
    )
    return result_response(result)
