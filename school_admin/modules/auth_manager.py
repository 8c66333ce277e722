"""
Authentication Manager Module - School Administration System

This module handles authentication and authorization for the back office.
Only administrators sign in; teachers exist as user records that own groups.

Features:
- Email/password authentication with hashed passwords
- Server-side sessions with expiry
- Failed login tracking and temporary lockout
- Password change with validation
- Administrator account management
- Per-user settings
- Group access checks
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from school_admin.utils.helpers import failure
from school_admin.utils.validators import validate_email

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

USER_COLUMNS = """id, public_id, name, email, role, phone, telegram_id, photo_url,
                  notes, is_active, created_at, updated_at"""

DEFAULT_SETTINGS = {
    'phone': '',
    'language': 'uk',
    'timezone': 'Europe/Kyiv',
    'date_format': 'DD.MM.YYYY',
    'currency': 'UAH',
    'email_notifications': True,
    'push_notifications': True,
    'lesson_reminders': True,
    'payment_alerts': True,
    'weekly_report': False,
}

# Request keys accepted by update_settings mapped to columns
SETTINGS_FIELDS = {
    'phone': 'phone',
    'language': 'language',
    'timezone': 'timezone',
    'dateFormat': 'date_format',
    'currency': 'currency',
    'emailNotifications': 'email_notifications',
    'pushNotifications': 'push_notifications',
    'lessonReminders': 'lesson_reminders',
    'paymentAlerts': 'payment_alerts',
    'weeklyReport': 'weekly_report',
}

BOOLEAN_SETTINGS = {
    'email_notifications', 'push_notifications', 'lesson_reminders',
    'payment_alerts', 'weekly_report'
}


class AuthManager:
    """
    Authentication and authorization manager.
    Handles logins, sessions, passwords and administrator accounts.
    """

    def __init__(self, database_manager, session_hours: int = 24,
                 password_min_length: int = 6, max_login_attempts: int = 5,
                 lockout_duration: timedelta = timedelta(minutes=15)):
        """
        Initialize the authentication manager.

        Args:
            database_manager: Database manager instance
            session_hours (int): Session lifetime
            password_min_length (int): Minimum password length
            max_login_attempts (int): Failed attempts before lockout
            lockout_duration (timedelta): How long a locked email stays locked
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)
        self.session_hours = session_hours
        self.password_min_length = password_min_length
        self.max_login_attempts = max_login_attempts
        self.lockout_duration = lockout_duration

        # Failed login attempts tracking, keyed by email
        self.failed_attempts = {}

    # ------------------------------------------------------------------
    # Authentication and sessions
    # ------------------------------------------------------------------

    def authenticate_user(self, email: str, password: str) -> Dict[str, Any]:
        """
        Authenticate a back-office user.

        Args:
            email (str): Login email
            password (str): Plain password

        Returns:
            Dict[str, Any]: ``{'success': True, 'user': {...}}`` or a failure
            with error_type ``invalid_password`` (bad credentials, inactive
            account) or ``forbidden`` (non-admin, locked account)
        """
        email = (email or '').strip().lower()
        if not email or not password:
            return failure('Email and password are required')

        if self._is_account_locked(email):
            self.logger.warning(f"Authentication attempt for locked account: {email}")
            return failure('Too many failed attempts, try again later', 'forbidden')

        user = self.db.execute_query(
            "SELECT * FROM users WHERE email = ?",
            (email,),
            fetch_all=False
        )

        if not user or not user['is_active']:
            self._record_failed_attempt(email)
            self.logger.warning(f"Authentication failed - unknown or inactive user: {email}")
            return failure('Invalid email or password', 'invalid_password')

        if not check_password_hash(user['password_hash'], password):
            self._record_failed_attempt(email)
            self.logger.warning(f"Authentication failed - invalid password: {email}")
            return failure('Invalid email or password', 'invalid_password')

        if user['role'] != 'admin':
            self.logger.warning(f"Authentication refused for non-admin user: {email}")
            return failure('Access denied. Administrators only.', 'forbidden')

        self._clear_failed_attempts(email)
        self.logger.info(f"User authenticated successfully: {email}")

        return {
            'success': True,
            'user': self._public_user(user),
            'message': 'Login successful'
        }

    def create_session(self, user_id: int) -> str:
        """Create a server-side session and return its id."""
        session_id = str(uuid.uuid4())
        expires_at = datetime.now() + timedelta(hours=self.session_hours)

        self.db.execute_update(
            "INSERT INTO sessions (id, user_id, expires_at) VALUES (?, ?, ?)",
            (session_id, user_id, expires_at.strftime(TIMESTAMP_FORMAT))
        )
        return session_id

    def get_session_user(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Resolve a session id to its active, unexpired user.

        Returns:
            Dict[str, Any]: User record without the password hash, or None
        """
        if not session_id:
            return None

        user = self.db.execute_query(f"""
            SELECT {', '.join('u.' + c.strip() for c in USER_COLUMNS.split(','))}
            FROM sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.id = ? AND s.expires_at > ? AND u.is_active = 1
        """, (session_id, datetime.now().strftime(TIMESTAMP_FORMAT)), fetch_all=False)

        return user

    def delete_session(self, session_id: str) -> None:
        if session_id:
            self.db.execute_update("DELETE FROM sessions WHERE id = ?", (session_id,))

    def cleanup_expired_sessions(self) -> int:
        """Delete expired sessions and return how many were removed."""
        removed = self.db.execute_update(
            "DELETE FROM sessions WHERE expires_at <= ?",
            (datetime.now().strftime(TIMESTAMP_FORMAT),)
        )
        if removed:
            self.logger.info(f"Removed {removed} expired sessions")
        return removed

    def verify_password(self, user_id: int, password: str) -> bool:
        """Re-check a signed-in user's password before destructive actions."""
        if not password:
            return False
        row = self.db.execute_query(
            "SELECT password_hash FROM users WHERE id = ?",
            (user_id,),
            fetch_all=False
        )
        return bool(row) and check_password_hash(row['password_hash'], password)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def check_group_access(self, user: Dict[str, Any], group_id: int) -> bool:
        """Administrators see every group; teachers only the groups they teach."""
        if not user:
            return False
        if user['role'] == 'admin':
            return True

        group = self.db.execute_query(
            "SELECT teacher_id FROM groups WHERE id = ?",
            (group_id,),
            fetch_all=False
        )
        return bool(group) and group['teacher_id'] == user['id']

    def get_accessible_groups(self, user: Dict[str, Any]) -> List[Dict[str, Any]]:
        query = """
            SELECT g.id, g.public_id, g.title, g.course_id, g.teacher_id, g.weekly_day,
                   g.start_time, g.status
            FROM groups g
            WHERE g.is_active = 1
        """
        params = []
        if user['role'] != 'admin':
            query += " AND g.teacher_id = ?"
            params.append(user['id'])
        query += " ORDER BY g.weekly_day, g.start_time"
        return self.db.execute_query(query, tuple(params))

    # ------------------------------------------------------------------
    # Passwords and administrator accounts
    # ------------------------------------------------------------------

    def change_password(self, user_id: int, current_password: str,
                        new_password: str, confirm_password: str) -> Dict[str, Any]:
        """
        Update a user's password with validation.

        Args:
            user_id (int): User ID
            current_password (str): Current password
            new_password (str): New password
            confirm_password (str): Repeated new password

        Returns:
            Dict[str, Any]: Update result
        """
        if not current_password or not new_password or not confirm_password:
            return failure('All password fields are required')

        password_validation = self._validate_password(new_password)
        if not password_validation['valid']:
            return failure(password_validation['error'])

        if new_password != confirm_password:
            return failure('New passwords do not match')

        if not self.verify_password(user_id, current_password):
            self.logger.warning(f"Password update failed - incorrect current password for user {user_id}")
            return failure('Current password is incorrect', 'invalid_password')

        self.db.execute_update(
            "UPDATE users SET password_hash = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (generate_password_hash(new_password), user_id)
        )
        self.logger.info(f"Password updated successfully for user {user_id}")
        return {'success': True, 'message': 'Password updated successfully'}

    def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
            fetch_all=False
        )

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = ?",
            ((email or '').strip().lower(),),
            fetch_all=False
        )

    def list_admins(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = f"SELECT {USER_COLUMNS} FROM users WHERE role = 'admin'"
        if not include_inactive:
            query += " AND is_active = 1"
        query += " ORDER BY created_at DESC, id DESC"
        return self.db.execute_query(query)

    def create_admin(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an administrator account.

        Args:
            data (Dict[str, Any]): name, email, password and role ('admin')

        Returns:
            Dict[str, Any]: Creation result with the new user
        """
        name = (data.get('name') or '').strip()
        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''
        role = data.get('role') or 'admin'

        if not name or not email or not password:
            return failure("Name, email and password are required")
        if role != 'admin':
            return failure("Only administrator accounts can be created here")
        if not validate_email(email):
            return failure('Invalid email address')

        password_validation = self._validate_password(password)
        if not password_validation['valid']:
            return failure(password_validation['error'])

        if self.get_user_by_email(email):
            return failure('A user with this email already exists')

        user_id = self.db.execute_update(
            "INSERT INTO users (name, email, password_hash, role) VALUES (?, ?, ?, 'admin')",
            (name, email, generate_password_hash(password))
        )
        self.logger.info(f"Administrator created: {email} (ID: {user_id})")

        return {
            'success': True,
            'user': self.get_user_by_id(user_id),
            'message': 'Administrator created successfully'
        }

    # ------------------------------------------------------------------
    # User settings
    # ------------------------------------------------------------------

    def get_settings(self, user_id: int) -> Dict[str, Any]:
        """Stored settings merged over defaults, plus the display name."""
        settings = dict(DEFAULT_SETTINGS)
        row = self.db.execute_query(
            "SELECT * FROM user_settings WHERE user_id = ?",
            (user_id,),
            fetch_all=False
        )
        if row:
            for column in DEFAULT_SETTINGS:
                if row.get(column) is not None:
                    settings[column] = bool(row[column]) if column in BOOLEAN_SETTINGS else row[column]

        user = self.get_user_by_id(user_id)
        settings['display_name'] = user['name'] if user else None
        settings['email'] = user['email'] if user else None
        return settings

    def update_settings(self, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        display_name = data.get('displayName')
        if display_name is not None:
            display_name = str(display_name).strip()
            if not display_name:
                return failure('Display name cannot be empty')

        current = self.get_settings(user_id)
        values = {}
        for key, column in SETTINGS_FIELDS.items():
            value = data[key] if key in data else current[column]
            values[column] = (1 if value else 0) if column in BOOLEAN_SETTINGS else value

        with self.db.transaction() as conn:
            if display_name is not None:
                conn.execute(
                    "UPDATE users SET name = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (display_name, user_id)
                )
            columns = list(values.keys())
            conn.execute(f"""
                INSERT INTO user_settings (user_id, {', '.join(columns)})
                VALUES (?, {', '.join('?' for _ in columns)})
                ON CONFLICT(user_id) DO UPDATE SET
                    {', '.join(f'{c} = excluded.{c}' for c in columns)}
            """, (user_id, *values.values()))

        self.logger.info(f"Settings updated for user {user_id}")
        return {'success': True, 'message': 'Settings saved successfully'}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _public_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in user.items() if key != 'password_hash'}

    def _validate_password(self, password: str) -> Dict[str, Any]:
        if not password:
            return {'valid': False, 'error': 'Password is required'}

        if len(password) < self.password_min_length:
            return {
                'valid': False,
                'error': f'Password must be at least {self.password_min_length} characters long'
            }

        return {'valid': True}

    def _is_account_locked(self, email: str) -> bool:
        if email not in self.failed_attempts:
            return False

        attempt_data = self.failed_attempts[email]
        if datetime.now() - attempt_data['last_attempt'] > self.lockout_duration:
            del self.failed_attempts[email]
            return False

        return attempt_data['count'] >= self.max_login_attempts

    def _record_failed_attempt(self, email: str) -> None:
        now = datetime.now()
        # Drop entries whose lockout window has passed
        expired = [key for key, data in self.failed_attempts.items()
                   if now - data['last_attempt'] > self.lockout_duration]
        for key in expired:
            del self.failed_attempts[key]

        if email not in self.failed_attempts:
            self.failed_attempts[email] = {'count': 0, 'last_attempt': now}

        self.failed_attempts[email]['count'] += 1
        self.failed_attempts[email]['last_attempt'] = now

    def _clear_failed_attempts(self, email: str) -> None:
        self.failed_attempts.pop(email, None)
