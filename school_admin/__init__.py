"""
School Administration System - Application Factory

Back office for a tutoring school: courses, groups, students, teachers,
lessons, attendance and monthly payments, served as a JSON API.
"""

import logging
import traceback
from types import SimpleNamespace
from typing import Any, Dict, Optional

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from school_admin.cli import register_commands
from school_admin.config import get_config
from school_admin.modules import (
    AttendanceManager, AuthManager, CourseManager, DatabaseManager, GroupHistoryManager,
    GroupManager, LessonManager, MediaStorage, PaymentManager, ReportGenerator,
    StudentManager, TeacherManager
)
from school_admin.routes import register_blueprints
from school_admin.utils.helpers import create_response, error_response, setup_logging

logger = logging.getLogger(__name__)

__version__ = '1.0.0'


def create_app(config_name: Optional[str] = None,
               overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Application factory

    Args:
        config_name: Configuration name (development, production, testing)
        overrides: Extra settings applied on top of the configuration class

    Returns:
        Flask application instance
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    config_class.init_app(app)
    setup_logging(app)

    app.extensions['school_admin'] = build_services(app.config)

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    logger.info(f"Application initialized ({config_class.__name__})")
    return app


def build_services(config) -> SimpleNamespace:
    """Create the database manager and every domain manager."""
    db = DatabaseManager(
        config['DATABASE_PATH'],
        default_admin={
            'name': config['DEFAULT_ADMIN_NAME'],
            'email': config['DEFAULT_ADMIN_EMAIL'],
            'password': config['DEFAULT_ADMIN_PASSWORD'],
        }
    )

    history = GroupHistoryManager(db)
    auth = AuthManager(
        db,
        session_hours=config['SESSION_LIFETIME_HOURS'],
        password_min_length=config['PASSWORD_MIN_LENGTH'],
        max_login_attempts=config['MAX_LOGIN_ATTEMPTS'],
        lockout_duration=config['LOGIN_LOCKOUT_DURATION']
    )
    students = StudentManager(db)
    payments = PaymentManager(db)
    attendance = AttendanceManager(db)
    lessons = LessonManager(
        db, history,
        default_timezone=config['DEFAULT_TIMEZONE'],
        default_duration=config['DEFAULT_LESSON_DURATION'],
        max_weeks_ahead=config['MAX_WEEKS_AHEAD']
    )
    teachers = TeacherManager(db, password_length=config['GENERATED_PASSWORD_LENGTH'])

    return SimpleNamespace(
        db=db,
        auth=auth,
        history=history,
        courses=CourseManager(db),
        groups=GroupManager(
            db, history,
            default_timezone=config['DEFAULT_TIMEZONE'],
            default_duration=config['DEFAULT_LESSON_DURATION'],
            currency=config['DEFAULT_CURRENCY']
        ),
        students=students,
        teachers=teachers,
        lessons=lessons,
        attendance=attendance,
        payments=payments,
        reports=ReportGenerator(
            db, students, payments, attendance, lessons, teachers,
            pdf_font_path=config['PDF_FONT_PATH']
        ),
        media=MediaStorage(
            config['UPLOAD_FOLDER'],
            tuple(config['UPLOAD_FOLDERS']) + (config['FLYER_FOLDER'],),
            max_size=config['MAX_IMAGE_SIZE'],
            allowed_types=config['ALLOWED_IMAGE_TYPES'],
            max_dimension=config['IMAGE_MAX_DIMENSION']
        ),
    )


def register_error_handlers(app: Flask) -> None:
    """JSON error bodies; unexpected errors are logged to the error_logs table."""

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        if error.code == 413:
            return error_response('Uploaded file is too large', 413)
        return error_response(error.description or error.name, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error on {request.method} {request.path}: {str(error)}")

        user = g.get('user')
        try:
            app.extensions['school_admin'].db.log_error(
                str(error),
                stack=traceback.format_exc(),
                user_id=user['id'] if user else None,
                request_path=request.path,
                request_method=request.method
            )
        except Exception as log_error:
            logger.error(f"Could not store error log: {str(log_error)}")

        return create_response(False, 'Internal server error', status=500)
