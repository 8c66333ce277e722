# School Administration System Configuration

import logging
import os
import tempfile
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dotenv import load_dotenv

from school_admin.utils.helpers import LOG_FORMAT

load_dotenv()

# Project root; database, uploads and logs live beside the package
BASE_DIR = Path(__file__).parent.parent.absolute()


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Settings shared by every environment"""

    SECRET_KEY = os.environ.get('SECRET_KEY') or 'school-admin-secret-key-change-me'
    DEBUG = _env_flag('DEBUG')
    TESTING = False

    # Storage
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'school.db')
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or str(BASE_DIR / 'uploads')

    # Images: students/teachers photos and course flyers
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024
    MAX_IMAGE_SIZE = 5 * 1024 * 1024
    ALLOWED_IMAGE_TYPES = {'image/jpeg': 'jpg', 'image/png': 'png'}
    IMAGE_MAX_DIMENSION = 800
    UPLOAD_FOLDERS = ('students', 'teachers')
    FLYER_FOLDER = 'flyers'

    # Back office sessions
    SESSION_LIFETIME_HOURS = 24
    PERMANENT_SESSION_LIFETIME = timedelta(hours=SESSION_LIFETIME_HOURS)
    SESSION_COOKIE_SECURE = _env_flag('SESSION_COOKIE_SECURE')
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Accounts
    PASSWORD_MIN_LENGTH = 6
    MAX_LOGIN_ATTEMPTS = 5
    LOGIN_LOCKOUT_DURATION = timedelta(minutes=15)
    GENERATED_PASSWORD_LENGTH = 10
    DEFAULT_ADMIN_EMAIL = os.environ.get('DEFAULT_ADMIN_EMAIL') or 'admin@school.local'
    DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD') or 'admin123'
    DEFAULT_ADMIN_NAME = os.environ.get('DEFAULT_ADMIN_NAME') or 'Administrator'

    # Groups and lessons
    DEFAULT_TIMEZONE = os.environ.get('DEFAULT_TIMEZONE') or 'Europe/Uzhgorod'
    DEFAULT_LESSON_DURATION = 90  # minutes
    DEFAULT_WEEKS_AHEAD = 8
    MAX_WEEKS_AHEAD = 52
    DEFAULT_CURRENCY = 'UAH'

    # TrueType font for Cyrillic program PDFs; Helvetica otherwise
    PDF_FONT_PATH = os.environ.get('PDF_FONT_PATH')

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = os.environ.get('LOG_FILE') or str(BASE_DIR / 'logs' / 'school_admin.log')
    LOG_MAX_BYTES = 10 * 1024 * 1024
    LOG_BACKUP_COUNT = 5

    @classmethod
    def init_app(cls, app):
        """Create the directories the application writes to"""
        directories = [
            Path(app.config['UPLOAD_FOLDER']),
            Path(app.config['LOG_FILE']).parent,
        ]
        if app.config['DATABASE_PATH'] != ':memory:':
            directories.append(Path(app.config['DATABASE_PATH']).parent)

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)


class DevelopmentConfig(Config):
    """Local development with a separate database file"""
    DEBUG = True
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'school_dev.db')
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Test runs; fixtures pass a temporary database file"""
    TESTING = True
    DEBUG = True
    # A file, since each thread opens its own connection
    DATABASE_PATH = os.environ.get('TEST_DATABASE_PATH') or str(
        Path(tempfile.gettempdir()) / 'school_admin_test.db')
    LOG_LEVEL = 'WARNING'


class ProductionConfig(Config):
    """Production: HTTPS cookies and a rotating log file"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'school_prod.db')
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        if app.debug:
            return

        file_handler = RotatingFileHandler(
            app.config['LOG_FILE'],
            maxBytes=cls.LOG_MAX_BYTES,
            backupCount=cls.LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        logging.getLogger('school_admin').addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('School administration system startup')


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration based on name or the FLASK_ENV environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)
