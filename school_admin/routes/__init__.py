"""
API blueprints.
"""

from school_admin.routes.auth import auth_bp, settings_bp, users_bp
from school_admin.routes.courses import courses_bp
from school_admin.routes.groups import groups_bp
from school_admin.routes.lessons import lessons_bp, schedule_bp
from school_admin.routes.payments import payments_bp
from school_admin.routes.reports import dashboard_bp, reports_bp
from school_admin.routes.students import students_bp
from school_admin.routes.teachers import teachers_bp
from school_admin.routes.uploads import media_bp, upload_bp

BLUEPRINTS = (
    auth_bp,
    users_bp,
    settings_bp,
    courses_bp,
    groups_bp,
    students_bp,
    teachers_bp,
    lessons_bp,
    schedule_bp,
    payments_bp,
    reports_bp,
    dashboard_bp,
    upload_bp,
    media_bp,
)


def register_blueprints(app):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
