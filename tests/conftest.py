"""Pytest configuration and fixtures.

This module provides fixtures for:
- An application on a temporary SQLite database and upload folder
- Flask test clients (anonymous and signed in as the default admin)
- Direct access to the managers
- Factories for courses, teachers, groups and students
"""

from datetime import date

import pytest

from school_admin import create_app

ADMIN_EMAIL = 'admin@school.local'
ADMIN_PASSWORD = 'admin123'

# A Monday, so weekly_day arithmetic in tests is easy to follow
MONDAY = date(2024, 3, 4)


@pytest.fixture
def app(tmp_path):
    """Application with an isolated database file and upload folder."""
    app = create_app('testing', {
        'DATABASE_PATH': str(tmp_path / 'school.db'),
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'LOG_FILE': str(tmp_path / 'logs' / 'test.log'),
        'DEFAULT_ADMIN_EMAIL': ADMIN_EMAIL,
        'DEFAULT_ADMIN_PASSWORD': ADMIN_PASSWORD,
    })
    yield app
    app.extensions['school_admin'].db.close_all_connections()


@pytest.fixture
def services(app):
    """Managers registered by the app factory."""
    return app.extensions['school_admin']


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    """Test client signed in as the seeded administrator."""
    client = app.test_client()
    response = client.post('/api/auth/login', json={
        'email': ADMIN_EMAIL,
        'password': ADMIN_PASSWORD,
    })
    assert response.status_code == 200, f"Admin login failed: {response.get_json()}"
    return client


@pytest.fixture
def admin_user(services):
    return services.auth.get_user_by_email(ADMIN_EMAIL)


@pytest.fixture
def login_as(app, services):
    """Test client with a server-side session for any user, teachers included."""
    def _login(user_id):
        client = app.test_client()
        with client.session_transaction() as session:
            session['session_id'] = services.auth.create_session(user_id)
        return client
    return _login


@pytest.fixture
def make_course(services):
    def _make(title='Robotics', **fields):
        result = services.courses.create_course({'title': title, **fields})
        assert result['success'], result
        return result['course']
    return _make


@pytest.fixture
def make_teacher(services):
    counter = {'n': 0}

    def _make(name='Olena Teacher', email=None, **fields):
        counter['n'] += 1
        email = email or f"teacher{counter['n']}@school.local"
        result = services.teachers.create_teacher({'name': name, 'email': email, **fields})
        assert result['success'], result
        return result['teacher']
    return _make


@pytest.fixture
def make_group(services, make_course):
    def _make(course_id=None, weekly_day=1, start_time='16:00',
              start_date=MONDAY.isoformat(), **fields):
        if course_id is None:
            course_id = make_course()['id']
        result = services.groups.create_group({
            'course_id': course_id,
            'weekly_day': weekly_day,
            'start_time': start_time,
            'start_date': start_date,
            **fields,
        })
        assert result['success'], result
        return result['group']
    return _make


@pytest.fixture
def make_student(services):
    def _make(full_name='Ivan Petrenko', **fields):
        result = services.students.create_student({'full_name': full_name, **fields})
        assert result['success'], result
        return result['student']
    return _make
