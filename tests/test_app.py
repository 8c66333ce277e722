"""Application factory, error handling and CLI tests."""

import threading

import pytest

from conftest import ADMIN_EMAIL
from school_admin import create_app
from school_admin.config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config


class TestConfig:

    def test_get_config(self):
        assert get_config("testing") is TestingConfig
        assert get_config("production") is ProductionConfig
        assert get_config("unknown") is DevelopmentConfig

    def test_testing_database_is_a_file(self):
        assert TestingConfig.DATABASE_PATH != ":memory:"
        assert TestingConfig.DATABASE_PATH.endswith(".db")

    def test_database_is_shared_across_threads(self, services, make_student):
        """Each thread opens its own connection to the same database."""
        student = make_student("Anna")
        found = []

        def lookup():
            found.append(services.students.get_student(student["id"]))
            services.db.close_all_connections()

        worker = threading.Thread(target=lookup)
        worker.start()
        worker.join()

        assert found[0]["full_name"] == "Anna"

    def test_services_are_registered(self, app):
        services = app.extensions["school_admin"]
        for name in ("db", "auth", "history", "courses", "groups", "students", "teachers",
                     "lessons", "attendance", "payments", "reports", "media"):
            assert getattr(services, name) is not None, f"{name} manager missing"

    def test_default_admin_is_seeded_once(self, app, tmp_path):
        """A second app on the same database does not seed another admin."""
        second = create_app("testing", {
            "DATABASE_PATH": app.config["DATABASE_PATH"],
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "LOG_FILE": str(tmp_path / "logs" / "second.log"),
            "DEFAULT_ADMIN_EMAIL": "other@school.local",
        })
        admins = second.extensions["school_admin"].auth.list_admins()

        assert [admin["email"] for admin in admins] == [ADMIN_EMAIL]
        second.extensions["school_admin"].db.close_all_connections()


class TestErrorHandling:
    """JSON error bodies."""

    def test_unknown_route(self, client):
        response = client.get("/api/nowhere")

        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_method_not_allowed(self, admin_client):
        assert admin_client.patch("/api/courses").status_code == 405

    def test_unexpected_error_is_logged(self, admin_client, services, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(services.courses, "list_courses", broken)

        response = admin_client.get("/api/courses")

        assert response.status_code == 500
        assert response.get_json() == {"success": False, "message": "Internal server error"}
        row = services.db.execute_query("SELECT * FROM error_logs", fetch_all=False)
        assert row["error_message"] == "disk on fire"
        assert row["request_path"] == "/api/courses"
        assert row["request_method"] == "GET"
        assert "RuntimeError" in row["error_stack"]


class TestCommands:
    """Flask CLI commands."""

    @pytest.fixture
    def runner(self, app):
        return app.test_cli_runner()

    def test_init_db(self, runner):
        result = runner.invoke(args=["init-db"])
        assert "Database initialized" in result.output

    def test_create_admin(self, runner, services):
        result = runner.invoke(args=[
            "create-admin", "--name", "Second", "--email", "second@school.local", "--password", "secret1"
        ])

        assert result.exit_code == 0, result.output
        assert services.auth.get_user_by_email("second@school.local")["role"] == "admin"

    def test_create_admin_failure(self, runner):
        result = runner.invoke(args=[
            "create-admin", "--name", "Dup", "--email", ADMIN_EMAIL, "--password", "secret1"
        ])

        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_generate_lessons(self, runner, services, make_group):
        group = make_group()

        result = runner.invoke(args=["generate-lessons", "--weeks", "2"])

        assert result.exit_code == 0, result.output
        assert group["title"] in result.output
        assert len(services.lessons.get_lessons_for_group(group["id"])) >= 2

    def test_generate_lessons_rejects_bad_weeks(self, runner):
        assert runner.invoke(args=["generate-lessons", "--weeks", "60"]).exit_code != 0

    def test_cleanup_sessions(self, runner):
        result = runner.invoke(args=["cleanup-sessions"])
        assert "Removed 0 expired sessions" in result.output
