"""Teacher management tests.

Tests cover:
- Creation with a generated password
- Validation and duplicate emails
- Listing with assigned groups
- Deletion check, deactivation and permanent deletion
"""


class TestCreateTeacher:
    """Teacher accounts."""

    def test_create_teacher_returns_password_once(self, admin_client, services, app):
        response = admin_client.post("/api/teachers", json={
            "name": "Olena Koval", "email": "Olena@School.Local", "phone": "+380931234567"
        })

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["teacher"]["email"] == "olena@school.local", "Email is lower-cased"
        assert data["teacher"]["role"] == "teacher"
        assert data["teacher"]["public_id"].startswith("TCH-")
        assert len(data["auto_password"]) == app.config["GENERATED_PASSWORD_LENGTH"]
        assert "password_hash" not in data["teacher"]

        assert services.auth.verify_password(data["teacher"]["id"], data["auto_password"])

    def test_passwords_are_random(self, services):
        first = services.teachers.create_teacher({"name": "A", "email": "a@school.local"})
        second = services.teachers.create_teacher({"name": "B", "email": "b@school.local"})
        assert first["auto_password"] != second["auto_password"]

    def test_validation(self, admin_client):
        assert admin_client.post("/api/teachers", json={"name": "No Email"}).status_code == 400
        assert admin_client.post("/api/teachers", json={
            "name": "Bad", "email": "bad-email"
        }).status_code == 400

    def test_duplicate_email(self, admin_client, make_teacher):
        make_teacher(email="olena@school.local")

        response = admin_client.post("/api/teachers", json={
            "name": "Another", "email": "OLENA@school.local"
        })
        assert response.status_code == 400

    def test_email_shared_with_admin_is_rejected(self, services):
        result = services.teachers.create_teacher({"name": "T", "email": "admin@school.local"})
        assert not result["success"]

    def test_update_teacher(self, admin_client, make_teacher):
        teacher = make_teacher()

        response = admin_client.put(f"/api/teachers/{teacher['id']}", json={"telegram_id": "@olena"})

        assert response.status_code == 200
        assert response.get_json()["data"]["teacher"]["telegram_id"] == "@olena"

    def test_admin_is_not_a_teacher(self, admin_client, admin_user):
        assert admin_client.get(f"/api/teachers/{admin_user['id']}").status_code == 404


class TestListTeachers:

    def test_teachers_with_groups(self, admin_client, make_group, make_teacher):
        teacher = make_teacher("Olena Koval")
        make_teacher("Petro Ivanenko")
        make_group(teacher_id=teacher["id"])
        make_group(teacher_id=teacher["id"], weekly_day=4)

        response = admin_client.get("/api/teachers")
        teachers = {t["name"]: t for t in response.get_json()["data"]["teachers"]}

        assert teachers["Olena Koval"]["active_groups_count"] == 2
        assert teachers["Petro Ivanenko"]["groups"] == []


class TestDeleteTeacher:
    """Check, deactivate and permanent deletion."""

    def test_check_reports_groups(self, admin_client, make_group, make_teacher):
        busy = make_teacher()
        free = make_teacher()
        make_group(teacher_id=busy["id"])

        response = admin_client.delete(f"/api/teachers/{busy['id']}?check=true")
        assert response.status_code == 409
        assert len(response.get_json()["data"]["groups"]) == 1

        assert admin_client.delete(f"/api/teachers/{free['id']}?check=true").status_code == 200

    def test_deactivate(self, admin_client, services, make_teacher):
        teacher = make_teacher()

        response = admin_client.delete(f"/api/teachers/{teacher['id']}")

        assert response.status_code == 200
        assert services.teachers.get_teacher(teacher["id"])["is_active"] == 0
        listed = admin_client.get("/api/teachers").get_json()["data"]["teachers"]
        assert listed == [], "Inactive teachers are hidden by default"

    def test_deactivate_blocked_by_active_groups(self, admin_client, make_group, make_teacher):
        teacher = make_teacher()
        make_group(teacher_id=teacher["id"])

        response = admin_client.delete(f"/api/teachers/{teacher['id']}")
        assert response.status_code == 409

    def test_permanent_delete_needs_force_and_password(self, admin_client, make_group, make_teacher):
        teacher = make_teacher()
        make_group(teacher_id=teacher["id"])
        url = f"/api/teachers/{teacher['id']}"

        assert admin_client.delete(f"{url}?permanent=true", json={"password": "admin123"}).status_code == 409
        assert admin_client.delete(f"{url}?permanent=true&force=true", json={}).status_code == 400
        assert admin_client.delete(f"{url}?permanent=true&force=true",
                                   json={"password": "wrong"}).status_code == 401

    def test_groups_survive_teacher_deletion(self, admin_client, services, make_group, make_teacher):
        teacher = make_teacher()
        group = make_group(teacher_id=teacher["id"])

        response = admin_client.delete(f"/api/teachers/{teacher['id']}?permanent=true&force=true",
                                       json={"password": "admin123"})

        assert response.status_code == 200
        assert response.get_json()["data"]["unassigned_groups"] == 1
        assert services.teachers.get_teacher(teacher["id"]) is None
        remaining = services.groups.get_group(group["id"])
        assert remaining is not None, "Group keeps running without a teacher"
        assert remaining["teacher_id"] is None

    def test_delete_missing_teacher(self, admin_client):
        assert admin_client.delete("/api/teachers/404").status_code == 404
