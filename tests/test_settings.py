"""User settings and password change tests."""

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD


class TestSettings:

    def test_defaults(self, admin_client):
        settings = admin_client.get("/api/settings").get_json()["data"]["settings"]

        assert settings["language"] == "uk"
        assert settings["timezone"] == "Europe/Kyiv"
        assert settings["date_format"] == "DD.MM.YYYY"
        assert settings["currency"] == "UAH"
        assert settings["weekly_report"] is False
        assert settings["display_name"] == "Administrator"
        assert settings["email"] == ADMIN_EMAIL

    def test_update_settings(self, admin_client):
        response = admin_client.put("/api/settings", json={
            "displayName": "Head Office",
            "language": "en",
            "weeklyReport": True,
            "emailNotifications": False,
        })

        assert response.status_code == 200
        settings = response.get_json()["data"]["settings"]
        assert settings["display_name"] == "Head Office"
        assert settings["language"] == "en"
        assert settings["weekly_report"] is True
        assert settings["email_notifications"] is False
        assert settings["currency"] == "UAH", "Untouched settings keep their value"

    def test_partial_updates_accumulate(self, admin_client):
        admin_client.put("/api/settings", json={"language": "en"})
        admin_client.put("/api/settings", json={"currency": "EUR"})

        settings = admin_client.get("/api/settings").get_json()["data"]["settings"]
        assert (settings["language"], settings["currency"]) == ("en", "EUR")

    def test_empty_display_name(self, admin_client):
        assert admin_client.put("/api/settings", json={"displayName": "  "}).status_code == 400

    def test_requires_login(self, client):
        assert client.get("/api/settings").status_code == 401


class TestChangePassword:
    """Password change through the settings page."""

    def change(self, client, current, new, confirm=None):
        return client.put("/api/settings/password", json={
            "currentPassword": current,
            "newPassword": new,
            "confirmPassword": new if confirm is None else confirm,
        })

    def test_change_password(self, admin_client, client):
        assert self.change(admin_client, ADMIN_PASSWORD, "new-secret").status_code == 200

        old = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert old.status_code == 401, "Old password no longer works"
        new = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "new-secret"})
        assert new.status_code == 200

    def test_wrong_current_password(self, admin_client):
        assert self.change(admin_client, "nope", "new-secret").status_code == 401

    def test_mismatch_and_length(self, admin_client):
        assert self.change(admin_client, ADMIN_PASSWORD, "new-secret", "other-secret").status_code == 400
        assert self.change(admin_client, ADMIN_PASSWORD, "123").status_code == 400
        assert self.change(admin_client, "", "").status_code == 400
