"""Group management tests.

Tests cover:
- Title generation and creation defaults
- Field validation
- Listing filters and teacher visibility
- Updates with history entries and price history
- Status changes, archive and restore
- Student membership and capacity
- Guarded deletion
"""

from datetime import date

from school_admin.modules.group_manager import generate_group_title


def history_descriptions(services, group_id):
    return [entry["action_description"] for entry in services.history.get_history(group_id)]


class TestCreateGroup:
    """Group creation."""

    def test_generate_group_title(self):
        assert generate_group_title(1, "16:30", "Robotics") == "Mon 16:30 Robotics"
        assert generate_group_title(7, "10:00", "Chess") == "Sun 10:00 Chess"

    def test_create_group_with_defaults(self, admin_client, services, make_course):
        course = make_course("Robotics")

        response = admin_client.post("/api/groups", json={
            "course_id": course["id"],
            "weekly_day": 3,
            "start_time": "9:30",
            "start_date": "2024-03-06",
        })

        assert response.status_code == 201
        group = response.get_json()["data"]["group"]
        assert group["title"] == "Wed 09:30 Robotics", "Time is zero padded in the title"
        assert group["duration_minutes"] == 90
        assert group["timezone"] == "Europe/Uzhgorod"
        assert group["monthly_price"] == 0
        assert group["status"] == "active"
        assert group["public_id"].startswith("GRP-")
        assert history_descriptions(services, group["id"]) == ["Group created: Wed 09:30 Robotics"]

    def test_initial_price_period(self, services, make_group):
        group = make_group(monthly_price=1200)

        prices = services.groups.get_price_history(group["id"])

        assert len(prices) == 1
        assert prices[0]["monthly_price"] == 1200
        assert prices[0]["effective_from"] == group["start_date"]
        assert prices[0]["effective_to"] is None

    def test_missing_required_fields(self, admin_client, make_course):
        course = make_course()
        response = admin_client.post("/api/groups", json={"course_id": course["id"], "weekly_day": 1})
        assert response.status_code == 400

    def test_field_validation(self, services, make_course):
        course = make_course()
        base = {"course_id": course["id"], "weekly_day": 1, "start_time": "16:00",
                "start_date": "2024-03-04"}

        invalid = [
            {"weekly_day": 0},
            {"weekly_day": 8},
            {"start_time": "25:00"},
            {"duration_minutes": 10},
            {"timezone": "Mars/Olympus"},
            {"end_date": "2024-03-01"},
            {"capacity": 0},
            {"monthly_price": -5},
            {"status": "paused"},
            {"photos_folder_url": "ftp://photos"},
            {"teacher_id": 999},
            {"course_id": 999},
        ]
        for override in invalid:
            result = services.groups.create_group({**base, **override})
            assert not result["success"], f"{override} should be rejected"

    def test_teacher_must_be_active(self, services, make_course, make_teacher):
        teacher = make_teacher()
        services.teachers.deactivate_teacher(teacher["id"])

        result = services.groups.create_group({
            "course_id": make_course()["id"], "weekly_day": 1, "start_time": "16:00",
            "start_date": "2024-03-04", "teacher_id": teacher["id"],
        })
        assert not result["success"]

    def test_admin_cannot_teach_group(self, services, make_group, admin_user):
        """Only teacher accounts can be assigned, on create and on update."""
        group = make_group()

        update = services.groups.update_group(group["id"], {"teacher_id": admin_user["id"]})
        create = services.groups.create_group({
            "course_id": group["course_id"], "weekly_day": 2, "start_time": "16:00",
            "start_date": "2024-03-04", "teacher_id": admin_user["id"],
        })

        assert (update["error"], create["error"]) == ("Teacher not found", "Teacher not found")
        assert services.groups.get_group(group["id"])["teacher_id"] is None


class TestListGroups:
    """Filtered listing."""

    def test_filters(self, admin_client, make_course, make_group, make_teacher):
        robotics = make_course("Robotics")
        chess = make_course("Chess")
        teacher = make_teacher()
        make_group(course_id=robotics["id"], weekly_day=1, teacher_id=teacher["id"])
        make_group(course_id=robotics["id"], weekly_day=3)
        make_group(course_id=chess["id"], weekly_day=5)

        def titles(query):
            response = admin_client.get(f"/api/groups{query}")
            return [group["title"] for group in response.get_json()["data"]["groups"]]

        assert len(titles("")) == 3
        assert titles(f"?courseId={chess['id']}") == ["Fri 16:00 Chess"]
        assert titles(f"?teacherId={teacher['id']}") == ["Mon 16:00 Robotics"]
        assert titles("?days=1,5") == ["Mon 16:00 Robotics", "Fri 16:00 Chess"]
        assert titles("?search=chess") == ["Fri 16:00 Chess"]

    def test_teacher_sees_own_groups_only(self, login_as, make_group, make_teacher):
        teacher = make_teacher()
        own = make_group(teacher_id=teacher["id"])
        other = make_group(weekly_day=2)
        client = login_as(teacher["id"])

        response = client.get("/api/groups")
        assert [group["id"] for group in response.get_json()["data"]["groups"]] == [own["id"]]

        assert client.get(f"/api/groups/{own['id']}").status_code == 200
        assert client.get(f"/api/groups/{other['id']}").status_code == 403

    def test_group_details(self, admin_client, services, make_group, make_student):
        group = make_group()
        services.groups.add_student(group["id"], make_student()["id"])

        response = admin_client.get(f"/api/groups/{group['id']}")
        data = response.get_json()["data"]

        assert data["group"]["students_count"] == 1
        assert len(data["students"]) == 1
        assert len(data["prices"]) == 1
        assert [entry["action_type"] for entry in data["history"]] == ["student_added", "created"]

    def test_missing_group(self, admin_client):
        assert admin_client.get("/api/groups/404").status_code == 404


class TestUpdateGroup:
    """Updates and the history they leave."""

    def test_time_change_regenerates_title(self, admin_client, services, make_group):
        group = make_group()

        response = admin_client.put(f"/api/groups/{group['id']}", json={"start_time": "17:30"})

        assert response.status_code == 200
        assert response.get_json()["data"]["group"]["title"] == "Mon 17:30 Robotics"
        assert "Changed start time: 16:00 -> 17:30" in history_descriptions(services, group["id"])

    def test_weekday_change_uses_day_names(self, services, make_group):
        group = make_group(weekly_day=1)

        services.groups.update_group(group["id"], {"weekly_day": 3})

        assert "Changed day of week: Monday -> Wednesday" in history_descriptions(services, group["id"])
        assert services.groups.get_group(group["id"])["title"].startswith("Wed ")

    def test_teacher_change(self, services, make_group, make_teacher):
        group = make_group()
        teacher = make_teacher("Olena Koval")

        services.groups.update_group(group["id"], {"teacher_id": teacher["id"]})
        services.groups.update_group(group["id"], {"teacher_id": None})

        descriptions = history_descriptions(services, group["id"])
        assert "Teacher changed: none -> Olena Koval" in descriptions
        assert "Teacher changed: Olena Koval -> none" in descriptions

    def test_no_changes(self, services, make_group):
        group = make_group()

        result = services.groups.update_group(group["id"], {"start_time": "16:00"})

        assert result["success"]
        assert result["message"] == "No changes"
        assert len(services.history.get_history(group["id"])) == 1, "Only the creation entry"

    def test_price_change_closes_period(self, services, make_group):
        group = make_group(monthly_price=1000)

        services.groups.update_group(group["id"], {"monthly_price": 1200})

        prices = services.groups.get_price_history(group["id"])
        assert [price["monthly_price"] for price in prices] == [1200, 1000]
        assert prices[0]["effective_to"] is None
        assert prices[1]["effective_to"] == date.today().isoformat()

    def test_end_date_before_start_date(self, services, make_group):
        group = make_group(start_date="2024-03-04")
        result = services.groups.update_group(group["id"], {"end_date": "2024-02-01"})
        assert not result["success"]

    def test_update_missing_group(self, admin_client):
        assert admin_client.put("/api/groups/404", json={"note": "x"}).status_code == 404


class TestGroupStatus:
    """Status changes, archive and restore."""

    def test_status_only_update(self, admin_client, services, make_group):
        group = make_group()

        response = admin_client.put(f"/api/groups/{group['id']}", json={"status": "graduate"})

        assert response.status_code == 200
        assert response.get_json()["data"]["group"]["status"] == "graduate"
        assert "Status changed: Active -> Graduated" in history_descriptions(services, group["id"])

    def test_invalid_status(self, admin_client, make_group):
        group = make_group()
        response = admin_client.put(f"/api/groups/{group['id']}", json={"status": "paused"})
        assert response.status_code == 400

    def test_archive_and_restore(self, admin_client, make_group):
        group = make_group()

        assert admin_client.post(f"/api/groups/{group['id']}/archive").status_code == 200
        assert admin_client.get("/api/groups").get_json()["data"]["groups"] == []
        archived = admin_client.get("/api/groups?includeInactive=true").get_json()["data"]["groups"]
        assert archived[0]["status"] == "inactive"
        assert archived[0]["is_active"] == 0

        assert admin_client.post(f"/api/groups/{group['id']}/restore").status_code == 200
        restored = admin_client.get("/api/groups").get_json()["data"]["groups"]
        assert restored[0]["status"] == "active"


class TestMembership:
    """Adding and removing students."""

    def test_add_student(self, admin_client, services, make_group, make_student):
        group = make_group()
        student = make_student("Anna Shevchenko")

        response = admin_client.post(f"/api/groups/{group['id']}/students",
                                     json={"student_id": student["id"]})

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["reactivated"] is False
        assert services.groups.is_student_in_group(group["id"], student["id"])
        assert "Student added: Anna Shevchenko" in history_descriptions(services, group["id"])

    def test_add_requires_student_id(self, admin_client, make_group):
        group = make_group()
        assert admin_client.post(f"/api/groups/{group['id']}/students", json={}).status_code == 400

    def test_duplicate_membership(self, services, make_group, make_student):
        group = make_group()
        student = make_student()
        services.groups.add_student(group["id"], student["id"])

        result = services.groups.add_student(group["id"], student["id"])

        assert not result["success"]
        assert result["error_type"] == "validation_error"

    def test_capacity_is_enforced(self, admin_client, make_group, make_student):
        group = make_group(capacity=1)
        first = make_student("Anna")
        second = make_student("Boris")

        assert admin_client.post(f"/api/groups/{group['id']}/students",
                                 json={"student_id": first["id"]}).status_code == 201
        response = admin_client.post(f"/api/groups/{group['id']}/students",
                                     json={"student_id": second["id"]})
        assert response.status_code == 409, "Full group should refuse new students"

    def test_archived_student_cannot_join(self, services, make_group, make_student):
        group = make_group()
        student = make_student()
        services.students.archive_student(student["id"])

        assert not services.groups.add_student(group["id"], student["id"])["success"]

    def test_remove_and_reactivate(self, admin_client, services, make_group, make_student):
        group = make_group()
        student = make_student("Boris")
        first = services.groups.add_student(group["id"], student["id"])

        response = admin_client.delete(f"/api/groups/{group['id']}/students/{student['id']}")
        assert response.status_code == 200
        assert not services.groups.is_student_in_group(group["id"], student["id"])
        assert "Student removed: Boris" in history_descriptions(services, group["id"])

        again = admin_client.delete(f"/api/groups/{group['id']}/students/{student['id']}")
        assert again.status_code == 404

        second = services.groups.add_student(group["id"], student["id"])
        assert second["reactivated"] is True
        assert second["student_group_id"] == first["student_group_id"], "Earlier link is reused"

    def test_remove_by_membership_id(self, admin_client, services, make_group, make_student):
        group = make_group()
        student = make_student()
        link = services.groups.add_student(group["id"], student["id"])

        response = admin_client.delete(f"/api/groups/{group['id']}/students",
                                       json={"student_group_id": link["student_group_id"]})

        assert response.status_code == 200
        assert services.groups.get_group_students(group["id"]) == []


class TestDeleteGroup:
    """Deletion guarded by dependencies and password."""

    def test_delete_empty_group(self, admin_client, services, make_group):
        group = make_group()

        response = admin_client.delete(f"/api/groups/{group['id']}", json={"password": "admin123"})

        assert response.status_code == 200
        assert services.groups.get_group(group["id"]) is None

    def test_delete_requires_password(self, admin_client, make_group):
        group = make_group()
        assert admin_client.delete(f"/api/groups/{group['id']}", json={}).status_code == 400
        assert admin_client.delete(f"/api/groups/{group['id']}",
                                   json={"password": "wrong"}).status_code == 401

    def test_group_with_students_is_kept(self, admin_client, services, make_group, make_student):
        group = make_group()
        services.groups.add_student(group["id"], make_student()["id"])

        response = admin_client.delete(f"/api/groups/{group['id']}", json={"password": "admin123"})

        assert response.status_code == 409
        dependencies = response.get_json()["data"]["dependencies"]
        assert dependencies == {"students": 1, "lessons": 0, "payments": 0}
        assert services.groups.get_group(group["id"]) is not None


class TestGroupHistoryRoute:

    def test_history_limit(self, admin_client, services, make_group):
        group = make_group()
        services.groups.update_group(group["id"], {"start_time": "17:00"})
        services.groups.update_group(group["id"], {"note": "Bring laptops"})

        response = admin_client.get(f"/api/groups/{group['id']}/history?limit=2")
        history = response.get_json()["data"]["history"]

        assert len(history) == 2
        assert history[0]["action_description"] == "Changed note:  -> Bring laptops"
        assert history[0]["user_name"] is None
