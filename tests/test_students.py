"""Student management tests.

Tests cover:
- Student creation and validation
- Interested courses stored as a list
- Search and quick search
- Archive, restore and permanent deletion
- Student card with groups
- Attendance and payment history
- Monthly debts
"""

import pytest


class TestCreateStudent:
    """Student creation and validation."""

    def test_create_student(self, admin_client):
        response = admin_client.post("/api/students", json={
            "full_name": "  Ivan Petrenko ",
            "phone": "+380501112233",
            "parent_name": "Olha Petrenko",
            "birth_date": "2015-06-01",
            "discount": "10",
            "interested_courses": ["Robotics", "Chess"],
        })

        assert response.status_code == 201
        student = response.get_json()["data"]["student"]
        assert student["full_name"] == "Ivan Petrenko"
        assert student["discount"] == 10
        assert student["interested_courses"] == ["Robotics", "Chess"]
        assert student["public_id"].startswith("STU-")
        assert student["is_active"] == 1

    def test_full_name_is_required(self, admin_client):
        assert admin_client.post("/api/students", json={"full_name": "  "}).status_code == 400
        assert admin_client.post("/api/students", json={"phone": "123"}).status_code == 400

    @pytest.mark.parametrize("field,value", [
        ("email", "not-an-email"),
        ("birth_date", "01.06.2015"),
        ("discount", 101),
        ("discount", -1),
        ("discount", 12.5),
        ("interested_courses", "Robotics"),
    ])
    def test_invalid_fields(self, services, field, value):
        result = services.students.create_student({"full_name": "Anna", field: value})
        assert not result["success"], f"{field}={value!r} should be rejected"

    def test_empty_optional_fields_are_null(self, make_student):
        student = make_student(phone="", email="")
        assert student["phone"] is None
        assert student["email"] is None
        assert student["interested_courses"] == []


class TestUpdateStudent:

    def test_update_student(self, admin_client, make_student):
        student = make_student()

        response = admin_client.put(f"/api/students/{student['id']}", json={
            "school": "Lyceum 7", "interested_courses": ["Chess"]
        })

        assert response.status_code == 200
        updated = response.get_json()["data"]["student"]
        assert updated["school"] == "Lyceum 7"
        assert updated["interested_courses"] == ["Chess"]
        assert updated["full_name"] == student["full_name"]

    def test_update_without_fields(self, admin_client, make_student):
        student = make_student()
        assert admin_client.put(f"/api/students/{student['id']}", json={"unknown": 1}).status_code == 400

    def test_update_missing_student(self, admin_client):
        assert admin_client.put("/api/students/404", json={"school": "x"}).status_code == 404


class TestSearchStudents:
    """Listing and search."""

    def test_search_by_name_and_phones(self, admin_client, make_student):
        make_student("Anna Bondar", phone="+380501234567")
        make_student("Boris Tkach", parent_name="Marta Tkach", parent_phone="+380671112233")
        make_student("Dmytro Lysenko")

        def names(query):
            response = admin_client.get(f"/api/students?search={query}")
            return [s["full_name"] for s in response.get_json()["data"]["students"]]

        assert names("anna") == ["Anna Bondar"]
        assert names("1234") == ["Anna Bondar"], "Phone numbers are searched"
        assert names("Marta") == ["Boris Tkach"], "Parent names are searched"
        assert names("067111") == ["Boris Tkach"], "Parent phones are searched"

    def test_quick_search(self, admin_client, make_student):
        for index in range(3):
            make_student(f"Student {index}")

        response = admin_client.get("/api/students/quick-search?q=Student&limit=2")
        assert len(response.get_json()["data"]["students"]) == 2

        empty = admin_client.get("/api/students/quick-search?q=")
        assert empty.get_json()["data"]["students"] == []

    def test_list_with_group_count(self, admin_client, services, make_group, make_student):
        group_a = make_group()
        group_b = make_group(weekly_day=4)
        student = make_student()
        services.groups.add_student(group_a["id"], student["id"])
        services.groups.add_student(group_b["id"], student["id"])
        services.groups.archive_group(group_b["id"])

        response = admin_client.get("/api/students?withGroupCount=true")
        rows = response.get_json()["data"]["students"]

        assert rows[0]["groups_count"] == 1, "Archived groups are not counted"


class TestArchiveAndDelete:
    """Archive, restore and permanent deletion."""

    def test_archive_and_restore(self, admin_client, make_student):
        student = make_student()

        assert admin_client.delete(f"/api/students/{student['id']}").status_code == 200
        assert admin_client.get("/api/students").get_json()["data"]["students"] == []
        archived = admin_client.get("/api/students?includeInactive=true").get_json()["data"]["students"]
        assert archived[0]["is_active"] == 0

        assert admin_client.patch(f"/api/students/{student['id']}").status_code == 200
        assert len(admin_client.get("/api/students").get_json()["data"]["students"]) == 1

    def test_permanent_delete_cascades(self, admin_client, services, make_group, make_student):
        group = make_group(monthly_price=1000)
        student = make_student()
        services.groups.add_student(group["id"], student["id"])
        services.payments.create_payment({
            "student_id": student["id"], "group_id": group["id"], "month": "2024-03",
            "amount": 1000, "method": "cash",
        })

        response = admin_client.delete(f"/api/students/{student['id']}?permanent=true")

        assert response.status_code == 200
        assert services.students.get_student(student["id"]) is None
        assert services.db.execute_scalar("SELECT COUNT(*) FROM payments") == 0
        assert services.groups.get_group_students(group["id"]) == []

    def test_delete_missing_student(self, admin_client):
        assert admin_client.delete("/api/students/404?permanent=true").status_code == 404


class TestStudentCard:
    """Student card and histories."""

    def test_card_lists_active_groups(self, admin_client, services, make_group, make_student):
        group_a = make_group()
        group_b = make_group(weekly_day=2)
        student = make_student()
        services.groups.add_student(group_a["id"], student["id"])
        services.groups.add_student(group_b["id"], student["id"])
        services.groups.remove_student(group_b["id"], student_id=student["id"])

        response = admin_client.get(f"/api/students/{student['id']}")
        groups = response.get_json()["data"]["student"]["groups"]

        assert [group["id"] for group in groups] == [group_a["id"]]

    def test_attendance_history_and_stats(self, admin_client, services, make_group, make_student):
        group = make_group()
        student = make_student()
        services.groups.add_student(group["id"], student["id"])
        services.lessons.generate_lessons_for_group(group["id"], 2)
        lessons = services.lessons.get_lessons_for_group(group["id"])
        services.attendance.set_attendance(lessons[0]["id"], student["id"], "present")
        services.attendance.set_attendance(lessons[1]["id"], student["id"], "absent")

        response = admin_client.get(f"/api/students/{student['id']}/attendance")
        data = response.get_json()["data"]

        assert len(data["history"]) == 2
        assert data["history"][0]["lesson_id"] == lessons[1]["id"], "Newest lesson first"
        assert data["stats"]["present"] == 1
        assert data["stats"]["absent"] == 1
        assert data["stats"]["attendance_rate"] == 50

    def test_payment_history(self, admin_client, services, make_group, make_student):
        group = make_group()
        student = make_student()
        for month in ("2024-03", "2024-04"):
            services.payments.create_payment({
                "student_id": student["id"], "group_id": group["id"], "month": month,
                "amount": 500, "method": "account",
            })

        response = admin_client.get(f"/api/students/{student['id']}/payments")
        months = [p["month"] for p in response.get_json()["data"]["payments"]]

        assert months == ["2024-04-01", "2024-03-01"]

    def test_missing_student(self, admin_client):
        assert admin_client.get("/api/students/404").status_code == 404
        assert admin_client.get("/api/students/404/payments").status_code == 404


class TestDebts:
    """Monthly debt calculation."""

    def test_debt_per_membership(self, services, make_group, make_student):
        group = make_group(monthly_price=1000)
        paid_in_full = make_student("Anna")
        partly_paid = make_student("Boris")
        unpaid = make_student("Dmytro")
        for student in (paid_in_full, partly_paid, unpaid):
            services.groups.add_student(group["id"], student["id"], join_date="2024-03-01")

        services.payments.create_payment({
            "student_id": paid_in_full["id"], "group_id": group["id"], "month": "2024-03",
            "amount": 1000, "method": "cash",
        })
        services.payments.create_payment({
            "student_id": partly_paid["id"], "group_id": group["id"], "month": "2024-03",
            "amount": 400, "method": "cash",
        })

        debtors = services.students.get_students_with_debt("2024-03-01")

        assert [(row["full_name"], row["debt"]) for row in debtors] == [("Dmytro", 1000), ("Boris", 600)]
        assert services.students.get_total_debt("2024-03-01") == 1600

    def test_later_joiners_owe_nothing_for_earlier_months(self, services, make_group, make_student):
        group = make_group(monthly_price=800)
        student = make_student()
        services.groups.add_student(group["id"], student["id"], join_date="2024-04-10")

        assert services.students.get_students_with_debt("2024-03-01") == []
        assert len(services.students.get_students_with_debt("2024-04-01")) == 1

    def test_inactive_groups_have_no_debt(self, services, make_group, make_student):
        group = make_group(monthly_price=800)
        student = make_student()
        services.groups.add_student(group["id"], student["id"], join_date="2024-03-01")
        services.groups.update_status(group["id"], "graduate")

        assert services.students.get_total_debt("2024-03-01") == 0
