"""Course management tests.

Tests cover:
- Create/update validation and defaults
- Listing with statistics and search
- Archive and restore
- Cascading delete guarded by password
- Students across a course's groups
- Program PDF download
"""


class TestCreateCourse:
    """Course creation and validation."""

    def test_create_course_with_defaults(self, admin_client):
        response = admin_client.post("/api/courses", json={"title": "  Robotics  "})

        assert response.status_code == 201
        course = response.get_json()["data"]["course"]
        assert course["title"] == "Robotics", "Title should be trimmed"
        assert course["age_min"] == 6
        assert course["duration_months"] == 1
        assert course["public_id"].startswith("CRS-")

    def test_title_too_short(self, admin_client):
        response = admin_client.post("/api/courses", json={"title": " R "})
        assert response.status_code == 400

    def test_age_and_duration_bounds(self, services):
        assert not services.courses.create_course({"title": "Chess", "age_min": 100})["success"]
        assert not services.courses.create_course({"title": "Chess", "age_min": -1})["success"]
        assert not services.courses.create_course({"title": "Chess", "duration_months": 0})["success"]
        assert not services.courses.create_course({"title": "Chess", "duration_months": 37})["success"]

        result = services.courses.create_course({"title": "Chess", "age_min": 0, "duration_months": 36})
        assert result["success"], result

    def test_update_course(self, admin_client, make_course):
        course = make_course()

        response = admin_client.put(f"/api/courses/{course['id']}", json={
            "description": "Build robots", "age_min": 10
        })

        assert response.status_code == 200
        updated = response.get_json()["data"]["course"]
        assert updated["description"] == "Build robots"
        assert updated["age_min"] == 10
        assert updated["title"] == course["title"], "Untouched fields keep their value"

    def test_update_missing_course(self, admin_client):
        assert admin_client.put("/api/courses/999", json={"title": "Chess"}).status_code == 404


class TestListCourses:
    """Listing, statistics and search."""

    def test_list_with_stats(self, admin_client, services, make_course, make_group, make_student):
        course = make_course("Robotics")
        make_course("Chess")
        group_a = make_group(course_id=course["id"])
        group_b = make_group(course_id=course["id"], weekly_day=3)
        student = make_student()
        services.groups.add_student(group_a["id"], student["id"])
        services.groups.add_student(group_b["id"], student["id"])

        response = admin_client.get("/api/courses?withStats=true")
        courses = {c["title"]: c for c in response.get_json()["data"]["courses"]}

        assert courses["Robotics"]["groups_count"] == 2
        assert courses["Robotics"]["students_count"] == 1, "Students are counted once"
        assert courses["Chess"]["groups_count"] == 0

    def test_search(self, admin_client, make_course):
        make_course("Robotics", description="Lego and Arduino")
        make_course("Chess")

        response = admin_client.get("/api/courses?search=arduino")
        titles = [c["title"] for c in response.get_json()["data"]["courses"]]
        assert titles == ["Robotics"]

    def test_archive_and_restore(self, admin_client, make_course):
        course = make_course()

        assert admin_client.post(f"/api/courses/{course['id']}/archive").status_code == 200
        active = admin_client.get("/api/courses").get_json()["data"]["courses"]
        assert active == [], "Archived course should be hidden"

        everything = admin_client.get("/api/courses?includeInactive=true").get_json()["data"]["courses"]
        assert len(everything) == 1

        assert admin_client.post(f"/api/courses/{course['id']}/restore").status_code == 200
        assert len(admin_client.get("/api/courses").get_json()["data"]["courses"]) == 1


class TestDeleteCourse:
    """Cascading deletion."""

    def test_delete_requires_password(self, admin_client, make_course):
        course = make_course()

        missing = admin_client.delete(f"/api/courses/{course['id']}", json={})
        assert missing.status_code == 400

        wrong = admin_client.delete(f"/api/courses/{course['id']}", json={"password": "bad"})
        assert wrong.status_code == 401

    def test_delete_removes_groups(self, admin_client, services, make_course, make_group, make_student):
        course = make_course()
        group = make_group(course_id=course["id"])
        student = make_student()
        services.groups.add_student(group["id"], student["id"])
        services.lessons.generate_lessons_for_group(group["id"], 2)

        response = admin_client.delete(f"/api/courses/{course['id']}", json={"password": "admin123"})

        assert response.status_code == 200
        assert response.get_json()["data"]["deleted_groups"] == 1
        assert services.courses.get_course(course["id"]) is None
        assert services.groups.get_group(group["id"]) is None
        assert services.db.execute_scalar("SELECT COUNT(*) FROM lessons") == 0, "Lessons cascade"
        assert services.students.get_student(student["id"]) is not None, "Students are kept"


class TestCourseRelations:
    """Groups and students of a course."""

    def test_course_students_are_unique(self, admin_client, services, make_course, make_group, make_student):
        course = make_course()
        group_a = make_group(course_id=course["id"])
        group_b = make_group(course_id=course["id"], weekly_day=5)
        anna = make_student("Anna")
        boris = make_student("Boris")
        services.groups.add_student(group_a["id"], anna["id"])
        services.groups.add_student(group_b["id"], anna["id"])
        services.groups.add_student(group_b["id"], boris["id"])

        response = admin_client.get(f"/api/courses/{course['id']}/students")
        data = response.get_json()["data"]

        assert data["total"] == 2
        by_name = {s["full_name"]: s for s in data["students"]}
        assert len(by_name["Anna"]["groups"]) == 2
        assert len(by_name["Boris"]["groups"]) == 1

    def test_course_groups(self, admin_client, make_course, make_group):
        course = make_course()
        make_group(course_id=course["id"])

        response = admin_client.get(f"/api/courses/{course['id']}/groups")
        assert len(response.get_json()["data"]["groups"]) == 1


class TestProgramPdf:
    """Program PDF download."""

    def test_program_pdf(self, admin_client, make_course):
        course = make_course("Robotics / Level 1", program="Week 1: motors\nWeek 2: <sensors>")

        response = admin_client.get(f"/api/courses/{course['id']}/program-pdf")

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data.startswith(b"%PDF"), "Body should be a PDF document"
        disposition = response.headers["Content-Disposition"]
        assert "attachment" in disposition
        assert "/" not in disposition.split("filename=")[1], "File name is sanitized"

    def test_program_pdf_missing_course(self, admin_client):
        assert admin_client.get("/api/courses/42/program-pdf").status_code == 404
