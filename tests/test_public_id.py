"""Public ID generation tests.

Tests cover:
- Prefix and format per entity
- Length clamping
- Validation
- Uniqueness retries and exhaustion
- Public IDs assigned on creation
"""

import re

import pytest

from school_admin.modules.public_id import (
    MAX_RETRIES, generate_public_id, generate_unique_public_id, validate_public_id
)
from school_admin.utils.exceptions import PublicIdError


class TestGeneratePublicId:
    """Format of generated identifiers."""

    @pytest.mark.parametrize("entity,prefix", [
        ("student", "STU"),
        ("group", "GRP"),
        ("course", "CRS"),
        ("teacher", "TCH"),
    ])
    def test_prefix_per_entity(self, entity, prefix):
        """Each entity gets its own prefix and an 8 character random part."""
        public_id = generate_public_id(entity)
        assert re.match(rf"^{prefix}-[A-Z0-9]{{8}}$", public_id), f"Unexpected id {public_id}"

    def test_length_is_clamped(self):
        """Requested lengths outside 8..10 are clamped."""
        assert len(generate_public_id("student", 3).split("-")[1]) == 8
        assert len(generate_public_id("student", 10).split("-")[1]) == 10
        assert len(generate_public_id("student", 40).split("-")[1]) == 10

    def test_unknown_entity_raises(self):
        with pytest.raises(ValueError):
            generate_public_id("invoice")


class TestValidatePublicId:
    """Validation of identifiers."""

    def test_accepts_generated_ids(self):
        for entity in ("student", "group", "course", "teacher"):
            assert validate_public_id(generate_public_id(entity), entity)

    def test_rejects_wrong_prefix_and_charset(self):
        assert not validate_public_id("GRP-ABCDEFGH", "student"), "Prefix must match entity"
        assert not validate_public_id("STU-abcdefgh", "student"), "Lowercase is not allowed"
        assert not validate_public_id("STU-ABC", "student"), "Random part is too short"
        assert not validate_public_id("STU-ABCDEFGHIJK", "student"), "Random part is too long"
        assert not validate_public_id("", "student")
        assert not validate_public_id(None, "student")
        assert not validate_public_id("STU-ABCDEFGH\n", "student"), "Trailing newline is not allowed"


class TestUniquePublicId:
    """Uniqueness callback and retry limit."""

    def test_retries_until_unique(self):
        """A colliding candidate is replaced by a new one."""
        calls = []

        def is_unique(candidate):
            calls.append(candidate)
            return len(calls) == 3

        public_id = generate_unique_public_id("group", is_unique)

        assert len(calls) == 3, "Should stop at the first free candidate"
        assert public_id == calls[-1]

    def test_raises_after_max_retries(self):
        """Every candidate colliding raises PublicIdError."""
        calls = []

        def always_taken(candidate):
            calls.append(candidate)
            return False

        with pytest.raises(PublicIdError):
            generate_unique_public_id("course", always_taken)
        assert len(calls) == MAX_RETRIES


class TestAssignedPublicIds:
    """Public IDs on stored records."""

    def test_records_get_public_ids(self, make_course, make_group, make_student, make_teacher):
        course = make_course()
        group = make_group(course_id=course["id"])
        student = make_student()
        teacher = make_teacher()

        assert validate_public_id(course["public_id"], "course")
        assert validate_public_id(group["public_id"], "group")
        assert validate_public_id(student["public_id"], "student")
        assert validate_public_id(teacher["public_id"], "teacher")

    def test_public_id_exists(self, services, make_student):
        student = make_student()
        assert services.db.public_id_exists("students", student["public_id"])
        assert not services.db.public_id_exists("students", "STU-00000000")

    def test_public_id_exists_rejects_unknown_table(self, services):
        with pytest.raises(ValueError):
            services.db.public_id_exists("payments", "STU-00000000")
