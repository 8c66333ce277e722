"""
Public ID Module - School Administration System

Human-friendly identifiers shown to staff instead of numeric row ids,
e.g. ``STU-7KQ2M9XA``. Each entity has its own prefix and the random part
is drawn from uppercase letters and digits.
"""

import logging
import re
import secrets
import string
from typing import Callable

from school_admin.utils.exceptions import PublicIdError

CHARSET = string.ascii_uppercase + string.digits

PREFIXES = {
    'student': 'STU',
    'group': 'GRP',
    'course': 'CRS',
    'teacher': 'TCH',
}

# Table holding each entity's public_id column
ENTITY_TABLES = {
    'student': 'students',
    'group': 'groups',
    'course': 'courses',
    'teacher': 'users',
}

DEFAULT_LENGTH = 8
MIN_LENGTH = 8
MAX_LENGTH = 10
MAX_RETRIES = 5

logger = logging.getLogger(__name__)


def _prefix_for(entity: str) -> str:
    try:
        return PREFIXES[entity]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity}")


def generate_public_id(entity: str, length: int = DEFAULT_LENGTH) -> str:
    """
    Generate a random public ID for an entity.

    Args:
        entity: One of student, group, course, teacher
        length: Length of the random part, clamped to 8..10

    Returns:
        str: Identifier such as ``GRP-4H7ZQ0PB``
    """
    prefix = _prefix_for(entity)
    length = max(MIN_LENGTH, min(MAX_LENGTH, length))
    random_part = ''.join(secrets.choice(CHARSET) for _ in range(length))
    return f"{prefix}-{random_part}"


def validate_public_id(value: str, entity: str) -> bool:
    """Check that a value is a well-formed public ID for the entity."""
    if not value or not isinstance(value, str):
        return False
    prefix = _prefix_for(entity)
    return re.fullmatch(rf'{prefix}-[A-Z0-9]{{{MIN_LENGTH},{MAX_LENGTH}}}', value) is not None


def generate_unique_public_id(entity: str, is_unique: Callable[[str], bool],
                              length: int = DEFAULT_LENGTH) -> str:
    """
    Generate a public ID that passes the uniqueness check.

    Args:
        entity: Entity type
        is_unique: Callback returning True when the candidate is free
        length: Length of the random part

    Returns:
        str: Unique identifier

    Raises:
        PublicIdError: If every attempt collided
    """
    for attempt in range(1, MAX_RETRIES + 1):
        candidate = generate_public_id(entity, length)
        if is_unique(candidate):
            return candidate
        logger.warning(f"Public ID collision for {entity} (attempt {attempt}): {candidate}")

    raise PublicIdError(
        f"Failed to generate unique public ID for {entity} after {MAX_RETRIES} attempts"
    )


def new_public_id(database_manager, entity: str) -> str:
    """Generate a public ID that is unused in the entity's table."""
    table = ENTITY_TABLES[entity]
    return generate_unique_public_id(
        entity,
        lambda candidate: not database_manager.public_id_exists(table, candidate)
    )
