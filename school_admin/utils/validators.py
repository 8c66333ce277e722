"""
Validation utilities
"""

import re
from datetime import datetime, date
from typing import Any, Optional

TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
URL_PATTERN = re.compile(r'^https?://[^\s/$.?#].[^\s]*$', re.IGNORECASE)
MONTH_PATTERN = re.compile(r'^(\d{4})-(\d{2})(?:-\d{2})?$')


def validate_email(email: str) -> bool:
    """
    Validate email format

    Args:
        email: Email to validate

    Returns:
        True if valid email
    """
    if not email or not isinstance(email, str):
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def validate_time(value: str) -> bool:
    """Validate a wall-clock time written as H:MM or HH:MM."""
    if not value or not isinstance(value, str):
        return False
    return bool(TIME_PATTERN.match(value.strip()))


def normalize_time(value: str) -> str:
    """Return a valid time as zero-padded HH:MM."""
    hours, minutes = value.strip().split(':')
    return f"{int(hours):02d}:{minutes}"


def validate_url(value: str) -> bool:
    """Only http and https URLs are accepted."""
    if not value or not isinstance(value, str):
        return False
    return bool(URL_PATTERN.match(value.strip()))


def parse_date(value: Any) -> Optional[date]:
    """
    Parse an ISO date (YYYY-MM-DD).

    Returns:
        date or None if the value is empty or malformed
    """
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip()[:10], '%Y-%m-%d').date()
    except ValueError:
        return None


def parse_int(value: Any, min_value: Optional[int] = None,
              max_value: Optional[int] = None) -> Optional[int]:
    """
    Parse an integer and check its bounds.

    Booleans and floats with a fractional part are rejected.

    Returns:
        int or None if the value is not an integer within bounds
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    if min_value is not None and number < min_value:
        return None
    if max_value is not None and number > max_value:
        return None
    return number


def normalize_month(value: Any) -> Optional[str]:
    """
    Normalize YYYY-MM or YYYY-MM-DD to the first day of the month.

    Returns:
        'YYYY-MM-01' or None if the value is not a month
    """
    if isinstance(value, date):
        return value.replace(day=1).isoformat()
    if not value or not isinstance(value, str):
        return None
    match = MONTH_PATTERN.match(value.strip())
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return f"{year:04d}-{month:02d}-01"


def parse_bool(value: Any) -> bool:
    """Interpret query-string style flags ('true', '1', 'on')."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ['true', '1', 'on', 'yes']
