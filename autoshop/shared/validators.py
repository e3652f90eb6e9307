"""Shared validation utilities"""

import re
from typing import Optional

from ..exceptions import InputValidationError

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        InputValidationError: If phone number is invalid
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    if len(digits) != 10:
        raise InputValidationError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        InputValidationError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    if not re.match(EMAIL_PATTERN, email):
        raise InputValidationError("Invalid email format")

    return email


def validate_scheduled_time(value: str) -> str:
    """HH:MM, 24-hour clock"""
    if not value or not re.match(TIME_PATTERN, value):
        raise InputValidationError(f"Invalid scheduled time: {value!r} (expected HH:MM)")
    return value
