"""Validation utilities for request payloads."""
import math
import re

from attendance_engine.utils.errors import ValidationError

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

def validate_email(email: str) -> bool:
    """Validate email format."""
    if not email:
        return False
    return bool(re.match(EMAIL_PATTERN, email))

def parse_id(value, field: str) -> int:
    """Positive integer identifier, given as an int or a digit string."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value

def parse_non_negative_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be a non-negative integer")
    return int(value)

def parse_positive_number(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return float(value)
