"""
Input validation for registration and password changes.

Each check raises ``auth.exceptions.ValidationError`` naming the rule it
enforces; callers surface ``rule`` to whoever has to fix the input.
"""

import re

from auth.exceptions import ValidationError
from auth.types import RegisterRequest

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIN_PATTERN = re.compile(r"^\d{9,10}$")
SPECIAL_CHARACTERS = set("!@#$%^&*()_+-=[]{};':\"\\|,.<>/?")

PASSWORD_STRENGTH_MESSAGE = (
    "Password is not strong enough. It should have at least {min_length} characters, "
    "including uppercase, lowercase, number, and special character."
)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def is_password_strong(password: str, min_length: int = 8) -> bool:
    """At least min_length chars with upper, lower, digit and special."""
    if len(password) < min_length:
        return False
    has_upper = any(c.isascii() and c.isupper() for c in password)
    has_lower = any(c.isascii() and c.islower() for c in password)
    has_digit = any(c in "0123456789" for c in password)
    has_special = any(c in SPECIAL_CHARACTERS for c in password)
    return has_upper and has_lower and has_digit and has_special


def is_valid_tin(tin: str) -> bool:
    """Tax identification number: 9 or 10 digits."""
    return bool(TIN_PATTERN.match(tin))


def validate_new_password(password: str, confirm_password: str, min_length: int = 8) -> None:
    """
    Check a password that is about to be stored.

    Raises:
        ValidationError: rule "password_mismatch" or "password_strength".
    """
    if password != confirm_password:
        raise ValidationError("password_mismatch", "Passwords do not match")
    if not is_password_strong(password, min_length):
        raise ValidationError(
            "password_strength",
            PASSWORD_STRENGTH_MESSAGE.format(min_length=min_length),
        )


def validate_registration(payload: RegisterRequest, min_length: int = 8) -> None:
    """
    Validate a registration payload, first failing rule wins.

    Raises:
        ValidationError: rule is one of "required_fields", "email_format",
            "password_strength", "password_mismatch", "tin_format".
    """
    if not payload.email or not payload.password or not payload.confirm_password:
        raise ValidationError("required_fields", "Missing required fields")

    if not is_valid_email(payload.email.strip()):
        raise ValidationError("email_format", "Invalid email format")

    if not is_password_strong(payload.password, min_length):
        raise ValidationError(
            "password_strength",
            PASSWORD_STRENGTH_MESSAGE.format(min_length=min_length),
        )

    if payload.password != payload.confirm_password:
        raise ValidationError("password_mismatch", "Passwords do not match")

    if payload.tin_number and not is_valid_tin(payload.tin_number):
        raise ValidationError("tin_format", "Invalid tax identification number format")
