"""
Credential field checks.

These are expected outcomes, not failures, so they come back as
``ValidationResult`` values instead of exceptions.
"""
import re
from typing import NamedTuple

MIN_PASSWORD_LENGTH = 6

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationResult(NamedTuple):
    ok: bool
    message: str = ""


VALID = ValidationResult(True)


def validate_email(email: str) -> ValidationResult:
    if not email or not email.strip():
        return ValidationResult(False, "Email is required.")
    if not _EMAIL_PATTERN.match(email.strip()):
        return ValidationResult(False, "Email is not valid.")
    return VALID


def validate_password(password: str) -> ValidationResult:
    if not password or not password.strip():
        return ValidationResult(False, "Password is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        return ValidationResult(
            False,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
        )
    return VALID


def validate_login(email: str, password: str) -> ValidationResult:
    """Check login form fields, returning the first problem found."""
    result = validate_email(email)
    if not result.ok:
        return result
    return validate_password(password)


def validate_registration(
    email: str, password: str, confirm_password: str
) -> ValidationResult:
    """Check registration fields, including that both passwords match."""
    result = validate_login(email, password)
    if not result.ok:
        return result
    if password != confirm_password:
        return ValidationResult(False, "Passwords do not match.")
    return VALID
