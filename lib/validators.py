# =============================================================================
# lib/validators.py - Input Validation
# =============================================================================
# Pure functions for checking user-entered fields before they reach a service.
# Nothing here raises or does I/O: predicates return bool, validate_form
# returns a ValidationResult with one message per failing field.
#
# Usage:
#   from lib.validators import is_valid_email, validate_form, FieldRule
#
#   result = validate_form(
#       {"email": "a@b.co", "password": "secret"},
#       {"email": FieldRule(required=True, email=True),
#        "password": FieldRule(required=True, min_length=6)},
#   )
#   if not result.is_valid:
#       print(result.errors)
# =============================================================================

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from lib.utils import parse_timestamp

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
STRONG_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")

MIN_PASSWORD_LENGTH = 6

TITLE_MIN_LENGTH = 1
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50

PRIORITIES = ("low", "medium", "high")
STATUSES = ("pending", "completed")


# =============================================================================
# Field Predicates
# =============================================================================

def is_valid_email(email: Any) -> bool:
    """Check the address has the shape local@domain.tld with no whitespace."""
    if not isinstance(email, str):
        return False
    return EMAIL_PATTERN.match(email) is not None


def is_valid_password(password: Any) -> bool:
    """At least 6 characters."""
    return isinstance(password, str) and len(password) >= MIN_PASSWORD_LENGTH


def is_strong_password(password: Any) -> bool:
    """At least 8 characters with a lowercase letter, an uppercase letter and a digit."""
    if not isinstance(password, str):
        return False
    return STRONG_PASSWORD_PATTERN.match(password) is not None


def is_required(value: Any) -> bool:
    """True when the value is present and not just whitespace."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def is_valid_length(value: Any, min_length: int, max_length: int) -> bool:
    """Length check for text. None counts as empty; any other non-string fails."""
    if value is None:
        return min_length <= 0
    if not isinstance(value, str):
        return False
    return min_length <= len(value) <= max_length


def is_valid_todo_title(title: Any) -> bool:
    return is_required(title) and is_valid_length(title, TITLE_MIN_LENGTH, TITLE_MAX_LENGTH)


def is_valid_todo_description(description: Any) -> bool:
    """
    Description is optional; when given it must fit in 1000 characters.
    """
    if not is_required(description):
        return True
    return is_valid_length(description, 0, DESCRIPTION_MAX_LENGTH)


def is_valid_name(name: Any) -> bool:
    return is_required(name) and is_valid_length(name, NAME_MIN_LENGTH, NAME_MAX_LENGTH)


def is_valid_priority(priority: Any) -> bool:
    return priority in PRIORITIES


def is_valid_status(status: Any) -> bool:
    return status in STATUSES


def is_valid_date(value: Any) -> bool:
    """
    Check a due date can be parsed.

    Empty values are valid since due dates are optional.
    """
    if value is None or value == "":
        return True
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


def sanitize_input(value: Any) -> Any:
    """HTML-escape strings so they are safe to echo back into markup."""
    if not isinstance(value, str):
        return value
    return html.escape(value, quote=False)


# =============================================================================
# Error Messages
# =============================================================================

def get_error_message(field_name: str, value: Any) -> str | None:
    """
    Get the user-facing message for a single form field.

    Returns:
        The first failing rule's message, or None if the value is valid
        (or the field has no rules)
    """
    if field_name == "email":
        if not is_required(value):
            return "Email is required"
        if not is_valid_email(value):
            return "Invalid email format"
    elif field_name == "password":
        if not is_required(value):
            return "Password is required"
        if not is_valid_password(value):
            return "Password must be at least 6 characters"
    elif field_name == "name":
        if not is_required(value):
            return "Name is required"
        if not is_valid_length(value, NAME_MIN_LENGTH, NAME_MAX_LENGTH):
            return "Name must be 2-50 characters"
    elif field_name == "title":
        if not is_required(value):
            return "Title is required"
        if not is_valid_length(value, TITLE_MIN_LENGTH, TITLE_MAX_LENGTH):
            return "Title must be 1-200 characters"
    elif field_name == "description":
        if not is_valid_todo_description(value):
            return "Description must be less than 1000 characters"
    return None


# =============================================================================
# Form Validation
# =============================================================================

@dataclass
class FieldRule:
    """
    Rules for one form field. Checked in order:
    required, email, min_length, max_length, custom.
    """

    required: bool = False
    email: bool = False
    min_length: int | None = None
    max_length: int | None = None
    custom: Callable[[Any], bool] | None = None
    message: str | None = None


@dataclass
class ValidationResult:
    """Outcome of validate_form: overall flag plus field -> message."""

    is_valid: bool
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def first_error(self) -> str | None:
        return next(iter(self.errors.values()), None)


def validate_form(data: dict[str, Any], rules: dict[str, FieldRule]) -> ValidationResult:
    """
    Validate a form in a single pass.

    Only the first failing rule of each field is reported. Fields that are
    not required and left empty skip the remaining rules.

    Args:
        data: Submitted field values
        rules: Field name -> FieldRule

    Returns:
        ValidationResult with is_valid and per-field error messages

    Example:
        result = validate_form({"title": ""}, {"title": FieldRule(required=True)})
        result.errors  # {"title": "title is required"}
    """
    errors: dict[str, str] = {}

    for field_name, rule in rules.items():
        value = data.get(field_name)

        if rule.required and not is_required(value):
            errors[field_name] = f"{field_name} is required"
        elif not is_required(value) and not rule.required:
            continue
        elif rule.email and not is_valid_email(value):
            errors[field_name] = "Invalid email format"
        elif rule.min_length is not None and not is_valid_length(value, rule.min_length, float("inf")):
            errors[field_name] = f"Minimum length is {rule.min_length}"
        elif rule.max_length is not None and not is_valid_length(value, 0, rule.max_length):
            errors[field_name] = f"Maximum length is {rule.max_length}"
        elif rule.custom is not None and not rule.custom(value):
            errors[field_name] = rule.message or "Invalid value"

    return ValidationResult(is_valid=not errors, errors=errors)
