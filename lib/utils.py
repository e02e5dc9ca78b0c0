# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

_datetime_adapter = TypeAdapter(datetime)


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: Any) -> Any:
    """
    Normalize a UUID to string format.

    Handles both string and UUID objects, ensuring consistent string output.
    Other values are returned unchanged.

    Example:
        owner_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        owner_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


def is_valid_uuid(value: Any) -> bool:
    """True if value is a UUID or a string that parses as one."""
    if isinstance(value, UUID):
        return True
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


# =============================================================================
# Time Utilities
# =============================================================================

def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current time in ISO-8601, the format Postgres timestamptz accepts."""
    return utc_now().isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a timestamp coming from the database or a form.

    Accepts datetime objects, ISO-8601 strings and unix timestamps.
    Naive values are treated as UTC.

    Returns:
        Aware datetime, or None for empty input

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None or value == "":
        return None

    try:
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError as e:
        raise ValueError(f"Unparseable timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
