# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - supabase_client.py: Typed Supabase wrapper for database and auth calls
# - validators.py: Pure input validation (emails, passwords, to-do fields, forms)
# - utils.py: Shared utilities (UUID normalization, timestamps)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import normalize_uuid, parse_timestamp, utc_now_iso
from lib.validators import FieldRule, ValidationResult, validate_form

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    # Validation
    "FieldRule",
    "ValidationResult",
    "validate_form",
    # Utils
    "normalize_uuid",
    "parse_timestamp",
    "utc_now_iso",
]
