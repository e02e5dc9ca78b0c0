# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the to-do, profile and identity logic:
# - models/: Pydantic schemas for to-dos and user profiles
# - services/: Services over the Supabase client, change feed, live queries
# - dashboard.py: Per-connection dashboard view state
#
# Code in this package should NOT import from FastAPI.
# This keeps the logic testable and reusable.
# =============================================================================
