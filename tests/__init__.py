# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the TaskBoard API:
# - test_validators.py / test_models.py: Pure validation and model tests
# - test_todo_service.py, test_profile_service.py, test_identity_service.py:
#   Services against the in-memory Supabase client (fakes.py)
# - test_change_feed.py / test_broadcast.py: Live queries and Redis fan-out
# - test_dashboard.py: Dashboard view state
# - test_api.py / test_websocket.py: Routes through FastAPI's TestClient
#
# Run tests with: pytest
# =============================================================================
