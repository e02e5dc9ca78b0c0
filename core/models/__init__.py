# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - todo.py: To-do CRUD, filter and statistics schemas
# - user.py: User profile schemas
#
# These models define the "contract" between API and clients.
# =============================================================================

# -----------------------------------------------------------------------------
# To-do Models
# -----------------------------------------------------------------------------
from .todo import (
    Todo,
    TodoCreate,
    TodoFilters,
    TodoPriority,
    TodoStats,
    TodoStatus,
    TodoUpdate,
)

# -----------------------------------------------------------------------------
# User Models
# -----------------------------------------------------------------------------
from .user import (
    AuthProvider,
    ProfileUpdate,
    UserProfile,
    UserStats,
)

__all__ = [
    # To-do
    "Todo",
    "TodoCreate",
    "TodoFilters",
    "TodoPriority",
    "TodoStats",
    "TodoStatus",
    "TodoUpdate",
    # User
    "AuthProvider",
    "ProfileUpdate",
    "UserProfile",
    "UserStats",
]
