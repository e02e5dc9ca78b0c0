# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .change_feed import ChangeFeed, profile_topic, todos_topic
from .identity_service import IdentityService, normalize_auth_error
from .live_query import LiveQuery, SubscriptionClosedError
from .profile_service import ProfileService
from .todo_service import TodoService

__all__ = [
    "ChangeFeed",
    "profile_topic",
    "todos_topic",
    "IdentityService",
    "normalize_auth_error",
    "LiveQuery",
    "SubscriptionClosedError",
    "ProfileService",
    "TodoService",
]
