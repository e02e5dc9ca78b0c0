# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - todos.py: Dashboard to-do endpoints
# - profile.py: Profile record and profile page counters
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import todos
from . import profile

__all__ = [
    "health",
    "todos",
    "profile",
]
