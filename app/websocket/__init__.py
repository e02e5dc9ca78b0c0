# =============================================================================
# app/websocket/__init__.py - WebSocket Module
# =============================================================================
# Provides the live dashboard / live profile streams and the Redis fan-out
# of change notifications between API workers.
#
# Usage:
#   # Track open live connections (from FastAPI)
#   from app.websocket import websocket_manager
#
#   await websocket_manager.connect(user_id, websocket)
#
#   # Multi-worker change notifications (CHANGE_FEED_BACKEND=redis)
#   from app.websocket.broadcast import RedisChangeFeed
#
#   feed = RedisChangeFeed.from_url(settings.REDIS_URL)
# =============================================================================

from app.websocket.manager import websocket_manager
from app.websocket.broadcast import (
    CHANGE_FEED_CHANNEL,
    RedisChangeFeed,
    apply_event,
)

__all__ = [
    "websocket_manager",
    "CHANGE_FEED_CHANNEL",
    "RedisChangeFeed",
    "apply_event",
]
