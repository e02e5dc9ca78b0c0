# =============================================================================
# app/websocket/manager.py - WebSocket Connection Manager
# =============================================================================
# Tracks open dashboard / profile WebSockets per user.
#
# Usage:
#   from app.websocket import websocket_manager
#
#   # Connect a client
#   await websocket_manager.connect(user_id, websocket)
#
#   # Close everything on shutdown
#   await websocket_manager.close_all()
#
#   # Disconnect a client
#   websocket_manager.disconnect(user_id, websocket)
# =============================================================================

import logging
from typing import Dict, Set
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections organized by user ID.

    Each user can have multiple connected clients (e.g., multiple browser tabs).
    """

    def __init__(self):
        # user_id -> set of WebSocket connections
        self.connections: Dict[str, Set[WebSocket]] = {}
        # Track connection count for logging
        self._total_connections = 0

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        """
        Accept a new WebSocket connection and track it.

        Args:
            user_id: The signed-in user this connection belongs to
            websocket: The WebSocket connection
        """
        await websocket.accept()

        if user_id not in self.connections:
            self.connections[user_id] = set()

        self.connections[user_id].add(websocket)
        self._total_connections += 1

        logger.info(
            f"WebSocket connected for user {user_id}. "
            f"Total connections: {self._total_connections}"
        )

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        """Remove a WebSocket connection from tracking (safe to call twice)."""
        connections = self.connections.get(user_id)
        if connections is None or websocket not in connections:
            return

        connections.discard(websocket)
        self._total_connections -= 1

        # Clean up empty user entries
        if not connections:
            del self.connections[user_id]

        logger.info(
            f"WebSocket disconnected for user {user_id}. "
            f"Total connections: {self._total_connections}"
        )

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> int:
        """
        Close every tracked connection (used on shutdown).

        Returns:
            int: Number of connections closed
        """
        closed = 0

        for user_id, connections in list(self.connections.items()):
            for websocket in list(connections):
                try:
                    await websocket.close(code=code, reason=reason)
                    closed += 1
                except Exception as e:
                    logger.warning(f"Failed to close WebSocket for user {user_id}: {e}")
                self.disconnect(user_id, websocket)

        if closed:
            logger.info(f"Closed {closed} WebSocket connections")
        return closed

    def get_connection_count(self, user_id: str = None) -> int:
        """
        Get the number of active connections.

        Args:
            user_id: If provided, count for specific user. Otherwise total.
        """
        if user_id:
            return len(self.connections.get(user_id, set()))
        return self._total_connections

    def get_active_users(self) -> list[str]:
        return list(self.connections.keys())


# Global singleton instance
websocket_manager = ConnectionManager()
