# =============================================================================
# app/websocket/routes.py - WebSocket Routes
# =============================================================================
# Live dashboard and live profile.
#
# Connect: ws://host/ws/todos?token={jwt}
#          ws://host/ws/profile?token={jwt}
#
# Server events:
#   - {"type": "todos_snapshot", "todos": [...], "stats": {...}, ...}
#   - {"type": "profile_snapshot", "profile": {...} | null}
#   - {"type": "error", "detail": "..."}
#
# Client messages (dashboard only, see core/dashboard.py):
#   - {"type": "filter", "value": "all" | "pending" | "completed"}
#   - {"type": "search", "value": "..."}
#   - {"type": "edit", "value": "<todo id>"} / {"type": "close_edit"}
#   - "ping" -> "pong"
#
# Every snapshot is the full visible list, never a delta. Signing out
# cancels the live query and the server closes the socket (code 4401).
# =============================================================================

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from app.auth.dependencies import decode_access_token
from app.auth.models import AuthUser
from app.context import AppContext
from app.dependencies import get_context
from app.websocket.manager import websocket_manager
from core.dashboard import DashboardState
from core.services.live_query import LiveQuery

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_INVALID_TOKEN = 4001
CLOSE_SIGNED_OUT = 4401


async def _authenticate(websocket: WebSocket, token: str) -> AuthUser | None:
    try:
        return decode_access_token(token)
    except HTTPException as e:
        logger.warning(f"WebSocket auth failed: {e.detail}")
        await websocket.close(code=CLOSE_INVALID_TOKEN, reason="Invalid token")
        return None


async def _pump(websocket: WebSocket, live: LiveQuery, render) -> None:
    """Send a rendered message for every snapshot; close the socket when the query is cancelled."""
    try:
        async for snapshot in live:
            await websocket.send_json(render(snapshot))
    except Exception as e:
        logger.warning(f"WebSocket send failed on {live.topic}: {e}")
        return

    # cancelled from outside (sign-out / account deletion)
    if websocket.client_state == WebSocketState.CONNECTED:
        try:
            await websocket.close(code=CLOSE_SIGNED_OUT, reason="Signed out")
        except RuntimeError as e:
            logger.debug(f"WebSocket already closed on {live.topic}: {e}")


@router.websocket("/ws/todos")
async def todos_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT token for authentication"),
    ctx: AppContext = Depends(get_context),
):
    """
    Live dashboard for the signed-in user.

    Sends the full (filtered, searched) to-do list plus stats on connect,
    after every change to the user's to-dos, and after every client message.
    """
    user = await _authenticate(websocket, token)
    if user is None:
        return

    owner = str(user.id)
    await websocket_manager.connect(owner, websocket)

    state = DashboardState(user=user)
    live = await asyncio.to_thread(ctx.todos.subscribe, owner)

    def render(todos):
        state.set_snapshot(todos)
        return state.render()

    pump = asyncio.create_task(_pump(websocket, live, render))

    try:
        while True:
            data = await websocket.receive_text()

            # Handle ping/pong for keepalive
            if data == "ping":
                await websocket.send_text("pong")
                continue

            try:
                state.apply_message(json.loads(data))
            except ValueError as e:
                await websocket.send_json({"type": "error", "detail": str(e)})
                continue

            await websocket.send_json(state.render())

    except WebSocketDisconnect:
        logger.info(f"Dashboard WebSocket disconnected for user {owner}")
    finally:
        live.cancel()
        await pump
        websocket_manager.disconnect(owner, websocket)


@router.websocket("/ws/profile")
async def profile_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT token for authentication"),
    ctx: AppContext = Depends(get_context),
):
    """Live profile: the profile record on connect and after every change (null once deleted)."""
    user = await _authenticate(websocket, token)
    if user is None:
        return

    uid = str(user.id)
    await websocket_manager.connect(uid, websocket)

    live = await asyncio.to_thread(ctx.profiles.subscribe, uid)

    def render(profile):
        return {
            "type": "profile_snapshot",
            "profile": profile.model_dump(mode="json") if profile else None,
        }

    pump = asyncio.create_task(_pump(websocket, live, render))

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
            else:
                logger.debug(f"Profile WebSocket ignored message: {data[:100]}")

    except WebSocketDisconnect:
        logger.info(f"Profile WebSocket disconnected for user {uid}")
    finally:
        live.cancel()
        await pump
        websocket_manager.disconnect(uid, websocket)


@router.get("/ws/status")
async def websocket_status():
    """
    Get WebSocket connection statistics.

    Returns:
        dict: Connection counts and users with open connections
    """
    return {
        "total_connections": websocket_manager.get_connection_count(),
        "active_users": websocket_manager.get_active_users(),
        "user_count": len(websocket_manager.get_active_users())
    }
