# =============================================================================
# core/dashboard.py - Dashboard View State
# =============================================================================
# Per-connection state of the live dashboard:
#   - who is signed in
#   - the last to-do snapshot received from the live query
#   - the active status filter ("all", "pending", "completed")
#   - the active search term
#   - the id of the to-do open in the editor (if any)
#
# Filtering and search are applied here, on the last-known snapshot, so
# changing them never hits the database.
#
# Client messages (JSON over the websocket):
#   {"type": "filter", "value": "pending"}
#   {"type": "search", "value": "milk"}
#   {"type": "edit", "value": "<todo id>"}     open the editor
#   {"type": "close_edit"}                      close it
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from app.auth.models import AuthUser
from core.models.todo import Todo, TodoStats, TodoStatus

logger = logging.getLogger(__name__)

FILTERS = ("all", TodoStatus.PENDING.value, TodoStatus.COMPLETED.value)

AVATAR_FALLBACK_URL = "https://ui-avatars.com/api/?name={name}&background=6366f1&color=fff"


class ClientMessage(BaseModel):
    """A message sent by the dashboard client."""
    type: str
    value: str | None = None


class DashboardState(BaseModel):
    """View state of one open dashboard."""

    user: AuthUser
    todos: list[Todo] = Field(default_factory=list)
    active_filter: str = "all"
    search_term: str = ""
    editing_todo_id: str | None = None

    # -------------------------------------------------------------------------
    # User
    # -------------------------------------------------------------------------

    @property
    def display_name(self) -> str:
        return self.user.fallback_name

    @property
    def avatar_url(self) -> str:
        if self.user.photo_url:
            return self.user.photo_url
        return AVATAR_FALLBACK_URL.format(name=quote(self.display_name))

    # -------------------------------------------------------------------------
    # State changes
    # -------------------------------------------------------------------------

    def set_snapshot(self, todos: list[Todo]) -> None:
        """Replace the last-known list; closes the editor if its to-do is gone."""
        self.todos = list(todos)
        if self.editing_todo_id and self.editing_todo is None:
            self.editing_todo_id = None

    def set_filter(self, value: str | None) -> None:
        if value not in FILTERS:
            raise ValueError(f"Unknown filter: {value!r}")
        self.active_filter = value

    def set_search(self, value: str | None) -> None:
        self.search_term = (value or "").strip().lower()

    def start_edit(self, todo_id: str | None) -> Todo | None:
        """Open the editor on a to-do from the current list (no-op if absent)."""
        todo = next((t for t in self.todos if t.id == todo_id), None)
        self.editing_todo_id = todo.id if todo else None
        return todo

    def close_edit(self) -> None:
        self.editing_todo_id = None

    @property
    def editing_todo(self) -> Todo | None:
        if self.editing_todo_id is None:
            return None
        return next((t for t in self.todos if t.id == self.editing_todo_id), None)

    def apply_message(self, message: dict[str, Any]) -> None:
        """
        Apply a client message.

        Raises:
            ValueError: Unknown message type or filter value
        """
        msg = ClientMessage.model_validate(message)

        if msg.type == "filter":
            self.set_filter(msg.value)
        elif msg.type == "search":
            self.set_search(msg.value)
        elif msg.type == "edit":
            self.start_edit(msg.value)
        elif msg.type == "close_edit":
            self.close_edit()
        else:
            raise ValueError(f"Unknown message type: {msg.type!r}")

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def visible_todos(self) -> list[Todo]:
        """Last-known list with the status filter, then the search term, applied."""
        todos = self.todos

        if self.active_filter != "all":
            todos = [t for t in todos if t.status.value == self.active_filter]

        if self.search_term:
            todos = [t for t in todos if t.matches(self.search_term)]

        return todos

    def render(self, stats: TodoStats | None = None) -> dict[str, Any]:
        """
        Build the snapshot message sent to the client.

        `stats` defaults to counts over the last-known list.
        """
        visible = self.visible_todos()
        editing = self.editing_todo

        return {
            "type": "todos_snapshot",
            "user": {"name": self.display_name, "photo_url": self.avatar_url},
            "filter": self.active_filter,
            "search": self.search_term,
            "todos": [t.model_dump(mode="json") for t in visible],
            "empty": not visible,
            "editing": editing.model_dump(mode="json") if editing else None,
            "stats": (stats or TodoStats.from_todos(self.todos)).model_dump(),
        }
