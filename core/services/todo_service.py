# =============================================================================
# core/services/todo_service.py - To-do Business Logic
# =============================================================================
# Handles to-do CRUD, search, statistics and live subscriptions.
# Every operation is scoped by the owner id of the authenticated caller and
# ownership is checked explicitly here (the service key bypasses RLS).
#
# Errors:
#   ValidationFailedError   - input failed a field rule
#   TodoNotFoundError       - no to-do with that id
#   UnauthorizedAccessError - the to-do belongs to someone else
#   BackendError            - the database call failed (single message)
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from app.exceptions import (
    BackendError,
    TodoNotFoundError,
    UnauthorizedAccessError,
    ValidationFailedError,
)
from core.models.todo import (
    Todo,
    TodoCreate,
    TodoFilters,
    TodoPriority,
    TodoStats,
    TodoStatus,
    TodoUpdate,
)
from core.services.change_feed import ChangeFeed, todos_topic
from core.services.live_query import LiveQuery
from lib import validators
from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import is_valid_uuid, normalize_uuid, parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

TODOS_TABLE = "todos"


class TodoService:
    """
    Service for to-do operations.

    Provides a clean interface between API routes and the database.
    Writes notify the owner's change-feed topic so live queries refresh.
    """

    def __init__(self, client: SupabaseClient, feed: ChangeFeed):
        self._client = client
        self._feed = feed

    # -------------------------------------------------------------------------
    # Create / Read
    # -------------------------------------------------------------------------

    def create_todo(self, data: TodoCreate | dict[str, Any], owner_id: UUID | str) -> Todo:
        """
        Create a new to-do for `owner_id`.

        New to-dos are always pending; priority defaults to medium and the
        description to an empty string. Title and description are trimmed.

        Raises:
            ValidationFailedError: If a field fails its rule
            BackendError: If the insert fails
        """
        if isinstance(data, dict):
            data = TodoCreate(**data)

        if not validators.is_valid_todo_title(data.title):
            raise ValidationFailedError("Invalid todo title", {"title": "Title must be 1-200 characters"})
        if not validators.is_valid_todo_description(data.description):
            raise ValidationFailedError(
                "Invalid todo description",
                {"description": "Description must be less than 1000 characters"},
            )

        priority = data.priority or TodoPriority.MEDIUM.value
        if not validators.is_valid_priority(priority):
            raise ValidationFailedError("Invalid priority", {"priority": "Priority must be low, medium or high"})
        if not validators.is_valid_date(data.due_date):
            raise ValidationFailedError("Invalid due date", {"due_date": "Due date is not a valid date"})

        due_date = parse_timestamp(data.due_date)
        owner = str(normalize_uuid(owner_id))

        row = {
            "title": data.title.strip(),
            "description": data.description.strip() if data.description else "",
            "status": TodoStatus.PENDING.value,
            "priority": priority,
            "due_date": due_date.isoformat() if due_date else None,
            "owner_id": owner,
        }

        try:
            created = self._client.insert(TODOS_TABLE, row)
        except SupabaseClientError as e:
            logger.error(f"Failed to create todo: {e}")
            raise BackendError("Failed to create to-do", e.message)

        todo = Todo.from_row(created)
        logger.info(f"Created todo: {todo.id} for user: {owner}")
        self._feed.notify(todos_topic(owner))
        return todo

    def get_todo(self, todo_id: str | UUID, owner_id: UUID | str) -> Todo:
        """
        Get a to-do by ID, verifying the caller owns it.

        Raises:
            TodoNotFoundError: If the to-do doesn't exist
            UnauthorizedAccessError: If it belongs to someone else
        """
        row = self._fetch_owned_row(todo_id, owner_id)
        return Todo.from_row(row)

    def get_todos(
        self,
        owner_id: UUID | str,
        filters: TodoFilters | None = None,
    ) -> list[Todo]:
        """
        List the owner's to-dos, newest first.

        Args:
            owner_id: Owner of the to-dos
            filters: Optional status/priority equality filters

        Raises:
            BackendError: If the query fails
        """
        query = {"owner_id": str(normalize_uuid(owner_id))}
        if filters is not None:
            query.update(filters.as_query())

        try:
            rows = self._client.select(TODOS_TABLE, filters=query, order_by="created_at", desc=True)
        except SupabaseClientError as e:
            logger.error(f"Failed to get todos: {e}")
            raise BackendError("Failed to get to-dos", e.message)

        return [Todo.from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Update / Delete
    # -------------------------------------------------------------------------

    def update_todo(
        self,
        todo_id: str | UUID,
        updates: TodoUpdate | dict[str, Any],
        owner_id: UUID | str,
    ) -> Todo:
        """
        Apply a partial update.

        Only fields present in `updates` are written. A `due_date` of None
        clears the due date. `updated_at` is always stamped.

        Returns:
            The to-do as re-read after the update

        Raises:
            TodoNotFoundError / UnauthorizedAccessError: As for get_todo
            ValidationFailedError: If a provided field is invalid
        """
        if isinstance(updates, TodoUpdate):
            changes = updates.changes()
        else:
            changes = dict(updates)

        self._fetch_owned_row(todo_id, owner_id)
        update_data = self._build_update(changes)

        try:
            self._client.update(TODOS_TABLE, todo_id, update_data)
        except SupabaseClientError as e:
            logger.error(f"Failed to update todo {todo_id}: {e}")
            raise BackendError("Failed to update to-do", e.message)

        logger.info(f"Updated todo: {todo_id} fields={sorted(k for k in update_data if k != 'updated_at')}")
        self._feed.notify(todos_topic(normalize_uuid(owner_id)))
        return self.get_todo(todo_id, owner_id)

    def toggle_todo_status(self, todo_id: str | UUID, owner_id: UUID | str) -> Todo:
        """Flip pending <-> completed (read, flip, write)."""
        todo = self.get_todo(todo_id, owner_id)
        new_status = TodoStatus.COMPLETED if todo.status == TodoStatus.PENDING else TodoStatus.PENDING
        return self.update_todo(todo_id, {"status": new_status.value}, owner_id)

    def delete_todo(self, todo_id: str | UUID, owner_id: UUID | str) -> None:
        """
        Delete a to-do the caller owns.

        Raises:
            TodoNotFoundError / UnauthorizedAccessError: As for get_todo
        """
        self._fetch_owned_row(todo_id, owner_id)

        try:
            self._client.delete(TODOS_TABLE, todo_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to delete todo {todo_id}: {e}")
            raise BackendError("Failed to delete to-do", e.message)

        logger.info(f"Deleted todo: {todo_id}")
        self._feed.notify(todos_topic(normalize_uuid(owner_id)))

    def delete_completed_todos(self, owner_id: UUID | str) -> int:
        """
        Delete all of the owner's completed to-dos in one batch.

        Returns:
            Number of to-dos removed
        """
        owner = str(normalize_uuid(owner_id))

        try:
            removed = self._client.delete_where(
                TODOS_TABLE,
                {"owner_id": owner, "status": TodoStatus.COMPLETED.value},
            )
        except SupabaseClientError as e:
            logger.error(f"Failed to delete completed todos: {e}")
            raise BackendError("Failed to delete completed to-dos", e.message)

        logger.info(f"Deleted {removed} completed todos for user: {owner}")
        if removed:
            self._feed.notify(todos_topic(owner))
        return removed

    # -------------------------------------------------------------------------
    # Search / Stats
    # -------------------------------------------------------------------------

    def search_todos(self, owner_id: UUID | str, search_term: str | None) -> list[Todo]:
        """
        Case-insensitive substring search over title and description.

        Fetches the owner's full list and filters it here; a blank term
        returns everything.
        """
        todos = self.get_todos(owner_id)

        if not search_term or not search_term.strip():
            return todos

        return [todo for todo in todos if todo.matches(search_term)]

    def get_todos_stats(self, owner_id: UUID | str) -> TodoStats:
        """Re-fetch the owner's to-dos and count them by status, priority and overdue."""
        return TodoStats.from_todos(self.get_todos(owner_id))

    # -------------------------------------------------------------------------
    # Live Subscription
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        owner_id: UUID | str,
        filters: TodoFilters | None = None,
        on_snapshot: Callable[[list[Todo]], None] | None = None,
    ) -> LiveQuery[list[Todo]]:
        """
        Subscribe to the owner's to-dos.

        The returned LiveQuery yields the full filtered list immediately and
        again after every change. If a refresh fails an empty list is
        delivered. Call `.cancel()` to stop.

        Example:
            with service.subscribe(user.id) as live:
                for todos in live:
                    render(todos)
        """
        owner = str(normalize_uuid(owner_id))
        live = LiveQuery(
            self._feed,
            todos_topic(owner),
            fetch=lambda: self.get_todos(owner, filters),
            fallback=list,
            on_snapshot=on_snapshot,
        )
        return live.start()

    def cancel_subscriptions(self, owner_id: UUID | str) -> int:
        """Cancel every live query on the owner's to-dos (used on sign-out)."""
        return self._feed.close_topic(todos_topic(normalize_uuid(owner_id)))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _fetch_owned_row(self, todo_id: str | UUID, owner_id: UUID | str) -> dict[str, Any]:
        # Postgres rejects a malformed uuid with a cast error, not "no rows"
        if not is_valid_uuid(todo_id):
            raise TodoNotFoundError(str(todo_id))

        try:
            row = self._client.fetch_by_id(TODOS_TABLE, todo_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to get todo {todo_id}: {e}")
            raise BackendError("Failed to get to-do", e.message)

        if not row:
            raise TodoNotFoundError(str(todo_id))

        if str(row.get("owner_id")) != str(normalize_uuid(owner_id)):
            logger.warning(f"User {owner_id} tried to access todo {todo_id} owned by {row.get('owner_id')}")
            raise UnauthorizedAccessError(str(todo_id))

        return row

    @staticmethod
    def _build_update(changes: dict[str, Any]) -> dict[str, Any]:
        """Validate provided fields and map them to column values."""
        if "title" in changes and not validators.is_valid_todo_title(changes["title"]):
            raise ValidationFailedError("Invalid todo title", {"title": "Title must be 1-200 characters"})
        if "description" in changes and not validators.is_valid_todo_description(changes["description"]):
            raise ValidationFailedError(
                "Invalid todo description",
                {"description": "Description must be less than 1000 characters"},
            )
        if changes.get("status") is not None and not validators.is_valid_status(_enum_value(changes["status"])):
            raise ValidationFailedError("Invalid status", {"status": "Status must be pending or completed"})
        if changes.get("priority") is not None and not validators.is_valid_priority(_enum_value(changes["priority"])):
            raise ValidationFailedError("Invalid priority", {"priority": "Priority must be low, medium or high"})
        if "due_date" in changes and not validators.is_valid_date(changes["due_date"]):
            raise ValidationFailedError("Invalid due date", {"due_date": "Due date is not a valid date"})

        update_data: dict[str, Any] = {"updated_at": utc_now_iso()}

        if changes.get("title") is not None:
            update_data["title"] = changes["title"].strip()
        if "description" in changes:
            update_data["description"] = (changes["description"] or "").strip()
        if changes.get("status") is not None:
            update_data["status"] = _enum_value(changes["status"])
        if changes.get("priority") is not None:
            update_data["priority"] = _enum_value(changes["priority"])
        if "due_date" in changes:
            due_date = parse_timestamp(changes["due_date"])
            update_data["due_date"] = due_date.isoformat() if due_date else None

        return update_data


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, (TodoStatus, TodoPriority)) else value
