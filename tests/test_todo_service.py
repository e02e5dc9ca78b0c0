# =============================================================================
# tests/test_todo_service.py - To-do Service Tests
# =============================================================================
# This module contains tests for:
# - Create / get / list with ownership checks
# - Partial updates, toggle, delete, delete-completed
# - Search and stats
# - Backend failures rewrapped as BackendError
# - Live subscriptions
#
# Tests run against the in-memory Supabase client from tests/fakes.py.
# =============================================================================

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from app.exceptions import (
    BackendError,
    TodoNotFoundError,
    UnauthorizedAccessError,
    ValidationFailedError,
)
from core.models.todo import TodoCreate, TodoFilters, TodoPriority, TodoStatus, TodoUpdate
from core.services.todo_service import TODOS_TABLE
from lib.utils import utc_now


# =============================================================================
# Create / Read
# =============================================================================

class TestCreateTodo:
    """Tests for TodoService.create_todo."""

    def test_defaults_for_new_todo(self, todo_service, owner_id):
        """A new to-do is pending with an empty description."""
        todo = todo_service.create_todo({"title": "Buy milk", "priority": "medium"}, owner_id)

        assert todo.title == "Buy milk"
        assert todo.status == TodoStatus.PENDING
        assert todo.priority == TodoPriority.MEDIUM
        assert todo.description == ""
        assert todo.owner_id == owner_id

    def test_priority_defaults_to_medium(self, todo_service, owner_id):
        todo = todo_service.create_todo(TodoCreate(title="Call mum"), owner_id)

        assert todo.priority == TodoPriority.MEDIUM

    def test_trims_text_and_parses_due_date(self, todo_service, owner_id, sample_todo_data):
        sample_todo_data["title"] = "  Buy milk  "

        todo = todo_service.create_todo(sample_todo_data, owner_id)

        assert todo.title == "Buy milk"
        assert todo.description == "2 litres, semi-skimmed"
        assert todo.due_date is not None
        assert todo.due_date.year == 2030

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"title": ""}, "Invalid todo title"),
            ({"title": "x" * 201}, "Invalid todo title"),
            ({"title": "ok", "description": "x" * 1001}, "Invalid todo description"),
            ({"title": "ok", "priority": "urgent"}, "Invalid priority"),
            ({"title": "ok", "due_date": "someday"}, "Invalid due date"),
        ],
    )
    def test_invalid_input(self, todo_service, fake_client, owner_id, data, message):
        with pytest.raises(ValidationFailedError) as exc_info:
            todo_service.create_todo(data, owner_id)

        assert exc_info.value.message == message
        assert fake_client.rows(TODOS_TABLE) == []

    def test_backend_failure_is_rewrapped(self, todo_service, fake_client, owner_id):
        fake_client.fail("insert")

        with pytest.raises(BackendError) as exc_info:
            todo_service.create_todo({"title": "Buy milk"}, owner_id)

        assert exc_info.value.message == "Failed to create to-do"
        assert exc_info.value.status_code == 502


class TestGetTodo:
    """Tests for TodoService.get_todo ownership rules."""

    def test_owner_can_fetch(self, todo_service, owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        fetched = todo_service.get_todo(created.id, owner_id)

        assert fetched.id == created.id

    def test_other_user_is_unauthorized(self, todo_service, owner_id, other_owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        with pytest.raises(UnauthorizedAccessError) as exc_info:
            todo_service.get_todo(created.id, other_owner_id)

        assert exc_info.value.message == "Unauthorized access"
        assert exc_info.value.status_code == 403

    def test_missing_todo(self, todo_service, owner_id):
        with pytest.raises(TodoNotFoundError) as exc_info:
            todo_service.get_todo("does-not-exist", owner_id)

        assert exc_info.value.message == "To-do not found"

    def test_missing_todo_with_valid_id(self, todo_service, owner_id):
        with pytest.raises(TodoNotFoundError):
            todo_service.get_todo(str(uuid4()), owner_id)


class TestGetTodos:
    """Tests for TodoService.get_todos."""

    def test_newest_first_and_scoped_to_owner(self, todo_service, owner_id, other_owner_id):
        first = todo_service.create_todo({"title": "First"}, owner_id)
        second = todo_service.create_todo({"title": "Second"}, owner_id)
        todo_service.create_todo({"title": "Not mine"}, other_owner_id)

        todos = todo_service.get_todos(owner_id)

        assert [t.id for t in todos] == [second.id, first.id]

    def test_filters(self, todo_service, owner_id):
        todo_service.create_todo({"title": "Low", "priority": "low"}, owner_id)
        high = todo_service.create_todo({"title": "High", "priority": "high"}, owner_id)
        todo_service.toggle_todo_status(high.id, owner_id)

        completed = todo_service.get_todos(owner_id, TodoFilters(status=TodoStatus.COMPLETED))
        low = todo_service.get_todos(owner_id, TodoFilters(priority=TodoPriority.LOW))

        assert [t.title for t in completed] == ["High"]
        assert [t.title for t in low] == ["Low"]

    def test_backend_failure(self, todo_service, fake_client, owner_id):
        fake_client.fail("select")

        with pytest.raises(BackendError) as exc_info:
            todo_service.get_todos(owner_id)

        assert exc_info.value.message == "Failed to get to-dos"


# =============================================================================
# Update / Delete
# =============================================================================

class TestUpdateTodo:
    """Tests for TodoService.update_todo."""

    def test_partial_update(self, todo_service, owner_id, sample_todo_data):
        created = todo_service.create_todo(sample_todo_data, owner_id)

        updated = todo_service.update_todo(created.id, TodoUpdate(title="Buy oat milk"), owner_id)

        assert updated.title == "Buy oat milk"
        assert updated.description == created.description
        assert updated.priority == created.priority
        assert updated.updated_at != created.updated_at

    def test_clear_due_date(self, todo_service, owner_id, sample_todo_data):
        created = todo_service.create_todo(sample_todo_data, owner_id)

        updated = todo_service.update_todo(created.id, {"due_date": None}, owner_id)

        assert updated.due_date is None

    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"title": ""}, "Invalid todo title"),
            ({"description": "x" * 1001}, "Invalid todo description"),
            ({"status": "archived"}, "Invalid status"),
            ({"priority": "urgent"}, "Invalid priority"),
            ({"due_date": "someday"}, "Invalid due date"),
        ],
    )
    def test_invalid_fields(self, todo_service, owner_id, changes, message):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        with pytest.raises(ValidationFailedError) as exc_info:
            todo_service.update_todo(created.id, changes, owner_id)

        assert exc_info.value.message == message

    def test_ownership_checked_before_validation(self, todo_service, owner_id, other_owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        with pytest.raises(UnauthorizedAccessError):
            todo_service.update_todo(created.id, {"title": ""}, other_owner_id)

    def test_missing_todo(self, todo_service, owner_id):
        with pytest.raises(TodoNotFoundError):
            todo_service.update_todo("nope", {"title": "x"}, owner_id)


class TestToggleTodo:
    """Tests for TodoService.toggle_todo_status."""

    def test_toggle_twice_restores_status(self, todo_service, owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        once = todo_service.toggle_todo_status(created.id, owner_id)
        twice = todo_service.toggle_todo_status(created.id, owner_id)

        assert once.status == TodoStatus.COMPLETED
        assert twice.status == TodoStatus.PENDING

    def test_other_user_cannot_toggle(self, todo_service, owner_id, other_owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        with pytest.raises(UnauthorizedAccessError):
            todo_service.toggle_todo_status(created.id, other_owner_id)


class TestDeleteTodo:
    """Tests for delete_todo / delete_completed_todos."""

    def test_delete(self, todo_service, fake_client, owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        todo_service.delete_todo(created.id, owner_id)

        assert fake_client.rows(TODOS_TABLE) == []

    def test_other_user_cannot_delete(self, todo_service, fake_client, owner_id, other_owner_id):
        created = todo_service.create_todo({"title": "Buy milk"}, owner_id)

        with pytest.raises(UnauthorizedAccessError):
            todo_service.delete_todo(created.id, other_owner_id)

        assert len(fake_client.rows(TODOS_TABLE)) == 1

    def test_delete_completed_only_removes_completed(self, todo_service, owner_id, other_owner_id):
        done_a = todo_service.create_todo({"title": "A"}, owner_id)
        done_b = todo_service.create_todo({"title": "B"}, owner_id)
        todo_service.create_todo({"title": "C"}, owner_id)
        theirs = todo_service.create_todo({"title": "Theirs"}, other_owner_id)
        for todo_id in (done_a.id, done_b.id):
            todo_service.toggle_todo_status(todo_id, owner_id)
        todo_service.toggle_todo_status(theirs.id, other_owner_id)

        removed = todo_service.delete_completed_todos(owner_id)

        assert removed == 2
        remaining = todo_service.get_todos(owner_id)
        assert [t.title for t in remaining] == ["C"]
        assert all(t.status == TodoStatus.PENDING for t in remaining)
        # other users' completed to-dos are untouched
        assert len(todo_service.get_todos(other_owner_id)) == 1

    def test_delete_completed_with_nothing_to_delete(self, todo_service, owner_id):
        todo_service.create_todo({"title": "Pending"}, owner_id)

        assert todo_service.delete_completed_todos(owner_id) == 0


# =============================================================================
# Search / Stats
# =============================================================================

class TestSearchTodos:
    """Tests for TodoService.search_todos."""

    def test_matches_title_or_description_case_insensitively(self, todo_service, owner_id):
        todo_service.create_todo({"title": "Buy MILK"}, owner_id)
        todo_service.create_todo({"title": "Shopping", "description": "milk and eggs"}, owner_id)
        todo_service.create_todo({"title": "Walk the dog"}, owner_id)

        results = todo_service.search_todos(owner_id, "Milk")

        assert sorted(t.title for t in results) == ["Buy MILK", "Shopping"]

    @pytest.mark.parametrize("term", [None, "", "   "])
    def test_blank_term_returns_everything(self, todo_service, owner_id, term):
        todo_service.create_todo({"title": "One"}, owner_id)
        todo_service.create_todo({"title": "Two"}, owner_id)

        assert len(todo_service.search_todos(owner_id, term)) == 2


class TestTodoStats:
    """Tests for TodoService.get_todos_stats."""

    def test_no_todos_all_zero(self, todo_service, owner_id):
        stats = todo_service.get_todos_stats(owner_id)

        assert stats.total == 0
        assert stats.pending == 0
        assert stats.completed == 0
        assert stats.overdue == 0
        assert stats.high_priority == 0

    def test_overdue_high_priority(self, todo_service, owner_id):
        yesterday = (utc_now() - timedelta(days=1)).isoformat()
        todo_service.create_todo({"title": "Late", "priority": "high", "due_date": yesterday}, owner_id)

        stats = todo_service.get_todos_stats(owner_id)

        assert stats.total == 1
        assert stats.overdue == 1
        assert stats.high_priority == 1

    def test_backend_failure_propagates(self, todo_service, fake_client, owner_id):
        fake_client.fail("select")

        with pytest.raises(BackendError):
            todo_service.get_todos_stats(owner_id)


# =============================================================================
# Live Subscription
# =============================================================================

class TestSubscribe:
    """Tests for TodoService.subscribe."""

    def test_initial_snapshot_and_updates(self, todo_service, owner_id):
        snapshots = []
        todo_service.create_todo({"title": "Existing"}, owner_id)

        live = todo_service.subscribe(owner_id, on_snapshot=snapshots.append)
        todo_service.create_todo({"title": "New"}, owner_id)

        assert [len(s) for s in snapshots] == [1, 2]
        assert [t.title for t in live.latest] == ["New", "Existing"]
        live.cancel()

    def test_snapshot_respects_filters(self, todo_service, owner_id):
        live = todo_service.subscribe(owner_id, TodoFilters(status=TodoStatus.COMPLETED))
        todo = todo_service.create_todo({"title": "Done soon"}, owner_id)
        assert live.latest == []

        todo_service.toggle_todo_status(todo.id, owner_id)

        assert [t.title for t in live.latest] == ["Done soon"]
        live.cancel()

    def test_other_owners_changes_do_not_fire(self, todo_service, owner_id, other_owner_id):
        snapshots = []
        live = todo_service.subscribe(owner_id, on_snapshot=snapshots.append)

        todo_service.create_todo({"title": "Theirs"}, other_owner_id)

        assert len(snapshots) == 1
        live.cancel()

    def test_failed_refresh_delivers_empty_list(self, todo_service, fake_client, owner_id):
        todo_service.create_todo({"title": "Existing"}, owner_id)
        live = todo_service.subscribe(owner_id)

        fake_client.fail("select")
        live.refresh()

        assert live.latest == []
        live.cancel()

    def test_cancel_subscriptions_closes_live_queries(self, todo_service, feed, owner_id):
        live = todo_service.subscribe(owner_id)

        closed = todo_service.cancel_subscriptions(owner_id)

        assert closed == 1
        assert live.cancelled is True
        assert feed.listener_count() == 0

    def test_cancelled_query_stops_receiving(self, todo_service, owner_id):
        snapshots = []
        live = todo_service.subscribe(owner_id, on_snapshot=snapshots.append)
        live.cancel()

        todo_service.create_todo({"title": "After cancel"}, owner_id)

        assert len(snapshots) == 1
