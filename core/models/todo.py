# =============================================================================
# core/models/todo.py - To-do Schemas
# =============================================================================
# These models define the contract for to-do operations:
# - TodoStatus / TodoPriority: Enums for the two constrained fields
# - TodoCreate / TodoUpdate: Input for creating and editing a to-do
# - Todo: A stored to-do as returned to clients
# - TodoFilters: Optional equality filters for list/subscribe
# - TodoStats: Dashboard counters
#
# A to-do belongs to exactly one owner (the authenticated user id).
# Input models are deliberately loose (plain strings): field rules live in
# lib/validators.py so the service can report the same messages everywhere.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from lib.utils import parse_timestamp, utc_now


class TodoStatus(str, Enum):
    """
    Possible states for a to-do.

    Flow: pending <-> completed (toggle)
    """
    PENDING = "pending"
    COMPLETED = "completed"


class TodoPriority(str, Enum):
    """Priority levels. New to-dos default to medium."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TodoCreate(BaseModel):
    """
    Schema for creating a new to-do.

    Example:
        {
            "title": "Buy milk",
            "description": "2 litres",
            "priority": "high",
            "due_date": "2024-01-15T18:00:00Z"
        }
    """

    title: str = Field(
        default="",
        description="Short title (1-200 characters)"
    )

    description: str | None = Field(
        default=None,
        description="Optional longer description (up to 1000 characters)"
    )

    priority: str | None = Field(
        default=None,
        description="low, medium or high (defaults to medium)"
    )

    due_date: datetime | str | None = Field(
        default=None,
        description="Optional due date/time"
    )


class TodoUpdate(BaseModel):
    """
    Schema for a partial update.

    Only fields that were actually sent are applied; sending
    "due_date": null clears the due date.
    """

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    due_date: datetime | str | None = None

    def changes(self) -> dict[str, Any]:
        """The explicitly provided fields."""
        return self.model_dump(exclude_unset=True)


class Todo(BaseModel):
    """
    A stored to-do.

    Example:
        {
            "id": "550e8400-e29b-41d4-a716-446655440000",
            "title": "Buy milk",
            "description": "",
            "status": "pending",
            "priority": "medium",
            "due_date": null,
            "owner_id": "660e8400-e29b-41d4-a716-446655440001",
            "created_at": "2024-01-15T10:30:00Z",
            "updated_at": "2024-01-15T10:30:00Z"
        }
    """

    # Store-assigned identifier (opaque to clients)
    id: str = Field(..., description="Unique to-do identifier")

    title: str = Field(..., description="To-do title")

    description: str = Field(default="", description="To-do description")

    status: TodoStatus = Field(default=TodoStatus.PENDING)

    priority: TodoPriority = Field(default=TodoPriority.MEDIUM)

    due_date: datetime | None = Field(default=None, description="When the to-do is due")

    # The user this to-do belongs to
    owner_id: str = Field(..., description="Owner's user id")

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Todo":
        """Build from a `todos` table row."""
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=row.get("description") or "",
            status=row.get("status") or TodoStatus.PENDING,
            priority=row.get("priority") or TodoPriority.MEDIUM,
            due_date=parse_timestamp(row.get("due_date")),
            owner_id=str(row.get("owner_id")),
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == TodoStatus.COMPLETED

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Pending and past its due date."""
        if self.status != TodoStatus.PENDING or self.due_date is None:
            return False
        return self.due_date < (now or utc_now())

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on title or description."""
        needle = term.lower()
        return needle in self.title.lower() or needle in (self.description or "").lower()


class TodoFilters(BaseModel):
    """Optional equality filters applied by the database query."""

    status: TodoStatus | None = None
    priority: TodoPriority | None = None

    def as_query(self) -> dict[str, str]:
        query = {}
        if self.status is not None:
            query["status"] = self.status.value
        if self.priority is not None:
            query["priority"] = self.priority.value
        return query


class TodoStats(BaseModel):
    """
    Dashboard counters for one owner.

    Priority counters only include pending to-dos.
    """

    total: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    overdue: int = Field(default=0, ge=0)
    high_priority: int = Field(default=0, ge=0)
    medium_priority: int = Field(default=0, ge=0)
    low_priority: int = Field(default=0, ge=0)

    @classmethod
    def from_todos(cls, todos: list[Todo], now: datetime | None = None) -> "TodoStats":
        now = now or utc_now()
        pending = [t for t in todos if t.status == TodoStatus.PENDING]
        return cls(
            total=len(todos),
            pending=len(pending),
            completed=sum(1 for t in todos if t.status == TodoStatus.COMPLETED),
            overdue=sum(1 for t in todos if t.is_overdue(now)),
            high_priority=sum(1 for t in pending if t.priority == TodoPriority.HIGH),
            medium_priority=sum(1 for t in pending if t.priority == TodoPriority.MEDIUM),
            low_priority=sum(1 for t in pending if t.priority == TodoPriority.LOW),
        )
