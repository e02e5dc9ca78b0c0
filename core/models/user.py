# =============================================================================
# core/models/user.py - User Profile Schemas
# =============================================================================
# One profile row per authenticated identity, keyed by the auth user id.
# Profiles are created lazily on the first successful sign-in.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from lib.utils import parse_timestamp


class AuthProvider(str, Enum):
    """How the user signed in for the first time."""
    EMAIL = "email"
    GOOGLE = "google"
    GITHUB = "github"


class UserProfile(BaseModel):
    """
    A row of the `users` table.

    Example:
        {
            "id": "660e8400-e29b-41d4-a716-446655440001",
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "photo_url": "",
            "provider": "email"
        }
    """

    id: str = Field(..., description="Auth user id")
    name: str = Field(default="", description="Display name")
    email: str | None = Field(default=None)
    photo_url: str = Field(default="", description="Avatar URL, empty if none")
    provider: AuthProvider = Field(default=AuthProvider.EMAIL)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            email=row.get("email"),
            photo_url=row.get("photo_url") or "",
            provider=row.get("provider") or AuthProvider.EMAIL,
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    name: str | None = None
    email: str | None = None
    photo_url: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UserStats(BaseModel):
    """
    Profile page counters.

    Unlike TodoStats, high_priority_todos counts completed to-dos too.
    """

    total_todos: int = Field(default=0, ge=0)
    completed_todos: int = Field(default=0, ge=0)
    pending_todos: int = Field(default=0, ge=0)
    high_priority_todos: int = Field(default=0, ge=0)
