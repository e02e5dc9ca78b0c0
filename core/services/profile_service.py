# =============================================================================
# core/services/profile_service.py - User Profile Business Logic
# =============================================================================
# CRUD over the single `users` row that belongs to each identity, plus the
# profile page counters and a live subscription to profile changes.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from app.exceptions import BackendError, ProfileNotFoundError
from core.models.todo import TodoPriority, TodoStatus
from core.models.user import AuthProvider, ProfileUpdate, UserProfile, UserStats
from core.services.change_feed import ChangeFeed, profile_topic
from core.services.live_query import LiveQuery
from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import normalize_uuid, utc_now_iso

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
TODOS_TABLE = "todos"


class ProfileService:
    """
    Service for user profile operations.

    Profiles are keyed by the auth user id, so there is at most one per
    identity.
    """

    def __init__(self, client: SupabaseClient, feed: ChangeFeed):
        self._client = client
        self._feed = feed

    def create_profile(
        self,
        user_id: UUID | str,
        name: str,
        email: str | None,
        provider: AuthProvider | str,
        photo_url: str | None = None,
    ) -> UserProfile:
        """
        Create (or overwrite) the profile row for `user_id`.

        Raises:
            BackendError: If the write fails
        """
        uid = str(normalize_uuid(user_id))
        row = {
            "id": uid,
            "name": name,
            "email": email,
            "photo_url": photo_url or "",
            "provider": provider.value if isinstance(provider, AuthProvider) else provider,
        }

        try:
            created = self._client.upsert(USERS_TABLE, row)
        except SupabaseClientError as e:
            logger.error(f"Failed to create profile for {uid}: {e}")
            raise BackendError("Failed to create user profile", e.message)

        logger.info(f"Created profile for user: {uid} (provider={row['provider']})")
        self._feed.notify(profile_topic(uid))
        return UserProfile.from_row(created)

    def get_profile(self, user_id: UUID | str) -> UserProfile | None:
        """
        Get a profile by user id.

        Returns:
            The profile, or None if the user has none
        """
        try:
            row = self._client.fetch_by_id(USERS_TABLE, user_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to get profile {user_id}: {e}")
            raise BackendError("Failed to get user profile", e.message)

        return UserProfile.from_row(row) if row else None

    def profile_exists(self, user_id: UUID | str) -> bool:
        return self.get_profile(user_id) is not None

    def update_profile(
        self,
        user_id: UUID | str,
        updates: ProfileUpdate | dict[str, Any],
    ) -> UserProfile:
        """
        Merge `updates` into the profile and stamp updated_at.

        Returns:
            The profile as re-read after the update

        Raises:
            ProfileNotFoundError: If the user has no profile
        """
        changes = updates.changes() if isinstance(updates, ProfileUpdate) else dict(updates)
        uid = str(normalize_uuid(user_id))

        if not self.profile_exists(uid):
            raise ProfileNotFoundError(uid)

        try:
            self._client.update(USERS_TABLE, uid, {**changes, "updated_at": utc_now_iso()})
        except SupabaseClientError as e:
            logger.error(f"Failed to update profile {uid}: {e}")
            raise BackendError("Failed to update user profile", e.message)

        logger.info(f"Updated profile for user: {uid}")
        self._feed.notify(profile_topic(uid))

        profile = self.get_profile(uid)
        if profile is None:
            raise ProfileNotFoundError(uid)
        return profile

    def delete_profile(self, user_id: UUID | str) -> None:
        uid = str(normalize_uuid(user_id))

        try:
            self._client.delete(USERS_TABLE, uid)
        except SupabaseClientError as e:
            logger.error(f"Failed to delete profile {uid}: {e}")
            raise BackendError("Failed to delete user profile", e.message)

        logger.info(f"Deleted profile for user: {uid}")
        self._feed.notify(profile_topic(uid))

    def get_user_stats(self, user_id: UUID | str) -> UserStats:
        """Count the user's to-dos for the profile page."""
        try:
            rows = self._client.select(TODOS_TABLE, filters={"owner_id": str(normalize_uuid(user_id))})
        except SupabaseClientError as e:
            logger.error(f"Failed to get user stats {user_id}: {e}")
            raise BackendError("Failed to get user statistics", e.message)

        return UserStats(
            total_todos=len(rows),
            completed_todos=sum(1 for r in rows if r.get("status") == TodoStatus.COMPLETED.value),
            pending_todos=sum(1 for r in rows if r.get("status") == TodoStatus.PENDING.value),
            high_priority_todos=sum(1 for r in rows if r.get("priority") == TodoPriority.HIGH.value),
        )

    def subscribe(
        self,
        user_id: UUID | str,
        on_snapshot: Callable[[UserProfile | None], None] | None = None,
    ) -> LiveQuery[UserProfile | None]:
        """Live profile: delivers the profile (or None once deleted) on every change."""
        uid = str(normalize_uuid(user_id))
        live = LiveQuery(
            self._feed,
            profile_topic(uid),
            fetch=lambda: self.get_profile(uid),
            fallback=lambda: None,
            on_snapshot=on_snapshot,
        )
        return live.start()

    def cancel_subscriptions(self, user_id: UUID | str) -> int:
        return self._feed.close_topic(profile_topic(normalize_uuid(user_id)))
