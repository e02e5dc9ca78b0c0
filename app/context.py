# =============================================================================
# app/context.py - Application Context (Composition Root)
# =============================================================================
# Builds the Supabase client, the change feed and the services once, at
# startup, and hands them to routes through FastAPI dependencies.
#
# Usage:
#   ctx = AppContext.build(settings)
#   ctx.todos.create_todo({"title": "Buy milk"}, user.id)
#
# Tests build one around an in-memory client:
#   ctx = AppContext.build(settings, client=FakeSupabaseClient())
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.auth.models import AuthUser
from app.config import Settings
from core.services.change_feed import ChangeFeed
from core.services.identity_service import IdentityService
from core.services.profile_service import ProfileService
from core.services.todo_service import TodoService
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a request needs, created once per process."""

    settings: Settings
    client: SupabaseClient
    feed: ChangeFeed
    todos: TodoService
    profiles: ProfileService
    identity: IdentityService

    @classmethod
    def build(
        cls,
        settings: Settings,
        client: SupabaseClient | None = None,
        feed: ChangeFeed | None = None,
    ) -> "AppContext":
        """
        Wire the services together.

        Args:
            settings: Application settings
            client: Supabase client (defaults to one built from settings)
            feed: Change feed (defaults to CHANGE_FEED_BACKEND)
        """
        if client is None:
            client = SupabaseClient.from_settings(settings)
        if feed is None:
            feed = build_change_feed(settings)

        profiles = ProfileService(client, feed)
        ctx = cls(
            settings=settings,
            client=client,
            feed=feed,
            todos=TodoService(client, feed),
            profiles=profiles,
            identity=IdentityService(
                client,
                profiles,
                settings.AUTH_REDIRECT_URL,
                recent_login_max_age=settings.RECENT_LOGIN_MAX_AGE_SECONDS,
            ),
        )

        ctx.identity.on_auth_state_changed(log_auth_state)

        logger.info(f"Application context ready (change feed: {type(feed).__name__})")
        return ctx


def log_auth_state(user: AuthUser | None) -> None:
    """Audit log of sign-ins and sign-outs."""
    if user is None:
        logger.info("Auth state changed: signed out")
    else:
        logger.info(f"Auth state changed: signed in as {user.id}")


def build_change_feed(settings: Settings) -> ChangeFeed:
    """In-process feed, or the Redis fan-out variant for multi-worker deployments."""
    if settings.CHANGE_FEED_BACKEND == "redis":
        from app.websocket.broadcast import RedisChangeFeed

        return RedisChangeFeed.from_url(settings.REDIS_URL)
    return ChangeFeed()
