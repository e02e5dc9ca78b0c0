# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - In-memory Supabase client and services wired like the real app
# - Signed test tokens for the API and WebSocket tests
# =============================================================================

import os
import time
from uuid import uuid4

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
os.environ.setdefault("AUTH_REDIRECT_URL", "http://localhost:3000/auth/callback")
os.environ.setdefault("CHANGE_FEED_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import pytest
from jose import jwt

from app.config import settings
from app.context import AppContext
from core.services.change_feed import ChangeFeed
from tests.fakes import FakeSupabaseClient


# =============================================================================
# Helpers
# =============================================================================

def make_token(
    user_id: str,
    email: str = "ada@example.com",
    display_name: str | None = "Ada Lovelace",
    expires_in: int = 3600,
    signed_in_ago: int | None = None,
) -> str:
    """
    Sign an access token the way Supabase Auth does (HS256).

    `signed_in_ago` adds an `amr` claim dating the password sign-in that
    many seconds back (a refreshed token for an older session).
    """
    now = int(time.time())
    claims = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": {"display_name": display_name} if display_name else {},
    }
    if signed_in_ago is not None:
        claims["amr"] = [{"method": "password", "timestamp": now - signed_in_ago}]
    return jwt.encode(claims, TEST_JWT_SECRET, algorithm="HS256")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_client():
    """Empty in-memory Supabase client."""
    return FakeSupabaseClient()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def ctx(fake_client, feed):
    """Application context over the in-memory client."""
    return AppContext.build(settings, client=fake_client, feed=feed)


@pytest.fixture
def todo_service(ctx):
    return ctx.todos


@pytest.fixture
def profile_service(ctx):
    return ctx.profiles


@pytest.fixture
def identity_service(ctx):
    return ctx.identity


@pytest.fixture
def owner_id():
    return str(uuid4())


@pytest.fixture
def other_owner_id():
    return str(uuid4())


@pytest.fixture
def sample_todo_data():
    """Sample to-do input for testing."""
    return {
        "title": "Buy milk",
        "description": "2 litres, semi-skimmed",
        "priority": "high",
        "due_date": "2030-01-15T18:00:00Z",
    }
