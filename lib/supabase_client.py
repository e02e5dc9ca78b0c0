# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides a typed wrapper for Supabase database and auth calls.
# One SupabaseClient is built at startup (see app/context.py) and handed to
# every service that needs it, so tests can swap in an in-memory fake.
#
# It provides:
# - Row operations (insert, fetch, select, update, upsert, delete)
# - Batch delete by filter
# - Auth clients: a fresh anon-key client for sign-in flows and the
#   service-role admin API for account management
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   client = SupabaseClient.from_settings(settings)
#   rows = client.select("todos", filters={"owner_id": user_id})
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import Client, ClientOptions, create_client

from app.config import Settings
from lib.utils import normalize_uuid

# Set up logging for this module
logger = logging.getLogger(__name__)

# PostgREST code for "no rows" on .single()
NO_ROWS_CODE = "PGRST116"


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Carries a machine-readable code plus a suggestion on how to fix it.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class SupabaseClient:
    """
    Typed wrapper for Supabase operations.

    Wraps a service-role `supabase.Client` for table access. Auth flows
    that act *as* a user (sign-in, sign-up, OAuth) get their own short-lived
    anon-key client from `auth_client()` so sessions never leak between
    requests.

    Example:
        client = SupabaseClient.from_settings(settings)

        todo = client.fetch_by_id("todos", todo_id)
        if todo is None:
            ...
    """

    def __init__(
        self,
        client: Client,
        url: str,
        anon_key: str,
    ):
        self._client = client
        self._url = url
        self._anon_key = anon_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseClient":
        """
        Build the wrapper from application settings.

        Uses the service_role key, which bypasses Row Level Security (RLS).
        Ownership is enforced in the service layer.

        Raises:
            SupabaseClientError: If client creation fails
        """
        try:
            client = create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_SERVICE_KEY,
                options=ClientOptions(
                    auto_refresh_token=False,
                    persist_session=False,
                ),
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to create Supabase client: {e}",
                code="CLIENT_INIT_FAILED",
                suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
            )

        logger.info("Supabase client initialized successfully")
        return cls(client, settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)

    @property
    def raw(self) -> Client:
        """The underlying supabase-py client."""
        return self._client

    # -------------------------------------------------------------------------
    # Row Operations
    # -------------------------------------------------------------------------

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Insert one row and return it as stored (with generated id/timestamps).

        Raises:
            SupabaseClientError: If insert fails or returns nothing
        """
        try:
            response = self._client.table(table).insert(data).execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to insert into {table}: {e}",
                code="INSERT_FAILED",
                details={"table": table},
            )

        if not response.data:
            raise SupabaseClientError(
                message="Insert returned no data",
                code="INSERT_NO_DATA",
                details={"table": table},
            )

        return response.data[0]

    def upsert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a row keyed by its primary key."""
        try:
            response = self._client.table(table).upsert(data).execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to upsert into {table}: {e}",
                code="UPSERT_FAILED",
                details={"table": table},
            )

        if not response.data:
            raise SupabaseClientError(
                message="Upsert returned no data",
                code="UPSERT_NO_DATA",
                details={"table": table},
            )

        return response.data[0]

    def fetch_by_id(self, table: str, row_id: str | UUID) -> dict[str, Any] | None:
        """
        Fetch a single row by primary key.

        Returns:
            Row dict, or None if not found

        Raises:
            SupabaseClientError: If query fails
        """
        row_id_str = normalize_uuid(row_id)

        try:
            response = (
                self._client.table(table)
                .select("*")
                .eq("id", row_id_str)
                .single()
                .execute()
            )
            return response.data

        except Exception as e:
            if NO_ROWS_CODE in str(e):
                return None
            raise SupabaseClientError(
                message=f"Failed to fetch from {table}: {e}",
                code="FETCH_FAILED",
                suggestion=f"Check that the id exists in {table}",
                details={"table": table, "id": row_id_str},
            )

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        desc: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Select rows matching every equality filter.

        Args:
            table: Table name
            filters: Column -> value equality filters (None values are skipped)
            order_by: Optional column to order by
            desc: Order descending when True

        Returns:
            List of row dicts (possibly empty)
        """
        query = self._client.table(table).select("*")

        for column, value in (filters or {}).items():
            if value is not None:
                query = query.eq(column, normalize_uuid(value))

        if order_by:
            query = query.order(order_by, desc=desc)

        try:
            response = query.execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to query {table}: {e}",
                code="QUERY_FAILED",
                details={"table": table, "filters": {k: str(v) for k, v in (filters or {}).items()}},
            )

        rows = response.data or []
        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    def update(
        self,
        table: str,
        row_id: str | UUID,
        data: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Update a row by primary key.

        Returns:
            Updated row dict, or None if no row matched
        """
        row_id_str = normalize_uuid(row_id)

        try:
            response = (
                self._client.table(table)
                .update(data)
                .eq("id", row_id_str)
                .execute()
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to update {table}: {e}",
                code="UPDATE_FAILED",
                details={"table": table, "id": row_id_str},
            )

        return response.data[0] if response.data else None

    def delete(self, table: str, row_id: str | UUID) -> None:
        """Delete a row by primary key. Deleting a missing row is a no-op."""
        row_id_str = normalize_uuid(row_id)

        try:
            self._client.table(table).delete().eq("id", row_id_str).execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to delete from {table}: {e}",
                code="DELETE_FAILED",
                details={"table": table, "id": row_id_str},
            )

    def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        """
        Delete every row matching the equality filters in one request.

        Returns:
            Number of rows removed
        """
        if not filters:
            raise SupabaseClientError(
                message="Refusing to delete without filters",
                code="DELETE_UNFILTERED",
                details={"table": table},
            )

        query = self._client.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, normalize_uuid(value))

        try:
            response = query.execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to batch delete from {table}: {e}",
                code="BATCH_DELETE_FAILED",
                details={"table": table},
            )

        removed = len(response.data or [])
        logger.debug(f"Batch deleted {removed} rows from {table}")
        return removed

    def ping(self) -> bool:
        """Cheap connectivity check used by the readiness probe."""
        self._client.table("users").select("id").limit(1).execute()
        return True

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def auth_client(self):
        """
        Create a fresh anon-key auth client.

        Each sign-in style flow gets its own client so the resulting session
        stays local to that call (PKCE flow for OAuth redirects).
        """
        client = create_client(
            self._url,
            self._anon_key,
            options=ClientOptions(
                flow_type="pkce",
                auto_refresh_token=False,
                persist_session=False,
            ),
        )
        return client.auth

    @property
    def admin_auth(self):
        """Service-role admin API (update/delete users, revoke sessions)."""
        return self._client.auth.admin

    def get_auth_user(self, access_token: str):
        """
        Resolve an access token to the auth user it belongs to.

        Returns:
            The provider's user object, or None if the token is not accepted
        """
        response = self._client.auth.get_user(access_token)
        return response.user if response else None
