# =============================================================================
# core/services/identity_service.py - Identity (Supabase Auth) Logic
# =============================================================================
# Wraps the provider's sign-up / sign-in / sign-out calls, keeps the
# `users` profile row in step with the identity, and turns provider errors
# into AuthProviderError with a tagged AuthErrorKind.
#
# Flows acting as the user (sign-in, sign-up, OAuth, password reset) use a
# fresh anon-key auth client per call. Account management (update email,
# password, delete) goes through the service-role admin API.
#
# OAuth is a two-step redirect flow (PKCE):
#   1. start_oauth_sign_in("github") -> OAuthStart(url, flow_id)
#   2. provider redirects to AUTH_REDIRECT_URL?flow=...&code=...
#      -> complete_oauth_sign_in(flow_id, code)
# Pending flows live in this process for OAUTH_FLOW_TTL_SECONDS.
#
# Changing email or password and deleting the account need a recent login:
# a sign-in within `recent_login_max_age` seconds, or the current password.
# =============================================================================

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from app.auth.models import AuthSession, AuthUser, OAuthStart
from app.exceptions import (
    AuthErrorKind,
    AuthProviderError,
    NotAuthenticatedError,
)
from core.models.user import AuthProvider
from core.services.profile_service import ProfileService
from lib.supabase_client import SupabaseClient
from lib.utils import utc_now

logger = logging.getLogger(__name__)

OAUTH_FLOW_TTL_SECONDS = 600
RECENT_LOGIN_MAX_AGE_SECONDS = 300

OAUTH_SCOPES = {
    AuthProvider.GOOGLE: "profile email",
    AuthProvider.GITHUB: "user:email",
}

# Supabase Auth error codes -> user-facing failure kinds
ERROR_CODE_KINDS: dict[str, AuthErrorKind] = {
    "email_exists": AuthErrorKind.EMAIL_ALREADY_IN_USE,
    "user_already_exists": AuthErrorKind.EMAIL_ALREADY_IN_USE,
    "email_address_invalid": AuthErrorKind.INVALID_EMAIL,
    "email_address_not_authorized": AuthErrorKind.INVALID_EMAIL,
    "signup_disabled": AuthErrorKind.OPERATION_NOT_ALLOWED,
    "email_provider_disabled": AuthErrorKind.OPERATION_NOT_ALLOWED,
    "provider_disabled": AuthErrorKind.OPERATION_NOT_ALLOWED,
    "oauth_provider_not_supported": AuthErrorKind.OPERATION_NOT_ALLOWED,
    "weak_password": AuthErrorKind.WEAK_PASSWORD,
    "user_banned": AuthErrorKind.USER_DISABLED,
    "user_not_found": AuthErrorKind.USER_NOT_FOUND,
    "invalid_credentials": AuthErrorKind.WRONG_PASSWORD,
    "over_request_rate_limit": AuthErrorKind.TOO_MANY_REQUESTS,
    "over_email_send_rate_limit": AuthErrorKind.TOO_MANY_REQUESTS,
    "access_denied": AuthErrorKind.SIGN_IN_CANCELLED,
    "flow_state_expired": AuthErrorKind.SIGN_IN_EXPIRED,
    "flow_state_not_found": AuthErrorKind.SIGN_IN_EXPIRED,
    "bad_oauth_callback": AuthErrorKind.SIGN_IN_REJECTED,
    "bad_oauth_state": AuthErrorKind.SIGN_IN_REJECTED,
    "bad_code_verifier": AuthErrorKind.SIGN_IN_REJECTED,
    "identity_already_exists": AuthErrorKind.ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL,
    "reauthentication_needed": AuthErrorKind.REQUIRES_RECENT_LOGIN,
    "reauthentication_not_valid": AuthErrorKind.REQUIRES_RECENT_LOGIN,
}

AuthListener = Callable[[AuthUser | None], None]


def normalize_auth_error(error: Exception) -> AuthProviderError:
    """
    Map any provider-side failure to an AuthProviderError.

    Known Supabase codes map to their AuthErrorKind; transport failures
    become NETWORK_REQUEST_FAILED; anything else is UNKNOWN with the
    provider's raw message.
    """
    if isinstance(error, AuthProviderError):
        return error

    # supabase-py wraps transport errors as AuthRetryableError
    if isinstance(error, httpx.TransportError) or getattr(error, "name", None) == "AuthRetryableError":
        return AuthProviderError(AuthErrorKind.NETWORK_REQUEST_FAILED)

    code = getattr(error, "code", None)
    kind = ERROR_CODE_KINDS.get(code) if isinstance(code, str) else None

    if kind is None and getattr(error, "status", None) == 429:
        kind = AuthErrorKind.TOO_MANY_REQUESTS

    if kind is not None:
        return AuthProviderError(kind, provider_code=code)

    raw_message = getattr(error, "message", None) or str(error) or None
    return AuthProviderError(AuthErrorKind.UNKNOWN, message=raw_message, provider_code=code)


@dataclass
class _PendingOAuthFlow:
    provider: AuthProvider
    auth: Any
    started_at: float


class IdentityService:
    """
    Service for identity operations.

    Listeners registered with on_auth_state_changed() receive the user on
    every sign-in/sign-up and None on sign-out or account deletion.
    """

    def __init__(
        self,
        client: SupabaseClient,
        profiles: ProfileService,
        redirect_url: str,
        recent_login_max_age: int = RECENT_LOGIN_MAX_AGE_SECONDS,
    ):
        self._client = client
        self._profiles = profiles
        self._redirect_url = redirect_url
        self._recent_login_max_age = timedelta(seconds=recent_login_max_age)
        self._listeners: list[AuthListener] = []
        self._pending_flows: dict[str, _PendingOAuthFlow] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Auth State
    # -------------------------------------------------------------------------

    def on_auth_state_changed(self, callback: AuthListener) -> Callable[[], None]:
        """
        Register an auth state listener.

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, user: AuthUser | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(user)
            except Exception as e:
                logger.exception(f"Auth state listener failed: {e}")

    def get_user(self, access_token: str) -> AuthUser | None:
        """Resolve an access token to its user, or None if it is not accepted."""
        try:
            provider_user = self._client.get_auth_user(access_token)
        except Exception as e:
            logger.debug(f"Access token rejected: {e}")
            return None
        return AuthUser.from_provider_user(provider_user) if provider_user else None

    def is_authenticated(self, access_token: str | None) -> bool:
        return bool(access_token) and self.get_user(access_token) is not None

    # -------------------------------------------------------------------------
    # Email / Password
    # -------------------------------------------------------------------------

    def sign_up_with_email(self, email: str, password: str, display_name: str) -> AuthSession:
        """
        Create an email/password account and its profile.

        Raises:
            AuthProviderError: If the provider rejects the sign-up
        """
        try:
            response = self._client.auth_client().sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"display_name": display_name}},
            })
        except Exception as e:
            raise normalize_auth_error(e)

        if response.user is None:
            raise AuthProviderError(AuthErrorKind.UNKNOWN, message="Sign-up returned no user")

        session = AuthSession.from_response(response)
        self._profiles.create_profile(
            session.user.id,
            name=display_name,
            email=session.user.email,
            provider=AuthProvider.EMAIL,
            photo_url=session.user.photo_url,
        )

        logger.info(f"Signed up user: {session.user.id}")
        self._emit(session.user)
        return session

    def sign_in_with_email(self, email: str, password: str) -> AuthSession:
        try:
            response = self._client.auth_client().sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            raise normalize_auth_error(e)

        session = AuthSession.from_response(response)
        self._ensure_profile(session.user, AuthProvider.EMAIL)

        logger.info(f"Signed in user: {session.user.id}")
        self._emit(session.user)
        return session

    def send_password_reset_email(self, email: str) -> None:
        try:
            self._client.auth_client().reset_password_for_email(
                email,
                {"redirect_to": self._redirect_url},
            )
        except Exception as e:
            raise normalize_auth_error(e)

        logger.info("Password reset email requested")

    # -------------------------------------------------------------------------
    # OAuth (Google / GitHub)
    # -------------------------------------------------------------------------

    def start_oauth_sign_in(self, provider: AuthProvider | str) -> OAuthStart:
        """
        Begin an OAuth sign-in and return the provider URL to redirect to.

        Raises:
            AuthProviderError: OPERATION_NOT_ALLOWED for non-OAuth providers
        """
        try:
            provider = AuthProvider(provider)
        except ValueError:
            raise AuthProviderError(AuthErrorKind.OPERATION_NOT_ALLOWED)
        if provider not in OAUTH_SCOPES:
            raise AuthProviderError(AuthErrorKind.OPERATION_NOT_ALLOWED)

        flow_id = secrets.token_urlsafe(16)
        redirect_to = f"{self._redirect_url}?{urlencode({'flow': flow_id, 'provider': provider.value})}"
        auth = self._client.auth_client()

        try:
            response = auth.sign_in_with_oauth({
                "provider": provider.value,
                "options": {"redirect_to": redirect_to, "scopes": OAUTH_SCOPES[provider]},
            })
        except Exception as e:
            raise normalize_auth_error(e)

        with self._lock:
            self._prune_expired_flows()
            self._pending_flows[flow_id] = _PendingOAuthFlow(provider, auth, time.monotonic())

        logger.info(f"Started {provider.value} sign-in flow {flow_id}")
        return OAuthStart(provider=provider.value, url=response.url, flow_id=flow_id)

    def complete_oauth_sign_in(
        self,
        flow_id: str,
        auth_code: str | None,
        error: str | None = None,
    ) -> AuthSession:
        """
        Finish an OAuth sign-in from the provider callback.

        Creates the profile on first sign-in. GitHub accounts without a
        display name fall back to the local part of their email.

        Raises:
            AuthProviderError: SIGN_IN_EXPIRED for unknown/expired flows,
                SIGN_IN_CANCELLED / SIGN_IN_REJECTED for callback errors
        """
        with self._lock:
            self._prune_expired_flows()
            flow = self._pending_flows.pop(flow_id, None)

        if flow is None:
            raise AuthProviderError(AuthErrorKind.SIGN_IN_EXPIRED)

        if error:
            raise AuthProviderError(ERROR_CODE_KINDS.get(error, AuthErrorKind.SIGN_IN_REJECTED), provider_code=error)
        if not auth_code:
            raise AuthProviderError(AuthErrorKind.SIGN_IN_REJECTED)

        try:
            response = flow.auth.exchange_code_for_session({"auth_code": auth_code})
        except Exception as e:
            raise normalize_auth_error(e)

        session = AuthSession.from_response(response)
        self._ensure_profile(session.user, flow.provider)

        logger.info(f"Signed in user {session.user.id} with {flow.provider.value}")
        self._emit(session.user)
        return session

    def _prune_expired_flows(self) -> None:
        cutoff = time.monotonic() - OAUTH_FLOW_TTL_SECONDS
        expired = [fid for fid, flow in self._pending_flows.items() if flow.started_at < cutoff]
        for fid in expired:
            del self._pending_flows[fid]

    # -------------------------------------------------------------------------
    # Session / Account Management
    # -------------------------------------------------------------------------

    def sign_out(self, user: AuthUser | None, access_token: str) -> None:
        """Revoke the user's sessions."""
        try:
            self._client.admin_auth.sign_out(access_token)
        except Exception as e:
            raise normalize_auth_error(e)

        if user is not None:
            logger.info(f"Signed out user: {user.id}")
        self._emit(None)

    def reauthenticate(self, user: AuthUser | None, password: str) -> AuthUser:
        """
        Confirm the user's password before a sensitive operation.

        Raises:
            NotAuthenticatedError: If no user is given
            AuthProviderError: WRONG_PASSWORD if the password is rejected
        """
        user = self._require_user(user)
        if not user.email:
            raise AuthProviderError(AuthErrorKind.OPERATION_NOT_ALLOWED)

        try:
            response = self._client.auth_client().sign_in_with_password({
                "email": user.email,
                "password": password,
            })
        except Exception as e:
            raise normalize_auth_error(e)

        if response.user is None or str(response.user.id) != str(user.id):
            raise AuthProviderError(AuthErrorKind.WRONG_PASSWORD)
        return user

    def require_recent_login(self, user: AuthUser | None, current_password: str | None = None) -> AuthUser:
        """
        Gate a sensitive operation on a recent sign-in.

        With `current_password` the password is re-checked. Without it, the
        user must have signed in within the configured window.

        Raises:
            NotAuthenticatedError: If no user is given
            AuthProviderError: REQUIRES_RECENT_LOGIN if the sign-in is too old,
                WRONG_PASSWORD if the password is rejected
        """
        user = self._require_user(user)
        if current_password is not None:
            return self.reauthenticate(user, current_password)

        if user.signed_in_at is None or utc_now() - user.signed_in_at > self._recent_login_max_age:
            logger.warning(f"Sensitive operation refused for user {user.id}: sign-in not recent")
            raise AuthProviderError(AuthErrorKind.REQUIRES_RECENT_LOGIN)
        return user

    def update_profile(
        self,
        user: AuthUser | None,
        display_name: str,
        photo_url: str | None = None,
    ):
        """Update the display name / avatar on the identity and the profile row."""
        user = self._require_user(user)
        self._admin_update(user, {"user_metadata": {"display_name": display_name, "avatar_url": photo_url}})
        return self._profiles.update_profile(user.id, {"name": display_name, "photo_url": photo_url or ""})

    def update_email(self, user: AuthUser | None, new_email: str, current_password: str | None = None):
        user = self.require_recent_login(user, current_password)
        self._admin_update(user, {"email": new_email})
        return self._profiles.update_profile(user.id, {"email": new_email})

    def update_password(
        self,
        user: AuthUser | None,
        new_password: str,
        current_password: str | None = None,
    ) -> None:
        user = self.require_recent_login(user, current_password)
        self._admin_update(user, {"password": new_password})
        logger.info(f"Password updated for user: {user.id}")

    def delete_account(self, user: AuthUser | None, current_password: str | None = None) -> None:
        """
        Delete the profile row, then the identity.

        The user's to-dos are left in place.
        """
        user = self.require_recent_login(user, current_password)
        self._profiles.delete_profile(user.id)

        try:
            self._client.admin_auth.delete_user(str(user.id))
        except Exception as e:
            raise normalize_auth_error(e)

        logger.info(f"Deleted account: {user.id}")
        self._emit(None)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_user(user: AuthUser | None) -> AuthUser:
        if user is None:
            raise NotAuthenticatedError()
        return user

    def _admin_update(self, user: AuthUser, attributes: dict[str, Any]) -> None:
        try:
            self._client.admin_auth.update_user_by_id(str(user.id), attributes)
        except Exception as e:
            raise normalize_auth_error(e)

    def _ensure_profile(self, user: AuthUser, provider: AuthProvider) -> None:
        """Create the profile row on first sign-in."""
        if self._profiles.profile_exists(user.id):
            return

        self._profiles.create_profile(
            user.id,
            name=user.fallback_name,
            email=user.email,
            provider=provider,
            photo_url=user.photo_url,
        )
