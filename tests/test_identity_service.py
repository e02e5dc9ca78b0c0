# =============================================================================
# tests/test_identity_service.py - Identity Service Tests
# =============================================================================
# This module contains tests for:
# - Provider error normalization
# - Email sign-up / sign-in and profile creation
# - OAuth start + callback
# - Account management through the admin API
# - Auth state listeners
#
# Supabase Auth is mocked via FakeSupabaseClient.auth / .admin.
# =============================================================================

from datetime import timedelta
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.auth.models import AuthUser
from app.exceptions import AuthErrorKind, AuthProviderError, NotAuthenticatedError
from core.models import AuthProvider
from core.services import identity_service as identity_module
from core.services.identity_service import normalize_auth_error
from lib.utils import utc_now
from tests.fakes import FakeAuthError, make_auth_response, make_provider_user


@pytest.fixture
def provider_user():
    return make_provider_user(metadata={"display_name": "Ada Lovelace"})


@pytest.fixture
def auth_user(provider_user):
    return AuthUser.from_provider_user(provider_user)


@pytest.fixture
def recent_user(auth_user):
    """The user as decoded from a token issued right after sign-in."""
    return auth_user.model_copy(update={"signed_in_at": utc_now()})


@pytest.fixture
def stale_user(auth_user):
    return auth_user.model_copy(update={"signed_in_at": utc_now() - timedelta(hours=1)})


# =============================================================================
# Error Normalization
# =============================================================================

class TestNormalizeAuthError:
    """Tests for normalize_auth_error."""

    @pytest.mark.parametrize(
        "code, kind",
        [
            ("email_exists", AuthErrorKind.EMAIL_ALREADY_IN_USE),
            ("email_address_invalid", AuthErrorKind.INVALID_EMAIL),
            ("weak_password", AuthErrorKind.WEAK_PASSWORD),
            ("user_banned", AuthErrorKind.USER_DISABLED),
            ("invalid_credentials", AuthErrorKind.WRONG_PASSWORD),
            ("over_request_rate_limit", AuthErrorKind.TOO_MANY_REQUESTS),
            ("identity_already_exists", AuthErrorKind.ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL),
            ("reauthentication_needed", AuthErrorKind.REQUIRES_RECENT_LOGIN),
        ],
    )
    def test_known_codes(self, code, kind):
        error = normalize_auth_error(FakeAuthError("boom", code=code))

        assert error.kind == kind
        assert error.message == kind.value
        assert error.provider_code == code

    def test_rate_limit_status_without_code(self):
        error = normalize_auth_error(FakeAuthError("slow down", status=429))

        assert error.kind == AuthErrorKind.TOO_MANY_REQUESTS
        assert error.status_code == 429

    def test_transport_errors(self):
        assert normalize_auth_error(httpx.ConnectError("refused")).kind == AuthErrorKind.NETWORK_REQUEST_FAILED
        retryable = FakeAuthError("timeout", name="AuthRetryableError")
        assert normalize_auth_error(retryable).kind == AuthErrorKind.NETWORK_REQUEST_FAILED

    def test_unknown_keeps_provider_message(self):
        error = normalize_auth_error(FakeAuthError("Something odd happened", code="brand_new_code"))

        assert error.kind == AuthErrorKind.UNKNOWN
        assert error.message == "Something odd happened"
        assert error.provider_code == "brand_new_code"

    def test_already_normalized_is_returned_as_is(self):
        original = AuthProviderError(AuthErrorKind.USER_NOT_FOUND)

        assert normalize_auth_error(original) is original


# =============================================================================
# Email / Password
# =============================================================================

class TestEmailSignUp:
    """Tests for sign_up_with_email."""

    def test_creates_account_and_profile(self, identity_service, fake_client, profile_service, provider_user):
        fake_client.auth.sign_up.return_value = make_auth_response(provider_user)

        session = identity_service.sign_up_with_email("ada@example.com", "secret1", "Ada Lovelace")

        payload = fake_client.auth.sign_up.call_args.args[0]
        assert payload["options"]["data"] == {"display_name": "Ada Lovelace"}
        assert session.access_token == "access-token"

        profile = profile_service.get_profile(provider_user.id)
        assert profile.name == "Ada Lovelace"
        assert profile.provider == AuthProvider.EMAIL

    def test_provider_rejection(self, identity_service, fake_client, profile_service):
        fake_client.auth.sign_up.side_effect = FakeAuthError("User already registered", code="user_already_exists")

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.sign_up_with_email("ada@example.com", "secret1", "Ada")

        assert exc_info.value.kind == AuthErrorKind.EMAIL_ALREADY_IN_USE
        assert exc_info.value.message == "This email is already registered"

    def test_no_user_returned(self, identity_service, fake_client):
        fake_client.auth.sign_up.return_value = make_auth_response(None, access_token=None)

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.sign_up_with_email("ada@example.com", "secret1", "Ada")

        assert exc_info.value.kind == AuthErrorKind.UNKNOWN


class TestEmailSignIn:
    """Tests for sign_in_with_email / send_password_reset_email."""

    def test_sign_in_creates_missing_profile(self, identity_service, fake_client, profile_service, provider_user):
        fake_client.auth.sign_in_with_password.return_value = make_auth_response(provider_user)

        identity_service.sign_in_with_email("ada@example.com", "secret1")

        assert profile_service.get_profile(provider_user.id).name == "Ada Lovelace"

    def test_sign_in_keeps_existing_profile(self, identity_service, fake_client, profile_service, provider_user):
        profile_service.create_profile(provider_user.id, "Countess", "ada@example.com", "email")
        fake_client.auth.sign_in_with_password.return_value = make_auth_response(provider_user)

        identity_service.sign_in_with_email("ada@example.com", "secret1")

        assert profile_service.get_profile(provider_user.id).name == "Countess"

    def test_wrong_password(self, identity_service, fake_client):
        fake_client.auth.sign_in_with_password.side_effect = FakeAuthError(
            "Invalid login credentials", code="invalid_credentials"
        )

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.sign_in_with_email("ada@example.com", "nope00")

        assert exc_info.value.message == "Incorrect password"

    def test_password_reset_uses_redirect_url(self, identity_service, fake_client):
        identity_service.send_password_reset_email("ada@example.com")

        email, options = fake_client.auth.reset_password_for_email.call_args.args
        assert email == "ada@example.com"
        assert options["redirect_to"] == "http://localhost:3000/auth/callback"


# =============================================================================
# OAuth
# =============================================================================

class TestOAuth:
    """Tests for start_oauth_sign_in / complete_oauth_sign_in."""

    def _start(self, identity_service, fake_client, provider="github"):
        fake_client.auth.sign_in_with_oauth.return_value = MagicMock(url="https://github.com/login/oauth?x=1")
        return identity_service.start_oauth_sign_in(provider)

    def test_start_returns_provider_url_and_flow(self, identity_service, fake_client):
        start = self._start(identity_service, fake_client)

        assert start.provider == "github"
        assert start.url == "https://github.com/login/oauth?x=1"

        payload = fake_client.auth.sign_in_with_oauth.call_args.args[0]
        redirect = urlparse(payload["options"]["redirect_to"])
        assert parse_qs(redirect.query) == {"flow": [start.flow_id], "provider": ["github"]}
        assert payload["options"]["scopes"] == "user:email"

    @pytest.mark.parametrize("provider", ["email", "twitter"])
    def test_start_rejects_non_oauth_providers(self, identity_service, provider):
        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.start_oauth_sign_in(provider)

        assert exc_info.value.kind == AuthErrorKind.OPERATION_NOT_ALLOWED

    def test_complete_github_without_name_uses_email_local_part(
        self, identity_service, fake_client, profile_service
    ):
        user = make_provider_user(email="octocat@github.com")
        start = self._start(identity_service, fake_client)
        fake_client.auth.exchange_code_for_session.return_value = make_auth_response(user)

        session = identity_service.complete_oauth_sign_in(start.flow_id, "auth-code")

        fake_client.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "auth-code"})
        profile = profile_service.get_profile(user.id)
        assert profile.name == "octocat"
        assert profile.provider == AuthProvider.GITHUB
        assert session.user.email == "octocat@github.com"

    def test_flow_can_only_be_used_once(self, identity_service, fake_client):
        start = self._start(identity_service, fake_client)
        fake_client.auth.exchange_code_for_session.return_value = make_auth_response(make_provider_user())
        identity_service.complete_oauth_sign_in(start.flow_id, "auth-code")

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.complete_oauth_sign_in(start.flow_id, "auth-code")

        assert exc_info.value.kind == AuthErrorKind.SIGN_IN_EXPIRED

    def test_user_cancelled(self, identity_service, fake_client):
        start = self._start(identity_service, fake_client)

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.complete_oauth_sign_in(start.flow_id, None, error="access_denied")

        assert exc_info.value.kind == AuthErrorKind.SIGN_IN_CANCELLED

    def test_missing_code_is_rejected(self, identity_service, fake_client):
        start = self._start(identity_service, fake_client)

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.complete_oauth_sign_in(start.flow_id, None)

        assert exc_info.value.kind == AuthErrorKind.SIGN_IN_REJECTED

    def test_expired_flow(self, identity_service, fake_client, monkeypatch):
        start = self._start(identity_service, fake_client)
        monkeypatch.setattr(identity_module, "OAUTH_FLOW_TTL_SECONDS", -1)

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.complete_oauth_sign_in(start.flow_id, "auth-code")

        assert exc_info.value.kind == AuthErrorKind.SIGN_IN_EXPIRED


# =============================================================================
# Session / Account Management
# =============================================================================

class TestAccountManagement:
    """Tests for sign-out, reauthentication, updates and deletion."""

    def test_sign_out_revokes_token(self, identity_service, fake_client, auth_user):
        identity_service.sign_out(auth_user, "access-token")

        fake_client.admin.sign_out.assert_called_once_with("access-token")

    def test_reauthenticate_success(self, identity_service, fake_client, provider_user, auth_user):
        fake_client.auth.sign_in_with_password.return_value = make_auth_response(provider_user)

        assert identity_service.reauthenticate(auth_user, "secret1") == auth_user

    def test_reauthenticate_wrong_password(self, identity_service, fake_client, auth_user):
        fake_client.auth.sign_in_with_password.side_effect = FakeAuthError("bad", code="invalid_credentials")

        with pytest.raises(AuthProviderError) as exc_info:
            identity_service.reauthenticate(auth_user, "wrong1")

        assert exc_info.value.kind == AuthErrorKind.WRONG_PASSWORD

    def test_reauthenticate_without_user(self, identity_service):
        with pytest.raises(NotAuthenticatedError) as exc_info:
            identity_service.reauthenticate(None, "secret1")

        assert exc_info.value.message == "No user logged in"

    def test_update_profile_writes_identity_and_row(self, identity_service, fake_client, profile_service, auth_user):
        profile_service.create_profile(auth_user.id, "Ada", auth_user.email, "email")

        profile = identity_service.update_profile(auth_user, "Countess", "https://img/c.png")

        fake_client.admin.update_user_by_id.assert_called_once_with(
            str(auth_user.id),
            {"user_metadata": {"display_name": "Countess", "avatar_url": "https://img/c.png"}},
        )
        assert profile.name == "Countess"
        assert profile.photo_url == "https://img/c.png"

    def test_update_email(self, identity_service, fake_client, profile_service, recent_user):
        profile_service.create_profile(recent_user.id, "Ada", recent_user.email, "email")

        profile = identity_service.update_email(recent_user, "new@example.com")

        fake_client.admin.update_user_by_id.assert_called_once_with(str(recent_user.id), {"email": "new@example.com"})
        assert profile.email == "new@example.com"

    def test_update_password(self, identity_service, fake_client, recent_user):
        identity_service.update_password(recent_user, "newsecret")

        fake_client.admin.update_user_by_id.assert_called_once_with(str(recent_user.id), {"password": "newsecret"})

    def test_delete_account_keeps_todos(self, identity_service, fake_client, profile_service, todo_service, recent_user):
        profile_service.create_profile(recent_user.id, "Ada", recent_user.email, "email")
        todo_service.create_todo({"title": "Outlives me"}, recent_user.id)

        identity_service.delete_account(recent_user)

        fake_client.admin.delete_user.assert_called_once_with(str(recent_user.id))
        assert profile_service.get_profile(recent_user.id) is None
        assert len(todo_service.get_todos(recent_user.id)) == 1


SENSITIVE_OPERATIONS = {
    "update_email": lambda service, user, password: service.update_email(user, "new@example.com", password),
    "update_password": lambda service, user, password: service.update_password(user, "newsecret", password),
    "delete_account": lambda service, user, password: service.delete_account(user, password),
}


@pytest.mark.parametrize("operation", sorted(SENSITIVE_OPERATIONS))
class TestRecentLogin:
    """Email/password changes and account deletion need a recent sign-in or the password."""

    def test_stale_sign_in_is_refused(self, identity_service, fake_client, stale_user, operation):
        with pytest.raises(AuthProviderError) as exc_info:
            SENSITIVE_OPERATIONS[operation](identity_service, stale_user, None)

        assert exc_info.value.kind == AuthErrorKind.REQUIRES_RECENT_LOGIN
        assert exc_info.value.message == "This operation requires recent authentication. Please log in again"
        fake_client.admin.update_user_by_id.assert_not_called()
        fake_client.admin.delete_user.assert_not_called()

    def test_unknown_sign_in_time_is_refused(self, identity_service, fake_client, auth_user, operation):
        with pytest.raises(AuthProviderError) as exc_info:
            SENSITIVE_OPERATIONS[operation](identity_service, auth_user, None)

        assert exc_info.value.kind == AuthErrorKind.REQUIRES_RECENT_LOGIN
        fake_client.admin.update_user_by_id.assert_not_called()

    def test_current_password_allows_stale_sign_in(
        self, identity_service, fake_client, profile_service, provider_user, stale_user, operation
    ):
        profile_service.create_profile(stale_user.id, "Ada", stale_user.email, "email")
        fake_client.auth.sign_in_with_password.return_value = make_auth_response(provider_user)

        SENSITIVE_OPERATIONS[operation](identity_service, stale_user, "secret1")

        fake_client.auth.sign_in_with_password.assert_called_once_with(
            {"email": stale_user.email, "password": "secret1"}
        )
        assert fake_client.admin.update_user_by_id.called or fake_client.admin.delete_user.called

    def test_wrong_current_password(self, identity_service, fake_client, recent_user, operation):
        fake_client.auth.sign_in_with_password.side_effect = FakeAuthError("bad", code="invalid_credentials")

        with pytest.raises(AuthProviderError) as exc_info:
            SENSITIVE_OPERATIONS[operation](identity_service, recent_user, "wrong1")

        assert exc_info.value.kind == AuthErrorKind.WRONG_PASSWORD
        fake_client.admin.update_user_by_id.assert_not_called()
        fake_client.admin.delete_user.assert_not_called()

    def test_without_user(self, identity_service, operation):
        with pytest.raises(NotAuthenticatedError):
            SENSITIVE_OPERATIONS[operation](identity_service, None, None)


# =============================================================================
# Auth State
# =============================================================================

class TestAuthState:
    """Tests for on_auth_state_changed / get_user."""

    def test_listeners_see_sign_in_and_sign_out(self, identity_service, fake_client, provider_user, auth_user):
        events = []
        identity_service.on_auth_state_changed(events.append)
        fake_client.auth.sign_in_with_password.return_value = make_auth_response(provider_user)

        identity_service.sign_in_with_email("ada@example.com", "secret1")
        identity_service.sign_out(auth_user, "access-token")

        assert events == [auth_user, None]

    def test_unsubscribe(self, identity_service, auth_user):
        events = []
        unsubscribe = identity_service.on_auth_state_changed(events.append)

        unsubscribe()
        identity_service.sign_out(auth_user, "access-token")

        assert events == []

    def test_failing_listener_does_not_break_sign_out(self, identity_service, auth_user):
        events = []
        identity_service.on_auth_state_changed(MagicMock(side_effect=RuntimeError("boom")))
        identity_service.on_auth_state_changed(events.append)

        identity_service.sign_out(auth_user, "access-token")

        assert events == [None]

    def test_get_user(self, identity_service, fake_client, provider_user):
        fake_client.auth.get_user.return_value = MagicMock(user=provider_user)

        user = identity_service.get_user("access-token")

        assert str(user.id) == provider_user.id
        assert identity_service.is_authenticated("access-token") is True

    def test_rejected_token(self, identity_service, fake_client):
        fake_client.auth.get_user.side_effect = FakeAuthError("bad jwt", status=401)

        assert identity_service.get_user("bogus") is None
        assert identity_service.is_authenticated("bogus") is False
        assert identity_service.is_authenticated(None) is False
