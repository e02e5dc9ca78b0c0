# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Endpoints behind the sign-in / sign-up page and account settings.
#
#   POST   /signup            email + password account (201)
#   POST   /signin            email + password sign-in
#   GET    /oauth/{provider}  start Google / GitHub sign-in
#   GET    /callback          provider redirect target
#   POST   /signout           revoke sessions, close live updates
#   POST   /forgot-password   send a password reset email
#   GET    /me, /verify       current user / token check
#   PATCH  /me                display name / avatar
#   PUT    /me/email, /me/password
#   POST   /reauthenticate
#   DELETE /me                delete profile then identity
#
# Form fields are checked with lib.validators before any provider call;
# failures return 422 with one message per field.
# =============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from fastapi.responses import RedirectResponse

from app.auth.dependencies import get_current_user
from app.auth.models import (
    AuthSession,
    AuthUser,
    DeleteAccountRequest,
    OAuthStart,
    PasswordResetRequest,
    ReauthenticateRequest,
    SignInRequest,
    SignUpRequest,
    UpdateEmailRequest,
    UpdatePasswordRequest,
    UpdateProfileRequest,
    UserResponse,
)
from app.config import settings
from app.dependencies import AccessToken, ContextDep, IdentityServiceDep, ProfileServiceDep
from app.exceptions import ValidationFailedError
from core.models.user import UserProfile
from lib import validators
from lib.validators import FieldRule, validate_form

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_EMAIL_MESSAGE = "Please enter a valid email address"
NAME_MESSAGE = "Name must be 2-50 characters"
PASSWORD_MESSAGE = "Password must be at least 6 characters"
STRONG_PASSWORD_MESSAGE = (
    "Password must be at least 8 characters and contain upper and lower case letters and a digit"
)


# =============================================================================
# Form Validation
# =============================================================================

def _password_rule() -> FieldRule:
    if settings.requires_strong_password:
        return FieldRule(required=True, custom=validators.is_strong_password, message=STRONG_PASSWORD_MESSAGE)
    return FieldRule(required=True, custom=validators.is_valid_password, message=PASSWORD_MESSAGE)


def _check_form(data: dict, rules: dict[str, FieldRule]) -> None:
    """Raise ValidationFailedError carrying every failing field."""
    result = validate_form(data, rules)
    if not result.is_valid:
        raise ValidationFailedError(result.first_error, result.errors)


def _profile_response(user: AuthUser, profile: UserProfile | None) -> UserResponse:
    if profile is None:
        # Identity exists but the profile row was never written
        return UserResponse(id=user.id, email=user.email, name=user.fallback_name, photo_url=user.photo_url)
    return UserResponse(
        id=user.id,
        email=profile.email,
        name=profile.name,
        photo_url=profile.photo_url or None,
        provider=profile.provider.value,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


# =============================================================================
# Email / Password
# =============================================================================

@router.post("/signup", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
def sign_up(request: SignUpRequest, identity: IdentityServiceDep):
    """
    Create an account with email and password.

    The display name is stored on the identity and in the profile.
    """
    name = request.name.strip()
    email = request.email.strip()

    _check_form(
        {"name": name, "email": email, "password": request.password},
        {
            "name": FieldRule(required=True, custom=validators.is_valid_name, message=NAME_MESSAGE),
            "email": FieldRule(required=True, custom=validators.is_valid_email, message=INVALID_EMAIL_MESSAGE),
            "password": _password_rule(),
        },
    )
    if request.password != request.confirm_password:
        raise ValidationFailedError("Passwords do not match", {"confirm_password": "Passwords do not match"})

    return identity.sign_up_with_email(email, request.password, name)


@router.post("/signin", response_model=AuthSession)
def sign_in(request: SignInRequest, identity: IdentityServiceDep):
    """Sign in with email and password."""
    email = request.email.strip()

    _check_form(
        {"email": email, "password": request.password},
        {
            "email": FieldRule(required=True, custom=validators.is_valid_email, message=INVALID_EMAIL_MESSAGE),
            "password": FieldRule(required=True, custom=validators.is_valid_password, message=PASSWORD_MESSAGE),
        },
    )

    return identity.sign_in_with_email(email, request.password)


@router.post("/forgot-password")
def forgot_password(request: PasswordResetRequest, identity: IdentityServiceDep) -> dict:
    email = request.email.strip()
    _check_form(
        {"email": email},
        {"email": FieldRule(required=True, custom=validators.is_valid_email, message=INVALID_EMAIL_MESSAGE)},
    )

    identity.send_password_reset_email(email)
    return {"message": "Password reset email sent! Check your inbox."}


# =============================================================================
# OAuth (Google / GitHub)
# =============================================================================

@router.get("/oauth/{provider}", response_model=OAuthStart)
def start_oauth(
    provider: str,
    identity: IdentityServiceDep,
    redirect: bool = Query(False, description="Redirect to the provider instead of returning the URL"),
):
    """
    Start a Google or GitHub sign-in.

    Returns the provider URL (or redirects to it with `redirect=true`).
    The provider sends the user back to AUTH_REDIRECT_URL, whose page
    forwards `flow` and `code` to /callback.
    """
    start = identity.start_oauth_sign_in(provider)
    if redirect:
        return RedirectResponse(start.url, status_code=status.HTTP_302_FOUND)
    return start


@router.get("/callback", response_model=AuthSession)
def oauth_callback(
    identity: IdentityServiceDep,
    flow: str = Query(..., description="Flow id returned by /oauth/{provider}"),
    code: str | None = Query(None, description="Authorization code from the provider"),
    error: str | None = Query(None, description="Error code reported by the provider"),
):
    """Finish an OAuth sign-in and return the session."""
    return identity.complete_oauth_sign_in(flow, code, error)


# =============================================================================
# Session
# =============================================================================

@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(
    ctx: ContextDep,
    token: AccessToken,
    user: AuthUser = Depends(get_current_user),
):
    """Revoke the user's sessions and stop their live updates."""
    ctx.identity.sign_out(user, token)
    ctx.todos.cancel_subscriptions(user.id)
    ctx.profiles.cancel_subscriptions(user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    profiles: ProfileServiceDep,
    user: AuthUser = Depends(get_current_user),
) -> UserResponse:
    """
    Get the current authenticated user's profile.

    Falls back to the token's data if no profile row exists yet.
    """
    return _profile_response(user, profiles.get_profile(user.id))


@router.get("/verify")
def verify_token(
    identity: IdentityServiceDep,
    token: AccessToken,
    user: AuthUser = Depends(get_current_user),
) -> dict:
    """
    Verify that the current token is valid.

    Besides the local signature check, asks the provider whether the
    session is still live (a signed-out token keeps a valid signature
    until it expires).
    """
    if not identity.is_authenticated(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session is no longer valid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {
        "valid": True,
        "user_id": str(user.id),
        "email": user.email
    }


# =============================================================================
# Account Management
# =============================================================================

@router.patch("/me", response_model=UserResponse)
def update_profile(
    request: UpdateProfileRequest,
    identity: IdentityServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    name = request.name.strip()
    _check_form(
        {"name": name},
        {"name": FieldRule(required=True, custom=validators.is_valid_name, message=NAME_MESSAGE)},
    )

    profile = identity.update_profile(user, name, request.photo_url)
    return _profile_response(user, profile)


@router.put("/me/email", response_model=UserResponse)
def update_email(
    request: UpdateEmailRequest,
    identity: IdentityServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Change the sign-in email. Needs a recent sign-in or the current password."""
    email = request.email.strip()
    _check_form(
        {"email": email},
        {"email": FieldRule(required=True, custom=validators.is_valid_email, message=INVALID_EMAIL_MESSAGE)},
    )

    profile = identity.update_email(user, email, request.current_password)
    return _profile_response(user, profile)


@router.put("/me/password", status_code=status.HTTP_204_NO_CONTENT)
def update_password(
    request: UpdatePasswordRequest,
    identity: IdentityServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Change the password. Needs a recent sign-in or the current password."""
    _check_form({"new_password": request.new_password}, {"new_password": _password_rule()})

    identity.update_password(user, request.new_password, request.current_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reauthenticate")
def reauthenticate(
    request: ReauthenticateRequest,
    identity: IdentityServiceDep,
    user: AuthUser = Depends(get_current_user),
) -> dict:
    _check_form(
        {"password": request.password},
        {"password": FieldRule(required=True)},
    )

    identity.reauthenticate(user, request.password)
    return {"reauthenticated": True, "user_id": str(user.id)}


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    ctx: ContextDep,
    request: Optional[DeleteAccountRequest] = Body(default=None),
    user: AuthUser = Depends(get_current_user),
):
    """
    Delete the account: profile row first, then the identity.

    Needs a recent sign-in or the current password. The user's to-dos are kept.
    """
    current_password = request.current_password if request is not None else None
    ctx.identity.delete_account(user, current_password)
    ctx.todos.cancel_subscriptions(user.id)
    ctx.profiles.cancel_subscriptions(user.id)
    logger.info(f"Account deleted via API: {user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
