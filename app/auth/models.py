# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data: the authenticated user, the
# session returned by sign-in flows, and the request bodies of the auth page.
# =============================================================================

from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime, timezone
from typing import Any, Optional


class AuthUser(BaseModel):
    """
    Authenticated user extracted from a Supabase JWT or auth response.

    This is the minimal user info available without querying the
    `users` table.
    """
    id: UUID
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    # when the user last actually signed in (not a token refresh); None if unknown
    signed_in_at: Optional[datetime] = Field(default=None, exclude=True)

    model_config = {"frozen": True}

    @classmethod
    def from_provider_user(cls, user: Any) -> "AuthUser":
        """Build from a supabase-py `User` object."""
        metadata = getattr(user, "user_metadata", None) or {}
        return cls(
            id=UUID(str(user.id)),
            email=getattr(user, "email", None),
            display_name=(
                metadata.get("display_name")
                or metadata.get("full_name")
                or metadata.get("name")
                or metadata.get("user_name")
            ),
            photo_url=metadata.get("avatar_url") or metadata.get("picture"),
        )

    @property
    def fallback_name(self) -> str:
        """Display name, or the local part of the email when there is none."""
        if self.display_name:
            return self.display_name
        return (self.email or "").split("@")[0]


class AuthSession(BaseModel):
    """
    Result of a successful sign-in / sign-up.

    Tokens are None when the project requires email confirmation before
    the first sign-in.
    """
    user: AuthUser
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"

    @classmethod
    def from_response(cls, response: Any) -> "AuthSession":
        """Build from a supabase-py `AuthResponse`."""
        session = getattr(response, "session", None)
        return cls(
            user=AuthUser.from_provider_user(response.user),
            access_token=getattr(session, "access_token", None),
            refresh_token=getattr(session, "refresh_token", None),
            expires_in=getattr(session, "expires_in", None),
        )


class OAuthStart(BaseModel):
    """Where to send the browser to continue an OAuth sign-in."""
    provider: str
    url: str
    flow_id: str


class UserResponse(BaseModel):
    """
    Full user response for API endpoints.

    Includes profile data from the public.users table.
    """
    id: UUID
    email: Optional[str] = None
    name: Optional[str] = None
    photo_url: Optional[str] = None
    provider: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Request Bodies
# =============================================================================
# Plain strings on purpose: the routes run lib.validators so the user sees
# the same messages as everywhere else.

class SignUpRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")

    model_config = {"populate_by_name": True}


class SignInRequest(BaseModel):
    email: str = ""
    password: str = ""


class PasswordResetRequest(BaseModel):
    email: str = ""


class UpdateEmailRequest(BaseModel):
    email: str = ""
    current_password: Optional[str] = None


class UpdatePasswordRequest(BaseModel):
    new_password: str = ""
    current_password: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    name: str = ""
    photo_url: Optional[str] = None


class ReauthenticateRequest(BaseModel):
    password: str = ""


class DeleteAccountRequest(BaseModel):
    current_password: Optional[str] = None


class TokenPayload(BaseModel):
    """
    Decoded JWT token payload from Supabase.

    Supabase tokens include standard JWT claims plus custom claims.
    """
    sub: str  # User ID
    email: Optional[str] = None
    aud: str  # Audience (should be "authenticated")
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp
    role: Optional[str] = None  # User role
    user_metadata: Optional[dict[str, Any]] = None
    amr: Optional[list[dict[str, Any]]] = None  # Authentication methods with timestamps

    def signed_in_at(self) -> datetime:
        """Time of the most recent sign-in; tokens without `amr` fall back to `iat`."""
        timestamps = [int(entry["timestamp"]) for entry in self.amr or [] if entry.get("timestamp")]
        return datetime.fromtimestamp(max(timestamps, default=self.iat), tz=timezone.utc)
