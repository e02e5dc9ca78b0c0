# =============================================================================
# app/routers/profile.py - User Profile Endpoints
# =============================================================================
# The signed-in user's profile record and profile page counters.
# Name/email/password changes that must also reach the identity provider
# live under /auth (app/auth/routes.py).
# =============================================================================

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.auth import get_current_user, AuthUser
from app.dependencies import ProfileServiceDep
from app.exceptions import ProfileNotFoundError
from core.models.user import UserProfile, UserStats

router = APIRouter()


class ProfileWithStats(BaseModel):
    profile: UserProfile
    stats: UserStats


@router.get("/me", response_model=ProfileWithStats)
def get_my_profile(
    profiles: ProfileServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Get the user's profile together with their to-do counters.

    Raises:
        404: If the user has no profile record
    """
    profile = profiles.get_profile(user.id)
    if profile is None:
        raise ProfileNotFoundError(str(user.id))

    return ProfileWithStats(profile=profile, stats=profiles.get_user_stats(user.id))


@router.get("/me/stats", response_model=UserStats)
def get_my_stats(
    profiles: ProfileServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Total, completed, pending and high priority (any status) to-do counts."""
    return profiles.get_user_stats(user.id)
