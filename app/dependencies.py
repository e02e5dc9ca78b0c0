# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
#
# The AppContext is created in the lifespan (app/main.py) and stored on
# app.state; tests override get_context with their own.
# =============================================================================

from typing import Annotated

from fastapi import Depends
from starlette.requests import HTTPConnection

from app.auth.dependencies import get_access_token, get_current_user
from app.auth.models import AuthUser
from app.context import AppContext
from core.services.identity_service import IdentityService
from core.services.profile_service import ProfileService
from core.services.todo_service import TodoService


def get_context(connection: HTTPConnection) -> AppContext:
    """Get the application context built at startup."""
    return connection.app.state.context


def get_todo_service(ctx: AppContext = Depends(get_context)) -> TodoService:
    return ctx.todos


def get_profile_service(ctx: AppContext = Depends(get_context)) -> ProfileService:
    return ctx.profiles


def get_identity_service(ctx: AppContext = Depends(get_context)) -> IdentityService:
    return ctx.identity


# Type aliases for dependency injection
ContextDep = Annotated[AppContext, Depends(get_context)]
TodoServiceDep = Annotated[TodoService, Depends(get_todo_service)]
ProfileServiceDep = Annotated[ProfileService, Depends(get_profile_service)]
IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
AccessToken = Annotated[str, Depends(get_access_token)]
