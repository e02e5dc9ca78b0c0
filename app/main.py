# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the TaskBoard API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.context import AppContext
from app.websocket import websocket_manager, CHANGE_FEED_CHANNEL, apply_event
from app.exceptions import (
    TaskBoardException,
    taskboard_exception_handler,
    validation_exception_handler,
)
from app.routers import health, todos, profile
from app.auth import routes as auth_routes
from app.websocket import routes as websocket_routes
from core.services.change_feed import ChangeFeed

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Global flag for Redis listener task
_redis_listener_task = None
_shutdown_event = None


async def redis_pubsub_listener(feed: ChangeFeed):
    """
    Background task that listens to Redis pub/sub and runs local listeners.

    Every API worker runs one. A change published by any worker reaches the
    live queries of this worker through feed.dispatch() / feed.close_local().
    """
    import redis.asyncio as aioredis

    logger.info("Starting Redis pub/sub listener for change notifications")

    redis_client = aioredis.from_url(settings.REDIS_URL)
    pubsub = redis_client.pubsub()

    try:
        await pubsub.subscribe(CHANGE_FEED_CHANNEL)

        async for message in pubsub.listen():
            if _shutdown_event and _shutdown_event.is_set():
                break

            if message["type"] == "message":
                try:
                    # listeners re-query Supabase, keep them off the event loop
                    await asyncio.to_thread(apply_event, feed, message["data"])
                except ValueError as e:
                    logger.warning(f"Invalid change event in Redis message: {e}")
                except Exception as e:
                    logger.error(f"Error processing Redis message: {e}")

    except asyncio.CancelledError:
        logger.info("Redis pub/sub listener cancelled")
    except Exception as e:
        logger.error(f"Redis pub/sub listener error: {e}")
    finally:
        try:
            await pubsub.unsubscribe(CHANGE_FEED_CHANNEL)
            await redis_client.aclose()
        except Exception as e:
            logger.debug(f"Redis listener cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown:
    - Startup: Build the application context, start the Redis listener
    - Shutdown: Close live connections, stop background tasks
    """
    global _redis_listener_task, _shutdown_event

    # Startup
    logger.info(f"Starting TaskBoard API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    if getattr(app.state, "context", None) is None:
        app.state.context = AppContext.build(settings)
    ctx: AppContext = app.state.context

    # Start Redis pub/sub listener for cross-worker change notifications
    _shutdown_event = asyncio.Event()
    if settings.CHANGE_FEED_BACKEND == "redis":
        _redis_listener_task = asyncio.create_task(redis_pubsub_listener(ctx.feed))

    yield

    # Shutdown
    logger.info("Shutting down TaskBoard API")

    await websocket_manager.close_all()

    # Stop Redis listener
    if _shutdown_event:
        _shutdown_event.set()
    if _redis_listener_task:
        _redis_listener_task.cancel()
        try:
            await _redis_listener_task
        except asyncio.CancelledError:
            pass
        _redis_listener_task = None


# Create FastAPI application
app = FastAPI(
    title="TaskBoard API",
    description="""
## To-do List API

TaskBoard keeps a personal to-do list per user on top of Supabase
(Auth + Postgres), with live updates over WebSocket.

### How It Works

1. **Sign up / sign in** - Email and password, or Google / GitHub
2. **Manage to-dos** - Create, edit, complete, delete
3. **Stay in sync** - Open `/ws/todos` and receive the full list on every change

### Quick Start

```bash
# 1. Sign in
curl -X POST http://localhost:8000/api/v1/auth/signin \\
  -H "Content-Type: application/json" \\
  -d '{"email": "ada@example.com", "password": "secret1"}'

# 2. Create a to-do
curl -X POST http://localhost:8000/api/v1/todos \\
  -H "Authorization: Bearer $TOKEN" \\
  -H "Content-Type: application/json" \\
  -d '{"title": "Buy milk", "priority": "high"}'

# 3. Stats
curl http://localhost:8000/api/v1/todos/stats -H "Authorization: Bearer $TOKEN"
```
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Auth",
            "description": "Sign-up, sign-in, OAuth, password reset and account management",
        },
        {
            "name": "Todos",
            "description": "Create, list, update and delete to-dos",
        },
        {
            "name": "Profile",
            "description": "User profile and profile page statistics",
        },
        {
            "name": "WebSocket",
            "description": "Live dashboard and profile updates",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(TaskBoardException)
async def handle_taskboard_exception(request: Request, exc: TaskBoardException):
    """Handle custom TaskBoard exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message} {exc.details}")
    return await taskboard_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    """Handle malformed request bodies / parameters."""
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Authentication endpoints
app.include_router(
    auth_routes.router,
    prefix="/api/v1/auth",
    tags=["Auth"]
)

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

# To-do endpoints
app.include_router(
    todos.router,
    prefix="/api/v1/todos",
    tags=["Todos"]
)

# Profile endpoints
app.include_router(
    profile.router,
    prefix="/api/v1/users",
    tags=["Profile"]
)

# WebSocket endpoints (Real-time updates)
app.include_router(
    websocket_routes.router,
    tags=["WebSocket"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "TaskBoard API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
