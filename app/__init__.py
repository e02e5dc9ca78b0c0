# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the FastAPI web application:
# - main.py: App entry point, middleware setup, error handlers
# - config.py: Environment variable loading and settings
# - context.py: Composition root (Supabase client, change feed, services)
# - auth/: Bearer token verification and the auth page routes
# - routers/: To-do, profile and health endpoints
# - websocket/: Live dashboard and profile streams
#
# The app layer is thin - it handles HTTP concerns and delegates
# business logic to the core/ package.
# =============================================================================
