"""
Karaoke Queue Service - Main Application

Single FastAPI application that serves:
- REST API endpoints for events, the song catalog, requests, the live
  queue and the per-event crate
- Push notifications to singers' devices through Expo
- Spotify catalog lookups
- Health check endpoint

All state lives in one SQLite file; identity comes from an external
provider as a signed bearer token.
"""

import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from karaoke.config import (
    APP_ENV,
    APP_HOST,
    APP_PORT,
    APP_VERSION,
    CORS_ORIGINS,
    DEBUG,
    LOG_LEVEL,
    NOTIFICATIONS_ENABLED,
    ensure_directories,
)
from karaoke.database import init_db
from karaoke.errors import KaraokeError
from karaoke.routes.api import router as api_router
from karaoke.routes.queue import router as queue_router
from karaoke.services.notifications import PushNotifier
from karaoke.services.spotify import SpotifyClient, TokenCache

# ---------------------------------------------------------------------------
# Logging setup (stdout only)
# ---------------------------------------------------------------------------
logger.remove()

logger.add(
    sys.stdout,
    level="DEBUG" if DEBUG else LOG_LEVEL,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    On startup:
        1. Create the data directory
        2. Initialize / migrate the SQLite database
        3. Build the push notifier and Spotify client on ``app.state``

    On shutdown:
        4. Close the outbound HTTP clients
    """
    logger.info("🚀 Starting Karaoke Queue Service v{}", APP_VERSION)
    logger.info("📋 Environment: {} | Debug: {}", APP_ENV, DEBUG)

    # Step 1: Ensure data directory exists
    ensure_directories()
    logger.info("📁 Data directory initialized")

    # Step 2: Initialize database (creates tables / runs migrations)
    try:
        init_db()
    except Exception as e:
        logger.critical("❌ Database initialization failed: {}", e)
        raise

    # Step 3: Outbound integrations
    app.state.notifier = PushNotifier()
    app.state.spotify = SpotifyClient(cache=TokenCache())
    if not NOTIFICATIONS_ENABLED:
        logger.warning("🔕 Push notifications DISABLED")
    if not app.state.spotify.is_configured:
        logger.warning("🎧 Spotify not configured — save-from-spotify is unavailable")

    logger.success("✅ Application ready — listening on {}:{}", APP_HOST, APP_PORT)

    yield

    # --- Shutdown ---
    logger.info("🛑 Shutting down Karaoke Queue Service …")

    # Step 4: Close shared httpx clients
    await app.state.notifier.close()
    await app.state.spotify.close()

    logger.info("👋 Shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Karaoke Queue Service",
        description=(
            "Backend for karaoke events: song catalog with deduplication, "
            "singer requests with admin approval, a live queue and per-event crates."
        ),
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
    )

    # ------------------------------------------------------------------
    # CORS (mobile / web clients)
    # ------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------
    # Error handlers
    # ------------------------------------------------------------------
    @app.exception_handler(KaraokeError)
    async def karaoke_error_handler(request: Request, exc: KaraokeError):
        """Render domain errors as ``{error, code, details}``."""
        if exc.status_code >= 500:
            logger.error("❌ {} {} — {}: {}", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Render body/query parsing failures in the same shape as ValidationError."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or None
        return JSONResponse(
            status_code=400,
            content={
                "error": first.get("msg", "Invalid request"),
                "code": "VALIDATION_ERROR",
                "details": {"field": field, "errors": len(errors)},
            },
        )

    # ------------------------------------------------------------------
    # Request logging middleware
    # ------------------------------------------------------------------
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every incoming HTTP request with timing information."""
        start = time.time()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration = round(time.time() - start, 3)
            logger.error(
                "❌ {method} {path} — unhandled error after {duration}s: {exc}",
                method=request.method,
                path=request.url.path,
                duration=duration,
                exc=exc,
            )
            raise

        duration = round(time.time() - start, 3)
        status = response.status_code
        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "📤 {method} {path} — {status} [{duration}s]",
            method=request.method,
            path=request.url.path,
            status=status,
            duration=duration,
        )
        return response

    # ------------------------------------------------------------------
    # Register routers
    # ------------------------------------------------------------------
    app.include_router(api_router)  # /api/*
    app.include_router(queue_router)  # /api/events/{event_id}/*

    return app


# ---------------------------------------------------------------------------
# Create the app instance (used by Uvicorn)
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Direct execution (development)
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "karaoke.main:app",
        host=APP_HOST,
        port=APP_PORT,
        reload=DEBUG,
        log_level="debug" if DEBUG else "info",
    )
