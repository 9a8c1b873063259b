"""
ASGI entry point: logging, lifespan, middleware stack and routes.
Version: 1.0.0
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
import asyncio
import os
from typing import Any, Dict, Optional

from . import APP_DESCRIPTION
from .config import Settings, settings
from .api.routes import chat, slack, payments, health
from .container import ServiceContainer
from .session import InMemorySessionStore, RedisSessionStore
from .session.manager import SESSION_KEY_PREFIX
from .utils.telemetry import setup_telemetry, metrics_collector, update_active_sessions
from .utils.middleware import (
    RequestIDMiddleware,
    TimingMiddleware,
    RateLimitMiddleware,
    ErrorHandlingMiddleware
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = os.path.join("logs", "support_relay.log")


def configure_logging(config: Settings) -> None:
    """Console logging everywhere, plus a log file outside development."""
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level.upper(), logging.INFO)
    handlers: list = [logging.StreamHandler()]

    if config.environment not in ("development", "testing"):
        os.makedirs(os.path.dirname(LOG_FILE), exist_ok=True)
        handlers.append(logging.FileHandler(LOG_FILE, mode='a'))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # Per-request access lines come from uvicorn; aiohttp is noisy at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


configure_logging(settings)
logger = logging.getLogger(__name__)


# ===========================
# Background Sweeper
# ===========================

async def sweep_sessions(container: ServiceContainer, stop: asyncio.Event, interval: float) -> None:
    """
    Purge expired in-memory sessions and watch Redis connectivity until stopped.

    Redis expires keys itself; for it this only reports a failed ping.
    """
    store = container.session_store
    logger.info(f"Session sweeper running every {interval}s ({type(store).__name__})")

    while True:
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
            return
        except asyncio.TimeoutError:
            pass

        try:
            removed = await store.cleanup_expired()
            if removed:
                logger.info(f"Swept {removed} expired keys")

            if isinstance(store, InMemorySessionStore):
                update_active_sessions(await store.count_prefix(SESSION_KEY_PREFIX))
            elif isinstance(store, RedisSessionStore) and not await store.ping():
                logger.warning("Redis ping failed during sweep")

        except Exception as e:
            logger.error(f"Session sweep failed: {e}", exc_info=True)


async def report_startup(container: ServiceContainer) -> None:
    """
    Log what this instance can reach.

    Raises:
        RuntimeError: The session store failed its probe; nothing works without it
    """
    store_name = type(container.session_store).__name__
    probe = await container.session_store.health_check()
    store_ok = bool(probe.get("healthy"))

    logger.info("Startup checks:")
    logger.info(f"  {'✓' if store_ok else '✗'} session store ({store_name}, ttl {settings.session_ttl_seconds}s)")
    logger.info(f"  ✓ locks: {type(container.lock_manager).__name__}")
    for name, status in container.collaborator_status().items():
        mark = "✓" if status == "configured" else "✗"
        logger.info(f"  {mark} {name}: {status.replace('_', ' ')}")

    if not store_ok:
        raise RuntimeError(f"Session store unavailable: {probe.get('error', 'probe failed')}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the container, start the sweeper, and tear both down on exit."""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")
    logger.info("=" * 60)

    if not hasattr(app.state, "container"):
        app.state.container = ServiceContainer(settings)
    container: ServiceContainer = app.state.container

    stop = asyncio.Event()
    sweeper: Optional[asyncio.Task] = None

    try:
        await container.initialize()
        await report_startup(container)
        sweeper = asyncio.create_task(
            sweep_sessions(container, stop, settings.session_cleanup_interval_seconds)
        )
    except Exception as e:
        logger.error(f"✗ Startup failed: {e}", exc_info=True)
        await container.cleanup()
        raise

    logger.info(f"✓ Ready on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down...")
    stop.set()

    if sweeper is not None:
        try:
            await asyncio.wait_for(sweeper, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Sweeper did not stop in time; cancelling")
            sweeper.cancel()

    try:
        await container.cleanup()
    except Exception as e:
        logger.error(f"Container cleanup failed: {e}", exc_info=True)

    logger.info("✓ Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=APP_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None
)

# Starlette runs the last added middleware first
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(TimingMiddleware)
app.add_middleware(RequestIDMiddleware)

if settings.rate_limit_enabled:
    app.add_middleware(
        RateLimitMiddleware,
        calls=settings.rate_limit_requests,
        period=settings.rate_limit_period,
        exempt_paths=("/health", "/metrics", f"{settings.api_prefix}/slack-webhook")
    )

# The widget is embedded cross-origin on the storefront
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time", "X-RateLimit-Limit", "X-RateLimit-Remaining"]
)

if settings.enable_telemetry:
    setup_telemetry(app)

app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(chat.router, prefix=settings.api_prefix, tags=["Chat"])
app.include_router(slack.router, prefix=settings.api_prefix, tags=["Slack"])
app.include_router(payments.router, prefix=settings.api_prefix, tags=["Payments"])


@app.get("/", tags=["Root"])
async def root(request: Request) -> Dict[str, Any]:
    """Service info, session policy and in-process counters."""
    container: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
    stats: Dict[str, Any] = {}

    if container is not None:
        try:
            stats = await container.get_stats()
        except Exception as e:
            logger.warning(f"Failed to collect container stats: {e}")

    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "status": "operational",
        "endpoints": {
            "api": settings.api_prefix,
            "health": "/health",
            "metrics": "/metrics" if settings.enable_telemetry else "disabled",
            "docs": "/docs" if settings.debug else "disabled"
        },
        "session_management": {
            "store_type": settings.session_store_type,
            "ttl_seconds": settings.session_ttl_seconds,
            "refresh_ttl_on_read": settings.session_refresh_ttl_on_read
        },
        "stats": stats,
        "metrics": metrics_collector.get_stats()
    }


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors in the widget's {success, error} shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors."""
    logger.info(f"Request validation failed: {exc.errors()}", extra={"path": request.url.path})
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request body"}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "support_relay.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
        workers=1 if settings.debug else settings.api_workers
    )
