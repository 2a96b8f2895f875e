"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clicktrail.api import analytics_router, redirect_router
from clicktrail.consumers import get_consumer, start_consumer, stop_consumer
from clicktrail.core.config import get_settings
from clicktrail.core.database import close_db
from clicktrail.core.observability import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    setup_observability,
)
from clicktrail.core.redis import close_redis
from clicktrail.exceptions import (
    ClicktrailError,
    NotFoundError,
    PersistenceError,
    UpstreamUnavailable,
    ValidationError,
)
from clicktrail.services import (
    close_geoip_service,
    get_click_recorder,
    get_dispatcher,
    get_retention_sweeper,
    start_retention_sweeper,
    stop_retention_sweeper,
)

settings = get_settings()

# Get logger (will be configured by setup_observability)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(
        "Starting Clicktrail",
        version=settings.app_version,
        click_transport=settings.click_transport,
    )

    if settings.click_transport == "redis":
        consumer = get_consumer()
        consumer.register_handler(get_click_recorder().record_click)
        await start_consumer()

    await start_retention_sweeper()

    yield

    # Shutdown
    logger.info("Shutting down Clicktrail")

    await stop_retention_sweeper()

    # Let in-flight click recordings finish before closing their resources
    await get_dispatcher().drain()

    if settings.click_transport == "redis":
        await stop_consumer()

    await close_geoip_service()
    await close_redis()
    logger.info("Redis connection closed")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Click analytics for short links",
    lifespan=lifespan,
)

# Set up observability (logging, tracing, metrics, Sentry)
setup_observability(app)

# Middleware stack (first added = outermost = runs last on request, first on response)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


def _error_response(status_code: int, detail: str, exc: ClicktrailError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error_code": exc.error_code},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc) or "Not found", exc)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), exc)


@app.exception_handler(PersistenceError)
@app.exception_handler(UpstreamUnavailable)
async def unavailable_handler(request: Request, exc: ClicktrailError) -> JSONResponse:
    logger.error("Request failed - backend unavailable", error=str(exc), error_code=exc.error_code)
    if request.url.path.startswith("/analytics"):
        detail = "Analytics temporarily unavailable"
    else:
        detail = "Service temporarily unavailable"
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, detail, exc)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    consumer_running = get_consumer().is_running
    healthy = settings.click_transport == "inline" or consumer_running
    return {
        "status": "healthy" if healthy else "degraded",
        "service": "clicktrail",
        "click_transport": settings.click_transport,
        "consumer_running": consumer_running,
    }


@app.get("/stats")
async def service_stats() -> dict:
    """Get service statistics."""
    return {
        "service": "clicktrail",
        "version": settings.app_version,
        "recorder": get_click_recorder().stats,
        "dispatcher": get_dispatcher().stats,
        "consumer": get_consumer().stats,
        "retention": get_retention_sweeper().stats,
    }


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Welcome to Clicktrail", "version": settings.app_version}


# Routers last: the redirect catch-all /{short_code} must not shadow the routes above
app.include_router(analytics_router)
app.include_router(redirect_router)
