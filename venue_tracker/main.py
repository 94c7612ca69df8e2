"""
Main FastAPI application for the Venue Tracker API.

Group members poll this service to see each other's position on the venue
map, chat, and vote on fights. All state lives in an in-memory registry
created with the app; a restart loses it and clients recreate their groups.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from venue_tracker.api.routes import bets, chat, fights, groups, location
from venue_tracker.core import metrics
from venue_tracker.core.config import settings
from venue_tracker.core.errors import InternalError, VenueTrackerError
from venue_tracker.core.logging import configure_logging, get_logger
from venue_tracker.core.middleware import CorrelationIdMiddleware
from venue_tracker.core.rate_limit import limiter
from venue_tracker.core.scheduler import RegistryScheduler
from venue_tracker.services.registry import Registry

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan: background jobs up, registry torn down on exit."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    scheduler = RegistryScheduler(app.state.registry, interval_seconds=settings.STATS_REFRESH_SECONDS)
    await scheduler.start()
    app.state.scheduler = scheduler

    yield

    await scheduler.stop()
    app.state.registry.clear()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Live group positions on a venue map, group chat and fight votes over HTTP polling",
    lifespan=lifespan,
)
app.state.registry = Registry.from_settings(settings)
app.state.scheduler = None
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware, slow_request_ms=settings.SLOW_REQUEST_MS)

instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(groups.router, prefix="/api")
app.include_router(location.router, prefix="/api")
app.include_router(chat.router, prefix="/api")
app.include_router(bets.router, prefix="/api")
app.include_router(fights.router, prefix="/api")


@app.get("/")
async def root(request: Request):
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "join": "/api/groups/join",
            "group": "/api/groups/{code}",
            "location": "/api/location",
            "chat": "/api/chat",
            "bets": "/api/bets",
            "fights": "/api/fights",
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        },
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check with registry size and scheduler status."""
    registry: Registry = request.app.state.registry
    stats = registry.stats()
    metrics.update_registry_metrics(registry)

    scheduler = request.app.state.scheduler
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "components": {
            "registry": {
                "groups": stats.groups,
                "users": stats.users,
                "online_users": stats.online_users,
            },
            "scheduler": {"status": "running" if scheduler and scheduler.running else "stopped"},
        },
    }


# Exception handlers
@app.exception_handler(VenueTrackerError)
async def venue_tracker_exception_handler(request: Request, exc: VenueTrackerError):
    """Typed registry and validation errors become ``{"error": message}``."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.info(
            f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}",
            extra={"status": exc.status_code},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "fields": [f for f in fields if f]},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything unexpected is logged with its traceback and answered as an InternalError."""
    logger.exception(f"Unhandled exception: {exc}")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "venue_tracker.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
