"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check

# ── API routers ──
from backend.app.api.v1.notifications import router as notification_router
from backend.app.notifications.service import (
    NotificationService,
    get_notification_service,
    shutdown_notification_service,
)

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    yield
    await shutdown_notification_service()
    logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Citizen notification fan-out for incident dispatch. "
        "Subscribers follow incidents and receive progress updates over "
        "push (iOS / Android / web), HTML email and SMS, filtered by "
        "per-subscriber channel preferences, critical-only mode and "
        "timezone-local quiet hours. Also provides resolution reports, "
        "region-wide emergency broadcasts, a delivery ledger with "
        "statistics, and retention sweeping."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(notification_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "modules": [
            "subscription-registry",
            "progress-updates",
            "resolution-reports",
            "emergency-broadcast",
            "delivery-ledger",
            "retention-sweep",
        ],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check(service: NotificationService = Depends(get_notification_service)):
    """Deep health probe: providers and engine state."""
    report = await run_health_check(service)
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness(service: NotificationService = Depends(get_notification_service)):
    """Kubernetes readiness probe; simulated providers still count as ready."""
    report = await run_health_check(service)
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
