"""
Camp Waitlist API - Main Application Entry Point

Admission control for full camp sessions:
- FIFO waitlist with contiguous positions per camp
- One time-boxed offer at a time per freed seat, capacity-guarded
- Expiry sweep that requeues lapsed offers and moves the queue along
- Notifications through a retrying outbox
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from campwaitlist.core.config import get_settings
from campwaitlist.core.exceptions import WaitlistError
from campwaitlist.core.logging import setup_logging, get_logger
from campwaitlist.core.metrics import metrics_endpoint
from campwaitlist.api.router import api_router
from campwaitlist.api.middleware import RequestLoggingMiddleware
from campwaitlist.infrastructure.redis_client import RedisClient
from campwaitlist.scheduler import shutdown_scheduler, start_scheduler
from campwaitlist.services.interfaces import NotificationOutbox
from campwaitlist.services.store_factory import get_outbox

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        queue_store=settings.QUEUE_STORE_BACKEND,
        outbox=settings.OUTBOX_BACKEND,
    )

    if settings.SWEEP_SCHEDULER_ENABLED:
        start_scheduler(settings)

    yield

    shutdown_scheduler()
    await RedisClient.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Waitlist and offer management for full camp sessions",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(WaitlistError)
async def waitlist_error_handler(request: Request, exc: WaitlistError):
    logger.warning("waitlist_request_rejected", error=exc.code, detail=exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
    )


@app.get("/health", tags=["Health"])
async def health_check(outbox: NotificationOutbox = Depends(get_outbox)):
    """Health check endpoint for Docker and load balancers."""
    try:
        outbox_pending = await outbox.pending_count()
    except Exception:
        logger.warning("health_outbox_unavailable")
        outbox_pending = None
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "outbox_pending": outbox_pending,
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
