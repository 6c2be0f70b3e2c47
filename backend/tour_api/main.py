"""
Damascus Tour API - Main Application Entry Point

Tourism booking backend:
- Booking lifecycle with an explicit transition table and optimistic versioning
- Stripe checkout sessions and payment intents behind an injectable gateway
- Webhook events stored in a durable outbox and applied with retry/backoff
- Structured logging with request correlation, Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tour_api.core.config import get_settings
from tour_api.core.logging import setup_logging, get_logger
from tour_api.core.metrics import metrics_endpoint
from tour_api.api.errors import register_exception_handlers
from tour_api.api.router import api_router
from tour_api.api.middleware import RequestLoggingMiddleware
from tour_api.db.session import SessionLocal, engine
from tour_api.infrastructure.redis_client import RedisClient, get_redis
from tour_api.infrastructure.stripe_gateway import get_payment_gateway
from tour_api.services.cache_service import get_cache_stats
from tour_api.services.webhook_service import run_outbox_worker

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    # Built once here; request handlers receive it through the dependency.
    get_payment_gateway()
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("stripe_not_configured", message="Payment endpoints will return 500")

    stop = asyncio.Event()
    worker = None
    if settings.OUTBOX_WORKER_ENABLED:
        worker = asyncio.create_task(run_outbox_worker(SessionLocal, stop))

    yield

    stop.set()
    if worker:
        await worker
    await RedisClient.close()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tourism booking API with payment reconciliation",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL] if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
