import logging
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.api import admin, cron, health, sse, status
from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.core.errors import CapacityExceeded, ValidationError, init_sentry
from app.core.rate_limit import RateLimiter
from app.db import create_db_and_tables, engine
from app.middleware.context import RequestContextMiddleware
from app.services.broadcast import BroadcastHub
from app.services.email_dispatcher import EmailDispatcher
from app.services.notification_queue import NotificationQueue
from app.services.poller import Poller
from app.services.status_store import StatusStore

logger = logging.getLogger(__name__)


def _log_breaker_transition(name: str, old_state: str, new_state: str) -> None:
    logger.warning(f"Circuit breaker '{name}': {old_state} -> {new_state}")


def build_components(app: FastAPI, db_engine) -> None:
    """Create the pipeline components once per process and store them on app.state."""
    breaker = CircuitBreaker(
        name="ovh_api",
        failure_threshold=settings.OVH_CIRCUIT_BREAKER_THRESHOLD,
        recovery_timeout=settings.OVH_CIRCUIT_BREAKER_COOLDOWN,
        on_state_change=_log_breaker_transition,
    )
    rate_limiter = RateLimiter(
        per_second=settings.EMAIL_RATE_PER_SECOND,
        per_minute=settings.EMAIL_RATE_PER_MINUTE,
        per_hour=settings.EMAIL_RATE_PER_HOUR,
    )
    hub = BroadcastHub(max_connections=settings.MAX_SSE_CONNECTIONS, queue_size=settings.SSE_QUEUE_SIZE)
    store = StatusStore(db_engine)
    queue = NotificationQueue(db_engine)

    app.state.breaker = breaker
    app.state.rate_limiter = rate_limiter
    app.state.hub = hub
    app.state.status_store = store
    app.state.notification_queue = queue
    app.state.poller = Poller(
        breaker=breaker,
        store=store,
        queue=queue,
        hub=hub,
        base_url=settings.OVH_BASE_URL,
        subsidiary=settings.OVH_SUBSIDIARY,
        plan_code_template=settings.OVH_PLAN_CODE_TEMPLATE,
        timeout=settings.OVH_API_TIMEOUT,
    )
    app.state.dispatcher = EmailDispatcher(
        db_engine,
        rate_limiter,
        max_parallel=settings.EMAIL_MAX_PARALLEL,
        batch_delay=settings.EMAIL_BATCH_DELAY_MS / 1000,
        max_processing_seconds=settings.EMAIL_MAX_PROCESSING_SECONDS,
        send_timeout=settings.EMAIL_SEND_TIMEOUT,
        max_attempts=settings.EMAIL_MAX_ATTEMPTS,
        max_batch_size=settings.EMAIL_MAX_BATCH_SIZE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("=" * 50)
    logger.info(f"{settings.PROJECT_NAME} API Starting ({settings.ENVIRONMENT})")
    logger.info("=" * 50)

    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)
    create_db_and_tables()
    build_components(app, engine)

    try:
        yield
    finally:
        closed = app.state.hub.close_all()
        logger.info(f"Shutdown: closed {closed} SSE connections")


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json", lifespan=lifespan)

# Set all CORS enabled origins
origins = [
    "http://localhost:3000",  # Next/React default
    "http://127.0.0.1:3000",
    settings.APP_URL,  # Dynamic from env
]

# Clean up duplicates and empty strings
origins = list(set([o for o in origins if o]))

# Trust X-Forwarded-* headers from the hosting proxy
app.add_middleware(cast(Any, ProxyHeadersMiddleware), trusted_hosts=["*"])

app.add_middleware(cast(Any, RequestContextMiddleware))

app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Retry-After"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request", "message": str(exc)})


@app.exception_handler(CapacityExceeded)
async def capacity_exceeded_handler(request: Request, exc: CapacityExceeded):
    return JSONResponse(
        status_code=503,
        content={"error": "Server at capacity", "message": str(exc)},
        headers={"Retry-After": "30"},
    )


app.include_router(cron.router, prefix=f"{settings.API_V1_STR}/cron", tags=["cron"])
app.include_router(admin.router, prefix=f"{settings.API_V1_STR}/admin", tags=["admin"])
app.include_router(sse.router, prefix=f"{settings.API_V1_STR}/sse", tags=["sse"])
app.include_router(status.router, prefix=f"{settings.API_V1_STR}/status", tags=["status"])
app.include_router(health.router, prefix=f"{settings.API_V1_STR}/health", tags=["health"])


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}
