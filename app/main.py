import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

from app.api.v1.router import router as api_v1_router
from app.core.exceptions import (
    EventValidationError,
    JobNotFoundError,
    LeadNotFoundError,
    NoActiveRuleError,
    RecalculationConflictError,
    RuleNotFoundError,
    RuleValidationError,
    TransientStoreError,
)
from app.core.config import settings as app_settings
from app.core.rate_limit import limiter
from app.core.database import AsyncSessionLocal
from app.dependencies import build_scoring_services, get_redis_client
from app.services.queue_maintenance import start_queue_maintenance_loop

# Configure logging
logging.basicConfig(
    level=getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the service graph and manage the background workers."""
    redis_client = await get_redis_client()
    services = build_scoring_services(AsyncSessionLocal, redis_client=redis_client)
    app.state.services = services

    maintenance_task = None
    if app_settings.WORKERS_ENABLED:
        await services.workers.start()
        maintenance_task = asyncio.create_task(
            start_queue_maintenance_loop(services.queue)
        )
        logger.info("Background scoring workers scheduled")
    yield
    # Shutdown: stop pulling jobs, then cancel maintenance
    await services.workers.stop()
    if maintenance_task is not None:
        maintenance_task.cancel()
        try:
            await maintenance_task
        except asyncio.CancelledError:
            logger.info("Queue maintenance task stopped")
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(
    title="Lead Scoring Engine",
    description="Event-driven lead scoring with idempotent ingestion and real-time score updates",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware – restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(LeadNotFoundError)
async def lead_not_found_handler(request: Request, exc: LeadNotFoundError):
    logger.warning("Lead not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "lead_not_found"},
    )


@app.exception_handler(RuleNotFoundError)
async def rule_not_found_handler(request: Request, exc: RuleNotFoundError):
    logger.warning("Scoring rule not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "rule_not_found"},
    )


@app.exception_handler(NoActiveRuleError)
async def no_active_rule_handler(request: Request, exc: NoActiveRuleError):
    logger.warning("No active scoring rule: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "no_active_rule"},
    )


@app.exception_handler(JobNotFoundError)
async def job_not_found_handler(request: Request, exc: JobNotFoundError):
    logger.warning("Job not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "job_not_found"},
    )


@app.exception_handler(EventValidationError)
async def event_validation_handler(request: Request, exc: EventValidationError):
    logger.warning("Invalid event data: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_event"},
    )


@app.exception_handler(RuleValidationError)
async def rule_validation_handler(request: Request, exc: RuleValidationError):
    logger.warning("Invalid scoring rule: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_rule"},
    )


@app.exception_handler(RecalculationConflictError)
async def recalculation_conflict_handler(
    request: Request, exc: RecalculationConflictError
):
    logger.warning("Recalculation conflict: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "recalculation_conflict"},
    )


@app.exception_handler(TransientStoreError)
async def transient_store_handler(request: Request, exc: TransientStoreError):
    logger.error("Transient storage failure: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "store_unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
