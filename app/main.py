import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.router import api_v1_router
from app.core.config import settings, validate_settings_for_production
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.middleware import RequestLoggingMiddleware
from app.core.rate_limit import limiter
from app.core.sentry import init_sentry
from app.db.postgres import engine
from app.gateway.errors import (
    AiError,
    AiNotFoundError,
    DescriptionTooShortError,
    NotConfiguredError,
    ProviderError,
    RateLimitExceededError,
)
from app.gateway.gateway import build_gateway

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    logger.info("Starting issue tracker AI service (provider=%s)", app.state.ai_gateway.provider_name)

    yield

    # Shutdown
    await engine.dispose()
    logger.info("Issue tracker AI service shut down")


app = FastAPI(
    title="Issue Tracker AI",
    description="AI summaries, suggestions, duplicate detection and auto-labeling for issues",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)

# Provider clients are built without network calls, so this is safe at import time
app.state.ai_gateway = build_gateway(settings)


def ai_error_status(exc: AiError) -> int:
    """HTTP status for a gateway error."""
    if isinstance(exc, (NotConfiguredError, DescriptionTooShortError)):
        return 400
    if isinstance(exc, AiNotFoundError):
        return 404
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, ProviderError):
        return 503 if exc.retryable else 502
    return 500


@app.exception_handler(AiError)
async def _ai_error_handler(request: Request, exc: AiError):
    status_code = ai_error_status(exc)
    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)
    logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message}, headers=headers)


# Log unhandled exceptions with full traceback
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging & metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: allowed_origins is comma-separated
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_v1_router)


@app.get("/api/v1/health")
async def health(request: Request):
    gateway = request.app.state.ai_gateway
    return {
        "status": "ok",
        "ai_provider": gateway.provider_name,
        "ai_status": gateway.providers.status.value,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
