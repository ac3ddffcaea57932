"""
SensiLog Web API

FastAPI application for logging sensitivity and gear settings and analysing
Valorant match performance against them.

This package exposes:
- app: The FastAPI application (used by uvicorn and server.py)
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from sensilog import __version__
from sensilog.api.shared import RATE_LIMITING_ENABLED, limiter
from sensilog.core.config import get_config, setup_logging
from sensilog.core.errors import SensiLogError
from sensilog.infra.job_store import SyncJobStore

config = get_config()
setup_logging(config.logging)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = get_config()
    logger.info(
        f"SensiLog API {__version__} starting ({cfg.app.environment}, "
        f"mock auth {'on' if cfg.mock_auth_enabled else 'off'})"
    )
    try:
        SyncJobStore().cleanup_expired(cfg.sync.job_retention_days)
    except OperationalError as e:
        logger.warning(f"Sync job cleanup skipped, database unavailable: {e}")
    yield


# =============================================================================
# FastAPI App Creation
# =============================================================================

app = FastAPI(
    title="SensiLog API",
    description=(
        "Sensitivity and gear log for Valorant players - settings history, "
        "Riot match sync and performance analytics"
    ),
    version=__version__,
    lifespan=lifespan,
)

# =============================================================================
# CORS Configuration
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.app.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Rate Limiting Setup
# =============================================================================

if RATE_LIMITING_ENABLED:
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    logger.info(
        f"Rate limiting enabled with X-Forwarded-For support "
        f"(default: {', '.join(config.rate_limit.default_limits)}, "
        f"callback: {config.rate_limit.callback_limit}, sync: {config.rate_limit.sync_limit})"
    )
else:
    logger.info("Rate limiting disabled (development mode)")

# =============================================================================
# Request Logging & Security Headers
# =============================================================================


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    """Log each request with status and response time; add security headers."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)"
    )

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(SensiLogError)
async def sensilog_error_handler(request: Request, exc: SensiLogError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} for {request.method} {request.url.path}: {exc.message}")
    else:
        logger.debug(f"{exc.code} for {request.method} {request.url.path}: {exc.message}")

    headers = None
    if "retryAfter" in exc.extra:
        headers = {"Retry-After": str(exc.extra["retryAfter"])}
    return JSONResponse(status_code=exc.status_code, content=exc.error_body(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "code": "VALIDATION_ERROR", "details": details},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        content = {
            "error": f"Route {request.method} {request.url.path} not found",
            "code": "ROUTE_NOT_FOUND",
        }
    elif exc.status_code == 405:
        content = {"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"}
    else:
        content = {"error": str(exc.detail), "code": "HTTP_ERROR"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    try:
        retry_after = int(exc.limit.limit.get_expiry())
    except AttributeError:
        retry_after = 60
    logger.warning(f"Rate limit exceeded for {request.method} {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "code": "RATE_LIMIT_EXCEEDED",
            "retryAfter": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error(f"Database unavailable for {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "Database connection failed", "code": "DATABASE_ERROR"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler; hides details outside development."""
    logger.exception(f"Unhandled exception for {request.method} {request.url.path}")

    if get_config().is_development:
        content = {"error": str(exc), "code": "INTERNAL_ERROR", "type": type(exc).__name__}
    else:
        content = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
    return JSONResponse(status_code=500, content=content)


# =============================================================================
# Include Route Modules
# =============================================================================

from sensilog.api.routes_analytics import router as analytics_router  # noqa: E402
from sensilog.api.routes_auth import router as auth_router  # noqa: E402
from sensilog.api.routes_match import router as match_router  # noqa: E402
from sensilog.api.routes_misc import router as misc_router  # noqa: E402
from sensilog.api.routes_riot import router as riot_router  # noqa: E402
from sensilog.api.routes_settings import router as settings_router  # noqa: E402

app.include_router(auth_router)
app.include_router(settings_router)
app.include_router(match_router)
app.include_router(riot_router)
app.include_router(analytics_router)
app.include_router(misc_router)
