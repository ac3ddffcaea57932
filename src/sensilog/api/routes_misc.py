"""
System route handlers.

Endpoints:
- GET /health: health check with database status
- GET /health/detailed: process details (development only)
"""

import logging
import os
import platform
import sys
import threading
import time
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from sensilog import __version__
from sensilog.core.config import get_config
from sensilog.core.errors import NotFoundError
from sensilog.core.utils import isoformat, utc_now
from sensilog.infra.database import DatabaseManager, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])

_STARTED_AT = time.monotonic()


def _uptime() -> float:
    return round(time.monotonic() - _STARTED_AT, 3)


@router.get("/health")
async def health(db: DatabaseManager = Depends(get_db)) -> dict[str, Any]:
    """Health check endpoint. Always 200; database problems show in `database.status`."""
    started = time.perf_counter()
    try:
        response_time = db.ping()
        db_status = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "disconnected"
        response_time = (time.perf_counter() - started) * 1000

    return {
        "status": "ok",
        "timestamp": isoformat(utc_now()),
        "uptime": _uptime(),
        "environment": get_config().app.environment,
        "version": __version__,
        "database": {"status": db_status, "responseTime": round(response_time, 2)},
    }


@router.get("/health/detailed")
async def health_detailed(request: Request) -> dict[str, Any]:
    if not get_config().is_development:
        raise NotFoundError(
            f"Route {request.method} {request.url.path} not found", code="ROUTE_NOT_FOUND"
        )

    cpu = os.times()
    return {
        "status": "ok",
        "timestamp": isoformat(utc_now()),
        "uptime": _uptime(),
        "environment": get_config().app.environment,
        "pythonVersion": platform.python_version(),
        "platform": sys.platform,
        "arch": platform.machine(),
        "pid": os.getpid(),
        "threads": threading.active_count(),
        "cpu": {"user": cpu.user, "system": cpu.system},
    }
