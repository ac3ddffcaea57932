"""
Shared utilities for the SensiLog API.

Contains the camelCase request model base, input validation, date range
resolution, and the rate limiter used across route modules.
"""

import logging
import re
from datetime import date, datetime, timedelta

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from slowapi import Limiter

from sensilog.core.config import get_config
from sensilog.core.errors import ValidationFailedError
from sensilog.core.utils import end_of_day, start_of_day, utc_now

logger = logging.getLogger(__name__)

# =============================================================================
# Request Models
# =============================================================================


class CamelModel(BaseModel):
    """Request body base: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Input Validation
# =============================================================================

UUID_PATTERN = re.compile(
    r"^[a-fA-F0-9]{8}-[a-fA-F0-9]{4}-[a-fA-F0-9]{4}-[a-fA-F0-9]{4}-[a-fA-F0-9]{12}$"
)


def validate_uuid(value: str, name: str = "id") -> str:
    """Validate UUID format. Raises ValidationFailedError if invalid."""
    if not value or not UUID_PATTERN.match(value):
        raise ValidationFailedError(f"Invalid {name}: must be a valid UUID")
    return value


DEFAULT_RANGE_DAYS = 30


def resolve_date_range(
    start_date: date | None,
    end_date: date | None,
    default_days: int = DEFAULT_RANGE_DAYS,
) -> tuple[datetime, datetime]:
    """
    Turn optional query dates into an inclusive datetime range.

    The end is extended to the last instant of its day (today when absent);
    the start defaults to `default_days` before now.
    """
    end = end_of_day(end_date or utc_now().date())
    start = start_of_day(start_date) if start_date else utc_now() - timedelta(days=default_days)
    if start > end:
        raise ValidationFailedError("startDate must not be after endDate")
    return start, end


def optional_range(
    start_date: date | None, end_date: date | None
) -> tuple[datetime | None, datetime | None]:
    """Like resolve_date_range, but missing bounds stay open."""
    start = start_of_day(start_date) if start_date else None
    end = end_of_day(end_date) if end_date else None
    if start is not None and end is not None and start > end:
        raise ValidationFailedError("startDate must not be after endDate")
    return start, end


# =============================================================================
# Rate Limiting
# =============================================================================


def get_real_client_ip(request: Request) -> str:
    """Get real client IP from X-Forwarded-For / X-Real-IP behind a reverse proxy."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
        if client_ip:
            return client_ip

    real_ip = request.headers.get("X-Real-IP", "")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


# Production default; forced on or off by rate_limit.enabled
RATE_LIMITING_ENABLED = get_config().rate_limit_enabled

limiter = Limiter(
    key_func=get_real_client_ip,
    default_limits=get_config().rate_limit.default_limits,
    enabled=RATE_LIMITING_ENABLED,
)


def callback_limit() -> str:
    return get_config().rate_limit.callback_limit


def sync_limit() -> str:
    return get_config().rate_limit.sync_limit


def rate_limit(limit_value):
    """Decorator for rate limiting. No-op when rate limiting is disabled."""
    if RATE_LIMITING_ENABLED:
        return limiter.limit(limit_value)

    def identity(func):
        return func

    return identity
