"""
Utility functions shared across SensiLog modules.

Datetimes are handled as naive UTC throughout so that values read back from
SQLite compare cleanly with values computed in Python.
"""

from datetime import UTC, date, datetime, time


def utc_now() -> datetime:
    """Return current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    """Last representable instant of the given day (23:59:59.999999)."""
    return datetime.combine(day, time.max)


def isoformat(value: datetime | None) -> str | None:
    """ISO-8601 string with a trailing Z for naive UTC datetimes."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.isoformat()


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0:
        return default
    return numerator / denominator


def mean(values: list[float]) -> float:
    """Arithmetic mean; 0.0 for an empty list."""
    return safe_divide(sum(values), len(values))

