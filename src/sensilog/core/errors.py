"""
Error taxonomy surfaced to API clients.

Every error carries an HTTP status, a machine-readable code and a message.
The API layer renders them as {"error": message, "code": code, ...extra}.
"""

from typing import Any


class SensiLogError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.extra = extra

    def error_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class ValidationFailedError(SensiLogError):
    status_code = 400
    code = "VALIDATION_ERROR"


class BadRequestError(SensiLogError):
    """A well-formed request the current state cannot satisfy."""

    status_code = 400
    code = "BAD_REQUEST"


class AuthenticationError(SensiLogError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"


class ForbiddenError(SensiLogError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(SensiLogError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitExceededError(SensiLogError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: int, code: str | None = None):
        super().__init__(message, code=code, retryAfter=retry_after)
        self.retry_after = retry_after


class UpstreamServiceError(SensiLogError):
    """The external identity provider or match API failed."""

    status_code = 502
    code = "UPSTREAM_ERROR"


class ServiceNotConfiguredError(SensiLogError):
    """A required credential or secret is missing from configuration."""

    status_code = 503
    code = "NOT_CONFIGURED"
