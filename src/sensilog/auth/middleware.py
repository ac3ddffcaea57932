"""FastAPI authentication dependency: extract and verify the bearer JWT."""

from fastapi import Depends, Request

from sensilog.auth.jwt import TokenExpiredError, decode_token
from sensilog.core.errors import AuthenticationError, ServiceNotConfiguredError
from sensilog.infra.database import DatabaseManager, User, get_db


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth[7:].strip()
    return token or None


async def get_current_user(request: Request, db: DatabaseManager = Depends(get_db)) -> User:
    """Resolve the authenticated user. Raises 401 if missing, invalid or expired."""
    token = _bearer_token(request)
    if token is None:
        raise AuthenticationError("Authentication required", code="AUTHENTICATION_REQUIRED")

    try:
        payload = decode_token(token)
    except TokenExpiredError:
        raise AuthenticationError("Token has expired", code="TOKEN_EXPIRED") from None
    except ValueError:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN") from None
    except RuntimeError as e:
        raise ServiceNotConfiguredError(str(e), code="AUTH_NOT_CONFIGURED") from e

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")

    user = db.get_user_by_id(user_id)
    if user is None:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")

    request.state.user_id = user.id
    return user
