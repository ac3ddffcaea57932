"""JWT token creation and verification using python-jose."""

from datetime import UTC, datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from sensilog.core.config import get_config


class TokenExpiredError(ValueError):
    """The token was valid but its lifetime has passed."""


def _secret() -> str:
    secret = get_config().auth.jwt_secret
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return secret


def create_access_token(user_id: str, email: str) -> tuple[str, datetime]:
    """Create a signed JWT access token. Returns (token, expires_at)."""
    auth = get_config().auth
    secret = _secret()
    issued_at = datetime.now(UTC)
    expires_at = issued_at + timedelta(days=auth.token_expiry_days)
    payload = {
        "user_id": user_id,
        "email": email,
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(payload, secret, algorithm=auth.algorithm), expires_at


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token. Raises ValueError on failure."""
    secret = _secret()
    try:
        return jwt.decode(token, secret, algorithms=[get_config().auth.algorithm])
    except ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e
