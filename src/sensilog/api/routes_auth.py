"""
Authentication route handlers.

Endpoints:
- GET /api/auth/riot/login: start the Riot sign-on (mock URL in development)
- POST /api/auth/riot/callback: exchange the authorization code, issue a JWT
- POST /api/auth/refresh: issue a fresh JWT for the current user
- GET /api/auth/me: current user profile
- POST /api/auth/logout: acknowledge logout (tokens are stateless)
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from sensilog.api.shared import CamelModel, callback_limit, rate_limit
from sensilog.auth import riot_oauth
from sensilog.auth.jwt import create_access_token
from sensilog.auth.middleware import get_current_user
from sensilog.core.errors import (
    BadRequestError,
    SensiLogError,
    ServiceNotConfiguredError,
)
from sensilog.core.utils import isoformat, to_naive_utc
from sensilog.infra.database import DatabaseManager, User, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RiotCallbackRequest(CamelModel):
    code: str = Field(..., min_length=1)
    state: str | None = None


def _issue_token(user: User) -> dict[str, Any]:
    try:
        token, expires_at = create_access_token(user.id, user.email)
    except RuntimeError as e:
        raise ServiceNotConfiguredError(str(e), code="AUTH_NOT_CONFIGURED") from e
    return {"token": token, "expiresAt": isoformat(to_naive_utc(expires_at))}


@router.get("/riot/login")
async def riot_login() -> dict[str, Any]:
    """Return the URL the client should send the user to, plus the CSRF state."""
    result = riot_oauth.build_auth_url()
    return {
        "authUrl": result["auth_url"],
        "state": result["state"],
        "isDevelopment": result["is_development"],
    }


@router.post("/riot/callback")
@rate_limit(callback_limit)
async def riot_callback(
    request: Request,
    body: RiotCallbackRequest,
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """
    Complete the Riot sign-on.

    Creates the user on first login; later logins refresh the stored
    provider tokens and Riot id. Any failure along the way is reported as
    OAUTH_CALLBACK_FAILED.
    """
    try:
        tokens = await riot_oauth.exchange_code_for_token(body.code)
        user_info = await riot_oauth.get_user_info(tokens["access_token"])
        user = db.upsert_oauth_user(
            puuid=user_info["puuid"],
            email=user_info["email"],
            game_name=user_info["game_name"],
            tag_line=user_info["tag_line"],
            access_token=tokens.get("access_token"),
            refresh_token=tokens.get("refresh_token"),
            expires_in=tokens.get("expires_in"),
            is_admin=user_info.get("is_admin", False),
        )
    except ServiceNotConfiguredError:
        raise
    except (SensiLogError, ValueError, KeyError, SQLAlchemyError) as e:
        logger.error(f"OAuth callback failed: {e}")
        raise BadRequestError("Authentication failed", code="OAUTH_CALLBACK_FAILED") from e

    logger.info(f"User {user.id} signed in as {user.game_name}#{user.tag_line}")
    return {"user": user.to_dict(), **_issue_token(user)}


@router.post("/refresh")
async def refresh_token(user: User = Depends(get_current_user)) -> dict[str, Any]:
    """Issue a new token with a fresh lifetime."""
    return _issue_token(user)


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return user.to_dict()


@router.post("/logout")
async def logout(user: User = Depends(get_current_user)) -> dict[str, str]:
    """Tokens are not stored server-side; the client discards its copy."""
    logger.info(f"User {user.id} logged out")
    return {"message": "Logged out"}
