"""
Riot Sign-On (OAuth 2.0 / OpenID Connect) for SensiLog.

The flow is:
1. Client calls /api/auth/riot/login and redirects the user to the returned URL
2. Riot redirects back to the frontend with an authorization code
3. Frontend posts the code to /api/auth/riot/callback
4. We exchange the code for provider tokens and fetch the user info
5. The user is created or updated and a SensiLog JWT is issued

When mock auth is enabled every step is served by sensilog.auth.mock.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlencode

import httpx

from sensilog.auth import mock
from sensilog.core.config import get_config
from sensilog.core.errors import ServiceNotConfiguredError, UpstreamServiceError

logger = logging.getLogger(__name__)

RIOT_AUTHORIZE_URL = "https://auth.riotgames.com/authorize"
RIOT_TOKEN_URL = "https://auth.riotgames.com/token"
RIOT_USERINFO_URL = "https://auth.riotgames.com/userinfo"
RIOT_SCOPE = "openid offline_access"


def generate_state() -> str:
    """Random CSRF state for the authorize redirect."""
    return secrets.token_hex(32)


def build_auth_url(state: str | None = None) -> dict[str, Any]:
    """Build the login redirect.

    Returns:
        {"auth_url", "state", "is_development"}

    Raises:
        ServiceNotConfiguredError: outside mock mode without a client id
    """
    config = get_config()
    if config.mock_auth_enabled:
        auth_url, mock_state = mock.generate_mock_auth_url()
        return {"auth_url": auth_url, "state": mock_state, "is_development": True}

    if not config.auth.riot_client_id:
        raise ServiceNotConfiguredError(
            "Riot OAuth is not configured", code="OAUTH_NOT_CONFIGURED"
        )

    state = state or generate_state()
    params = {
        "client_id": config.auth.riot_client_id,
        "redirect_uri": config.auth.riot_redirect_uri,
        "response_type": "code",
        "scope": RIOT_SCOPE,
        "state": state,
    }
    return {
        "auth_url": f"{RIOT_AUTHORIZE_URL}?{urlencode(params)}",
        "state": state,
        "is_development": False,
    }


async def exchange_code_for_token(
    code: str, http_client: httpx.AsyncClient | None = None
) -> dict[str, Any]:
    """Exchange an authorization code for provider tokens.

    Args:
        code: Authorization code from the redirect
        http_client: Optional client to use instead of a fresh one

    Returns:
        Token response with access_token, refresh_token and expires_in
    """
    config = get_config()
    if config.mock_auth_enabled:
        return mock.verify_mock_auth_code(code)

    client_id = config.auth.riot_client_id
    client_secret = config.auth.riot_client_secret
    if not client_id or not client_secret:
        raise ServiceNotConfiguredError(
            "Riot OAuth credentials not configured", code="OAUTH_NOT_CONFIGURED"
        )

    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": config.auth.riot_redirect_uri,
    }

    try:
        async with _client(http_client, config.auth.oauth_timeout) as client:
            resp = await client.post(
                RIOT_TOKEN_URL,
                data=data,
                auth=httpx.BasicAuth(client_id, client_secret),
            )
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"Riot OAuth: token exchange rejected ({e.response.status_code})")
        raise UpstreamServiceError("Failed to exchange code for token") from e
    except httpx.HTTPError as e:
        logger.error(f"Riot OAuth: HTTP error during token exchange: {e}")
        raise UpstreamServiceError("Failed to exchange code for token") from e


async def get_user_info(
    access_token: str, http_client: httpx.AsyncClient | None = None
) -> dict[str, Any]:
    """Fetch the Riot account behind a provider access token.

    Returns:
        {"puuid", "email", "game_name", "tag_line", "is_admin"}
    """
    config = get_config()
    if config.mock_auth_enabled:
        return mock.get_mock_user_info(access_token)

    try:
        async with _client(http_client, config.auth.oauth_timeout) as client:
            resp = await client.get(
                RIOT_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
            resp.raise_for_status()
            user_data = resp.json()
    except httpx.HTTPError as e:
        logger.error(f"Riot OAuth: failed to fetch user info: {e}")
        raise UpstreamServiceError("Failed to get user info") from e

    return parse_user_info(user_data)


def parse_user_info(user_data: dict[str, Any]) -> dict[str, Any]:
    """Map the OpenID userinfo payload onto SensiLog user fields."""
    puuid = user_data.get("sub")
    if not puuid:
        raise ValueError("User info has no subject")

    game_name, _, tag_line = (user_data.get("preferred_username") or "").partition("#")
    return {
        "puuid": puuid,
        # Riot accounts do not always expose an email
        "email": user_data.get("email") or f"{puuid}@riot.local",
        "game_name": game_name or "Unknown",
        "tag_line": tag_line or "0000",
        "is_admin": False,
    }


@asynccontextmanager
async def _client(
    http_client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the given AsyncClient, or open (and close) a fresh one."""
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield client
