"""
Mock Riot identity provider and match generator for development.

Served instead of the real OAuth and match API whenever mock auth is
enabled (development environment or ENABLE_MOCK_AUTH outside production).
Generated matches are deterministic per match id so that the mock match
API and the generate-mock route agree on the same data.
"""

from __future__ import annotations

import logging
import random
import secrets
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

from sensilog.core.config import get_config
from sensilog.core.utils import utc_now

logger = logging.getLogger(__name__)

MOCK_USERS: list[dict[str, Any]] = [
    {
        "puuid": "mock-puuid-player1",
        "email": "player1@example.com",
        "game_name": "SamplePlayer",
        "tag_line": "0001",
        "access_token": "mock-access-token-1",
        "refresh_token": "mock-refresh-token-1",
        "is_admin": False,
    },
    {
        "puuid": "mock-puuid-player2",
        "email": "player2@example.com",
        "game_name": "TestUser",
        "tag_line": "0002",
        "access_token": "mock-access-token-2",
        "refresh_token": "mock-refresh-token-2",
        "is_admin": False,
    },
    {
        "puuid": "mock-puuid-admin",
        "email": "admin@sensilog.com",
        "game_name": "AdminUser",
        "tag_line": "0999",
        "access_token": "mock-access-token-admin",
        "refresh_token": "mock-refresh-token-admin",
        "is_admin": True,
    },
]

MOCK_TOKEN_EXPIRES_IN = 3600

MOCK_AGENTS = ["Jett", "Phoenix", "Sage", "Sova", "Brimstone", "Viper", "Cypher", "Reyna"]
MOCK_MAPS = ["Bind", "Haven", "Split", "Ascent", "Dust2", "Breeze", "Fracture", "Icebox"]
MOCK_GAME_MODES = ["Competitive", "Unrated", "Spike Rush"]

# Matches are spaced this far apart going back from now
MOCK_MATCH_INTERVAL = timedelta(hours=2)


def generate_mock_auth_url() -> tuple[str, str]:
    """Build the frontend mock login URL. Returns (auth_url, state)."""
    state = secrets.token_hex(16)
    frontend_url = get_config().app.frontend_url.rstrip("/")
    return f"{frontend_url}/auth/mock?{urlencode({'state': state})}", state


def verify_mock_auth_code(code: str) -> dict[str, Any]:
    """
    Exchange a mock authorization code for mock provider tokens.

    "mock-code-N" selects MOCK_USERS[N]; any other code, or an index out of
    range, selects the first user.
    """
    index = 0
    suffix = code.removeprefix("mock-code-")
    if suffix.isdigit():
        index = int(suffix)
    if index >= len(MOCK_USERS):
        index = 0

    user = MOCK_USERS[index]
    return {
        "access_token": user["access_token"],
        "refresh_token": user["refresh_token"],
        "expires_in": MOCK_TOKEN_EXPIRES_IN,
    }


def get_mock_user_info(access_token: str) -> dict[str, Any]:
    """Look up the mock user owning an access token. Raises ValueError if unknown."""
    for user in MOCK_USERS:
        if user["access_token"] == access_token:
            return {
                "puuid": user["puuid"],
                "email": user["email"],
                "game_name": user["game_name"],
                "tag_line": user["tag_line"],
                "is_admin": user["is_admin"],
            }
    raise ValueError("Invalid access token")


def mock_match_id(puuid: str, index: int) -> str:
    return f"mock-match-{puuid}-{index}"


def parse_mock_match_id(match_id: str) -> tuple[str, int]:
    """Split a mock match id back into (puuid, index). Raises ValueError."""
    if not match_id.startswith("mock-match-"):
        raise ValueError(f"Not a mock match id: {match_id}")
    puuid, _, index = match_id.removeprefix("mock-match-").rpartition("-")
    if not puuid or not index.isdigit():
        raise ValueError(f"Not a mock match id: {match_id}")
    return puuid, int(index)


def generate_mock_match(puuid: str, index: int, now: datetime | None = None) -> dict[str, Any]:
    """
    Generate one match in the internal match shape.

    Stats are drawn from realistic ranges with a generator seeded by the
    match id; only the start time depends on the current clock.
    """
    now = now or utc_now()
    match_id = mock_match_id(puuid, index)
    rng = random.Random(match_id)

    game_start_time = now - index * MOCK_MATCH_INTERVAL
    agent = rng.choice(MOCK_AGENTS)
    map_name = rng.choice(MOCK_MAPS)
    game_mode = rng.choice(MOCK_GAME_MODES)

    kills = rng.randint(5, 34)
    deaths = rng.randint(3, 27)
    assists = rng.randint(2, 16)
    rounds = rng.randint(13, 22)
    damage_dealt = rng.randint(1500, 5499)
    headshot_count = int(kills * (rng.random() * 0.4 + 0.1))
    bodyshot_count = int(kills * 0.6)
    legshot_count = kills - headshot_count - bodyshot_count
    total_shots = headshot_count + bodyshot_count + legshot_count

    return {
        "match_id": match_id,
        "game_start_time": game_start_time,
        # Roughly two minutes per round
        "game_end_time": game_start_time + timedelta(minutes=rounds * 2),
        "map_name": map_name,
        "game_mode": game_mode,
        "agent_name": agent,
        "kills": kills,
        "deaths": deaths,
        "assists": assists,
        "damage_dealt": damage_dealt,
        "headshot_count": headshot_count,
        "bodyshot_count": bodyshot_count,
        "legshot_count": legshot_count,
        "rounds_played": rounds,
        "combat_score": float(int(damage_dealt / rounds * 1.2)),
        "kd_ratio": round(kills / deaths, 2) if deaths > 0 else float(kills),
        "adr": round(damage_dealt / rounds, 1),
        "headshot_percentage": (
            round(headshot_count / total_shots * 100, 1) if total_shots > 0 else 0.0
        ),
        "team_won": rng.random() > 0.5,
        "rank_tier": "GOLD" if game_mode == "Competitive" else None,
    }


def generate_mock_matches(
    puuid: str,
    count: int = 50,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[dict[str, Any]]:
    """
    Generate up to `count` mock matches, newest first.

    Args:
        puuid: Player the matches belong to
        count: Number of matches to generate
        start_date: Drop matches starting before this time
        end_date: Drop matches starting after this time
    """
    now = utc_now()
    matches = [generate_mock_match(puuid, i, now) for i in range(count)]

    if start_date is not None:
        matches = [m for m in matches if m["game_start_time"] >= start_date]
    if end_date is not None:
        matches = [m for m in matches if m["game_start_time"] <= end_date]

    matches.sort(key=lambda m: m["game_start_time"], reverse=True)
    logger.debug(f"Generated {len(matches)} mock matches for {puuid}")
    return matches
