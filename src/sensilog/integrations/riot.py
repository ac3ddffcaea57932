"""
SensiLog Riot VALORANT API Integration

Provides a rate-limited async client for the Riot account and VALORANT match
endpoints, a mock client serving Riot-shaped payloads for development, and
the transform from a Riot match payload into a SensiLog match record.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from sensilog.auth import mock
from sensilog.core.config import SensiLogConfig, get_config
from sensilog.core.errors import ServiceNotConfiguredError, UpstreamServiceError

logger = logging.getLogger(__name__)

# VALORANT competitiveTier ranges to rank names
RANK_TIERS = [
    (3, 5, "IRON"),
    (6, 8, "BRONZE"),
    (9, 11, "SILVER"),
    (12, 14, "GOLD"),
    (15, 17, "PLATINUM"),
    (18, 20, "DIAMOND"),
    (21, 23, "ASCENDANT"),
    (24, 26, "IMMORTAL"),
    (27, 27, "RADIANT"),
]


class RiotAPIError(UpstreamServiceError):
    """A Riot API call failed. upstream_status is None for transport errors."""

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class MatchTransformError(ValueError):
    """A match payload could not be turned into a match record."""


def rank_tier_name(tier: int | None) -> str | None:
    if not tier:
        return None
    for low, high, name in RANK_TIERS:
        if low <= tier <= high:
            return name
    return None


def _from_millis(millis: int | None) -> datetime | None:
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=UTC).replace(tzinfo=None)


def _to_millis(value: datetime) -> int:
    return int(value.replace(tzinfo=UTC).timestamp() * 1000)


def calculate_headshot_percentage(headshots: int, bodyshots: int, legshots: int) -> float:
    """Share of hits that landed on the head, as a percentage with one decimal."""
    total = headshots + bodyshots + legshots
    if total <= 0:
        return 0.0
    return round(headshots / total * 100, 1)


def transform_match_data(details: dict[str, Any], puuid: str) -> dict[str, Any]:
    """
    Convert a Riot match payload into the internal match shape.

    Derived metrics are computed here once:
    - kd_ratio: kills / deaths, or kills when deaths is 0
    - adr: total damage / rounds played
    - headshot_percentage: head hits / all hits from the round damage entries
    - combat_score: player score / rounds played

    Raises:
        MatchTransformError: if the player is not in the match or the payload is malformed
    """
    players = details.get("players") or []
    player = next((p for p in players if p.get("puuid") == puuid), None)
    if player is None:
        raise MatchTransformError("Player not found in match data")

    match_info = details.get("matchInfo") or {}
    match_id = match_info.get("matchId")
    start_millis = match_info.get("gameStartMillis")
    if not match_id or start_millis is None:
        raise MatchTransformError("Match payload is missing matchId or gameStartMillis")

    stats = player.get("stats") or {}
    round_results = details.get("roundResults") or []
    rounds_played = len(round_results)

    damage_dealt = 0
    headshots = bodyshots = legshots = 0
    for round_result in round_results:
        for player_stats in round_result.get("playerStats") or []:
            if player_stats.get("puuid") != puuid:
                continue
            for hit in player_stats.get("damage") or []:
                damage_dealt += hit.get("damage", 0)
                headshots += hit.get("headshots", 0)
                bodyshots += hit.get("bodyshots", 0)
                legshots += hit.get("legshots", 0)

    kills = stats.get("kills", 0) or 0
    deaths = stats.get("deaths", 0) or 0
    assists = stats.get("assists", 0) or 0
    score = stats.get("score", 0) or 0

    team_id = player.get("teamId")
    team_won = any(t.get("teamId") == team_id and t.get("won") for t in details.get("teams") or [])

    game_start = _from_millis(start_millis)
    game_length = match_info.get("gameLengthMillis")
    game_end = game_start + timedelta(milliseconds=game_length) if game_length else None

    return {
        "match_id": match_id,
        "game_start_time": game_start,
        "game_end_time": game_end,
        "map_name": match_info.get("mapId"),
        "game_mode": match_info.get("queueId"),
        "agent_name": player.get("characterId"),
        "kills": kills,
        "deaths": deaths,
        "assists": assists,
        "damage_dealt": damage_dealt,
        "headshot_count": headshots,
        "bodyshot_count": bodyshots,
        "legshot_count": legshots,
        "rounds_played": rounds_played,
        "combat_score": round(score / rounds_played, 1) if rounds_played else float(score),
        "kd_ratio": round(kills / deaths, 2) if deaths > 0 else float(kills),
        "adr": round(damage_dealt / rounds_played, 1) if rounds_played else 0.0,
        "headshot_percentage": calculate_headshot_percentage(headshots, bodyshots, legshots),
        "team_won": team_won,
        "rank_tier": rank_tier_name(player.get("competitiveTier")),
    }


class RiotAPIClient:
    """
    Async client for the Riot account and VALORANT match APIs.

    Every request goes through a sliding-window limiter (development keys
    allow 100 requests every 2 minutes); wait_for_rate_limit() adds the
    fixed pause used between match detail requests.

    Example:
        >>> client = RiotAPIClient(api_key="RGAPI-...")
        >>> puuid = await client.get_player_puuid("SamplePlayer", "0001")
        >>> match_ids = await client.get_match_history(puuid, count=5)
        >>> await client.aclose()
    """

    def __init__(
        self,
        api_key: str,
        region: str = "ap",
        request_delay: float = 1.5,
        rate_limit_requests: int = 100,
        rate_limit_window: float = 120.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = f"https://{region}.api.riotgames.com"
        self.request_delay = request_delay
        self.rate_limit_requests = rate_limit_requests
        self.rate_limit_window = rate_limit_window

        self._request_times: list[float] = []
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Riot-Token": api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RiotAPIClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _check_rate_limit(self) -> None:
        """Sleep until the sliding window has room for another request."""
        now = time.monotonic()
        self._request_times = [
            t for t in self._request_times if now - t < self.rate_limit_window
        ]

        if len(self._request_times) >= self.rate_limit_requests:
            sleep_time = self.rate_limit_window - (now - self._request_times[0])
            if sleep_time > 0:
                logger.debug(f"Riot rate limit reached, sleeping {sleep_time:.1f}s")
                await asyncio.sleep(sleep_time)

        self._request_times.append(time.monotonic())

    async def _make_request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        await self._check_rate_limit()

        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Riot API request failed: {e}")
            raise RiotAPIError(f"Riot API request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"Riot API error: {response.status_code} for {endpoint}")
            raise RiotAPIError(
                f"Riot API error: {response.status_code}", upstream_status=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Riot API returned a non-JSON body for {endpoint}")
            raise RiotAPIError(
                "Riot API returned an invalid response", upstream_status=response.status_code
            ) from e

    async def get_player_puuid(self, game_name: str, tag_line: str) -> str:
        """Resolve a Riot id (game name + tag line) to a PUUID."""
        endpoint = (
            f"/riot/account/v1/accounts/by-riot-id/{quote(game_name, safe='')}/"
            f"{quote(tag_line, safe='')}"
        )
        data = await self._make_request(endpoint)
        return data["puuid"]

    async def get_match_history(
        self, puuid: str, count: int = 10, start: int = 0, queue: str | None = None
    ) -> list[str]:
        """Ids of the player's most recent matches, newest first."""
        params: dict[str, Any] = {"start": start, "count": count}
        if queue:
            params["queue"] = queue

        data = await self._make_request(f"/val/match/v1/matchlists/by-puuid/{puuid}", params)
        return [entry["matchId"] for entry in data.get("history", [])][:count]

    async def get_match_details(self, match_id: str) -> dict[str, Any]:
        return await self._make_request(f"/val/match/v1/matches/{match_id}")

    async def wait_for_rate_limit(self) -> None:
        if self.request_delay > 0:
            await asyncio.sleep(self.request_delay)


class MockRiotAPIClient:
    """Serves Riot-shaped payloads built from the mock match generator."""

    def __init__(self, request_delay: float = 0.0, known_players: list[dict] | None = None):
        self.request_delay = request_delay
        self.known_players = known_players if known_players is not None else mock.MOCK_USERS

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> MockRiotAPIClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def get_player_puuid(self, game_name: str, tag_line: str) -> str:
        for user in self.known_players:
            if (
                user["game_name"].lower() == game_name.lower()
                and user["tag_line"].lower() == tag_line.lower()
            ):
                return user["puuid"]
        raise RiotAPIError("Riot API error: 404", upstream_status=404)

    async def get_match_history(
        self, puuid: str, count: int = 10, start: int = 0, queue: str | None = None
    ) -> list[str]:
        return [mock.mock_match_id(puuid, i) for i in range(start, start + count)]

    async def get_match_details(self, match_id: str) -> dict[str, Any]:
        try:
            puuid, index = mock.parse_mock_match_id(match_id)
        except ValueError:
            raise RiotAPIError("Riot API error: 404", upstream_status=404) from None
        return build_mock_match_payload(mock.generate_mock_match(puuid, index), puuid)

    async def wait_for_rate_limit(self) -> None:
        if self.request_delay > 0:
            await asyncio.sleep(self.request_delay)


def build_mock_match_payload(match: dict[str, Any], puuid: str) -> dict[str, Any]:
    """Wrap a generated match in the Riot match payload layout."""
    rounds = match["rounds_played"]
    start = match["game_start_time"]
    end = match["game_end_time"]

    round_results: list[dict[str, Any]] = [{"roundNum": i, "playerStats": []} for i in range(rounds)]
    if rounds:
        round_results[0]["playerStats"].append(
            {
                "puuid": puuid,
                "damage": [
                    {
                        "receiver": "mock-opponent",
                        "damage": match["damage_dealt"],
                        "headshots": match["headshot_count"],
                        "bodyshots": match["bodyshot_count"],
                        "legshots": match["legshot_count"],
                    }
                ],
            }
        )

    return {
        "matchInfo": {
            "matchId": match["match_id"],
            "mapId": match["map_name"],
            "queueId": match["game_mode"],
            "gameStartMillis": _to_millis(start),
            "gameLengthMillis": _to_millis(end) - _to_millis(start),
        },
        "players": [
            {
                "puuid": puuid,
                "teamId": "Red",
                "characterId": match["agent_name"],
                "competitiveTier": 12 if match["rank_tier"] == "GOLD" else 0,
                "stats": {
                    "score": int(match["combat_score"] * rounds),
                    "kills": match["kills"],
                    "deaths": match["deaths"],
                    "assists": match["assists"],
                },
            }
        ],
        "teams": [
            {"teamId": "Red", "won": match["team_won"]},
            {"teamId": "Blue", "won": not match["team_won"]},
        ],
        "roundResults": round_results,
    }


class RiotAPIService:
    """Match sync and player lookup on top of a Riot API client."""

    def __init__(self, client: RiotAPIClient | MockRiotAPIClient):
        self.client = client

    async def sync_player_matches(self, puuid: str, count: int = 10) -> list[dict[str, Any]]:
        """
        Fetch and transform the player's latest matches.

        Failures on individual matches are logged and skipped; a failure to
        fetch the match history itself propagates.
        """
        logger.info(f"Starting match sync for PUUID: {puuid}")

        match_ids = await self.client.get_match_history(puuid, count=count)
        logger.info(f"Found {len(match_ids)} matches for player")

        matches = []
        for match_id in match_ids:
            try:
                await self.client.wait_for_rate_limit()
                details = await self.client.get_match_details(match_id)
                matches.append(transform_match_data(details, puuid))
                logger.debug(f"Processed match: {match_id}")
            except Exception as e:
                # One bad match must not abort the batch
                logger.warning(f"Failed to process match {match_id}: {e}")
                continue

        logger.info(f"Successfully synced {len(matches)} of {len(match_ids)} matches")
        return matches

    async def find_player(self, game_name: str, tag_line: str) -> dict[str, str]:
        try:
            puuid = await self.client.get_player_puuid(game_name, tag_line)
        except RiotAPIError:
            logger.error(f"Failed to find player {game_name}#{tag_line}")
            raise
        return {"puuid": puuid, "game_name": game_name, "tag_line": tag_line}


def create_riot_client(config: SensiLogConfig | None = None) -> RiotAPIClient | MockRiotAPIClient:
    """
    Build the client for the current environment.

    Raises:
        ServiceNotConfiguredError: outside mock mode without RIOT_API_KEY
    """
    config = config or get_config()
    if config.mock_auth_enabled:
        return MockRiotAPIClient(request_delay=0.0)

    if not config.riot.api_key:
        raise ServiceNotConfiguredError("Riot API key not configured", code="API_NOT_CONFIGURED")

    return RiotAPIClient(
        api_key=config.riot.api_key,
        region=config.riot.region,
        request_delay=config.riot.request_delay_seconds,
        rate_limit_requests=config.riot.rate_limit_requests,
        rate_limit_window=config.riot.rate_limit_window_seconds,
        timeout=config.riot.request_timeout,
    )
