"""Tests for the Riot API integration."""

from __future__ import annotations

import asyncio
from datetime import datetime

import httpx
import pytest

from sensilog.core.errors import ServiceNotConfiguredError
from sensilog.integrations.riot import (
    MatchTransformError,
    MockRiotAPIClient,
    RiotAPIClient,
    RiotAPIError,
    RiotAPIService,
    calculate_headshot_percentage,
    create_riot_client,
    rank_tier_name,
    transform_match_data,
)

PUUID = "puuid-me"


def riot_match_payload(**overrides):
    """A trimmed Riot match payload with two rounds."""
    payload = {
        "matchInfo": {
            "matchId": "EU-0001",
            "mapId": "Ascent",
            "queueId": "competitive",
            # 2025-01-01T00:00:00Z
            "gameStartMillis": 1735689600000,
            "gameLengthMillis": 1800000,
        },
        "players": [
            {
                "puuid": PUUID,
                "teamId": "Blue",
                "characterId": "Jett",
                "competitiveTier": 16,
                "stats": {"score": 500, "kills": 6, "deaths": 0, "assists": 2},
            },
            {"puuid": "someone-else", "teamId": "Red", "stats": {}},
        ],
        "teams": [{"teamId": "Blue", "won": True}, {"teamId": "Red", "won": False}],
        "roundResults": [
            {
                "playerStats": [
                    {
                        "puuid": PUUID,
                        "damage": [{"damage": 150, "headshots": 1, "bodyshots": 2, "legshots": 1}],
                    },
                    {"puuid": "someone-else", "damage": [{"damage": 999, "headshots": 9}]},
                ]
            },
            {
                "playerStats": [
                    {
                        "puuid": PUUID,
                        "damage": [{"damage": 110, "headshots": 1, "bodyshots": 1, "legshots": 0}],
                    }
                ]
            },
        ],
    }
    payload.update(overrides)
    return payload


class TestTransform:
    def test_derived_metrics(self):
        record = transform_match_data(riot_match_payload(), PUUID)

        assert record["match_id"] == "EU-0001"
        assert record["game_start_time"] == datetime(2025, 1, 1)
        assert record["game_end_time"] == datetime(2025, 1, 1, 0, 30)
        assert record["rounds_played"] == 2
        assert record["damage_dealt"] == 260
        assert record["adr"] == 130.0
        assert record["combat_score"] == 250.0
        assert (record["headshot_count"], record["bodyshot_count"], record["legshot_count"]) == (
            2,
            3,
            1,
        )
        assert record["headshot_percentage"] == 33.3
        assert record["team_won"] is True
        assert record["rank_tier"] == "PLATINUM"

    def test_zero_deaths_kd_is_kills(self):
        record = transform_match_data(riot_match_payload(), PUUID)
        assert record["kd_ratio"] == 6.0

    def test_no_rounds(self):
        record = transform_match_data(riot_match_payload(roundResults=[]), PUUID)
        assert record["adr"] == 0.0
        assert record["headshot_percentage"] == 0.0
        assert record["combat_score"] == 500.0

    def test_losing_team(self):
        payload = riot_match_payload(teams=[{"teamId": "Blue", "won": False}])
        assert transform_match_data(payload, PUUID)["team_won"] is False

    def test_player_not_in_match(self):
        with pytest.raises(MatchTransformError):
            transform_match_data(riot_match_payload(), "stranger")

    def test_missing_match_info(self):
        with pytest.raises(MatchTransformError):
            transform_match_data(riot_match_payload(matchInfo={}), PUUID)

    @pytest.mark.parametrize(
        "tier,name", [(None, None), (0, None), (3, "IRON"), (14, "GOLD"), (27, "RADIANT"), (99, None)]
    )
    def test_rank_tier_name(self, tier, name):
        assert rank_tier_name(tier) == name

    def test_headshot_percentage_without_hits(self):
        assert calculate_headshot_percentage(0, 0, 0) == 0.0


class TestRiotAPIClient:
    def make_client(self, handler, **kwargs):
        return RiotAPIClient(
            api_key="RGAPI-test",
            region="eu",
            request_delay=0,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    def test_get_player_puuid_sends_api_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-Riot-Token")
            return httpx.Response(200, json={"puuid": "abc", "gameName": "Name", "tagLine": "EUW"})

        async def run():
            async with self.make_client(handler) as client:
                return await client.get_player_puuid("Some Name", "EUW")

        assert asyncio.run(run()) == "abc"
        assert seen["token"] == "RGAPI-test"
        assert seen["url"] == (
            "https://eu.api.riotgames.com/riot/account/v1/accounts/by-riot-id/Some%20Name/EUW"
        )

    def test_match_history_ids(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["count"] == "2"
            return httpx.Response(
                200, json={"history": [{"matchId": "m1"}, {"matchId": "m2"}, {"matchId": "m3"}]}
            )

        async def run():
            async with self.make_client(handler) as client:
                return await client.get_match_history("abc", count=2)

        assert asyncio.run(run()) == ["m1", "m2"]

    def test_upstream_error_status(self):
        async def run():
            async with self.make_client(lambda request: httpx.Response(404)) as client:
                return await client.get_match_details("missing")

        with pytest.raises(RiotAPIError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.upstream_status == 404
        assert exc_info.value.status_code == 502

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async def run():
            async with self.make_client(handler) as client:
                return await client.get_match_details("m1")

        with pytest.raises(RiotAPIError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.upstream_status is None

    def test_sliding_window_tracks_requests(self):
        async def run():
            handler = lambda request: httpx.Response(200, json={})  # noqa: E731
            async with self.make_client(handler, rate_limit_requests=5) as client:
                for _ in range(3):
                    await client.get_match_details("m1")
                return len(client._request_times)

        assert asyncio.run(run()) == 3


class TestMockClient:
    def test_find_known_player_case_insensitive(self):
        client = MockRiotAPIClient()
        assert asyncio.run(client.get_player_puuid("sampleplayer", "0001")) == "mock-puuid-player1"

    def test_unknown_player_is_404(self):
        with pytest.raises(RiotAPIError) as exc_info:
            asyncio.run(MockRiotAPIClient().get_player_puuid("Nobody", "9999"))
        assert exc_info.value.upstream_status == 404

    def test_payload_round_trips_through_transform(self):
        from sensilog.auth.mock import generate_mock_match

        client = MockRiotAPIClient()
        expected = generate_mock_match("mock-puuid-player1", 4)
        details = asyncio.run(client.get_match_details(expected["match_id"]))
        record = transform_match_data(details, "mock-puuid-player1")

        for key in ("match_id", "kills", "deaths", "damage_dealt", "rounds_played", "team_won"):
            assert record[key] == expected[key]
        assert record["combat_score"] == expected["combat_score"]
        assert record["rank_tier"] == expected["rank_tier"]


class FlakyClient(MockRiotAPIClient):
    """Mock client whose second match cannot be fetched."""

    async def get_match_details(self, match_id):
        if match_id.endswith("-1"):
            raise RiotAPIError("Riot API error: 500", upstream_status=500)
        return await super().get_match_details(match_id)


class TestRiotAPIService:
    def test_sync_player_matches(self):
        service = RiotAPIService(MockRiotAPIClient())
        matches = asyncio.run(service.sync_player_matches("mock-puuid-player1", count=3))
        assert [m["match_id"] for m in matches] == [
            f"mock-match-mock-puuid-player1-{i}" for i in range(3)
        ]

    def test_bad_matches_are_skipped(self):
        service = RiotAPIService(FlakyClient())
        matches = asyncio.run(service.sync_player_matches("mock-puuid-player1", count=3))
        assert len(matches) == 2

    def test_find_player(self):
        service = RiotAPIService(MockRiotAPIClient())
        player = asyncio.run(service.find_player("TestUser", "0002"))
        assert player == {"puuid": "mock-puuid-player2", "game_name": "TestUser", "tag_line": "0002"}


class TestClientFactory:
    def test_mock_client_in_development(self, config):
        assert isinstance(create_riot_client(config), MockRiotAPIClient)

    def test_requires_api_key_outside_mock_mode(self, config):
        config.app.environment = "production"
        with pytest.raises(ServiceNotConfiguredError):
            create_riot_client(config)

    def test_real_client_uses_region(self, config):
        config.app.environment = "production"
        config.riot.api_key = "RGAPI-x"
        config.riot.region = "na"

        client = create_riot_client(config)
        try:
            assert isinstance(client, RiotAPIClient)
            assert client.base_url == "https://na.api.riotgames.com"
        finally:
            asyncio.run(client.aclose())


def riot_api_with_bad_match(bad_response):
    """Real client whose match history is ["BAD", "EU-0001"]; BAD answers with bad_response."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/val/match/v1/matchlists/"):
            return httpx.Response(200, json={"history": [{"matchId": "BAD"}, {"matchId": "EU-0001"}]})
        if path.endswith("/BAD"):
            return bad_response
        return httpx.Response(200, json=riot_match_payload())

    return RiotAPIClient(
        api_key="RGAPI-test", request_delay=0, transport=httpx.MockTransport(handler)
    )


class TestSyncSkipsBrokenMatches:
    def test_non_json_body_is_an_api_error(self):
        async def run():
            async with riot_api_with_bad_match(httpx.Response(200, text="<html>")) as client:
                return await client.get_match_details("BAD")

        with pytest.raises(RiotAPIError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.upstream_status == 200

    @pytest.mark.parametrize(
        "bad_response",
        [
            httpx.Response(200, text="<html>"),
            httpx.Response(200, json={"players": ["not-a-dict"]}),
            httpx.Response(200, json=["unexpected", "list"]),
        ],
    )
    def test_good_match_survives_a_broken_one(self, bad_response):
        async def run():
            async with riot_api_with_bad_match(bad_response) as client:
                return await RiotAPIService(client).sync_player_matches(PUUID, count=2)

        matches = asyncio.run(run())
        assert [m["match_id"] for m in matches] == ["EU-0001"]

    def test_history_failure_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async def run():
            client = RiotAPIClient(
                api_key="RGAPI-test", request_delay=0, transport=httpx.MockTransport(handler)
            )
            async with client:
                return await RiotAPIService(client).sync_player_matches(PUUID, count=2)

        with pytest.raises(RiotAPIError):
            asyncio.run(run())
