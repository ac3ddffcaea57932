"""Tests for the persistence layer."""

from datetime import datetime, timedelta

import pytest

from sensilog.auth.mock import generate_mock_matches
from sensilog.infra.database import MatchRecord


@pytest.fixture
def user(db):
    return db.upsert_oauth_user(
        puuid="puuid-1",
        email="player@example.com",
        game_name="Player",
        tag_line="0001",
        access_token="access-1",
        refresh_token="refresh-1",
        expires_in=3600,
    )


@pytest.fixture
def other_user(db):
    return db.upsert_oauth_user(
        puuid="puuid-2", email="other@example.com", game_name="Other", tag_line="0002"
    )


def make_match(match_id, start, **overrides):
    data = {
        "match_id": match_id,
        "game_start_time": start,
        "map_name": "Ascent",
        "game_mode": "Competitive",
        "agent_name": "Jett",
        "kills": 20,
        "deaths": 10,
        "combat_score": 250.0,
        "kd_ratio": 2.0,
    }
    data.update(overrides)
    return data


class TestUsers:
    def test_first_login_creates_user(self, db, user):
        assert user.id
        assert user.riot_puuid == "puuid-1"
        assert user.token_expires_at is not None
        assert db.get_user_by_puuid("puuid-1").id == user.id

    def test_second_login_updates_same_row(self, db, user):
        again = db.upsert_oauth_user(
            puuid="puuid-1",
            email="ignored@example.com",
            game_name="Renamed",
            tag_line="9999",
            access_token="access-2",
        )
        assert again.id == user.id
        assert again.game_name == "Renamed"
        assert again.access_token == "access-2"
        assert again.email == "player@example.com"

    def test_to_dict_hides_tokens(self, user):
        data = user.to_dict()
        assert data["riotPuuid"] == "puuid-1"
        assert "accessToken" not in data
        assert "refreshToken" not in data

    def test_link_and_unlink(self, db, user):
        db.unlink_riot_account(user.id)
        unlinked = db.get_user_by_id(user.id)
        assert unlinked.riot_puuid is None
        assert unlinked.game_name is None

        linked = db.link_riot_account(user.id, "puuid-new", "NewName", "NA1")
        assert linked.riot_puuid == "puuid-new"
        assert linked.tag_line == "NA1"

    def test_link_unknown_user(self, db):
        assert db.link_riot_account("no-such-user", "p", "n", "t") is None

    def test_login_after_unlink_relinks_same_user(self, db, user):
        db.unlink_riot_account(user.id)

        again = db.upsert_oauth_user(
            puuid="puuid-1", email="player@example.com", game_name="Player", tag_line="0001"
        )

        assert again.id == user.id
        assert again.riot_puuid == "puuid-1"
        assert db.get_user_by_puuid("puuid-1").id == user.id


class TestSettingsRecords:
    def test_create_and_get(self, db, user):
        record = db.create_settings_record(
            user.id, {"sensitivity": 0.35, "dpi": 1600, "mouse_device": "Viper V2"}
        )
        fetched = db.get_settings_record(user.id, record.id)
        assert fetched.sensitivity == 0.35
        assert fetched.tags == []
        assert fetched.to_dict()["mouseDevice"] == "Viper V2"

    def test_other_user_cannot_access(self, db, user, other_user):
        record = db.create_settings_record(user.id, {"sensitivity": 0.5, "dpi": 800})

        assert db.get_settings_record(other_user.id, record.id) is None
        assert db.update_settings_record(other_user.id, record.id, {"dpi": 400}) is None
        assert db.delete_settings_record(other_user.id, record.id) is False
        assert db.get_settings_record(user.id, record.id).dpi == 800

    def test_partial_update_bumps_updated_at(self, db, user):
        record = db.create_settings_record(user.id, {"sensitivity": 0.5, "dpi": 800})
        updated = db.update_settings_record(user.id, record.id, {"dpi": 1600})

        assert updated.dpi == 1600
        assert updated.sensitivity == 0.5
        assert updated.updated_at >= record.updated_at

    def test_delete(self, db, user):
        record = db.create_settings_record(user.id, {"sensitivity": 0.5, "dpi": 800})
        assert db.delete_settings_record(user.id, record.id) is True
        assert db.get_settings_record(user.id, record.id) is None

    def test_list_newest_first_with_total(self, db, user):
        for dpi in (400, 800, 1600):
            db.create_settings_record(user.id, {"sensitivity": 0.5, "dpi": dpi})

        records, total = db.list_settings_records(user.id, limit=2)

        assert total == 3
        assert len(records) == 2
        assert records[0].created_at >= records[1].created_at

    def test_list_filters_by_all_tags(self, db, user):
        db.create_settings_record(user.id, {"sensitivity": 0.5, "dpi": 800, "tags": ["aim", "ranked"]})
        db.create_settings_record(user.id, {"sensitivity": 0.6, "dpi": 800, "tags": ["aim"]})

        records, total = db.list_settings_records(user.id, tags=["aim", "ranked"])

        assert total == 1
        assert records[0].sensitivity == 0.5


class TestMatchRecords:
    def test_save_is_idempotent(self, db, user):
        now = datetime(2025, 1, 10, 12)
        matches = [make_match(f"m-{i}", now - timedelta(hours=i)) for i in range(3)]

        assert db.save_match_records(user.id, matches) == (3, 0)
        assert db.save_match_records(user.id, matches) == (0, 3)

        session = db.get_session()
        try:
            assert session.query(MatchRecord).count() == 3
        finally:
            session.close()

    def test_mock_matches_round_trip(self, db, user):
        inserted, skipped = db.save_match_records(user.id, generate_mock_matches("puuid-1", 5))
        assert (inserted, skipped) == (5, 0)
        assert len(db.get_matches(user.id)) == 5

    def test_list_filters(self, db, user):
        now = datetime(2025, 1, 10, 12)
        db.save_match_records(
            user.id,
            [
                make_match("a", now, map_name="Bind", agent_name="Sage"),
                make_match("b", now - timedelta(days=1), map_name="Haven", game_mode="Unrated"),
                make_match("c", now - timedelta(days=5), map_name="Bind"),
            ],
        )

        records, total = db.list_match_records(user.id, maps=["Bind"])
        assert total == 2
        assert [r.match_id for r in records] == ["a", "c"]

        records, total = db.list_match_records(user.id, game_mode="Unrated")
        assert [r.match_id for r in records] == ["b"]

        records, total = db.list_match_records(user.id, start=now - timedelta(days=2))
        assert total == 2

    def test_range_queries_are_ordered(self, db, user):
        now = datetime(2025, 1, 10, 12)
        db.save_match_records(
            user.id, [make_match(f"m-{i}", now - timedelta(hours=i)) for i in range(4)]
        )

        ascending = db.get_matches_in_range(user.id, now - timedelta(days=1), now)
        descending = db.get_matches(user.id)

        assert [m.match_id for m in ascending] == ["m-3", "m-2", "m-1", "m-0"]
        assert [m.match_id for m in descending] == ["m-0", "m-1", "m-2", "m-3"]

    def test_matches_are_scoped_to_user(self, db, user, other_user):
        db.save_match_records(user.id, [make_match("x", datetime(2025, 1, 1))])
        assert db.get_matches(other_user.id) == []


class TestHealth:
    def test_ping(self, db):
        assert db.ping() >= 0
