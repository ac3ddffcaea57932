"""Tests for the background match sync."""

import asyncio
import time
from datetime import timedelta

import pytest

from sensilog.core.errors import ServiceNotConfiguredError
from sensilog.core.utils import utc_now
from sensilog.infra.database import SyncJob
from sensilog.infra.job_store import SyncJobStore
from sensilog.pipeline import MatchSyncService, check_sync_cooldown, start_sync_job

PUUID = "mock-puuid-player1"


@pytest.fixture
def user_id(db):
    return db.upsert_oauth_user(PUUID, "player1@example.com", "SamplePlayer", "0001").id


@pytest.fixture
def store(db):
    return SyncJobStore(db)


def wait_for_job(store, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = store.get_job(job_id)
        if job["status"] in ("completed", "failed"):
            return job
        time.sleep(0.05)
    raise AssertionError(f"sync job {job_id} did not finish")


class TestMatchSyncService:
    def test_run_stores_matches(self, db, store, user_id, config):
        service = MatchSyncService(db=db, job_store=store, config=config)
        job = store.create_job(user_id, 5)

        result = asyncio.run(service.run(job["jobId"], user_id, PUUID, 5))

        assert result["status"] == "completed"
        assert (result["fetchedCount"], result["insertedCount"], result["skippedCount"]) == (5, 5, 0)
        assert len(db.get_matches(user_id)) == 5

    def test_second_run_adds_no_duplicates(self, db, store, user_id, config):
        service = MatchSyncService(db=db, job_store=store, config=config)
        first = store.create_job(user_id, 5)
        asyncio.run(service.run(first["jobId"], user_id, PUUID, 5))

        second = store.create_job(user_id, 5)
        result = asyncio.run(service.run(second["jobId"], user_id, PUUID, 5))

        assert result["insertedCount"] == 0
        assert result["skippedCount"] == 5
        assert len(db.get_matches(user_id)) == 5

    def test_failure_marks_job_failed(self, db, store, user_id, config):
        config.app.environment = "production"
        service = MatchSyncService(db=db, job_store=store, config=config)
        job = store.create_job(user_id, 5)

        with pytest.raises(ServiceNotConfiguredError):
            asyncio.run(service.run(job["jobId"], user_id, PUUID, 5))

        failed = store.get_job(job["jobId"])
        assert failed["status"] == "failed"
        assert "not configured" in failed["error"]


class TestStartSyncJob:
    def test_returns_pending_job_and_completes(self, db, store, user_id, config):
        job = start_sync_job(user_id, PUUID, 3, db=db, config=config)

        assert job["status"] == "pending"
        finished = wait_for_job(store, job["jobId"])
        assert finished["status"] == "completed"
        assert finished["insertedCount"] == 3


class TestCooldown:
    def test_inert_by_default(self, store, user_id, config):
        store.create_job(user_id, 5)
        assert check_sync_cooldown(user_id, store, config) is None

    def test_enforced_after_recent_sync(self, store, user_id, config):
        config.sync.enforce_cooldown = True
        assert check_sync_cooldown(user_id, store, config) is None

        store.create_job(user_id, 5)
        remaining = check_sync_cooldown(user_id, store, config)
        assert 0 < remaining <= config.sync.cooldown_minutes * 60

    def test_expires(self, db, store, user_id, config):
        config.sync.enforce_cooldown = True
        job = store.create_job(user_id, 5)

        session = db.get_session()
        try:
            session.get(SyncJob, job["jobId"]).created_at = utc_now() - timedelta(minutes=10)
            session.commit()
        finally:
            session.close()

        assert check_sync_cooldown(user_id, store, config) is None

    def test_failed_sync_does_not_count(self, store, user_id, config):
        config.sync.enforce_cooldown = True
        job = store.create_job(user_id, 5)
        store.update_status(job["jobId"], "failed", error="boom")
        assert check_sync_cooldown(user_id, store, config) is None
