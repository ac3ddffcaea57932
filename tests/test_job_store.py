"""Tests for persistent sync job tracking."""

from datetime import timedelta

import pytest

from sensilog.core.utils import utc_now
from sensilog.infra.database import SyncJob
from sensilog.infra.job_store import SyncJobStatus, SyncJobStore


@pytest.fixture
def store(db):
    return SyncJobStore(db)


@pytest.fixture
def user_id(db):
    return db.upsert_oauth_user("puuid-1", "player@example.com", "Player", "0001").id


class TestJobLifecycle:
    def test_create_job_is_pending(self, store, user_id):
        job = store.create_job(user_id, 10)

        assert job["status"] == "pending"
        assert job["requestedCount"] == 10
        assert job["insertedCount"] == 0
        assert job["startedAt"] is None
        assert job["createdAt"].endswith("Z")

    def test_processing_sets_started_at(self, store, user_id):
        job = store.create_job(user_id, 5)
        store.update_status(job["jobId"], SyncJobStatus.PROCESSING)

        fetched = store.get_job(job["jobId"])
        assert fetched["status"] == "processing"
        assert fetched["startedAt"] is not None
        assert fetched["completedAt"] is None

    def test_completed_records_counts(self, store, user_id):
        job = store.create_job(user_id, 5)
        store.update_status(job["jobId"], "processing")
        store.update_status(job["jobId"], "completed", fetched=5, inserted=3, skipped=2)

        fetched = store.get_job(job["jobId"])
        assert fetched["status"] == "completed"
        assert (fetched["fetchedCount"], fetched["insertedCount"], fetched["skippedCount"]) == (5, 3, 2)
        assert fetched["completedAt"] is not None

    def test_failed_records_error(self, store, user_id):
        job = store.create_job(user_id, 5)
        store.update_status(job["jobId"], SyncJobStatus.FAILED, error="upstream down")

        fetched = store.get_job(job["jobId"])
        assert fetched["status"] == "failed"
        assert fetched["error"] == "upstream down"

    def test_unknown_status_rejected(self, store, user_id):
        job = store.create_job(user_id, 5)
        with pytest.raises(ValueError):
            store.update_status(job["jobId"], "exploded")

    def test_update_missing_job_is_noop(self, store):
        store.update_status("00000000-0000-0000-0000-000000000000", "completed")


class TestJobQueries:
    def test_get_job_scoped_to_owner(self, store, user_id):
        job = store.create_job(user_id, 5)
        assert store.get_job(job["jobId"], user_id=user_id) is not None
        assert store.get_job(job["jobId"], user_id="someone-else") is None

    def test_list_jobs(self, store, user_id):
        for count in (1, 2, 3):
            store.create_job(user_id, count)
        jobs = store.list_jobs(user_id)
        assert len(jobs) == 3
        assert store.list_jobs(user_id, limit=2)[0]["jobId"] in {j["jobId"] for j in jobs}

    def test_last_sync_time_ignores_failed_jobs(self, store, user_id):
        assert store.last_sync_time(user_id) is None

        ok = store.create_job(user_id, 5)
        assert store.last_sync_time(user_id) is not None

        store.update_status(ok["jobId"], "failed", error="boom")
        assert store.last_sync_time(user_id) is None


class TestCleanup:
    def test_removes_only_old_finished_jobs(self, db, store, user_id):
        old = store.create_job(user_id, 5)
        store.update_status(old["jobId"], "completed")
        recent = store.create_job(user_id, 5)
        store.update_status(recent["jobId"], "completed")
        pending = store.create_job(user_id, 5)

        session = db.get_session()
        try:
            job = session.get(SyncJob, old["jobId"])
            job.completed_at = utc_now() - timedelta(days=30)
            session.commit()
        finally:
            session.close()

        assert store.cleanup_expired(retention_days=7) == 1
        assert store.get_job(old["jobId"]) is None
        assert store.get_job(recent["jobId"]) is not None
        assert store.get_job(pending["jobId"]) is not None
