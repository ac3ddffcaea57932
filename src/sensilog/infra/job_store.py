"""
Sync Job Store - Track background match sync jobs.

Jobs are persisted in the sync_jobs table so that a client can submit a
sync and later query its outcome, and so that the per-user cooldown can be
computed from the most recent job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sensilog.core.utils import utc_now
from sensilog.infra.database import DatabaseManager, SyncJob

logger = logging.getLogger(__name__)


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


FINISHED_STATUSES = (SyncJobStatus.COMPLETED.value, SyncJobStatus.FAILED.value)


class SyncJobStore:
    """Persistent sync job tracking using database storage."""

    def __init__(self, db_manager: DatabaseManager | None = None):
        """
        Initialize job store.

        Args:
            db_manager: Optional DatabaseManager instance. If None, uses global instance.
        """
        if db_manager is None:
            from sensilog.infra.database import get_db

            db_manager = get_db()
        self.db = db_manager

    def create_job(self, user_id: str, requested_count: int) -> dict[str, Any]:
        """
        Create a new pending sync job.

        Args:
            user_id: User whose matches are synced
            requested_count: Number of recent matches requested

        Returns:
            Job dictionary (jobId, status, counts, timestamps)
        """
        session = self.db.get_session()
        try:
            job = SyncJob(
                user_id=user_id,
                status=SyncJobStatus.PENDING.value,
                requested_count=requested_count,
                created_at=utc_now(),
            )
            session.add(job)
            session.commit()
            session.refresh(job)

            logger.info(f"Created sync job {job.id} for user {user_id} ({requested_count} matches)")
            return job.to_dict()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to create sync job: {e}")
            raise
        finally:
            session.close()

    def get_job(self, job_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        """
        Retrieve job status and details.

        Args:
            job_id: Job UUID
            user_id: When given, only a job owned by this user is returned

        Returns:
            Job dictionary or None if not found
        """
        session = self.db.get_session()
        try:
            query = session.query(SyncJob).filter(SyncJob.id == job_id)
            if user_id is not None:
                query = query.filter(SyncJob.user_id == user_id)
            job = query.first()
            return job.to_dict() if job else None
        finally:
            session.close()

    def update_status(
        self,
        job_id: str,
        status: SyncJobStatus | str | None = None,
        fetched: int | None = None,
        inserted: int | None = None,
        skipped: int | None = None,
        error: str | None = None,
    ) -> None:
        """
        Update job status and optionally its counters or error.

        Args:
            job_id: Job UUID
            status: New status, or None to keep the current one
            fetched: Matches fetched from the match API
            inserted: Matches stored
            skipped: Matches skipped as already stored
            error: Error message for failed jobs
        """
        session = self.db.get_session()
        try:
            job = session.query(SyncJob).filter(SyncJob.id == job_id).first()
            if not job:
                logger.warning(f"Sync job {job_id} not found for status update")
                return

            if status is not None:
                status = SyncJobStatus(status).value
                job.status = status

                if status == SyncJobStatus.PROCESSING.value and not job.started_at:
                    job.started_at = utc_now()

                if status in FINISHED_STATUSES:
                    job.completed_at = utc_now()

            if fetched is not None:
                job.fetched_count = fetched
            if inserted is not None:
                job.inserted_count = inserted
            if skipped is not None:
                job.skipped_count = skipped
            if error is not None:
                job.error_message = error

            session.commit()
            logger.info(f"Updated sync job {job_id} to status: {job.status}")
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to update sync job {job_id}: {e}")
            raise
        finally:
            session.close()

    def list_jobs(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Recent jobs of a user, newest first."""
        session = self.db.get_session()
        try:
            jobs = (
                session.query(SyncJob)
                .filter(SyncJob.user_id == user_id)
                .order_by(SyncJob.created_at.desc())
                .limit(limit)
                .all()
            )
            return [j.to_dict() for j in jobs]
        finally:
            session.close()

    def last_sync_time(self, user_id: str) -> datetime | None:
        """Creation time of the user's most recent job that did not fail."""
        session = self.db.get_session()
        try:
            job = (
                session.query(SyncJob)
                .filter(
                    SyncJob.user_id == user_id,
                    SyncJob.status != SyncJobStatus.FAILED.value,
                )
                .order_by(SyncJob.created_at.desc())
                .first()
            )
            return job.created_at if job else None
        finally:
            session.close()

    def cleanup_expired(self, retention_days: int = 7) -> int:
        """
        Remove old completed/failed jobs.

        Args:
            retention_days: Keep jobs from last N days

        Returns:
            Number of jobs deleted
        """
        session = self.db.get_session()
        try:
            cutoff = utc_now() - timedelta(days=retention_days)
            deleted = (
                session.query(SyncJob)
                .filter(
                    SyncJob.status.in_(FINISHED_STATUSES),
                    SyncJob.completed_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            session.commit()

            if deleted > 0:
                logger.info(f"Cleaned up {deleted} sync jobs older than {retention_days} days")

            return deleted
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to cleanup expired sync jobs: {e}")
            raise
        finally:
            session.close()
