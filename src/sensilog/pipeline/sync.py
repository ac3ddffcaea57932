"""
Background match sync.

A sync job fetches the user's latest matches from the Riot match API (or the
mock client in development), transforms them and stores the ones not seen
before. The job runs on a daemon thread with its own event loop; its
progress and outcome are recorded in the sync job store.
"""

import asyncio
import logging
import math
import threading
from datetime import timedelta
from typing import Any

from sensilog.core.config import SensiLogConfig, get_config
from sensilog.core.utils import utc_now
from sensilog.infra.database import DatabaseManager, get_db
from sensilog.infra.job_store import SyncJobStatus, SyncJobStore
from sensilog.integrations.riot import RiotAPIService, create_riot_client

logger = logging.getLogger(__name__)


def check_sync_cooldown(
    user_id: str,
    job_store: SyncJobStore | None = None,
    config: SensiLogConfig | None = None,
) -> int | None:
    """
    Seconds the user must wait before the next sync, or None if allowed.

    With enforcement off (the default) no prior sync is ever reported, so
    every request passes.
    """
    config = config or get_config()
    if not config.sync.enforce_cooldown:
        return None

    job_store = job_store or SyncJobStore()
    last_sync = job_store.last_sync_time(user_id)
    if last_sync is None:
        return None

    cooldown = timedelta(minutes=config.sync.cooldown_minutes)
    remaining = (last_sync + cooldown - utc_now()).total_seconds()
    if remaining <= 0:
        return None
    return math.ceil(remaining)


class MatchSyncService:
    """Runs one sync job end to end."""

    def __init__(
        self,
        db: DatabaseManager | None = None,
        job_store: SyncJobStore | None = None,
        config: SensiLogConfig | None = None,
    ):
        self.db = db or get_db()
        self.job_store = job_store or SyncJobStore(self.db)
        self.config = config or get_config()

    async def run(self, job_id: str, user_id: str, puuid: str, count: int) -> dict[str, Any]:
        """
        Fetch, transform and store the user's latest matches.

        Per-match failures are skipped inside the Riot service; anything
        else marks the job failed and is re-raised.

        Returns:
            The final job dictionary
        """
        self.job_store.update_status(job_id, SyncJobStatus.PROCESSING)
        logger.info(f"Sync job {job_id}: fetching {count} matches for user {user_id}")

        try:
            async with create_riot_client(self.config) as client:
                service = RiotAPIService(client)
                matches = await service.sync_player_matches(puuid, count)

            inserted, skipped = self.db.save_match_records(user_id, matches)
        except Exception as e:
            logger.exception(f"Sync job {job_id} failed")
            self.job_store.update_status(job_id, SyncJobStatus.FAILED, error=str(e))
            raise

        self.job_store.update_status(
            job_id,
            SyncJobStatus.COMPLETED,
            fetched=len(matches),
            inserted=inserted,
            skipped=skipped,
        )
        logger.info(
            f"Sync job {job_id} completed: {inserted} new, {skipped} already stored, "
            f"{len(matches)} fetched"
        )
        return self.job_store.get_job(job_id) or {}


def _run_in_thread(service: MatchSyncService, job_id: str, user_id: str, puuid: str, count: int):
    try:
        asyncio.run(service.run(job_id, user_id, puuid, count))
    except Exception:
        # Already recorded on the job by MatchSyncService.run
        logger.debug(f"Sync thread for job {job_id} exited with an error")


def start_sync_job(
    user_id: str,
    puuid: str,
    count: int,
    db: DatabaseManager | None = None,
    config: SensiLogConfig | None = None,
) -> dict[str, Any]:
    """
    Create a sync job and launch it on a daemon thread.

    Returns:
        The pending job dictionary, immediately
    """
    db = db or get_db()
    job_store = SyncJobStore(db)
    service = MatchSyncService(db=db, job_store=job_store, config=config)

    job = job_store.create_job(user_id, count)
    try:
        threading.Thread(
            target=_run_in_thread,
            args=(service, job["jobId"], user_id, puuid, count),
            daemon=True,
        ).start()
    except RuntimeError as e:
        logger.exception(f"Failed to start sync thread for job {job['jobId']}")
        job_store.update_status(job["jobId"], SyncJobStatus.FAILED, error=str(e))
        raise

    return job
