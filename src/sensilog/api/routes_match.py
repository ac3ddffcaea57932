"""
Match data route handlers.

Endpoints:
- GET /api/match-data: list synced matches with filters
- POST /api/match-data/sync: start a background sync from the Riot API
- GET /api/match-data/sync/{job_id}: sync job status
- POST /api/match-data/generate-mock: store generated matches (non-production only)
- GET /api/match-data/summary: aggregate statistics over a date range
"""

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import Field

from sensilog.analysis.analytics import summarize_matches
from sensilog.api.shared import CamelModel, optional_range, rate_limit, sync_limit, validate_uuid
from sensilog.auth import mock
from sensilog.auth.middleware import get_current_user
from sensilog.core.config import get_config
from sensilog.core.errors import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    RateLimitExceededError,
)
from sensilog.infra.database import DatabaseManager, User, get_db
from sensilog.infra.job_store import SyncJobStore
from sensilog.pipeline.sync import check_sync_cooldown, start_sync_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/match-data", tags=["match-data"])


class SyncRequest(CamelModel):
    count: int = Field(10, ge=1, le=20)


class GenerateMockRequest(CamelModel):
    count: int = Field(20, ge=1, le=100)


@router.get("")
async def list_matches(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    maps: list[str] | None = Query(None),
    agents: list[str] | None = Query(None),
    game_mode: str | None = Query(None, alias="gameMode"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """List matches newest first. `maps` and `agents` match any of the given values."""
    start, end = optional_range(start_date, end_date)
    matches, total = db.list_match_records(
        user.id,
        start=start,
        end=end,
        maps=maps,
        agents=agents,
        game_mode=game_mode,
        limit=limit,
        offset=offset,
    )
    return {
        "matches": [m.to_dict() for m in matches],
        "total": total,
        "hasMore": offset + limit < total,
    }


@router.post("/sync", status_code=202)
@rate_limit(sync_limit)
async def sync_matches(
    request: Request,
    body: SyncRequest | None = None,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> JSONResponse:
    """
    Start syncing the user's latest matches.

    Returns immediately with the job id; poll the status URL for progress.
    """
    config = get_config()
    count = body.count if body is not None else config.sync.default_count
    count = min(count, config.sync.max_count)

    retry_after = check_sync_cooldown(user.id, SyncJobStore(db), config)
    if retry_after is not None:
        raise RateLimitExceededError("Rate limit exceeded", retry_after=retry_after)

    if not user.riot_puuid:
        raise BadRequestError(
            "User does not have a linked Riot account", code="NO_RIOT_ACCOUNT"
        )

    job = start_sync_job(user.id, user.riot_puuid, count, db=db, config=config)
    logger.info(f"Match data sync started for user {user.id}, job {job['jobId']}")

    return JSONResponse(
        status_code=202,
        content={
            "message": "Match data sync started",
            "jobId": job["jobId"],
            "status": job["status"],
            "statusUrl": f"/api/match-data/sync/{job['jobId']}",
        },
    )


@router.get("/sync/{job_id}")
async def get_sync_status(
    job_id: str,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    validate_uuid(job_id, "job id")
    job = SyncJobStore(db).get_job(job_id, user_id=user.id)
    if job is None:
        raise NotFoundError("Sync job not found", code="JOB_NOT_FOUND")
    return job


@router.post("/generate-mock")
async def generate_mock_data(
    body: GenerateMockRequest | None = None,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """Generate and store mock matches for the user's puuid."""
    if get_config().is_production:
        raise ForbiddenError(
            "Mock data generation is only available in development",
            code="NOT_DEVELOPMENT_MODE",
        )
    if not user.riot_puuid:
        raise BadRequestError("User does not have a Riot PUUID", code="MISSING_PUUID")

    count = body.count if body is not None else 20
    matches = mock.generate_mock_matches(user.riot_puuid, count=count)
    inserted, skipped = db.save_match_records(user.id, matches)

    logger.info(f"Generated {inserted} mock matches for user {user.id} ({skipped} already stored)")
    return {
        "message": f"Generated {inserted} mock matches",
        "generated": inserted,
        "skipped": skipped,
    }


@router.get("/summary")
async def get_summary(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    start, end = optional_range(start_date, end_date)
    return summarize_matches(db.get_matches(user.id, start=start, end=end))
