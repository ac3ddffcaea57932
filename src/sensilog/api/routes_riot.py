"""
Riot account route handlers.

Endpoints:
- POST /api/riot/search-player: resolve a Riot id to a puuid
- POST /api/riot/link-account: link a Riot account to the current user
- DELETE /api/riot/unlink-account: remove the linked Riot account
- GET /api/riot/link-status: linked account of the current user
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.exc import IntegrityError

from sensilog.api.shared import CamelModel
from sensilog.auth.middleware import get_current_user
from sensilog.core.errors import BadRequestError, NotFoundError
from sensilog.infra.database import DatabaseManager, User, get_db
from sensilog.integrations.riot import RiotAPIError, RiotAPIService, create_riot_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/riot", tags=["riot"])


class RiotIdRequest(CamelModel):
    game_name: str = Field(..., min_length=1, max_length=16)
    tag_line: str = Field(..., min_length=1, max_length=5)


async def _find_player(body: RiotIdRequest, failure_code: str) -> dict[str, str]:
    """Look the player up, mapping upstream failures onto client errors."""
    try:
        async with create_riot_client() as client:
            return await RiotAPIService(client).find_player(body.game_name, body.tag_line)
    except RiotAPIError as e:
        if e.upstream_status == 404:
            raise NotFoundError("Player not found", code="PLAYER_NOT_FOUND") from e
        raise BadRequestError("Riot account lookup failed", code=failure_code) from e


@router.post("/search-player")
async def search_player(
    body: RiotIdRequest, user: User = Depends(get_current_user)
) -> dict[str, Any]:
    player = await _find_player(body, "SEARCH_FAILED")
    return {
        "puuid": player["puuid"],
        "gameName": player["game_name"],
        "tagLine": player["tag_line"],
    }


@router.post("/link-account")
async def link_account(
    body: RiotIdRequest,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """Resolve the Riot id and store puuid, game name and tag line on the user."""
    player = await _find_player(body, "LINK_FAILED")

    try:
        db.link_riot_account(user.id, player["puuid"], player["game_name"], player["tag_line"])
    except IntegrityError as e:
        raise BadRequestError(
            "Riot account is already linked to another user", code="LINK_FAILED"
        ) from e

    logger.info(
        f"User {user.id} linked Riot account: "
        f"{player['game_name']}#{player['tag_line']} ({player['puuid']})"
    )
    return {"message": "Riot account linked", "linked": True, "puuid": player["puuid"]}


@router.delete("/unlink-account")
async def unlink_account(
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    db.unlink_riot_account(user.id)
    logger.info(f"User {user.id} unlinked Riot account")
    return {"message": "Riot account unlinked", "unlinked": True}


@router.get("/link-status")
async def link_status(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {
        "linked": bool(user.riot_puuid),
        "gameName": user.game_name,
        "tagLine": user.tag_line,
        "puuid": user.riot_puuid,
    }
