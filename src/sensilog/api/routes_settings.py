"""
Settings record route handlers.

Endpoints:
- GET /api/settings/records: list the user's settings records
- POST /api/settings/records: create a settings record
- GET /api/settings/records/{record_id}: get one record
- PUT /api/settings/records/{record_id}: partially update a record
- DELETE /api/settings/records/{record_id}: delete a record
- GET /api/settings/suggestions: device name suggestions for input forms
"""

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field

from sensilog.api.shared import CamelModel, optional_range, validate_uuid
from sensilog.auth.middleware import get_current_user
from sensilog.core.errors import NotFoundError
from sensilog.infra.database import DatabaseManager, User, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


# =============================================================================
# Request Models
# =============================================================================


class SettingsRecordCreate(CamelModel):
    sensitivity: float = Field(..., ge=0, le=10)
    dpi: int = Field(..., ge=100, le=10000)
    mouse_device: str | None = Field(None, max_length=100)
    keyboard_device: str | None = Field(None, max_length=100)
    mousepad: str | None = Field(None, max_length=100)
    tags: list[str] = Field(default_factory=list)
    comment: str | None = Field(None, max_length=500)


class SettingsRecordUpdate(CamelModel):
    """Every field optional; only the fields sent are changed."""

    sensitivity: float | None = Field(None, ge=0, le=10)
    dpi: int | None = Field(None, ge=100, le=10000)
    mouse_device: str | None = Field(None, max_length=100)
    keyboard_device: str | None = Field(None, max_length=100)
    mousepad: str | None = Field(None, max_length=100)
    tags: list[str] | None = None
    comment: str | None = Field(None, max_length=500)


DEVICE_SUGGESTIONS: dict[str, list[str]] = {
    "mice": [
        "Logitech G Pro X Superlight",
        "Razer DeathAdder V3",
        "SteelSeries Rival 600",
        "Corsair M65 RGB Elite",
        "Zowie EC2",
        "Glorious Model O",
        "HyperX Pulsefire Haste",
    ],
    "keyboards": [
        "Logitech G Pro X",
        "Razer Huntsman Elite",
        "SteelSeries Apex Pro",
        "Corsair K70 RGB",
        "Ducky One 2 Mini",
        "HyperX Alloy FPS Pro",
        "Keychron K6",
    ],
    "mousepads": [
        "SteelSeries QcK+",
        "Razer Goliathus Extended",
        "Corsair MM300",
        "HyperX Fury S",
        "Zowie G-SR",
        "Glorious 3XL",
        "Artisan Hayate Otsu",
    ],
}


def _not_found() -> NotFoundError:
    return NotFoundError("Settings record not found", code="RECORD_NOT_FOUND")


# =============================================================================
# Records
# =============================================================================


@router.get("/records")
async def list_records(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    tags: list[str] | None = Query(None),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """
    List settings records, newest first.

    Dates are inclusive whole days. When tags are given, only records
    carrying all of them are returned.
    """
    start, end = optional_range(start_date, end_date)
    records, total = db.list_settings_records(
        user.id, limit=limit, offset=offset, start=start, end=end, tags=tags
    )
    return {
        "records": [r.to_dict() for r in records],
        "total": total,
        "hasMore": offset + limit < total,
    }


@router.post("/records", status_code=201)
async def create_record(
    body: SettingsRecordCreate,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    record = db.create_settings_record(user.id, body.model_dump())
    logger.info(
        f"User {user.id} logged settings {record.id}: "
        f"sensitivity {record.sensitivity} @ {record.dpi} DPI"
    )
    return record.to_dict()


@router.get("/records/{record_id}")
async def get_record(
    record_id: str,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    validate_uuid(record_id, "record id")
    record = db.get_settings_record(user.id, record_id)
    if record is None:
        raise _not_found()
    return record.to_dict()


@router.put("/records/{record_id}")
async def update_record(
    record_id: str,
    body: SettingsRecordUpdate,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    validate_uuid(record_id, "record id")
    updates = body.model_dump(exclude_unset=True)
    if "tags" in updates and updates["tags"] is None:
        updates["tags"] = []
    # sensitivity and dpi cannot be cleared
    for key in ("sensitivity", "dpi"):
        if key in updates and updates[key] is None:
            del updates[key]

    record = db.update_settings_record(user.id, record_id, updates)
    if record is None:
        raise _not_found()
    return record.to_dict()


@router.delete("/records/{record_id}", status_code=204)
async def delete_record(
    record_id: str,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> Response:
    validate_uuid(record_id, "record id")
    if not db.delete_settings_record(user.id, record_id):
        raise _not_found()
    logger.info(f"User {user.id} deleted settings record {record_id}")
    return Response(status_code=204)


@router.get("/suggestions")
async def get_suggestions(user: User = Depends(get_current_user)) -> dict[str, list[str]]:
    """Common gaming peripherals offered as input suggestions."""
    return DEVICE_SUGGESTIONS
