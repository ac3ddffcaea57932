"""
Analytics route handlers.

Endpoints:
- GET /api/analytics/performance: bucketed metric trend with settings changes
- POST /api/analytics/comparison: compare metrics across two date ranges
- GET /api/analytics/correlation: settings/performance correlation (not implemented)
"""

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from sensilog.analysis.analytics import (
    GroupBy,
    Metric,
    SettingField,
    analyze_correlation,
    calculate_period_stats,
    calculate_summary,
    compare_periods,
    detect_settings_changes,
    format_period_label,
    generate_data_points,
)
from sensilog.api.shared import CamelModel, resolve_date_range
from sensilog.auth.middleware import get_current_user
from sensilog.core.errors import ValidationFailedError
from sensilog.core.utils import end_of_day, start_of_day
from sensilog.infra.database import DatabaseManager, User, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class DateRange(CamelModel):
    start_date: date
    end_date: date


class ComparisonRequest(CamelModel):
    period1: DateRange
    period2: DateRange
    metrics: list[Metric] = Field(..., min_length=1)


@router.get("/performance")
async def get_performance(
    metric: Metric = Query(...),
    group_by: GroupBy = Query(GroupBy.DAY, alias="groupBy"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """
    Metric trend over a date range (default: the last 30 days).

    The summary is computed over the bucket averages; settings changes in
    the same range are returned so the chart can mark them.
    """
    start, end = resolve_date_range(start_date, end_date)

    matches = db.get_matches_in_range(user.id, start, end)
    data_points = generate_data_points(matches, metric, group_by, start, end)
    summary = calculate_summary([p.value for p in data_points])
    settings_changes = detect_settings_changes(db.get_settings_history(user.id, start, end))

    logger.debug(
        f"Performance for user {user.id}: {metric.value} by {group_by.value}, "
        f"{len(matches)} matches, {len(data_points)} points"
    )
    return {
        "dataPoints": [p.to_dict() for p in data_points],
        "summary": summary.to_dict(),
        "settingsChanges": [c.to_dict() for c in settings_changes],
    }


@router.post("/comparison")
async def compare(
    body: ComparisonRequest,
    user: User = Depends(get_current_user),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    periods = []
    for period in (body.period1, body.period2):
        if period.start_date > period.end_date:
            raise ValidationFailedError("startDate must not be after endDate")
        matches = db.get_matches_in_range(
            user.id, start_of_day(period.start_date), end_of_day(period.end_date)
        )
        periods.append((period, calculate_period_stats(matches, body.metrics)))

    (period1, stats1), (period2, stats2) = periods
    comparison = compare_periods(stats1, stats2, body.metrics)

    return {
        "period1": {
            "label": format_period_label(period1.start_date, period1.end_date),
            "stats": stats1.summary.to_dict(),
            "averages": stats1.averages,
            "matchCount": stats1.match_count,
        },
        "period2": {
            "label": format_period_label(period2.start_date, period2.end_date),
            "stats": stats2.summary.to_dict(),
            "averages": stats2.averages,
            "matchCount": stats2.match_count,
        },
        "comparison": {key: value.to_dict() for key, value in comparison.items()},
    }


@router.get("/correlation")
async def get_correlation(
    metric: Metric = Query(...),
    setting_field: SettingField = Query(..., alias="settingField"),
    days: int = Query(30, ge=7, le=365),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return analyze_correlation(metric, setting_field, days).to_dict()
