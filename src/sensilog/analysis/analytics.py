"""
Performance analytics over synced match records and settings history.

Everything here is a pure function of already-loaded rows:
- time-bucketed metric averages for charting
- summary statistics with a half-split trend classification
- settings change detection between consecutive settings records
- period-over-period metric comparison
- the match summary shown on the dashboard

Rows are read through attribute access, so ORM objects and simple
namespaces both work.
"""

from __future__ import annotations

import calendar
import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from sensilog.core.utils import isoformat, mean

logger = logging.getLogger(__name__)

# Half-split trend thresholds
IMPROVING_RATIO = 1.05
DECLINING_RATIO = 0.95

# Dashboard summary compares the latest RECENT_WINDOW matches to the ones before
RECENT_WINDOW = 10
MIN_WINDOW_MATCHES = 5


class Metric(str, Enum):
    COMBAT_SCORE = "combatScore"
    HEADSHOT_PERCENTAGE = "headshotPercentage"
    KD_RATIO = "kdRatio"
    ADR = "adr"


METRIC_ATTRIBUTES: dict[Metric, str] = {
    Metric.COMBAT_SCORE: "combat_score",
    Metric.HEADSHOT_PERCENTAGE: "headshot_percentage",
    Metric.KD_RATIO: "kd_ratio",
    Metric.ADR: "adr",
}


class GroupBy(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class SettingField(str, Enum):
    SENSITIVITY = "sensitivity"
    DPI = "dpi"
    MOUSE_DEVICE = "mouseDevice"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


# =============================================================================
# Result types
# =============================================================================


@dataclass
class DataPoint:
    date: str
    value: float
    match_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "value": self.value, "matchCount": self.match_count}


@dataclass
class PerformanceSummary:
    average: float = 0.0
    best: float = 0.0
    worst: float = 0.0
    trend: Trend = Trend.STABLE
    change_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "average": self.average,
            "best": self.best,
            "worst": self.worst,
            "trend": self.trend.value,
            "changePercent": self.change_percent,
        }


@dataclass
class FieldChange:
    field: str
    old_value: str | None
    new_value: str

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "oldValue": self.old_value, "newValue": self.new_value}


@dataclass
class SettingsChange:
    date: str
    changes: list[FieldChange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "changes": [c.to_dict() for c in self.changes]}


@dataclass
class PeriodStats:
    averages: dict[str, float]
    summary: PerformanceSummary
    match_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "averages": dict(self.averages),
            "summary": self.summary.to_dict(),
            "matchCount": self.match_count,
        }


@dataclass
class MetricComparison:
    difference: float
    percent_change: float
    trend: str  # "up", "down" or "same"

    def to_dict(self) -> dict[str, Any]:
        return {
            "difference": self.difference,
            "percentChange": self.percent_change,
            "trend": self.trend,
        }


@dataclass
class CorrelationResult:
    correlation_coefficient: float
    significance: str
    data_points: list[dict[str, Any]] = field(default_factory=list)
    insights: list[dict[str, Any]] = field(default_factory=list)
    implemented: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "correlationCoefficient": self.correlation_coefficient,
            "significance": self.significance,
            "dataPoints": list(self.data_points),
            "insights": list(self.insights),
            "implemented": self.implemented,
        }


# =============================================================================
# Metric access and bucketing
# =============================================================================


def get_metric_value(match: Any, metric: Metric | str) -> float | None:
    """Value of a metric on a match row; None when absent. Zero is a valid value."""
    value = getattr(match, METRIC_ATTRIBUTES[Metric(metric)], None)
    if value is None:
        return None
    return float(value)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def bucket_start(start: datetime, group_by: GroupBy, index: int) -> datetime:
    """Start of the index-th bucket counted from start."""
    if group_by == GroupBy.DAY:
        return start + timedelta(days=index)
    if group_by == GroupBy.WEEK:
        return start + timedelta(days=7 * index)
    return add_months(start, index)


def generate_data_points(
    matches: Sequence[Any],
    metric: Metric | str,
    group_by: GroupBy | str,
    start: datetime,
    end: datetime,
) -> list[DataPoint]:
    """
    Average a metric over consecutive half-open time buckets.

    Buckets start at `start` and advance by one day, seven days or one
    calendar month while the bucket start is not after `end`. A bucket is
    emitted only if at least one of its matches has a value for the metric;
    its matchCount still counts every match in the bucket.

    Returns:
        Data points in chronological order
    """
    group_by = GroupBy(group_by)
    ordered = sorted(matches, key=lambda m: m.game_start_time)

    points: list[DataPoint] = []
    cursor = 0
    index = 0
    current = start
    while current <= end:
        next_start = bucket_start(start, group_by, index + 1)

        # Skip matches before the first bucket
        while cursor < len(ordered) and ordered[cursor].game_start_time < current:
            cursor += 1

        bucket = []
        while cursor < len(ordered) and ordered[cursor].game_start_time < next_start:
            bucket.append(ordered[cursor])
            cursor += 1

        values = [v for v in (get_metric_value(m, metric) for m in bucket) if v is not None]
        if values:
            points.append(
                DataPoint(
                    date=current.date().isoformat(),
                    value=mean(values),
                    match_count=len(bucket),
                )
            )

        index += 1
        current = next_start

    return points


# =============================================================================
# Summary statistics
# =============================================================================


def classify_trend(first_avg: float, second_avg: float) -> Trend:
    if second_avg > first_avg * IMPROVING_RATIO:
        return Trend.IMPROVING
    if second_avg < first_avg * DECLINING_RATIO:
        return Trend.DECLINING
    return Trend.STABLE


def calculate_summary(values: Sequence[float]) -> PerformanceSummary:
    """
    Average, best, worst and half-split trend of a value sequence.

    The sequence is split at floor(n/2); the trend compares the two half
    means and changePercent is their relative change (0 when the first half
    mean is 0). A single value has no first half and reports stable.
    """
    if not values:
        return PerformanceSummary()

    values = list(values)
    half = len(values) // 2
    first_half = values[:half]
    second_half = values[half:]

    trend = Trend.STABLE
    change_percent = 0.0
    if first_half:
        first_avg = mean(first_half)
        second_avg = mean(second_half)
        trend = classify_trend(first_avg, second_avg)
        if first_avg != 0:
            change_percent = (second_avg - first_avg) / first_avg * 100

    return PerformanceSummary(
        average=mean(values),
        best=max(values),
        worst=min(values),
        trend=trend,
        change_percent=change_percent,
    )


# =============================================================================
# Settings history
# =============================================================================


def _format_setting(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def detect_settings_changes(records: Sequence[Any]) -> list[SettingsChange]:
    """
    Differences between consecutive settings records.

    Args:
        records: Settings records ordered newest first

    Returns:
        One entry per adjacent pair with at least one changed field
        (sensitivity, dpi, mouseDevice), dated at the newer record
    """
    changes: list[SettingsChange] = []

    for i in range(1, len(records)):
        current = records[i - 1]
        previous = records[i]

        field_changes: list[FieldChange] = []
        if current.sensitivity != previous.sensitivity:
            field_changes.append(
                FieldChange(
                    field=SettingField.SENSITIVITY.value,
                    old_value=_format_setting(previous.sensitivity),
                    new_value=_format_setting(current.sensitivity) or "",
                )
            )
        if current.dpi != previous.dpi:
            field_changes.append(
                FieldChange(
                    field=SettingField.DPI.value,
                    old_value=_format_setting(previous.dpi),
                    new_value=_format_setting(current.dpi) or "",
                )
            )
        if current.mouse_device != previous.mouse_device:
            field_changes.append(
                FieldChange(
                    field=SettingField.MOUSE_DEVICE.value,
                    old_value=previous.mouse_device,
                    new_value=current.mouse_device or "",
                )
            )

        if field_changes:
            changes.append(SettingsChange(date=isoformat(current.created_at), changes=field_changes))

    return changes


# =============================================================================
# Period comparison
# =============================================================================


def calculate_period_stats(matches: Sequence[Any], metrics: Sequence[Metric | str]) -> PeriodStats:
    """Per-metric means (missing values excluded) plus a combat score summary."""
    averages: dict[str, float] = {}
    for metric in metrics:
        metric = Metric(metric)
        values = [v for v in (get_metric_value(m, metric) for m in matches) if v is not None]
        if values:
            averages[metric.value] = mean(values)

    combat_scores = [
        v for v in (get_metric_value(m, Metric.COMBAT_SCORE) for m in matches) if v is not None
    ]
    return PeriodStats(
        averages=averages,
        summary=calculate_summary(combat_scores),
        match_count=len(matches),
    )


def compare_metric(value1: float, value2: float) -> MetricComparison:
    difference = value2 - value1
    percent_change = difference / value1 * 100 if value1 != 0 else 0.0
    if difference > 0:
        trend = "up"
    elif difference < 0:
        trend = "down"
    else:
        trend = "same"
    return MetricComparison(difference=difference, percent_change=percent_change, trend=trend)


def compare_periods(
    stats1: PeriodStats, stats2: PeriodStats, metrics: Sequence[Metric | str]
) -> dict[str, MetricComparison]:
    """Compare two periods metric by metric; metrics missing from either side are omitted."""
    comparison: dict[str, MetricComparison] = {}
    for metric in metrics:
        key = Metric(metric).value
        if key in stats1.averages and key in stats2.averages:
            comparison[key] = compare_metric(stats1.averages[key], stats2.averages[key])
    return comparison


def format_period_label(start: date, end: date) -> str:
    """Human-readable label, e.g. "1/5/2025 - 2/4/2025"."""

    def _fmt(d: date) -> str:
        return f"{d.month}/{d.day}/{d.year}"

    return f"{_fmt(start)} - {_fmt(end)}"


# =============================================================================
# Correlation
# =============================================================================


def analyze_correlation(
    metric: Metric | str, setting_field: SettingField | str, days: int
) -> CorrelationResult:
    """
    Settings-to-performance correlation.

    Not implemented: returns the fixed placeholder result with
    implemented=False so clients can tell it apart from a real analysis.
    """
    metric = Metric(metric)
    setting_field = SettingField(setting_field)
    logger.debug(
        f"Correlation requested for {setting_field.value} vs {metric.value} over {days} days"
    )
    return CorrelationResult(
        correlation_coefficient=0.75,
        significance="moderate",
        data_points=[],
        insights=[
            {
                "type": "trend",
                "message": (
                    f"Changes to {setting_field.value} appear to be associated with "
                    f"{metric.value}. Correlation analysis is not available yet."
                ),
                "confidence": 0.8,
            }
        ],
        implemented=False,
    )


# =============================================================================
# Dashboard summary
# =============================================================================


def _favorite(values: list[str | None]) -> str | None:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def summarize_matches(matches: Sequence[Any]) -> dict[str, Any]:
    """
    Dashboard summary of a user's matches.

    Args:
        matches: Match rows ordered newest first

    Returns:
        totalMatches, per-metric averages, winRate, favoriteAgent,
        favoriteMap and recentPerformance (latest 10 vs previous 10
        combat scores, needing at least 5 matches on each side)
    """
    if not matches:
        return {
            "totalMatches": 0,
            "averages": {},
            "winRate": None,
            "favoriteAgent": None,
            "favoriteMap": None,
            "recentPerformance": {"trend": Trend.STABLE.value, "changePercent": 0.0},
        }

    averages: dict[str, float] = {}
    for metric in Metric:
        values = [v for v in (get_metric_value(m, metric) for m in matches) if v is not None]
        if values:
            averages[metric.value] = mean(values)

    wins = sum(1 for m in matches if m.team_won is True)
    win_rate = wins / len(matches) * 100

    recent = matches[:RECENT_WINDOW]
    older = matches[RECENT_WINDOW : RECENT_WINDOW * 2]

    trend = Trend.STABLE
    change_percent = 0.0
    if len(recent) >= MIN_WINDOW_MATCHES and len(older) >= MIN_WINDOW_MATCHES:
        recent_scores = [
            v for v in (get_metric_value(m, Metric.COMBAT_SCORE) for m in recent) if v is not None
        ]
        older_scores = [
            v for v in (get_metric_value(m, Metric.COMBAT_SCORE) for m in older) if v is not None
        ]
        if recent_scores and older_scores:
            recent_avg = mean(recent_scores)
            older_avg = mean(older_scores)
            trend = classify_trend(older_avg, recent_avg)
            if older_avg != 0:
                change_percent = (recent_avg - older_avg) / older_avg * 100

    return {
        "totalMatches": len(matches),
        "averages": averages,
        "winRate": win_rate,
        "favoriteAgent": _favorite([m.agent_name for m in matches]),
        "favoriteMap": _favorite([m.map_name for m in matches]),
        "recentPerformance": {"trend": trend.value, "changePercent": change_percent},
    }
