"""
Sprint Health Trend

Smooths a run of daily health computations into a report:

- 3-day trailing mean per trend point (the first points average fewer days)
- Risk delta on raw driver counts with a +/-2 dead-band
- Trend indicator from the smoothed day-over-day delta
- Smoothed projected completion (mean of the last three projections)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .dates import as_utc, days_between
from .numeric import mean_or_zero, round2
from .health_scorer import status_for_score
from .signal_aggregator import DailySprintHealth, VelocitySnapshot
from .types import (
    CapacitySignal,
    ConfidenceLevel,
    ConfidenceBasis,
    ExecutiveView,
    HealthStatus,
    NormalizedMetrics,
    Probabilities,
    ProbabilityModel,
    RiskDriver,
    RiskDriverType,
    ScoreBreakdownItem,
    SprintGuidanceSuggestion,
    TrendIndicator,
    to_jsonable,
)

SMOOTHING_WINDOW = 3
RISK_DELTA_DEAD_BAND = 2
TREND_DELTA_THRESHOLD = 2
PROJECTION_SMOOTHING_POINTS = 3

RISK_CONCENTRATION_AREAS: Dict[RiskDriverType, str] = {
    RiskDriverType.BLOCKER_CLUSTER: "Blockers",
    RiskDriverType.MISSING_STANDUP: "Standup participation",
    RiskDriverType.STALE_WORK: "Execution flow",
    RiskDriverType.LOW_QUALITY_INPUT: "Input quality",
    RiskDriverType.UNRESOLVED_ACTIONS: "Follow-through",
    RiskDriverType.END_OF_SPRINT_PRESSURE: "Sprint timing pressure",
    RiskDriverType.DELIVERY_RISK: "Sprint timing pressure",
}


@dataclass
class TrendPoint:
    date: str
    health_score: float
    status: HealthStatus


@dataclass
class SprintHealthReport:
    """Latest day's health plus its smoothed 14-day context."""
    date: str
    health_score: int
    smoothed_health_score: float
    status: HealthStatus
    confidence_level: ConfidenceLevel
    confidence_basis: ConfidenceBasis
    score_breakdown: List[ScoreBreakdownItem]
    risk_drivers: List[RiskDriver]
    probabilities: Probabilities
    probability_model: ProbabilityModel
    normalized_metrics: NormalizedMetrics
    scoring_model_version: str
    risk_concentration_areas: List[str]
    concentration_index: float
    stale_work_count: int
    missing_standup_members: int
    persistent_blockers_over_2_days: int
    unresolved_actions: int
    quality_score: Optional[float]
    trend_14d: List[TrendPoint]
    risk_delta_since_yesterday: int
    trend_indicator: TrendIndicator
    velocity_snapshot: VelocitySnapshot
    smoothed_projected_completion_date: Optional[datetime]
    projected_date_delta_days: int
    capacity_signals: List[CapacitySignal]
    forecast_confidence: ConfidenceLevel
    proactive_guidance_enabled: bool
    reallocation_suggestions: List[SprintGuidanceSuggestion]
    scope_adjustment_suggestions: List[SprintGuidanceSuggestion]
    meeting_optimization_suggestions: List[SprintGuidanceSuggestion]
    executive_view: ExecutiveView

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


def smooth_trend(days: List[DailySprintHealth]) -> List[TrendPoint]:
    points = []
    for index, day in enumerate(days):
        window = days[max(0, index - SMOOTHING_WINDOW + 1):index + 1]
        average = round2(mean_or_zero([item.health_score for item in window]))
        points.append(TrendPoint(date=day.date, health_score=average, status=status_for_score(average)))
    return points


def risk_delta(latest: DailySprintHealth, previous: Optional[DailySprintHealth]) -> int:
    """Change in raw risk-driver count; magnitudes within the dead-band read as 0."""
    if previous is None:
        return 0
    delta = len(latest.risk_drivers) - len(previous.risk_drivers)
    if abs(delta) <= RISK_DELTA_DEAD_BAND:
        return 0
    return delta


def trend_indicator(points: List[TrendPoint]) -> TrendIndicator:
    if len(points) < 2:
        return TrendIndicator.UNCHANGED
    delta = points[-1].health_score - points[-2].health_score
    if delta > TREND_DELTA_THRESHOLD:
        return TrendIndicator.IMPROVED
    if delta < -TREND_DELTA_THRESHOLD:
        return TrendIndicator.DEGRADED
    return TrendIndicator.UNCHANGED


def smoothed_projected_completion(days: List[DailySprintHealth]) -> Optional[datetime]:
    projections = [
        as_utc(day.velocity_snapshot.projected_completion_date)
        for day in days
        if day.velocity_snapshot.projected_completion_date is not None
    ][-PROJECTION_SMOOTHING_POINTS:]
    if not projections:
        return None
    mean_timestamp = mean_or_zero([value.timestamp() for value in projections])
    return datetime.fromtimestamp(mean_timestamp, tz=timezone.utc)


def projected_date_delta(latest: DailySprintHealth, previous: Optional[DailySprintHealth]) -> int:
    if previous is None:
        return 0
    current = latest.velocity_snapshot.projected_completion_date
    prior = previous.velocity_snapshot.projected_completion_date
    if current is None or prior is None:
        return 0
    return days_between(prior, current)


def risk_concentration_areas(drivers: List[RiskDriver]) -> List[str]:
    areas: Dict[str, None] = {}
    for driver in drivers:
        if driver.impact >= 0:
            continue
        area = RISK_CONCENTRATION_AREAS.get(driver.type)
        if area:
            areas[area] = None
    return list(areas)


def build_sprint_health_report(days: List[DailySprintHealth]) -> SprintHealthReport:
    """
    Build the trend report from daily computations in ascending date order.

    Args:
        days: One computation per day, oldest first; at least one

    Returns:
        SprintHealthReport describing the last day
    """
    if not days:
        raise ValueError("At least one daily computation is required")

    latest = days[-1]
    previous = days[-2] if len(days) > 1 else None
    points = smooth_trend(days)
    computation = latest.computation
    guidance = latest.guidance

    return SprintHealthReport(
        date=latest.date,
        health_score=computation.health_score,
        smoothed_health_score=points[-1].health_score,
        status=computation.status,
        confidence_level=computation.confidence_level,
        confidence_basis=computation.confidence_basis,
        score_breakdown=computation.score_breakdown,
        risk_drivers=latest.risk_drivers,
        probabilities=computation.probabilities,
        probability_model=computation.probability_model,
        normalized_metrics=computation.normalized_metrics,
        scoring_model_version=computation.scoring_model_version,
        risk_concentration_areas=risk_concentration_areas(latest.risk_drivers),
        concentration_index=latest.concentration_index,
        stale_work_count=latest.stale_work_count,
        missing_standup_members=latest.missing_standup_members,
        persistent_blockers_over_2_days=latest.persistent_blockers_over_2_days,
        unresolved_actions=latest.unresolved_actions,
        quality_score=latest.quality_score,
        trend_14d=points,
        risk_delta_since_yesterday=risk_delta(latest, previous),
        trend_indicator=trend_indicator(points),
        velocity_snapshot=latest.velocity_snapshot,
        smoothed_projected_completion_date=(
            smoothed_projected_completion(days) or latest.velocity_snapshot.projected_completion_date
        ),
        projected_date_delta_days=projected_date_delta(latest, previous),
        capacity_signals=latest.capacity_signals,
        forecast_confidence=latest.forecast_confidence,
        proactive_guidance_enabled=latest.proactive_guidance_enabled,
        reallocation_suggestions=guidance.reallocation_suggestions,
        scope_adjustment_suggestions=guidance.scope_adjustment_suggestions,
        meeting_optimization_suggestions=guidance.meeting_optimization_suggestions,
        executive_view=guidance.executive_view,
    )
