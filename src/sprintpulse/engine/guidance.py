"""
Proactive Sprint Guidance

Turns capacity signals, risk drivers and stale work into deterministic
coaching suggestions:

- Reallocation: move one linked item from an overloaded to an idle contributor
- Scope adjustment: defer low-priority stale items under delivery pressure
- Meeting optimization: targeted syncs for low input quality or blocker loops

Suggestions are content-addressed (see ``suggestion_id``) so the same logical
suggestion keeps its id across recomputation, which lets persisted
accept/dismiss/snooze state follow it from day to day.

Usage:
    result = build_proactive_sprint_guidance(ProactiveGuidanceInput(...))
    result.reallocation_suggestions, result.executive_view
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .dates import as_utc
from .numeric import clamp, format_number, round_half_up
from .types import (
    CapacitySignal,
    CapacitySignalType,
    ConfidenceLevel,
    ExecutiveView,
    GuidanceIssue,
    GuidanceResult,
    IssuePriority,
    LOW_CONFIDENCE_LABEL,
    ProjectRole,
    RequiredRole,
    RiskDriver,
    RiskDriverType,
    SprintGuidanceSuggestion,
    SuggestionState,
    SuggestionStateRecord,
    SuggestionType,
    coerce_project_role,
)

logger = logging.getLogger(__name__)


SUGGESTION_ID_LENGTH = 12
SUGGESTION_ID_EVIDENCE_ITEMS = 4
MAX_SUGGESTIONS_PER_TYPE = 3
MAX_SCOPE_CANDIDATES = 3

FORMULA_BASIS = (
    "impactScore = bounded weighted signal score (0-100) "
    "from overload/risk/quality/urgency metrics"
)

RISK_BASE_WEIGHTS: Dict[RiskDriverType, int] = {
    RiskDriverType.BLOCKER_CLUSTER: 5,
    RiskDriverType.MISSING_STANDUP: 4,
    RiskDriverType.STALE_WORK: 4,
    RiskDriverType.LOW_QUALITY_INPUT: 3,
    RiskDriverType.UNRESOLVED_ACTIONS: 4,
    RiskDriverType.END_OF_SPRINT_PRESSURE: 5,
    RiskDriverType.DELIVERY_RISK: 6,
}

SCOPE_RISK_TYPES = {RiskDriverType.DELIVERY_RISK, RiskDriverType.END_OF_SPRINT_PRESSURE}
FOLLOW_UP_MARKERS = ("follow up", "follow-up")


@dataclass
class ProactiveGuidanceInput:
    """Everything the guidance builder needs for one project, user and day."""
    capacity_signals: List[CapacitySignal] = field(default_factory=list)
    risk_drivers: List[RiskDriver] = field(default_factory=list)
    stale_issues: List[GuidanceIssue] = field(default_factory=list)
    persistent_blockers_over_2_days: int = 0
    quality_score: Optional[float] = None
    unresolved_actions: int = 0
    delivery_risk: bool = False
    forecast_confidence: ConfidenceLevel = ConfidenceLevel.LOW
    velocity_sample_days: int = 0
    open_action_ids: List[str] = field(default_factory=list)
    project_role: Optional[Any] = None
    suggestion_state_by_id: Mapping[str, SuggestionStateRecord] = field(default_factory=dict)
    proactive_guidance_enabled: bool = False


def suggestion_id(suggestion_type: SuggestionType, recommendation: str, evidence: List[str]) -> str:
    """
    Content hash identifying a suggestion.

    sha1 over ``type|recommendation|evidence[0]|...|evidence[3]``, truncated to
    12 hex characters. Persisted lifecycle rows are keyed by this value, so the
    algorithm and length must not change without migrating them.
    """
    parts = [SuggestionType(suggestion_type).value, recommendation]
    parts.extend(evidence[:SUGGESTION_ID_EVIDENCE_ITEMS])
    key = "|".join(parts)
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:SUGGESTION_ID_LENGTH]


def is_suppressed(record: Optional[SuggestionStateRecord], now: datetime) -> bool:
    """True while a dismissal or snooze window is still running."""
    if record is None:
        return False
    now = as_utc(now)
    if record.state == SuggestionState.DISMISSED:
        until = as_utc(record.dismissed_until)
        return until is not None and until > now
    if record.state == SuggestionState.SNOOZED:
        until = as_utc(record.snoozed_until)
        return until is not None and until > now
    return False


def _impact_band(score: float) -> str:
    if score >= 70:
        return "High"
    if score >= 40:
        return "Medium"
    return "Low"


def _display_work_item(work_id: str) -> str:
    prefix, _, item_id = work_id.partition(":")
    if not item_id:
        return work_id
    label = "Issue" if prefix == "issue" else "Research"
    return f"{label} {item_id}"


class _SuggestionFactory:
    """Builds suggestions and joins them against persisted lifecycle state."""

    def __init__(self, state_by_id: Mapping[str, SuggestionStateRecord], now: datetime):
        self.state_by_id = state_by_id
        self.now = now

    def build(
        self,
        suggestion_type: SuggestionType,
        recommendation: str,
        reason: str,
        evidence: List[str],
        impact_estimate: str,
        score: float,
        statement: str,
        requires_role: RequiredRole,
        confidence_label: Optional[str] = None,
    ) -> Optional[SprintGuidanceSuggestion]:
        identifier = suggestion_id(suggestion_type, recommendation, evidence)
        lifecycle = self.state_by_id.get(identifier)
        if is_suppressed(lifecycle, self.now):
            logger.debug("Suppressing suggestion %s (%s)", identifier, lifecycle.state.value)
            return None

        return SprintGuidanceSuggestion(
            id=identifier,
            type=suggestion_type,
            recommendation=recommendation,
            reason=reason,
            evidence=evidence,
            impact_estimate=impact_estimate,
            impact_score=int(clamp(round_half_up(score), 0, 100)),
            impact_explanation=f"{_impact_band(score)} expected effect. {statement}",
            formula_basis=FORMULA_BASIS,
            requires_role=requires_role,
            state=lifecycle.state if lifecycle else SuggestionState.OPEN,
            dismissed_until=lifecycle.dismissed_until if lifecycle else None,
            snoozed_until=lifecycle.snoozed_until if lifecycle else None,
            confidence_label=confidence_label,
        )


def _low_confidence_label(data: ProactiveGuidanceInput) -> Optional[str]:
    if data.forecast_confidence == ConfidenceLevel.LOW:
        return LOW_CONFIDENCE_LABEL
    return None


def build_reallocation_suggestions(
    data: ProactiveGuidanceInput,
    factory: _SuggestionFactory,
) -> List[SprintGuidanceSuggestion]:
    overloaded = [s for s in data.capacity_signals if s.type == CapacitySignalType.OVERLOADED]
    idle = [s for s in data.capacity_signals if s.type == CapacitySignalType.IDLE]
    suggestions = []

    for source in overloaded:
        linked = source.evidence.linked_work_ids
        candidate = next((work_id for work_id in linked if work_id.startswith("issue:")), None)
        if candidate is None and linked:
            candidate = linked[0]
        if not candidate:
            continue

        for target in idle:
            shift = max(1, min(2, source.open_items - source.thresholds.open_items))
            suggestion = factory.build(
                SuggestionType.REALLOCATION,
                recommendation=(
                    f"Consider reassigning {_display_work_item(candidate)} from {source.name} "
                    f"to {target.name} to balance workload."
                ),
                reason=f"{source.name} is overloaded while {target.name} has idle capacity.",
                evidence=[
                    f"{source.name}:openItems={source.open_items} threshold>{source.thresholds.open_items}",
                    f"{target.name}:idleDays={target.idle_days} threshold>={target.thresholds.idle_days}",
                    f"linkedWork:{candidate}",
                ],
                impact_estimate=(
                    f"May reduce {source.name}'s active load by ~{shift} item(s) "
                    "and activate an idle contributor."
                ),
                score=25 + source.open_items * 4 + target.idle_days * 3,
                statement=f"Estimated shift of {shift} item(s) from overloaded to idle contributor.",
                requires_role=RequiredRole.LEADERSHIP,
                confidence_label=_low_confidence_label(data),
            )
            if suggestion:
                suggestions.append(suggestion)

    return suggestions[:MAX_SUGGESTIONS_PER_TYPE]


def build_scope_adjustment_suggestions(
    data: ProactiveGuidanceInput,
    factory: _SuggestionFactory,
) -> List[SprintGuidanceSuggestion]:
    role = coerce_project_role(data.project_role)
    is_po_or_admin = role in (ProjectRole.PO, ProjectRole.ADMIN)
    has_risk_evidence = any(driver.type in SCOPE_RISK_TYPES for driver in data.risk_drivers)
    candidates = [
        issue for issue in data.stale_issues if issue.priority == IssuePriority.LOW
    ][:MAX_SCOPE_CANDIDATES]
    delivery_pressure = data.delivery_risk or data.forecast_confidence == ConfidenceLevel.LOW

    if not (is_po_or_admin and delivery_pressure and has_risk_evidence and candidates):
        return []

    labels = [issue.key or issue.id for issue in candidates]
    negative_types = "|".join(
        driver.type.value for driver in data.risk_drivers if driver.impact < 0
    )
    suggestion = factory.build(
        SuggestionType.SCOPE_ADJUSTMENT,
        recommendation=f"Consider deferring low-priority stale items: {', '.join(labels)}.",
        reason=(
            "Delivery risk is elevated, confidence is constrained, "
            "and candidates are low-priority stale work."
        ),
        evidence=[
            f"riskDrivers:{negative_types or 'n/a'}",
            f"forecastConfidence={data.forecast_confidence.value}",
            f"lowPriorityStaleItems={len(candidates)}",
        ],
        impact_estimate=(
            f"Deferring {len(candidates)} low-priority item(s) can reduce near-term scope pressure."
        ),
        score=35 + len(candidates) * 12 + (20 if data.delivery_risk else 0),
        statement=f"Scope load reduced by {len(candidates)} low-priority stale item(s).",
        requires_role=RequiredRole.PO_OR_ADMIN,
        confidence_label=_low_confidence_label(data),
    )
    return [suggestion] if suggestion else []


def build_meeting_optimization_suggestions(
    data: ProactiveGuidanceInput,
    factory: _SuggestionFactory,
) -> List[SprintGuidanceSuggestion]:
    suggestions = []

    if data.quality_score is not None and data.quality_score < 60:
        suggestion = factory.build(
            SuggestionType.MEETING_OPTIMIZATION,
            recommendation="Schedule a focused blocker-resolution session today.",
            reason="Standup signal quality is low while unresolved follow-ups remain high.",
            evidence=[
                f"qualityScore={format_number(data.quality_score)}(<60)",
                f"unresolvedActions={data.unresolved_actions}",
            ],
            impact_estimate=(
                "Can convert ambiguous blockers into assigned owners and time-boxed decisions."
            ),
            score=40 + max(0, 60 - data.quality_score),
            statement="Improves blocker clarity and decision velocity.",
            requires_role=RequiredRole.LEADERSHIP,
        )
        if suggestion:
            suggestions.append(suggestion)

    if data.persistent_blockers_over_2_days > 0:
        suggestion = factory.build(
            SuggestionType.MEETING_OPTIMIZATION,
            recommendation="Run a short dependency clarification sync with affected owners.",
            reason="Repeated blocker patterns are persisting across days.",
            evidence=[f"persistentBlockersOver2Days={data.persistent_blockers_over_2_days}"],
            impact_estimate="Should reduce repeated blocker carry-over in the next standup cycle.",
            score=35 + data.persistent_blockers_over_2_days * 10,
            statement="Targets repeated blocker chains through dependency alignment.",
            requires_role=RequiredRole.LEADERSHIP,
        )
        if suggestion:
            suggestions.append(suggestion)

    return suggestions[:MAX_SUGGESTIONS_PER_TYPE]


def deduplicate_against_actions(
    suggestions: List[SprintGuidanceSuggestion],
    open_action_ids: List[str],
) -> List[SprintGuidanceSuggestion]:
    """Drop follow-up style suggestions and ones pointing at an open action."""
    normalized_ids = {action_id.lower() for action_id in open_action_ids}
    kept = []
    for suggestion in suggestions:
        recommendation = suggestion.recommendation.lower()
        if any(marker in recommendation for marker in FOLLOW_UP_MARKERS):
            continue
        references_action = any(
            item.lower().replace("action:", "", 1) in normalized_ids
            for item in suggestion.evidence
        )
        if references_action:
            continue
        kept.append(suggestion)
    return kept


def _risk_score(driver: RiskDriver) -> int:
    return RISK_BASE_WEIGHTS.get(driver.type, 1) * max(1, abs(driver.impact))


def build_executive_view(
    data: ProactiveGuidanceInput,
    suggestions: List[SprintGuidanceSuggestion],
) -> ExecutiveView:
    negative = [driver for driver in data.risk_drivers if driver.impact < 0]
    ranked = sorted(negative, key=_risk_score, reverse=True)[:3]
    top_risks = [
        f"{driver.type.value} ({driver.impact}) • "
        f"{', '.join(driver.evidence[:2]) or 'evidence:n/a'}"
        for driver in ranked
    ]

    todays_focus = [
        "Protect sprint delivery by reducing immediate scope/flow risk."
        if data.delivery_risk
        else "Maintain steady execution and prevent new blockers.",
        "Use Action Center to close aged open actions first."
        if data.unresolved_actions > 5
        else "Track action ownership in Action Center and keep queue size low.",
        "Break repeated blocker loops by resolving dependency root causes."
        if data.persistent_blockers_over_2_days > 0
        else "Preserve blocker response speed to sustain momentum.",
    ]

    return ExecutiveView(
        todays_focus=todays_focus,
        top_risks=top_risks,
        top_actions=[suggestion.recommendation for suggestion in suggestions[:3]],
        suggested_structural_adjustment=suggestions[0].recommendation if suggestions else None,
    )


def build_proactive_sprint_guidance(
    data: ProactiveGuidanceInput,
    now: Optional[datetime] = None,
) -> GuidanceResult:
    """
    Build coaching suggestions and the executive view.

    Reallocation and scope adjustment are withheld when forecast confidence is
    LOW; meeting optimization is not gated on confidence.

    Args:
        data: Aggregated signals, role and persisted lifecycle state
        now: Reference time for dismissal/snooze expiry (defaults to UTC now)

    Returns:
        GuidanceResult
    """
    if not data.proactive_guidance_enabled:
        return GuidanceResult(
            reallocation_suggestions=[],
            scope_adjustment_suggestions=[],
            meeting_optimization_suggestions=[],
            executive_view=build_executive_view(data, []),
        )

    factory = _SuggestionFactory(data.suggestion_state_by_id, now or datetime.now(timezone.utc))
    low_confidence = data.forecast_confidence == ConfidenceLevel.LOW

    meeting = build_meeting_optimization_suggestions(data, factory)
    reallocation = [] if low_confidence else build_reallocation_suggestions(data, factory)
    scope = [] if low_confidence else build_scope_adjustment_suggestions(data, factory)

    deduped = deduplicate_against_actions(reallocation + scope + meeting, data.open_action_ids)
    surviving = {suggestion.id for suggestion in deduped}

    return GuidanceResult(
        reallocation_suggestions=[s for s in reallocation if s.id in surviving],
        scope_adjustment_suggestions=[s for s in scope if s.id in surviving],
        meeting_optimization_suggestions=[s for s in meeting if s.id in surviving],
        executive_view=build_executive_view(data, deduped),
    )
