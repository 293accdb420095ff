"""
Sprint Signal Aggregator

Reduces one day of project activity into health-scorer inputs plus the
auxiliary delivery metrics around them.

Windows (all inclusive, UTC days):
- Lookback: day-6 .. day (blocker chains, velocity, scope churn)
- Capacity: day-13 .. day (linked work, capacity signals, coverage)
- Blocker resolution: day-29 .. day

Derived quantities:
- Persistent blocker chains (same normalized snippet on >= 3 distinct days)
- Stale work (open issues untouched for 72h and not mentioned in standups)
- Velocity, stability and weighted remaining-work projection
- Forecast confidence from data quality, stability, volatility and coverage
- Capacity signals (OVERLOADED / MULTI_BLOCKED / IDLE) per member

Usage:
    summary = aggregate_signals(activity, "2026-07-10")
    daily = compute_daily_sprint_health(activity, "2026-07-10", project_role="PO")
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Set

from .activity import (
    ACTION_DONE,
    HISTORY_FIELD_SPRINT,
    HISTORY_FIELD_STATUS,
    ISSUE_DONE,
    UNRESOLVED_ACTION_STATES,
    ProjectActivity,
    SprintWindow,
    StandupEntry,
)
from .dates import (
    DAY,
    as_utc,
    date_range,
    day_key,
    days_between,
    end_of_day,
    hours_between,
    parse_day,
    start_of_day,
)
from .guidance import ProactiveGuidanceInput, build_proactive_sprint_guidance
from .health_scorer import HEALTH_MODEL, HealthModel, compute_sprint_health_score
from .numeric import clamp, format_number, mean_or_zero, ordered_unique, population_stddev, round2
from .types import (
    CapacityEvidence,
    CapacitySignal,
    CapacitySignalType,
    CapacityThresholds,
    ConfidenceLevel,
    GuidanceIssue,
    GuidanceResult,
    HealthStatus,
    RiskDriver,
    RiskDriverType,
    SprintHealthComputation,
    SprintHealthInput,
    SuggestionStateRecord,
    to_jsonable,
)

PROJECTION_MODEL_VERSION = "3.2.1"

LOOKBACK_DAYS = 7
CAPACITY_WINDOW_DAYS = 14
BLOCKER_RESOLUTION_WINDOW_DAYS = 30
STALE_WORK_HOURS = 72
PERSISTENT_BLOCKER_MIN_DAYS = 3
MIN_SNIPPET_LENGTH = 5
DELIVERY_RISK_IMPACT = -10

FORECAST_CONFIDENCE_WEIGHTS = {
    "data_quality": 0.4,
    "velocity_stability": 0.3,
    "blocker_volatility": 0.15,
    "linked_coverage": 0.15,
}
FORECAST_CONFIDENCE_THRESHOLDS = {
    "high": 0.75,
    "medium": 0.55,
    "minimum_sample_days": 5,
}
MAX_SCOPE_CHURN_PENALTY = 0.2
SCOPE_CHURN_PENALTY_FACTOR = 0.25
MIN_COMPLETION_RATE = 0.1

CAPACITY_THRESHOLDS = CapacityThresholds()
MAX_CAPACITY_ENTRY_IDS = 8
MAX_CAPACITY_WORK_IDS = 12

ISSUE_TYPE_WEIGHTS = {"BUG": 1.1, "STORY": 1.35}
# (minimum age in days, weight), oldest bucket first
AGE_WEIGHT_BUCKETS = ((21, 1.4), (10, 1.2), (5, 1.1))

_SNIPPET_SPLIT = re.compile(r"[.\n,;]+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class AggregationWindows:
    day: date
    day_start: datetime
    day_end: datetime
    lookback_start: datetime
    capacity_start: datetime
    blocker_start: datetime

    @classmethod
    def for_day(cls, day: Any) -> "AggregationWindows":
        parsed = parse_day(day)
        day_start = start_of_day(parsed)
        return cls(
            day=parsed,
            day_start=day_start,
            day_end=end_of_day(parsed),
            lookback_start=day_start - (LOOKBACK_DAYS - 1) * DAY,
            capacity_start=day_start - (CAPACITY_WINDOW_DAYS - 1) * DAY,
            blocker_start=day_start - (BLOCKER_RESOLUTION_WINDOW_DAYS - 1) * DAY,
        )

    @property
    def fetch_start(self) -> datetime:
        """Earliest instant any derived quantity reads."""
        return self.blocker_start


@dataclass
class VelocitySnapshot:
    """Delivery projection for one project-day."""
    avg_tasks_completed_per_day: float
    avg_blocker_resolution_hours: Optional[float]
    avg_action_resolution_hours: Optional[float]
    completion_rate_per_day: float
    remaining_linked_work: int
    weighted_remaining_work: float
    projected_completion_date: Optional[datetime]
    delivery_risk: bool
    linked_work_coverage: float
    sample_size_days: int
    scope_added_work_count: int
    scope_removed_work_count: int
    scope_change_summary: str
    sprint: Optional[SprintWindow]
    forecast_confidence: ConfidenceLevel
    data_quality_score: float
    velocity_stability_score: float
    blocker_volatility_score: float
    projection_model_version: str = PROJECTION_MODEL_VERSION
    projection_definitions: Dict[str, Any] = field(default_factory=dict)
    unweighted_projection_warning: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


@dataclass
class SignalSummary:
    """Everything the aggregator derives for a day, before scoring."""
    day: str
    member_count: int
    missing_standup_user_ids: List[str]
    blocker_chain_keys: List[str]
    stale_issues: List[GuidanceIssue]
    overlapping_stale_blocked_issue_count: int
    unresolved_actions: int
    unresolved_action_ids_by_user: Dict[str, List[str]]
    active_task_count: int
    days_remaining_in_sprint: Optional[int]
    quality_score: Optional[float]
    velocity: VelocitySnapshot
    capacity_signals: List[CapacitySignal]

    @property
    def persistent_blockers_over_2_days(self) -> int:
        return len(self.blocker_chain_keys)

    @property
    def missing_standup_members(self) -> int:
        return len(self.missing_standup_user_ids)

    def scorer_input(self) -> SprintHealthInput:
        return SprintHealthInput(
            persistent_blockers_over_2_days=self.persistent_blockers_over_2_days,
            missing_standup_members=self.missing_standup_members,
            stale_work_count=len(self.stale_issues),
            unresolved_actions=self.unresolved_actions,
            quality_score=self.quality_score,
            team_size=max(1, self.member_count),
            active_task_count=max(1, self.active_task_count),
            days_remaining_in_sprint=self.days_remaining_in_sprint,
        )

    def open_action_ids(self, user_id: Optional[str] = None) -> List[str]:
        if user_id is not None:
            return list(self.unresolved_action_ids_by_user.get(user_id, []))
        return [
            action_id
            for action_ids in self.unresolved_action_ids_by_user.values()
            for action_id in action_ids
        ]


@dataclass
class DailySprintHealth:
    """Scored health for one project-day, with projections and guidance."""
    date: str
    computation: SprintHealthComputation
    risk_drivers: List[RiskDriver]
    stale_work_count: int
    missing_standup_members: int
    persistent_blockers_over_2_days: int
    unresolved_actions: int
    quality_score: Optional[float]
    concentration_index: float
    velocity_snapshot: VelocitySnapshot
    capacity_signals: List[CapacitySignal]
    forecast_confidence: ConfidenceLevel
    proactive_guidance_enabled: bool
    guidance: GuidanceResult

    @property
    def health_score(self) -> int:
        return self.computation.health_score

    @property
    def status(self) -> HealthStatus:
        return self.computation.status

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


# =============================================================================
# Helpers
# =============================================================================

def blocker_snippets(text: Optional[str]) -> List[str]:
    """Normalize blocker text into comparable fragments."""
    if not text or not text.strip():
        return []
    snippets = []
    for fragment in _SNIPPET_SPLIT.split(text):
        snippet = _WHITESPACE.sub(" ", fragment.strip().lower())
        if len(snippet) > MIN_SNIPPET_LENGTH:
            snippets.append(snippet)
    return snippets


def issue_type_weight(issue_type: Optional[str]) -> float:
    return ISSUE_TYPE_WEIGHTS.get((issue_type or "").upper(), 1.0)


def age_weight(created_at: datetime, reference: datetime) -> float:
    age_days = days_between(created_at, reference)
    for min_days, weight in AGE_WEIGHT_BUCKETS:
        if age_days >= min_days:
            return weight
    return 1.0


def stability_score(values: List[float], mean: float) -> float:
    """1 - stddev / max(1, mean + 1), bounded to [0, 1]."""
    deviation = population_stddev(values, mean)
    return round2(clamp(1 - deviation / max(1, mean + 1), 0, 1))


def _entries_between(entries: List[StandupEntry], start: datetime, end: datetime) -> List[StandupEntry]:
    return [entry for entry in entries if start <= as_utc(entry.date) <= end]


def _forecast_level(sample_days: int, score: float) -> ConfidenceLevel:
    if sample_days >= FORECAST_CONFIDENCE_THRESHOLDS["minimum_sample_days"]:
        if score >= FORECAST_CONFIDENCE_THRESHOLDS["high"]:
            return ConfidenceLevel.HIGH
        if score >= FORECAST_CONFIDENCE_THRESHOLDS["medium"]:
            return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def projection_definitions(has_active_sprint: bool) -> Dict[str, Any]:
    if has_active_sprint:
        remaining = (
            "Open linked work includes issue/research items linked via standups "
            "since sprint start for the active sprint scope."
        )
    else:
        remaining = (
            "Open linked work includes issue/research items linked via standups "
            "in the last 14 days."
        )
    return {
        "model_version": PROJECTION_MODEL_VERSION,
        "completion_definition": (
            "Issue completion is counted only by issue history status transition to DONE."
        ),
        "remaining_work_definition": remaining,
        "weighting_model": (
            "Weighted by issue type and work-item age buckets; "
            "unlinked work is excluded from projection."
        ),
        "warning": "Projection is linkage-dependent and excludes unlinked backlog work.",
        "confidence_weights": dict(FORECAST_CONFIDENCE_WEIGHTS),
        "confidence_thresholds": dict(FORECAST_CONFIDENCE_THRESHOLDS),
        "capacity_thresholds": to_jsonable(CAPACITY_THRESHOLDS),
    }


# =============================================================================
# Aggregation
# =============================================================================

def aggregate_signals(activity: ProjectActivity, day: Any) -> SignalSummary:
    """
    Derive every scorer input and delivery metric for one day.

    Args:
        activity: Project activity covering at least the 30-day window
        day: ISO day string, date or datetime

    Returns:
        SignalSummary
    """
    windows = AggregationWindows.for_day(day)
    day_iso = windows.day.isoformat()
    day_start, day_end = windows.day_start, windows.day_end

    members = activity.members
    entries = activity.standup_entries
    open_issues = [issue for issue in activity.issues if issue.is_open]
    open_research = [item for item in activity.research_items if item.is_open]
    sprint = activity.active_sprint

    # Standup participation
    day_entries = _entries_between(entries, day_start, day_end)
    reporting_users = {entry.user_id for entry in day_entries}
    missing_user_ids = [m.user_id for m in members if m.user_id not in reporting_users]

    # Persistent blocker chains
    recent_entries = _entries_between(entries, windows.lookback_start, day_end)
    chains: Dict[str, Set[str]] = {}
    for entry in recent_entries:
        for snippet in blocker_snippets(entry.blockers):
            chains.setdefault(f"{entry.user_id}:{snippet}", set()).add(day_key(entry.date))
    chain_keys = [key for key, days in chains.items() if len(days) >= PERSISTENT_BLOCKER_MIN_DAYS]

    # Stale work: untouched for 72h and not mentioned in standups since then
    stale_cutoff = day_end - timedelta(hours=STALE_WORK_HOURS)
    mentioned_issue_ids = {
        issue_id
        for entry in _entries_between(entries, stale_cutoff, day_end)
        for issue_id in entry.linked_issue_ids
    }
    stale_issues = [
        GuidanceIssue(id=issue.id, key=issue.key, title=issue.title, priority=issue.priority)
        for issue in open_issues
        if as_utc(issue.updated_at) < stale_cutoff and issue.id not in mentioned_issue_ids
    ]
    blocker_issue_ids = {
        issue_id
        for entry in recent_entries if entry.has_blockers
        for issue_id in entry.linked_issue_ids
    }
    overlapping = sum(1 for issue in stale_issues if issue.id in blocker_issue_ids)

    # Unresolved actions
    unresolved_by_user: Dict[str, List[str]] = {}
    unresolved_count = 0
    for state in activity.action_states:
        if state.state in UNRESOLVED_ACTION_STATES and as_utc(state.date) <= day_end:
            unresolved_count += 1
            unresolved_by_user.setdefault(state.user_id, []).append(state.action_id)

    days_remaining = None
    if sprint and sprint.end_date:
        remaining_days = (as_utc(sprint.end_date) - day_start) / DAY
        days_remaining = max(0, math.ceil(remaining_days))

    # Velocity over the trailing 7 days
    velocity_days = date_range(windows.lookback_start.date(), windows.day)
    done_by_day: Dict[str, int] = {}
    for transition in activity.issue_transitions:
        if (
            transition.field_name == HISTORY_FIELD_STATUS
            and transition.new_value == ISSUE_DONE
            and windows.lookback_start <= as_utc(transition.created_at) <= day_end
        ):
            key = day_key(transition.created_at)
            done_by_day[key] = done_by_day.get(key, 0) + 1
    completed_counts = [done_by_day.get(d, 0) for d in velocity_days]
    sample_days = sum(1 for count in completed_counts if count > 0)
    avg_completed = round2(mean_or_zero(completed_counts))
    velocity_stability = 0.0 if avg_completed <= 0 else stability_score(completed_counts, avg_completed)

    # Blocker and action resolution times (30-day window)
    blocker_window_entries = sorted(
        (e for e in _entries_between(entries, windows.blocker_start, day_end) if e.has_blockers),
        key=lambda e: as_utc(e.date),
    )
    spans: Dict[str, Dict[str, Any]] = {}
    for entry in blocker_window_entries:
        entry_date = as_utc(entry.date)
        for snippet in blocker_snippets(entry.blockers):
            span = spans.setdefault(
                f"{entry.user_id}:{snippet}",
                {"first": entry_date, "last": entry_date, "days": set()},
            )
            span["first"] = min(span["first"], entry_date)
            span["last"] = max(span["last"], entry_date)
            span["days"].add(day_key(entry_date))
    blocker_hours = [
        round2(hours_between(span["first"], span["last"]))
        for span in spans.values()
        if len(span["days"]) >= 2 and span["last"] < day_start
    ]
    avg_blocker_hours = round2(mean_or_zero(blocker_hours)) if blocker_hours else None

    action_hours = [
        hours
        for hours in (
            round2(hours_between(state.created_at, state.updated_at))
            for state in activity.action_states
            if state.state == ACTION_DONE
            and windows.blocker_start <= as_utc(state.updated_at) <= day_end
        )
        if hours >= 0
    ]
    avg_action_hours = round2(mean_or_zero(action_hours)) if action_hours else None

    # Linked work since sprint start (or the capacity window without a sprint)
    scope_start = as_utc(sprint.start_date) if sprint and sprint.start_date else windows.capacity_start
    capacity_entries = _entries_between(entries, windows.capacity_start, day_end)
    scoped_entries = [entry for entry in capacity_entries if as_utc(entry.date) >= scope_start]

    issue_by_id = {issue.id: issue for issue in open_issues}
    research_by_id = {item.id: item for item in open_research}
    remaining_issue_ids = ordered_unique(
        issue_id
        for entry in scoped_entries
        for issue_id in entry.linked_issue_ids
        if issue_id in issue_by_id
    )
    remaining_research_ids = ordered_unique(
        item_id
        for entry in scoped_entries
        for item_id in entry.linked_research_ids
        if item_id in research_by_id
    )
    remaining_work = len(remaining_issue_ids) + len(remaining_research_ids)

    weighted_sum = sum(
        issue_type_weight(issue_by_id[issue_id].type) * age_weight(issue_by_id[issue_id].created_at, day_end)
        for issue_id in remaining_issue_ids
    ) + sum(
        age_weight(research_by_id[item_id].created_at, day_end)
        for item_id in remaining_research_ids
    )
    weighted_remaining = round2(weighted_sum)

    completion_rate = max(MIN_COMPLETION_RATE, avg_completed)
    projected_completion = day_start + math.ceil(weighted_remaining / completion_rate) * DAY
    delivery_risk = bool(
        sprint and sprint.end_date and projected_completion > as_utc(sprint.end_date)
    )

    capacity_signals = _capacity_signals(
        activity, windows, scoped_entries, issue_by_id, research_by_id, blocker_window_entries
    )

    # Scope churn from sprint reassignment history
    added, removed = 0, 0
    for transition in activity.issue_transitions:
        if transition.field_name != HISTORY_FIELD_SPRINT:
            continue
        if not windows.lookback_start <= as_utc(transition.created_at) <= day_end:
            continue
        old_value = (transition.old_value or "").strip()
        new_value = (transition.new_value or "").strip()
        if not old_value and new_value:
            added += 1
        elif old_value and not new_value:
            removed += 1
        elif old_value and new_value and old_value != new_value:
            added += 1
            removed += 1

    blocker_counts_by_day: Dict[str, int] = {}
    for entry in blocker_window_entries:
        key = day_key(entry.date)
        blocker_counts_by_day[key] = blocker_counts_by_day.get(key, 0) + 1
    blocker_daily = [blocker_counts_by_day.get(d, 0) for d in velocity_days]
    blocker_volatility = stability_score(blocker_daily, mean_or_zero(blocker_daily))

    with_linked_work = sum(1 for entry in capacity_entries if entry.has_linked_work)
    linked_coverage = round2(with_linked_work / max(1, len(capacity_entries)))

    quality_score = activity.quality_scores.get(day_iso)
    quality_parts = [
        clamp(quality_score / 100, 0, 1) if quality_score is not None else 0.5,
        clamp(len(day_entries) / max(1, len(members)), 0, 1),
        clamp((avg_completed + 1) / (remaining_work + avg_completed + 1), 0, 1),
        linked_coverage,
    ]
    data_quality = round2(mean_or_zero(quality_parts))

    churn_ratio = round2((added + removed) / max(1, remaining_work + sum(completed_counts)))
    churn_penalty = min(MAX_SCOPE_CHURN_PENALTY, churn_ratio * SCOPE_CHURN_PENALTY_FACTOR)
    weighted_confidence = (
        data_quality * FORECAST_CONFIDENCE_WEIGHTS["data_quality"]
        + velocity_stability * FORECAST_CONFIDENCE_WEIGHTS["velocity_stability"]
        + blocker_volatility * FORECAST_CONFIDENCE_WEIGHTS["blocker_volatility"]
        + linked_coverage * FORECAST_CONFIDENCE_WEIGHTS["linked_coverage"]
    )
    forecast_confidence = _forecast_level(sample_days, max(0.0, weighted_confidence - churn_penalty))

    velocity = VelocitySnapshot(
        avg_tasks_completed_per_day=avg_completed,
        avg_blocker_resolution_hours=avg_blocker_hours,
        avg_action_resolution_hours=avg_action_hours,
        completion_rate_per_day=completion_rate,
        remaining_linked_work=remaining_work,
        weighted_remaining_work=weighted_remaining,
        projected_completion_date=projected_completion,
        delivery_risk=delivery_risk,
        linked_work_coverage=linked_coverage,
        sample_size_days=sample_days,
        scope_added_work_count=added,
        scope_removed_work_count=removed,
        scope_change_summary=(
            f"Scope changed by +{added} / -{removed} items in the last {LOOKBACK_DAYS} days."
        ),
        sprint=sprint,
        forecast_confidence=forecast_confidence,
        data_quality_score=data_quality,
        velocity_stability_score=velocity_stability,
        blocker_volatility_score=blocker_volatility,
        projection_definitions=projection_definitions(sprint is not None),
    )

    return SignalSummary(
        day=day_iso,
        member_count=len(members),
        missing_standup_user_ids=missing_user_ids,
        blocker_chain_keys=chain_keys,
        stale_issues=stale_issues,
        overlapping_stale_blocked_issue_count=overlapping,
        unresolved_actions=unresolved_count,
        unresolved_action_ids_by_user=unresolved_by_user,
        active_task_count=len(open_issues),
        days_remaining_in_sprint=days_remaining,
        quality_score=quality_score,
        velocity=velocity,
        capacity_signals=capacity_signals,
    )


def _capacity_signals(
    activity: ProjectActivity,
    windows: AggregationWindows,
    scoped_entries: List[StandupEntry],
    issue_by_id: Mapping[str, Any],
    research_by_id: Mapping[str, Any],
    blocker_window_entries: List[StandupEntry],
) -> List[CapacitySignal]:
    open_work_by_user: Dict[str, Dict[str, None]] = {}
    entry_ids_by_user: Dict[str, Dict[str, None]] = {}
    last_linked_by_user: Dict[str, datetime] = {}

    for entry in scoped_entries:
        if not entry.has_linked_work:
            continue
        user_id = entry.user_id
        open_work = open_work_by_user.setdefault(user_id, {})
        for issue_id in entry.linked_issue_ids:
            if issue_id in issue_by_id:
                open_work[f"issue:{issue_id}"] = None
        for item_id in entry.linked_research_ids:
            if item_id in research_by_id:
                open_work[f"research:{item_id}"] = None
        entry_ids_by_user.setdefault(user_id, {})[entry.id] = None
        entry_date = as_utc(entry.date)
        if user_id not in last_linked_by_user or last_linked_by_user[user_id] < entry_date:
            last_linked_by_user[user_id] = entry_date

    blocked_issues_by_user: Dict[str, Dict[str, None]] = {}
    blocker_entries_by_user: Dict[str, Dict[str, None]] = {}
    for entry in blocker_window_entries:
        if as_utc(entry.date) < windows.lookback_start:
            continue
        blocked = blocked_issues_by_user.setdefault(entry.user_id, {})
        for issue_id in entry.linked_issue_ids:
            blocked[issue_id] = None
        blocker_entries_by_user.setdefault(entry.user_id, {})[entry.id] = None

    signals: List[CapacitySignal] = []
    for member in activity.members:
        user_id = member.user_id
        name = member.display_name
        open_items = len(open_work_by_user.get(user_id, {}))
        blocked_items = len(blocked_issues_by_user.get(user_id, {}))
        idle_days = days_between(last_linked_by_user.get(user_id, windows.capacity_start), windows.day_end)
        evidence = CapacityEvidence(
            entry_ids=list(entry_ids_by_user.get(user_id, {}))[:MAX_CAPACITY_ENTRY_IDS],
            linked_work_ids=list(open_work_by_user.get(user_id, {}))[:MAX_CAPACITY_WORK_IDS],
        )

        def signal(signal_type: CapacitySignalType, signal_evidence: CapacityEvidence, message: str) -> CapacitySignal:
            return CapacitySignal(
                user_id=user_id,
                name=name,
                type=signal_type,
                open_items=open_items,
                blocked_items=blocked_items,
                idle_days=idle_days,
                thresholds=CAPACITY_THRESHOLDS,
                evidence=signal_evidence,
                message=message,
            )

        if open_items > CAPACITY_THRESHOLDS.open_items:
            signals.append(signal(
                CapacitySignalType.OVERLOADED,
                evidence,
                f"{name} has {open_items} open linked items (> {CAPACITY_THRESHOLDS.open_items}).",
            ))

        if blocked_items >= CAPACITY_THRESHOLDS.blocked_items:
            signals.append(signal(
                CapacitySignalType.MULTI_BLOCKED,
                CapacityEvidence(
                    entry_ids=list(blocker_entries_by_user.get(user_id, {}))[:MAX_CAPACITY_ENTRY_IDS],
                    linked_work_ids=[
                        f"issue:{issue_id}" for issue_id in blocked_issues_by_user.get(user_id, {})
                    ][:MAX_CAPACITY_WORK_IDS],
                ),
                f"{name} is blocked on {blocked_items} linked tasks.",
            ))

        if open_items == 0 and idle_days >= CAPACITY_THRESHOLDS.idle_days:
            signals.append(signal(
                CapacitySignalType.IDLE,
                evidence,
                f"{name} has had no linked work for {idle_days} days.",
            ))

    return signals


def enrich_risk_drivers(summary: SignalSummary, drivers: List[RiskDriver]) -> List[RiskDriver]:
    """
    Replace scorer evidence with concrete ids and append the delivery-risk driver.

    The DELIVERY_RISK driver is informational: it feeds guidance and the
    executive view but is not part of the health score.
    """
    velocity = summary.velocity
    projected = velocity.projected_completion_date
    sprint_end = velocity.sprint.end_date if velocity.sprint else None
    delivery_evidence = [
        f"projectedCompletion:{day_key(projected) if projected else 'n/a'}",
        f"sprintEnd:{day_key(sprint_end) if sprint_end else 'n/a'}",
    ]
    evidence_by_type = {
        RiskDriverType.BLOCKER_CLUSTER: summary.blocker_chain_keys[:6],
        RiskDriverType.MISSING_STANDUP: summary.missing_standup_user_ids[:6],
        RiskDriverType.STALE_WORK: [issue.id for issue in summary.stale_issues][:10],
        RiskDriverType.LOW_QUALITY_INPUT: (
            [f"quality:{format_number(summary.quality_score)}"] if summary.quality_score is not None else []
        ),
        RiskDriverType.UNRESOLVED_ACTIONS: [f"count:{summary.unresolved_actions}"],
        RiskDriverType.END_OF_SPRINT_PRESSURE: (
            [f"daysRemaining:{summary.days_remaining_in_sprint}"]
            if summary.days_remaining_in_sprint is not None
            else []
        ),
        RiskDriverType.OVERLAP_DEDUP_CREDIT: [
            f"overlapIssueCount:{summary.overlapping_stale_blocked_issue_count}"
        ],
        RiskDriverType.DELIVERY_RISK: delivery_evidence,
    }

    enriched = [
        RiskDriver(type=driver.type, impact=driver.impact, evidence=list(evidence_by_type[driver.type]))
        for driver in drivers
    ]
    if velocity.delivery_risk:
        enriched.append(RiskDriver(
            type=RiskDriverType.DELIVERY_RISK,
            impact=DELIVERY_RISK_IMPACT,
            evidence=list(delivery_evidence),
        ))
    return enriched


def concentration_index(drivers: List[RiskDriver]) -> float:
    negative = [abs(driver.impact) for driver in drivers if driver.impact < 0]
    total = sum(negative)
    if total <= 0:
        return 0.0
    return round2(max(negative) / total)


def compute_daily_sprint_health(
    activity: ProjectActivity,
    day: Any,
    user_id: Optional[str] = None,
    project_role: Optional[Any] = None,
    suggestion_state_by_id: Optional[Mapping[str, SuggestionStateRecord]] = None,
    guidance_enabled_default: bool = False,
    now: Optional[datetime] = None,
    model: HealthModel = HEALTH_MODEL,
) -> DailySprintHealth:
    """
    Aggregate, score and build guidance for one project-day.

    Args:
        activity: Project activity covering the 30-day window
        day: ISO day to compute
        user_id: Caller; scopes open action ids used for de-duplication
        project_role: Caller's project role (unknown roles count as none)
        suggestion_state_by_id: Persisted lifecycle state for the caller and day
        guidance_enabled_default: Used when the project has no explicit setting
        now: Reference time for lifecycle expiry
        model: Health score constants

    Returns:
        DailySprintHealth
    """
    summary = aggregate_signals(activity, day)
    computation = compute_sprint_health_score(summary.scorer_input(), model)
    risk_drivers = enrich_risk_drivers(summary, computation.risk_drivers)

    guidance_enabled = activity.proactive_guidance_enabled
    if guidance_enabled is None:
        guidance_enabled = guidance_enabled_default

    velocity = summary.velocity
    guidance = build_proactive_sprint_guidance(
        ProactiveGuidanceInput(
            capacity_signals=summary.capacity_signals,
            risk_drivers=risk_drivers,
            stale_issues=summary.stale_issues,
            persistent_blockers_over_2_days=summary.persistent_blockers_over_2_days,
            quality_score=summary.quality_score,
            unresolved_actions=summary.unresolved_actions,
            delivery_risk=velocity.delivery_risk,
            forecast_confidence=velocity.forecast_confidence,
            velocity_sample_days=velocity.sample_size_days,
            open_action_ids=summary.open_action_ids(user_id),
            project_role=project_role,
            suggestion_state_by_id=suggestion_state_by_id or {},
            proactive_guidance_enabled=guidance_enabled,
        ),
        now=now,
    )

    return DailySprintHealth(
        date=summary.day,
        computation=computation,
        risk_drivers=risk_drivers,
        stale_work_count=len(summary.stale_issues),
        missing_standup_members=summary.missing_standup_members,
        persistent_blockers_over_2_days=summary.persistent_blockers_over_2_days,
        unresolved_actions=summary.unresolved_actions,
        quality_score=summary.quality_score,
        concentration_index=concentration_index(risk_drivers),
        velocity_snapshot=velocity,
        capacity_signals=summary.capacity_signals,
        forecast_confidence=velocity.forecast_confidence,
        proactive_guidance_enabled=guidance_enabled,
        guidance=guidance,
    )
