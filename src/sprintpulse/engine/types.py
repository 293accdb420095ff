"""
Sprint Health domain types.

Value objects shared by the scorer, the signal aggregator, the guidance builder
and the trend smoother. Everything here is derived data: instances are built
fresh on every computation and never mutated by the engine once returned.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class HealthStatus(str, Enum):
    """Traffic-light status derived from the health score."""
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class ConfidenceLevel(str, Enum):
    """Qualitative trust level for scores and forecasts."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RiskDriverType(str, Enum):
    BLOCKER_CLUSTER = "BLOCKER_CLUSTER"
    MISSING_STANDUP = "MISSING_STANDUP"
    STALE_WORK = "STALE_WORK"
    LOW_QUALITY_INPUT = "LOW_QUALITY_INPUT"
    UNRESOLVED_ACTIONS = "UNRESOLVED_ACTIONS"
    END_OF_SPRINT_PRESSURE = "END_OF_SPRINT_PRESSURE"
    OVERLAP_DEDUP_CREDIT = "OVERLAP_DEDUP_CREDIT"
    DELIVERY_RISK = "DELIVERY_RISK"


class CapacitySignalType(str, Enum):
    OVERLOADED = "OVERLOADED"
    MULTI_BLOCKED = "MULTI_BLOCKED"
    IDLE = "IDLE"


class SuggestionType(str, Enum):
    REALLOCATION = "REALLOCATION"
    SCOPE_ADJUSTMENT = "SCOPE_ADJUSTMENT"
    MEETING_OPTIMIZATION = "MEETING_OPTIMIZATION"


class SuggestionState(str, Enum):
    """Lifecycle state of a coaching suggestion."""
    OPEN = "OPEN"
    ACCEPTED = "ACCEPTED"
    DISMISSED = "DISMISSED"
    SNOOZED = "SNOOZED"


class RequiredRole(str, Enum):
    LEADERSHIP = "LEADERSHIP"
    PO_OR_ADMIN = "PO_OR_ADMIN"


class ProjectRole(str, Enum):
    ADMIN = "ADMIN"
    PO = "PO"
    DEV = "DEV"
    QA = "QA"
    VIEWER = "VIEWER"


class IssuePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TrendIndicator(str, Enum):
    IMPROVED = "IMPROVED"
    DEGRADED = "DEGRADED"
    UNCHANGED = "UNCHANGED"


LOW_CONFIDENCE_LABEL = "LOW_CONFIDENCE"


def to_jsonable(value: Any) -> Any:
    """Convert engine values (dataclasses, enums, dates) into JSON-ready data."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def coerce_project_role(role: Any) -> Optional[ProjectRole]:
    """Map a caller role to ProjectRole; unknown or missing roles become None."""
    if role is None or isinstance(role, ProjectRole):
        return role
    try:
        return ProjectRole(str(role).upper())
    except ValueError:
        return None


# =============================================================================
# Scorer
# =============================================================================

@dataclass(frozen=True)
class SprintHealthInput:
    """Signal counts for one project on one day."""
    persistent_blockers_over_2_days: int
    missing_standup_members: int
    stale_work_count: int
    unresolved_actions: int
    quality_score: Optional[float]
    team_size: int
    active_task_count: int
    days_remaining_in_sprint: Optional[int]


@dataclass
class RiskDriver:
    """A named, evidenced adjustment to the health score."""
    type: RiskDriverType
    impact: int
    evidence: List[str] = field(default_factory=list)


@dataclass
class ScoreBreakdownItem:
    reason: str
    impact: int
    evidence: List[str] = field(default_factory=list)


@dataclass
class ConfidenceBasis:
    data_completeness: float
    signal_stability: float
    sample_size: int


@dataclass
class Probabilities:
    sprint_success: int
    spillover: int


@dataclass(frozen=True)
class ProbabilityModel:
    name: str
    formula: str


@dataclass
class NormalizedMetrics:
    blocker_rate_per_member: float
    missing_standup_rate: float
    stale_work_rate_per_active_task: float
    unresolved_actions_rate_per_member: float


@dataclass
class SprintHealthComputation:
    """Output of the health scorer."""
    health_score: int
    status: HealthStatus
    confidence_level: ConfidenceLevel
    confidence_basis: ConfidenceBasis
    risk_drivers: List[RiskDriver]
    score_breakdown: List[ScoreBreakdownItem]
    probabilities: Probabilities
    probability_model: ProbabilityModel
    normalized_metrics: NormalizedMetrics
    scoring_model_version: str

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


# =============================================================================
# Capacity & guidance
# =============================================================================

@dataclass(frozen=True)
class CapacityThresholds:
    open_items: int = 5
    blocked_items: int = 2
    idle_days: int = 5


@dataclass
class CapacityEvidence:
    entry_ids: List[str] = field(default_factory=list)
    linked_work_ids: List[str] = field(default_factory=list)


@dataclass
class CapacitySignal:
    """Per-member workload imbalance flag."""
    user_id: str
    name: str
    type: CapacitySignalType
    open_items: int
    blocked_items: int
    idle_days: int
    thresholds: CapacityThresholds
    evidence: CapacityEvidence
    message: str


@dataclass
class GuidanceIssue:
    """A stale open issue considered for scope adjustment."""
    id: str
    key: Optional[str]
    title: str
    priority: IssuePriority


@dataclass
class SuggestionStateRecord:
    """Persisted lifecycle state for one suggestion id."""
    state: SuggestionState
    dismissed_until: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None

    def __post_init__(self):
        self.state = SuggestionState(self.state)


@dataclass
class SprintGuidanceSuggestion:
    id: str
    type: SuggestionType
    recommendation: str
    reason: str
    evidence: List[str]
    impact_estimate: str
    impact_score: int
    impact_explanation: str
    formula_basis: str
    requires_role: RequiredRole
    state: SuggestionState = SuggestionState.OPEN
    dismissed_until: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None
    confidence_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


@dataclass
class ExecutiveView:
    todays_focus: List[str]
    top_risks: List[str]
    top_actions: List[str]
    suggested_structural_adjustment: Optional[str]


@dataclass
class GuidanceResult:
    reallocation_suggestions: List[SprintGuidanceSuggestion]
    scope_adjustment_suggestions: List[SprintGuidanceSuggestion]
    meeting_optimization_suggestions: List[SprintGuidanceSuggestion]
    executive_view: ExecutiveView

    @property
    def all_suggestions(self) -> List[SprintGuidanceSuggestion]:
        return (
            self.reallocation_suggestions
            + self.scope_adjustment_suggestions
            + self.meeting_optimization_suggestions
        )

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)
