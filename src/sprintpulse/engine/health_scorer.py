"""
Sprint Health Scorer

Maps one day of team/sprint signal counts to a 0-100 health score with a
transparent breakdown, risk drivers, a confidence basis and linear
success/spillover probabilities.

Penalties are evaluated in a fixed order and each step contributes at most one
breakdown entry and one risk driver:

1. Persistent blockers (team-normalized)
2. Missing standups (team-normalized)
3. Stale linked work (scope-normalized, capped)
4. Low quality input
5. Unresolved actions (team-normalized)
6. End-of-sprint pressure
7. Overlap de-duplication credit

The function is pure: no clock, no randomness, no I/O.

Usage:
    computation = compute_sprint_health_score(SprintHealthInput(...))
    computation.health_score, computation.status
"""

from dataclasses import dataclass
from typing import List, Optional

from .numeric import clamp, format_number, round2, round_half_up
from .types import (
    ConfidenceBasis,
    ConfidenceLevel,
    HealthStatus,
    NormalizedMetrics,
    Probabilities,
    ProbabilityModel,
    RiskDriver,
    RiskDriverType,
    ScoreBreakdownItem,
    SprintHealthComputation,
    SprintHealthInput,
)

# Bump whenever a constant in HealthModel changes.
SPRINT_HEALTH_SCORING_MODEL_VERSION = "3.1.1"

PROBABILITY_MODEL = ProbabilityModel(
    name="linear-health-score-v1",
    formula=(
        "successProbability = clamp(healthScore / 100, 0, 1); "
        "spilloverProbability = 1 - successProbability"
    ),
)

MAX_NORMALIZED_RATE = 1.5


@dataclass(frozen=True)
class HealthModel:
    """Formula constants for the health score."""
    base_score: int = 100

    blocker_unit_penalty: int = 15
    blocker_base_factor: float = 0.6

    missing_standup_unit_penalty: int = 10
    missing_standup_base_factor: float = 0.5

    stale_work_unit_penalty: int = 3
    stale_work_base_factor: float = 0.7
    stale_work_max_penalty: int = 20

    quality_threshold: int = 60
    quality_penalty: int = 10

    unresolved_actions_threshold: int = 5
    unresolved_actions_penalty: int = 10
    unresolved_actions_base_factor: float = 0.5

    end_sprint_days_threshold: int = 3
    end_sprint_unresolved_threshold: int = 3
    end_sprint_penalty: int = 8

    # The overlap credit is an approximate partial correction, not a model of
    # how much the three signals actually share.
    overlap_dedup_multiplier: float = 0.12
    overlap_dedup_floor: int = 2
    overlap_dedup_cap: int = 8

    green_threshold: int = 80
    yellow_threshold: int = 60


HEALTH_MODEL = HealthModel()


def normalized_rate(numerator: float, denominator: float) -> float:
    return clamp(numerator / max(1, denominator), 0, MAX_NORMALIZED_RATE)


def status_for_score(score: float, model: HealthModel = HEALTH_MODEL) -> HealthStatus:
    if score >= model.green_threshold:
        return HealthStatus.GREEN
    if score >= model.yellow_threshold:
        return HealthStatus.YELLOW
    return HealthStatus.RED


def confidence_for_basis(basis: ConfidenceBasis) -> ConfidenceLevel:
    weighted = (
        basis.data_completeness * 0.45
        + basis.signal_stability * 0.35
        + clamp(basis.sample_size / 8, 0, 1) * 0.2
    )
    if weighted >= 0.75:
        return ConfidenceLevel.HIGH
    if weighted >= 0.5:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def sanitize_input(raw: SprintHealthInput) -> SprintHealthInput:
    """Clamp malformed upstream values into the scorer's domain."""
    quality: Optional[float] = raw.quality_score
    if quality is not None:
        quality = clamp(quality, 0, 100)
    days_remaining = raw.days_remaining_in_sprint
    if days_remaining is not None:
        days_remaining = max(0, days_remaining)
    return SprintHealthInput(
        persistent_blockers_over_2_days=max(0, raw.persistent_blockers_over_2_days),
        missing_standup_members=max(0, raw.missing_standup_members),
        stale_work_count=max(0, raw.stale_work_count),
        unresolved_actions=max(0, raw.unresolved_actions),
        quality_score=quality,
        team_size=max(1, raw.team_size),
        active_task_count=max(1, raw.active_task_count),
        days_remaining_in_sprint=days_remaining,
    )


def compute_sprint_health_score(
    raw_input: SprintHealthInput,
    model: HealthModel = HEALTH_MODEL,
) -> SprintHealthComputation:
    """
    Compute the health score for one project-day.

    Args:
        raw_input: Signal counts; out-of-domain values are clamped
        model: Formula constants

    Returns:
        SprintHealthComputation
    """
    data = sanitize_input(raw_input)
    breakdown: List[ScoreBreakdownItem] = []
    risk_drivers: List[RiskDriver] = []

    def apply(driver_type: RiskDriverType, reason: str, impact: int, evidence: List[str]) -> None:
        breakdown.append(ScoreBreakdownItem(reason=reason, impact=impact, evidence=list(evidence)))
        risk_drivers.append(RiskDriver(type=driver_type, impact=impact, evidence=list(evidence)))

    blocker_rate = normalized_rate(data.persistent_blockers_over_2_days, data.team_size)
    missing_rate = normalized_rate(data.missing_standup_members, data.team_size)
    stale_rate = normalized_rate(data.stale_work_count, data.active_task_count)
    unresolved_rate = normalized_rate(data.unresolved_actions, data.team_size)

    blocker_penalty = round_half_up(
        data.persistent_blockers_over_2_days
        * model.blocker_unit_penalty
        * (model.blocker_base_factor + blocker_rate)
    )
    if blocker_penalty > 0:
        apply(
            RiskDriverType.BLOCKER_CLUSTER,
            "Persistent blockers > 2 days (team-normalized)",
            -blocker_penalty,
            [
                f"clusters:{data.persistent_blockers_over_2_days}",
                f"rate:{format_number(round2(blocker_rate))}",
            ],
        )

    missing_penalty = round_half_up(
        data.missing_standup_members
        * model.missing_standup_unit_penalty
        * (model.missing_standup_base_factor + missing_rate)
    )
    if missing_penalty > 0:
        apply(
            RiskDriverType.MISSING_STANDUP,
            "Missing standup members (team-normalized)",
            -missing_penalty,
            [
                f"members:{data.missing_standup_members}",
                f"rate:{format_number(round2(missing_rate))}",
            ],
        )

    stale_penalty = min(
        model.stale_work_max_penalty,
        round_half_up(
            data.stale_work_count
            * model.stale_work_unit_penalty
            * (model.stale_work_base_factor + stale_rate)
        ),
    )
    if stale_penalty > 0:
        apply(
            RiskDriverType.STALE_WORK,
            "Stale linked work (scope-normalized)",
            -stale_penalty,
            [
                f"issues:{data.stale_work_count}",
                f"rate:{format_number(round2(stale_rate))}",
            ],
        )

    if data.quality_score is not None and data.quality_score < model.quality_threshold:
        apply(
            RiskDriverType.LOW_QUALITY_INPUT,
            f"Quality score below {model.quality_threshold}",
            -model.quality_penalty,
            [f"quality:{format_number(data.quality_score)}"],
        )

    unresolved_penalty = 0
    if data.unresolved_actions > model.unresolved_actions_threshold:
        unresolved_penalty = round_half_up(
            model.unresolved_actions_penalty
            * (model.unresolved_actions_base_factor + unresolved_rate)
        )
        apply(
            RiskDriverType.UNRESOLVED_ACTIONS,
            f"Unresolved actions above {model.unresolved_actions_threshold} (team-normalized)",
            -unresolved_penalty,
            [
                f"actions:{data.unresolved_actions}",
                f"rate:{format_number(round2(unresolved_rate))}",
            ],
        )

    if (
        data.days_remaining_in_sprint is not None
        and data.days_remaining_in_sprint <= model.end_sprint_days_threshold
        and data.unresolved_actions >= model.end_sprint_unresolved_threshold
    ):
        apply(
            RiskDriverType.END_OF_SPRINT_PRESSURE,
            "End-of-sprint pressure",
            -model.end_sprint_penalty,
            [
                f"daysRemaining:{data.days_remaining_in_sprint}",
                f"unresolvedActions:{data.unresolved_actions}",
            ],
        )

    # Requires the blocker, stale-work and unresolved-action penalties; the
    # credit never exceeds the smallest of the three.
    if blocker_penalty > 0 and stale_penalty > 0 and unresolved_penalty > 0:
        credit = min(
            model.overlap_dedup_cap,
            max(
                model.overlap_dedup_floor,
                round_half_up((stale_penalty + blocker_penalty) * model.overlap_dedup_multiplier),
            ),
            min(stale_penalty, blocker_penalty, unresolved_penalty),
        )
        apply(
            RiskDriverType.OVERLAP_DEDUP_CREDIT,
            "Cross-signal overlap de-duplication",
            credit,
            ["overlap:blockers+stale+actions"],
        )

    total_delta = sum(item.impact for item in breakdown)
    health_score = int(clamp(model.base_score + total_delta, 0, 100))

    sprint_success = round_half_up(clamp(health_score / 100, 0, 1) * 100)
    spillover = 100 - sprint_success

    negative_penalties = [abs(item.impact) for item in breakdown if item.impact < 0]
    max_single_penalty = max(negative_penalties, default=0)
    total_negative_penalty = max(1, sum(negative_penalties))
    concentration = clamp(max_single_penalty / total_negative_penalty, 0, 1)

    confidence_basis = ConfidenceBasis(
        data_completeness=round2(clamp(1 - missing_rate * 0.8, 0, 1)),
        signal_stability=round2(clamp(1 - concentration * 0.5, 0, 1)),
        sample_size=data.team_size,
    )

    return SprintHealthComputation(
        health_score=health_score,
        status=status_for_score(health_score, model),
        confidence_level=confidence_for_basis(confidence_basis),
        confidence_basis=confidence_basis,
        risk_drivers=risk_drivers,
        score_breakdown=[
            ScoreBreakdownItem(
                reason="Base score",
                impact=model.base_score,
                evidence=["deterministic"],
            ),
            *breakdown,
        ],
        probabilities=Probabilities(sprint_success=sprint_success, spillover=spillover),
        probability_model=PROBABILITY_MODEL,
        normalized_metrics=NormalizedMetrics(
            blocker_rate_per_member=round2(blocker_rate),
            missing_standup_rate=round2(missing_rate),
            stale_work_rate_per_active_task=round2(stale_rate),
            unresolved_actions_rate_per_member=round2(unresolved_rate),
        ),
        scoring_model_version=SPRINT_HEALTH_SCORING_MODEL_VERSION,
    )
