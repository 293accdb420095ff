from datetime import datetime, timezone

import pytest

from sprintpulse.engine.activity import (
    ActionState,
    IssueSnapshot,
    IssueTransition,
    ProjectActivity,
    ProjectMember,
    ResearchItem,
    SprintWindow,
    StandupEntry,
)
from sprintpulse.engine.signal_aggregator import (
    AggregationWindows,
    PROJECTION_MODEL_VERSION,
    aggregate_signals,
    blocker_snippets,
    compute_daily_sprint_health,
    concentration_index,
    enrich_risk_drivers,
)
from sprintpulse.engine.types import (
    CapacitySignalType,
    ConfidenceLevel,
    HealthStatus,
    RiskDriver,
    RiskDriverType,
)


def at(day: str, hour: int = 9) -> datetime:
    return datetime.fromisoformat(day).replace(hour=hour, tzinfo=timezone.utc)


@pytest.fixture
def delivery_activity() -> ProjectActivity:
    """One member, three aged stories in scope and three completions this week."""
    return ProjectActivity(
        project_id="p2",
        members=[ProjectMember(user_id="u1", name="Alice")],
        standup_entries=[
            StandupEntry(
                id="e1", user_id="u1", date=at("2026-07-09"),
                linked_issue_ids=["s1", "s2", "s3"],
            ),
        ],
        issues=[
            IssueSnapshot(
                id=f"s{n}", status="IN_PROGRESS", type="STORY",
                created_at=at("2026-06-15", 0), updated_at=at("2026-07-09"),
            )
            for n in range(1, 4)
        ],
        issue_transitions=[
            IssueTransition("d1", "STATUS", at("2026-07-08"), "IN_PROGRESS", "DONE"),
            IssueTransition("d2", "STATUS", at("2026-07-10"), "IN_REVIEW", "DONE"),
            IssueTransition("d3", "STATUS", at("2026-07-10", 15), "IN_REVIEW", "DONE"),
            IssueTransition("d4", "STATUS", at("2026-07-10"), "TODO", "IN_PROGRESS"),
            IssueTransition("d5", "STATUS", at("2026-07-01"), "IN_REVIEW", "DONE"),
            IssueTransition("c1", "SPRINT", at("2026-07-06"), None, "sprint-7"),
            IssueTransition("c2", "SPRINT", at("2026-07-07"), "sprint-6", "sprint-7"),
            IssueTransition("c3", "SPRINT", at("2026-07-09"), "sprint-7", ""),
            IssueTransition("c4", "SPRINT", at("2026-07-09"), "sprint-7", "sprint-7"),
        ],
        active_sprint=SprintWindow(
            id="sprint-7", name="Sprint 7",
            start_date=at("2026-07-01", 0),
            end_date=datetime(2026, 7, 17, 23, 59, 59, tzinfo=timezone.utc),
        ),
    )


def test_blocker_snippets_normalize_text():
    assert blocker_snippets("Waiting on QA.  Need   DB access; ok\nVendor API down") == [
        "waiting on qa",
        "need db access",
        "vendor api down",
    ]
    assert blocker_snippets("   ") == []
    assert blocker_snippets(None) == []


def test_windows_for_day():
    windows = AggregationWindows.for_day("2026-07-10")

    assert windows.day_start == datetime(2026, 7, 10, tzinfo=timezone.utc)
    assert windows.day_end == datetime(2026, 7, 10, 23, 59, 59, 999000, tzinfo=timezone.utc)
    assert windows.lookback_start == datetime(2026, 7, 4, tzinfo=timezone.utc)
    assert windows.capacity_start == datetime(2026, 6, 27, tzinfo=timezone.utc)
    assert windows.fetch_start == datetime(2026, 6, 11, tzinfo=timezone.utc)


def test_team_signals(team_activity):
    summary = aggregate_signals(team_activity, "2026-07-10")

    assert summary.missing_standup_user_ids == ["u3"]
    assert summary.blocker_chain_keys == ["u1:waiting on api credentials from vendor"]
    assert [issue.id for issue in summary.stale_issues] == ["i1"]
    assert summary.overlapping_stale_blocked_issue_count == 0
    assert summary.active_task_count == 8
    assert summary.quality_score == 45
    assert summary.days_remaining_in_sprint is None

    scorer_input = summary.scorer_input()
    assert scorer_input.team_size == 3
    assert scorer_input.persistent_blockers_over_2_days == 1
    assert scorer_input.stale_work_count == 1


def test_blocker_chain_needs_three_distinct_days(team_activity):
    summary = aggregate_signals(team_activity, "2026-07-09")
    assert summary.blocker_chain_keys == []


def test_stale_issue_mentioned_in_standup_is_not_stale(team_activity):
    team_activity.standup_entries.append(StandupEntry(
        id="c1", user_id="u3", date=at("2026-07-08"), linked_issue_ids=["i1"],
    ))
    summary = aggregate_signals(team_activity, "2026-07-10")
    assert summary.stale_issues == []


@pytest.mark.parametrize("mentioned_at, stale_ids", [
    (datetime(2026, 7, 8, 0, 0, tzinfo=timezone.utc), []),
    (datetime(2026, 7, 7, 23, 0, tzinfo=timezone.utc), ["i1"]),
    (at("2026-07-07"), ["i1"]),
])
def test_stale_mention_window_is_72_hours(team_activity, mentioned_at, stale_ids):
    # day end is 2026-07-10T23:59:59.999, so the window opens 72h earlier on 07-07
    team_activity.standup_entries.append(StandupEntry(
        id="c1", user_id="u3", date=mentioned_at, linked_issue_ids=["i1"],
    ))
    summary = aggregate_signals(team_activity, "2026-07-10")
    assert [issue.id for issue in summary.stale_issues] == stale_ids


def test_capacity_signals(team_activity):
    summary = aggregate_signals(team_activity, "2026-07-10")
    by_user = {(s.user_id, s.type): s for s in summary.capacity_signals}

    overloaded = by_user[("u2", CapacitySignalType.OVERLOADED)]
    assert overloaded.open_items == 6
    assert overloaded.evidence.linked_work_ids == [f"issue:b{n}" for n in range(1, 7)]
    assert overloaded.evidence.entry_ids == ["b-2026-07-10"]
    assert overloaded.message == "Bob has 6 open linked items (> 5)."

    idle = by_user[("u3", CapacitySignalType.IDLE)]
    assert idle.open_items == 0
    assert idle.idle_days == 14
    assert idle.name == "cara@example.com"

    assert not any(user_id == "u1" for user_id, _ in by_user)


def test_member_can_be_overloaded_and_multi_blocked(team_activity):
    team_activity.standup_entries.append(StandupEntry(
        id="b-2026-07-09", user_id="u2", date=at("2026-07-09"),
        blockers="Payment sandbox unavailable",
        linked_issue_ids=["b1", "b2"],
    ))
    summary = aggregate_signals(team_activity, "2026-07-10")
    types = [s.type for s in summary.capacity_signals if s.user_id == "u2"]

    assert types == [CapacitySignalType.OVERLOADED, CapacitySignalType.MULTI_BLOCKED]
    multi = next(s for s in summary.capacity_signals if s.type == CapacitySignalType.MULTI_BLOCKED)
    assert multi.blocked_items == 2
    assert multi.evidence.linked_work_ids == ["issue:b1", "issue:b2"]


def test_unresolved_actions_are_grouped_by_user(team_activity):
    team_activity.action_states = [
        ActionState("s1", "act-1", "u1", "OPEN", at("2026-07-02"), at("2026-07-02"), at("2026-07-02")),
        ActionState("s2", "act-2", "u2", "SNOOZED", at("2026-07-09"), at("2026-07-09"), at("2026-07-09")),
        ActionState("s3", "act-3", "u1", "DONE", at("2026-07-09"), at("2026-07-01"), at("2026-07-09")),
        ActionState("s4", "act-4", "u1", "OPEN", at("2026-07-11"), at("2026-07-11"), at("2026-07-11")),
    ]
    summary = aggregate_signals(team_activity, "2026-07-10")

    assert summary.unresolved_actions == 2
    assert summary.open_action_ids("u1") == ["act-1"]
    assert summary.open_action_ids("u9") == []
    assert sorted(summary.open_action_ids()) == ["act-1", "act-2"]
    assert summary.velocity.avg_action_resolution_hours == 192.0


def test_velocity_and_projection(delivery_activity):
    summary = aggregate_signals(delivery_activity, "2026-07-10")
    velocity = summary.velocity

    assert velocity.avg_tasks_completed_per_day == 0.43
    assert velocity.completion_rate_per_day == 0.43
    assert velocity.sample_size_days == 2
    assert velocity.remaining_linked_work == 3
    assert velocity.weighted_remaining_work == 5.67
    assert velocity.projected_completion_date == datetime(2026, 7, 24, tzinfo=timezone.utc)
    assert velocity.delivery_risk is True
    assert velocity.velocity_stability_score == pytest.approx(0.49)
    assert velocity.linked_work_coverage == 1.0
    assert velocity.forecast_confidence == ConfidenceLevel.LOW
    assert velocity.projection_model_version == PROJECTION_MODEL_VERSION
    assert "active sprint scope" in velocity.projection_definitions["remaining_work_definition"]
    assert summary.days_remaining_in_sprint == 8


def test_scope_churn_from_sprint_history(delivery_activity):
    velocity = aggregate_signals(delivery_activity, "2026-07-10").velocity

    assert velocity.scope_added_work_count == 2
    assert velocity.scope_removed_work_count == 2
    assert velocity.scope_change_summary == "Scope changed by +2 / -2 items in the last 7 days."


def test_no_completions_uses_minimum_rate(delivery_activity):
    delivery_activity.issue_transitions = []
    velocity = aggregate_signals(delivery_activity, "2026-07-10").velocity

    assert velocity.avg_tasks_completed_per_day == 0
    assert velocity.velocity_stability_score == 0
    assert velocity.completion_rate_per_day == 0.1
    assert velocity.projected_completion_date == datetime(2026, 9, 5, tzinfo=timezone.utc)


def test_research_items_count_as_remaining_work(delivery_activity):
    delivery_activity.research_items = [
        ResearchItem("r1", "OPEN", at("2026-07-08")),
        ResearchItem("r2", "COMPLETED", at("2026-07-08")),
    ]
    delivery_activity.standup_entries[0].linked_research_ids = ["r1", "r2"]
    velocity = aggregate_signals(delivery_activity, "2026-07-10").velocity

    assert velocity.remaining_linked_work == 4
    assert velocity.weighted_remaining_work == 6.67


def test_blocker_resolution_hours():
    activity = ProjectActivity(
        project_id="p3",
        members=[ProjectMember(user_id="u1")],
        standup_entries=[
            StandupEntry(id="e1", user_id="u1", date=at("2026-07-01"), blockers="Staging cluster is down"),
            StandupEntry(id="e2", user_id="u1", date=at("2026-07-03"), blockers="Staging cluster is down"),
            StandupEntry(id="e3", user_id="u1", date=at("2026-07-10"), blockers="Flaky login test"),
        ],
    )
    velocity = aggregate_signals(activity, "2026-07-10").velocity

    assert velocity.avg_blocker_resolution_hours == 48.0
    assert velocity.avg_action_resolution_hours is None


def test_enrich_risk_drivers_adds_delivery_risk(delivery_activity):
    summary = aggregate_signals(delivery_activity, "2026-07-10")
    enriched = enrich_risk_drivers(summary, [RiskDriver(RiskDriverType.STALE_WORK, -4, ["issues:1"])])

    assert enriched[0].evidence == []
    delivery = enriched[-1]
    assert delivery.type == RiskDriverType.DELIVERY_RISK
    assert delivery.impact == -10
    assert delivery.evidence == ["projectedCompletion:2026-07-24", "sprintEnd:2026-07-17"]


def test_concentration_index():
    drivers = [
        RiskDriver(RiskDriverType.BLOCKER_CLUSTER, -30),
        RiskDriver(RiskDriverType.MISSING_STANDUP, -10),
        RiskDriver(RiskDriverType.OVERLAP_DEDUP_CREDIT, 5),
    ]
    assert concentration_index(drivers) == 0.75
    assert concentration_index([]) == 0.0


def test_compute_daily_sprint_health(team_activity):
    daily = compute_daily_sprint_health(team_activity, "2026-07-10", user_id="u1", project_role="DEV")

    assert daily.date == "2026-07-10"
    assert daily.health_score == 66
    assert daily.status == HealthStatus.YELLOW
    assert daily.proactive_guidance_enabled is True
    assert daily.forecast_confidence == ConfidenceLevel.LOW

    evidence = {driver.type: driver.evidence for driver in daily.risk_drivers}
    assert evidence[RiskDriverType.BLOCKER_CLUSTER] == ["u1:waiting on api credentials from vendor"]
    assert evidence[RiskDriverType.MISSING_STANDUP] == ["u3"]
    assert evidence[RiskDriverType.STALE_WORK] == ["i1"]
    assert evidence[RiskDriverType.LOW_QUALITY_INPUT] == ["quality:45"]

    guidance = daily.guidance
    assert guidance.reallocation_suggestions == []
    assert [s.recommendation for s in guidance.meeting_optimization_suggestions] == [
        "Schedule a focused blocker-resolution session today.",
        "Run a short dependency clarification sync with affected owners.",
    ]

    payload = daily.to_dict()
    assert payload["computation"]["status"] == "YELLOW"
    assert payload["velocity_snapshot"]["projected_completion_date"].startswith("2026-")


def test_guidance_flag_falls_back_to_default(team_activity):
    team_activity.proactive_guidance_enabled = None

    disabled = compute_daily_sprint_health(team_activity, "2026-07-10")
    enabled = compute_daily_sprint_health(team_activity, "2026-07-10", guidance_enabled_default=True)

    assert disabled.guidance.all_suggestions == []
    assert enabled.guidance.all_suggestions
