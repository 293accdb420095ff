import pytest
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.exc import OperationalError

from sprintpulse.engine.activity import InMemoryActivitySource
from sprintpulse.engine.errors import ActivityFetchError, InvalidSuggestionStateError
from sprintpulse.engine.types import SuggestionState, SuggestionType
from sprintpulse.platform.config import Settings
from sprintpulse.schedulers.sprint_health import SprintHealthScheduler


@pytest.fixture
def source(team_activity):
    return InMemoryActivitySource({"p1": team_activity})


@pytest.fixture
def settings():
    return Settings(HEALTH_TREND_DAYS=3, HEALTH_TREND_MAX_CONCURRENCY=2)


@pytest.fixture
def broken_postgres():
    """Adapter whose sessions fail as if the lifecycle table were missing."""
    pg = MagicMock()

    @contextmanager
    def get_session():
        raise OperationalError("SELECT", {}, Exception("no such table"))
        yield

    pg.get_session = get_session
    return pg


@pytest.mark.asyncio
async def test_compute_daily_health_persists(source, sqlite_adapter, settings):
    scheduler = SprintHealthScheduler(source, sqlite_adapter, settings=settings)

    daily = await scheduler.compute_daily_health("p1", "2026-07-10", user_id="u1")
    assert daily.health_score == 66

    with sqlite_adapter.get_session() as session:
        row = scheduler.health_repo.get(session, "p1", date(2026, 7, 10))
        snapshot = scheduler.velocity_repo.get(session, "p1", date(2026, 7, 10))
        assert row.health_score == 66
        assert snapshot.remaining_linked_work == 7

    history = scheduler.history("p1")
    assert history == [{
        "date": "2026-07-10",
        "health_score": 66,
        "status": "YELLOW",
        "confidence_level": daily.computation.confidence_level.value,
        "scoring_model_version": "3.1.1",
    }]


@pytest.mark.asyncio
async def test_compute_without_persist(source, sqlite_adapter, settings):
    scheduler = SprintHealthScheduler(source, sqlite_adapter, settings=settings)

    await scheduler.compute_daily_health("p1", "2026-07-10", persist=False)
    assert scheduler.history("p1") == []


@pytest.mark.asyncio
async def test_dismissed_suggestion_is_hidden_for_the_user(source, sqlite_adapter, settings):
    scheduler = SprintHealthScheduler(source, sqlite_adapter, settings=settings)

    daily = await scheduler.compute_daily_health("p1", "2026-07-10", user_id="u1")
    meeting = daily.guidance.meeting_optimization_suggestions[0]

    response = scheduler.record_suggestion_state({
        "project_id": "p1",
        "user_id": "u1",
        "date": "2026-07-10",
        "suggestion_id": meeting.id,
        "suggestion_type": meeting.type.value,
        "state": "DISMISSED",
        "dismissed_until": datetime.now(timezone.utc) + timedelta(days=1),
    })
    assert response.state == SuggestionState.DISMISSED
    assert response.suggestion_type == SuggestionType.MEETING_OPTIMIZATION
    assert response.day == date(2026, 7, 10)

    again = await scheduler.compute_daily_health("p1", "2026-07-10", user_id="u1")
    assert meeting.id not in [s.id for s in again.guidance.all_suggestions]

    other_user = await scheduler.compute_daily_health("p1", "2026-07-10", user_id="u2")
    assert meeting.id in [s.id for s in other_user.guidance.all_suggestions]


def test_invalid_suggestion_state(source, sqlite_adapter, settings):
    scheduler = SprintHealthScheduler(source, sqlite_adapter, settings=settings)

    with pytest.raises(InvalidSuggestionStateError):
        scheduler.record_suggestion_state({"project_id": "p1", "state": "DISMISSED"})


@pytest.mark.asyncio
async def test_missing_lifecycle_store_degrades_to_empty_state(source, broken_postgres, settings):
    scheduler = SprintHealthScheduler(source, broken_postgres, settings=settings)

    assert scheduler.load_suggestion_state("p1", "u1", "2026-07-10") == {}

    daily = await scheduler.compute_daily_health("p1", "2026-07-10", user_id="u1", persist=False)
    assert len(daily.guidance.meeting_optimization_suggestions) == 2


@pytest.mark.asyncio
async def test_fetch_errors_propagate(sqlite_adapter, settings):
    scheduler = SprintHealthScheduler(InMemoryActivitySource(), sqlite_adapter, settings=settings)

    with pytest.raises(ActivityFetchError):
        await scheduler.compute_daily_health("p1", "2026-07-10")


@pytest.mark.asyncio
async def test_unexpected_fetch_errors_are_wrapped(settings):
    source = MagicMock()
    source.fetch_activity = AsyncMock(side_effect=TimeoutError("store timed out"))
    scheduler = SprintHealthScheduler(source, settings=settings)

    with pytest.raises(ActivityFetchError) as exc_info:
        await scheduler.compute_daily_health("p1", "2026-07-10")
    assert isinstance(exc_info.value.cause, TimeoutError)
    assert exc_info.value.day == "2026-07-10"


@pytest.mark.asyncio
async def test_build_report(source, sqlite_adapter, settings):
    scheduler = SprintHealthScheduler(source, sqlite_adapter, settings=settings)

    report = await scheduler.build_report("p1", "2026-07-10", user_id="u1", project_role="PO")

    assert report.date == "2026-07-10"
    assert [point.date for point in report.trend_14d] == ["2026-07-08", "2026-07-09", "2026-07-10"]
    assert [row["date"] for row in scheduler.history("p1")] == ["2026-07-10", "2026-07-09", "2026-07-08"]


@pytest.mark.asyncio
async def test_run_defaults_to_today(source, settings):
    scheduler = SprintHealthScheduler(source, settings=settings)
    scheduler.now = MagicMock(return_value=datetime(2026, 7, 10, 18, 0, tzinfo=timezone.utc))

    report = await scheduler.run("p1")
    assert report.date == "2026-07-10"
    assert len(report.trend_14d) == 3


def test_history_requires_database(source, settings):
    scheduler = SprintHealthScheduler(source, settings=settings)

    with pytest.raises(RuntimeError):
        scheduler.history("p1")
