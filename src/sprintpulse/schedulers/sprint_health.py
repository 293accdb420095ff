"""
Sprint Health Scheduler

Computes daily sprint health for a project and persists the results.

Per day:
- Fetch activity for the 30-day window through an ActivitySource
- Load the caller's suggestion lifecycle state (empty if unavailable)
- Aggregate, score and build guidance
- Upsert the daily health row and the velocity snapshot row

A report fans out one computation per trend day, bounded by a semaphore,
and smooths them into a SprintHealthReport.

Usage:
    scheduler = SprintHealthScheduler(activity_source, db_adapter)

    # One day
    daily = await scheduler.compute_daily_health(project_id, "2026-07-10")

    # 14-day trend report
    report = await scheduler.build_report(project_id, "2026-07-10", user_id=user_id)
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy.exc import OperationalError, ProgrammingError

from sprintpulse.engine.activity import ActivitySource
from sprintpulse.engine.dates import date_range, parse_day
from sprintpulse.engine.errors import ActivityFetchError
from sprintpulse.engine.health_scorer import HEALTH_MODEL, HealthModel
from sprintpulse.engine.schemas import SuggestionStateResponse, SuggestionStateUpdate
from sprintpulse.engine.signal_aggregator import (
    AggregationWindows,
    DailySprintHealth,
    compute_daily_sprint_health,
)
from sprintpulse.engine.trend import SprintHealthReport, build_sprint_health_report
from sprintpulse.engine.types import SuggestionStateRecord
from sprintpulse.platform.config import Settings, get_settings
from sprintpulse.platform.logging import get_logger
from sprintpulse.storage.base import StorageAdapter
from sprintpulse.storage.repositories.health_repository import (
    SprintHealthRepository,
    VelocitySnapshotRepository,
)
from sprintpulse.storage.repositories.suggestion_state_repository import SuggestionStateRepository

from .base import SchedulerBase

logger = get_logger(__name__)


class SprintHealthScheduler(SchedulerBase):
    """
    Orchestrates daily sprint health computation and the trend report.

    The engine functions are pure; this class owns I/O: activity fetches,
    lifecycle-state loads and the idempotent upserts.
    """

    def __init__(
        self,
        activity_source: ActivitySource,
        db_adapter: Optional[StorageAdapter] = None,
        settings: Optional[Settings] = None,
        health_model: HealthModel = HEALTH_MODEL,
    ):
        super().__init__(db_adapter)
        self.activity_source = activity_source
        self.settings = settings or get_settings()
        self.health_model = health_model
        self.health_repo = SprintHealthRepository()
        self.velocity_repo = VelocitySnapshotRepository()
        self.suggestion_repo = SuggestionStateRepository()

    async def run(
        self,
        project_id: str,
        day: Optional[str] = None,
        user_id: Optional[str] = None,
        project_role: Optional[Any] = None,
    ) -> SprintHealthReport:
        """
        Build the trend report ending on ``day`` (defaults to today, UTC).
        """
        end_day = day or self.now().date().isoformat()
        return await self.build_report(project_id, end_day, user_id=user_id, project_role=project_role)

    async def compute_daily_health(
        self,
        project_id: str,
        day: Any,
        user_id: Optional[str] = None,
        project_role: Optional[Any] = None,
        persist: bool = True,
    ) -> DailySprintHealth:
        """
        Compute and persist health for one project-day.

        Args:
            project_id: Project to compute
            day: ISO day
            user_id: Caller, for lifecycle state and open-action de-duplication
            project_role: Caller's project role
            persist: Upsert the daily rows when a database is configured

        Returns:
            DailySprintHealth

        Raises:
            ActivityFetchError: If activity cannot be loaded for the day
        """
        windows = AggregationWindows.for_day(day)
        day_iso = windows.day.isoformat()
        log = logger.bind(project_id=project_id, day=day_iso)

        try:
            activity = await self.activity_source.fetch_activity(
                project_id, windows.fetch_start, windows.day_end
            )
        except ActivityFetchError:
            log.error("activity_fetch_failed")
            raise
        except Exception as e:
            log.error("activity_fetch_failed", error=str(e))
            raise ActivityFetchError(project_id, day_iso, e) from e

        state_by_id = self.load_suggestion_state(project_id, user_id, day_iso)

        daily = compute_daily_sprint_health(
            activity,
            windows.day,
            user_id=user_id,
            project_role=project_role,
            suggestion_state_by_id=state_by_id,
            guidance_enabled_default=self.settings.FEATURE_PROACTIVE_GUIDANCE_ENABLED,
            now=self.now(),
            model=self.health_model,
        )

        if persist and self.has_database:
            self.persist_daily(project_id, daily)

        log.info(
            "sprint_health_computed",
            health_score=daily.health_score,
            status=daily.status.value,
            risk_drivers=len(daily.risk_drivers),
            forecast_confidence=daily.forecast_confidence.value,
        )
        return daily

    async def build_report(
        self,
        project_id: str,
        end_day: Any,
        user_id: Optional[str] = None,
        project_role: Optional[Any] = None,
        persist: bool = True,
    ) -> SprintHealthReport:
        """
        Compute the trailing trend days concurrently and smooth them.

        Returns:
            SprintHealthReport for ``end_day``
        """
        end = parse_day(end_day)
        trend_days = max(1, self.settings.HEALTH_TREND_DAYS)
        days = date_range(end - timedelta(days=trend_days - 1), end)
        semaphore = asyncio.Semaphore(max(1, self.settings.HEALTH_TREND_MAX_CONCURRENCY))

        async def compute(day_iso: str) -> DailySprintHealth:
            async with semaphore:
                return await self.compute_daily_health(
                    project_id, day_iso, user_id=user_id, project_role=project_role, persist=persist
                )

        logger.info("sprint_health_report_started", project_id=project_id, days=len(days))
        computed: List[DailySprintHealth] = await asyncio.gather(*(compute(d) for d in days))
        return build_sprint_health_report(list(computed))

    def load_suggestion_state(
        self,
        project_id: str,
        user_id: Optional[str],
        day: Any,
    ) -> Mapping[str, SuggestionStateRecord]:
        """Persisted lifecycle state for the caller; empty when the store is unavailable."""
        if not self.has_database or user_id is None:
            return {}
        try:
            with self.get_session() as session:
                return self.suggestion_repo.load_state_map(session, project_id, user_id, parse_day(day))
        except (OperationalError, ProgrammingError) as e:
            logger.warning(
                "suggestion_state_unavailable",
                project_id=project_id,
                error=str(e),
            )
            return {}

    def persist_daily(self, project_id: str, daily: DailySprintHealth) -> None:
        with self.get_session() as session:
            self.health_repo.save(session, project_id, daily)
            self.velocity_repo.save(session, project_id, daily)

    def record_suggestion_state(
        self,
        update: Union[SuggestionStateUpdate, Mapping[str, Any]],
    ) -> SuggestionStateResponse:
        """
        Persist an accept/dismiss/snooze change.

        Raises:
            InvalidSuggestionStateError: If the update is invalid
            RuntimeError: If no database is configured
        """
        with self.get_session() as session:
            row = self.suggestion_repo.record(session, update, now=self.now())
            return SuggestionStateResponse.model_validate(row)

    def history(self, project_id: str, limit: int = 30) -> List[Dict[str, Any]]:
        """Most recent persisted daily health rows."""
        with self.get_session() as session:
            rows = self.health_repo.list_for_project(session, project_id, limit=limit)
            return [
                {
                    "date": row.day.isoformat(),
                    "health_score": row.health_score,
                    "status": row.status,
                    "confidence_level": row.confidence_level,
                    "scoring_model_version": row.scoring_model_version,
                }
                for row in rows
            ]
