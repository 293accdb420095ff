from datetime import date
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
import logging

from sprintpulse.engine.dates import parse_day
from sprintpulse.engine.signal_aggregator import DailySprintHealth
from sprintpulse.engine.types import to_jsonable
from sprintpulse.storage.models import SprintHealthDailyModel, SprintVelocitySnapshotModel
from .base import UpsertRepository

logger = logging.getLogger(__name__)

class SprintHealthRepository(UpsertRepository[SprintHealthDailyModel]):
    """Daily health rows, one per project and day."""

    model = SprintHealthDailyModel
    key_columns = ("project_id", "day")

    def save(self, session: Session, project_id: str, daily: DailySprintHealth) -> SprintHealthDailyModel:
        computation = daily.computation
        probabilities = to_jsonable(computation.probabilities)
        probabilities.update({
            "probability_model": to_jsonable(computation.probability_model),
            "confidence_basis": to_jsonable(computation.confidence_basis),
            "normalized_metrics": to_jsonable(computation.normalized_metrics),
            "concentration_index": daily.concentration_index,
        })

        row = self.upsert(
            session,
            key={"project_id": project_id, "day": parse_day(daily.date)},
            values={
                "health_score": computation.health_score,
                "status": computation.status.value,
                "confidence_level": computation.confidence_level.value,
                "score_breakdown": to_jsonable(computation.score_breakdown),
                "risk_drivers": to_jsonable(daily.risk_drivers),
                "stale_work_count": daily.stale_work_count,
                "missing_standups": daily.missing_standup_members,
                "persistent_blockers": daily.persistent_blockers_over_2_days,
                "unresolved_actions": daily.unresolved_actions,
                "quality_score": daily.quality_score,
                "probabilities": probabilities,
                "scoring_model_version": computation.scoring_model_version,
            },
        )
        logger.debug(f"Saved sprint health for project {project_id} on {daily.date}: {computation.health_score}")
        return row

    def get(self, session: Session, project_id: str, day: date) -> Optional[SprintHealthDailyModel]:
        return self.get_by_key(session, project_id=project_id, day=day)

    def list_range(self, session: Session, project_id: str, start: date, end: date) -> List[SprintHealthDailyModel]:
        stmt = (
            select(SprintHealthDailyModel)
            .where(
                SprintHealthDailyModel.project_id == project_id,
                SprintHealthDailyModel.day >= start,
                SprintHealthDailyModel.day <= end,
            )
            .order_by(SprintHealthDailyModel.day)
        )
        return list(session.scalars(stmt).all())


class VelocitySnapshotRepository(UpsertRepository[SprintVelocitySnapshotModel]):
    """Velocity projection rows, one per project and day."""

    model = SprintVelocitySnapshotModel
    key_columns = ("project_id", "day")

    def save(self, session: Session, project_id: str, daily: DailySprintHealth) -> SprintVelocitySnapshotModel:
        velocity = daily.velocity_snapshot
        return self.upsert(
            session,
            key={"project_id": project_id, "day": parse_day(daily.date)},
            values={
                "sprint_id": velocity.sprint.id if velocity.sprint else None,
                "avg_tasks_completed_per_day": velocity.avg_tasks_completed_per_day,
                "avg_blocker_resolution_hours": velocity.avg_blocker_resolution_hours,
                "avg_action_resolution_hours": velocity.avg_action_resolution_hours,
                "completion_rate_per_day": velocity.completion_rate_per_day,
                "remaining_linked_work": velocity.remaining_linked_work,
                "projected_completion_date": velocity.projected_completion_date,
                "delivery_risk": velocity.delivery_risk,
                "capacity_signals_json": to_jsonable(daily.capacity_signals),
                "forecast_confidence": velocity.forecast_confidence.value,
                "data_quality_score": velocity.data_quality_score,
                "velocity_stability_score": velocity.velocity_stability_score,
                "blocker_volatility_score": velocity.blocker_volatility_score,
                "projection_model_version": velocity.projection_model_version,
                "projection_definitions_json": velocity.projection_definitions,
            },
        )

    def get(self, session: Session, project_id: str, day: date) -> Optional[SprintVelocitySnapshotModel]:
        return self.get_by_key(session, project_id=project_id, day=day)
