from datetime import date, datetime
from typing import List, Optional, Dict, Any
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import (
    String, Integer, Boolean, Float, JSON, Date, DateTime,
    Index, UniqueConstraint, func
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

class Base(DeclarativeBase):
    pass

# Helper to support both Postgres JSONB and generic JSON (for SQLite tests)
JSON_TYPE = JSON().with_variant(JSONB, 'postgresql')
TIMESTAMP_TYPE = DateTime(timezone=True).with_variant(TIMESTAMP(timezone=True), 'postgresql')

# --- Daily health ---

class SprintHealthDailyModel(Base):
    __tablename__ = "sprint_health_daily"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    health_score: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    confidence_level: Mapped[str] = mapped_column(String, nullable=False)
    score_breakdown: Mapped[List[Dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=False)
    risk_drivers: Mapped[List[Dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=False)
    stale_work_count: Mapped[int] = mapped_column(Integer, server_default='0')
    missing_standups: Mapped[int] = mapped_column(Integer, server_default='0')
    persistent_blockers: Mapped[int] = mapped_column(Integer, server_default='0')
    unresolved_actions: Mapped[int] = mapped_column(Integer, server_default='0')
    quality_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # probabilities plus probability model, confidence basis, normalized metrics, concentration index
    probabilities: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=True)
    scoring_model_version: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('project_id', 'day', name='uq_sprint_health_daily_project_date'),
    )

# --- Velocity snapshots ---

class SprintVelocitySnapshotModel(Base):
    __tablename__ = "sprint_velocity_snapshot"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    sprint_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    avg_tasks_completed_per_day: Mapped[float] = mapped_column(Float, nullable=False)
    avg_blocker_resolution_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_action_resolution_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    completion_rate_per_day: Mapped[float] = mapped_column(Float, nullable=False)
    remaining_linked_work: Mapped[int] = mapped_column(Integer, nullable=False)
    projected_completion_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP_TYPE, nullable=True)
    delivery_risk: Mapped[bool] = mapped_column(Boolean, server_default='0')
    capacity_signals_json: Mapped[List[Dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=False)
    forecast_confidence: Mapped[str] = mapped_column(String, nullable=False)
    data_quality_score: Mapped[float] = mapped_column(Float, nullable=False)
    velocity_stability_score: Mapped[float] = mapped_column(Float, nullable=False)
    blocker_volatility_score: Mapped[float] = mapped_column(Float, nullable=False)
    projection_model_version: Mapped[str] = mapped_column(String, nullable=False)
    projection_definitions_json: Mapped[Dict[str, Any]] = mapped_column(JSON_TYPE, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('project_id', 'day', name='uq_sprint_velocity_snapshot_project_date'),
        Index('idx_sprint_velocity_snapshot_sprint', 'project_id', 'sprint_id', 'day'),
    )

# --- Suggestion lifecycle ---

class SprintGuidanceSuggestionStateModel(Base):
    __tablename__ = "sprint_guidance_suggestion_state"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    sprint_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    suggestion_id: Mapped[str] = mapped_column(String, nullable=False)
    suggestion_type: Mapped[str] = mapped_column(String, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False, server_default='OPEN')
    dismissed_until: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP_TYPE, nullable=True)
    snoozed_until: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP_TYPE, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP_TYPE, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            'project_id', 'user_id', 'day', 'suggestion_id',
            name='uq_suggestion_state_project_user_date_suggestion',
        ),
        Index('idx_suggestion_state_project_user_date', 'project_id', 'user_id', 'day'),
        Index('idx_suggestion_state_project_type', 'project_id', 'suggestion_type'),
    )
