"""SprintPulse Storage Layer - Postgres adapter, models and repositories."""

from .base import StorageAdapter
from .postgres_adapter import PostgresAdapter, PostgresConfig
from .models import (
    Base,
    SprintGuidanceSuggestionStateModel,
    SprintHealthDailyModel,
    SprintVelocitySnapshotModel,
)

__all__ = [
    "StorageAdapter",
    "PostgresAdapter",
    "PostgresConfig",
    "Base",
    "SprintHealthDailyModel",
    "SprintVelocitySnapshotModel",
    "SprintGuidanceSuggestionStateModel",
]
