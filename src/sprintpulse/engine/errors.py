"""Sprint Health error types."""

from typing import Optional


class SprintHealthError(Exception):
    """Base error for sprint health computations."""


class ActivityFetchError(SprintHealthError):
    """Raised when project activity cannot be loaded for a day."""

    def __init__(self, project_id: str, day: str, cause: Optional[BaseException] = None):
        self.project_id = project_id
        self.day = day
        self.cause = cause
        message = f"Failed to fetch activity for project {project_id} on {day}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class InvalidSuggestionStateError(SprintHealthError):
    """Raised when a suggestion lifecycle update is rejected."""
