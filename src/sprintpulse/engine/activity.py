"""
Project activity inputs.

Explicit records for the team activity the aggregator reduces: standup
entries, issue snapshots and their history, research items, action states,
the active sprint and the member list. An ``ActivitySource`` supplies one
``ProjectActivity`` per project and date window.

Usage:
    source = JsonActivitySource("exports/project-42.json")
    activity = await source.fetch_activity("project-42", window_start, window_end)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from .dates import as_utc
from .errors import ActivityFetchError
from .types import IssuePriority

logger = logging.getLogger(__name__)


ISSUE_DONE = "DONE"
RESEARCH_COMPLETED = "COMPLETED"

HISTORY_FIELD_STATUS = "STATUS"
HISTORY_FIELD_SPRINT = "SPRINT"

ACTION_OPEN = "OPEN"
ACTION_SNOOZED = "SNOOZED"
ACTION_DONE = "DONE"
UNRESOLVED_ACTION_STATES = (ACTION_OPEN, ACTION_SNOOZED)


@dataclass
class StandupEntry:
    id: str
    user_id: str
    date: datetime
    blockers: Optional[str] = None
    dependencies: Optional[str] = None
    summary_today: Optional[str] = None
    progress_since_yesterday: Optional[str] = None
    linked_issue_ids: List[str] = field(default_factory=list)
    linked_research_ids: List[str] = field(default_factory=list)

    @property
    def has_blockers(self) -> bool:
        return bool(self.blockers and self.blockers.strip())

    @property
    def has_linked_work(self) -> bool:
        return bool(self.linked_issue_ids or self.linked_research_ids)


@dataclass
class IssueSnapshot:
    """Current state of an issue."""
    id: str
    status: str
    created_at: datetime
    updated_at: datetime
    key: Optional[str] = None
    title: str = ""
    priority: IssuePriority = IssuePriority.MEDIUM
    type: str = "TASK"
    assignee_id: Optional[str] = None
    sprint_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status != ISSUE_DONE


@dataclass
class IssueTransition:
    """One issue-history row (STATUS or SPRINT field change)."""
    issue_id: str
    field_name: str
    created_at: datetime
    old_value: Optional[str] = None
    new_value: Optional[str] = None


@dataclass
class ResearchItem:
    id: str
    status: str
    created_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status != RESEARCH_COMPLETED


@dataclass
class ProjectMember:
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.user_id


@dataclass
class ActionState:
    """Lifecycle row for an action item raised from a standup."""
    id: str
    action_id: str
    user_id: str
    state: str
    date: datetime
    created_at: datetime
    updated_at: datetime


@dataclass
class SprintWindow:
    id: str
    name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass
class ProjectActivity:
    """Everything the aggregator reads for one project."""
    project_id: str
    members: List[ProjectMember] = field(default_factory=list)
    standup_entries: List[StandupEntry] = field(default_factory=list)
    issues: List[IssueSnapshot] = field(default_factory=list)
    issue_transitions: List[IssueTransition] = field(default_factory=list)
    research_items: List[ResearchItem] = field(default_factory=list)
    action_states: List[ActionState] = field(default_factory=list)
    active_sprint: Optional[SprintWindow] = None
    # Standup quality score (0-100) keyed by ISO day
    quality_scores: Dict[str, float] = field(default_factory=dict)
    proactive_guidance_enabled: Optional[bool] = None

    def clipped(self, window_start: datetime, window_end: datetime) -> "ProjectActivity":
        """
        Restrict dated records to a window.

        Standups and issue history are kept inside ``[window_start, window_end]``;
        action states only need to exist by ``window_end`` since unresolved
        actions have no lower bound. Issue and research snapshots are current
        state and are kept as-is.
        """
        start, end = as_utc(window_start), as_utc(window_end)
        return replace(
            self,
            standup_entries=[
                entry for entry in self.standup_entries
                if start <= as_utc(entry.date) <= end
            ],
            issue_transitions=[
                transition for transition in self.issue_transitions
                if start <= as_utc(transition.created_at) <= end
            ],
            action_states=[
                state for state in self.action_states
                if as_utc(state.date) <= end
            ],
        )


_activity_adapter = TypeAdapter(ProjectActivity)


def parse_activity(payload: Union[str, bytes, dict]) -> ProjectActivity:
    """Validate an activity export (JSON text or decoded dict)."""
    if isinstance(payload, dict):
        return _activity_adapter.validate_python(payload)
    return _activity_adapter.validate_json(payload)


class ActivitySource(ABC):
    """Supplies project activity for a date window."""

    @abstractmethod
    async def fetch_activity(
        self,
        project_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> ProjectActivity:
        """
        Load activity for a project.

        Raises:
            ActivityFetchError: If the underlying store cannot be read
        """
        pass


class InMemoryActivitySource(ActivitySource):
    """Serves pre-built activity, mostly for tests and replays."""

    def __init__(self, activities: Optional[Dict[str, ProjectActivity]] = None):
        self.activities: Dict[str, ProjectActivity] = dict(activities or {})

    def add(self, activity: ProjectActivity) -> None:
        self.activities[activity.project_id] = activity

    async def fetch_activity(
        self,
        project_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> ProjectActivity:
        activity = self.activities.get(project_id)
        if activity is None:
            raise ActivityFetchError(project_id, window_end.date().isoformat(), KeyError(project_id))
        return activity.clipped(window_start, window_end)


class JsonActivitySource(ActivitySource):
    """Reads a single-project activity export from a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._activity: Optional[ProjectActivity] = None

    def _load(self, project_id: str, day: str) -> ProjectActivity:
        if self._activity is None:
            try:
                self._activity = parse_activity(self.path.read_bytes())
            except (OSError, ValidationError) as e:
                logger.error(f"Failed to read activity export {self.path}: {e}")
                raise ActivityFetchError(project_id, day, e) from e
            logger.info(
                f"Loaded activity export for project {self._activity.project_id} "
                f"({len(self._activity.standup_entries)} standups, {len(self._activity.issues)} issues)"
            )
        return self._activity

    async def fetch_activity(
        self,
        project_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> ProjectActivity:
        day = window_end.date().isoformat()
        activity = self._load(project_id, day)
        if activity.project_id != project_id:
            raise ActivityFetchError(
                project_id,
                day,
                ValueError(f"export belongs to project {activity.project_id}"),
            )
        return activity.clipped(window_start, window_end)
