from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union
from sqlalchemy import select
from sqlalchemy.orm import Session
from pydantic import ValidationError
import logging

from sprintpulse.engine.dates import as_utc
from sprintpulse.engine.errors import InvalidSuggestionStateError
from sprintpulse.engine.schemas import SuggestionStateUpdate
from sprintpulse.engine.types import SuggestionState, SuggestionStateRecord
from sprintpulse.storage.models import SprintGuidanceSuggestionStateModel
from .base import UpsertRepository

logger = logging.getLogger(__name__)

class SuggestionStateRepository(UpsertRepository[SprintGuidanceSuggestionStateModel]):
    """Accept/dismiss/snooze state per project, user, day and suggestion."""

    model = SprintGuidanceSuggestionStateModel
    key_columns = ("project_id", "user_id", "day", "suggestion_id")

    def record(
        self,
        session: Session,
        update: Union[SuggestionStateUpdate, Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> SprintGuidanceSuggestionStateModel:
        """
        Persist a lifecycle change for one suggestion.

        ``accepted_at`` is stamped when the new state is ACCEPTED and cleared
        for every other state.

        Raises:
            InvalidSuggestionStateError: If the update fails validation
        """
        if not isinstance(update, SuggestionStateUpdate):
            try:
                update = SuggestionStateUpdate.model_validate(update)
            except ValidationError as e:
                raise InvalidSuggestionStateError(str(e)) from e

        accepted_at = None
        if update.state == SuggestionState.ACCEPTED:
            accepted_at = now or datetime.now(timezone.utc)

        row = self.upsert(
            session,
            key={
                "project_id": update.project_id,
                "user_id": update.user_id,
                "day": update.date,
                "suggestion_id": update.suggestion_id,
            },
            values={
                "sprint_id": update.sprint_id,
                "suggestion_type": update.suggestion_type.value,
                "state": update.state.value,
                "dismissed_until": update.dismissed_until,
                "snoozed_until": update.snoozed_until,
                "accepted_at": accepted_at,
            },
        )
        logger.info(
            f"Suggestion {update.suggestion_id} set to {update.state.value} "
            f"for user {update.user_id} in project {update.project_id}"
        )
        return row

    def list_for_user(
        self,
        session: Session,
        project_id: str,
        user_id: str,
        day: date,
    ) -> List[SprintGuidanceSuggestionStateModel]:
        stmt = select(SprintGuidanceSuggestionStateModel).where(
            SprintGuidanceSuggestionStateModel.project_id == project_id,
            SprintGuidanceSuggestionStateModel.user_id == user_id,
            SprintGuidanceSuggestionStateModel.day == day,
        )
        return list(session.scalars(stmt).all())

    def load_state_map(
        self,
        session: Session,
        project_id: str,
        user_id: str,
        day: date,
    ) -> Dict[str, SuggestionStateRecord]:
        """Lifecycle state keyed by suggestion id, as consumed by the guidance builder."""
        return {
            row.suggestion_id: SuggestionStateRecord(
                state=SuggestionState(row.state),
                dismissed_until=as_utc(row.dismissed_until),
                snoozed_until=as_utc(row.snoozed_until),
            )
            for row in self.list_for_user(session, project_id, user_id, day)
        }
