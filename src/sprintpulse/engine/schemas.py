import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .types import SuggestionState, SuggestionType

# --- Suggestion lifecycle ---

class SuggestionStateUpdate(BaseModel):
    project_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    date: datetime.date
    suggestion_id: str = Field(..., min_length=1, description="Content hash of the suggestion")
    suggestion_type: SuggestionType
    state: SuggestionState
    sprint_id: Optional[str] = None
    dismissed_until: Optional[datetime.datetime] = None
    snoozed_until: Optional[datetime.datetime] = None

class SuggestionStateResponse(BaseModel):
    project_id: str
    user_id: str
    day: datetime.date
    suggestion_id: str
    suggestion_type: SuggestionType
    state: SuggestionState
    sprint_id: Optional[str] = None
    dismissed_until: Optional[datetime.datetime] = None
    snoozed_until: Optional[datetime.datetime] = None
    accepted_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    class Config:
        from_attributes = True
