"""
Event-related Pydantic schemas
"""

import datetime as dt
from typing import Annotated, Any, Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.schemas.common import DocumentModel
from app.utils.clock import as_utc

Score = Annotated[int, Field(strict=True, ge=1, le=5)]

class Rating(DocumentModel):
    """One participant's rating of a past event"""
    host: Score
    food: Score
    general: Score

class GameSuggestion(DocumentModel):
    """A game proposed for an event, embedded in the event document"""
    name: str
    created_by: str
    created_at: dt.datetime
    description: Optional[str] = None
    voter_ids: List[str]

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)

    @property
    def vote_count(self) -> int:
        return len(self.voter_ids)

    def matches(self, name: str) -> bool:
        return self.name.casefold() == name.strip().casefold()

class Event(DocumentModel):
    """Event document stored at groups/{groupId}/events/{eventId}"""
    path_fields = {"id", "group_id"}

    id: str = ""
    group_id: str = ""
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    datetime: dt.datetime
    created_at: dt.datetime
    host: str
    # Position in the group's creation order, starting at 1
    sequence: Optional[int] = None
    game_suggestions: List[GameSuggestion]
    participant_ids: List[str] = Field(default_factory=list)
    ratings: Dict[str, Rating] = Field(default_factory=dict)
    # Opaque token of the stored revision; never written back
    version: Any = Field(default=None, exclude=True)

    @field_validator("datetime", "created_at")
    @classmethod
    def normalize_datetimes(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)

    def find_suggestion(self, name: str) -> Optional[GameSuggestion]:
        return next((s for s in self.game_suggestions if s.matches(name)), None)

class EventCreate(BaseModel):
    """Schema for creating an event; presence is checked by the service"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    datetime: Optional[dt.datetime] = None
    location: Optional[str] = None
    description: Optional[str] = None

class EventUpdate(BaseModel):
    """Fields that may change after creation"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: Optional[str] = None
    location: Optional[str] = None
    datetime: Optional[dt.datetime] = None
    ratings: Optional[Dict[str, Rating]] = None
    game_suggestions: Optional[List[GameSuggestion]] = None

class SuggestionCreate(BaseModel):
    """Schema for proposing a game"""
    name: str
    description: Optional[str] = None
