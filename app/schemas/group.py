"""
Group-related Pydantic schemas
"""

import datetime as dt
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import DocumentModel
from app.utils.clock import as_utc

class Group(DocumentModel):
    """Group document stored at groups/{groupId}"""
    path_fields = {"id"}

    id: str = ""
    name: str
    member_ids: List[str]
    created_by: str
    created_at: dt.datetime
    description: Optional[str] = None
    location: Optional[str] = None
    # Number of events created so far; bumped with a version-checked write
    event_sequence: int = 0
    version: Any = Field(default=None, exclude=True)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)

    def has_member(self, user_id: str) -> bool:
        return user_id in self.member_ids

class GroupCreate(BaseModel):
    """Schema for creating a group"""
    name: str
    member_ids: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    location: Optional[str] = None

class MemberAdd(BaseModel):
    """Schema for adding a member to a group"""
    user_id: str

class GroupUpdate(BaseModel):
    """Group details that may change after creation"""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
