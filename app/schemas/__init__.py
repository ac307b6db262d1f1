"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .group import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "DocumentModel",
    "Rating",
    "GameSuggestion",
    "Event",
    "EventCreate",
    "EventUpdate",
    "SuggestionCreate",
    "Group",
    "GroupCreate",
    "GroupUpdate",
    "MemberAdd"
]
