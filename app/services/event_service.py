"""
Event lifecycle: create, read, update and delete events of a group.

Host assignment on creation is delegated to host_rotation. Mutations of
embedded collections go through apply_event_change, which re-runs the
read-modify-write cycle when a conditional write loses to a concurrent one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import (
    ConcurrentUpdateError,
    NoMembersError,
    NotFoundError,
    StaleDocumentError,
    StateError,
    ValidationError,
)
from app.schemas.event import Event, EventCreate, EventUpdate, GameSuggestion
from app.services.document_store import DocumentStore, event_path, group_path
from app.services.host_rotation import HostFallback, resolve_next_host
from app.services.repositories import EventRepo, GroupRepo
from app.utils.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A change inspects the freshly read event and returns the fields to write
# (None when nothing needs writing) together with the caller's result.
EventChange = Callable[[Event], Tuple[Optional[Dict[str, Any]], T]]


def is_upcoming(event: Event, now: datetime) -> bool:
    """Upcoming events are scheduled now or later; everything else is past"""
    return event.datetime >= as_utc(now)


def check_suggestions(suggestions: List[GameSuggestion]) -> None:
    """Names are unique ignoring case and nobody votes twice for a game"""
    seen = set()
    for suggestion in suggestions:
        key = suggestion.name.strip().casefold()
        if not key:
            raise ValidationError("A game suggestion needs a name")
        if key in seen:
            raise ValidationError(f"{suggestion.name} is listed more than once")
        seen.add(key)
        if len(set(suggestion.voter_ids)) != len(suggestion.voter_ids):
            raise ValidationError(f"Each user can vote only once for {suggestion.name}")


def load_event(store: DocumentStore, group_id: str, event_id: str) -> Event:
    event = EventRepo.get(store, group_id, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found in group {group_id}")
    return event


def apply_event_change(
    store: DocumentStore,
    group_id: str,
    event_id: str,
    change: EventChange,
    max_attempts: int,
) -> T:
    """Read the event, apply change and write it back conditionally.

    Domain errors raised by change propagate immediately. Only losing a
    conditional write causes another attempt.
    """
    for attempt in range(1, max_attempts + 1):
        event = load_event(store, group_id, event_id)
        fields, result = change(event)
        if not fields:
            return result
        try:
            EventRepo.update(store, group_id, event_id, fields, expected_version=event.version)
            return result
        except StaleDocumentError:
            logger.info(f"Event {group_id}/{event_id} changed while writing, attempt {attempt} of {max_attempts}")
    raise ConcurrentUpdateError(event_path(group_id, event_id), max_attempts)


class EventService:
    """Service for event lifecycle operations"""

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock = utcnow,
        host_fallback: Union[HostFallback, str] = settings.HOST_FALLBACK,
        max_attempts: int = settings.MAX_WRITE_ATTEMPTS,
    ):
        self.store = store
        self.clock = clock
        self.host_fallback = HostFallback(host_fallback)
        self.max_attempts = max_attempts

    def create_event(self, group_id: str, fields: EventCreate, creator_id: str) -> str:
        """Create an event and assign its host by rotation.

        Raises:
            ValidationError: If name or datetime is missing.
            NotFoundError: If the group does not exist or has no members.
            ConcurrentUpdateError: If the group kept changing while the
                event's place in the rotation was being reserved.
        """
        if not fields.name or not fields.name.strip() or fields.datetime is None:
            raise ValidationError("An event needs a name and a date")

        for attempt in range(1, self.max_attempts + 1):
            group = GroupRepo.get(self.store, group_id)
            if group is None:
                raise NotFoundError(f"Group {group_id} not found")
            if not group.member_ids:
                raise NoMembersError(group_id)

            previous_host = EventRepo.most_recent_host(self.store, group_id)
            host = resolve_next_host(
                group.member_ids,
                previous_host,
                fallback=self.host_fallback,
                creator_id=group.created_by,
            )
            try:
                sequence = GroupRepo.claim_event_sequence(self.store, group)
                break
            except StaleDocumentError:
                logger.info(f"Group {group_id} changed while creating an event, attempt {attempt} of {self.max_attempts}")
        else:
            raise ConcurrentUpdateError(group_path(group_id), self.max_attempts)
        logger.debug(f"Group {group_id}: previous host {previous_host}, next host {host}, sequence {sequence}")

        event = Event(
            name=fields.name.strip(),
            description=fields.description,
            location=fields.location,
            datetime=fields.datetime,
            created_at=self.clock(),
            host=host,
            sequence=sequence,
            game_suggestions=[],
            participant_ids=[creator_id],
            ratings={},
        )
        event_id = EventRepo.create(self.store, group_id, event)
        logger.info(f"Created event {event_id} in group {group_id} hosted by {host}")
        return event_id

    def get_event(self, group_id: str, event_id: str) -> Event:
        return load_event(self.store, group_id, event_id)

    def list_events_for_group(self, group_id: str) -> Iterator[Event]:
        """Events of one group, earliest scheduled first"""
        return EventRepo.list_for_group(self.store, group_id)

    def list_all_events(self) -> Iterator[Event]:
        """Events of every group, in no particular order"""
        for group_id in GroupRepo.iter_ids(self.store):
            yield from EventRepo.list_for_group(self.store, group_id)

    def update_event(
        self,
        group_id: str,
        event_id: str,
        fields: Union[EventUpdate, Dict[str, Any]],
    ) -> Event:
        """Merge the given editable fields into the event.

        Only name, location, datetime, ratings and gameSuggestions may be
        written; host, createdAt and participantIds are never changed here.

        Raises:
            ValidationError: For other fields, blank values, repeated game
                names or voters, or ratings by non-participants.
            StateError: If ratings are written before the event took place.
            NotFoundError: If the event does not exist.
        """
        if isinstance(fields, dict):
            try:
                fields = EventUpdate.model_validate(fields)
            except PydanticValidationError as e:
                names = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
                raise ValidationError(f"These fields cannot be updated: {names}") from e

        data = fields.model_dump(by_alias=True, exclude_unset=True)
        if not data:
            raise ValidationError("Nothing to update")
        if "name" in data and not (data["name"] or "").strip():
            raise ValidationError("An event needs a name")
        if "datetime" in data and data["datetime"] is None:
            raise ValidationError("An event needs a date")
        if "name" in data:
            data["name"] = data["name"].strip()
        if "datetime" in data:
            data["datetime"] = as_utc(data["datetime"])

        # Re-encode nested models the way they are stored
        if fields.ratings is not None:
            data["ratings"] = {uid: r.to_document() for uid, r in fields.ratings.items()}
        if fields.game_suggestions is not None:
            check_suggestions(fields.game_suggestions)
            data["gameSuggestions"] = [s.to_document() for s in fields.game_suggestions]

        def change(event: Event):
            if fields.ratings is not None:
                scheduled = data.get("datetime", event.datetime)
                if scheduled >= as_utc(self.clock()):
                    raise StateError("An event can only be rated after it has taken place")
                outsiders = sorted(set(fields.ratings) - set(event.participant_ids))
                if outsiders:
                    raise ValidationError(f"Only participants can rate the event: {', '.join(outsiders)}")
            return data, None

        apply_event_change(self.store, group_id, event_id, change, self.max_attempts)
        logger.info(f"Updated event {group_id}/{event_id}: {sorted(data)}")
        return load_event(self.store, group_id, event_id)

    def delete_event(self, group_id: str, event_id: str) -> None:
        """Delete the event; deleting a missing event is not an error"""
        EventRepo.delete(self.store, group_id, event_id)
        logger.info(f"Deleted event {group_id}/{event_id}")

    def join_event(self, group_id: str, event_id: str, user_id: str) -> Event:
        """Add a group member to the event's participants"""
        group = GroupRepo.get(self.store, group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        if not group.has_member(user_id):
            raise ValidationError("Only group members can join the group's events")

        def change(event: Event):
            if not is_upcoming(event, self.clock()):
                raise StateError("You can no longer join an event that has already taken place")
            if user_id in event.participant_ids:
                return None, None
            return {"participantIds": event.participant_ids + [user_id]}, None

        apply_event_change(self.store, group_id, event_id, change, self.max_attempts)
        return load_event(self.store, group_id, event_id)
