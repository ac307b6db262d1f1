"""
Game suggestion ballot and post-event ratings
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, StateError, ValidationError
from app.schemas.event import Event, GameSuggestion, Rating
from app.services.document_store import DocumentStore
from app.services.event_service import apply_event_change, is_upcoming, load_event
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def rank_suggestions(suggestions: Iterable[GameSuggestion]) -> List[GameSuggestion]:
    """Most votes first; suggestions with equal votes keep their order"""
    return sorted(suggestions, key=lambda s: s.vote_count, reverse=True)


def rating_summary(event: Event) -> Dict[str, Optional[float]]:
    """Average scores over the ratings submitted for an event"""
    ratings = list(event.ratings.values())
    if not ratings:
        return {"count": 0, "host": None, "food": None, "general": None}
    return {
        "count": len(ratings),
        "host": round(sum(r.host for r in ratings) / len(ratings), 2),
        "food": round(sum(r.food for r in ratings) / len(ratings), 2),
        "general": round(sum(r.general for r in ratings) / len(ratings), 2),
    }


class BallotService:
    """Service for proposing games, voting on them and rating past events"""

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock = utcnow,
        max_attempts: int = settings.MAX_WRITE_ATTEMPTS,
    ):
        self.store = store
        self.clock = clock
        self.max_attempts = max_attempts

    def _require_upcoming(self, event: Event, action: str) -> None:
        if not is_upcoming(event, self.clock()):
            raise StateError(f"You can no longer {action} for a past event")

    def suggest_game(
        self,
        group_id: str,
        event_id: str,
        proposer_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> GameSuggestion:
        """Propose a game for an upcoming event.

        Raises:
            NotFoundError: If the event is missing or malformed.
            StateError: If the event is in the past.
            ConflictError: If a game of the same name (ignoring case) was
                already proposed.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("A game suggestion needs a name")

        def change(event: Event):
            self._require_upcoming(event, "suggest games")
            if event.find_suggestion(name) is not None:
                raise ConflictError(f"{name} was already proposed for this event")

            suggestion = GameSuggestion(
                name=name,
                created_by=proposer_id,
                created_at=self.clock(),
                description=description,
                voter_ids=[],
            )
            suggestions = event.game_suggestions + [suggestion]
            return {"gameSuggestions": [s.to_document() for s in suggestions]}, suggestion

        suggestion = apply_event_change(self.store, group_id, event_id, change, self.max_attempts)
        logger.info(f"{proposer_id} suggested {name} for event {group_id}/{event_id}")
        return suggestion

    def vote_for_game(self, group_id: str, event_id: str, voter_id: str, name: str) -> GameSuggestion:
        """Add a vote for a suggested game; voting twice changes nothing.

        Raises:
            StateError: If the event is in the past.
            NotFoundError: If no suggestion has that name.
        """

        def change(event: Event):
            self._require_upcoming(event, "vote on games")
            target = event.find_suggestion(name)
            if target is None:
                raise NotFoundError(f"No game named {name} was proposed for this event")
            if voter_id in target.voter_ids:
                return None, target

            voted = target.model_copy(update={"voter_ids": target.voter_ids + [voter_id]})
            suggestions = [voted if s is target else s for s in event.game_suggestions]
            return {"gameSuggestions": [s.to_document() for s in suggestions]}, voted

        return apply_event_change(self.store, group_id, event_id, change, self.max_attempts)

    def ranked_suggestions(self, group_id: str, event_id: str) -> List[GameSuggestion]:
        event = load_event(self.store, group_id, event_id)
        return rank_suggestions(event.game_suggestions)

    def submit_rating(
        self,
        group_id: str,
        event_id: str,
        user_id: str,
        rating: Union[Rating, Dict[str, Any]],
    ) -> Event:
        """Store the user's rating of a past event, replacing an earlier one.

        Raises:
            ValidationError: If a score is not a whole number from 1 to 5,
                or the user did not take part in the event.
            StateError: If the event has not taken place yet.
        """
        if not isinstance(rating, Rating):
            try:
                rating = Rating.model_validate(rating)
            except PydanticValidationError as e:
                labels = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
                raise ValidationError(f"Scores must be whole numbers from 1 to 5 ({labels})") from e

        def change(event: Event):
            if is_upcoming(event, self.clock()):
                raise StateError("You can only rate an event after it has taken place")
            if user_id not in event.participant_ids:
                raise ValidationError("Only participants can rate the event")
            ratings = {uid: r.to_document() for uid, r in event.ratings.items()}
            ratings[user_id] = rating.to_document()
            return {"ratings": ratings}, None

        apply_event_change(self.store, group_id, event_id, change, self.max_attempts)
        logger.info(f"{user_id} rated event {group_id}/{event_id}")
        return load_event(self.store, group_id, event_id)
