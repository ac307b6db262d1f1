"""
Event, game suggestion and rating API routes
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from app.core.dependencies import enforce_rate_limit, get_ballot_service, get_event_service
from app.schemas.event import EventCreate, SuggestionCreate
from app.services.ballot_service import BallotService, rating_summary
from app.services.event_service import EventService
from app.utils.responses import success_response
from app.utils.security import get_current_user_id

router = APIRouter()

def suggestion_view(suggestion) -> Dict[str, Any]:
    return {
        "name": suggestion.name,
        "createdBy": suggestion.created_by,
        "createdAt": suggestion.created_at,
        "description": suggestion.description,
        "voterIds": suggestion.voter_ids,
        "voteCount": suggestion.vote_count,
    }

@router.get("/events")
async def list_all_events(
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    """Global events feed, sorted by date"""
    feed = sorted(events.list_all_events(), key=lambda e: e.datetime)
    return success_response(message="Events retrieved", data=feed)

@router.post("/groups/{group_id}/events", dependencies=[Depends(enforce_rate_limit)])
async def create_event(
    group_id: str,
    event_data: EventCreate,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    """Create an event; its host is picked by rotation"""
    event_id = events.create_event(group_id, event_data, creator_id=user_id)
    return success_response(
        message="Event created successfully",
        data=events.get_event(group_id, event_id),
        status_code=201
    )

@router.get("/groups/{group_id}/events")
async def list_group_events(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    return success_response(
        message="Events retrieved",
        data=list(events.list_events_for_group(group_id))
    )

@router.get("/groups/{group_id}/events/{event_id}")
async def get_event(
    group_id: str,
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    event = events.get_event(group_id, event_id)
    return success_response(
        message="Event retrieved",
        data={"event": event, "ratingSummary": rating_summary(event)}
    )

@router.patch("/groups/{group_id}/events/{event_id}", dependencies=[Depends(enforce_rate_limit)])
async def update_event(
    group_id: str,
    event_id: str,
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    """Edit name, location, datetime, ratings or game suggestions"""
    return success_response(
        message="Event updated",
        data=events.update_event(group_id, event_id, payload)
    )

@router.delete("/groups/{group_id}/events/{event_id}", dependencies=[Depends(enforce_rate_limit)])
async def delete_event(
    group_id: str,
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    events.delete_event(group_id, event_id)
    return success_response(message="Event deleted")

@router.post("/groups/{group_id}/events/{event_id}/join", dependencies=[Depends(enforce_rate_limit)])
async def join_event(
    group_id: str,
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    events: EventService = Depends(get_event_service)
):
    return success_response(
        message="Joined event",
        data=events.join_event(group_id, event_id, user_id)
    )

@router.get("/groups/{group_id}/events/{event_id}/suggestions")
async def list_suggestions(
    group_id: str,
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    ballot: BallotService = Depends(get_ballot_service)
):
    """Suggestions ranked by votes"""
    ranked = ballot.ranked_suggestions(group_id, event_id)
    return success_response(
        message="Suggestions retrieved",
        data=[suggestion_view(s) for s in ranked]
    )

@router.post("/groups/{group_id}/events/{event_id}/suggestions", dependencies=[Depends(enforce_rate_limit)])
async def suggest_game(
    group_id: str,
    event_id: str,
    suggestion: SuggestionCreate,
    user_id: str = Depends(get_current_user_id),
    ballot: BallotService = Depends(get_ballot_service)
):
    created = ballot.suggest_game(
        group_id,
        event_id,
        proposer_id=user_id,
        name=suggestion.name,
        description=suggestion.description
    )
    return success_response(
        message=f"{created.name} suggested",
        data=suggestion_view(created),
        status_code=201
    )

@router.post("/groups/{group_id}/events/{event_id}/suggestions/{name:path}/votes", dependencies=[Depends(enforce_rate_limit)])
async def vote_for_game(
    group_id: str,
    event_id: str,
    name: str,
    user_id: str = Depends(get_current_user_id),
    ballot: BallotService = Depends(get_ballot_service)
):
    voted = ballot.vote_for_game(group_id, event_id, voter_id=user_id, name=name)
    return success_response(message="Vote recorded", data=suggestion_view(voted))

@router.put("/groups/{group_id}/events/{event_id}/ratings", dependencies=[Depends(enforce_rate_limit)])
async def submit_rating(
    group_id: str,
    event_id: str,
    rating: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    ballot: BallotService = Depends(get_ballot_service)
):
    """Rate host, food and the evening overall (1-5) after the event"""
    event = ballot.submit_rating(group_id, event_id, user_id, rating)
    return success_response(
        message="Rating saved",
        data={"rating": event.ratings[user_id], "ratingSummary": rating_summary(event)}
    )
