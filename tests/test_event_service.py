"""
Tests for the event lifecycle service
"""

from datetime import timedelta

import pytest

from app.core.errors import NoMembersError, NotFoundError, StateError, ValidationError
from app.schemas.event import EventCreate
from app.services.event_service import EventService, is_upcoming

def new_event(clock, name="Game night", days=7, **extra):
    return EventCreate(name=name, datetime=clock.now + timedelta(days=days), **extra)

def suggestion_doc(name, voter_ids):
    return {"name": name, "createdBy": "alice", "createdAt": "2025-03-01T18:00:00+00:00", "voterIds": voter_ids}

def create_series(events, clock, group_id, count):
    """Create count events one minute apart and return their hosts"""
    hosts = []
    for i in range(count):
        clock.advance(minutes=1)
        event_id = events.create_event(group_id, new_event(clock, name=f"Night {i}"), creator_id="alice")
        hosts.append(events.get_event(group_id, event_id).host)
    return hosts

def test_create_event_initial_state(events, clock, board_game_group):
    event_id = events.create_event(
        board_game_group,
        new_event(clock, location="Carol's place", description="Bring snacks"),
        creator_id="bob",
    )

    event = events.get_event(board_game_group, event_id)
    assert event.id == event_id
    assert event.group_id == board_game_group
    assert event.name == "Game night"
    assert event.location == "Carol's place"
    assert event.description == "Bring snacks"
    assert event.created_at == clock.now
    assert event.host == "alice"
    assert event.game_suggestions == []
    assert event.participant_ids == ["bob"]
    assert event.ratings == {}

def test_create_event_requires_name_and_datetime(events, clock, board_game_group):
    with pytest.raises(ValidationError):
        events.create_event(board_game_group, EventCreate(datetime=clock.now), creator_id="alice")
    with pytest.raises(ValidationError):
        events.create_event(board_game_group, EventCreate(name="  ", datetime=clock.now), creator_id="alice")
    with pytest.raises(ValidationError):
        events.create_event(board_game_group, EventCreate(name="Night"), creator_id="alice")

def test_create_event_unknown_group(events, clock):
    with pytest.raises(NotFoundError):
        events.create_event("missing", new_event(clock), creator_id="alice")

def test_create_event_group_without_members(events, groups, clock, board_game_group):
    for member in ["alice", "bob", "carol"]:
        groups.remove_member(board_game_group, member)

    with pytest.raises(NoMembersError):
        events.create_event(board_game_group, new_event(clock), creator_id="alice")

def test_hosts_rotate_through_members(events, clock, board_game_group):
    hosts = create_series(events, clock, board_game_group, 5)
    assert hosts == ["alice", "bob", "carol", "alice", "bob"]

def test_hosts_rotate_when_created_at_the_same_instant(events, clock, board_game_group):
    hosts = []
    for i in range(4):
        event_id = events.create_event(board_game_group, new_event(clock, name=f"Night {i}"), creator_id="alice")
        hosts.append(events.get_event(board_game_group, event_id))

    assert [e.host for e in hosts] == ["alice", "bob", "carol", "alice"]
    assert [e.sequence for e in hosts] == [1, 2, 3, 4]
    assert len({e.created_at for e in hosts}) == 1

def test_create_event_retries_when_group_changes(racing_store, groups, clock, board_game_group):
    racing = racing_store(competing_write=lambda: groups.add_member(board_game_group, "dave"))
    events = EventService(racing, clock=clock)

    first = events.create_event(board_game_group, new_event(clock), creator_id="alice")
    second = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    assert racing.times == 0
    assert events.get_event(board_game_group, first).host == "alice"
    assert events.get_event(board_game_group, second).host == "bob"
    assert groups.get_group(board_game_group).event_sequence == 2

def test_rotation_follows_creation_order_not_schedule(events, clock, board_game_group):
    """The latest created event decides, even if scheduled earlier"""
    clock.advance(minutes=1)
    events.create_event(board_game_group, new_event(clock, days=30), creator_id="alice")
    clock.advance(minutes=1)
    events.create_event(board_game_group, new_event(clock, days=2), creator_id="alice")
    clock.advance(minutes=1)
    third = events.create_event(board_game_group, new_event(clock, days=10), creator_id="alice")

    assert events.get_event(board_game_group, third).host == "carol"

def test_departed_host_falls_back_to_first_member(events, groups, clock, board_game_group):
    assert create_series(events, clock, board_game_group, 2) == ["alice", "bob"]

    groups.remove_member(board_game_group, "bob")

    assert create_series(events, clock, board_game_group, 1) == ["alice"]

def test_group_creator_fallback_policy(store, groups, clock):
    group_id = groups.create_group("Club", ["alice", "bob", "carol"], created_by="carol")
    events = EventService(store, clock=clock, host_fallback="group_creator")

    assert create_series(events, clock, group_id, 2) == ["alice", "bob"]
    groups.remove_member(group_id, "bob")
    assert create_series(events, clock, group_id, 1) == ["carol"]

def test_new_member_joins_rotation(events, groups, clock, board_game_group):
    create_series(events, clock, board_game_group, 3)
    groups.add_member(board_game_group, "dave")

    assert create_series(events, clock, board_game_group, 4) == ["dave", "alice", "bob", "carol"]

def test_list_events_for_group_ordered_by_datetime(events, clock, board_game_group):
    for name, days in [("Later", 20), ("Soon", 1), ("Middle", 10)]:
        clock.advance(minutes=1)
        events.create_event(board_game_group, new_event(clock, name=name, days=days), creator_id="alice")

    names = [e.name for e in events.list_events_for_group(board_game_group)]
    assert names == ["Soon", "Middle", "Later"]

def test_list_all_events_spans_groups(events, groups, clock, board_game_group):
    other = groups.create_group("Chess", ["dave"], created_by="dave")
    events.create_event(board_game_group, new_event(clock, name="Catan night"), creator_id="alice")
    events.create_event(other, new_event(clock, name="Blitz"), creator_id="dave")

    found = {(e.group_id, e.name) for e in events.list_all_events()}
    assert found == {(board_game_group, "Catan night"), (other, "Blitz")}

def test_update_event_editable_fields(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")
    moved = clock.now + timedelta(days=9)

    updated = events.update_event(board_game_group, event_id, {
        "name": "Game night (moved)",
        "location": "Bob's place",
        "datetime": moved,
    })

    assert updated.name == "Game night (moved)"
    assert updated.location == "Bob's place"
    assert updated.datetime == moved
    assert updated.host == "alice"
    assert updated.participant_ids == ["alice"]

def test_update_event_rejects_protected_fields(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    for field, value in [("host", "bob"), ("createdAt", clock.now), ("participantIds", ["bob"])]:
        with pytest.raises(ValidationError):
            events.update_event(board_game_group, event_id, {field: value})

    assert events.get_event(board_game_group, event_id).host == "alice"

def test_update_event_rejects_empty_and_blank(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    with pytest.raises(ValidationError):
        events.update_event(board_game_group, event_id, {})
    with pytest.raises(ValidationError):
        events.update_event(board_game_group, event_id, {"name": " "})

def test_update_event_ratings_are_range_checked(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock, days=1), creator_id="alice")
    clock.advance(days=2)

    with pytest.raises(ValidationError):
        events.update_event(board_game_group, event_id, {"ratings": {"alice": {"host": 9, "food": 3, "general": 3}}})

    updated = events.update_event(board_game_group, event_id, {"ratings": {"alice": {"host": 5, "food": 3, "general": 4}}})
    assert updated.ratings["alice"].host == 5

def test_update_event_ratings_wait_for_the_event(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    with pytest.raises(StateError):
        events.update_event(board_game_group, event_id, {"ratings": {"alice": {"host": 5, "food": 5, "general": 5}}})
    assert events.get_event(board_game_group, event_id).ratings == {}

def test_update_event_ratings_only_from_participants(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock, days=1), creator_id="alice")
    clock.advance(days=2)

    with pytest.raises(ValidationError):
        events.update_event(board_game_group, event_id, {"ratings": {"bob": {"host": 5, "food": 5, "general": 5}}})

def test_update_event_game_suggestions(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    updated = events.update_event(board_game_group, event_id, {"gameSuggestions": [
        suggestion_doc("Catan", ["bob"]),
        suggestion_doc("Azul", []),
    ]})

    assert [(s.name, s.voter_ids) for s in updated.game_suggestions] == [("Catan", ["bob"]), ("Azul", [])]

@pytest.mark.parametrize("suggestions", [
    [suggestion_doc("Catan", []), suggestion_doc("catan", [])],
    [suggestion_doc("Catan", []), suggestion_doc(" CATAN ", [])],
    [suggestion_doc("Catan", ["bob", "bob"])],
    [suggestion_doc("  ", [])],
])
def test_update_event_rejects_invalid_game_suggestions(events, clock, board_game_group, suggestions):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    with pytest.raises(ValidationError):
        events.update_event(board_game_group, event_id, {"gameSuggestions": suggestions})
    assert events.get_event(board_game_group, event_id).game_suggestions == []

def test_update_event_is_a_checked_write(racing_store, events, clock, board_game_group):
    """An update racing a join is retried on top of it"""
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")
    racing = racing_store(competing_write=lambda: events.join_event(board_game_group, event_id, "carol"))

    updated = EventService(racing, clock=clock).update_event(board_game_group, event_id, {"location": "Bob's place"})

    assert racing.times == 0
    assert updated.location == "Bob's place"
    assert updated.participant_ids == ["alice", "carol"]

def test_update_missing_event(events, board_game_group):
    with pytest.raises(NotFoundError):
        events.update_event(board_game_group, "missing", {"name": "x"})

def test_delete_event_is_idempotent(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    events.delete_event(board_game_group, event_id)
    events.delete_event(board_game_group, event_id)

    with pytest.raises(NotFoundError):
        events.get_event(board_game_group, event_id)

def test_join_event(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")

    events.join_event(board_game_group, event_id, "carol")
    joined = events.join_event(board_game_group, event_id, "carol")

    assert joined.participant_ids == ["alice", "carol"]

def test_join_event_requires_membership(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock), creator_id="alice")
    with pytest.raises(ValidationError):
        events.join_event(board_game_group, event_id, "mallory")

def test_join_past_event(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock, days=1), creator_id="alice")
    clock.advance(days=2)
    with pytest.raises(StateError):
        events.join_event(board_game_group, event_id, "bob")

def test_is_upcoming_boundary(events, clock, board_game_group):
    event_id = events.create_event(board_game_group, new_event(clock, days=1), creator_id="alice")
    event = events.get_event(board_game_group, event_id)

    assert is_upcoming(event, event.datetime)
    assert not is_upcoming(event, event.datetime + timedelta(seconds=1))
