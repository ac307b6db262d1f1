"""
Tests for the SQL document store
"""

from datetime import datetime, timezone

import pytest

from app.core.errors import MalformedDocumentError, NotFoundError, StaleDocumentError
from app.services.document_store import event_path, events_path, split_path
from app.services.repositories import EventRepo, GroupRepo

def test_add_and_get_document(store):
    doc_id = store.add_document("groups", {"name": "Club", "memberIds": ["a"]})

    snapshot = store.get_document(f"groups/{doc_id}")
    assert snapshot is not None
    assert snapshot.id == doc_id
    assert snapshot.data == {"name": "Club", "memberIds": ["a"]}
    assert snapshot.version == 1

def test_get_missing_document(store):
    assert store.get_document("groups/nope") is None

def test_datetimes_are_stored_as_utc_iso_strings(store):
    store.set_document("groups/g1", {"createdAt": datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)})

    data = store.get_document("groups/g1").data
    assert data["createdAt"] == "2025-01-02T03:04:05.000000+00:00"

def test_set_document_merge(store):
    store.set_document("users/u1", {"displayName": "Alice", "email": "a@example.com"})
    store.set_document("users/u1", {"displayName": "Ali"}, merge=True)
    assert store.get_document("users/u1").data == {"displayName": "Ali", "email": "a@example.com"}

    store.set_document("users/u1", {"displayName": "A"})
    assert store.get_document("users/u1").data == {"displayName": "A"}

def test_update_bumps_version(store):
    store.set_document("groups/g1", {"name": "Club", "memberIds": ["a"]})
    store.update_document("groups/g1", {"memberIds": ["a", "b"]})

    snapshot = store.get_document("groups/g1")
    assert snapshot.data == {"name": "Club", "memberIds": ["a", "b"]}
    assert snapshot.version == 2

def test_update_missing_document(store):
    with pytest.raises(NotFoundError):
        store.update_document("groups/missing", {"name": "x"})

def test_conditional_update_rejects_stale_version(store):
    store.set_document("groups/g1", {"name": "Club"})
    read = store.get_document("groups/g1")

    store.update_document("groups/g1", {"name": "Other"})

    with pytest.raises(StaleDocumentError):
        store.update_document("groups/g1", {"name": "Mine"}, expected_version=read.version)
    assert store.get_document("groups/g1").data["name"] == "Other"

def test_conditional_update_with_current_version(store):
    store.set_document("groups/g1", {"name": "Club"})
    read = store.get_document("groups/g1")

    store.update_document("groups/g1", {"name": "Mine"}, expected_version=read.version)
    assert store.get_document("groups/g1").data["name"] == "Mine"

def test_delete_is_idempotent(store):
    store.set_document("groups/g1", {"name": "Club"})
    store.delete_document("groups/g1")
    store.delete_document("groups/g1")
    assert store.get_document("groups/g1") is None

def test_query_order_limit_and_where(store):
    store.set_document("groups/g/events/e1", {"n": 3, "tags": ["x"]})
    store.set_document("groups/g/events/e2", {"n": 1, "tags": ["y"]})
    store.set_document("groups/g/events/e3", {"n": 2, "tags": ["x", "y"]})
    store.set_document("groups/g/events/e4", {"tags": ["x"]})
    store.set_document("groups/other/events/e5", {"n": 0})

    ordered = [s.id for s in store.query("groups/g/events", order_by="n")]
    assert ordered == ["e2", "e3", "e1"]

    newest = [s.id for s in store.query("groups/g/events", order_by="n", descending=True, limit=1)]
    assert newest == ["e1"]

    tagged = {s.id for s in store.query("groups/g/events", where=[("tags", "array_contains", "x")])}
    assert tagged == {"e1", "e3", "e4"}

    exact = [s.id for s in store.query("groups/g/events", where=[("n", "==", 2)])]
    assert exact == ["e3"]

def test_query_rejects_unknown_operator(store):
    store.set_document("groups/g1", {"n": 1})
    with pytest.raises(ValueError):
        list(store.query("groups", where=[("n", ">", 0)]))

def test_watch_collection_reports_changes(store):
    received = []
    subscription = store.watch_collection("groups/g/events", received.extend)

    doc_id = store.add_document("groups/g/events", {"name": "Night"})
    store.update_document(f"groups/g/events/{doc_id}", {"name": "Late night"})
    store.delete_document(f"groups/g/events/{doc_id}")
    store.add_document("groups/other/events", {"name": "Elsewhere"})

    assert [c.kind for c in received] == ["added", "modified", "removed"]
    assert received[1].snapshot.data["name"] == "Late night"

    subscription.unsubscribe()
    store.add_document("groups/g/events", {"name": "Unseen"})
    assert len(received) == 3
    assert not subscription.active

def test_failing_listener_does_not_break_writes(store, feed):
    def broken(changes):
        raise RuntimeError("boom")

    store.watch_collection("groups", broken)
    store.add_document("groups", {"name": "Club"})
    assert len(list(store.query("groups"))) == 1

def test_split_path():
    assert split_path(event_path("g1", "e1")) == (events_path("g1"), "e1")
    with pytest.raises(ValueError):
        split_path("groups")

def test_malformed_event_is_rejected_on_read(store):
    store.set_document(event_path("g1", "bad"), {"name": "No date", "host": "alice"})

    with pytest.raises(MalformedDocumentError) as excinfo:
        EventRepo.get(store, "g1", "bad")
    assert isinstance(excinfo.value, NotFoundError)

def test_malformed_documents_are_skipped_in_listings(store):
    store.set_document("groups/good", {
        "name": "Good", "memberIds": ["a"], "createdBy": "a",
        "createdAt": "2025-01-01T00:00:00+00:00",
    })
    store.set_document("groups/bad", {
        "name": "Bad", "memberIds": ["a"], "createdAt": "2025-02-01T00:00:00+00:00",
    })

    assert [g.id for g in GroupRepo.list_for_member(store, "a")] == ["good"]
