"""
Repository layer: typed access to group and event documents.

Documents are decoded into schema models here, so services never see raw
store payloads.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import MalformedDocumentError
from app.schemas.common import DocumentModel
from app.schemas.event import Event
from app.schemas.group import Group
from app.services.document_store import (
    GROUPS,
    DocumentSnapshot,
    DocumentStore,
    event_path,
    events_path,
    group_path,
)
from app.services.firebase_client import get_firestore_client
from app.services.firestore_store import FirestoreDocumentStore
from app.services.sql_store import SqlDocumentStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=DocumentModel)


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


def build_store(db: Session) -> DocumentStore:
    """Pick the configured backend"""
    if use_firestore():
        return FirestoreDocumentStore(get_firestore_client())
    return SqlDocumentStore(db)


def decode(model: Type[M], snapshot: DocumentSnapshot, **path_attrs: Any) -> M:
    """Validate a stored document against its schema"""
    try:
        return model.model_validate({**snapshot.data, **path_attrs})
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedDocumentError(snapshot.path, f"invalid fields: {fields}") from e


# -------- Group repository --------

class GroupRepo:
    @staticmethod
    def get(store: DocumentStore, group_id: str) -> Optional[Group]:
        snapshot = store.get_document(group_path(group_id))
        if snapshot is None:
            return None
        return decode(Group, snapshot, id=group_id, version=snapshot.version)

    @staticmethod
    def create(store: DocumentStore, group: Group) -> str:
        return store.add_document(GROUPS, group.to_document())

    @staticmethod
    def set_members(store: DocumentStore, group_id: str, member_ids: List[str]) -> None:
        store.update_document(group_path(group_id), {"memberIds": member_ids})

    @staticmethod
    def update(store: DocumentStore, group_id: str, fields: Dict[str, Any]) -> None:
        store.update_document(group_path(group_id), fields)

    @staticmethod
    def claim_event_sequence(store: DocumentStore, group: Group) -> int:
        """Reserve the next event sequence number of the group.

        Raises StaleDocumentError when the group changed since it was read.
        """
        sequence = group.event_sequence + 1
        store.update_document(
            group_path(group.id), {"eventSequence": sequence}, expected_version=group.version
        )
        return sequence

    @staticmethod
    def list_for_member(store: DocumentStore, user_id: str) -> List[Group]:
        snapshots = store.query(
            GROUPS,
            where=[("memberIds", "array_contains", user_id)],
            order_by="createdAt",
            descending=True,
        )
        return list(_decode_all(Group, snapshots, lambda s: {"id": s.id}))

    @staticmethod
    def iter_ids(store: DocumentStore) -> Iterator[str]:
        for snapshot in store.query(GROUPS):
            yield snapshot.id


# -------- Event repository --------

class EventRepo:
    @staticmethod
    def get(store: DocumentStore, group_id: str, event_id: str) -> Optional[Event]:
        snapshot = store.get_document(event_path(group_id, event_id))
        if snapshot is None:
            return None
        return decode(Event, snapshot, id=event_id, group_id=group_id, version=snapshot.version)

    @staticmethod
    def create(store: DocumentStore, group_id: str, event: Event) -> str:
        return store.add_document(events_path(group_id), event.to_document())

    @staticmethod
    def most_recent_host(store: DocumentStore, group_id: str) -> Optional[str]:
        """Host of the most recently created event, if any.

        Events carry their position in the group's creation order; events
        written without one are ranked by createdAt instead.
        """
        latest = None
        for order_by in ("sequence", "createdAt"):
            latest = next(
                store.query(events_path(group_id), order_by=order_by, descending=True, limit=1),
                None,
            )
            if latest is not None:
                break
        if latest is None:
            return None
        host = latest.data.get("host")
        return host if isinstance(host, str) else None

    @staticmethod
    def list_for_group(store: DocumentStore, group_id: str) -> Iterator[Event]:
        snapshots = store.query(events_path(group_id), order_by="datetime")
        return _decode_all(
            Event, snapshots, lambda s: {"id": s.id, "group_id": group_id, "version": s.version}
        )

    @staticmethod
    def update(
        store: DocumentStore,
        group_id: str,
        event_id: str,
        fields: Dict[str, Any],
        expected_version: Any = None,
    ) -> None:
        store.update_document(event_path(group_id, event_id), fields, expected_version=expected_version)

    @staticmethod
    def delete(store: DocumentStore, group_id: str, event_id: str) -> None:
        store.delete_document(event_path(group_id, event_id))


def _decode_all(model: Type[M], snapshots, path_attrs) -> Iterator[M]:
    for snapshot in snapshots:
        try:
            yield decode(model, snapshot, **path_attrs(snapshot))
        except MalformedDocumentError as e:
            logger.warning(f"Skipping {e.message}")
