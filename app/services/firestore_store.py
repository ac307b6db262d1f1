"""
Firestore-backed document store.

Document versions are Firestore ``update_time`` values; conditional writes
pass them as a ``last_update_time`` precondition.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Sequence

from google.api_core import exceptions as gexc
from google.cloud.firestore import Query

from app.core.errors import NotFoundError, PersistenceError, StaleDocumentError
from app.services.document_store import (
    SUPPORTED_OPERATORS,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    Listener,
    Subscription,
    WhereClause,
)

logger = logging.getLogger(__name__)


def _snapshot(doc) -> DocumentSnapshot:
    return DocumentSnapshot(path=doc.reference.path, data=doc.to_dict() or {}, version=doc.update_time)


class FirestoreDocumentStore(DocumentStore):
    """Document store over a google.cloud.firestore client."""

    def __init__(self, client):
        self.client = client

    @contextmanager
    def _guard(self, action: str, path: str):
        try:
            yield
        except gexc.GoogleAPICallError as e:
            logger.error(f"Failed to {action} {path}: {e}")
            raise PersistenceError(f"Could not {action} {path}") from e

    def get_document(self, path: str) -> Optional[DocumentSnapshot]:
        with self._guard("read", path):
            doc = self.client.document(path).get()
            return _snapshot(doc) if doc.exists else None

    def add_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        with self._guard("create in", collection_path):
            _, ref = self.client.collection(collection_path).add(data)
            return ref.id

    def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._guard("write", path):
            self.client.document(path).set(data, merge=merge)

    def update_document(
        self,
        path: str,
        data: Dict[str, Any],
        expected_version: Any = None,
    ) -> None:
        ref = self.client.document(path)
        try:
            if expected_version is None:
                ref.update(data)
            else:
                ref.update(data, option=self.client.write_option(last_update_time=expected_version))
        except gexc.NotFound as e:
            raise NotFoundError(f"Document {path} not found") from e
        except gexc.FailedPrecondition as e:
            raise StaleDocumentError(path) from e
        except gexc.GoogleAPICallError as e:
            logger.error(f"Failed to update {path}: {e}")
            raise PersistenceError(f"Could not update {path}") from e

    def delete_document(self, path: str) -> None:
        with self._guard("delete", path):
            self.client.document(path).delete()

    def query(
        self,
        collection_path: str,
        where: Sequence[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> Iterator[DocumentSnapshot]:
        q = self.client.collection(collection_path)
        for field, op, value in where:
            if op not in SUPPORTED_OPERATORS:
                raise ValueError(f"Unsupported operator {op!r}, expected one of {SUPPORTED_OPERATORS}")
            q = q.where(field, op, value)
        if order_by is not None:
            q = q.order_by(order_by, direction=Query.DESCENDING if descending else Query.ASCENDING)
        if limit is not None:
            q = q.limit(limit)

        with self._guard("query", collection_path):
            for doc in q.stream():
                yield _snapshot(doc)

    def watch_collection(self, collection_path: str, listener: Listener) -> Subscription:
        def on_snapshot(col_snapshot, changes, read_time):
            listener([
                DocumentChange(change.type.name.lower(), _snapshot(change.document))
                for change in changes
            ])

        with self._guard("watch", collection_path):
            watch = self.client.collection(collection_path).on_snapshot(on_snapshot)
        return Subscription(collection_path, watch.unsubscribe)
