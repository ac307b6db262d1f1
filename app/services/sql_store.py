"""
SQLAlchemy-backed document store.

Every document is one row of the ``documents`` table holding its JSON data and
an integer version that is bumped on each write. Conditional writes compare
that version in the UPDATE statement itself.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PersistenceError, StaleDocumentError
from app.models import StoredDocument
from app.services.document_store import (
    SUPPORTED_OPERATORS,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    Listener,
    Subscription,
    WhereClause,
    split_path,
)
from app.utils.clock import as_utc

logger = logging.getLogger(__name__)

# Unconditional partial updates re-read and retry when they race another writer
_MERGE_ATTEMPTS = 5


def to_json_safe(value: Any) -> Any:
    """Convert datetimes to sortable ISO strings, recursively"""
    if isinstance(value, datetime):
        return as_utc(value).isoformat(timespec="microseconds")
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value


def _matches(data: Dict[str, Any], clause: WhereClause) -> bool:
    field, op, expected = clause
    actual = data.get(field)
    if op == "==":
        return actual == to_json_safe(expected)
    if op == "array_contains":
        return isinstance(actual, list) and to_json_safe(expected) in actual
    raise ValueError(f"Unsupported operator {op!r}, expected one of {SUPPORTED_OPERATORS}")


class ChangeFeed:
    """In-process fan-out of document changes to collection listeners"""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, collection_path: str, listener: Listener) -> Subscription:
        with self._lock:
            self._listeners.setdefault(collection_path, []).append(listener)

        def cancel() -> None:
            with self._lock:
                listeners = self._listeners.get(collection_path, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(collection_path, None)

        return Subscription(collection_path, cancel)

    def publish(self, collection_path: str, changes: List[DocumentChange]) -> None:
        with self._lock:
            listeners = list(self._listeners.get(collection_path, []))
        for listener in listeners:
            try:
                listener(changes)
            except Exception:
                logger.exception(f"Listener for {collection_path} failed")

    def listener_count(self, collection_path: str) -> int:
        with self._lock:
            return len(self._listeners.get(collection_path, []))


# Shared by every store bound to the same process
change_feed = ChangeFeed()


class SqlDocumentStore(DocumentStore):
    """Document store over a single SQLAlchemy session."""

    def __init__(self, db: Session, feed: ChangeFeed = change_feed):
        self.db = db
        self.feed = feed

    @contextmanager
    def _guard(self, action: str, path: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action} {path}: {e}")
            raise PersistenceError(f"Could not {action} {path}") from e

    def _row(self, path: str) -> Optional[StoredDocument]:
        return self.db.execute(
            select(StoredDocument).where(StoredDocument.path == path)
        ).scalar_one_or_none()

    @staticmethod
    def _snapshot(row: StoredDocument) -> DocumentSnapshot:
        return DocumentSnapshot(path=row.path, data=copy.deepcopy(row.data), version=row.version)

    def _publish(self, kind: str, row: StoredDocument) -> None:
        self.feed.publish(row.collection, [DocumentChange(kind, self._snapshot(row))])

    def get_document(self, path: str) -> Optional[DocumentSnapshot]:
        with self._guard("read", path):
            row = self._row(path)
            return self._snapshot(row) if row else None

    def add_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        path = f"{collection_path}/{doc_id}"
        with self._guard("create", path):
            row = StoredDocument(
                path=path,
                collection=collection_path,
                doc_id=doc_id,
                data=to_json_safe(data),
                version=1,
            )
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        self._publish("added", row)
        return doc_id

    def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        collection, doc_id = split_path(path)
        with self._guard("write", path):
            row = self._row(path)
            if row is None:
                row = StoredDocument(
                    path=path,
                    collection=collection,
                    doc_id=doc_id,
                    data=to_json_safe(data),
                    version=1,
                )
                self.db.add(row)
                kind = "added"
            else:
                base = dict(row.data) if merge else {}
                base.update(to_json_safe(data))
                row.data = base
                row.version = row.version + 1
                kind = "modified"
            self.db.commit()
            self.db.refresh(row)
        self._publish(kind, row)

    def update_document(
        self,
        path: str,
        data: Dict[str, Any],
        expected_version: Any = None,
    ) -> None:
        with self._guard("update", path):
            for _ in range(_MERGE_ATTEMPTS):
                row = self._row(path)
                if row is None:
                    raise NotFoundError(f"Document {path} not found")
                if expected_version is not None and row.version != expected_version:
                    raise StaleDocumentError(path)

                merged = dict(row.data)
                merged.update(to_json_safe(data))
                result = self.db.execute(
                    update(StoredDocument)
                    .where(StoredDocument.path == path, StoredDocument.version == row.version)
                    .values(data=merged, version=row.version + 1, updated_at=datetime.utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    self.db.commit()
                    break
                self.db.rollback()
                self.db.expire_all()
                if expected_version is not None:
                    raise StaleDocumentError(path)
                logger.debug(f"Retrying update of {path} after a concurrent write")
            else:
                raise StaleDocumentError(path)

            self.db.expire_all()
            row = self._row(path)
        self._publish("modified", row)

    def delete_document(self, path: str) -> None:
        with self._guard("delete", path):
            row = self._row(path)
            if row is None:
                return
            snapshot = self._snapshot(row)
            self.db.delete(row)
            self.db.commit()
        self.feed.publish(split_path(path)[0], [DocumentChange("removed", snapshot)])

    def query(
        self,
        collection_path: str,
        where: Sequence[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> Iterator[DocumentSnapshot]:
        with self._guard("query", collection_path):
            rows = self.db.execute(
                select(StoredDocument)
                .where(StoredDocument.collection == collection_path)
                .order_by(StoredDocument.created_at, StoredDocument.path)
            ).scalars().all()
            snapshots = [self._snapshot(row) for row in rows]

        snapshots = [s for s in snapshots if all(_matches(s.data, clause) for clause in where)]
        if order_by is not None:
            # Documents without the ordering field are left out, as Firestore does
            snapshots = [s for s in snapshots if s.data.get(order_by) is not None]
            if descending:
                # Equal keys keep newest-first order after the stable sort
                snapshots.reverse()
            snapshots.sort(key=lambda s: s.data[order_by], reverse=descending)
        if limit is not None:
            snapshots = snapshots[:limit]
        yield from snapshots

    def watch_collection(self, collection_path: str, listener: Listener) -> Subscription:
        return self.feed.subscribe(collection_path, listener)
