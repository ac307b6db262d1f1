"""
Document store contract shared by the Firestore and SQL backends.

Paths are slash separated and alternate collection/document segments:
``groups/{groupId}``, ``groups/{groupId}/events/{eventId}``, ``users/{userId}``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

GROUPS = "groups"
EVENTS = "events"

WhereClause = Tuple[str, str, Any]
SUPPORTED_OPERATORS = ("==", "array_contains")


def group_path(group_id: str) -> str:
    return f"{GROUPS}/{group_id}"


def events_path(group_id: str) -> str:
    return f"{GROUPS}/{group_id}/{EVENTS}"


def event_path(group_id: str, event_id: str) -> str:
    return f"{events_path(group_id)}/{event_id}"


def split_path(path: str) -> Tuple[str, str]:
    """Split a document path into (collection path, document id)"""
    collection, _, doc_id = path.rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read from the store"""
    path: str
    data: Dict[str, Any]
    # Backend specific revision token used for conditional writes
    version: Any = None

    @property
    def id(self) -> str:
        return split_path(self.path)[1]


@dataclass(frozen=True)
class DocumentChange:
    kind: str  # added | modified | removed
    snapshot: DocumentSnapshot


Listener = Callable[[List[DocumentChange]], None]


@dataclass
class Subscription:
    """Handle returned by watch_collection; call unsubscribe() to stop"""
    collection_path: str
    _cancel: Callable[[], None] = field(repr=False)
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


class DocumentStore(ABC):
    """Interface for document persistence operations."""

    @abstractmethod
    def get_document(self, path: str) -> Optional[DocumentSnapshot]:
        """Return the document at path, or None if it does not exist."""
        ...

    @abstractmethod
    def add_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        ...

    @abstractmethod
    def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Create or replace the document at path (or merge into it)."""
        ...

    @abstractmethod
    def update_document(
        self,
        path: str,
        data: Dict[str, Any],
        expected_version: Any = None,
    ) -> None:
        """Update top-level fields of an existing document.

        Raises:
            NotFoundError: If the document does not exist.
            StaleDocumentError: If expected_version is given and the stored
                document has moved on since it was read.
        """
        ...

    @abstractmethod
    def delete_document(self, path: str) -> None:
        """Delete the document at path. Deleting a missing document is a no-op."""
        ...

    @abstractmethod
    def query(
        self,
        collection_path: str,
        where: Sequence[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> Iterator[DocumentSnapshot]:
        """Lazily yield the documents of a collection."""
        ...

    @abstractmethod
    def watch_collection(self, collection_path: str, listener: Listener) -> Subscription:
        """Call listener with batches of changes to the collection's documents."""
        ...
