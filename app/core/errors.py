"""Domain errors for groups, events and the game ballot.

Every error carries a code and a message that is safe to show to the user.
"""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    MALFORMED_DOCUMENT = "MALFORMED_DOCUMENT"
    NO_MEMBERS = "NO_MEMBERS"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    STALE_DOCUMENT = "STALE_DOCUMENT"
    CONCURRENT_UPDATE = "CONCURRENT_UPDATE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Missing or out-of-range input."""

    code = ErrorCode.VALIDATION_FAILED


class NotFoundError(DomainError):
    """Referenced group, event or suggestion does not exist."""

    code = ErrorCode.NOT_FOUND


class MalformedDocumentError(NotFoundError):
    """A stored document does not have the shape its collection requires."""

    code = ErrorCode.MALFORMED_DOCUMENT

    def __init__(self, path: str, detail: str = "") -> None:
        super().__init__(f"Document {path} is malformed" + (f": {detail}" if detail else ""))
        self.path = path


class NoMembersError(NotFoundError):
    """Raised when a host is needed for a group without members."""

    code = ErrorCode.NO_MEMBERS

    def __init__(self, group_id: str | None = None) -> None:
        super().__init__("Group has no members, a host cannot be assigned")
        self.group_id = group_id


class ConflictError(DomainError):
    """Duplicate of something that must be unique."""

    code = ErrorCode.CONFLICT


class StateError(DomainError):
    """Operation attempted outside the event state that permits it."""

    code = ErrorCode.INVALID_STATE


class PersistenceError(DomainError):
    """The underlying document store call failed."""

    code = ErrorCode.PERSISTENCE_FAILED


class StaleDocumentError(PersistenceError):
    """A conditional write lost against a newer version of the document."""

    code = ErrorCode.STALE_DOCUMENT

    def __init__(self, path: str) -> None:
        super().__init__(f"Document {path} was modified concurrently")
        self.path = path


class ConcurrentUpdateError(PersistenceError):
    """Raised when repeated conditional writes kept losing."""

    code = ErrorCode.CONCURRENT_UPDATE

    def __init__(self, path: str, attempts: int) -> None:
        super().__init__(
            "The event is being changed by someone else right now, please try again"
        )
        self.path = path
        self.attempts = attempts
