"""
# Scheduling Engine Errors

Error taxonomy shared by the SRS services.

| Error | Raised when | Caller action |
|-------|-------------|---------------|
| `InvalidQualityError` | Quality outside 0-5 | Fix input; nothing was written |
| `NotFoundError` | Record, flashcard or entry missing | Surface as 404 |
| `AlreadyExistsError` | Review record already exists for the content key | Fetch and use the existing one |
| `LinkRepairError` | Entry could not be linked to a review record | Exposure stays unscored |
| `PartialBatchFailureError` | A bulk chunk failed | Inspect `processed` / `total`, rerun |
| `ConcurrentUpdateError` | Conditional writes kept losing the race | Retry the request |
| `ImmutableFieldError` | Update payload touched scheduler-owned fields | Use the review operations |
| `InvalidCursorError` | Cursor token cannot be decoded | Restart from the first page |
| `InvalidStateError` | Supplied SRS state breaks the policy bounds | Fix input; nothing was written |
"""

from typing import Any, Iterable, Optional


class SRSError(Exception):
    """Base class for scheduling engine errors."""


class InvalidQualityError(SRSError, ValueError):
    """Review quality outside the closed 0-5 scale."""

    def __init__(self, quality: Any):
        self.quality = quality
        super().__init__(f"Review quality must be an integer between 0 and 5, got {quality!r}")


class NotFoundError(SRSError, LookupError):
    """A record, flashcard or content item does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class AlreadyExistsError(SRSError):
    """A review record already exists for (user_id, content_id, content_type)."""

    def __init__(self, user_id: str, content_id: str, content_type: str, existing_id: Optional[str] = None):
        self.user_id = user_id
        self.content_id = content_id
        self.content_type = content_type
        self.existing_id = existing_id
        super().__init__(
            f"Review record already exists for user {user_id}, content {content_type}:{content_id}"
        )


class LinkRepairError(SRSError):
    """The content-link adapter could not create or re-associate a review record."""

    def __init__(self, entry_id: str, reason: str):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Could not link entry {entry_id} to a review record: {reason}")


class PartialBatchFailureError(SRSError):
    """A bulk operation stopped part-way; earlier chunks stay applied."""

    def __init__(self, operation: str, processed: int, total: int, cause: Optional[BaseException] = None):
        self.operation = operation
        self.processed = processed
        self.total = total
        self.cause = cause
        super().__init__(f"{operation} stopped after {processed}/{total} items: {cause}")


class ConcurrentUpdateError(SRSError):
    """Optimistic-concurrency writes lost every attempt."""

    def __init__(self, kind: str, identifier: str, attempts: int):
        self.kind = kind
        self.identifier = identifier
        self.attempts = attempts
        super().__init__(f"{kind} {identifier} changed concurrently; gave up after {attempts} attempts")


class ImmutableFieldError(SRSError, ValueError):
    """An update payload tried to change fields owned by the scheduler."""

    def __init__(self, fields: Iterable[str]):
        self.fields = sorted(fields)
        super().__init__(
            f"Fields {', '.join(self.fields)} cannot be updated directly; use the review operations"
        )


class InvalidCursorError(SRSError, ValueError):
    """A pagination cursor could not be decoded."""

    def __init__(self, cursor: str):
        self.cursor = cursor
        super().__init__("Pagination cursor is malformed or was issued for a different query")


class InvalidStateError(SRSError, ValueError):
    """A supplied SRS state falls outside the bounds of the active policy."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid SRS state: {reason}")
