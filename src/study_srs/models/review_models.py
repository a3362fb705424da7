"""
# Review Record Models

This module defines the **generic review record** and the types used by the **due queue**.

## Domain Model Overview

- **ReviewRecord**: One user's SRS state for one piece of content (a question, an error-notebook
  entry, or a flashcard when a caller wants a generic record). Keyed by
  `(user_id, content_id, content_type)`; at most one record per key.
- **DueQueueOptions / DueQueuePage**: Request and response of `DueQueueService.due_reviews()`.
- **DueCursor**: Position in the due queue, encoded as an opaque string.

## Key Features

### 1. Deterministic Identity
`review_record_id_for()` derives the record id from the content key (`rr_` + UUID5), so two
concurrent creates for the same key collide on `_id` instead of producing duplicates.

### 2. Optimistic Concurrency
Every record carries a `version` that is bumped on each write. Writers filter on the version
they read.

### 3. Composite Cursor
The queue is ordered by `(partition, next_review_at, id)`. The cursor carries the last key
served, so the next page starts strictly after it.

## Usage Examples

```python
record_id = review_record_id_for("user_1", "q_42", ContentType.QUESTION)
page = await due_queue_service.due_reviews("user_1", DueQueueOptions(limit=20))
```
"""

import base64
import binascii
import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from study_srs.models.srs_models import SRSState, SRSStatus
from study_srs.services.exceptions import InvalidCursorError

REVIEW_RECORD_ID_PREFIX = "rr_"

# Namespace for content-key derived ids. Changing it orphans every stored record.
REVIEW_RECORD_NAMESPACE = uuid.UUID("5b0c6d3e-8a51-4f0e-9c3a-2f6d1e7a9b40")


class ContentType(str, Enum):
    """Kinds of content a review record can point at."""

    QUESTION = "QUESTION"
    ERROR_NOTEBOOK_ENTRY = "ERROR_NOTEBOOK_ENTRY"
    FLASHCARD = "FLASHCARD"


def review_record_id_for(user_id: str, content_id: str, content_type: str) -> str:
    """Stable record id for a content key."""
    content_type = ContentType(content_type).value
    key = f"{user_id}|{content_type}|{content_id}"
    return REVIEW_RECORD_ID_PREFIX + uuid.uuid5(REVIEW_RECORD_NAMESPACE, key).hex


class ReviewRecord(BaseModel):
    """
    Scheduling record for one user and one piece of content.

    Attributes:
        id (str): Deterministic id derived from the content key (stored as `_id`).
        user_id (str): Owner.
        content_id (str): Id of the referenced content.
        content_type (ContentType): Kind of the referenced content.
        deck_id (Optional[str]): Grouping used by the due queue filter.
        srs (SRSState): Embedded scheduling state.
        original_answer_correct (Optional[bool]): Whether the first exposure was answered correctly.
        notes (Optional[str]): Free text, replaced by `record_review(notes=...)`.
        version (int): Optimistic-concurrency counter.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(..., alias="_id")
    user_id: str
    content_id: str
    content_type: ContentType
    deck_id: Optional[str] = None
    srs: SRSState
    original_answer_correct: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=5000)
    version: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class DueQueueOptions(BaseModel):
    """
    Filters and paging for the due queue.

    `limit=None` uses `SRS_DUE_QUEUE_DEFAULT_LIMIT`; larger values are capped at
    `SRS_DUE_QUEUE_MAX_LIMIT`. `now=None` means the current time.
    """

    content_type: Optional[ContentType] = None
    deck_id: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    cursor: Optional[str] = None
    prioritize: bool = True
    now: Optional[datetime] = None


class DueQueuePage(BaseModel):
    """One page of due review records. `next_cursor` is `None` on the last page."""

    items: List[ReviewRecord] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    prioritized_count: int = Field(default=0, description="Items on this page from weak topics")


class ReviewRecordPage(BaseModel):
    items: List[ReviewRecord] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class DueCursor(BaseModel):
    """
    Last key served by a queue page.

    `partition` is 0 for weak-topic items and 1 for the rest; listings without prioritization
    always use 1.
    """

    partition: int = Field(..., ge=0, le=1)
    next_review_at: datetime
    record_id: str

    def encode(self) -> str:
        payload = {"p": self.partition, "t": self.next_review_at.isoformat(), "i": self.record_id}
        raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "DueCursor":
        """
        Parse a token produced by `encode()`.

        Raises:
            InvalidCursorError: If the token is not a cursor.
        """
        padded = token + "=" * (-len(token) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            return cls(
                partition=payload["p"],
                next_review_at=datetime.fromisoformat(payload["t"]),
                record_id=payload["i"],
            )
        except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
            raise InvalidCursorError(token) from e


__all__ = [
    "ContentType",
    "DueCursor",
    "DueQueueOptions",
    "DueQueuePage",
    "REVIEW_RECORD_ID_PREFIX",
    "ReviewRecord",
    "ReviewRecordPage",
    "SRSStatus",
    "review_record_id_for",
]
