"""
# Flashcard Models

Flashcards carry their own SRS state instead of pointing at a review record. They are
scheduled by the same transition function as review records, under the flashcard policy.

## Domain Model Overview

- **Flashcard**: Front/back content, optional media, tags and an embedded `SRSState`.
- **FlashcardInteraction**: Append-only audit entry written for every review. It records the
  state before and after the transition and is never read back for scheduling.
- **FlashcardStatistics**: Aggregate view over a user's cards.

## Lifecycle

`ACTIVE` cards are studied. `SUSPENDED` cards keep their state but never show as due.
`ARCHIVED` cards are hidden from listings unless asked for.

## Usage Examples

```python
card = await flashcard_service.create_flashcard(
    "user_1", FlashcardCreateRequest(deck_id="deck_bio", front_content="ATP?", back_content="Energy")
)
card, interaction = await flashcard_service.record_interaction("user_1", card.id, 4)
```
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from study_srs.models.srs_models import SRSState, SRSStatus

# Fields a caller may change through update_flashcard().
FLASHCARD_CONTENT_FIELDS = frozenset(
    {
        "front_content",
        "back_content",
        "tags",
        "personal_notes",
        "front_image",
        "back_image",
        "front_audio",
        "back_audio",
        "deck_id",
    }
)

# Fields owned by the scheduler.
FLASHCARD_SRS_FIELDS = frozenset(
    {
        "srs",
        "ease_factor",
        "interval_days",
        "repetitions",
        "lapses",
        "status",
        "last_reviewed_at",
        "next_review_at",
        "version",
    }
)


class FlashcardLifecycleStatus(str, Enum):
    """Whether a card takes part in study sessions."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    ARCHIVED = "ARCHIVED"


def _normalize_tags(tags: List[str]) -> List[str]:
    seen = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class Flashcard(BaseModel):
    """
    A user's flashcard with embedded scheduling state.

    A new card starts with `interval_days=0` and is due immediately.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(..., alias="_id")
    user_id: str
    deck_id: str
    front_content: str = Field(..., min_length=1, max_length=5000)
    back_content: str = Field(..., min_length=1, max_length=5000)
    tags: List[str] = Field(default_factory=list)
    personal_notes: Optional[str] = Field(default=None, max_length=5000)
    front_image: Optional[str] = None
    back_image: Optional[str] = None
    front_audio: Optional[str] = None
    back_audio: Optional[str] = None
    lifecycle_status: FlashcardLifecycleStatus = FlashcardLifecycleStatus.ACTIVE
    srs: SRSState
    version: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    def to_document(self):
        return self.model_dump(by_alias=True)


class FlashcardCreateRequest(BaseModel):
    """Payload for creating a flashcard."""

    deck_id: str = Field(..., min_length=1)
    front_content: str = Field(..., min_length=1, max_length=5000)
    back_content: str = Field(..., min_length=1, max_length=5000)
    tags: List[str] = Field(default_factory=list)
    personal_notes: Optional[str] = Field(default=None, max_length=5000)
    front_image: Optional[str] = None
    back_image: Optional[str] = None
    front_audio: Optional[str] = None
    back_audio: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        return _normalize_tags(v)


class FlashcardUpdateRequest(BaseModel):
    """
    Partial update of a flashcard's content.

    Only fields explicitly set are applied. Scheduling fields are not part of this model;
    `FlashcardService.update_flashcard()` also rejects raw dicts that name them.
    """

    model_config = ConfigDict(extra="forbid")

    deck_id: Optional[str] = Field(default=None, min_length=1)
    front_content: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    back_content: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    tags: Optional[List[str]] = None
    personal_notes: Optional[str] = Field(default=None, max_length=5000)
    front_image: Optional[str] = None
    back_image: Optional[str] = None
    front_audio: Optional[str] = None
    back_audio: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return _normalize_tags(v)


class FlashcardInteraction(BaseModel):
    """Audit entry for one flashcard review."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(..., alias="_id")
    user_id: str
    flashcard_id: str
    deck_id: str
    quality: int = Field(..., ge=0, le=5)
    reviewed_at: datetime

    previous_interval_days: int
    previous_ease_factor: float
    previous_repetitions: int
    previous_lapses: int
    previous_status: SRSStatus

    new_interval_days: int
    new_ease_factor: float
    new_repetitions: int
    new_lapses: int
    new_status: SRSStatus
    next_review_at: datetime

    def to_document(self):
        return self.model_dump(by_alias=True)


class FlashcardPage(BaseModel):
    items: List[Flashcard] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    has_more: bool = False


class FlashcardStatistics(BaseModel):
    """
    Aggregate over a user's flashcards, optionally restricted to one deck.

    Averages are taken over active cards; archived and suspended cards only count toward
    `total` and their lifecycle bucket.
    """

    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_lifecycle: Dict[str, int] = Field(default_factory=dict)
    due_count: int = 0
    total_lapses: int = 0
    average_ease_factor: Optional[float] = None
    average_interval_days: Optional[float] = None
    next_review_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
