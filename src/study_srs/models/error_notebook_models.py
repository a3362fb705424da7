"""
# Error Notebook Models

An error notebook collects questions a user got wrong. Each entry is linked 1:1 to a review
record (`content_type=ERROR_NOTEBOOK_ENTRY`, `content_id=<entry id>`) that schedules when the
mistake is revisited.

## Link Model

```
ErrorNotebookEntry ── review_record_id ──▶ ReviewRecord
        │                                      │
        └──────────── srs (mirror) ◀───────────┘
```

The link is written after the entry is inserted and may be missing or dangling when that step
failed. `ErrorNotebookService` repairs it on the next review (self-healing) or in bulk through
`repair_links()`. The `srs` field on the entry is a read-only mirror of the record's state,
refreshed after each scored review.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from study_srs.models.review_models import ReviewRecord
from study_srs.models.srs_models import SRSState

# Fields owned by the link adapter.
ENTRY_MANAGED_FIELDS = frozenset({"review_record_id", "srs", "user_id", "notebook_id", "question_id"})


class ErrorNotebookEntry(BaseModel):
    """A missed question kept for later review."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    notebook_id: str
    user_id: str
    question_id: str
    user_answer: Optional[str] = None
    error_description: Optional[str] = Field(default=None, max_length=5000)
    error_category: Optional[str] = None
    user_notes: Optional[str] = Field(default=None, max_length=5000)
    tags: List[str] = Field(default_factory=list)
    is_resolved: bool = False
    review_record_id: Optional[str] = None
    srs: Optional[SRSState] = None
    created_at: datetime
    updated_at: datetime

    def to_document(self):
        return self.model_dump(by_alias=True)


class ErrorNotebookEntryCreateRequest(BaseModel):
    notebook_id: str = Field(..., min_length=1)
    question_id: str = Field(..., min_length=1)
    user_answer: Optional[str] = None
    error_description: Optional[str] = Field(default=None, max_length=5000)
    error_category: Optional[str] = None
    user_notes: Optional[str] = Field(default=None, max_length=5000)
    tags: List[str] = Field(default_factory=list)
    original_answer_correct: Optional[bool] = False


class ErrorNotebookEntryUpdateRequest(BaseModel):
    """Partial update; only explicitly set fields are applied."""

    model_config = ConfigDict(extra="forbid")

    user_answer: Optional[str] = None
    error_description: Optional[str] = Field(default=None, max_length=5000)
    error_category: Optional[str] = None
    user_notes: Optional[str] = Field(default=None, max_length=5000)
    tags: Optional[List[str]] = None
    is_resolved: Optional[bool] = None


class EntryReviewResult(BaseModel):
    """
    Outcome of reviewing an error-notebook entry.

    `scored` is `False` when the entry could not be linked to a review record; in that case
    `review_record` is `None` and no scheduling state changed.
    """

    entry: ErrorNotebookEntry
    review_record: Optional[ReviewRecord] = None
    scored: bool = True
    repaired: bool = False


class LinkRepairReport(BaseModel):
    """Counters returned by `ErrorNotebookService.repair_links()`."""

    scanned: int = 0
    already_linked: int = 0
    relinked: int = 0
    created: int = 0
    written: int = 0
