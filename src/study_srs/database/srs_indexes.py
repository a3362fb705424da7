"""
# SRS Collection Indexes

Index definitions for the collections the scheduling engine reads and writes.

## Index Strategy

### 1. Due Queue
The due-queue query filters on `user_id`, `srs.status` and `srs.next_review_at` and orders by
`srs.next_review_at` then `_id`. The compound index follows that shape so pages are served
straight from the index.

### 2. Content Key Uniqueness
`(user_id, content_type, content_id)` is **unique** on `review_records`. Record ids are already
derived from this key, so the index is a second line against duplicate records and makes
`get_by_content_key()` an index lookup.

### 3. Flashcards & History
Flashcards are listed by owner/deck and due date; interaction logs by card and time.

## Module Attributes

Attributes:
    SRS_INDEXES (List[Dict]): Configuration list defining all required indexes.
    logger (Logger): Specialized logger for index operations (`[SRSIndexes]`).
"""

from typing import Any, Dict, List

from pymongo.errors import PyMongoError

from study_srs.config import settings
from study_srs.database import db_manager
from study_srs.managers.logging_manager import get_logger

logger = get_logger(prefix="[SRSIndexes]")

SRS_INDEXES: List[Dict[str, Any]] = [
    # Review records
    {
        "collection": settings.REVIEW_RECORDS_COLLECTION,
        "index": [("user_id", 1), ("srs.status", 1), ("srs.next_review_at", 1), ("_id", 1)],
        "options": {"name": "user_status_due_idx"},
    },
    {
        "collection": settings.REVIEW_RECORDS_COLLECTION,
        "index": [("user_id", 1), ("content_type", 1), ("content_id", 1)],
        "options": {"name": "user_content_key_idx", "unique": True},
    },
    {
        "collection": settings.REVIEW_RECORDS_COLLECTION,
        "index": [("user_id", 1), ("deck_id", 1), ("srs.next_review_at", 1)],
        "options": {"name": "user_deck_due_idx"},
    },
    # Flashcards
    {
        "collection": settings.FLASHCARDS_COLLECTION,
        "index": [("user_id", 1), ("deck_id", 1), ("srs.next_review_at", 1)],
        "options": {"name": "flashcard_user_deck_due_idx"},
    },
    {
        "collection": settings.FLASHCARDS_COLLECTION,
        "index": [("user_id", 1), ("tags", 1)],
        "options": {"name": "flashcard_user_tags_idx"},
    },
    # Interaction log
    {
        "collection": settings.FLASHCARD_INTERACTIONS_COLLECTION,
        "index": [("user_id", 1), ("flashcard_id", 1), ("reviewed_at", -1)],
        "options": {"name": "interaction_card_time_idx"},
    },
    # Error notebook entries
    {
        "collection": settings.ERROR_NOTEBOOK_ENTRIES_COLLECTION,
        "index": [("notebook_id", 1), ("created_at", -1)],
        "options": {"name": "entry_notebook_created_idx"},
    },
    {
        "collection": settings.ERROR_NOTEBOOK_ENTRIES_COLLECTION,
        "index": [("user_id", 1), ("review_record_id", 1)],
        "options": {"name": "entry_user_link_idx"},
    },
    # Content lookup
    {
        "collection": settings.QUESTIONS_COLLECTION,
        "index": [("topic_ids", 1)],
        "options": {"name": "question_topics_idx"},
    },
]


async def create_srs_indexes() -> int:
    """
    Create all indexes listed in `SRS_INDEXES`.

    Idempotent: existing indexes are left alone. A failure on one index is logged as a warning
    and does not stop the others.

    Returns:
        int: Number of index specs applied successfully.
    """
    logger.info("Creating SRS indexes...")

    created_count = 0
    for index_spec in SRS_INDEXES:
        collection_name = index_spec["collection"]
        options = index_spec.get("options", {})
        try:
            collection = db_manager.get_collection(collection_name)
            await collection.create_index(index_spec["index"], **options)
            created_count += 1
            logger.debug("Created index %s on collection %s", options.get("name", "unnamed"), collection_name)
        except PyMongoError as e:
            logger.warning(
                "Failed to create index %s on collection %s: %s", options.get("name", "unnamed"), collection_name, e
            )

    logger.info("SRS index creation completed: %d/%d indexes created", created_count, len(SRS_INDEXES))
    return created_count
