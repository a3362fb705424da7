"""
# Due Queue Service

Builds the list of review records a user should study now.

## Ordering

1. **Base set**: the user's records in LEARNING or REVIEWING with `next_review_at <= now`,
   optionally filtered by content type and deck, ordered by `next_review_at` then record id.
2. **Weak-topic priority** (default on): the user's weakest topics are resolved to question
   ids. Due QUESTION records for those ids form partition 0; everything else is partition 1.
   Each partition keeps the base order.

```
[ weak-topic questions (partition 0) ][ everything else (partition 1) ]
  next_review_at asc, id asc             next_review_at asc, id asc
```

## Pagination

Pages are cut on the composite key `(partition, next_review_at, id)`. The cursor carries the
last key served and the next page starts strictly after it, so walking forward never skips or
repeats an item while the weak-topic set is stable.

Known limitation: the cursor does not remember which ids were prioritized. If the weak-topic
set changes between pages, an item can move between partitions and be served twice or be
skipped. A partition-0 cursor followed by an empty weak-topic set restarts partition 1 from
its start, so the weak-topic items already shown come back.

## Degradation

No statistics, no matching questions, or a failing collaborator all fall back to the base
ordering. Collaborator failures are logged and never fail the request.

## Usage Example

```python
page = await due_queue_service.due_reviews("user_1", DueQueueOptions(limit=20))
while page.next_cursor:
    page = await due_queue_service.due_reviews("user_1", DueQueueOptions(limit=20, cursor=page.next_cursor))
```
"""

from typing import Any, Dict, List, Optional, Tuple

from study_srs.config import settings
from study_srs.database import db_manager
from study_srs.managers.logging_manager import get_logger
from study_srs.models.review_models import ContentType, DueCursor, DueQueueOptions, DueQueuePage, ReviewRecord
from study_srs.models.srs_models import DUE_STATUSES
from study_srs.services.performance_service import (
    QuestionContentLookup,
    UserPerformanceStore,
    question_content_lookup,
    user_performance_store,
)
from study_srs.services.review_record_service import DUE_SORT, after_key_filter, utc_now

logger = get_logger(prefix="[DueQueueService]")

PRIORITY_PARTITION = 0
BASE_PARTITION = 1


class DueQueueService:
    """
    Due review records for a user, weak topics first.

    Attributes:
        performance (UserPerformanceStore): Source of the weakest-topic ranking.
        content_lookup (QuestionContentLookup): Resolves topics to question ids.
    """

    def __init__(
        self,
        performance: Optional[UserPerformanceStore] = None,
        content_lookup: Optional[QuestionContentLookup] = None,
    ):
        self.collection_name = settings.REVIEW_RECORDS_COLLECTION
        self.performance = performance or user_performance_store
        self.content_lookup = content_lookup or question_content_lookup

    async def _priority_content_ids(self, user_id: str) -> List[str]:
        """Question ids in the user's weakest topics; empty on missing data or failure."""
        try:
            topic_ids = await self.performance.get_weakest_topics(user_id)
            if not topic_ids:
                return []
            content_ids = await self.content_lookup.find_content_ids_by_topics(
                topic_ids, ContentType.QUESTION.value
            )
        except Exception as e:
            logger.warning(f"Weak-topic lookup failed for user {user_id}, using base order: {e}", exc_info=True)
            return []

        logger.debug(f"User {user_id}: {len(content_ids)} questions in weakest topics {topic_ids}")
        return content_ids

    async def due_reviews(self, user_id: str, options: Optional[DueQueueOptions] = None) -> DueQueuePage:
        """
        One page of the user's due review records.

        Args:
            user_id: Owner of the records.
            options: Filters, page size, cursor and whether to prioritize weak topics.

        Returns:
            DueQueuePage: Items in queue order and the cursor of the next page.

        Raises:
            InvalidCursorError: `options.cursor` cannot be decoded.
        """
        options = options or DueQueueOptions()
        now = options.now or utc_now()
        limit = min(options.limit or settings.SRS_DUE_QUEUE_DEFAULT_LIMIT, settings.SRS_DUE_QUEUE_MAX_LIMIT)
        position = DueCursor.decode(options.cursor) if options.cursor else None

        base: Dict[str, Any] = {
            "user_id": user_id,
            "srs.status": {"$in": [status.value for status in DUE_STATUSES]},
            "srs.next_review_at": {"$lte": now},
        }
        if options.content_type is not None:
            base["content_type"] = ContentType(options.content_type).value
        if options.deck_id is not None:
            base["deck_id"] = options.deck_id

        priority_ids: List[str] = []
        if options.prioritize and options.content_type in (None, ContentType.QUESTION, ContentType.QUESTION.value):
            priority_ids = await self._priority_content_ids(user_id)

        partitions: List[Tuple[int, Dict[str, Any]]] = []
        if priority_ids:
            weak = {"content_type": ContentType.QUESTION.value, "content_id": {"$in": priority_ids}}
            others = {
                "$or": [
                    {"content_type": {"$ne": ContentType.QUESTION.value}},
                    {"content_id": {"$nin": priority_ids}},
                ]
            }
            partitions.append((PRIORITY_PARTITION, weak))
            partitions.append((BASE_PARTITION, others))
        else:
            partitions.append((BASE_PARTITION, {}))

        collection = db_manager.get_collection(self.collection_name)
        fetched: List[Tuple[int, ReviewRecord]] = []
        for partition, partition_filter in partitions:
            if position is not None and partition < position.partition:
                continue
            remaining = limit + 1 - len(fetched)
            if remaining <= 0:
                break

            clauses = [base, partition_filter]
            if position is not None and partition == position.partition:
                clauses.append(after_key_filter(position.next_review_at, position.record_id))
            query = {"$and": [clause for clause in clauses if clause]}

            documents = await collection.find(query).sort(DUE_SORT).limit(remaining).to_list(length=remaining)
            fetched.extend((partition, ReviewRecord(**doc)) for doc in documents)

        page = fetched[:limit]
        next_cursor = None
        if len(fetched) > limit and page:
            last_partition, last = page[-1]
            next_cursor = DueCursor(
                partition=last_partition, next_review_at=last.srs.next_review_at, record_id=last.id
            ).encode()

        prioritized_count = sum(1 for partition, _ in page if partition == PRIORITY_PARTITION)
        logger.info(
            f"Due queue for user {user_id}: {len(page)} items ({prioritized_count} weak-topic), "
            f"more: {next_cursor is not None}"
        )
        return DueQueuePage(
            items=[record for _, record in page],
            next_cursor=next_cursor,
            prioritized_count=prioritized_count,
        )


due_queue_service = DueQueueService()
