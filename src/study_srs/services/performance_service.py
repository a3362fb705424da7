"""
# Performance Collaborators

Read-only adapters the due queue uses to find a user's weakest topics and the questions that
belong to them. Neither adapter writes anything.

## Components

- **`rank_weakest_topics()`**: Pure ranking of per-topic accuracy.
- **`UserPerformanceStore`**: Reads the `user_statistics` document of a user.
- **`QuestionContentLookup`**: Resolves topic ids to question ids.

## Stored Shape

```json
{
  "user_id": "user_1",
  "weakest_topics": ["topic_b", "topic_a"],
  "accuracy_per_topic": {"topic_a": {"correct": 3, "total": 10}}
}
```

`weakest_topics`, when present, is used as-is (it is maintained by the statistics job).
Otherwise the ranking is derived from `accuracy_per_topic`.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from study_srs.config import settings
from study_srs.database import db_manager
from study_srs.managers.logging_manager import get_logger
from study_srs.models.review_models import ContentType

logger = get_logger(prefix="[PerformanceService]")


def rank_weakest_topics(
    accuracy: Mapping[str, Mapping[str, Any]],
    limit: int,
    min_answers: int = 1,
) -> List[str]:
    """
    Rank topics from lowest to highest accuracy.

    Topics with fewer than `min_answers` answers are ignored. Ties are broken by topic id so
    the ranking is stable.

    Args:
        accuracy: `topic_id -> {"correct": int, "total": int}`.
        limit: Maximum number of topics returned.
        min_answers: Minimum `total` for a topic to be ranked.
    """
    scored = []
    for topic_id, counts in accuracy.items():
        if not isinstance(counts, Mapping):
            continue
        total = counts.get("total") or 0
        if total < max(1, min_answers):
            continue
        correct = counts.get("correct") or 0
        scored.append((correct / total, topic_id))
    scored.sort()
    return [topic_id for _, topic_id in scored[: max(0, limit)]]


class UserPerformanceStore:
    """Weak-topic lookup over the `user_statistics` collection."""

    def __init__(self, limit: Optional[int] = None, min_answers: Optional[int] = None):
        self.collection_name = settings.USER_STATISTICS_COLLECTION
        self.limit = limit if limit is not None else settings.SRS_WEAK_TOPICS_LIMIT
        self.min_answers = min_answers if min_answers is not None else settings.SRS_WEAK_TOPIC_MIN_ANSWERS

    async def get_weakest_topics(self, user_id: str) -> List[str]:
        """Weakest topic ids for the user, weakest first. Empty when there is no data."""
        collection = db_manager.get_collection(self.collection_name)
        stats: Optional[Dict[str, Any]] = await collection.find_one(
            {"user_id": user_id}, {"weakest_topics": 1, "accuracy_per_topic": 1}
        )
        if not stats:
            logger.debug(f"No statistics for user {user_id}")
            return []

        stored = stats.get("weakest_topics")
        if stored:
            return [str(topic_id) for topic_id in stored][: self.limit]

        return rank_weakest_topics(stats.get("accuracy_per_topic") or {}, self.limit, self.min_answers)


class QuestionContentLookup:
    """Maps topic ids to question ids through the `questions` collection."""

    def __init__(self):
        self.collection_name = settings.QUESTIONS_COLLECTION

    async def find_content_ids_by_topics(self, topic_ids: Sequence[str], content_type: str) -> List[str]:
        """
        Ids of content of `content_type` tagged with any of `topic_ids`.

        Only questions are tagged with topics; every other content type resolves to an
        empty list.
        """
        if not topic_ids or ContentType(content_type) != ContentType.QUESTION:
            return []

        collection = db_manager.get_collection(self.collection_name)
        cursor = collection.find({"topic_ids": {"$in": list(topic_ids)}}, {"_id": 1})
        documents = await cursor.to_list(length=None)
        return [str(doc["_id"]) for doc in documents]


user_performance_store = UserPerformanceStore()
question_content_lookup = QuestionContentLookup()
