"""
# Review Record Service

This module owns the **Review Record Store**: creation on first exposure, lookups by id and by
content key, review recording and deletion.

## Concurrency Model

Reviews are read-modify-write. Two requests reviewing the same record at once would otherwise
both read version N and the second write would silently discard the first. Every write here is
conditional on the version that was read:

```
find_one(_id) ──▶ transition() ──▶ update_one({_id, version: N}, {$set ..., $inc: {version: 1}})
      ▲                                              │
      └──────────── matched_count == 0 ◀─────────────┘  (reload and reapply, bounded)
```

After `SRS_CAS_MAX_ATTEMPTS` lost races the service raises `ConcurrentUpdateError`.

## Identity

Record ids come from `review_record_id_for()`, so a duplicate create for the same
`(user_id, content_id, content_type)` fails on `_id` in the store even when both writers
passed the lookup. Both paths surface as `AlreadyExistsError`.

## Usage Examples

```python
record = await review_record_service.create("user_1", "q_42", ContentType.QUESTION)
record = await review_record_service.record_review(record.id, 4)
```
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pymongo.errors import DuplicateKeyError, PyMongoError

from study_srs.config import settings
from study_srs.database import db_manager
from study_srs.managers.logging_manager import get_logger
from study_srs.models.review_models import (
    ContentType,
    DueCursor,
    ReviewRecord,
    ReviewRecordPage,
    review_record_id_for,
)
from study_srs.models.srs_models import ReviewQuality, SRSPolicy, SRSState, SRSStatus
from study_srs.services.exceptions import (
    AlreadyExistsError,
    ConcurrentUpdateError,
    InvalidStateError,
    NotFoundError,
)
from study_srs.services.repetition import REVIEW_RECORD_POLICY, initial_state, transition

logger = get_logger(prefix="[ReviewRecordService]")

DUE_SORT = [("srs.next_review_at", 1), ("_id", 1)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def version_filter(document: Dict[str, Any]) -> Dict[str, Any]:
    """Filter matching the version a document was read at. Legacy documents have no version."""
    if "version" in document:
        return {"version": document["version"]}
    return {"version": {"$exists": False}}


def after_key_filter(next_review_at: datetime, record_id: str) -> Dict[str, Any]:
    """Keyset filter for documents strictly after `(next_review_at, record_id)`."""
    return {
        "$or": [
            {"srs.next_review_at": {"$gt": next_review_at}},
            {"srs.next_review_at": next_review_at, "_id": {"$gt": record_id}},
        ]
    }


class ReviewRecordService:
    """
    CRUD and review recording for generic review records.

    Attributes:
        collection_name (str): Backing collection (`review_records` by default).
        policy (SRSPolicy): Policy passed to the transition function.
        max_attempts (int): Conditional-write attempts per review.
    """

    def __init__(self, policy: SRSPolicy = REVIEW_RECORD_POLICY, max_attempts: Optional[int] = None):
        self.collection_name = settings.REVIEW_RECORDS_COLLECTION
        self.policy = policy
        self.max_attempts = max_attempts or settings.SRS_CAS_MAX_ATTEMPTS

    def _collection(self):
        return db_manager.get_collection(self.collection_name)

    async def create(
        self,
        user_id: str,
        content_id: str,
        content_type: str,
        deck_id: Optional[str] = None,
        initial_state: Optional[SRSState] = None,
        original_answer_correct: Optional[bool] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReviewRecord:
        """
        Create the review record for a content key.

        The default state is ease 2.5, interval 1, no repetitions, LEARNING, due one day after
        creation.

        Raises:
            AlreadyExistsError: A record for the key already exists.
            InvalidStateError: `initial_state` has an ease factor below the policy floor.
            ValueError: `content_type` is not a known `ContentType`.
        """
        content_type = ContentType(content_type).value
        if initial_state is not None and initial_state.ease_factor < self.policy.min_ease_factor:
            raise InvalidStateError(
                f"ease factor {initial_state.ease_factor} is below the floor {self.policy.min_ease_factor}"
            )
        existing = await self.get_by_content_key(user_id, content_id, content_type)
        if existing is not None:
            raise AlreadyExistsError(user_id, content_id, content_type, existing_id=existing.id)

        now = now or utc_now()
        record = ReviewRecord(
            id=review_record_id_for(user_id, content_id, content_type),
            user_id=user_id,
            content_id=content_id,
            content_type=content_type,
            deck_id=deck_id,
            srs=initial_state or _default_state(now, self.policy),
            original_answer_correct=original_answer_correct,
            notes=notes,
            version=0,
            created_at=now,
            updated_at=now,
        )

        try:
            await self._collection().insert_one(record.to_document())
        except DuplicateKeyError as e:
            logger.info(f"Concurrent create for {content_type}:{content_id} (user {user_id}) lost the race")
            raise AlreadyExistsError(user_id, content_id, content_type, existing_id=record.id) from e
        except PyMongoError as e:
            logger.error(f"Failed to create review record {record.id}: {e}", exc_info=True)
            raise

        logger.info(f"Created review record {record.id} for {content_type}:{content_id} (user {user_id})")
        return record

    async def get_by_id(self, record_id: str) -> Optional[ReviewRecord]:
        document = await self._collection().find_one({"_id": record_id})
        return ReviewRecord(**document) if document else None

    async def get_by_content_key(self, user_id: str, content_id: str, content_type: str) -> Optional[ReviewRecord]:
        """Record for `(user_id, content_id, content_type)`, or `None`."""
        document = await self._collection().find_one(
            {"user_id": user_id, "content_id": content_id, "content_type": ContentType(content_type).value}
        )
        return ReviewRecord(**document) if document else None

    async def get_or_create(
        self,
        user_id: str,
        content_id: str,
        content_type: str,
        **create_kwargs: Any,
    ) -> Tuple[ReviewRecord, bool]:
        """
        Return the record for a content key, creating it when absent.

        Returns:
            Tuple[ReviewRecord, bool]: The record and whether this call created it.
        """
        existing = await self.get_by_content_key(user_id, content_id, content_type)
        if existing is not None:
            return existing, False
        try:
            return await self.create(user_id, content_id, content_type, **create_kwargs), True
        except AlreadyExistsError as e:
            record = await self.get_by_id(e.existing_id) if e.existing_id else None
            if record is None:
                record = await self.get_by_content_key(user_id, content_id, content_type)
            if record is None:
                raise
            return record, False

    async def record_review(
        self,
        record_id: str,
        quality: Any,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReviewRecord:
        """
        Apply one review to a record and persist the new state.

        The quality is validated before any I/O. On a lost conditional write the record is
        reloaded and the review reapplied to the fresh state, so concurrent reviews all count.

        Args:
            record_id: Record to review.
            quality: Recall quality 0-5.
            notes: Replaces the record's notes when given.
            now: Review time; defaults to the current UTC time.

        Raises:
            InvalidQualityError: Quality outside 0-5.
            NotFoundError: No record with this id.
            ConcurrentUpdateError: Every conditional write lost.
        """
        rating = ReviewQuality.coerce(quality)
        collection = self._collection()

        for attempt in range(1, self.max_attempts + 1):
            document = await collection.find_one({"_id": record_id})
            if not document:
                raise NotFoundError("Review record", record_id)

            record = ReviewRecord(**document)
            reviewed_at = now or utc_now()
            new_state = transition(record.srs, rating, reviewed_at, self.policy)

            changes: Dict[str, Any] = {"srs": new_state.model_dump(), "updated_at": reviewed_at}
            if notes is not None:
                changes["notes"] = notes

            try:
                result = await collection.update_one(
                    {"_id": record_id, **version_filter(document)},
                    {"$set": changes, "$inc": {"version": 1}},
                )
            except PyMongoError as e:
                logger.error(f"Failed to persist review for record {record_id}: {e}", exc_info=True)
                raise

            if result.matched_count:
                logger.info(
                    f"Reviewed record {record_id} with quality {int(rating)}: "
                    f"{record.srs.status} -> {new_state.status}, interval {new_state.interval_days}d"
                )
                return record.model_copy(
                    update={
                        "srs": new_state,
                        "notes": notes if notes is not None else record.notes,
                        "version": record.version + 1,
                        "updated_at": reviewed_at,
                    }
                )

            logger.warning(f"Record {record_id} changed during review (attempt {attempt}/{self.max_attempts})")

        raise ConcurrentUpdateError("Review record", record_id, self.max_attempts)

    async def delete(self, record_id: str) -> bool:
        """Delete a record by id. Returns `False` when nothing was deleted."""
        try:
            result = await self._collection().delete_one({"_id": record_id})
        except PyMongoError as e:
            logger.error(f"Failed to delete review record {record_id}: {e}", exc_info=True)
            raise
        if result.deleted_count:
            logger.info(f"Deleted review record {record_id}")
        return result.deleted_count > 0

    async def delete_by_content_key(self, user_id: str, content_id: str, content_type: str) -> bool:
        result = await self._collection().delete_one(
            {"user_id": user_id, "content_id": content_id, "content_type": ContentType(content_type).value}
        )
        return result.deleted_count > 0

    async def list_by_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        content_type: Optional[str] = None,
        deck_id: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ReviewRecordPage:
        """
        A user's records ordered by next review date, paged with an opaque cursor.

        Raises:
            InvalidCursorError: `cursor` was not produced by this listing.
        """
        limit = min(limit or settings.SRS_DUE_QUEUE_DEFAULT_LIMIT, settings.SRS_DUE_QUEUE_MAX_LIMIT)
        query: Dict[str, Any] = {"user_id": user_id}
        if status is not None:
            query["srs.status"] = SRSStatus(status).value
        if content_type is not None:
            query["content_type"] = ContentType(content_type).value
        if deck_id is not None:
            query["deck_id"] = deck_id
        if cursor:
            position = DueCursor.decode(cursor)
            query.update(after_key_filter(position.next_review_at, position.record_id))

        documents = await self._collection().find(query).sort(DUE_SORT).limit(limit + 1).to_list(length=limit + 1)
        records = [ReviewRecord(**doc) for doc in documents[:limit]]

        next_cursor = None
        if len(documents) > limit and records:
            last = records[-1]
            next_cursor = DueCursor(partition=1, next_review_at=last.srs.next_review_at, record_id=last.id).encode()
        return ReviewRecordPage(items=records, next_cursor=next_cursor)


def _default_state(now: datetime, policy: SRSPolicy) -> SRSState:
    return initial_state(now, policy, interval_days=1)


review_record_service = ReviewRecordService()
