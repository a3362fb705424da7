"""
# Error Notebook Service

This module keeps **error-notebook entries** and their **review records** linked. Each entry
is scheduled through a generic review record with `content_type=ERROR_NOTEBOOK_ENTRY` and
`content_id=<entry id>`.

## Linking Saga

Adding an entry touches three documents, and no transaction spans them:

1. Insert the entry (must succeed).
2. Bump `entry_count` on the notebook.
3. Create the review record and write `review_record_id` back onto the entry.

A failure in step 2 or 3 is logged and the entry is returned unlinked. Because record ids
are derived from the content key, the link can always be recomputed:

- **On review**: `record_entry_review()` finds or creates the record, persists the repaired
  link and then scores the review.
- **In bulk**: `repair_links()` scans entries and fixes every missing or dangling link with
  chunked unordered `bulk_write` calls.

A recreated record starts from the state mirrored on the entry, so progress survives the loss
of its record.

If the repair itself fails the review is returned **unscored** and no scheduling state changes.

## Usage Examples

```python
entry = await error_notebook_service.add_entry(user_id, ErrorNotebookEntryCreateRequest(...))
result = await error_notebook_service.record_entry_review(entry.id, user_id, quality=2)
if not result.scored:
    ...  # link could not be repaired; try again later
```
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from pymongo import UpdateOne
from pymongo.errors import PyMongoError

from study_srs.config import settings
from study_srs.database import db_manager
from study_srs.managers.logging_manager import get_logger
from study_srs.models.error_notebook_models import (
    ENTRY_MANAGED_FIELDS,
    EntryReviewResult,
    ErrorNotebookEntry,
    ErrorNotebookEntryCreateRequest,
    ErrorNotebookEntryUpdateRequest,
    LinkRepairReport,
)
from study_srs.models.review_models import ContentType, ReviewRecord, review_record_id_for
from study_srs.models.srs_models import ReviewQuality, SRSState
from study_srs.services.exceptions import (
    ImmutableFieldError,
    LinkRepairError,
    NotFoundError,
    PartialBatchFailureError,
    SRSError,
)
from study_srs.services.repetition import initial_state
from study_srs.services.review_record_service import ReviewRecordService, review_record_service, utc_now

logger = get_logger(prefix="[ErrorNotebookService]")

ENTRY_CONTENT_TYPE = ContentType.ERROR_NOTEBOOK_ENTRY.value


class ErrorNotebookService:
    """
    Entries of a user's error notebooks and their link to the review-record store.

    Attributes:
        records (ReviewRecordService): Store used to create, look up and review records.
        batch_size (int): Writes per `bulk_write` call in `repair_links()`.
    """

    def __init__(self, records: Optional[ReviewRecordService] = None, batch_size: Optional[int] = None):
        self.entries_collection = settings.ERROR_NOTEBOOK_ENTRIES_COLLECTION
        self.notebooks_collection = settings.ERROR_NOTEBOOKS_COLLECTION
        self.records = records or review_record_service
        self.batch_size = batch_size or settings.SRS_BATCH_WRITE_SIZE

    async def _get_owned_document(self, entry_id: str, user_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.entries_collection)
        document = await collection.find_one({"_id": entry_id})
        if not document or document.get("user_id") != user_id:
            raise NotFoundError("Error notebook entry", entry_id)
        return document

    # --- Entries ---

    async def add_entry(
        self, user_id: str, request: ErrorNotebookEntryCreateRequest, now: Optional[datetime] = None
    ) -> ErrorNotebookEntry:
        """
        Insert an entry, count it on its notebook and link it to a new review record.

        Only the insert is required to succeed. Counter and link failures are logged and the
        entry is returned without `review_record_id`; the link is repaired on first review.
        """
        now = now or utc_now()
        entry = ErrorNotebookEntry(
            id=f"ene_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            **request.model_dump(exclude={"original_answer_correct"}),
            created_at=now,
            updated_at=now,
        )

        entries = db_manager.get_collection(self.entries_collection)
        try:
            await entries.insert_one(entry.to_document())
        except PyMongoError as e:
            logger.error(f"Failed to insert error notebook entry for user {user_id}: {e}", exc_info=True)
            raise

        try:
            notebooks = db_manager.get_collection(self.notebooks_collection)
            await notebooks.update_one(
                {"_id": entry.notebook_id, "user_id": user_id},
                {"$inc": {"entry_count": 1}, "$set": {"updated_at": now}},
            )
        except PyMongoError as e:
            logger.warning(f"Could not update entry count of notebook {entry.notebook_id}: {e}")

        try:
            record, _ = await self.records.get_or_create(
                user_id,
                entry.id,
                ENTRY_CONTENT_TYPE,
                original_answer_correct=request.original_answer_correct,
                now=now,
            )
            await entries.update_one(
                {"_id": entry.id},
                {"$set": {"review_record_id": record.id, "srs": record.srs.model_dump()}},
            )
        except (SRSError, PyMongoError) as e:
            logger.warning(f"Entry {entry.id} saved without a review record link, will self-heal: {e}")
            return entry

        logger.info(f"Added entry {entry.id} to notebook {entry.notebook_id} linked to record {record.id}")
        return entry.model_copy(update={"review_record_id": record.id, "srs": record.srs})

    async def get_entry(self, entry_id: str, user_id: str) -> ErrorNotebookEntry:
        return ErrorNotebookEntry(**await self._get_owned_document(entry_id, user_id))

    async def list_entries(
        self,
        user_id: str,
        notebook_id: str,
        is_resolved: Optional[bool] = None,
        page: int = 1,
        limit: int = 20,
    ) -> List[ErrorNotebookEntry]:
        """Entries of one notebook, newest first."""
        page = max(1, page)
        limit = max(1, min(limit, settings.SRS_DUE_QUEUE_MAX_LIMIT))
        query: Dict[str, Any] = {"user_id": user_id, "notebook_id": notebook_id}
        if is_resolved is not None:
            query["is_resolved"] = is_resolved

        collection = db_manager.get_collection(self.entries_collection)
        cursor = collection.find(query).sort([("created_at", -1), ("_id", 1)]).skip((page - 1) * limit).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [ErrorNotebookEntry(**doc) for doc in documents]

    async def update_entry(
        self,
        entry_id: str,
        user_id: str,
        updates: Union[ErrorNotebookEntryUpdateRequest, Mapping[str, Any]],
    ) -> ErrorNotebookEntry:
        """
        Update an entry's user-editable fields.

        Raises:
            ImmutableFieldError: The payload names link or SRS fields.
            NotFoundError: Missing, or owned by another user.
        """
        if not isinstance(updates, ErrorNotebookEntryUpdateRequest):
            forbidden = ENTRY_MANAGED_FIELDS.intersection(updates.keys())
            if forbidden:
                raise ImmutableFieldError(forbidden)
            updates = ErrorNotebookEntryUpdateRequest(**updates)

        document = await self._get_owned_document(entry_id, user_id)
        changes = updates.model_dump(exclude_unset=True)
        if not changes:
            return ErrorNotebookEntry(**document)

        changes["updated_at"] = utc_now()
        collection = db_manager.get_collection(self.entries_collection)
        await collection.update_one({"_id": entry_id}, {"$set": changes})
        document.update(changes)
        return ErrorNotebookEntry(**document)

    async def remove_entry(self, entry_id: str, user_id: str) -> bool:
        """
        Delete an entry, decrement its notebook counter and delete its review record.

        The record deletion is best-effort: a failure is logged and the entry stays deleted.
        """
        document = await self._get_owned_document(entry_id, user_id)
        entries = db_manager.get_collection(self.entries_collection)
        result = await entries.delete_one({"_id": entry_id, "user_id": user_id})
        if not result.deleted_count:
            return False

        try:
            notebooks = db_manager.get_collection(self.notebooks_collection)
            await notebooks.update_one(
                {"_id": document["notebook_id"], "user_id": user_id, "entry_count": {"$gt": 0}},
                {"$inc": {"entry_count": -1}, "$set": {"updated_at": utc_now()}},
            )
        except PyMongoError as e:
            logger.warning(f"Could not update entry count of notebook {document['notebook_id']}: {e}")

        try:
            linked_id = document.get("review_record_id")
            if linked_id:
                await self.records.delete(linked_id)
            # Also covers an unlinked entry whose record was created later.
            await self.records.delete_by_content_key(user_id, entry_id, ENTRY_CONTENT_TYPE)
        except PyMongoError as e:
            logger.error(f"Entry {entry_id} deleted but its review record was left behind: {e}")

        logger.info(f"Removed entry {entry_id} from notebook {document['notebook_id']}")
        return True

    # --- Reviews ---

    def _mirrored_state(self, document: Mapping[str, Any]) -> Optional[SRSState]:
        """The entry's copy of its record's state, or `None` when absent or unusable."""
        mirror = document.get("srs")
        if not mirror:
            return None
        try:
            state = SRSState(**mirror)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable SRS mirror on entry {document['_id']}: {e}")
            return None
        if state.ease_factor < self.records.policy.min_ease_factor:
            logger.warning(f"Ignoring SRS mirror on entry {document['_id']} with ease {state.ease_factor}")
            return None
        return state

    async def _ensure_link(self, document: Dict[str, Any]) -> Tuple[ReviewRecord, bool]:
        """
        Return the entry's review record, repairing a missing or dangling link.

        Raises:
            LinkRepairError: No record could be found or created.
        """
        entry_id = document["_id"]
        user_id = document["user_id"]
        linked_id = document.get("review_record_id")

        try:
            if linked_id:
                record = await self.records.get_by_id(linked_id)
                if record is not None and record.user_id == user_id:
                    return record, False
                logger.warning(f"Entry {entry_id} points at missing record {linked_id}")

            record, created = await self.records.get_or_create(
                user_id, entry_id, ENTRY_CONTENT_TYPE, initial_state=self._mirrored_state(document)
            )
        except (SRSError, PyMongoError) as e:
            raise LinkRepairError(entry_id, str(e)) from e

        try:
            entries = db_manager.get_collection(self.entries_collection)
            await entries.update_one({"_id": entry_id}, {"$set": {"review_record_id": record.id}})
        except PyMongoError as e:
            logger.warning(f"Could not persist repaired link of entry {entry_id}: {e}")

        logger.info(f"Repaired link of entry {entry_id} to record {record.id} ({'created' if created else 'existing'})")
        return record, True

    async def record_entry_review(
        self,
        entry_id: str,
        user_id: str,
        quality: Any,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> EntryReviewResult:
        """
        Score a review of an error-notebook entry.

        The link to the review record is repaired first when missing or dangling. The
        record's new SRS state is mirrored onto the entry.

        Returns:
            EntryReviewResult: `scored=False` when the link could not be repaired.

        Raises:
            InvalidQualityError: Quality outside 0-5 (before any I/O).
            NotFoundError: Missing entry, or owned by another user.
        """
        rating = ReviewQuality.coerce(quality)
        document = await self._get_owned_document(entry_id, user_id)

        try:
            record, repaired = await self._ensure_link(document)
        except LinkRepairError as e:
            logger.warning(f"Review of entry {entry_id} left unscored: {e.reason}")
            return EntryReviewResult(entry=ErrorNotebookEntry(**document), review_record=None, scored=False)

        record = await self.records.record_review(record.id, rating, notes=notes, now=now)

        changes = {"review_record_id": record.id, "srs": record.srs.model_dump(), "updated_at": record.updated_at}
        try:
            entries = db_manager.get_collection(self.entries_collection)
            await entries.update_one({"_id": entry_id}, {"$set": changes})
        except PyMongoError as e:
            logger.warning(f"Could not mirror SRS state onto entry {entry_id}: {e}")

        document.update(changes)
        return EntryReviewResult(
            entry=ErrorNotebookEntry(**document), review_record=record, scored=True, repaired=repaired
        )

    # --- Maintenance ---

    async def repair_links(self, user_id: Optional[str] = None) -> LinkRepairReport:
        """
        Link every entry to its review record, creating missing records.

        Entries are processed in chunks of `batch_size`. Record upserts and link writes of a
        chunk go out as unordered `bulk_write` calls; chunks already written stay applied when
        a later one fails.

        Args:
            user_id: Restrict the scan to one user; `None` scans every entry.

        Raises:
            PartialBatchFailureError: A chunk failed; `processed` counts entries in the chunks
                that completed.
        """
        query: Dict[str, Any] = {"user_id": user_id} if user_id else {}
        entries = db_manager.get_collection(self.entries_collection)
        records = db_manager.get_collection(self.records.collection_name)

        documents = await entries.find(
            query, {"_id": 1, "user_id": 1, "review_record_id": 1, "srs": 1}
        ).to_list(length=None)
        total = len(documents)
        report = LinkRepairReport(scanned=total)
        logger.info(f"Repairing review record links for {total} entries (user: {user_id or 'all'})")

        processed = 0
        for start in range(0, total, self.batch_size):
            chunk = documents[start : start + self.batch_size]
            now = utc_now()

            wanted = {doc["_id"]: review_record_id_for(doc["user_id"], doc["_id"], ENTRY_CONTENT_TYPE) for doc in chunk}
            candidate_ids = set(wanted.values())
            candidate_ids.update(doc["review_record_id"] for doc in chunk if doc.get("review_record_id"))

            try:
                found = await records.find({"_id": {"$in": sorted(candidate_ids)}}, {"_id": 1}).to_list(length=None)
            except PyMongoError as e:
                raise PartialBatchFailureError("repair_links", processed, total, e) from e
            existing = {doc["_id"] for doc in found}

            record_ops = []
            link_ops = []
            for doc in chunk:
                if doc.get("review_record_id") in existing:
                    report.already_linked += 1
                    continue

                record_id = wanted[doc["_id"]]
                changes: Dict[str, Any] = {"review_record_id": record_id, "updated_at": now}
                if record_id in existing:
                    report.relinked += 1
                else:
                    mirrored = self._mirrored_state(doc)
                    record = ReviewRecord(
                        id=record_id,
                        user_id=doc["user_id"],
                        content_id=doc["_id"],
                        content_type=ENTRY_CONTENT_TYPE,
                        srs=mirrored or initial_state(now, self.records.policy),
                        created_at=now,
                        updated_at=now,
                    )
                    insert_fields = {k: v for k, v in record.to_document().items() if k != "_id"}
                    record_ops.append(UpdateOne({"_id": record_id}, {"$setOnInsert": insert_fields}, upsert=True))
                    if mirrored is None:
                        changes["srs"] = record.srs.model_dump()
                    report.created += 1
                link_ops.append(UpdateOne({"_id": doc["_id"]}, {"$set": changes}))

            try:
                if record_ops:
                    await records.bulk_write(record_ops, ordered=False)
                if link_ops:
                    await entries.bulk_write(link_ops, ordered=False)
            except PyMongoError as e:
                logger.error(f"Link repair chunk starting at {start} failed: {e}", exc_info=True)
                raise PartialBatchFailureError("repair_links", processed, total, e) from e

            report.written += len(record_ops) + len(link_ops)
            processed += len(chunk)
            logger.debug(f"Link repair progress: {processed}/{total}")

        logger.info(
            f"Link repair finished: {report.relinked} relinked, {report.created} created, "
            f"{report.already_linked} already linked"
        )
        return report


error_notebook_service = ErrorNotebookService()
