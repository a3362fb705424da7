"""
# Flashcard Service

This module manages **flashcards**, the one kind of reviewable item that keeps its SRS state
embedded instead of in a review record.

## Domain Overview

- **Cards**: Front/back content with optional media, grouped by deck and tagged.
- **Reviews**: `record_interaction()` runs the shared transition function under
  `FLASHCARD_POLICY`, writes the new state with a version-conditional update and appends an
  entry to the interaction log.
- **History**: The interaction log is an audit trail only; scheduling never reads it.

## Key Features

### 1. Ownership
Every operation takes the acting `user_id`. A card owned by someone else resolves exactly like a
missing card (`NotFoundError`), so ids of other users' cards are not confirmed.

### 2. Scheduler-Owned Fields
`update_flashcard()` edits content only. Payloads naming SRS fields raise
`ImmutableFieldError`; use `record_interaction()` or `reset_progress()` instead.

### 3. Lifecycle
`ACTIVE` cards are due when `next_review_at <= now`. `SUSPENDED` and `ARCHIVED` cards are never
due; archived cards are hidden from listings unless requested.

## Usage Examples

```python
card = await flashcard_service.create_flashcard(user_id, FlashcardCreateRequest(...))
card, interaction = await flashcard_service.record_interaction(user_id, card.id, 5)
stats = await flashcard_service.get_statistics(user_id, deck_id="deck_bio")
```
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pymongo.errors import PyMongoError

from study_srs.config import settings
from study_srs.database import db_manager
from study_srs.managers.logging_manager import get_logger
from study_srs.models.flashcard_models import (
    FLASHCARD_SRS_FIELDS,
    Flashcard,
    FlashcardCreateRequest,
    FlashcardInteraction,
    FlashcardLifecycleStatus,
    FlashcardPage,
    FlashcardStatistics,
    FlashcardUpdateRequest,
)
from study_srs.models.srs_models import ReviewQuality, SRSStatus
from study_srs.services.exceptions import ConcurrentUpdateError, ImmutableFieldError, NotFoundError
from study_srs.services.repetition import FLASHCARD_POLICY, initial_state, transition
from study_srs.services.review_record_service import utc_now, version_filter

logger = get_logger(prefix="[FlashcardService]")


class FlashcardService:
    """
    Service for flashcards, their reviews and their interaction history.
    """

    def __init__(self, max_attempts: Optional[int] = None, verify_decks: Optional[bool] = None):
        self.flashcards_collection = settings.FLASHCARDS_COLLECTION
        self.interactions_collection = settings.FLASHCARD_INTERACTIONS_COLLECTION
        self.decks_collection = settings.FLASHCARD_DECKS_COLLECTION
        self.policy = FLASHCARD_POLICY
        self.max_attempts = max_attempts or settings.SRS_CAS_MAX_ATTEMPTS
        self.verify_decks = settings.SRS_VERIFY_DECK_OWNERSHIP if verify_decks is None else verify_decks

    async def _check_deck(self, user_id: str, deck_id: str) -> None:
        """Raise `NotFoundError` when deck checks are on and the user owns no such deck."""
        if not self.verify_decks:
            return
        decks = db_manager.get_collection(self.decks_collection)
        if await decks.find_one({"_id": deck_id, "user_id": user_id}, {"_id": 1}) is None:
            raise NotFoundError("Deck", deck_id)

    # --- Cards ---

    async def create_flashcard(
        self, user_id: str, request: FlashcardCreateRequest, now: Optional[datetime] = None
    ) -> Flashcard:
        """
        Create a card. New cards start at interval 0 and are due immediately.

        Raises:
            NotFoundError: Deck checks are enabled and the deck is not the user's.
        """
        await self._check_deck(user_id, request.deck_id)
        now = now or utc_now()
        flashcard = Flashcard(
            id=f"fc_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            **request.model_dump(),
            lifecycle_status=FlashcardLifecycleStatus.ACTIVE,
            srs=initial_state(now, self.policy, interval_days=0),
            version=0,
            created_at=now,
            updated_at=now,
        )

        collection = db_manager.get_collection(self.flashcards_collection)
        try:
            await collection.insert_one(flashcard.to_document())
        except PyMongoError as e:
            logger.error(f"Failed to create flashcard for user {user_id}: {e}", exc_info=True)
            raise

        logger.info(f"Created flashcard {flashcard.id} in deck {flashcard.deck_id} for user {user_id}")
        return flashcard

    async def _get_owned_document(self, user_id: str, flashcard_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.flashcards_collection)
        document = await collection.find_one({"_id": flashcard_id})
        if not document or document.get("user_id") != user_id:
            raise NotFoundError("Flashcard", flashcard_id)
        return document

    async def get_flashcard(self, user_id: str, flashcard_id: str) -> Flashcard:
        """
        Raises:
            NotFoundError: Missing, or owned by another user.
        """
        return Flashcard(**await self._get_owned_document(user_id, flashcard_id))

    async def list_flashcards(
        self,
        user_id: str,
        deck_id: Optional[str] = None,
        due_only: bool = False,
        lifecycle_status: Optional[str] = None,
        tag: Optional[str] = None,
        include_archived: bool = False,
        page: int = 1,
        limit: int = 20,
        now: Optional[datetime] = None,
    ) -> FlashcardPage:
        """
        List a user's cards, soonest review first.

        Archived cards are skipped unless `include_archived` is set or `lifecycle_status`
        asks for them.
        """
        page = max(1, page)
        limit = max(1, min(limit, settings.SRS_DUE_QUEUE_MAX_LIMIT))

        query: Dict[str, Any] = {"user_id": user_id}
        if deck_id:
            query["deck_id"] = deck_id
        if lifecycle_status:
            query["lifecycle_status"] = FlashcardLifecycleStatus(lifecycle_status).value
        elif not include_archived:
            query["lifecycle_status"] = {"$ne": FlashcardLifecycleStatus.ARCHIVED.value}
        if due_only:
            query["srs.next_review_at"] = {"$lte": now or utc_now()}
        if tag:
            query["tags"] = tag.strip().lower()

        collection = db_manager.get_collection(self.flashcards_collection)
        total = await collection.count_documents(query)
        cursor = (
            collection.find(query)
            .sort([("srs.next_review_at", 1), ("created_at", -1)])
            .skip((page - 1) * limit)
            .limit(limit)
        )
        documents = await cursor.to_list(length=limit)

        return FlashcardPage(
            items=[Flashcard(**doc) for doc in documents],
            total=total,
            page=page,
            limit=limit,
            has_more=page * limit < total,
        )

    async def list_due_flashcards(
        self,
        user_id: str,
        deck_id: Optional[str] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Flashcard]:
        """Active cards due at `now`, oldest due date first."""
        limit = min(limit or settings.SRS_DUE_QUEUE_DEFAULT_LIMIT, settings.SRS_DUE_QUEUE_MAX_LIMIT)
        query: Dict[str, Any] = {
            "user_id": user_id,
            "lifecycle_status": FlashcardLifecycleStatus.ACTIVE.value,
            "srs.next_review_at": {"$lte": now or utc_now()},
        }
        if deck_id:
            query["deck_id"] = deck_id

        collection = db_manager.get_collection(self.flashcards_collection)
        cursor = collection.find(query).sort([("srs.next_review_at", 1), ("_id", 1)]).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [Flashcard(**doc) for doc in documents]

    async def update_flashcard(
        self,
        user_id: str,
        flashcard_id: str,
        updates: Union[FlashcardUpdateRequest, Mapping[str, Any]],
    ) -> Flashcard:
        """
        Update a card's content fields.

        Raises:
            ImmutableFieldError: The payload names scheduler-owned fields.
            NotFoundError: Missing, or owned by another user.
            pydantic.ValidationError: Unknown or invalid fields.
        """
        if not isinstance(updates, FlashcardUpdateRequest):
            forbidden = FLASHCARD_SRS_FIELDS.intersection(updates.keys())
            if forbidden:
                raise ImmutableFieldError(forbidden)
            updates = FlashcardUpdateRequest(**updates)

        document = await self._get_owned_document(user_id, flashcard_id)
        changes = updates.model_dump(exclude_unset=True)
        if not changes:
            return Flashcard(**document)
        if changes.get("deck_id") and changes["deck_id"] != document.get("deck_id"):
            await self._check_deck(user_id, changes["deck_id"])

        now = utc_now()
        changes["updated_at"] = now
        collection = db_manager.get_collection(self.flashcards_collection)
        await collection.update_one({"_id": flashcard_id}, {"$set": changes, "$inc": {"version": 1}})

        logger.info(f"Updated flashcard {flashcard_id} fields: {sorted(changes)}")
        document.update(changes)
        document["version"] = document.get("version", 0) + 1
        return Flashcard(**document)

    async def delete_flashcard(self, user_id: str, flashcard_id: str) -> bool:
        """Delete a card and its interaction history."""
        await self._get_owned_document(user_id, flashcard_id)

        collection = db_manager.get_collection(self.flashcards_collection)
        result = await collection.delete_one({"_id": flashcard_id, "user_id": user_id})
        interactions = db_manager.get_collection(self.interactions_collection)
        history = await interactions.delete_many({"flashcard_id": flashcard_id, "user_id": user_id})

        logger.info(f"Deleted flashcard {flashcard_id} and {history.deleted_count} interactions")
        return result.deleted_count > 0

    async def set_lifecycle_status(
        self, user_id: str, flashcard_id: str, lifecycle_status: str
    ) -> Flashcard:
        document = await self._get_owned_document(user_id, flashcard_id)
        new_status = FlashcardLifecycleStatus(lifecycle_status).value
        now = utc_now()

        collection = db_manager.get_collection(self.flashcards_collection)
        await collection.update_one(
            {"_id": flashcard_id},
            {"$set": {"lifecycle_status": new_status, "updated_at": now}, "$inc": {"version": 1}},
        )
        document.update(
            {"lifecycle_status": new_status, "updated_at": now, "version": document.get("version", 0) + 1}
        )
        return Flashcard(**document)

    async def toggle_archive(self, user_id: str, flashcard_id: str) -> Flashcard:
        """Archive an active or suspended card, or restore an archived one to ACTIVE."""
        document = await self._get_owned_document(user_id, flashcard_id)
        if document.get("lifecycle_status") == FlashcardLifecycleStatus.ARCHIVED.value:
            target = FlashcardLifecycleStatus.ACTIVE
        else:
            target = FlashcardLifecycleStatus.ARCHIVED
        return await self.set_lifecycle_status(user_id, flashcard_id, target.value)

    # --- Reviews ---

    async def record_interaction(
        self,
        user_id: str,
        flashcard_id: str,
        quality: Any,
        now: Optional[datetime] = None,
    ) -> Tuple[Flashcard, FlashcardInteraction]:
        """
        Review a card and log the interaction.

        The card state is written with a version-conditional update and reapplied to a fresh
        read when another writer got there first.

        Returns:
            Tuple[Flashcard, FlashcardInteraction]: Updated card and the logged interaction.

        Raises:
            InvalidQualityError: Quality outside 0-5 (before any I/O).
            NotFoundError: Missing, or owned by another user.
            ConcurrentUpdateError: Every conditional write lost.
        """
        rating = ReviewQuality.coerce(quality)
        collection = db_manager.get_collection(self.flashcards_collection)

        for attempt in range(1, self.max_attempts + 1):
            document = await self._get_owned_document(user_id, flashcard_id)
            flashcard = Flashcard(**document)
            reviewed_at = now or utc_now()
            previous = flashcard.srs
            new_state = transition(previous, rating, reviewed_at, self.policy)

            result = await collection.update_one(
                {"_id": flashcard_id, **version_filter(document)},
                {"$set": {"srs": new_state.model_dump(), "updated_at": reviewed_at}, "$inc": {"version": 1}},
            )
            if not result.matched_count:
                logger.warning(
                    f"Flashcard {flashcard_id} changed during review (attempt {attempt}/{self.max_attempts})"
                )
                continue

            updated = flashcard.model_copy(
                update={"srs": new_state, "version": flashcard.version + 1, "updated_at": reviewed_at}
            )
            interaction = FlashcardInteraction(
                id=f"fci_{uuid.uuid4().hex}",
                user_id=user_id,
                flashcard_id=flashcard_id,
                deck_id=flashcard.deck_id,
                quality=int(rating),
                reviewed_at=reviewed_at,
                previous_interval_days=previous.interval_days,
                previous_ease_factor=previous.ease_factor,
                previous_repetitions=previous.repetitions,
                previous_lapses=previous.lapses,
                previous_status=previous.status,
                new_interval_days=new_state.interval_days,
                new_ease_factor=new_state.ease_factor,
                new_repetitions=new_state.repetitions,
                new_lapses=new_state.lapses,
                new_status=new_state.status,
                next_review_at=new_state.next_review_at,
            )

            interactions = db_manager.get_collection(self.interactions_collection)
            try:
                await interactions.insert_one(interaction.to_document())
            except PyMongoError as e:
                logger.error(
                    f"Flashcard {flashcard_id} was rescheduled but its interaction log write failed: {e}",
                    exc_info=True,
                )
                raise

            logger.info(
                f"Reviewed flashcard {flashcard_id} with quality {int(rating)}: "
                f"{previous.status} -> {new_state.status}, interval {new_state.interval_days}d"
            )
            return updated, interaction

        raise ConcurrentUpdateError("Flashcard", flashcard_id, self.max_attempts)

    async def list_interactions(
        self, user_id: str, flashcard_id: str, limit: int = 50
    ) -> List[FlashcardInteraction]:
        """Review history of a card, most recent first."""
        await self._get_owned_document(user_id, flashcard_id)
        limit = max(1, min(limit, settings.SRS_DUE_QUEUE_MAX_LIMIT))

        collection = db_manager.get_collection(self.interactions_collection)
        cursor = (
            collection.find({"user_id": user_id, "flashcard_id": flashcard_id})
            .sort([("reviewed_at", -1)])
            .limit(limit)
        )
        documents = await cursor.to_list(length=limit)
        return [FlashcardInteraction(**doc) for doc in documents]

    async def reset_progress(self, user_id: str, flashcard_id: str) -> Flashcard:
        """Put a card back to its never-reviewed state. History is kept."""
        document = await self._get_owned_document(user_id, flashcard_id)
        now = utc_now()
        fresh = initial_state(now, self.policy, interval_days=0)

        collection = db_manager.get_collection(self.flashcards_collection)
        await collection.update_one(
            {"_id": flashcard_id},
            {"$set": {"srs": fresh.model_dump(), "updated_at": now}, "$inc": {"version": 1}},
        )
        logger.info(f"Reset progress of flashcard {flashcard_id}")

        document.update({"srs": fresh.model_dump(), "updated_at": now, "version": document.get("version", 0) + 1})
        return Flashcard(**document)

    async def get_statistics(
        self, user_id: str, deck_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> FlashcardStatistics:
        """Counts per SRS status and lifecycle, due count and averages over active cards."""
        now = now or utc_now()
        query: Dict[str, Any] = {"user_id": user_id}
        if deck_id:
            query["deck_id"] = deck_id

        collection = db_manager.get_collection(self.flashcards_collection)
        documents = await collection.find(query).to_list(length=None)
        cards = [Flashcard(**doc) for doc in documents]

        stats = FlashcardStatistics(
            total=len(cards),
            by_status={status.value: 0 for status in SRSStatus},
            by_lifecycle={status.value: 0 for status in FlashcardLifecycleStatus},
        )
        active = []
        for card in cards:
            stats.by_lifecycle[card.lifecycle_status] += 1
            if card.lifecycle_status != FlashcardLifecycleStatus.ACTIVE.value:
                continue
            active.append(card)
            stats.by_status[card.srs.status] += 1
            stats.total_lapses += card.srs.lapses
            if card.srs.next_review_at <= now:
                stats.due_count += 1

        if active:
            stats.average_ease_factor = round(sum(c.srs.ease_factor for c in active) / len(active), 4)
            stats.average_interval_days = round(sum(c.srs.interval_days for c in active) / len(active), 2)
            stats.next_review_at = min(c.srs.next_review_at for c in active)
            reviewed = [c.srs.last_reviewed_at for c in active if c.srs.last_reviewed_at]
            stats.last_reviewed_at = max(reviewed) if reviewed else None

        return stats


flashcard_service = FlashcardService()
