from unittest.mock import AsyncMock

import pytest
from pymongo.errors import OperationFailure

from study_srs.models.error_notebook_models import ErrorNotebookEntryCreateRequest
from study_srs.models.review_models import review_record_id_for
from study_srs.models.srs_models import SRSStatus
from study_srs.services.error_notebook_service import ErrorNotebookService
from study_srs.services.exceptions import (
    ImmutableFieldError,
    InvalidQualityError,
    NotFoundError,
    PartialBatchFailureError,
)
from study_srs.services.review_record_service import ReviewRecordService


@pytest.fixture
def records():
    return ReviewRecordService()


@pytest.fixture
def service(records):
    return ErrorNotebookService(records=records)


def entry_request(**overrides):
    data = {"notebook_id": "nb_1", "question_id": "q_1", "user_answer": "B", "error_description": "Mixed up"}
    data.update(overrides)
    return ErrorNotebookEntryCreateRequest(**data)


def insert_entry(fake_db, entry_id, user_id="user_1", review_record_id=None, now=None):
    fake_db["error_notebook_entries"].documents[entry_id] = {
        "_id": entry_id,
        "notebook_id": "nb_1",
        "user_id": user_id,
        "question_id": "q_1",
        "tags": [],
        "is_resolved": False,
        "review_record_id": review_record_id,
        "srs": None,
        "created_at": now,
        "updated_at": now,
    }


@pytest.mark.asyncio
async def test_add_entry_links_review_record(fake_db, service, now):
    fake_db["error_notebooks"].documents["nb_1"] = {"_id": "nb_1", "user_id": "user_1", "entry_count": 0}

    entry = await service.add_entry("user_1", entry_request(), now=now)

    expected_id = review_record_id_for("user_1", entry.id, "ERROR_NOTEBOOK_ENTRY")
    assert entry.review_record_id == expected_id
    assert entry.srs.status == SRSStatus.LEARNING
    assert expected_id in fake_db["review_records"].documents
    assert fake_db["error_notebook_entries"].documents[entry.id]["review_record_id"] == expected_id
    assert fake_db["error_notebooks"].documents["nb_1"]["entry_count"] == 1


@pytest.mark.asyncio
async def test_add_entry_survives_record_failure(fake_db, service, now):
    fake_db["review_records"].fail("insert_one", OperationFailure("write failed"))

    entry = await service.add_entry("user_1", entry_request(), now=now)

    assert entry.review_record_id is None
    assert entry.id in fake_db["error_notebook_entries"].documents


@pytest.mark.asyncio
async def test_review_self_heals_unlinked_entry_with_existing_record(fake_db, service, records, now):
    insert_entry(fake_db, "ene_1", now=now)
    existing = await records.create("user_1", "ene_1", "ERROR_NOTEBOOK_ENTRY", now=now)

    result = await service.record_entry_review("ene_1", "user_1", 4, now=now)

    assert result.scored is True
    assert result.repaired is True
    assert result.review_record.id == existing.id
    assert result.review_record.srs.repetitions == 1
    assert len(fake_db["review_records"].documents) == 1
    stored = fake_db["error_notebook_entries"].documents["ene_1"]
    assert stored["review_record_id"] == existing.id
    assert stored["srs"]["repetitions"] == 1


@pytest.mark.asyncio
async def test_review_repairs_dangling_link_by_creating_record(fake_db, service, now):
    insert_entry(fake_db, "ene_1", review_record_id="rr_deleted", now=now)

    result = await service.record_entry_review("ene_1", "user_1", 2, now=now)

    assert result.scored is True
    assert result.review_record.id == review_record_id_for("user_1", "ene_1", "ERROR_NOTEBOOK_ENTRY")
    assert result.review_record.srs.lapses == 1
    assert result.entry.review_record_id == result.review_record.id


@pytest.mark.asyncio
async def test_review_unscored_when_repair_fails(fake_db, service, now):
    insert_entry(fake_db, "ene_1", now=now)
    fake_db["review_records"].fail("insert_one", OperationFailure("write failed"))

    result = await service.record_entry_review("ene_1", "user_1", 4, now=now)

    assert result.scored is False
    assert result.review_record is None
    assert fake_db["review_records"].documents == {}
    assert fake_db["error_notebook_entries"].documents["ene_1"]["srs"] is None


@pytest.mark.asyncio
async def test_review_of_linked_entry_uses_link(fake_db, service, now):
    entry = await service.add_entry("user_1", entry_request(), now=now)

    result = await service.record_entry_review(entry.id, "user_1", 5, notes="got it", now=now)

    assert result.repaired is False
    assert result.review_record.id == entry.review_record_id
    assert result.review_record.notes == "got it"
    assert result.entry.srs.repetitions == 1


@pytest.mark.asyncio
async def test_review_validates_quality_and_owner(fake_db, service, now):
    insert_entry(fake_db, "ene_1", now=now)

    with pytest.raises(InvalidQualityError):
        await service.record_entry_review("ene_1", "user_1", -1)
    with pytest.raises(NotFoundError):
        await service.record_entry_review("ene_1", "user_2", 3)
    with pytest.raises(NotFoundError):
        await service.record_entry_review("ene_missing", "user_1", 3)


@pytest.mark.asyncio
async def test_remove_entry_cascades_to_record(fake_db, service, now):
    fake_db["error_notebooks"].documents["nb_1"] = {"_id": "nb_1", "user_id": "user_1", "entry_count": 0}
    entry = await service.add_entry("user_1", entry_request(), now=now)

    assert await service.remove_entry(entry.id, "user_1") is True

    assert fake_db["error_notebook_entries"].documents == {}
    assert fake_db["review_records"].documents == {}
    assert fake_db["error_notebooks"].documents["nb_1"]["entry_count"] == 0


@pytest.mark.asyncio
async def test_remove_entry_keeps_deletion_when_record_delete_fails(fake_db, service, now):
    entry = await service.add_entry("user_1", entry_request(), now=now)
    fake_db["review_records"].fail("delete_one", OperationFailure("unavailable"))

    assert await service.remove_entry(entry.id, "user_1") is True
    assert entry.id not in fake_db["error_notebook_entries"].documents
    assert entry.review_record_id in fake_db["review_records"].documents


@pytest.mark.asyncio
async def test_update_entry_rejects_link_fields(fake_db, service, now):
    entry = await service.add_entry("user_1", entry_request(), now=now)

    updated = await service.update_entry(entry.id, "user_1", {"is_resolved": True, "user_notes": "careful"})
    assert updated.is_resolved is True
    assert updated.review_record_id == entry.review_record_id

    with pytest.raises(ImmutableFieldError):
        await service.update_entry(entry.id, "user_1", {"review_record_id": "rr_other"})


@pytest.mark.asyncio
async def test_list_entries(fake_db, service, now):
    await service.add_entry("user_1", entry_request(), now=now)
    await service.add_entry("user_1", entry_request(notebook_id="nb_2"), now=now)
    await service.add_entry("user_2", entry_request(), now=now)

    entries = await service.list_entries("user_1", "nb_1")
    assert len(entries) == 1
    assert entries[0].notebook_id == "nb_1"


@pytest.mark.asyncio
async def test_repair_links_in_chunks(fake_db, records, now):
    service = ErrorNotebookService(records=records, batch_size=2)
    for index in range(5):
        insert_entry(fake_db, f"ene_{index}", now=now)
    await records.create("user_1", "ene_0", "ERROR_NOTEBOOK_ENTRY", now=now)
    linked = await records.create("user_1", "ene_1", "ERROR_NOTEBOOK_ENTRY", now=now)
    fake_db["error_notebook_entries"].documents["ene_1"]["review_record_id"] = linked.id

    entries = fake_db["error_notebook_entries"]
    original_bulk = entries.bulk_write
    entries.bulk_write = AsyncMock(side_effect=original_bulk)

    report = await service.repair_links()

    assert report.scanned == 5
    assert report.already_linked == 1
    assert report.relinked == 1
    assert report.created == 3
    assert entries.bulk_write.await_count == 3
    for index in range(5):
        entry_id = f"ene_{index}"
        expected = review_record_id_for("user_1", entry_id, "ERROR_NOTEBOOK_ENTRY")
        assert entries.documents[entry_id]["review_record_id"] == expected
        assert expected in fake_db["review_records"].documents


@pytest.mark.asyncio
async def test_repair_links_partial_failure_keeps_earlier_chunks(fake_db, records, now):
    service = ErrorNotebookService(records=records, batch_size=2)
    for index in range(4):
        insert_entry(fake_db, f"ene_{index}", now=now)

    entries = fake_db["error_notebook_entries"]
    original_bulk = entries.bulk_write
    calls = []

    async def flaky_bulk(requests, ordered=True):
        calls.append(len(requests))
        if len(calls) == 2:
            raise OperationFailure("chunk rejected")
        return await original_bulk(requests, ordered=ordered)

    entries.bulk_write = flaky_bulk

    with pytest.raises(PartialBatchFailureError) as exc_info:
        await service.repair_links(user_id="user_1")

    assert exc_info.value.processed == 2
    assert exc_info.value.total == 4
    linked = [doc for doc in entries.documents.values() if doc["review_record_id"]]
    assert len(linked) == 2


async def progressed_entry(service, fake_db, now, days):
    entry = await service.add_entry("user_1", entry_request(), now=now)
    for offset in (1, 2, 8):
        await service.record_entry_review(entry.id, "user_1", 4, now=now + days(offset))
    fake_db["review_records"].documents.clear()
    return entry


@pytest.mark.asyncio
async def test_review_of_dangling_link_resumes_from_mirrored_state(fake_db, service, now, days):
    entry = await progressed_entry(service, fake_db, now, days)
    mirror = fake_db["error_notebook_entries"].documents[entry.id]["srs"]
    assert (mirror["interval_days"], mirror["repetitions"]) == (15, 3)

    result = await service.record_entry_review(entry.id, "user_1", 4, now=now + days(23))

    assert result.scored is True
    assert result.repaired is True
    assert result.review_record.srs.repetitions == 4
    assert result.review_record.srs.interval_days == 38
    assert result.entry.srs.interval_days == 38


@pytest.mark.asyncio
async def test_repair_links_seeds_missing_record_from_mirror(fake_db, service, now, days):
    entry = await progressed_entry(service, fake_db, now, days)

    report = await service.repair_links()

    assert report.created == 1
    mirror = fake_db["error_notebook_entries"].documents[entry.id]["srs"]
    assert (mirror["interval_days"], mirror["repetitions"]) == (15, 3)
    stored = fake_db["review_records"].documents[entry.review_record_id]
    assert stored["srs"]["interval_days"] == 15
    assert stored["srs"]["repetitions"] == 3
    assert stored["srs"]["next_review_at"] == mirror["next_review_at"]
