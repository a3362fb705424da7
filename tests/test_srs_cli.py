import logging
from unittest.mock import AsyncMock, patch

import pytest
from pymongo.errors import OperationFailure

from study_srs.cli import srs_cli
from study_srs.database import srs_indexes
from study_srs.models.error_notebook_models import LinkRepairReport
from study_srs.services.exceptions import PartialBatchFailureError


@pytest.mark.asyncio
async def test_create_srs_indexes_continues_after_failure(fake_db):
    fake_db["questions"].fail("create_index", OperationFailure("no permission"))

    created = await srs_indexes.create_srs_indexes()

    assert created == len(srs_indexes.SRS_INDEXES) - 1
    assert fake_db["review_records"].calls.count("create_index") == 3


@pytest.fixture
def mock_db_manager():
    with patch("study_srs.cli.srs_cli.db_manager") as mock:
        mock.connect = AsyncMock()
        mock.disconnect = AsyncMock()
        mock.health_check = AsyncMock(return_value=True)
        yield mock


def test_cli_without_command_exits(mock_db_manager):
    with pytest.raises(SystemExit) as exc_info:
        srs_cli.main([])
    assert exc_info.value.code == 1


def test_cli_repair_links_success(mock_db_manager):
    with patch("study_srs.cli.srs_cli.error_notebook_service") as service:
        service.repair_links = AsyncMock(return_value=LinkRepairReport(scanned=3, relinked=1, created=2))
        with pytest.raises(SystemExit) as exc_info:
            srs_cli.main(["repair-links", "--user-id", "user_1"])

    assert exc_info.value.code == 0
    service.repair_links.assert_awaited_once_with(user_id="user_1")
    mock_db_manager.disconnect.assert_awaited_once()


def test_cli_repair_links_partial_failure(mock_db_manager):
    with patch("study_srs.cli.srs_cli.error_notebook_service") as service:
        service.repair_links = AsyncMock(side_effect=PartialBatchFailureError("repair_links", 500, 900))
        with pytest.raises(SystemExit) as exc_info:
            srs_cli.main(["repair-links"])

    assert exc_info.value.code == 1
    mock_db_manager.disconnect.assert_awaited_once()


def test_cli_create_indexes(mock_db_manager):
    with patch("study_srs.cli.srs_cli.create_srs_indexes", AsyncMock(return_value=len(srs_indexes.SRS_INDEXES))):
        with pytest.raises(SystemExit) as exc_info:
            srs_cli.main(["create-indexes"])
    assert exc_info.value.code == 0


def test_cli_health_reports_unreachable_database(mock_db_manager):
    mock_db_manager.health_check = AsyncMock(return_value=False)

    with pytest.raises(SystemExit) as exc_info:
        srs_cli.main(["health"])

    assert exc_info.value.code == 1
    mock_db_manager.disconnect.assert_awaited_once()


def test_cli_log_level_overrides_configured_level(mock_db_manager):
    root = logging.getLogger("study_srs")
    previous = root.level
    try:
        with pytest.raises(SystemExit):
            srs_cli.main(["--log-level", "DEBUG", "health"])
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(previous)
