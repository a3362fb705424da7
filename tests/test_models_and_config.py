from datetime import timedelta

import pytest
from pydantic import ValidationError

from study_srs.config import Settings
from study_srs.models.review_models import ContentType, DueCursor, review_record_id_for
from study_srs.models.srs_models import ReviewQuality, SRSState, SRSStatus
from study_srs.services.exceptions import InvalidCursorError


def test_review_record_id_is_stable_per_content_key():
    first = review_record_id_for("user_1", "q_1", "QUESTION")

    assert first == review_record_id_for("user_1", "q_1", ContentType.QUESTION)
    assert first != review_record_id_for("user_1", "q_1", "ERROR_NOTEBOOK_ENTRY")
    assert first != review_record_id_for("user_2", "q_1", "QUESTION")
    with pytest.raises(ValueError):
        review_record_id_for("user_1", "q_1", "ARTICLE")


def test_due_cursor_preserves_position(now):
    cursor = DueCursor(partition=0, next_review_at=now, record_id="rr_abc")
    decoded = DueCursor.decode(cursor.encode())

    assert decoded == cursor
    assert decoded.next_review_at.utcoffset() == timedelta(0)


@pytest.mark.parametrize("token", ["", "abc", "eyJwIjogNX0"])
def test_due_cursor_rejects_garbage(token):
    with pytest.raises(InvalidCursorError):
        DueCursor.decode(token)


def test_quality_pass_threshold():
    assert not ReviewQuality.INCORRECT_FAMILIAR.is_pass
    assert ReviewQuality.HARD.is_pass


def test_srs_state_due_check(now):
    state = SRSState.initial(now - timedelta(days=2))
    assert state.is_due(now)
    assert not state.model_copy(update={"status": SRSStatus.MASTERED}).is_due(now)


def test_settings_reject_invalid_values():
    with pytest.raises(ValidationError):
        Settings(MONGODB_URL="  ")
    with pytest.raises(ValidationError):
        Settings(SRS_BATCH_WRITE_SIZE=501)
    with pytest.raises(ValidationError):
        Settings(SRS_MIN_EASE_FACTOR=3.0)
    with pytest.raises(ValidationError):
        Settings(SRS_CAS_MAX_ATTEMPTS=0)


def test_settings_connection_string_with_credentials():
    configured = Settings(MONGODB_URL="mongodb://db:27017", MONGODB_USERNAME="srs", MONGODB_PASSWORD="pw")
    assert configured.mongodb_connection_string == "mongodb://srs:pw@db:27017"
    assert Settings(MONGODB_URL="mongodb://db:27017").mongodb_connection_string == "mongodb://db:27017"


def test_settings_connection_string_escapes_credentials():
    configured = Settings(MONGODB_URL="mongodb://db:27017", MONGODB_USERNAME="srs@ops", MONGODB_PASSWORD="p:w/d@1")
    assert configured.mongodb_connection_string == "mongodb://srs%40ops:p%3Aw%2Fd%401@db:27017"
