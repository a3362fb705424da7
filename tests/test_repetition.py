from datetime import timedelta

import pytest

from study_srs.models.srs_models import ReviewQuality, SRSState, SRSStatus
from study_srs.services.exceptions import InvalidQualityError
from study_srs.services.repetition import (
    FLASHCARD_POLICY,
    REVIEW_RECORD_POLICY,
    adjust_ease_factor,
    round_half_up,
    transition,
)


def fresh(now, interval_days=0, ease_factor=2.5):
    return SRSState(ease_factor=ease_factor, interval_days=interval_days, next_review_at=now)


def test_three_perfect_reviews_follow_sm2_progression(now):
    state = fresh(now)
    intervals, reps = [], []
    for _ in range(3):
        state = transition(state, 5, now)
        intervals.append(state.interval_days)
        reps.append(state.repetitions)

    assert intervals == [1, 6, round_half_up(6 * state.ease_factor)]
    assert intervals[2] == 17
    assert reps == [1, 2, 3]
    assert state.ease_factor == pytest.approx(2.8)
    assert state.lapses == 0


def test_fail_resets_repetitions_and_counts_lapse(now):
    state = SRSState(ease_factor=2.5, interval_days=20, repetitions=4, lapses=1, status="REVIEWING", next_review_at=now)

    for quality in (0, 1, 2):
        result = transition(state, quality, now)
        assert result.repetitions == 0
        assert result.interval_days == 1
        assert result.lapses == 2
        assert result.status == SRSStatus.LEARNING
        assert result.ease_factor == pytest.approx(2.3)


def test_ease_never_drops_below_floor(now):
    state = fresh(now, interval_days=3, ease_factor=1.35)
    failed = transition(state, 0, now)
    assert failed.ease_factor == 1.3

    hard = transition(fresh(now, ease_factor=1.3), 3, now)
    assert hard.ease_factor == 1.3


@pytest.mark.parametrize("quality", list(range(6)))
def test_invariants_hold_for_every_quality(now, quality):
    state = fresh(now)
    for _ in range(6):
        state = transition(state, quality, now)
        assert state.ease_factor >= 1.3
        assert state.interval_days >= 1
        assert state.last_reviewed_at == now
        assert state.next_review_at == now + timedelta(days=state.interval_days)


def test_transition_does_not_mutate_input(now):
    state = fresh(now)
    transition(state, 4, now)
    assert state.repetitions == 0
    assert state.interval_days == 0


def test_review_record_policy_mastery_threshold(now):
    state = SRSState(ease_factor=2.5, interval_days=6, repetitions=2, status="REVIEWING", next_review_at=now)
    result = transition(state, 4, now, REVIEW_RECORD_POLICY)
    assert result.interval_days == 15
    assert result.status == SRSStatus.REVIEWING

    result = transition(result, 5, now, REVIEW_RECORD_POLICY)
    assert result.interval_days >= 16
    assert result.status == SRSStatus.MASTERED


def test_flashcard_policy_thresholds(now):
    first = transition(fresh(now), 4, now, FLASHCARD_POLICY)
    assert first.interval_days == 1
    assert first.status == SRSStatus.LEARNING

    second = transition(first, 4, now, FLASHCARD_POLICY)
    assert second.interval_days == 6
    assert second.status == SRSStatus.REVIEWING

    long_interval = SRSState(ease_factor=2.5, interval_days=13, repetitions=2, next_review_at=now)
    assert transition(long_interval, 4, now, FLASHCARD_POLICY).status == SRSStatus.MASTERED
    assert transition(long_interval, 4, now, REVIEW_RECORD_POLICY).status == SRSStatus.MASTERED

    short_interval = SRSState(ease_factor=2.5, interval_days=10, repetitions=2, next_review_at=now)
    assert transition(short_interval, 4, now, FLASHCARD_POLICY).status == SRSStatus.REVIEWING
    assert transition(short_interval, 4, now, REVIEW_RECORD_POLICY).status == SRSStatus.MASTERED


def test_max_interval_is_respected(now):
    capped = REVIEW_RECORD_POLICY.model_copy(update={"max_interval_days": 30})
    state = SRSState(ease_factor=2.5, interval_days=100, repetitions=5, next_review_at=now)
    assert transition(state, 5, now, capped).interval_days == 30


@pytest.mark.parametrize("quality", [-1, 6, 2.5, True, "4", None])
def test_invalid_quality_rejected(now, quality):
    with pytest.raises(InvalidQualityError):
        transition(fresh(now), quality, now)


def test_integral_float_quality_accepted(now):
    assert ReviewQuality.coerce(4.0) == ReviewQuality.GOOD
    assert transition(fresh(now), 4.0, now).repetitions == 1


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(15.5) == 16
    assert round_half_up(15.4) == 15


def test_adjust_ease_factor_by_quality():
    assert adjust_ease_factor(2.5, 5) == pytest.approx(2.6)
    assert adjust_ease_factor(2.5, 4) == pytest.approx(2.5)
    assert adjust_ease_factor(2.5, 3) == pytest.approx(2.36)
