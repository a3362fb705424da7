"""
# Spaced Repetition Service

This module implements the **SM-2 Algorithm** used to schedule every reviewable item.
It calculates when an item should be seen again so that it is reviewed just before it is
forgotten.

## Domain Overview

The "Forgetting Curve" dictates that memories fade over time.
- **Spaced Repetition**: Reviewing items at increasing intervals just before you forget them.
- **SM-2**: The classic algorithm used by Anki and SuperMemo.

## Key Features

### 1. Interval Calculation
- **Input**: Current `SRSState`, recall quality (0-5), the review time and a policy.
- **Output**: The next `SRSState`. The input is never modified.

### 2. Adaptive Scheduling
- **Ease Factor**: Adjusts the multiplier based on how easy/hard the item was (floor 1.3).
- **Reset**: Forgetting an item resets its interval to 1 day and counts a lapse.

### 3. Policies
Review records and flashcards share the algorithm but not the status thresholds:

| Policy | MASTERED when | REVIEWING when |
|--------|---------------|----------------|
| `REVIEW_RECORD_POLICY` | interval >= 16 and repetitions >= 3 | any pass |
| `FLASHCARD_POLICY` | interval > 30 | interval > 1 |

Both are built from `settings`, so the thresholds are configuration.

## Usage Example

```python
new_state = transition(record.srs, quality=4, now=datetime.now(timezone.utc))
card_state = transition(card.srs, 5, now, policy=FLASHCARD_POLICY)
```
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from study_srs.config import settings
from study_srs.models.srs_models import ReviewQuality, SRSPolicy, SRSState, SRSStatus

EASE_FACTOR_PRECISION = 4

REVIEW_RECORD_POLICY = SRSPolicy(
    default_ease_factor=settings.SRS_DEFAULT_EASE_FACTOR,
    min_ease_factor=settings.SRS_MIN_EASE_FACTOR,
    fail_ease_penalty=settings.SRS_FAIL_EASE_PENALTY,
    fail_interval_days=settings.SRS_FAIL_INTERVAL_DAYS,
    first_interval_days=settings.SRS_FIRST_INTERVAL_DAYS,
    second_interval_days=settings.SRS_SECOND_INTERVAL_DAYS,
    mastered_interval_days=settings.SRS_MASTERED_INTERVAL_DAYS,
    mastered_min_repetitions=settings.SRS_MASTERED_MIN_REPETITIONS,
    reviewing_min_interval_days=1,
    max_interval_days=settings.SRS_MAX_INTERVAL_DAYS,
)

FLASHCARD_POLICY = REVIEW_RECORD_POLICY.model_copy(
    update={
        "mastered_interval_days": settings.FLASHCARD_MASTERED_INTERVAL_DAYS,
        "mastered_min_repetitions": settings.FLASHCARD_MASTERED_MIN_REPETITIONS,
        "reviewing_min_interval_days": settings.FLASHCARD_REVIEWING_MIN_INTERVAL_DAYS,
    }
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def adjust_ease_factor(ease_factor: float, quality: int, policy: SRSPolicy = REVIEW_RECORD_POLICY) -> float:
    """
    SM-2 ease update for a passing review.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at `policy.min_ease_factor`.
    """
    distance = 5 - quality
    new_ease = ease_factor + (0.1 - distance * (0.08 + distance * 0.02))
    return max(policy.min_ease_factor, round(new_ease, EASE_FACTOR_PRECISION))


def _status_after_pass(interval_days: int, repetitions: int, policy: SRSPolicy) -> SRSStatus:
    if interval_days >= policy.mastered_interval_days and repetitions >= policy.mastered_min_repetitions:
        return SRSStatus.MASTERED
    if interval_days >= policy.reviewing_min_interval_days:
        return SRSStatus.REVIEWING
    return SRSStatus.LEARNING


def transition(
    state: SRSState,
    quality: Any,
    now: datetime,
    policy: SRSPolicy = REVIEW_RECORD_POLICY,
) -> SRSState:
    """
    Compute the SRS state after one review.

    Pure function: no I/O and the input state is left untouched.

    **Algorithm Summary:**
    - **Forgot (quality < 3)**: repetitions reset to 0, one lapse counted, interval back to
      1 day, ease reduced by 0.2 (never below 1.3), status LEARNING.
    - **Remembered (quality >= 3)**: ease adjusted with the SM-2 formula, then the interval
      follows the repetition count.

    **Interval Progression:**
    - First repetition: 1 day
    - Second repetition: 6 days
    - Subsequent: `round(previous_interval * new_ease_factor)` (halves round up)

    Args:
        state: Current scheduling state.
        quality: Recall quality, validated with `ReviewQuality.coerce()`.
        now: Review time (timezone-aware UTC).
        policy: Thresholds to apply; defaults to the review-record policy.

    Returns:
        SRSState: The new state with `last_reviewed_at = now` and
        `next_review_at = now + interval_days`.

    Raises:
        InvalidQualityError: If `quality` is not an integer in [0, 5].
    """
    rating = ReviewQuality.coerce(quality)

    if rating < policy.pass_quality_threshold:
        # Forgot
        new_repetitions = 0
        new_lapses = state.lapses + 1
        new_interval = policy.fail_interval_days
        new_ease = max(
            policy.min_ease_factor,
            round(state.ease_factor - policy.fail_ease_penalty, EASE_FACTOR_PRECISION),
        )
        new_status = SRSStatus.LEARNING
    else:
        # Remembered
        new_ease = adjust_ease_factor(state.ease_factor, int(rating), policy)
        if state.repetitions == 0:
            new_interval = policy.first_interval_days
        elif state.repetitions == 1:
            new_interval = policy.second_interval_days
        else:
            new_interval = round_half_up(state.interval_days * new_ease)
        new_repetitions = state.repetitions + 1
        new_lapses = state.lapses
        new_status = None

    new_interval = max(1, new_interval)
    if policy.max_interval_days is not None:
        new_interval = min(new_interval, policy.max_interval_days)

    if new_status is None:
        new_status = _status_after_pass(new_interval, new_repetitions, policy)

    return SRSState(
        ease_factor=new_ease,
        interval_days=new_interval,
        repetitions=new_repetitions,
        lapses=new_lapses,
        status=new_status,
        last_reviewed_at=now,
        next_review_at=now + timedelta(days=new_interval),
    )


def initial_state(now: datetime, policy: SRSPolicy = REVIEW_RECORD_POLICY, interval_days: int = 1) -> SRSState:
    """Fresh state under `policy`, due `interval_days` from `now` (0 means due immediately)."""
    return SRSState.initial(now, ease_factor=policy.default_ease_factor, interval_days=interval_days)
