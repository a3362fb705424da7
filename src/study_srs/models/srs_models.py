"""
# SRS Core Models

This module defines the value types shared by every reviewable item: the **quality scale**,
the **status** of an item in its memory cycle, the **SRS state** embedded in review records and
flashcards, and the **policy** that parameterizes the transition function.

## Domain Model Overview

```
ReviewQuality (0-5) ──┐
                      ▼
SRSState ──▶ transition(state, quality, now, policy) ──▶ SRSState
                      ▲
SRSPolicy ────────────┘
```

### Quality Scale
- **0-2**: Fail. The learner did not recall the item.
- **3-5**: Pass, with increasing confidence.

### Status
- **LEARNING**: New, or failed on the last exposure.
- **REVIEWING**: Passed at least once, interval growing.
- **MASTERED**: Interval and repetitions both past the policy thresholds.

## Usage Examples

```python
state = SRSState.initial(now)
quality = ReviewQuality.coerce(4)
```
"""

from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from study_srs.services.exceptions import InvalidQualityError


class ReviewQuality(IntEnum):
    """
    Recall quality reported for one study exposure.

    **Rating Scale:**
    *   **0**: Complete blackout.
    *   **1**: Incorrect response; the correct one remembered.
    *   **2**: Incorrect response; the correct one seemed easy to recall.
    *   **3**: Correct response recalled with serious difficulty.
    *   **4**: Correct response after a hesitation.
    *   **5**: Perfect recall.
    """

    BLACKOUT = 0
    INCORRECT = 1
    INCORRECT_FAMILIAR = 2
    HARD = 3
    GOOD = 4
    PERFECT = 5

    @property
    def is_pass(self) -> bool:
        return self >= ReviewQuality.HARD

    @classmethod
    def coerce(cls, value: Any) -> "ReviewQuality":
        """
        Validate a raw value and return the matching quality.

        Booleans, floats with a fractional part, strings and anything outside 0-5 are rejected.

        Raises:
            InvalidQualityError: If the value is not an integer in [0, 5].
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidQualityError(value)
        if isinstance(value, float) and not value.is_integer():
            raise InvalidQualityError(value)
        as_int = int(value)
        if as_int < cls.BLACKOUT or as_int > cls.PERFECT:
            raise InvalidQualityError(value)
        return cls(as_int)


class SRSStatus(str, Enum):
    """Where an item sits in its memory cycle."""

    LEARNING = "LEARNING"
    REVIEWING = "REVIEWING"
    MASTERED = "MASTERED"


# Statuses that the due queue surfaces.
DUE_STATUSES = (SRSStatus.LEARNING, SRSStatus.REVIEWING)


class SRSState(BaseModel):
    """
    Scheduling state of one reviewable item.

    `interval_days` may be 0 only for a flashcard that has never been reviewed; every transition
    leaves it at 1 or more.
    """

    model_config = ConfigDict(use_enum_values=True)

    ease_factor: float = Field(default=2.5, gt=0, description="Interval growth multiplier (floor 1.3)")
    interval_days: int = Field(default=1, ge=0, description="Days between the last and next review")
    repetitions: int = Field(default=0, ge=0, description="Consecutive passes since last failure")
    lapses: int = Field(default=0, ge=0, description="Lifetime failure count")
    status: SRSStatus = Field(default=SRSStatus.LEARNING)
    last_reviewed_at: Optional[datetime] = Field(default=None)
    next_review_at: datetime = Field(..., description="When the item is due again")

    @classmethod
    def initial(
        cls,
        now: datetime,
        ease_factor: float = 2.5,
        interval_days: int = 1,
    ) -> "SRSState":
        """Fresh state for a newly seen item, due `interval_days` from `now`."""
        return cls(
            ease_factor=ease_factor,
            interval_days=interval_days,
            repetitions=0,
            lapses=0,
            status=SRSStatus.LEARNING,
            last_reviewed_at=None,
            next_review_at=now + timedelta(days=interval_days),
        )

    def is_due(self, now: datetime) -> bool:
        return self.status in DUE_STATUSES and self.next_review_at <= now


class SRSPolicy(BaseModel):
    """
    Numbers that parameterize the SM-2 transition.

    Review records and flashcards run the same algorithm under different policies; see
    `study_srs.services.repetition` for the two named instances.

    **Fields:**
    *   **pass_quality_threshold**: Lowest quality counted as a pass.
    *   **mastered_interval_days / mastered_min_repetitions**: Both must be met for MASTERED.
    *   **reviewing_min_interval_days**: A pass that leaves the interval below this stays LEARNING.
    *   **max_interval_days**: Optional ceiling on the interval.
    """

    model_config = ConfigDict(frozen=True)

    default_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    fail_ease_penalty: float = 0.2
    pass_quality_threshold: int = 3
    fail_interval_days: int = 1
    first_interval_days: int = 1
    second_interval_days: int = 6
    mastered_interval_days: int = 16
    mastered_min_repetitions: int = 3
    reviewing_min_interval_days: int = 1
    max_interval_days: Optional[int] = None
