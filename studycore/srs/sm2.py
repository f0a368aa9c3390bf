"""SM-2 (SuperMemo 2) review scheduler.

Computes the next scheduling state of a card from its current state and the
quality of the learner's answer. Pure and deterministic: the review instant is
passed in and a new ``CardSchedule`` is returned, the input is never mutated.
Reference: https://www.supermemo.com/en/archives1990-2015/english/ol/sm2

Key concepts:
- Ease factor (EF): multiplier for interval growth, never below 1.3.
- Interval: whole days until the next review, never below 1 after a review.
- Repetitions: consecutive non-Again reviews, reset to 0 by Again.
- Quality: Again / Hard / Good / Easy, ordinals 1-4 inside the EF formula only.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import assert_never

from studycore.errors import ScheduleInvariantError

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MIN_INTERVAL_DAYS = 1

# Fixed intervals for the first and second successful Good reviews
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6

HARD_MULTIPLIER = 1.2
EASY_MULTIPLIER = 1.3

# EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
EF_BASE_INCREMENT = 0.1
EF_FIRST_COEFFICIENT = 0.08
EF_SECOND_COEFFICIENT = 0.02
QUALITY_REFERENCE = 5


class QualityRating(Enum):
    """How well the learner recalled a card."""

    AGAIN = "again"  # Forgot, or answered wrong
    HARD = "hard"    # Recalled with serious difficulty
    GOOD = "good"    # Recalled with reasonable effort
    EASY = "easy"    # Recalled effortlessly

    @property
    def ordinal(self) -> int:
        return _ORDINALS[self]

    @property
    def is_correct(self) -> bool:
        """Good and Easy count as correct answers; Again and Hard do not."""
        return self in (QualityRating.GOOD, QualityRating.EASY)


_ORDINALS = {
    QualityRating.AGAIN: 1,
    QualityRating.HARD: 2,
    QualityRating.GOOD: 3,
    QualityRating.EASY: 4,
}


@dataclass(frozen=True)
class CardSchedule:
    """The SM-2 scheduling state of one card."""

    card_id: int
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: float | None = None  # Days; None until the first review
    repetitions: int = 0
    next_review_date: datetime | None = None  # None means due immediately
    last_review_date: datetime | None = None
    created_at: datetime | None = None  # Owned by the store
    updated_at: datetime | None = None  # Owned by the store


def new_schedule(card_id: int, now: datetime, ease_factor: float = DEFAULT_EASE_FACTOR) -> CardSchedule:
    """Seed the schedule for a card that has never been studied.

    The card is due at ``now`` so it enters the next session.
    """
    return CardSchedule(
        card_id=card_id,
        ease_factor=ease_factor,
        interval=0,
        repetitions=0,
        next_review_date=now,
        last_review_date=None,
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    Python's ``round`` uses banker's rounding (``round(0.5) == 0``).
    """
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def adjust_ease_factor(ease_factor: float, quality: QualityRating) -> float:
    """Apply the SM-2 ease factor recurrence and clamp to the 1.3 floor."""
    quality_diff = QUALITY_REFERENCE - quality.ordinal
    adjustment = EF_BASE_INCREMENT - quality_diff * (
        EF_FIRST_COEFFICIENT + quality_diff * EF_SECOND_COEFFICIENT
    )
    return max(ease_factor + adjustment, MIN_EASE_FACTOR)


def calculate_next_review(
    schedule: CardSchedule,
    quality: QualityRating,
    now: datetime,
) -> CardSchedule:
    """Compute the schedule that follows a review of ``schedule``.

    Args:
        schedule: Current scheduling state of the card.
        quality: How well the learner recalled the card.
        now: When the review happened.

    Returns:
        A new CardSchedule with ease factor, interval, repetitions and
        review dates updated. ``created_at`` and ``updated_at`` are carried
        over untouched.

    Raises:
        ScheduleInvariantError: the schedule has repetitions but no interval.
    """
    ease_factor = max(schedule.ease_factor, MIN_EASE_FACTOR)

    match quality:
        case QualityRating.AGAIN:
            ease_factor = adjust_ease_factor(ease_factor, quality)
            interval = MIN_INTERVAL_DAYS
            repetitions = 0
        case QualityRating.HARD:
            ease_factor = adjust_ease_factor(ease_factor, quality)
            interval = _enforce_minimum_interval(_prior_interval(schedule) * HARD_MULTIPLIER)
            repetitions = schedule.repetitions + 1
        case QualityRating.GOOD:
            interval = _good_interval(schedule, ease_factor)
            repetitions = schedule.repetitions + 1
        case QualityRating.EASY:
            interval = _enforce_minimum_interval(
                _prior_interval(schedule) * ease_factor * EASY_MULTIPLIER
            )
            repetitions = schedule.repetitions + 1
        case _:
            assert_never(quality)

    return replace(
        schedule,
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
        last_review_date=now,
        next_review_date=now + timedelta(days=interval),
    )


def _good_interval(schedule: CardSchedule, ease_factor: float) -> int:
    if schedule.repetitions == 0:
        return FIRST_INTERVAL_DAYS
    if schedule.repetitions == 1:
        return SECOND_INTERVAL_DAYS
    return _enforce_minimum_interval(_prior_interval(schedule) * ease_factor)


def _prior_interval(schedule: CardSchedule) -> float:
    if schedule.interval is None:
        if schedule.repetitions >= 1:
            raise ScheduleInvariantError(
                f"Card {schedule.card_id} has {schedule.repetitions} repetitions but no interval"
            )
        return 0.0
    return schedule.interval


def _enforce_minimum_interval(days: float) -> int:
    # Round first: 0.4 * 1.2 = 0.48 rounds to 0 and must still become 1
    return max(round_half_up(days), MIN_INTERVAL_DAYS)
