"""
Spaced-repetition scheduler.

A three-grade variant of SM-2:
- again: shrink the interval hard and lower ease
- hard: grow the interval a little and lower ease slightly
- good: grow the interval by ease and raise ease slightly

This is a pure computation module with no I/O. The constants are the
reference behaviour and must not be tuned.
"""

from collections.abc import Iterable

from msamiati.domain.constants import (
    DAY_MS,
    INITIAL_EASE,
    MAX_EASE,
    MAX_INTERVAL_DAYS,
    MIN_EASE,
    MIN_INTERVAL_DAYS,
)
from msamiati.domain.models import Grade, Srs, VocabItem


def _clamp(n: float, low: float, high: float) -> float:
    return max(low, min(high, n))


def create_initial_srs(now: float) -> Srs:
    """A brand-new item is due immediately."""
    return Srs(
        due_at=now,
        interval_days=0,
        ease=INITIAL_EASE,
        correct_streak=0,
        total_reviews=0,
    )


def apply_review(prev: Srs, grade: Grade, now: float) -> Srs:
    """
    Compute the next scheduling state after a review.

    Total and deterministic: any Srs and grade yield a valid Srs with
    interval_days in [0.04, 180] and ease in [1.3, 2.8].
    """
    ease = prev.ease
    interval = prev.interval_days
    streak = prev.correct_streak

    if grade is Grade.AGAIN:
        ease = _clamp(ease - 0.2, MIN_EASE, MAX_EASE)
        interval = max(MIN_INTERVAL_DAYS, interval * 0.35)
        streak = 0
    elif grade is Grade.HARD:
        ease = _clamp(ease - 0.05, MIN_EASE, MAX_EASE)
        interval = 0.5 if interval <= 0.1 else interval * max(1.2, ease * 0.9)
        streak += 1
    else:
        ease = _clamp(ease + 0.03, MIN_EASE, MAX_EASE)
        interval = 1 if interval <= 0.1 else interval * ease
        streak += 1

    # Keep intervals from exploding or collapsing
    interval = _clamp(interval, MIN_INTERVAL_DAYS, MAX_INTERVAL_DAYS)

    return Srs(
        due_at=now + interval * DAY_MS,
        interval_days=interval,
        ease=ease,
        correct_streak=streak,
        total_reviews=prev.total_reviews + 1,
        last_reviewed_at=now,
    )


def is_due(srs: Srs, now: float) -> bool:
    return srs.due_at <= now


def due_items(items: Iterable[VocabItem], now: float) -> list[VocabItem]:
    """Items whose review time has passed, most overdue first."""
    return sorted(
        (item for item in items if is_due(item.srs, now)),
        key=lambda item: item.srs.due_at,
    )
