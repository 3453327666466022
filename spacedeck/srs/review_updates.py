"""
Review Updates - Interval and Ease Changes for Graduated Cards

Implements the SM-2 style updates for cards in the Review state.

Successful answers:
    Hard:  interval * hard_interval_factor * interval_modifier, ease - penalty
    Good:  interval * ease_factor * interval_modifier,          ease unchanged
    Easy:  Good interval * easy_bonus,                          ease + bonus

Failed answers (lapses):
    interval * new_interval_fraction, at least one day and always shorter
    than before; ease - lapse penalty; the card moves to Relearning.

All review-phase intervals are whole days, rounded up, and the ease factor
never drops below EASE_FLOOR.
"""

from __future__ import annotations
import math
from dataclasses import replace
from datetime import datetime, timedelta

from spacedeck.srs.card_state import CardState
from spacedeck.srs.constants import CardPhase, EASE_FLOOR, Grade
from spacedeck.srs.params import AlgorithmConfig


def round_days(days: float) -> int:
    """
    Round an interval up to whole days.

    Rounds to 6 decimals first so float noise (10 * 0.2 = 2.0000000000000004)
    does not push an exact result up a whole day.
    """
    return math.ceil(round(days, 6))


def clamp_interval(days: int, config: AlgorithmConfig) -> int:
    """Clamp an interval to the configured [minimum, maximum] range."""
    return min(max(days, config.minimum_interval), config.maximum_interval)


def floor_ease(ease: float) -> float:
    """Apply the ease floor to a computed ease factor."""
    return max(EASE_FLOOR, round(ease, 6))


def graduate(card: CardState, days: int, config: AlgorithmConfig, now: datetime) -> CardState:
    """
    Move a card into Review with a whole-day interval.

    Args:
        card: Card leaving Learning/Relearning (ease already adjusted)
        days: Interval to graduate with
        config: Effective config (for interval bounds)
        now: Review timestamp

    Returns:
        Review-state card due `days` from now
    """
    days = clamp_interval(round_days(days), config)
    return replace(
        card,
        state=CardPhase.REVIEW,
        step=0,
        interval=float(days),
        ease_factor=floor_ease(card.ease_factor),
        due_at=now + timedelta(days=days),
    )


def next_review_interval(interval: float, ease: float, grade: Grade, config: AlgorithmConfig) -> int:
    """
    Compute the next whole-day interval for a successful review.

    Good never shortens the interval and Easy is always longer than Good,
    so correct recall grows intervals monotonically.
    """
    modifier = config.interval_modifier
    current = round_days(interval)

    if grade == Grade.HARD:
        days = round_days(interval * config.hard_interval_factor * modifier)
        return clamp_interval(days, config)

    good = max(round_days(interval * ease * modifier), current + 1)
    if grade == Grade.GOOD:
        return clamp_interval(good, config)

    easy = max(round_days(interval * ease * modifier * config.easy_bonus), good + 1)
    return clamp_interval(easy, config)


def next_review_ease(ease: float, grade: Grade, config: AlgorithmConfig) -> float:
    """Nudge the ease factor for a successful review."""
    if grade == Grade.HARD:
        return floor_ease(ease - config.hard_ease_penalty)
    if grade == Grade.EASY:
        return floor_ease(ease + config.easy_ease_bonus)
    return floor_ease(ease)


def apply_review_success(card: CardState, grade: Grade, config: AlgorithmConfig, now: datetime) -> CardState:
    """
    Apply a Hard/Good/Easy answer to a Review card.

    A successful review also ends any run of consecutive lapses.
    """
    if grade == Grade.AGAIN:
        raise ValueError("Use apply_lapse for AGAIN on a review card")

    days = next_review_interval(card.interval, card.ease_factor, grade, config)
    return replace(
        card,
        interval=float(days),
        ease_factor=next_review_ease(card.ease_factor, grade, config),
        lapse_streak=0,
        due_at=now + timedelta(days=days),
    )


def lapse_interval(interval: float, config: AlgorithmConfig) -> int:
    """
    Interval kept after a lapse.

    The fraction result is rounded up, then forced below the old interval
    and back up to the minimum; only a one-day card keeps its interval.
    """
    current = round_days(interval)
    reduced = round_days(interval * config.lapse_policy.new_interval_fraction)
    days = max(config.minimum_interval, min(reduced, current - 1))
    return min(days, config.maximum_interval)


def apply_lapse(card: CardState, config: AlgorithmConfig) -> CardState:
    """
    Apply an Again answer to a Review card.

    The due date is left for the caller to set from the relearning steps.
    """
    policy = config.lapse_policy
    return replace(
        card,
        state=CardPhase.RELEARNING,
        step=0,
        interval=float(lapse_interval(card.interval, config)),
        ease_factor=floor_ease(card.ease_factor - policy.ease_penalty),
        lapses=card.lapses + 1,
        lapse_streak=card.lapse_streak + 1,
    )
