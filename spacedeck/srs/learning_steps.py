"""
Learning Steps - Short-Interval Updates for Learning and Relearning Cards

While a card is Learning or Relearning it walks through a list of short
steps (minutes) before graduating to Review:
- Again: back to the first step
- Hard: repeat the current step
- Good: next step, or graduate after the last one
- Easy: graduate immediately

Graduation itself is decided by the caller (scheduler.py), since Learning
and Relearning cards graduate with different intervals.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Sequence

from spacedeck.srs.card_state import CardState
from spacedeck.srs.constants import CardPhase, Grade, MINUTES_PER_DAY


def step_days(steps: Sequence[float], index: int) -> float:
    """Length of a step, converted from minutes to (fractional) days."""
    return steps[index] / MINUTES_PER_DAY


def repeat_index(steps: Sequence[float], step: int) -> int:
    """Current step, clamped in case the deck's step list got shorter."""
    return min(step, len(steps) - 1)


def place_on_learning_step(
    card: CardState,
    steps: Sequence[float],
    index: int,
    now: datetime
) -> CardState:
    """
    Put a card on a learning step.

    The interval mirrors the step length so that a Learning card always
    carries a positive, sub-day interval.
    """
    return replace(
        card,
        state=CardPhase.LEARNING,
        step=index,
        interval=step_days(steps, index),
        due_at=now + timedelta(minutes=steps[index]),
    )


def place_on_relearning_step(
    card: CardState,
    steps: Sequence[float],
    index: int,
    now: datetime
) -> CardState:
    """
    Put a card on a relearning step.

    The interval is left alone: it is the whole-day interval the card
    returns to once it graduates. With no relearning steps configured the
    card simply waits out that interval.
    """
    if not steps:
        return replace(
            card,
            state=CardPhase.RELEARNING,
            step=0,
            due_at=now + timedelta(days=card.interval),
        )
    return replace(
        card,
        state=CardPhase.RELEARNING,
        step=index,
        due_at=now + timedelta(minutes=steps[index]),
    )


def advance(
    card: CardState,
    grade: Grade,
    steps: Sequence[float],
    now: datetime,
    place: Callable[[CardState, Sequence[float], int, datetime], CardState],
    graduate: Callable[[CardState, bool], CardState],
) -> CardState:
    """
    Apply one grade to a card that is on a step list.

    Args:
        card: Learning or Relearning card
        grade: Learner's grade
        steps: Step list for the card's phase (minutes)
        now: Review timestamp
        place: Puts the card on a given step index
        graduate: Moves the card to Review; second argument is True for Easy

    Returns:
        Updated card state
    """
    if grade == Grade.EASY:
        return graduate(card, True)

    if not steps:
        # Nothing to walk through: Good graduates, Again/Hard wait again.
        if grade == Grade.GOOD:
            return graduate(card, False)
        return place(card, steps, 0, now)

    if grade == Grade.AGAIN:
        return place(card, steps, 0, now)

    if grade == Grade.HARD:
        return place(card, steps, repeat_index(steps, card.step), now)

    next_index = card.step + 1
    if next_index >= len(steps):
        return graduate(card, False)
    return place(card, steps, next_index, now)
