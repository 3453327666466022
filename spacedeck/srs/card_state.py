"""
Card State - Scheduling State and Review Events

Defines the immutable values the scheduler consumes and produces:
- CardState: current scheduling state of one card
- ReviewEvent: one grading action, appended to the review log
- DueCard: the slim (card_id, due_at, state) row the queue works on
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from spacedeck.errors import ValidationError
from spacedeck.srs.constants import CardPhase, DEFAULT_EASE, Grade


@dataclass(frozen=True)
class CardState:
    """
    Scheduling state for a single card.

    `interval` is in days. While a card is Learning it holds the current
    step length (sub-day); in Review and Relearning it holds whole days,
    and for a Relearning card it is the interval the card graduates back to.
    """
    card_id: str
    deck_id: str
    user_id: str

    state: CardPhase = CardPhase.NEW
    interval: float = 0.0
    ease_factor: float = DEFAULT_EASE

    # Lifetime lapse count and the consecutive run used for leech detection
    lapses: int = 0
    lapse_streak: int = 0

    # Index into learning_steps / relearning_steps
    step: int = 0
    reps: int = 0

    due_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None

    # Optimistic concurrency token, bumped by the store on every commit
    version: int = 0

    @property
    def is_new(self) -> bool:
        return self.state == CardPhase.NEW

    def is_due(self, now: datetime) -> bool:
        """True if the card has a due date at or before `now`."""
        return self.due_at is not None and self.due_at <= now


@dataclass(frozen=True)
class ReviewEvent:
    """
    Immutable record of one grading action.

    Captures the scheduling state before and after, so statistics and
    replays never need the card row.
    """
    card_id: str
    deck_id: str
    user_id: str
    timestamp: datetime
    grade: Grade

    state_before: CardPhase
    state_after: CardPhase
    interval_before: float
    interval_after: float
    ease_before: float
    ease_after: float

    leech: bool = False
    idempotency_key: Optional[str] = None

    @property
    def is_lapse(self) -> bool:
        """A failed answer on a card that was in Review."""
        return self.grade == Grade.AGAIN and self.state_before == CardPhase.REVIEW


@dataclass(frozen=True)
class DueCard:
    """Queue candidate: just enough state to order a study session."""
    card_id: str
    due_at: Optional[datetime]
    state: CardPhase


def initialize_new_card(card_id: str, deck_id: str, user_id: str) -> CardState:
    """
    Initialize state for a new card (never studied).

    Args:
        card_id: Unique card identifier
        deck_id: Owning deck
        user_id: Owning user

    Returns:
        CardState in the New state with default ease
    """
    return CardState(card_id=card_id, deck_id=deck_id, user_id=user_id)


def coerce_grade(grade) -> Grade:
    """
    Convert a raw grade (Grade, int 0-3, or name) to a Grade.

    Raises:
        ValidationError: for anything else, including bools
    """
    if isinstance(grade, Grade):
        return grade
    if isinstance(grade, str):
        try:
            return Grade[grade.strip().upper()]
        except KeyError:
            raise ValidationError(f"Unknown grade: {grade!r}", {"grade": grade}) from None
    if isinstance(grade, int) and not isinstance(grade, bool):
        try:
            return Grade(grade)
        except ValueError:
            raise ValidationError(f"Grade out of range: {grade!r}", {"grade": grade}) from None
    raise ValidationError(f"Invalid grade: {grade!r}", {"grade": grade})


def validate_card_state(card: CardState) -> None:
    """
    Reject corrupt input state. Nothing is clamped here.

    Raises:
        ValidationError: if the state cannot be scheduled
    """
    if not isinstance(card.state, CardPhase):
        raise ValidationError(f"Unknown card state: {card.state!r}", {"card_id": card.card_id})
    if card.interval < 0:
        raise ValidationError(
            f"Negative interval on card {card.card_id}: {card.interval}",
            {"card_id": card.card_id, "interval": card.interval},
        )
    if card.ease_factor <= 0:
        raise ValidationError(
            f"Non-positive ease factor on card {card.card_id}: {card.ease_factor}",
            {"card_id": card.card_id, "ease_factor": card.ease_factor},
        )
    if card.lapses < 0 or card.lapse_streak < 0 or card.step < 0 or card.reps < 0:
        raise ValidationError(f"Negative counter on card {card.card_id}", {"card_id": card.card_id})
    if card.state != CardPhase.NEW and card.due_at is None:
        raise ValidationError(
            f"Card {card.card_id} in state {card.state.value} has no due date",
            {"card_id": card.card_id},
        )
