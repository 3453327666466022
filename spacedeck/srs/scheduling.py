"""
Scheduling - Main API for Grading Cards

Ties the scheduler, the settings resolver and the store together.

Main workflow:
1. Learner grades a card
2. Load its current state and the deck's effective config
3. Compute the new state (pure scheduler)
4. Commit state + review event atomically

Nothing here retries: on Conflict the caller decides whether a retry is
safe (it is, when an idempotency key was sent).
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from spacedeck.srs import database, scheduler, settings
from spacedeck.srs.card_state import CardState, ReviewEvent, initialize_new_card

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOutcome:
    """What the caller needs after a grade is submitted."""
    card: CardState
    event: ReviewEvent
    duplicate: bool = False

    @property
    def leech(self) -> bool:
        return self.event.leech


def submit_review(
    card_id: str,
    grade,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None
) -> ReviewOutcome:
    """
    Grade a card and persist the result.

    Args:
        card_id: Card being graded
        grade: Grade or int 0-3
        idempotency_key: Client nonce; resubmitting the same key for the
            same card returns the original result instead of grading twice
        now: Review timestamp (defaults to now, UTC)

    Returns:
        ReviewOutcome with the committed state and event

    Raises:
        NotFound: unknown card
        ValidationError: bad grade or corrupt stored state
        ConfigInvalid: the deck's settings are out of bounds
        Conflict: the card was graded concurrently
    """
    if now is None:
        now = datetime.now(timezone.utc)

    card = database.get_card_state(card_id)
    config = settings.resolve(card.deck_id)
    new_card, event = scheduler.schedule(card, grade, config, now, idempotency_key=idempotency_key)

    result = database.commit_schedule(card_id, new_card, event)
    if not result.duplicate:
        logger.info(
            "Card %s graded %s: %s -> %s, next due %s",
            card_id, event.grade.name, event.state_before.value,
            event.state_after.value, result.card.due_at.isoformat(),
        )
    return ReviewOutcome(card=result.card, event=result.event, duplicate=result.duplicate)


def verify_card_history(card_id: str) -> bool:
    """
    Replay a card's review log from New and compare with the stored state.

    Returns:
        True if the replayed state matches the stored one
    """
    stored = database.get_card_state(card_id)
    events = database.iter_review_events(card_id=card_id)
    config = settings.resolve(stored.deck_id)

    initial = initialize_new_card(stored.card_id, stored.deck_id, stored.user_id)
    replayed = scheduler.replay(initial, events, config)

    matches = _scheduling_fields(replayed) == _scheduling_fields(stored)
    if not matches:
        logger.warning("Card %s history does not replay to its stored state", card_id)
    return matches


def _scheduling_fields(card: CardState) -> tuple:
    return (
        card.state,
        card.interval,
        card.ease_factor,
        card.lapses,
        card.lapse_streak,
        card.step,
        card.reps,
        card.due_at,
        card.last_reviewed_at,
    )
