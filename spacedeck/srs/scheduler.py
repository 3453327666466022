"""
Scheduler - Card State Machine

Pure scheduling (no database calls, no clock reads).

Main workflow:
1. Validate the grade and the incoming card state
2. Dispatch on the card's state (New, Learning, Review, Relearning)
3. Apply step or review update rules
4. Return the new card state + the review event describing the change

The caller persists both atomically (see database.commit_schedule).
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional, Tuple

from spacedeck.errors import ValidationError
from spacedeck.srs import learning_steps, review_updates
from spacedeck.srs.card_state import (
    CardState,
    ReviewEvent,
    coerce_grade,
    validate_card_state,
)
from spacedeck.srs.constants import CardPhase, Grade
from spacedeck.srs.params import AlgorithmConfig, validate_config


def schedule(
    card: CardState,
    grade,
    config: AlgorithmConfig,
    now: datetime,
    idempotency_key: Optional[str] = None
) -> Tuple[CardState, ReviewEvent]:
    """
    Grade a card and compute its next state and due date.

    Deterministic: the same (card, grade, config, now) always yields the
    same result. `version` is passed through unchanged; the store bumps it
    on commit.

    Args:
        card: Current card state
        grade: Grade, or an int 0-3
        config: Effective algorithm config for the card's deck
        now: Timezone-aware review timestamp
        idempotency_key: Client nonce carried on the event for deduplication

    Returns:
        Tuple of (new_card_state, review_event)

    Raises:
        ValidationError: invalid grade, corrupt card state, or naive `now`
        ConfigInvalid: config fails sanity bounds
    """
    grade = coerce_grade(grade)
    validate_card_state(card)
    validate_config(config)
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValidationError("Review timestamp must be timezone-aware", {"now": now.isoformat()})

    if card.state == CardPhase.NEW:
        updated = _schedule_new(card, grade, config, now)
    elif card.state == CardPhase.LEARNING:
        updated = _schedule_learning(card, grade, config, now)
    elif card.state == CardPhase.REVIEW:
        updated = _schedule_review(card, grade, config, now)
    else:
        updated = _schedule_relearning(card, grade, config, now)

    updated = replace(updated, reps=card.reps + 1, last_reviewed_at=now)

    is_lapse = grade == Grade.AGAIN and card.state == CardPhase.REVIEW
    leech = is_lapse and updated.lapse_streak >= config.lapse_policy.leech_threshold

    event = ReviewEvent(
        card_id=card.card_id,
        deck_id=card.deck_id,
        user_id=card.user_id,
        timestamp=now,
        grade=grade,
        state_before=card.state,
        state_after=updated.state,
        interval_before=card.interval,
        interval_after=updated.interval,
        ease_before=card.ease_factor,
        ease_after=updated.ease_factor,
        leech=leech,
        idempotency_key=idempotency_key,
    )
    return updated, event


def _graduate_from_learning(config: AlgorithmConfig, now: datetime):
    def graduate(card: CardState, easy: bool) -> CardState:
        if easy:
            card = replace(card, ease_factor=card.ease_factor + config.easy_ease_bonus)
            return review_updates.graduate(card, config.easy_interval, config, now)
        return review_updates.graduate(card, config.graduating_interval, config, now)
    return graduate


def _schedule_new(card: CardState, grade: Grade, config: AlgorithmConfig, now: datetime) -> CardState:
    """
    First grading of a card.

    The card adopts the deck's starting ease. Good skips the first step
    (it counts as passing it); Easy graduates straight away.
    """
    steps = config.learning_steps
    seeded = replace(card, ease_factor=config.starting_ease, step=0, interval=0.0)
    graduate = _graduate_from_learning(config, now)

    if grade in (Grade.AGAIN, Grade.HARD):
        return learning_steps.place_on_learning_step(seeded, steps, 0, now)
    if grade == Grade.GOOD:
        if len(steps) > 1:
            return learning_steps.place_on_learning_step(seeded, steps, 1, now)
        return graduate(seeded, False)
    return graduate(seeded, True)


def _schedule_learning(card: CardState, grade: Grade, config: AlgorithmConfig, now: datetime) -> CardState:
    return learning_steps.advance(
        card,
        grade,
        config.learning_steps,
        now,
        place=learning_steps.place_on_learning_step,
        graduate=_graduate_from_learning(config, now),
    )


def _schedule_review(card: CardState, grade: Grade, config: AlgorithmConfig, now: datetime) -> CardState:
    if grade != Grade.AGAIN:
        return review_updates.apply_review_success(card, grade, config, now)

    lapsed = review_updates.apply_lapse(card, config)
    return learning_steps.place_on_relearning_step(lapsed, config.relearning_steps, 0, now)


def _schedule_relearning(card: CardState, grade: Grade, config: AlgorithmConfig, now: datetime) -> CardState:
    """
    Relearning walks the relearning steps, then returns to Review with the
    interval set at lapse time (not the graduating interval).
    """
    def graduate(relearned: CardState, easy: bool) -> CardState:
        return review_updates.graduate(relearned, review_updates.round_days(relearned.interval), config, now)

    return learning_steps.advance(
        card,
        grade,
        config.relearning_steps,
        now,
        place=learning_steps.place_on_relearning_step,
        graduate=graduate,
    )


def replay(
    initial: CardState,
    events: Iterable[ReviewEvent],
    config: AlgorithmConfig
) -> CardState:
    """
    Rebuild a card's state by re-applying its logged grades in order.

    Reproduces the stored state as long as the deck's config did not change
    between reviews. The returned state keeps `initial.version`.
    """
    card = initial
    for event in events:
        card, _ = schedule(card, event.grade, config, event.timestamp)
    return card
