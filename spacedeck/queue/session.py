"""
Study Session - Database-Backed Review Stream

Wraps next_batch around the card store. Every time the caller resumes the
generator, due cards, new cards and what is left of today's quotas are read
again, so a card graded a moment ago is seen in its new state.

Usage:
    for card_id in study_session(user_id, deck_id):
        show(card_id)
        submit_review(card_id, grade, idempotency_key=nonce)
"""

from __future__ import annotations
import logging
from datetime import datetime, time, timezone
from itertools import chain
from typing import Callable, Iterator, Optional

from spacedeck.config import get_timezone
from spacedeck.queue.selector import next_batch
from spacedeck.srs import database, settings
from spacedeck.srs.constants import CardPhase, REVIEW_PHASES

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(now: datetime, tz: Optional[str] = None) -> datetime:
    """Local midnight of the calendar day containing `now`, as UTC."""
    zone = get_timezone(tz)
    local_date = now.astimezone(zone).date()
    return datetime.combine(local_date, time.min, tzinfo=zone).astimezone(timezone.utc)


def remaining_quotas(
    user_id: str,
    deck_id: Optional[str],
    now: datetime,
    tz: Optional[str] = None
) -> tuple[int, int]:
    """
    New cards and reviews still allowed today.

    Returns:
        (new_left, reviews_left), never negative
    """
    policy = settings.resolve_policy(deck_id)
    day_start = start_of_day(now, tz)

    introduced = database.count_new_introduced(day_start, user_id=user_id, deck_id=deck_id)
    reviewed = database.count_reviews_since(
        day_start, user_id=user_id, deck_id=deck_id, states_before=REVIEW_PHASES
    )
    new_left = max(policy.new_cards_per_day - introduced, 0)
    reviews_left = max(policy.max_reviews_per_day - reviewed, 0)
    return new_left, reviews_left


def study_session(
    user_id: str,
    deck_id: Optional[str] = None,
    limit: Optional[int] = None,
    tz: Optional[str] = None,
    clock: Callable[[], datetime] = _utcnow
) -> Iterator[str]:
    """
    Yield card ids one at a time until nothing is due or `limit` is reached.

    The caller is expected to grade each yielded card before resuming;
    an ungraded card that is still due is offered again.

    Args:
        user_id: Learner whose cards are studied
        deck_id: Restrict to one deck (None for all of the user's decks)
        limit: Maximum cards to yield
        tz: Zone that defines "today" for the daily quotas
        clock: Source of the current time
    """
    shown = 0
    since_new = 0
    while limit is None or shown < limit:
        now = clock()
        policy = settings.resolve_policy(deck_id)
        new_left, reviews_left = remaining_quotas(user_id, deck_id, now, tz)

        # One card per pass: the head of each ordered stream is enough
        new_head = database.list_new_cards(user_id=user_id, deck_id=deck_id, limit=min(new_left, 1))
        candidates = chain(
            database.list_due_cards(
                now, user_id=user_id, deck_id=deck_id,
                states=REVIEW_PHASES, limit=min(reviews_left, 1),
            ),
            database.list_due_cards(
                now, user_id=user_id, deck_id=deck_id,
                states=(CardPhase.LEARNING,), limit=1,
            ),
            new_head,
        )
        batch = next_batch(
            candidates, now, limit=1, policy=policy,
            new_quota=new_left, review_quota=reviews_left, due_since_new=since_new,
        )
        card_id = next(batch, None)
        if card_id is None:
            logger.info("Study session for %s finished after %s cards", user_id, shown)
            return

        shown += 1
        since_new = 0 if any(c.card_id == card_id for c in new_head) else since_new + 1
        yield card_id
