"""
Review Queue Selector - Which Card to Study Next

Orders a snapshot of cards into a study stream:
1. Review/Relearning cards that are due, most overdue first
2. Learning cards that are due, earliest first
3. New cards, one after every `new_card_spacing` due cards, and the rest
   once the due cards run out

The stream is a generator: callers pull one id, grade it, and call again
with fresh cards. Nothing about due status is remembered between calls.
"""

from __future__ import annotations
from datetime import datetime
from typing import Iterable, Iterator, Optional

from spacedeck.errors import ValidationError
from spacedeck.queue.pool_utils import QueueCard, split_pools, take
from spacedeck.srs.params import QueuePolicy


def _check_quota(name: str, value: Optional[int]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must not be negative", {name: value})


def next_batch(
    cards: Iterable[QueueCard],
    now: datetime,
    limit: Optional[int],
    policy: QueuePolicy,
    new_quota: Optional[int] = None,
    review_quota: Optional[int] = None,
    due_since_new: int = 0
) -> Iterator[str]:
    """
    Lazily yield the ids of cards to study, in presentation order.

    Args:
        cards: Candidate cards (CardState or DueCard)
        now: Timezone-aware current time
        limit: Maximum ids to yield (None for no cap)
        policy: Queue policy (new-card spacing, daily defaults)
        new_quota: New cards still allowed; defaults to policy.new_cards_per_day
        review_quota: Review/Relearning cards still allowed; None for no cap
        due_since_new: Due cards already shown since the last New card, for
            callers that pull one card per call

    Yields:
        Card ids; never a non-New card with due_at > now

    Raises:
        ValidationError: naive `now` or negative limit/quota
    """
    if now.tzinfo is None:
        raise ValidationError("now must be timezone-aware", {"now": now.isoformat()})
    _check_quota("limit", limit)
    _check_quota("new_quota", new_quota)
    _check_quota("review_quota", review_quota)
    _check_quota("due_since_new", due_since_new)

    if new_quota is None:
        new_quota = policy.new_cards_per_day

    pools = split_pools(cards, now)
    due = take(pools.review, review_quota) + pools.learning
    new = take(pools.new, new_quota)
    return _interleave(due, new, policy.new_card_spacing, limit, due_since_new)


def _interleave(
    due: list,
    new: list,
    spacing: int,
    limit: Optional[int],
    since_new: int = 0
) -> Iterator[str]:
    remaining = limit
    new_iter = iter(new)

    def budget_left() -> bool:
        return remaining is None or remaining > 0

    for card in due:
        if since_new >= spacing:
            fresh = next(new_iter, None)
            if fresh is not None:
                if not budget_left():
                    return
                yield fresh.card_id
                if remaining is not None:
                    remaining -= 1
            since_new = 0

        if not budget_left():
            return
        yield card.card_id
        if remaining is not None:
            remaining -= 1
        since_new += 1

    for fresh in new_iter:
        if not budget_left():
            return
        yield fresh.card_id
        if remaining is not None:
            remaining -= 1
