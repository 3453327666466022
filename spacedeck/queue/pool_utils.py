"""
Pool utilities for the review queue.

These helpers split a snapshot of cards into the pools the queue draws
from. They never touch the database and never decide the final order.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

from spacedeck.srs.constants import CardPhase


class QueueCard(Protocol):
    """Anything with an id, a phase and a due date (CardState, DueCard)."""
    card_id: str
    state: CardPhase
    due_at: Optional[datetime]


@dataclass
class QueuePools:
    """
    Cards eligible right now, grouped by how the queue treats them.
    """
    review: list = field(default_factory=list)     # Review + Relearning, due
    learning: list = field(default_factory=list)   # Learning, due
    new: list = field(default_factory=list)        # New, in caller order

    def __len__(self) -> int:
        return len(self.review) + len(self.learning) + len(self.new)


def split_pools(cards: Iterable[QueueCard], now: datetime) -> QueuePools:
    """
    Partition cards into due pools, sorted by ascending due date.

    Cards that are not yet due are dropped. Ties on due date fall back to
    card_id so the order is stable across calls.
    """
    pools = QueuePools()
    for card in cards:
        if card.state == CardPhase.NEW:
            pools.new.append(card)
        elif card.due_at is None or card.due_at > now:
            continue
        elif card.state == CardPhase.LEARNING:
            pools.learning.append(card)
        else:
            pools.review.append(card)

    pools.review.sort(key=lambda c: (c.due_at, c.card_id))
    pools.learning.sort(key=lambda c: (c.due_at, c.card_id))
    return pools


def take(items: list, quota: Optional[int]) -> list:
    """First `quota` items (all of them when quota is None)."""
    if quota is None:
        return list(items)
    return list(items[:max(quota, 0)])
