"""
Data-loading helpers for statistics.

Both loaders read through the session they are given, so a caller holding
a snapshot session gets events and cards from the same point in time.
"""

from __future__ import annotations
from datetime import datetime
from typing import Optional

import pandas as pd
from sqlalchemy.orm import Session

from spacedeck.analytics.constants import CARD_COLUMNS, EVENT_COLUMNS
from spacedeck.analytics.types import StatsScope
from spacedeck.srs import database


def load_review_events_df(
    session: Session,
    scope: StatsScope,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> pd.DataFrame:
    """
    Load review events for a scope into a dataframe.

    `start` is inclusive, `end` exclusive. Timestamps are UTC.
    """
    events = database.iter_review_events(
        user_id=scope.user_id,
        deck_id=scope.deck_id,
        start=start,
        end=end,
        session=session,
    )
    if not events:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame([
        {
            "card_id": e.card_id,
            "deck_id": e.deck_id,
            "user_id": e.user_id,
            "timestamp": e.timestamp,
            "grade": int(e.grade),
            "state_before": e.state_before.value,
            "state_after": e.state_after.value,
            "ease_after": e.ease_after,
        }
        for e in events
    ])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


def load_cards_df(session: Session, scope: StatsScope) -> pd.DataFrame:
    """
    Load current card states for a scope.
    """
    cards = database.list_card_states(user_id=scope.user_id, deck_id=scope.deck_id, session=session)
    if not cards:
        return pd.DataFrame(columns=CARD_COLUMNS)

    df = pd.DataFrame([
        {
            "card_id": c.card_id,
            "deck_id": c.deck_id,
            "state": c.state.value,
            "ease_factor": c.ease_factor,
            "due_at": c.due_at,
        }
        for c in cards
    ])
    df["due_at"] = pd.to_datetime(df["due_at"], utc=True)
    return df
