"""
Constants for study statistics.
"""

from __future__ import annotations

from typing import Final


RETENTION_WINDOW_DAYS: Final[int] = 30
LAPSE_WINDOW_DAYS: Final[int] = 30

EVENT_COLUMNS: Final[list[str]] = [
    "card_id", "deck_id", "user_id", "timestamp", "grade",
    "state_before", "state_after", "ease_after",
]
CARD_COLUMNS: Final[list[str]] = ["card_id", "deck_id", "state", "ease_factor", "due_at"]

# Buckets reported in DeckStats.state_counts; relearning counts as learning
STATE_COUNT_KEYS: Final[list[str]] = ["new", "learning", "review", "total"]

# study_stats first loads this many days of history and widens the window
# (doubling) only while the current streak reaches its start
STREAK_WINDOW_DAYS: Final[int] = 60
