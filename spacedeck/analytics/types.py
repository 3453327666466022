"""
Types for study statistics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class StatsScope:
    """
    Which review events and cards a statistic covers.

    Leaving both fields as None covers the whole log.
    """
    user_id: Optional[str] = None
    deck_id: Optional[str] = None


@dataclass(frozen=True)
class HeatmapBucket:
    """Reviews done on one local calendar day, plus cards due that day."""
    date: date
    review_count: int
    cards_due: int = 0


@dataclass(frozen=True)
class HeatmapSummary:
    """
    Headline numbers shown above a heatmap.
    """
    daily_average: float
    days_learned_percent: float
    longest_streak: int
    current_streak: int
    total_days: int
    days_with_activity: int


@dataclass(frozen=True)
class DayAnswers:
    """
    How one day's reviews went. retention_rate is 0.0 on a day without
    reviews.
    """
    cards_studied: int = 0
    cards_correct: int = 0
    cards_incorrect: int = 0
    retention_rate: float = 0.0


@dataclass(frozen=True)
class DeckStats:
    retention_rate: float
    average_ease: float
    due_today: int
    total_cards: int
    lapses_last_30d: int
    state_counts: dict[str, int] = field(default_factory=dict)
    today: DayAnswers = field(default_factory=DayAnswers)


@dataclass(frozen=True)
class StudyStats:
    """
    A learner's streak and volume, plus what can be studied right now.
    """
    streak_days: int
    reviews_today: int
    reviews_this_week: int
    due_cards: int = 0        # Review/Relearning cards due now
    learning_cards: int = 0   # Learning cards due now
    new_cards: int = 0        # Cards never studied
