"""
Metric computations for study statistics.

Pure functions over the dataframes built by analytics.queries. Calendar
days are always taken in the learner's time zone, never in UTC.
"""

from __future__ import annotations
from datetime import date, timedelta
from typing import Iterable

import pandas as pd

from spacedeck.analytics.types import DayAnswers, HeatmapSummary
from spacedeck.srs.constants import CardPhase, Grade


def local_days(timestamps: pd.Series, tz: str) -> pd.Series:
    """
    Calendar date of each UTC timestamp as seen in `tz`.
    """
    if timestamps.empty:
        return pd.Series([], dtype="object")
    return timestamps.dt.tz_convert(tz).dt.date


def build_day_index(start: date, end: date) -> list[date]:
    """
    Dense list of days from start to end, both inclusive.
    """
    if end < start:
        return []
    return list(pd.date_range(start=start, end=end, freq="D").date)


def daily_review_counts(events_df: pd.DataFrame, tz: str) -> pd.Series:
    """
    Number of review events per local calendar day.
    """
    if events_df.empty:
        return pd.Series(dtype="int64")
    return local_days(events_df["timestamp"], tz).value_counts().sort_index().astype("int64")


def compute_heatmap(events_df: pd.DataFrame, days: list[date], tz: str) -> dict[date, int]:
    """
    Review count for every day in `days`, zero-filled.
    """
    counts = daily_review_counts(events_df, tz)
    dense = counts.reindex(days, fill_value=0)
    return {day: int(n) for day, n in dense.items()}


def compute_due_forecast(
    cards_df: pd.DataFrame,
    days: list[date],
    today: date,
    tz: str
) -> dict[date, int]:
    """
    Cards due on each day from today onwards.

    Overdue cards are counted on today; days before today are always zero.
    New cards have no due date and are never counted.
    """
    forecast = {day: 0 for day in days}
    if cards_df.empty:
        return forecast

    studied = cards_df[(cards_df["state"] != CardPhase.NEW.value) & cards_df["due_at"].notna()]
    if studied.empty:
        return forecast

    due_days = local_days(studied["due_at"], tz)
    due_days = due_days.where(due_days >= today, today)
    for day, n in due_days.value_counts().items():
        if day in forecast:
            forecast[day] = int(n)
    return forecast


def compute_retention(events_df: pd.DataFrame) -> float:
    """
    Share of events not graded Again. 0.0 when there are no events.
    """
    if events_df.empty:
        return 0.0
    return float((events_df["grade"] != int(Grade.AGAIN)).mean())


def count_lapses(events_df: pd.DataFrame) -> int:
    """Again answers given to cards that were in Review."""
    if events_df.empty:
        return 0
    lapsed = (events_df["grade"] == int(Grade.AGAIN)) & (events_df["state_before"] == CardPhase.REVIEW.value)
    return int(lapsed.sum())


def compute_average_ease(cards_df: pd.DataFrame) -> float:
    """
    Mean ease factor of cards that have been studied. 0.0 if none have.
    """
    if cards_df.empty:
        return 0.0
    studied = cards_df[cards_df["state"] != CardPhase.NEW.value]
    if studied.empty:
        return 0.0
    return float(studied["ease_factor"].mean())


def compute_state_counts(cards_df: pd.DataFrame) -> dict[str, int]:
    """
    Card totals by state. Relearning cards are counted as learning.
    """
    if cards_df.empty:
        return {"new": 0, "learning": 0, "review": 0, "total": 0}

    states = cards_df["state"].replace({CardPhase.RELEARNING.value: CardPhase.LEARNING.value})
    counts = states.value_counts()
    return {
        "new": int(counts.get(CardPhase.NEW.value, 0)),
        "learning": int(counts.get(CardPhase.LEARNING.value, 0)),
        "review": int(counts.get(CardPhase.REVIEW.value, 0)),
        "total": int(len(cards_df)),
    }


def count_due(cards_df: pd.DataFrame, cutoff: pd.Timestamp) -> int:
    """Studied cards with a due date at or before `cutoff`."""
    if cards_df.empty:
        return 0
    studied = cards_df[(cards_df["state"] != CardPhase.NEW.value) & cards_df["due_at"].notna()]
    return int((studied["due_at"] <= cutoff).sum())


def count_available(cards_df: pd.DataFrame, now: pd.Timestamp) -> dict[str, int]:
    """
    Cards that can be studied at `now`, split the way the queue draws them.

    "due" is Review and Relearning cards, "learning" is Learning cards (both
    only once due), "new" is every card not studied yet.
    """
    if cards_df.empty:
        return {"due": 0, "learning": 0, "new": 0}

    states = cards_df["state"]
    ready = cards_df["due_at"].notna() & (cards_df["due_at"] <= now)
    reviewing = states.isin([CardPhase.REVIEW.value, CardPhase.RELEARNING.value])
    return {
        "due": int((ready & reviewing).sum()),
        "learning": int((ready & (states == CardPhase.LEARNING.value)).sum()),
        "new": int((states == CardPhase.NEW.value).sum()),
    }


def summarize_answers(events_df: pd.DataFrame) -> DayAnswers:
    """Correct (anything but Again) and incorrect answers among `events_df`."""
    if events_df.empty:
        return DayAnswers()
    incorrect = int((events_df["grade"] == int(Grade.AGAIN)).sum())
    studied = int(len(events_df))
    return DayAnswers(
        cards_studied=studied,
        cards_correct=studied - incorrect,
        cards_incorrect=incorrect,
        retention_rate=compute_retention(events_df),
    )


# ---- Streaks ----

def current_streak(active_days: Iterable[date], today: date) -> int:
    """
    Consecutive active days ending today.

    A day without reviews breaks the streak, except today itself: a streak
    that ran through yesterday still counts while today is in progress.
    """
    active = set(active_days)
    day = today if today in active else today - timedelta(days=1)
    streak = 0
    while day in active:
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak(active_days: Iterable[date]) -> int:
    """Longest run of consecutive active days."""
    ordinals = pd.Series(sorted({d.toordinal() for d in active_days}), dtype="int64")
    if ordinals.empty:
        return 0
    run_ids = (ordinals.diff() != 1).cumsum()
    return int(run_ids.value_counts().max())


def summarize_heatmap(counts: dict[date, int], today: date) -> HeatmapSummary:
    """
    Headline numbers for a dense day -> review count mapping.

    daily_average is taken over active days only.
    """
    total_days = len(counts)
    active_days = [day for day, n in counts.items() if n > 0]
    total_reviews = sum(counts.values())

    daily_average = round(total_reviews / len(active_days), 1) if active_days else 0.0
    days_learned_percent = round(len(active_days) / total_days * 100, 1) if total_days else 0.0

    return HeatmapSummary(
        daily_average=daily_average,
        days_learned_percent=days_learned_percent,
        longest_streak=longest_streak(active_days),
        current_streak=current_streak(active_days, today),
        total_days=total_days,
        days_with_activity=len(active_days),
    )
