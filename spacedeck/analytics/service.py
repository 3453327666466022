"""
Service layer for study statistics.

Every public call opens one snapshot session and reads events and cards
through it, so a review committed mid-call is either fully counted or not
at all. Nothing is cached between calls; all numbers come from the log.
"""

from __future__ import annotations
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pandas as pd

from spacedeck.analytics.constants import (
    LAPSE_WINDOW_DAYS,
    RETENTION_WINDOW_DAYS,
    STREAK_WINDOW_DAYS,
)
from spacedeck.analytics.metrics import (
    build_day_index,
    compute_average_ease,
    compute_due_forecast,
    compute_heatmap,
    compute_retention,
    compute_state_counts,
    count_available,
    count_due,
    count_lapses,
    current_streak,
    daily_review_counts,
    summarize_answers,
    summarize_heatmap,
)
from spacedeck.analytics.queries import load_cards_df, load_review_events_df
from spacedeck.analytics.types import (
    DeckStats,
    HeatmapBucket,
    HeatmapSummary,
    StatsScope,
    StudyStats,
)
from spacedeck.config import get_timezone
from spacedeck.errors import NotFound, ValidationError
from spacedeck.srs.database import snapshot_session

logger = logging.getLogger(__name__)


# ---- Helpers ----

def _zone_name(tz: Optional[str]) -> str:
    try:
        return get_timezone(tz).key
    except ValueError as exc:
        raise ValidationError(str(exc), {"tz": tz}) from exc


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        raise ValidationError("now must be timezone-aware", {"now": now.isoformat()})
    return now


def _local_midnight(day: date, zone: str) -> datetime:
    """UTC instant at which `day` starts in `zone`."""
    return datetime.combine(day, time.min, tzinfo=get_timezone(zone)).astimezone(timezone.utc)


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationError(
            "Date range end precedes start",
            {"start": start.isoformat(), "end": end.isoformat()},
        )


# ---- Heatmap ----

def heatmap(
    scope: StatsScope,
    start: date,
    end: date,
    tz: Optional[str] = None
) -> dict[date, int]:
    """
    Review counts per local calendar day.

    Args:
        scope: User and/or deck filter
        start: First day (inclusive)
        end: Last day (inclusive)
        tz: Zone defining calendar days (defaults to the configured zone)

    Returns:
        Mapping of every day in the range to its review count (zero-filled)
    """
    _check_range(start, end)
    zone = _zone_name(tz)
    with snapshot_session() as session:
        events_df = load_review_events_df(
            session, scope,
            start=_local_midnight(start, zone),
            end=_local_midnight(end + timedelta(days=1), zone),
        )
    return compute_heatmap(events_df, build_day_index(start, end), zone)


def heatmap_buckets(
    scope: StatsScope,
    start: date,
    end: date,
    tz: Optional[str] = None,
    now: Optional[datetime] = None
) -> list[HeatmapBucket]:
    """
    Heatmap buckets with review counts and, from today on, cards due.
    """
    _check_range(start, end)
    zone = _zone_name(tz)
    now = _now(now)
    today = now.astimezone(get_timezone(zone)).date()
    days = build_day_index(start, end)

    with snapshot_session() as session:
        events_df = load_review_events_df(
            session, scope,
            start=_local_midnight(start, zone),
            end=_local_midnight(end + timedelta(days=1), zone),
        )
        cards_df = load_cards_df(session, scope)

    counts = compute_heatmap(events_df, days, zone)
    forecast = compute_due_forecast(cards_df, days, today, zone)
    return [HeatmapBucket(date=day, review_count=counts[day], cards_due=forecast[day]) for day in days]


def heatmap_summary(
    scope: StatsScope,
    start: date,
    end: date,
    tz: Optional[str] = None,
    now: Optional[datetime] = None
) -> HeatmapSummary:
    """
    Averages and streaks over a heatmap range.

    The current streak is measured back from today (clipped to the range).
    """
    zone = _zone_name(tz)
    today = _now(now).astimezone(get_timezone(zone)).date()
    counts = heatmap(scope, start, end, tz=zone)
    return summarize_heatmap(counts, min(today, end))


# ---- Deck and Study Stats ----

def deck_stats(
    deck_id: str,
    now: Optional[datetime] = None,
    tz: Optional[str] = None,
    retention_days: int = RETENTION_WINDOW_DAYS
) -> DeckStats:
    """
    Retention, ease and workload numbers for one deck.

    Args:
        deck_id: Deck to report on
        now: Reference time (defaults to now, UTC)
        tz: Zone defining "today" for due_today and the today breakdown
        retention_days: Window for retention_rate

    Raises:
        NotFound: if the deck has no cards
    """
    zone = _zone_name(tz)
    now = _now(now)
    today = now.astimezone(get_timezone(zone)).date()
    day_start = _local_midnight(today, zone)
    start_of_today = pd.Timestamp(day_start)
    start_of_tomorrow = pd.Timestamp(_local_midnight(today + timedelta(days=1), zone))
    scope = StatsScope(deck_id=deck_id)

    window_start = min(now - timedelta(days=max(retention_days, LAPSE_WINDOW_DAYS)), day_start)
    with snapshot_session() as session:
        cards_df = load_cards_df(session, scope)
        events_df = load_review_events_df(session, scope, start=window_start)

    if cards_df.empty:
        raise NotFound(f"Deck {deck_id} not found", {"deck_id": deck_id})

    retention_events = events_df
    lapse_events = events_df
    today_events = events_df
    if not events_df.empty:
        timestamps = events_df["timestamp"]
        retention_events = events_df[timestamps >= pd.Timestamp(now - timedelta(days=retention_days))]
        lapse_events = events_df[timestamps >= pd.Timestamp(now - timedelta(days=LAPSE_WINDOW_DAYS))]
        today_events = events_df[(timestamps >= start_of_today) & (timestamps < start_of_tomorrow)]

    stats = DeckStats(
        retention_rate=compute_retention(retention_events),
        average_ease=compute_average_ease(cards_df),
        due_today=count_due(cards_df, start_of_tomorrow - pd.Timedelta(microseconds=1)),
        total_cards=int(len(cards_df)),
        lapses_last_30d=count_lapses(lapse_events),
        state_counts=compute_state_counts(cards_df),
        today=summarize_answers(today_events),
    )
    logger.debug("Deck stats for %s: %s", deck_id, stats)
    return stats


def study_stats(
    user_id: str,
    now: Optional[datetime] = None,
    tz: Optional[str] = None
) -> StudyStats:
    """
    Streak and recent review volume for a learner, with the number of
    cards available to study at `now`.

    reviews_this_week counts from Monday of the current local week. Only
    recent history is read: the window starts STREAK_WINDOW_DAYS back and
    doubles while the current streak still reaches its first day.
    """
    zone = _zone_name(tz)
    now = _now(now)
    today = now.astimezone(get_timezone(zone)).date()
    week_start = today - timedelta(days=today.weekday())
    scope = StatsScope(user_id=user_id)

    window = STREAK_WINDOW_DAYS
    with snapshot_session() as session:
        cards_df = load_cards_df(session, scope)
        while True:
            first_day = min(week_start, today - timedelta(days=window))
            events_df = load_review_events_df(
                session, scope,
                start=_local_midnight(first_day, zone),
                end=_local_midnight(today + timedelta(days=1), zone),
            )
            per_day = daily_review_counts(events_df, zone)
            streak = current_streak(per_day.index, today)
            if streak < (today - first_day).days:
                break
            window *= 2

    this_week = sum(int(n) for day, n in per_day.items() if day >= week_start)
    available = count_available(cards_df, pd.Timestamp(now))

    return StudyStats(
        streak_days=streak,
        reviews_today=int(per_day.get(today, 0)),
        reviews_this_week=this_week,
        due_cards=available["due"],
        learning_cards=available["learning"],
        new_cards=available["new"],
    )
