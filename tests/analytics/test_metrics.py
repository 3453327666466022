from datetime import date, datetime, timezone

import pandas as pd
import pytest

from spacedeck.analytics.metrics import (
    build_day_index,
    compute_due_forecast,
    compute_heatmap,
    compute_retention,
    compute_state_counts,
    count_available,
    count_lapses,
    current_streak,
    longest_streak,
    summarize_answers,
    summarize_heatmap,
)


def events(rows):
    df = pd.DataFrame(rows, columns=["timestamp", "grade", "state_before"])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def test_day_index_is_inclusive():
    days = build_day_index(date(2026, 3, 1), date(2026, 3, 3))
    assert days == [date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)]
    assert build_day_index(date(2026, 3, 3), date(2026, 3, 1)) == []


def test_heatmap_zero_fills_and_uses_local_days():
    df = events([
        ("2026-03-01T10:00:00Z", 2, "review"),
        ("2026-03-01T23:30:00Z", 0, "review"),
    ])
    days = build_day_index(date(2026, 3, 1), date(2026, 3, 3))

    assert compute_heatmap(df, days, "UTC") == {
        date(2026, 3, 1): 2, date(2026, 3, 2): 0, date(2026, 3, 3): 0,
    }
    # 23:30 UTC is already March 2nd in Amsterdam
    amsterdam = compute_heatmap(df, days, "Europe/Amsterdam")
    assert amsterdam[date(2026, 3, 1)] == 1
    assert amsterdam[date(2026, 3, 2)] == 1


def test_retention():
    assert compute_retention(pd.DataFrame(columns=["grade"])) == 0.0
    df = events([
        ("2026-03-01T10:00:00Z", 0, "review"),
        ("2026-03-01T10:01:00Z", 2, "relearning"),
        ("2026-03-01T10:02:00Z", 3, "review"),
        ("2026-03-01T10:03:00Z", 1, "review"),
    ])
    assert compute_retention(df) == pytest.approx(0.75)


def test_lapses_only_count_review_failures():
    df = events([
        ("2026-03-01T10:00:00Z", 0, "review"),
        ("2026-03-01T10:01:00Z", 0, "relearning"),
        ("2026-03-01T10:02:00Z", 0, "learning"),
    ])
    assert count_lapses(df) == 1


def test_current_streak_allows_empty_today():
    active = {date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)}
    assert current_streak(active, date(2026, 3, 3)) == 3
    assert current_streak(active, date(2026, 3, 4)) == 3
    assert current_streak(active, date(2026, 3, 5)) == 0


def test_gap_breaks_streak():
    active = {date(2026, 2, 27), date(2026, 2, 28), date(2026, 3, 2)}
    assert current_streak(active, date(2026, 3, 2)) == 1
    assert longest_streak(active) == 2
    assert longest_streak([]) == 0


def test_summary():
    counts = {date(2026, 3, d): n for d, n in zip(range(1, 6), [2, 0, 3, 1, 0])}
    summary = summarize_heatmap(counts, date(2026, 3, 5))
    assert summary.total_days == 5
    assert summary.days_with_activity == 3
    assert summary.daily_average == 2.0
    assert summary.days_learned_percent == 60.0
    assert summary.longest_streak == 2
    assert summary.current_streak == 2


def test_due_forecast_counts_overdue_today():
    cards = pd.DataFrame([
        {"state": "review", "due_at": datetime(2026, 2, 20, tzinfo=timezone.utc)},
        {"state": "review", "due_at": datetime(2026, 3, 4, 8, tzinfo=timezone.utc)},
        {"state": "learning", "due_at": datetime(2026, 3, 2, 9, tzinfo=timezone.utc)},
        {"state": "new", "due_at": None},
    ])
    cards["due_at"] = pd.to_datetime(cards["due_at"], utc=True)
    days = build_day_index(date(2026, 3, 1), date(2026, 3, 5))

    forecast = compute_due_forecast(cards, days, date(2026, 3, 2), "UTC")
    assert forecast == {
        date(2026, 3, 1): 0,
        date(2026, 3, 2): 2,
        date(2026, 3, 3): 0,
        date(2026, 3, 4): 1,
        date(2026, 3, 5): 0,
    }


def test_state_counts_fold_relearning_into_learning():
    cards = pd.DataFrame({"state": ["new", "learning", "relearning", "review", "review"]})
    assert compute_state_counts(cards) == {"new": 1, "learning": 2, "review": 2, "total": 5}


def test_available_cards_split_like_the_queue():
    cards = pd.DataFrame([
        {"state": "review", "due_at": datetime(2026, 3, 1, tzinfo=timezone.utc)},
        {"state": "relearning", "due_at": datetime(2026, 3, 2, 11, tzinfo=timezone.utc)},
        {"state": "review", "due_at": datetime(2026, 3, 9, tzinfo=timezone.utc)},
        {"state": "learning", "due_at": datetime(2026, 3, 2, 11, 59, tzinfo=timezone.utc)},
        {"state": "learning", "due_at": datetime(2026, 3, 2, 12, 5, tzinfo=timezone.utc)},
        {"state": "new", "due_at": None},
    ])
    cards["due_at"] = pd.to_datetime(cards["due_at"], utc=True)

    now = pd.Timestamp("2026-03-02T12:00:00Z")
    assert count_available(cards, now) == {"due": 2, "learning": 1, "new": 1}
    assert count_available(pd.DataFrame(columns=["state", "due_at"]), now) == {"due": 0, "learning": 0, "new": 0}


def test_answers_breakdown():
    assert summarize_answers(pd.DataFrame(columns=["grade"])).cards_studied == 0
    df = events([
        ("2026-03-01T10:00:00Z", 0, "review"),
        ("2026-03-01T10:01:00Z", 2, "relearning"),
        ("2026-03-01T10:02:00Z", 3, "new"),
    ])
    answers = summarize_answers(df)
    assert answers.cards_studied == 3
    assert answers.cards_correct == 2
    assert answers.cards_incorrect == 1
    assert answers.retention_rate == pytest.approx(2 / 3)
