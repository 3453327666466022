from datetime import date, datetime, timedelta, timezone

import pytest

from spacedeck import analytics
from spacedeck.analytics import service
from spacedeck.errors import NotFound, ValidationError
from spacedeck.srs import database
from spacedeck.srs.constants import Grade
from spacedeck.srs.scheduling import submit_review

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def deck(db):
    """
    c1: Easy on Mar 1 (Review, 4 days), lapsed on Mar 5
    c2: Good on Mar 1, left in Learning
    c3: never studied
    """
    for card_id in ("c1", "c2", "c3"):
        database.add_card(card_id, "spanish", "ana", created_at=T0 - timedelta(days=1))
    submit_review("c1", Grade.EASY, now=T0)
    submit_review("c2", Grade.GOOD, now=T0)
    submit_review("c1", Grade.AGAIN, now=NOW)
    return "spanish"


def test_deck_stats(deck):
    stats = analytics.deck_stats(deck, now=NOW, tz="UTC")
    assert stats.total_cards == 3
    assert stats.retention_rate == pytest.approx(2 / 3)
    assert stats.lapses_last_30d == 1
    assert stats.average_ease == pytest.approx((2.45 + 2.5) / 2)
    assert stats.due_today == 2
    assert stats.state_counts == {"new": 1, "learning": 2, "review": 0, "total": 3}
    assert stats.today == analytics.DayAnswers(
        cards_studied=1, cards_correct=0, cards_incorrect=1, retention_rate=0.0,
    )


def test_deck_stats_retention_window(deck):
    stats = analytics.deck_stats(deck, now=NOW, tz="UTC", retention_days=1)
    assert stats.retention_rate == 0.0


def test_deck_stats_without_reviews(db):
    database.add_card("x", "empty", "ana")
    stats = analytics.deck_stats("empty", now=NOW)
    assert stats.retention_rate == 0.0
    assert stats.average_ease == 0.0
    assert stats.due_today == 0


def test_unknown_deck(db):
    with pytest.raises(NotFound):
        analytics.deck_stats("nope", now=NOW)


def test_heatmap_totals_match_log(deck):
    scope = analytics.StatsScope(user_id="ana")
    counts = analytics.heatmap(scope, date(2026, 3, 1), date(2026, 3, 7), tz="UTC")

    assert counts[date(2026, 3, 1)] == 2
    assert counts[date(2026, 3, 5)] == 1
    assert len(counts) == 7
    assert sum(counts.values()) == len(database.iter_review_events(user_id="ana"))


def test_heatmap_scope_filters(deck):
    database.add_card("f1", "french", "ana")
    submit_review("f1", Grade.GOOD, now=T0)

    spanish = analytics.heatmap(analytics.StatsScope(deck_id="spanish"), date(2026, 3, 1), date(2026, 3, 1), tz="UTC")
    everything = analytics.heatmap(analytics.StatsScope(), date(2026, 3, 1), date(2026, 3, 1), tz="UTC")
    assert spanish[date(2026, 3, 1)] == 2
    assert everything[date(2026, 3, 1)] == 3


def test_heatmap_rejects_reversed_range(db):
    with pytest.raises(ValidationError):
        analytics.heatmap(analytics.StatsScope(), date(2026, 3, 5), date(2026, 3, 1))


def test_heatmap_buckets_forecast_due(deck):
    buckets = analytics.heatmap_buckets(
        analytics.StatsScope(deck_id="spanish"), date(2026, 3, 1), date(2026, 3, 7), tz="UTC", now=NOW,
    )
    by_day = {b.date: b for b in buckets}
    assert [b.date for b in buckets] == [date(2026, 3, d) for d in range(1, 8)]
    assert by_day[date(2026, 3, 1)].cards_due == 0
    assert by_day[date(2026, 3, 5)].cards_due == 2
    assert by_day[date(2026, 3, 5)].review_count == 1


def test_heatmap_summary(deck):
    summary = analytics.heatmap_summary(
        analytics.StatsScope(user_id="ana"), date(2026, 3, 1), date(2026, 3, 5), tz="UTC", now=NOW,
    )
    assert summary.total_days == 5
    assert summary.days_with_activity == 2
    assert summary.daily_average == 1.5
    assert summary.days_learned_percent == 40.0
    assert summary.current_streak == 1
    assert summary.longest_streak == 1


def test_study_stats_streak_and_week(db):
    for card_id in ("a", "b", "c", "d"):
        database.add_card(card_id, "spanish", "ana")

    # Friday of the previous week, then Monday to Wednesday
    submit_review("a", Grade.GOOD, now=datetime(2026, 2, 27, 10, tzinfo=timezone.utc))
    submit_review("b", Grade.GOOD, now=datetime(2026, 3, 2, 10, tzinfo=timezone.utc))
    submit_review("c", Grade.GOOD, now=datetime(2026, 3, 3, 10, tzinfo=timezone.utc))
    submit_review("d", Grade.GOOD, now=datetime(2026, 3, 4, 8, tzinfo=timezone.utc))
    submit_review("d", Grade.GOOD, now=datetime(2026, 3, 4, 9, tzinfo=timezone.utc))

    stats = analytics.study_stats("ana", now=datetime(2026, 3, 4, 12, tzinfo=timezone.utc), tz="UTC")
    assert stats.streak_days == 3
    assert stats.reviews_today == 2
    assert stats.reviews_this_week == 4

    tomorrow = analytics.study_stats("ana", now=datetime(2026, 3, 5, 12, tzinfo=timezone.utc), tz="UTC")
    assert tomorrow.streak_days == 3
    assert tomorrow.reviews_today == 0


def test_study_stats_follow_time_zone(db):
    database.add_card("a", "spanish", "ana")
    submit_review("a", Grade.GOOD, now=datetime(2026, 3, 3, 23, 30, tzinfo=timezone.utc))
    now = datetime(2026, 3, 4, 1, 0, tzinfo=timezone.utc)

    assert analytics.study_stats("ana", now=now, tz="UTC").reviews_today == 0
    assert analytics.study_stats("ana", now=now, tz="Asia/Tokyo").reviews_today == 1


def test_study_stats_rejects_unknown_zone(db):
    with pytest.raises(ValidationError):
        analytics.study_stats("ana", now=NOW, tz="Mars/Olympus")


def test_deck_stats_today_uses_local_day(deck):
    submit_review("c3", Grade.GOOD, now=NOW + timedelta(minutes=5))
    later = NOW + timedelta(hours=1)

    stats = analytics.deck_stats(deck, now=later, tz="UTC")
    assert stats.today.cards_studied == 2
    assert stats.today.cards_correct == 1
    assert stats.today.cards_incorrect == 1
    assert stats.today.retention_rate == pytest.approx(0.5)

    midnight = NOW + timedelta(hours=15)
    assert analytics.deck_stats(deck, now=midnight, tz="UTC").today.cards_studied == 0
    # midnight UTC is still the afternoon of March 5th in Los Angeles
    assert analytics.deck_stats(deck, now=midnight, tz="America/Los_Angeles").today.cards_studied == 2


def test_study_stats_counts_available_cards(deck):
    stats = analytics.study_stats("ana", now=NOW + timedelta(hours=1), tz="UTC")
    # c1 relearning is due again, c2 waits on a learning step, c3 is new
    assert stats.due_cards == 1
    assert stats.learning_cards == 1
    assert stats.new_cards == 1


def test_study_stats_widens_window_for_long_streaks(db, monkeypatch):
    days = [datetime(2026, 2, 24, 10, tzinfo=timezone.utc) + timedelta(days=i) for i in range(9)]
    for i, reviewed_at in enumerate(days):
        database.add_card(f"s{i}", "spanish", "ana")
        submit_review(f"s{i}", Grade.GOOD, now=reviewed_at)

    loads = []
    real_load = service.load_review_events_df

    def counting_load(session, scope, start=None, end=None):
        loads.append(start)
        return real_load(session, scope, start=start, end=end)

    monkeypatch.setattr(service, "STREAK_WINDOW_DAYS", 2)
    monkeypatch.setattr(service, "load_review_events_df", counting_load)

    stats = analytics.study_stats("ana", now=datetime(2026, 3, 4, 12, tzinfo=timezone.utc), tz="UTC")
    assert stats.streak_days == 9
    assert stats.reviews_this_week == 3
    # 2, 4, 8 days all end inside the streak; 16 days reaches past it
    assert len(loads) == 4
    assert all(start is not None for start in loads)
