"""
Print study statistics for a learner or deck.

Usage:
    python -m scripts.show_stats
    python -m scripts.show_stats --deck DECK_ID
    python -m scripts.show_stats --days 30 --tz Europe/Amsterdam
"""

from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone

from spacedeck import analytics
from spacedeck.config import configure_logging, get_default_user_id, get_timezone


def main():
    parser = argparse.ArgumentParser(description="Show heatmap, streak and deck statistics")
    parser.add_argument("--user", default=None, help="User scope (default: DEFAULT_USER_ID)")
    parser.add_argument("--deck", default=None, help="Also report on this deck")
    parser.add_argument("--days", type=int, default=14, help="Heatmap length in days")
    parser.add_argument("--tz", default=None, help="IANA time zone (default: SPACEDECK_TIMEZONE)")
    args = parser.parse_args()
    configure_logging()

    user_id = args.user or get_default_user_id()
    now = datetime.now(timezone.utc)
    today = now.astimezone(get_timezone(args.tz)).date()
    start = today - timedelta(days=args.days - 1)
    scope = analytics.StatsScope(user_id=user_id, deck_id=args.deck)

    study = analytics.study_stats(user_id, now=now, tz=args.tz)
    print(f"User: {user_id}")
    print(f"  Streak:            {study.streak_days} days")
    print(f"  Reviews today:     {study.reviews_today}")
    print(f"  Reviews this week: {study.reviews_this_week}")
    print(f"  Available now:     {study.due_cards} due, {study.learning_cards} learning, {study.new_cards} new")
    print()

    summary = analytics.heatmap_summary(scope, start, today, tz=args.tz, now=now)
    print(f"Last {args.days} days: {summary.days_with_activity}/{summary.total_days} active "
          f"({summary.days_learned_percent}%), {summary.daily_average} reviews per active day, "
          f"longest streak {summary.longest_streak}")
    for bucket in analytics.heatmap_buckets(scope, start, today + timedelta(days=7), tz=args.tz, now=now):
        marker = "#" * min(bucket.review_count, 40)
        due = f"  (due {bucket.cards_due})" if bucket.cards_due else ""
        print(f"  {bucket.date.isoformat()}  {bucket.review_count:4d} {marker}{due}")

    if args.deck:
        stats = analytics.deck_stats(args.deck, now=now, tz=args.tz)
        print()
        print(f"Deck: {args.deck}")
        print(f"  Cards:          {stats.total_cards} {stats.state_counts}")
        print(f"  Due today:      {stats.due_today}")
        print(f"  Retention:      {stats.retention_rate:.1%}")
        print(f"  Average ease:   {stats.average_ease:.2f}")
        print(f"  Lapses (30d):   {stats.lapses_last_30d}")
        print(f"  Today:          {stats.today.cards_studied} studied, {stats.today.cards_correct} correct, "
              f"{stats.today.cards_incorrect} incorrect ({stats.today.retention_rate:.0%})")


if __name__ == "__main__":
    main()
