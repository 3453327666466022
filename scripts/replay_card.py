"""
Verify cards by replaying their review logs.

Rebuilds each card's state from New using its logged grades and compares
the result with the stored row. A mismatch means the card row and its
history disagree (e.g. settings changed after the reviews were made).

Usage:
    python -m scripts.replay_card CARD_ID [CARD_ID ...]
    python -m scripts.replay_card --deck DECK_ID
"""

from __future__ import annotations

import argparse
import sys

from spacedeck import srs
from spacedeck.config import configure_logging, get_default_user_id


def main():
    parser = argparse.ArgumentParser(description="Replay review logs and compare with stored card state")
    parser.add_argument("card_ids", nargs="*", help="Cards to verify")
    parser.add_argument("--deck", help="Verify every card in this deck")
    parser.add_argument("--user", default=None, help="User scope (default: DEFAULT_USER_ID)")
    args = parser.parse_args()
    configure_logging()

    card_ids = list(args.card_ids)
    if args.deck:
        user_id = args.user or get_default_user_id()
        card_ids.extend(c.card_id for c in srs.list_card_states(user_id=user_id, deck_id=args.deck))

    if not card_ids:
        parser.error("give at least one card id or --deck")

    mismatched = 0
    for card_id in card_ids:
        if srs.verify_card_history(card_id):
            print(f"  ✓ {card_id}")
        else:
            print(f"  ✗ {card_id} does not match its review log")
            mismatched += 1

    print(f"\nChecked {len(card_ids)} cards, {mismatched} mismatched")
    sys.exit(1 if mismatched else 0)


if __name__ == "__main__":
    main()
