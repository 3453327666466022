"""
Import flashcards from a CSV file into a deck.

The CSV needs `front` and `back` columns; a `card_id` column is optional.
Rows without a card_id get a stable id derived from deck + front + back, so
importing the same file twice adds nothing the second time.

Usage:
    python -m scripts.data.import_cards data/cards.csv --deck spanish-basics
    python -m scripts.data.import_cards data/cards.csv --deck spanish-basics --dry-run
"""

from __future__ import annotations

import argparse
import hashlib
from pathlib import Path

import pandas as pd

from spacedeck import srs
from spacedeck.config import configure_logging, get_default_user_id
from spacedeck.errors import Conflict

# Column names
FRONT_COL = "front"
BACK_COL = "back"
ID_COL = "card_id"


def normalize(s: pd.Series) -> pd.Series:
    s = s.fillna("").astype(str).str.strip()
    # collapse multiple spaces
    return s.str.replace(r"\s+", " ", regex=True)


def derive_card_id(deck_id: str, front: str, back: str) -> str:
    digest = hashlib.sha1(f"{deck_id}\x1f{front}\x1f{back}".encode("utf-8")).hexdigest()
    return f"{deck_id}-{digest[:16]}"


def load_cards(path: Path, deck_id: str) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing CSV file: {path}")

    df = pd.read_csv(path)
    if FRONT_COL not in df.columns or BACK_COL not in df.columns:
        raise ValueError(
            f"CSV must contain columns '{FRONT_COL}' and '{BACK_COL}'. "
            f"Found: {list(df.columns)}"
        )

    df[FRONT_COL] = normalize(df[FRONT_COL])
    df[BACK_COL] = normalize(df[BACK_COL])
    df = df[df[FRONT_COL] != ""]

    if ID_COL not in df.columns:
        df[ID_COL] = None
    missing = df[ID_COL].isna() | (df[ID_COL].astype(str).str.strip() == "")
    df.loc[missing, ID_COL] = [
        derive_card_id(deck_id, front, back)
        for front, back in zip(df.loc[missing, FRONT_COL], df.loc[missing, BACK_COL])
    ]
    return df.drop_duplicates(subset=[ID_COL]).reset_index(drop=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Import flashcards from CSV")
    parser.add_argument("csv_path", type=Path, help="CSV with front/back columns")
    parser.add_argument("--deck", required=True, help="Deck to add the cards to")
    parser.add_argument("--user", default=None, help="Owner (default: DEFAULT_USER_ID)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be imported")
    args = parser.parse_args()
    configure_logging()

    user_id = args.user or get_default_user_id()
    cards = load_cards(args.csv_path, args.deck)
    print(f"Read {len(cards)} cards from {args.csv_path}")

    if args.dry_run:
        print(cards[[ID_COL, FRONT_COL, BACK_COL]].head(20).to_string(index=False))
        return

    srs.init_db()
    added = skipped = 0
    for row in cards.itertuples(index=False):
        try:
            srs.add_card(
                getattr(row, ID_COL), args.deck, user_id,
                front=getattr(row, FRONT_COL), back=getattr(row, BACK_COL),
            )
            added += 1
        except Conflict:
            skipped += 1

    print(f"✓ Added {added} cards to {args.deck} ({skipped} already present)")


if __name__ == "__main__":
    main()
