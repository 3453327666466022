"""
Reset the study database.

DANGEROUS: This deletes all cards, review history and deck settings!
Only use when you want to start fresh for testing.

Usage:
    python -m scripts.maintenance.reset_db
    python -m scripts.maintenance.reset_db --yes
"""

from __future__ import annotations

import argparse

from spacedeck import srs
from spacedeck.config import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Drop and recreate all study tables")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Skip the confirmation prompt"
    )
    args = parser.parse_args()
    configure_logging()

    print("=" * 60)
    print("WARNING: Reset Study Database")
    print("=" * 60)
    print()
    print("This will DELETE:")
    print("  - All cards and their scheduling state")
    print("  - All review events (logs of past reviews)")
    print("  - All global and per-deck settings overrides")
    print()

    if not args.yes:
        response = input("Are you sure you want to reset? (type 'yes' to confirm): ")
        if response.lower() != "yes":
            print("\nCancelled. No changes made.")
            return

    print("\nResetting database...")
    srs.reset_db()
    print("✓ Database reset complete!")


if __name__ == "__main__":
    main()
