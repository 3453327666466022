"""
SRS - Spaced Repetition Scheduling

Main API for the study core.

This package implements SM-2 style scheduling with:
- A four-state card machine (New, Learning, Review, Relearning)
- Per-deck settings merged field by field over global defaults
- An append-only review log committed atomically with card state
- Idempotent grade submission (card id + client nonce)

Quick start:
    from spacedeck import srs

    # Initialize database
    srs.init_db()

    # Grade a card (loads, schedules, commits)
    outcome = srs.submit_review(card_id, srs.Grade.GOOD, idempotency_key=nonce)

    # Pure scheduling, no database
    card, event = srs.schedule(card, srs.Grade.GOOD, config, now)
"""

# Core scheduler API (algorithm logic)
from spacedeck.srs.scheduler import schedule, replay

# Review flow
from spacedeck.srs.scheduling import ReviewOutcome, submit_review, verify_card_history

# Database API
from spacedeck.srs.database import (
    CommitResult,
    init_db,
    reset_db,
    add_card,
    get_card_state,
    list_card_states,
    list_due_cards,
    list_new_cards,
    commit_schedule,
    iter_review_events,
    count_reviews_since,
    count_new_introduced,
    snapshot_session,
)

# Settings
from spacedeck.srs.settings import (
    GLOBAL_SCOPE,
    resolve,
    resolve_policy,
    update_deck_settings,
)
from spacedeck.srs.params import (
    AlgorithmConfig,
    LapsePolicy,
    QueuePolicy,
    SettingsOverride,
    merge_config,
    merge_policy,
    validate_config,
    validate_policy,
)

# Constants and state types
from spacedeck.srs.constants import CardPhase, Grade, EASE_FLOOR, DEFAULT_EASE
from spacedeck.srs.card_state import (
    CardState,
    DueCard,
    ReviewEvent,
    initialize_new_card,
)


__all__ = [
    # Core algorithm
    "schedule",
    "replay",

    # Review flow
    "ReviewOutcome",
    "submit_review",
    "verify_card_history",

    # Database operations
    "CommitResult",
    "init_db",
    "reset_db",
    "add_card",
    "get_card_state",
    "list_card_states",
    "list_due_cards",
    "list_new_cards",
    "commit_schedule",
    "iter_review_events",
    "count_reviews_since",
    "count_new_introduced",
    "snapshot_session",

    # Settings
    "GLOBAL_SCOPE",
    "resolve",
    "resolve_policy",
    "update_deck_settings",
    "AlgorithmConfig",
    "LapsePolicy",
    "QueuePolicy",
    "SettingsOverride",
    "merge_config",
    "merge_policy",
    "validate_config",
    "validate_policy",

    # Enums and constants
    "CardPhase",
    "Grade",
    "EASE_FLOOR",
    "DEFAULT_EASE",

    # State types
    "CardState",
    "DueCard",
    "ReviewEvent",
    "initialize_new_card",
]
