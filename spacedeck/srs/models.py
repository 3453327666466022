"""
SQLAlchemy ORM Models for the SRS Database

Defines the card state table, the append-only review event log, and the
per-deck settings overrides.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CardRecord(Base):
    """
    Current scheduling state of one card.

    Mutated only through commit_schedule; `version` increments on every
    commit so concurrent graders can detect each other.
    """
    __tablename__ = 'card_state'

    card_id = Column(String(255), primary_key=True)
    user_id = Column(String(255), nullable=False)
    deck_id = Column(String(255), nullable=False)

    # Content payload, opaque to the scheduler
    front = Column(Text, nullable=False, default="")
    back = Column(Text, nullable=False, default="")

    # Scheduling state
    state = Column(String(20), nullable=False, default="new")
    interval = Column(Float, nullable=False, default=0.0)  # Days
    ease_factor = Column(Float, nullable=False, default=2.5)
    step = Column(Integer, nullable=False, default=0)
    lapses = Column(Integer, nullable=False, default=0)
    lapse_streak = Column(Integer, nullable=False, default=0)
    reps = Column(Integer, nullable=False, default=0)
    due_at = Column(DateTime(timezone=True), nullable=True)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_card_user_due', 'user_id', 'due_at'),
        Index('idx_card_deck_due', 'deck_id', 'due_at'),
    )

    def __repr__(self):
        return f"<CardRecord({self.card_id}, deck={self.deck_id}, state={self.state})>"


class ReviewEventRecord(Base):
    """
    Log entry for a single grading action.

    Rows are only ever inserted. (card_id, idempotency_key) is unique so a
    retried submission cannot be applied twice.
    """
    __tablename__ = 'review_events'

    id = Column(Integer, primary_key=True, autoincrement=True)

    card_id = Column(String(255), nullable=False)
    user_id = Column(String(255), nullable=False)
    deck_id = Column(String(255), nullable=False)
    idempotency_key = Column(String(255), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    grade = Column(Integer, nullable=False)  # 0=AGAIN, 1=HARD, 2=GOOD, 3=EASY

    state_before = Column(String(20), nullable=False)
    state_after = Column(String(20), nullable=False)
    interval_before = Column(Float, nullable=False)
    interval_after = Column(Float, nullable=False)
    ease_before = Column(Float, nullable=False)
    ease_after = Column(Float, nullable=False)

    leech = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint('card_id', 'idempotency_key', name='uq_review_card_nonce'),
        Index('idx_review_card', 'card_id', 'id'),
        Index('idx_review_user_ts', 'user_id', 'timestamp'),
        Index('idx_review_deck_ts', 'deck_id', 'timestamp'),
    )

    def __repr__(self):
        return f"<ReviewEventRecord(id={self.id}, card={self.card_id}, grade={self.grade})>"


class DeckSettingsRecord(Base):
    """
    Sparse settings override for one deck (or the global scope).

    NULL columns inherit from the layer below.
    """
    __tablename__ = 'deck_settings'

    scope = Column(String(255), primary_key=True)  # deck id, or GLOBAL_SCOPE

    learning_steps = Column(JSON, nullable=True)
    relearning_steps = Column(JSON, nullable=True)
    graduating_interval = Column(Integer, nullable=True)
    easy_interval = Column(Integer, nullable=True)
    starting_ease = Column(Float, nullable=True)
    easy_ease_bonus = Column(Float, nullable=True)
    hard_ease_penalty = Column(Float, nullable=True)
    hard_interval_factor = Column(Float, nullable=True)
    easy_bonus = Column(Float, nullable=True)
    interval_modifier = Column(Float, nullable=True)
    minimum_interval = Column(Integer, nullable=True)
    maximum_interval = Column(Integer, nullable=True)
    new_interval_fraction = Column(Float, nullable=True)
    lapse_ease_penalty = Column(Float, nullable=True)
    leech_threshold = Column(Integer, nullable=True)
    new_cards_per_day = Column(Integer, nullable=True)
    max_reviews_per_day = Column(Integer, nullable=True)
    new_card_spacing = Column(Integer, nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<DeckSettingsRecord({self.scope})>"
