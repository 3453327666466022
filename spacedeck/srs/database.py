"""
Database - Card State Store and Review Event Log I/O

Handles all database operations for card state, review events and
settings overrides. Uses SQLAlchemy ORM (Postgres in production, SQLite
for tests and local use).

This module handles ONLY database I/O.
Algorithm logic is handled by the scheduler module.
"""

from __future__ import annotations
import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

from sqlalchemy import create_engine, func, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from spacedeck.config import get_database_url
from spacedeck.errors import Conflict, NotFound, ValidationError
from spacedeck.srs.card_state import CardState, DueCard, ReviewEvent
from spacedeck.srs.constants import CardPhase, DEFAULT_EASE, Grade
from spacedeck.srs.models import Base, CardRecord, DeckSettingsRecord, ReviewEventRecord
from spacedeck.srs.params import SettingsOverride

logger = logging.getLogger(__name__)

# One engine (and connection pool) per database URL
_engines: dict[str, Engine] = {}
_session_factories: dict[str, sessionmaker] = {}

STREAM_BATCH_SIZE = 500


# ---- Engine and Sessions ----

def get_engine() -> Engine:
    """
    Get the SQLAlchemy engine for the configured database.

    Uses connection pooling for server databases.

    Returns:
        SQLAlchemy Engine instance
    """
    db_url = get_database_url()
    engine = _engines.get(db_url)
    if engine is None:
        if db_url.startswith("sqlite"):
            engine = create_engine(db_url, echo=False)
        else:
            engine = create_engine(
                db_url,
                pool_size=5,           # Keep 5 connections open
                max_overflow=10,       # Allow up to 10 extra connections
                pool_pre_ping=True,    # Verify connections before use
                echo=False
            )
        _engines[db_url] = engine
        _session_factories[db_url] = sessionmaker(bind=engine, expire_on_commit=False)
    return engine


def get_session() -> Session:
    """
    Get a SQLAlchemy session for database operations.

    Returns:
        SQLAlchemy Session instance
    """
    get_engine()
    return _session_factories[get_database_url()]()


def dispose_engines() -> None:
    """Close all pooled connections (used by tests between databases)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_factories.clear()


@contextmanager
def snapshot_session() -> Iterator[Session]:
    """
    Read-only session whose queries all see one consistent snapshot.

    On PostgreSQL the transaction runs at REPEATABLE READ, so a review
    committed halfway through a stats call is either fully visible or not
    at all. Nothing is ever written through this session.
    """
    session = get_session()
    try:
        if session.get_bind().dialect.name == "postgresql":
            session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        yield session
    finally:
        session.rollback()
        session.close()


@contextmanager
def _session_scope(session: Optional[Session]) -> Iterator[Session]:
    """Use the caller's session, or open (and close) a private one."""
    if session is not None:
        yield session
        return
    own = get_session()
    try:
        yield own
    finally:
        own.close()


def init_db():
    """
    Initialize database schema if tables don't exist.

    Safe to call multiple times - only creates missing tables.
    """
    engine = get_engine()
    existing_tables = set(inspect(engine).get_table_names())
    missing = {t.name for t in Base.metadata.sorted_tables} - existing_tables
    if missing:
        Base.metadata.create_all(engine)
        logger.info("Created tables: %s", ", ".join(sorted(missing)))


def reset_db():
    """
    DANGEROUS: Delete all data and recreate tables.

    Only use this for testing or when you want to start fresh.
    All review history will be lost!
    """
    engine = get_engine()
    Base.metadata.drop_all(engine)
    logger.warning("All tables dropped")
    init_db()


# ---- Row Conversion ----

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_card_state(record: CardRecord) -> CardState:
    return CardState(
        card_id=record.card_id,
        deck_id=record.deck_id,
        user_id=record.user_id,
        state=CardPhase(record.state),
        interval=record.interval,
        ease_factor=record.ease_factor,
        lapses=record.lapses,
        lapse_streak=record.lapse_streak,
        step=record.step,
        reps=record.reps,
        due_at=_as_utc(record.due_at),
        last_reviewed_at=_as_utc(record.last_reviewed_at),
        version=record.version,
    )


def _card_values(card: CardState) -> dict:
    """Scheduling columns of a card row (everything but identity and version)."""
    return {
        CardRecord.state: card.state.value,
        CardRecord.interval: card.interval,
        CardRecord.ease_factor: card.ease_factor,
        CardRecord.step: card.step,
        CardRecord.lapses: card.lapses,
        CardRecord.lapse_streak: card.lapse_streak,
        CardRecord.reps: card.reps,
        CardRecord.due_at: _as_utc(card.due_at),
        CardRecord.last_reviewed_at: _as_utc(card.last_reviewed_at),
    }


def _to_event(record: ReviewEventRecord) -> ReviewEvent:
    return ReviewEvent(
        card_id=record.card_id,
        deck_id=record.deck_id,
        user_id=record.user_id,
        timestamp=_as_utc(record.timestamp),
        grade=Grade(record.grade),
        state_before=CardPhase(record.state_before),
        state_after=CardPhase(record.state_after),
        interval_before=record.interval_before,
        interval_after=record.interval_after,
        ease_before=record.ease_before,
        ease_after=record.ease_after,
        leech=bool(record.leech),
        idempotency_key=record.idempotency_key,
    )


def _event_record(event: ReviewEvent) -> ReviewEventRecord:
    return ReviewEventRecord(
        card_id=event.card_id,
        user_id=event.user_id,
        deck_id=event.deck_id,
        idempotency_key=event.idempotency_key,
        timestamp=_as_utc(event.timestamp),
        grade=int(event.grade),
        state_before=event.state_before.value,
        state_after=event.state_after.value,
        interval_before=event.interval_before,
        interval_after=event.interval_after,
        ease_before=event.ease_before,
        ease_after=event.ease_after,
        leech=event.leech,
    )


def _scoped(query, model, user_id: Optional[str], deck_id: Optional[str]):
    if user_id is not None:
        query = query.filter(model.user_id == user_id)
    if deck_id is not None:
        query = query.filter(model.deck_id == deck_id)
    return query


# ---- Cards ----

def add_card(
    card_id: str,
    deck_id: str,
    user_id: str,
    front: str = "",
    back: str = "",
    created_at: Optional[datetime] = None
) -> CardState:
    """
    Insert a new card in the New state.

    Raises:
        Conflict: if a card with this id already exists
    """
    session = get_session()
    try:
        record = CardRecord(
            card_id=card_id,
            deck_id=deck_id,
            user_id=user_id,
            front=front,
            back=back,
            state=CardPhase.NEW.value,
            interval=0.0,
            ease_factor=DEFAULT_EASE,
            step=0,
            lapses=0,
            lapse_streak=0,
            reps=0,
            version=0,
            created_at=_as_utc(created_at or datetime.now(timezone.utc)),
        )
        session.add(record)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise Conflict(f"Card {card_id} already exists", {"card_id": card_id}) from None
        return _to_card_state(record)
    finally:
        session.close()


def get_card_state(card_id: str) -> CardState:
    """
    Load the current scheduling state of a card.

    Raises:
        NotFound: if the card does not exist
    """
    session = get_session()
    try:
        record = session.get(CardRecord, card_id)
        if record is None:
            raise NotFound(f"Card {card_id} not found", {"card_id": card_id})
        return _to_card_state(record)
    finally:
        session.close()


def list_card_states(
    user_id: Optional[str] = None,
    deck_id: Optional[str] = None,
    session: Optional[Session] = None
) -> list[CardState]:
    """All cards in a scope, ordered by creation."""
    with _session_scope(session) as s:
        query = _scoped(s.query(CardRecord), CardRecord, user_id, deck_id)
        records = query.order_by(CardRecord.created_at, CardRecord.card_id).all()
        return [_to_card_state(r) for r in records]


def list_due_cards(
    now: datetime,
    user_id: Optional[str] = None,
    deck_id: Optional[str] = None,
    states: Optional[Iterable[CardPhase]] = None,
    limit: Optional[int] = None
) -> Iterator[DueCard]:
    """
    Stream studied cards whose due date has passed, earliest first.

    Rows are fetched in batches while the caller iterates, so a caller
    that stops early never loads the whole backlog.

    Args:
        now: Cards due at or before this instant are returned
        user_id: Only this user's cards
        deck_id: Only this deck's cards
        states: Only cards in these phases (default: every studied phase)
        limit: Stop after this many cards

    Yields:
        DueCard rows (never New cards)
    """
    if limit is not None and limit <= 0:
        return
    session = get_session()
    try:
        query = _scoped(
            session.query(CardRecord.card_id, CardRecord.due_at, CardRecord.state),
            CardRecord, user_id, deck_id,
        ).filter(
            CardRecord.state != CardPhase.NEW.value,
            CardRecord.due_at.isnot(None),
            CardRecord.due_at <= _as_utc(now),
        )
        if states is not None:
            query = query.filter(CardRecord.state.in_([s.value for s in states]))
        query = query.order_by(CardRecord.due_at, CardRecord.card_id)
        if limit is not None:
            query = query.limit(limit)

        for card_id, due_at, state in query.yield_per(STREAM_BATCH_SIZE):
            yield DueCard(card_id=card_id, due_at=_as_utc(due_at), state=CardPhase(state))
    finally:
        session.close()


def list_new_cards(
    user_id: Optional[str] = None,
    deck_id: Optional[str] = None,
    limit: Optional[int] = None
) -> list[DueCard]:
    """New cards in a scope, oldest first."""
    if limit is not None and limit <= 0:
        return []
    session = get_session()
    try:
        query = _scoped(
            session.query(CardRecord.card_id, CardRecord.state),
            CardRecord, user_id, deck_id,
        ).filter(
            CardRecord.state == CardPhase.NEW.value
        ).order_by(CardRecord.created_at, CardRecord.card_id)
        if limit is not None:
            query = query.limit(limit)
        return [DueCard(card_id=cid, due_at=None, state=CardPhase(state)) for cid, state in query.all()]
    finally:
        session.close()


# ---- Commit ----

@dataclass(frozen=True)
class CommitResult:
    """Outcome of commit_schedule."""
    card: CardState
    event: ReviewEvent
    duplicate: bool = False


def _find_event(session: Session, card_id: str, idempotency_key: str) -> Optional[ReviewEventRecord]:
    return session.query(ReviewEventRecord).filter(
        ReviewEventRecord.card_id == card_id,
        ReviewEventRecord.idempotency_key == idempotency_key,
    ).one_or_none()


def _duplicate_result(session: Session, existing: ReviewEventRecord) -> CommitResult:
    logger.info(
        "Duplicate review submission for card %s (key %s) ignored",
        existing.card_id, existing.idempotency_key,
    )
    current = session.get(CardRecord, existing.card_id)
    return CommitResult(card=_to_card_state(current), event=_to_event(existing), duplicate=True)


def commit_schedule(card_id: str, new_card: CardState, event: ReviewEvent) -> CommitResult:
    """
    Persist a scheduling result: update the card and append its event in
    one transaction.

    The card row is written with a compare-and-swap on its version
    (``UPDATE ... WHERE card_id = :id AND version = :v``), so of two commits
    computed from the same version exactly one matches a row. The other
    finds either its own earlier event (a duplicate) or a newer card
    (Conflict). No dialect-specific row lock is relied on.

    Order of checks:
    1. An event with the same (card_id, idempotency_key) already exists:
       nothing is written; the earlier result is returned as a duplicate.
    2. The version swap matches no row: the submission is resolved as a
       duplicate if its key was committed meanwhile, NotFound if the card
       is gone, and Conflict otherwise.
    3. Otherwise the card row is updated (version + 1) and the event appended.

    Args:
        card_id: Card being graded
        new_card: Scheduler output, carrying the version it was computed from
        event: Scheduler event for this grading

    Returns:
        CommitResult with the stored card state (new version) and the event

    Raises:
        ValidationError: if card/event ids do not match `card_id`
        NotFound: if the card does not exist
        Conflict: if the card changed since it was loaded
    """
    if new_card.card_id != card_id or event.card_id != card_id:
        raise ValidationError(
            "Card state and review event must belong to the committed card",
            {"card_id": card_id},
        )

    session = get_session()
    try:
        if event.idempotency_key:
            existing = _find_event(session, card_id, event.idempotency_key)
            if existing is not None:
                return _duplicate_result(session, existing)

        swapped = session.query(CardRecord).filter(
            CardRecord.card_id == card_id,
            CardRecord.version == new_card.version,
        ).update(
            {**_card_values(new_card), CardRecord.version: new_card.version + 1},
            synchronize_session=False,
        )
        if swapped != 1:
            session.rollback()
            return _resolve_lost_swap(session, card_id, new_card, event)

        session.add(_event_record(event))
        try:
            session.commit()
        except IntegrityError:
            # A concurrent submission with the same nonce won the race
            session.rollback()
            if not event.idempotency_key:
                raise
            existing = _find_event(session, card_id, event.idempotency_key)
            if existing is None:
                raise
            return _duplicate_result(session, existing)

        stored = replace(new_card, version=new_card.version + 1)
        if event.leech:
            logger.warning("Card %s flagged as leech after %s lapses", card_id, new_card.lapses)
        logger.debug("Committed grade %s for card %s (version %s)", event.grade.name, card_id, stored.version)
        return CommitResult(card=stored, event=event)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _resolve_lost_swap(
    session: Session,
    card_id: str,
    new_card: CardState,
    event: ReviewEvent
) -> CommitResult:
    """Explain why the version swap matched no row."""
    if event.idempotency_key:
        existing = _find_event(session, card_id, event.idempotency_key)
        if existing is not None:
            return _duplicate_result(session, existing)

    record = session.get(CardRecord, card_id)
    if record is None:
        raise NotFound(f"Card {card_id} not found", {"card_id": card_id})

    logger.warning(
        "Conflicting commit on card %s: stored version %s, submitted %s",
        card_id, record.version, new_card.version,
    )
    raise Conflict(
        f"Card {card_id} was modified concurrently; reload and retry",
        {"card_id": card_id, "stored_version": record.version, "submitted_version": new_card.version},
    )


# ---- Review Events ----

def iter_review_events(
    card_id: Optional[str] = None,
    user_id: Optional[str] = None,
    deck_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    session: Optional[Session] = None
) -> list[ReviewEvent]:
    """
    Review events in log order, optionally filtered.

    Args:
        card_id: Only this card's events
        user_id: Only this user's events
        deck_id: Only this deck's events
        start: Inclusive lower bound on timestamp
        end: Exclusive upper bound on timestamp
        session: Session to read through (e.g. a snapshot session)

    Returns:
        List of ReviewEvent, oldest first
    """
    with _session_scope(session) as s:
        query = _scoped(s.query(ReviewEventRecord), ReviewEventRecord, user_id, deck_id)
        if card_id is not None:
            query = query.filter(ReviewEventRecord.card_id == card_id)
        if start is not None:
            query = query.filter(ReviewEventRecord.timestamp >= _as_utc(start))
        if end is not None:
            query = query.filter(ReviewEventRecord.timestamp < _as_utc(end))
        return [_to_event(r) for r in query.order_by(ReviewEventRecord.id).all()]


def count_reviews_since(
    since: datetime,
    user_id: Optional[str] = None,
    deck_id: Optional[str] = None,
    states_before: Optional[Iterable[CardPhase]] = None
) -> int:
    """Number of review events at or after `since`, optionally by prior state."""
    session = get_session()
    try:
        query = _scoped(
            session.query(func.count(ReviewEventRecord.id)),
            ReviewEventRecord, user_id, deck_id,
        ).filter(ReviewEventRecord.timestamp >= _as_utc(since))
        if states_before:
            query = query.filter(ReviewEventRecord.state_before.in_([s.value for s in states_before]))
        return int(query.scalar() or 0)
    finally:
        session.close()


def count_new_introduced(
    since: datetime,
    user_id: Optional[str] = None,
    deck_id: Optional[str] = None
) -> int:
    """Number of cards studied for the first time at or after `since`."""
    return count_reviews_since(since, user_id, deck_id, states_before=(CardPhase.NEW,))


# ---- Settings Overrides ----

_OVERRIDE_COLUMNS = [f.name for f in fields(SettingsOverride)]


def load_override(scope: str) -> Optional[SettingsOverride]:
    """Stored override for a deck (or the global scope), if any."""
    session = get_session()
    try:
        record = session.get(DeckSettingsRecord, scope)
        if record is None:
            return None
        return SettingsOverride.from_dict({name: getattr(record, name) for name in _OVERRIDE_COLUMNS})
    finally:
        session.close()


def save_override(scope: str, override: SettingsOverride) -> None:
    """
    Store an override, replacing any previous one for the scope.

    Fields left as None are stored as NULL and inherit.
    """
    session = get_session()
    try:
        record = session.get(DeckSettingsRecord, scope)
        if record is None:
            record = DeckSettingsRecord(scope=scope)
            session.add(record)
        for name in _OVERRIDE_COLUMNS:
            value = getattr(override, name)
            if name in ("learning_steps", "relearning_steps") and value is not None:
                value = list(value)
            setattr(record, name, value)
        session.commit()
        logger.info("Saved settings override for %s: %s", scope, sorted(override.set_fields()))
    finally:
        session.close()


def delete_override(scope: str) -> bool:
    """Remove a scope's override. Returns True if one existed."""
    session = get_session()
    try:
        deleted = session.query(DeckSettingsRecord).filter(DeckSettingsRecord.scope == scope).delete()
        session.commit()
        return bool(deleted)
    finally:
        session.close()
