from datetime import timedelta

import pytest

from spacedeck.errors import ConfigInvalid, NotFound
from spacedeck.srs import database, settings
from spacedeck.srs.constants import CardPhase, Grade
from spacedeck.srs.params import SettingsOverride
from spacedeck.srs.scheduling import submit_review, verify_card_history


@pytest.fixture
def card(db):
    return database.add_card("c1", "spanish", "ana")


def test_submit_review_persists_result(card, now):
    outcome = submit_review("c1", Grade.GOOD, now=now)
    assert not outcome.duplicate
    assert outcome.card.state == CardPhase.LEARNING
    assert database.get_card_state("c1") == outcome.card


def test_duplicate_submission_applied_once(card, now):
    first = submit_review("c1", Grade.GOOD, idempotency_key="tap-1", now=now)
    retry = submit_review("c1", Grade.GOOD, idempotency_key="tap-1", now=now + timedelta(seconds=3))

    assert retry.duplicate
    assert retry.card == first.card
    assert retry.event.timestamp == now
    assert len(database.iter_review_events(card_id="c1")) == 1
    assert database.get_card_state("c1").reps == 1


def test_submit_uses_deck_settings(card, now):
    settings.update_deck_settings("spanish", learning_steps=[30])
    outcome = submit_review("c1", Grade.AGAIN, now=now)
    assert outcome.card.due_at == now + timedelta(minutes=30)


def test_submit_with_invalid_deck_settings_fails(card, now):
    database.save_override("spanish", SettingsOverride(starting_ease=0.5))
    with pytest.raises(ConfigInvalid):
        submit_review("c1", Grade.GOOD, now=now)
    assert database.iter_review_events(card_id="c1") == []


def test_submit_unknown_card(db, now):
    with pytest.raises(NotFound):
        submit_review("nope", Grade.GOOD, now=now)


def test_leech_reported_on_outcome(card, now):
    settings.update_deck_settings("spanish", leech_threshold=1)
    outcome = submit_review("c1", Grade.EASY, now=now)
    outcome = submit_review("c1", Grade.AGAIN, now=outcome.card.due_at)
    assert outcome.leech
    assert outcome.card.state == CardPhase.RELEARNING


def test_replayed_history_matches_stored_state(card, now):
    t = now
    for grade in (Grade.GOOD, Grade.GOOD, Grade.HARD, Grade.AGAIN, Grade.GOOD, Grade.EASY, Grade.GOOD):
        outcome = submit_review("c1", grade, now=t)
        t = outcome.card.due_at + timedelta(minutes=5)

    assert verify_card_history("c1")


def test_history_mismatch_after_settings_change(card, now):
    submit_review("c1", Grade.EASY, now=now)
    settings.update_deck_settings("spanish", easy_interval=9)
    assert not verify_card_history("c1")
