import pytest

from spacedeck.errors import ConfigInvalid
from spacedeck.srs import database, settings
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


# ---- Merge and validation (no database) ----

def test_merge_without_override_returns_base():
    base = AlgorithmConfig()
    assert merge_config(base, None) is base
    assert merge_config(base, SettingsOverride()) == base


def test_merge_is_field_by_field():
    base = AlgorithmConfig()
    merged = merge_config(base, SettingsOverride(easy_interval=6, leech_threshold=4))
    assert merged.easy_interval == 6
    assert merged.lapse_policy == LapsePolicy(leech_threshold=4)
    assert merged.graduating_interval == base.graduating_interval
    assert base.easy_interval == 4


def test_merge_converts_steps_to_tuple():
    merged = merge_config(AlgorithmConfig(), SettingsOverride.from_dict({"learning_steps": [1, 5, 30]}))
    assert merged.learning_steps == (1.0, 5.0, 30.0)


def test_policy_fields_do_not_leak_into_config():
    override = SettingsOverride(new_cards_per_day=5, easy_bonus=1.5)
    assert merge_config(AlgorithmConfig(), override).easy_bonus == 1.5
    assert merge_policy(QueuePolicy(), override) == QueuePolicy(new_cards_per_day=5)


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigInvalid) as exc:
        SettingsOverride.from_dict({"learning_stepz": [1]})
    assert exc.value.details["unknown"] == ["learning_stepz"]
    assert exc.value.code == "config_invalid"


def test_defaults_are_valid():
    assert validate_config(AlgorithmConfig()) == AlgorithmConfig()
    assert validate_policy(QueuePolicy()) == QueuePolicy()


@pytest.mark.parametrize("changes", [
    {"learning_steps": ()},
    {"learning_steps": (1.0, -5.0)},
    {"minimum_interval": 0},
    {"maximum_interval": 0},
    {"starting_ease": 1.0},
    {"hard_interval_factor": 1.2},
    {"easy_bonus": 0.9},
    {"interval_modifier": 3.0},
    {"easy_interval": 0},
    {"lapse_policy": LapsePolicy(new_interval_fraction=1.5)},
    {"lapse_policy": LapsePolicy(leech_threshold=0)},
])
def test_out_of_bounds_config_rejected(changes):
    with pytest.raises(ConfigInvalid):
        validate_config(AlgorithmConfig(**changes))


def test_every_problem_is_reported():
    with pytest.raises(ConfigInvalid) as exc:
        validate_config(AlgorithmConfig(minimum_interval=0, easy_bonus=0.5))
    assert len(exc.value.details["problems"]) == 2


def test_policy_spacing_must_be_positive():
    with pytest.raises(ConfigInvalid):
        validate_policy(QueuePolicy(new_card_spacing=0))


# ---- Resolver (database) ----

def test_resolve_without_overrides_gives_defaults(db):
    assert settings.resolve("deck") == AlgorithmConfig()
    assert settings.resolve_policy("deck") == QueuePolicy()


def test_deck_override_wins_over_global(db):
    database.save_override(settings.GLOBAL_SCOPE, SettingsOverride(starting_ease=2.0, easy_interval=5))
    database.save_override("spanish", SettingsOverride(starting_ease=2.2))

    spanish = settings.resolve("spanish")
    assert spanish.starting_ease == 2.2
    assert spanish.easy_interval == 5

    other = settings.resolve("french")
    assert other.starting_ease == 2.0


def test_update_deck_settings_patches_and_applies_immediately(db):
    settings.update_deck_settings("spanish", learning_steps=[5, 20], new_cards_per_day=3)
    assert settings.resolve("spanish").learning_steps == (5.0, 20.0)

    settings.update_deck_settings("spanish", graduating_interval=2)
    resolved = settings.resolve("spanish")
    assert resolved.learning_steps == (5.0, 20.0)
    assert resolved.graduating_interval == 2
    assert settings.resolve_policy("spanish").new_cards_per_day == 3


def test_update_with_none_clears_field(db):
    settings.update_deck_settings("spanish", easy_interval=7)
    settings.update_deck_settings("spanish", easy_interval=None)
    assert settings.resolve("spanish").easy_interval == AlgorithmConfig().easy_interval


def test_invalid_update_is_not_saved(db):
    with pytest.raises(ConfigInvalid):
        settings.update_deck_settings("spanish", minimum_interval=0)
    assert database.load_override("spanish") is None


def test_invalid_stored_override_fails_resolution(db):
    database.save_override("broken", SettingsOverride(hard_interval_factor=2.0))
    with pytest.raises(ConfigInvalid):
        settings.resolve("broken")


def test_delete_override(db):
    database.save_override("spanish", SettingsOverride(easy_interval=6))
    assert database.delete_override("spanish")
    assert not database.delete_override("spanish")
    assert settings.resolve("spanish").easy_interval == 4


@pytest.mark.parametrize("changes", [
    {"learning_steps": "15"},
    {"learning_steps": [1, "10"]},
    {"relearning_steps": 10},
    {"graduating_interval": "3"},
    {"easy_interval": 4.0},
    {"leech_threshold": True},
    {"new_cards_per_day": 2.5},
    {"starting_ease": float("nan")},
    {"easy_bonus": float("inf")},
    {"interval_modifier": "1.0"},
])
def test_wrongly_typed_update_rejected(db, changes):
    with pytest.raises(ConfigInvalid) as exc:
        settings.update_deck_settings("spanish", **changes)
    assert exc.value.details["problems"]
    assert database.load_override("spanish") is None
    assert settings.resolve("spanish") == AlgorithmConfig()


def test_from_dict_rejects_string_steps():
    with pytest.raises(ConfigInvalid):
        SettingsOverride.from_dict({"learning_steps": "15"})


def test_validate_config_rejects_non_finite_values():
    with pytest.raises(ConfigInvalid):
        validate_config(AlgorithmConfig(starting_ease=float("nan")))
    with pytest.raises(ConfigInvalid):
        validate_config(AlgorithmConfig(learning_steps=(1.0, float("nan"))))
    with pytest.raises(ConfigInvalid):
        validate_policy(QueuePolicy(new_cards_per_day="20"))
