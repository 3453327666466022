"""
Algorithm Parameters - Effective Config Types and Field-by-Field Merge

AlgorithmConfig is what the scheduler consumes; QueuePolicy is what the
queue selector consumes. Both are frozen: they are resolved once per call
and never mutated mid-calculation.

SettingsOverride is the sparse, stored form. A None field means "inherit".
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field, fields, replace
from numbers import Real
from typing import Optional

from spacedeck.errors import ConfigInvalid
from spacedeck.srs import constants as c


@dataclass(frozen=True)
class LapsePolicy:
    """What happens to a card that is forgotten."""
    new_interval_fraction: float = c.NEW_INTERVAL_FRACTION
    ease_penalty: float = c.LAPSE_EASE_PENALTY
    leech_threshold: int = c.LEECH_THRESHOLD


@dataclass(frozen=True)
class AlgorithmConfig:
    """Fully resolved scheduling parameters for one deck."""
    learning_steps: tuple[float, ...] = c.LEARNING_STEPS      # minutes
    relearning_steps: tuple[float, ...] = c.RELEARNING_STEPS  # minutes
    graduating_interval: int = c.GRADUATING_INTERVAL
    easy_interval: int = c.EASY_INTERVAL
    starting_ease: float = c.DEFAULT_EASE
    easy_ease_bonus: float = c.EASY_EASE_BONUS
    hard_ease_penalty: float = c.HARD_EASE_PENALTY
    hard_interval_factor: float = c.HARD_INTERVAL_FACTOR
    easy_bonus: float = c.EASY_BONUS
    interval_modifier: float = c.INTERVAL_MODIFIER
    minimum_interval: int = c.MINIMUM_INTERVAL
    maximum_interval: int = c.MAXIMUM_INTERVAL
    lapse_policy: LapsePolicy = field(default_factory=LapsePolicy)


@dataclass(frozen=True)
class QueuePolicy:
    """Daily limits and new-card interleaving for the review queue."""
    new_cards_per_day: int = c.NEW_CARDS_PER_DAY
    max_reviews_per_day: int = c.MAX_REVIEWS_PER_DAY
    new_card_spacing: int = c.NEW_CARD_SPACING


@dataclass(frozen=True)
class SettingsOverride:
    """
    Sparse per-deck (or global) settings.

    Lapse policy fields are flattened so each one can be overridden alone.
    """
    learning_steps: Optional[tuple[float, ...]] = None
    relearning_steps: Optional[tuple[float, ...]] = None
    graduating_interval: Optional[int] = None
    easy_interval: Optional[int] = None
    starting_ease: Optional[float] = None
    easy_ease_bonus: Optional[float] = None
    hard_ease_penalty: Optional[float] = None
    hard_interval_factor: Optional[float] = None
    easy_bonus: Optional[float] = None
    interval_modifier: Optional[float] = None
    minimum_interval: Optional[int] = None
    maximum_interval: Optional[int] = None
    new_interval_fraction: Optional[float] = None
    lapse_ease_penalty: Optional[float] = None
    leech_threshold: Optional[int] = None
    new_cards_per_day: Optional[int] = None
    max_reviews_per_day: Optional[int] = None
    new_card_spacing: Optional[int] = None

    def __post_init__(self):
        problems = _type_problems(self.set_fields())
        if problems:
            raise ConfigInvalid("Invalid settings: " + "; ".join(problems), {"problems": problems})

    def set_fields(self) -> dict:
        """Fields that carry a value (i.e. do not inherit)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "SettingsOverride":
        """
        Build an override from a plain mapping, ignoring None values.

        Step lists may be any sequence of numbers and are stored as tuples.

        Raises:
            ConfigInvalid: on unknown keys or values of the wrong type
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigInvalid(f"Unknown settings: {', '.join(unknown)}", {"unknown": unknown})
        values = {k: v for k, v in data.items() if v is not None}
        for key in _STEP_FIELDS:
            if isinstance(values.get(key), list):
                values[key] = tuple(values[key])
        return cls(**values)


_LAPSE_FIELDS = {
    "new_interval_fraction": "new_interval_fraction",
    "lapse_ease_penalty": "ease_penalty",
    "leech_threshold": "leech_threshold",
}
_POLICY_FIELDS = {"new_cards_per_day", "max_reviews_per_day", "new_card_spacing"}
_STEP_FIELDS = ("learning_steps", "relearning_steps")
_INT_FIELDS = {
    "graduating_interval", "easy_interval", "minimum_interval", "maximum_interval",
    "leech_threshold", "new_cards_per_day", "max_reviews_per_day", "new_card_spacing",
}


def _is_number(value) -> bool:
    """Finite real number; bools are not numbers here."""
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _type_problems(values: dict) -> list[str]:
    """
    Type errors in a flat name -> value mapping of settings.

    Steps must be a list or tuple of finite numbers, day counts and quotas whole
    ints, everything else a finite number.
    """
    problems: list[str] = []
    for name, value in values.items():
        if name in _STEP_FIELDS:
            if not isinstance(value, (tuple, list)) or not all(_is_number(s) for s in value):
                problems.append(f"{name} must be a list of numbers, got {value!r}")
        elif name in _INT_FIELDS:
            if not isinstance(value, int) or isinstance(value, bool):
                problems.append(f"{name} must be a whole number, got {value!r}")
        elif not _is_number(value):
            problems.append(f"{name} must be a finite number, got {value!r}")
    return problems


def _flatten(config: AlgorithmConfig) -> dict:
    values = {f.name: getattr(config, f.name) for f in fields(config) if f.name != "lapse_policy"}
    for flat_name, lapse_name in _LAPSE_FIELDS.items():
        values[flat_name] = getattr(config.lapse_policy, lapse_name)
    return values


def _as_steps(steps) -> tuple[float, ...]:
    return tuple(float(s) for s in steps)


def merge_config(base: AlgorithmConfig, override: Optional[SettingsOverride]) -> AlgorithmConfig:
    """
    Apply an override on top of a config, field by field.

    Set fields replace the base value; unset fields inherit it. The result
    is a new, fully populated config; `base` is left untouched.
    """
    if override is None:
        return base

    top: dict = {}
    lapse: dict = {}
    for name, value in override.set_fields().items():
        if name in _LAPSE_FIELDS:
            lapse[_LAPSE_FIELDS[name]] = value
        elif name in _POLICY_FIELDS:
            continue
        elif name in _STEP_FIELDS:
            top[name] = _as_steps(value)
        else:
            top[name] = value

    if lapse:
        top["lapse_policy"] = replace(base.lapse_policy, **lapse)
    return replace(base, **top) if top else base


def merge_policy(base: QueuePolicy, override: Optional[SettingsOverride]) -> QueuePolicy:
    """Queue-policy counterpart of merge_config."""
    if override is None:
        return base
    values = {k: v for k, v in override.set_fields().items() if k in _POLICY_FIELDS}
    return replace(base, **values) if values else base


def validate_config(config: AlgorithmConfig) -> AlgorithmConfig:
    """
    Check sanity bounds on a resolved config.

    Returns:
        The same config, for chaining

    Raises:
        ConfigInvalid: listing every violated bound
    """
    problems = _type_problems(_flatten(config))
    if problems:
        raise ConfigInvalid("Invalid algorithm config: " + "; ".join(problems), {"problems": problems})

    if not config.learning_steps:
        problems.append("learning_steps must contain at least one step")
    if any(step <= 0 for step in config.learning_steps):
        problems.append("learning_steps must be positive")
    if any(step <= 0 for step in config.relearning_steps):
        problems.append("relearning_steps must be positive")
    if config.minimum_interval < 1:
        problems.append("minimum_interval must be at least 1 day")
    if config.maximum_interval < config.minimum_interval:
        problems.append("maximum_interval must not be below minimum_interval")
    if config.graduating_interval < 1:
        problems.append("graduating_interval must be at least 1 day")
    if config.easy_interval < config.graduating_interval:
        problems.append("easy_interval must not be below graduating_interval")
    if config.starting_ease < c.EASE_FLOOR:
        problems.append(f"starting_ease must be at least {c.EASE_FLOOR}")
    if config.easy_ease_bonus < 0 or config.hard_ease_penalty < 0:
        problems.append("ease adjustments must not be negative")
    if not 0 < config.hard_interval_factor < 1:
        problems.append("hard_interval_factor must be between 0 and 1")
    if config.easy_bonus < 1:
        problems.append("easy_bonus must be at least 1")
    low, high = c.INTERVAL_MODIFIER_BOUNDS
    if not low <= config.interval_modifier <= high:
        problems.append(f"interval_modifier must be within {low}-{high}")

    lapse = config.lapse_policy
    if not 0 <= lapse.new_interval_fraction < 1:
        problems.append("new_interval_fraction must be in [0, 1)")
    if lapse.ease_penalty < 0:
        problems.append("lapse ease_penalty must not be negative")
    if lapse.leech_threshold < 1:
        problems.append("leech_threshold must be at least 1")

    if problems:
        raise ConfigInvalid("Invalid algorithm config: " + "; ".join(problems), {"problems": problems})
    return config


def validate_policy(policy: QueuePolicy) -> QueuePolicy:
    """
    Check sanity bounds on a resolved queue policy.

    Raises:
        ConfigInvalid: listing every violated bound
    """
    problems = _type_problems({f.name: getattr(policy, f.name) for f in fields(policy)})
    if problems:
        raise ConfigInvalid("Invalid queue policy: " + "; ".join(problems), {"problems": problems})
    if policy.new_cards_per_day < 0:
        problems.append("new_cards_per_day must not be negative")
    if policy.max_reviews_per_day < 0:
        problems.append("max_reviews_per_day must not be negative")
    if policy.new_card_spacing < 1:
        problems.append("new_card_spacing must be at least 1")
    if problems:
        raise ConfigInvalid("Invalid queue policy: " + "; ".join(problems), {"problems": problems})
    return policy
