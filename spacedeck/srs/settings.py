"""
Settings Resolver - Effective Algorithm Config per Deck

Resolution order, field by field (later layers win):
1. Code defaults (AlgorithmConfig() / QueuePolicy())
2. Global override (stored under GLOBAL_SCOPE)
3. Deck override

Resolution reads storage on every call so an edited setting applies to the
very next review; nothing is cached here.
"""

from __future__ import annotations
import logging
from typing import Optional

from spacedeck.errors import ConfigInvalid
from spacedeck.srs import database
from spacedeck.srs.params import (
    AlgorithmConfig,
    QueuePolicy,
    SettingsOverride,
    merge_config,
    merge_policy,
    validate_config,
    validate_policy,
)

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "__global__"

DEFAULT_CONFIG = AlgorithmConfig()
DEFAULT_POLICY = QueuePolicy()


def _layers(deck_id: Optional[str]) -> list[Optional[SettingsOverride]]:
    layers = [database.load_override(GLOBAL_SCOPE)]
    if deck_id is not None and deck_id != GLOBAL_SCOPE:
        layers.append(database.load_override(deck_id))
    return layers


def resolve(deck_id: Optional[str]) -> AlgorithmConfig:
    """
    Effective algorithm config for a deck.

    Decks without an override get the global defaults.

    Raises:
        ConfigInvalid: if the merged config fails sanity bounds
    """
    config = DEFAULT_CONFIG
    for override in _layers(deck_id):
        config = merge_config(config, override)
    try:
        return validate_config(config)
    except ConfigInvalid:
        logger.error("Rejected algorithm config for deck %s", deck_id)
        raise


def resolve_policy(deck_id: Optional[str]) -> QueuePolicy:
    """
    Effective queue policy (daily limits, new-card spacing) for a deck.

    Raises:
        ConfigInvalid: if the merged policy fails sanity bounds
    """
    policy = DEFAULT_POLICY
    for override in _layers(deck_id):
        policy = merge_policy(policy, override)
    try:
        return validate_policy(policy)
    except ConfigInvalid:
        logger.error("Rejected queue policy for deck %s", deck_id)
        raise


def update_deck_settings(deck_id: str, **changes) -> AlgorithmConfig:
    """
    Patch a deck's stored override and return the new effective config.

    Keys passed as None are cleared (inherit again); keys not passed keep
    their stored value. The patched result is validated before it is saved,
    so an invalid edit never reaches storage.

    Raises:
        ConfigInvalid: on unknown keys or out-of-bounds values
    """
    current = database.load_override(deck_id) or SettingsOverride()
    stored = current.set_fields()
    stored.update(changes)
    patched = SettingsOverride.from_dict(stored)

    config = DEFAULT_CONFIG
    policy = DEFAULT_POLICY
    for override in _layers(None) + [patched]:
        config = merge_config(config, override)
        policy = merge_policy(policy, override)
    validate_config(config)
    validate_policy(policy)

    database.save_override(deck_id, patched)
    return config
