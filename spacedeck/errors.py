"""
Errors raised by the scheduling core.

Every error carries a stable ``code`` so a service layer can map it to a
response (e.g. NotFound -> 404) without string matching.
"""

from __future__ import annotations

from typing import Any, Optional


class SpacedeckError(Exception):
    """Base class for scheduling-core errors."""

    code = "spacedeck_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(SpacedeckError):
    """Malformed input: bad grade, negative interval, corrupt card state."""

    code = "validation_error"


class NotFound(SpacedeckError):
    """Unknown card or deck."""

    code = "not_found"


class Conflict(SpacedeckError):
    """
    A concurrent commit changed the card first.

    Callers may retry once with freshly loaded state.
    """

    code = "conflict"


class ConfigInvalid(SpacedeckError):
    """Resolved algorithm settings fail sanity bounds."""

    code = "config_invalid"
