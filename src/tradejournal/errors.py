"""Gamification error taxonomy.

InvalidStateError is normally recovered inside the engine (the operation turns
into a no-op that reports the existing state). The other two are surfaced to
the caller.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for every error raised by the gamification core."""


class InvalidStateError(GamificationError):
    """Operation requested on a challenge or relationship in an incompatible state."""

    def __init__(self, message: str, current_state: str | None = None) -> None:
        super().__init__(message)
        self.current_state = current_state


class OutOfRangeInputError(GamificationError, ValueError):
    """Negative XP, malformed date ranges, out-of-order history."""


class UnsatisfiableRuleError(GamificationError):
    """Rule that can never complete nor fail (configuration error)."""
