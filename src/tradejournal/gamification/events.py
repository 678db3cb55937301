"""Events the core hands to the persistence layer for committing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tradejournal.gamification.streaks import Streak


@dataclass(frozen=True)
class XPGrant:
    """One XP award. idempotency_key is unique per grant for ledger deduplication."""

    trader_id: str
    amount: int
    reason: str
    idempotency_key: str
    source: str = "challenge"
    source_id: str | None = None


@dataclass(frozen=True)
class ChallengeTransition:
    challenge_id: str
    new_state: str
    timestamp: datetime
    previous_state: str | None = None


@dataclass(frozen=True)
class StreakUpdate:
    trader_id: str
    streak: Streak


@dataclass(frozen=True)
class RelationshipEvent:
    """Lifecycle transition or notification addressed to one trader."""

    relationship_id: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    recipient: str | None = None
