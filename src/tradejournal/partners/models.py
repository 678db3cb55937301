"""Partner accountability records.

A relationship is owned jointly by both traders. Either of them can end it;
an ended relationship keeps its rules and violations as read-only history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from tradejournal.errors import InvalidStateError
from tradejournal.gamification.activity import Metric
from tradejournal.gamification.rules import Limit


class RelationshipStatus(str, Enum):
    INVITED = "invited"
    ACTIVE = "active"
    DECLINED = "declined"
    ENDED = "ended"


VALID_TRANSITIONS: dict[RelationshipStatus, list[RelationshipStatus]] = {
    RelationshipStatus.INVITED: [RelationshipStatus.ACTIVE, RelationshipStatus.DECLINED, RelationshipStatus.ENDED],
    RelationshipStatus.ACTIVE: [RelationshipStatus.ENDED],
    RelationshipStatus.DECLINED: [],
    RelationshipStatus.ENDED: [],
}


def validate_transition(current: RelationshipStatus, target: RelationshipStatus) -> None:
    """Validate a relationship transition. Raises InvalidStateError if invalid."""
    valid = VALID_TRANSITIONS.get(current, [])
    if target not in valid:
        raise InvalidStateError(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}",
            current_state=current.value,
        )


class Consequence(str, Enum):
    NOTIFY = "notify"
    CHALLENGE_PENALTY = "challenge_penalty"


@dataclass(frozen=True)
class PartnerRule:
    """A shared limit on a measurable daily behaviour, e.g. max daily loss."""

    id: str
    title: str
    metric: Metric
    limit: float
    created_by: str
    consequence: Consequence = Consequence.NOTIFY
    stake_amount: float = 0.0
    is_active: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        spec = Limit(self.metric, self.limit)
        spec.validate(1)
        object.__setattr__(self, "metric", spec.metric)
        object.__setattr__(self, "consequence", Consequence(self.consequence))
        if self.stake_amount < 0:
            raise ValueError("Stake amount cannot be negative")


@dataclass(frozen=True)
class RuleViolation:
    """A broken rule. Reported violations carry the reporter and no observed value."""

    id: str
    rule_id: str
    trader_id: str
    day: date
    observed: float | None
    amount_owed: float = 0.0
    is_settled: bool = False
    settled_at: datetime | None = None
    reported_by: str | None = None
    notes: str = ""


@dataclass(frozen=True)
class PartnerRelationship:
    id: str
    inviter: str
    invitee: str
    status: RelationshipStatus
    created_at: datetime
    rules: tuple[PartnerRule, ...] = ()
    violations: tuple[RuleViolation, ...] = ()
    updated_at: datetime | None = None
    ended_by: str | None = None

    @property
    def participants(self) -> tuple[str, str]:
        return (self.inviter, self.invitee)

    @property
    def is_active(self) -> bool:
        return self.status is RelationshipStatus.ACTIVE

    @property
    def is_frozen(self) -> bool:
        """Ended or declined relationships are read-only history."""
        return self.status in (RelationshipStatus.ENDED, RelationshipStatus.DECLINED)

    def has_participant(self, trader_id: str) -> bool:
        return trader_id in self.participants

    def counterpart(self, trader_id: str) -> str:
        if trader_id == self.inviter:
            return self.invitee
        if trader_id == self.invitee:
            return self.inviter
        raise ValueError(f"Trader {trader_id} is not part of relationship {self.id}")

    def active_rules(self) -> tuple[PartnerRule, ...]:
        return tuple(rule for rule in self.rules if rule.is_active)

    def rule(self, rule_id: str) -> PartnerRule | None:
        return next((r for r in self.rules if r.id == rule_id), None)
