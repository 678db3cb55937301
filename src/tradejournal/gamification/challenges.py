"""Challenge engine: definitions, instances and the challenge state machine.

State progression: pending -> active -> completed | failed | expired
Terminal states are sticky. Re-evaluating a terminal challenge with any
activity snapshot is a no-op and never re-emits an XP grant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from tradejournal.errors import InvalidStateError, OutOfRangeInputError
from tradejournal.gamification.activity import ActivitySnapshot
from tradejournal.gamification.events import ChallengeTransition, XPGrant
from tradejournal.gamification.periods import Period, PeriodKind, period_for
from tradejournal.gamification.rules import RuleSpec, RuleStatus

logger = logging.getLogger(__name__)


class ChallengeState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({ChallengeState.COMPLETED, ChallengeState.FAILED, ChallengeState.EXPIRED})

# pending -> expired covers forced expiry before the period started
VALID_TRANSITIONS: dict[ChallengeState, list[ChallengeState]] = {
    ChallengeState.PENDING: [ChallengeState.ACTIVE, ChallengeState.EXPIRED],
    ChallengeState.ACTIVE: [ChallengeState.COMPLETED, ChallengeState.FAILED, ChallengeState.EXPIRED],
    ChallengeState.COMPLETED: [],
    ChallengeState.FAILED: [],
    ChallengeState.EXPIRED: [],
}


def validate_transition(current: ChallengeState, target: ChallengeState) -> None:
    """Validate a state transition. Raises InvalidStateError if invalid."""
    valid = VALID_TRANSITIONS.get(current, [])
    if target not in valid:
        raise InvalidStateError(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}",
            current_state=current.value,
        )


@dataclass(frozen=True)
class ChallengeDefinition:
    """A challenge template. The rule is checked for satisfiability on construction."""

    id: str
    name: str
    description: str
    kind: PeriodKind
    rule: RuleSpec
    xp_reward: int
    unit: str = ""

    def __post_init__(self) -> None:
        if self.xp_reward <= 0:
            raise OutOfRangeInputError(f"Challenge {self.id} must reward positive XP, got {self.xp_reward}")
        self.rule.validate(1 if self.kind is PeriodKind.DAILY else 7)


@dataclass(frozen=True)
class Challenge:
    id: str
    trader_id: str
    definition: ChallengeDefinition
    period: Period
    state: ChallengeState = ChallengeState.PENDING
    progress: float = 0.0
    resolved_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


@dataclass(frozen=True)
class Evaluation:
    """Result of one engine call: the next challenge state plus events to commit."""

    challenge: Challenge
    transitions: tuple[ChallengeTransition, ...] = ()
    grants: tuple[XPGrant, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.transitions)


def challenge_id_for(trader_id: str, definition: ChallengeDefinition, period: Period) -> str:
    """One instance per (trader, definition, period)."""
    return f"{trader_id}:{definition.id}:{period.key}"


def create_challenge(trader_id: str, definition: ChallengeDefinition, day: date) -> Challenge:
    """Create the pending instance of a definition for the period containing day."""
    period = period_for(definition.kind, day)
    return Challenge(
        id=challenge_id_for(trader_id, definition, period),
        trader_id=trader_id,
        definition=definition,
        period=period,
    )


def _move(challenge: Challenge, target: ChallengeState, now: datetime) -> tuple[Challenge, ChallengeTransition]:
    validate_transition(challenge.state, target)
    moved = replace(
        challenge,
        state=target,
        resolved_at=now if target.is_terminal else challenge.resolved_at,
    )
    transition = ChallengeTransition(
        challenge_id=challenge.id,
        new_state=target.value,
        timestamp=now,
        previous_state=challenge.state.value,
    )
    return moved, transition


def completion_grant(challenge: Challenge, amount: int | None = None) -> XPGrant:
    definition = challenge.definition
    return XPGrant(
        trader_id=challenge.trader_id,
        amount=definition.xp_reward if amount is None else amount,
        reason=f"Challenge completed: {definition.name}",
        idempotency_key=f"challenge:{challenge.id}",
        source="challenge",
        source_id=challenge.id,
    )


def request_transition(challenge: Challenge, target: ChallengeState, now: datetime) -> Evaluation:
    """Move a challenge to target if allowed, otherwise report it unchanged."""
    try:
        moved, transition = _move(challenge, target, now)
    except InvalidStateError as exc:
        logger.debug("Ignoring challenge transition for %s: %s", challenge.id, exc)
        return Evaluation(challenge)
    return Evaluation(moved, (transition,))


def expire_challenge(challenge: Challenge, now: datetime) -> Evaluation:
    """Force a non-terminal challenge to expired, regardless of remaining time."""
    return request_transition(challenge, ChallengeState.EXPIRED, now)


def resolve_rule(
    challenge: Challenge,
    snapshot: ActivitySnapshot,
    now: datetime,
) -> tuple[Challenge, RuleStatus, bool]:
    """Evaluate the rule without changing state. Returns (challenge with progress, status, period_over)."""
    if snapshot.period != challenge.period:
        raise OutOfRangeInputError(
            f"Snapshot period {snapshot.period.key} does not match challenge period {challenge.period.key}"
        )
    period_over = challenge.period.has_ended(now)
    status = challenge.definition.rule.status(snapshot, period_over)
    progressed = replace(challenge, progress=challenge.definition.rule.progress(snapshot))
    return progressed, status, period_over


def evaluate_challenge(challenge: Challenge, snapshot: ActivitySnapshot, now: datetime) -> Evaluation:
    """Evaluate a challenge against its period's cumulative activity.

    Completed emits exactly one XP grant of the definition's reward. At the
    end of the period an open opportunity rule expires without a grant.
    """
    if challenge.is_terminal:
        return Evaluation(challenge)

    transitions: list[ChallengeTransition] = []
    if challenge.state is ChallengeState.PENDING:
        if not challenge.period.has_started(now):
            return Evaluation(challenge)
        challenge, transition = _move(challenge, ChallengeState.ACTIVE, now)
        transitions.append(transition)

    challenge, status, period_over = resolve_rule(challenge, snapshot, now)

    grants: tuple[XPGrant, ...] = ()
    if status is RuleStatus.SATISFIED:
        challenge, transition = _move(challenge, ChallengeState.COMPLETED, now)
        transitions.append(transition)
        grants = (completion_grant(challenge),)
    elif status is RuleStatus.VIOLATED:
        challenge, transition = _move(challenge, ChallengeState.FAILED, now)
        transitions.append(transition)
    elif period_over:
        challenge, transition = _move(challenge, ChallengeState.EXPIRED, now)
        transitions.append(transition)

    if grants:
        logger.info("Challenge %s completed, granting %d XP", challenge.id, challenge.definition.xp_reward)
    return Evaluation(challenge, tuple(transitions), grants)
