"""Shared challenges between two partners.

Each participant gets their own instance of the challenge state machine. The
pair-level state follows the reward policy:

- individual: each participant who satisfies the rule is rewarded on their own;
  the shared challenge resolves once both parts are terminal.
- joint: both are rewarded only when both satisfy the rule within the period;
  one failure fails the pair, an incomplete pair expires at period end.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from tradejournal.errors import InvalidStateError
from tradejournal.gamification.activity import ActivitySnapshot
from tradejournal.gamification.challenges import (
    Challenge,
    ChallengeDefinition,
    ChallengeState,
    evaluate_challenge,
    expire_challenge,
    request_transition,
    validate_transition,
)
from tradejournal.gamification.events import ChallengeTransition, XPGrant
from tradejournal.gamification.periods import Period, period_for
from tradejournal.partners.models import PartnerRelationship

logger = logging.getLogger(__name__)


class RewardPolicy(str, Enum):
    INDIVIDUAL = "individual"
    JOINT = "joint"


class SharedOutcome(str, Enum):
    BOTH_WON = "both_won"
    INVITER_WON = "inviter_won"
    INVITEE_WON = "invitee_won"
    BOTH_LOST = "both_lost"


@dataclass(frozen=True)
class SharedChallenge:
    id: str
    relationship_id: str
    definition: ChallengeDefinition
    period: Period
    policy: RewardPolicy
    parts: tuple[Challenge, Challenge]  # (inviter, invitee)
    state: ChallengeState = ChallengeState.PENDING
    resolved_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def participants(self) -> tuple[str, str]:
        return (self.parts[0].trader_id, self.parts[1].trader_id)

    def part_for(self, trader_id: str) -> Challenge:
        for part in self.parts:
            if part.trader_id == trader_id:
                return part
        raise ValueError(f"Trader {trader_id} is not part of shared challenge {self.id}")

    @property
    def outcome(self) -> SharedOutcome | None:
        """Who won, once the shared challenge is over."""
        if not self.is_terminal:
            return None
        inviter_won = self.parts[0].state is ChallengeState.COMPLETED
        invitee_won = self.parts[1].state is ChallengeState.COMPLETED
        if self.policy is RewardPolicy.JOINT and self.state is not ChallengeState.COMPLETED:
            return SharedOutcome.BOTH_LOST
        if inviter_won and invitee_won:
            return SharedOutcome.BOTH_WON
        if inviter_won:
            return SharedOutcome.INVITER_WON
        if invitee_won:
            return SharedOutcome.INVITEE_WON
        return SharedOutcome.BOTH_LOST


@dataclass(frozen=True)
class SharedEvaluation:
    shared: SharedChallenge
    transitions: tuple[ChallengeTransition, ...] = ()
    grants: tuple[XPGrant, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.transitions)


def create_shared_challenge(
    relationship: PartnerRelationship,
    definition: ChallengeDefinition,
    day: date,
    policy: RewardPolicy = RewardPolicy.INDIVIDUAL,
) -> SharedChallenge:
    """Create a pending shared challenge for an active relationship."""
    if not relationship.is_active:
        raise InvalidStateError(
            f"Shared challenges need an active relationship, {relationship.id} is {relationship.status.value}",
            current_state=relationship.status.value,
        )
    period = period_for(definition.kind, day)
    shared_id = f"{relationship.id}:{definition.id}:{period.key}"
    parts = tuple(
        Challenge(id=f"{shared_id}:{trader}", trader_id=trader, definition=definition, period=period)
        for trader in relationship.participants
    )
    return SharedChallenge(
        id=shared_id,
        relationship_id=relationship.id,
        definition=definition,
        period=period,
        policy=RewardPolicy(policy),
        parts=parts,  # type: ignore[arg-type]
    )


def _move(shared: SharedChallenge, target: ChallengeState, now: datetime) -> tuple[SharedChallenge, ChallengeTransition]:
    validate_transition(shared.state, target)
    moved = replace(shared, state=target, resolved_at=now if target.is_terminal else shared.resolved_at)
    return moved, ChallengeTransition(
        challenge_id=shared.id,
        new_state=target.value,
        timestamp=now,
        previous_state=shared.state.value,
    )


def _joint_grants(shared: SharedChallenge) -> tuple[XPGrant, ...]:
    return tuple(
        XPGrant(
            trader_id=part.trader_id,
            amount=shared.definition.xp_reward,
            reason=f"Joint challenge completed: {shared.definition.name}",
            idempotency_key=f"shared:{shared.id}:{part.trader_id}",
            source="shared_challenge",
            source_id=shared.id,
        )
        for part in shared.parts
    )


def _settle(
    shared: SharedChallenge,
    now: datetime,
    period_over: bool,
) -> tuple[SharedChallenge, list[ChallengeTransition], list[XPGrant]]:
    """Derive the pair-level state from the parts."""
    transitions: list[ChallengeTransition] = []
    grants: list[XPGrant] = []
    states = [part.state for part in shared.parts]

    if shared.state is ChallengeState.PENDING and any(s is not ChallengeState.PENDING for s in states):
        shared, t = _move(shared, ChallengeState.ACTIVE, now)
        transitions.append(t)
    if shared.state is not ChallengeState.ACTIVE:
        return shared, transitions, grants

    if shared.policy is RewardPolicy.INDIVIDUAL:
        if not all(s.is_terminal for s in states):
            return shared, transitions, grants
        if ChallengeState.COMPLETED in states:
            target = ChallengeState.COMPLETED
        elif all(s is ChallengeState.FAILED for s in states):
            target = ChallengeState.FAILED
        else:
            target = ChallengeState.EXPIRED
        shared, t = _move(shared, target, now)
        transitions.append(t)
        return shared, transitions, grants

    if ChallengeState.FAILED in states:
        target = ChallengeState.FAILED
    elif all(s is ChallengeState.COMPLETED for s in states):
        target = ChallengeState.COMPLETED
    elif period_over:
        target = ChallengeState.EXPIRED
    else:
        return shared, transitions, grants

    parts = list(shared.parts)
    for i, part in enumerate(parts):
        if not part.is_terminal:
            evaluation = expire_challenge(part, now)
            parts[i] = evaluation.challenge
            transitions.extend(evaluation.transitions)
    shared = replace(shared, parts=tuple(parts))
    shared, t = _move(shared, target, now)
    transitions.append(t)
    if target is ChallengeState.COMPLETED:
        grants.extend(_joint_grants(shared))
    return shared, transitions, grants


def evaluate_shared_challenge(
    shared: SharedChallenge,
    snapshots: Mapping[str, ActivitySnapshot],
    now: datetime,
) -> SharedEvaluation:
    """Evaluate both parts against each participant's period activity.

    A participant without a snapshot is evaluated against an empty one.
    """
    if shared.is_terminal:
        return SharedEvaluation(shared)

    transitions: list[ChallengeTransition] = []
    grants: list[XPGrant] = []
    parts = []
    for part in shared.parts:
        snapshot = snapshots.get(part.trader_id) or ActivitySnapshot(period=shared.period)
        evaluation = evaluate_challenge(part, snapshot, now)
        parts.append(evaluation.challenge)
        transitions.extend(evaluation.transitions)
        if shared.policy is RewardPolicy.INDIVIDUAL:
            grants.extend(evaluation.grants)

    shared = replace(shared, parts=tuple(parts))
    shared, settled, joint = _settle(shared, now, shared.period.has_ended(now))
    transitions.extend(settled)
    grants.extend(joint)
    if shared.is_terminal:
        logger.info("Shared challenge %s resolved as %s", shared.id, shared.state.value)
    return SharedEvaluation(shared, tuple(transitions), tuple(grants))


def expire_shared_challenge(shared: SharedChallenge, now: datetime) -> SharedEvaluation:
    """Expire the pair and every open part immediately."""
    if shared.is_terminal:
        return SharedEvaluation(shared)

    transitions: list[ChallengeTransition] = []
    parts = []
    for part in shared.parts:
        evaluation = expire_challenge(part, now)
        parts.append(evaluation.challenge)
        transitions.extend(evaluation.transitions)
    shared, t = _move(replace(shared, parts=tuple(parts)), ChallengeState.EXPIRED, now)
    transitions.append(t)
    return SharedEvaluation(shared, tuple(transitions))


def penalize_participant(shared: SharedChallenge, trader_id: str, now: datetime) -> SharedEvaluation:
    """Fail one participant's part after a rule violation with a challenge penalty."""
    if shared.is_terminal:
        return SharedEvaluation(shared)

    part = shared.part_for(trader_id)
    transitions: list[ChallengeTransition] = []
    if part.state is ChallengeState.PENDING:
        evaluation = request_transition(part, ChallengeState.ACTIVE, now)
        part = evaluation.challenge
        transitions.extend(evaluation.transitions)
    evaluation = request_transition(part, ChallengeState.FAILED, now)
    transitions.extend(evaluation.transitions)
    parts = tuple(evaluation.challenge if p.trader_id == trader_id else p for p in shared.parts)

    shared, settled, joint = _settle(replace(shared, parts=parts), now, shared.period.has_ended(now))
    transitions.extend(settled)
    return SharedEvaluation(shared, tuple(transitions), tuple(joint))
