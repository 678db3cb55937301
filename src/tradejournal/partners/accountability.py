"""Partner accountability business logic.

Rules:
- A trader cannot partner with themselves
- Only the invitee can accept or decline an invitation
- Either party can end the relationship; ending expires every open shared
  challenge and freezes rules and violations
- Rule violations, detected or reported by hand, notify the counter-party
  and never touch trade data
- Requests that do not fit the current state are no-ops that report it
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime

from tradejournal.errors import InvalidStateError, OutOfRangeInputError
from tradejournal.gamification.activity import DailyActivity
from tradejournal.gamification.challenges import Challenge
from tradejournal.gamification.events import RelationshipEvent
from tradejournal.gamification.levels import TraderLevel
from tradejournal.partners.models import (
    Consequence,
    PartnerRelationship,
    PartnerRule,
    RelationshipStatus,
    RuleViolation,
    validate_transition,
)
from tradejournal.partners.shared import (
    SharedChallenge,
    SharedEvaluation,
    SharedOutcome,
    expire_shared_challenge,
    penalize_participant,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartnerUpdate:
    """Next relationship state plus the events and shared-challenge changes to commit."""

    relationship: PartnerRelationship
    events: tuple[RelationshipEvent, ...] = ()
    shared_challenges: tuple[SharedEvaluation, ...] = ()
    new_violations: tuple[RuleViolation, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.events) or any(s.changed for s in self.shared_challenges)


def _event(relationship: PartnerRelationship, kind: str, recipient: str | None = None, **payload) -> RelationshipEvent:
    return RelationshipEvent(relationship_id=relationship.id, kind=kind, payload=payload, recipient=recipient)


def _status_event(relationship: PartnerRelationship, actor: str) -> RelationshipEvent:
    return _event(relationship, "status_changed", status=relationship.status.value, actor=actor)


def _transition(
    relationship: PartnerRelationship,
    target: RelationshipStatus,
    actor: str,
    now: datetime,
) -> PartnerRelationship | None:
    try:
        validate_transition(relationship.status, target)
    except InvalidStateError as exc:
        logger.debug("Ignoring relationship transition for %s: %s", relationship.id, exc)
        return None
    return replace(
        relationship,
        status=target,
        updated_at=now,
        ended_by=actor if target is RelationshipStatus.ENDED else relationship.ended_by,
    )


def _require_participant(relationship: PartnerRelationship, trader_id: str) -> None:
    if not relationship.has_participant(trader_id):
        raise ValueError(f"Trader {trader_id} is not part of relationship {relationship.id}")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def invite_partner(
    relationship_id: str,
    inviter: str,
    invitee: str,
    now: datetime,
    existing: PartnerRelationship | None = None,
) -> PartnerUpdate:
    """Propose a partnership. An invited or active pairing is reported unchanged."""
    if inviter == invitee:
        raise OutOfRangeInputError("You cannot partner with yourself")
    if existing is not None and existing.status in (RelationshipStatus.INVITED, RelationshipStatus.ACTIVE):
        logger.debug("Partnership %s already %s", existing.id, existing.status.value)
        return PartnerUpdate(existing)

    relationship = PartnerRelationship(
        id=relationship_id,
        inviter=inviter,
        invitee=invitee,
        status=RelationshipStatus.INVITED,
        created_at=now,
        updated_at=now,
    )
    events = (
        _status_event(relationship, inviter),
        _event(relationship, "partner_request", recipient=invitee, from_trader=inviter),
    )
    logger.info("Partner request %s: %s -> %s", relationship_id, inviter, invitee)
    return PartnerUpdate(relationship, events)


def accept_partner(relationship: PartnerRelationship, trader_id: str, now: datetime) -> PartnerUpdate:
    """Invitee accepts: invited -> active."""
    _require_participant(relationship, trader_id)
    if trader_id != relationship.invitee:
        return PartnerUpdate(relationship)
    moved = _transition(relationship, RelationshipStatus.ACTIVE, trader_id, now)
    if moved is None:
        return PartnerUpdate(relationship)
    events = (
        _status_event(moved, trader_id),
        _event(moved, "partner_accepted", recipient=moved.inviter, from_trader=trader_id),
    )
    logger.info("Partnership %s is now active", moved.id)
    return PartnerUpdate(moved, events)


def decline_partner(relationship: PartnerRelationship, trader_id: str, now: datetime) -> PartnerUpdate:
    """Invitee declines: invited -> declined."""
    _require_participant(relationship, trader_id)
    if trader_id != relationship.invitee:
        return PartnerUpdate(relationship)
    moved = _transition(relationship, RelationshipStatus.DECLINED, trader_id, now)
    if moved is None:
        return PartnerUpdate(relationship)
    events = (
        _status_event(moved, trader_id),
        _event(moved, "partner_declined", recipient=moved.inviter, from_trader=trader_id),
    )
    return PartnerUpdate(moved, events)


def end_partnership(
    relationship: PartnerRelationship,
    trader_id: str,
    now: datetime,
    shared_challenges: Iterable[SharedChallenge] = (),
) -> PartnerUpdate:
    """Either party ends the relationship; open shared challenges expire at once."""
    _require_participant(relationship, trader_id)
    moved = _transition(relationship, RelationshipStatus.ENDED, trader_id, now)
    if moved is None:
        return PartnerUpdate(relationship)

    expired = tuple(
        expire_shared_challenge(shared, now)
        for shared in shared_challenges
        if shared.relationship_id == relationship.id and not shared.is_terminal
    )
    events = (
        _status_event(moved, trader_id),
        _event(moved, "partnership_ended", recipient=moved.counterpart(trader_id), ended_by=trader_id),
    )
    logger.info("Partnership %s ended by %s, %d shared challenges expired", moved.id, trader_id, len(expired))
    return PartnerUpdate(moved, events, expired)


# ---------------------------------------------------------------------------
# Shared rules
# ---------------------------------------------------------------------------


def add_rule(relationship: PartnerRelationship, rule: PartnerRule, now: datetime) -> PartnerUpdate:
    """Add a shared rule. Only active relationships accept new rules."""
    _require_participant(relationship, rule.created_by)
    if not relationship.is_active or relationship.rule(rule.id) is not None:
        return PartnerUpdate(relationship)
    moved = replace(relationship, rules=relationship.rules + (rule,), updated_at=now)
    event = _event(
        moved, "new_rule",
        recipient=moved.counterpart(rule.created_by),
        rule_id=rule.id, title=rule.title, stake_amount=rule.stake_amount,
    )
    return PartnerUpdate(moved, (event,))


def deactivate_rule(
    relationship: PartnerRelationship,
    rule_id: str,
    trader_id: str,
    now: datetime,
) -> PartnerUpdate:
    _require_participant(relationship, trader_id)
    rule = relationship.rule(rule_id)
    if not relationship.is_active or rule is None or not rule.is_active:
        return PartnerUpdate(relationship)
    rules = tuple(replace(r, is_active=False) if r.id == rule_id else r for r in relationship.rules)
    return PartnerUpdate(replace(relationship, rules=rules, updated_at=now))


def violation_id_for(relationship: PartnerRelationship, rule: PartnerRule, trader_id: str, activity: DailyActivity) -> str:
    return _violation_id(relationship, rule.id, trader_id, activity.day)


def _violation_id(relationship: PartnerRelationship, rule_id: str, trader_id: str, day: date) -> str:
    return f"{relationship.id}:{rule_id}:{trader_id}:{day.isoformat()}"


def _penalize_open(
    relationship: PartnerRelationship,
    trader_id: str,
    shared_challenges: Iterable[SharedChallenge],
    now: datetime,
) -> tuple[SharedEvaluation, ...]:
    return tuple(
        penalize_participant(shared, trader_id, now)
        for shared in shared_challenges
        if shared.relationship_id == relationship.id and not shared.is_terminal
    )


def evaluate_partner_rules(
    relationship: PartnerRelationship,
    trader_id: str,
    activity: DailyActivity,
    now: datetime,
    shared_challenges: Sequence[SharedChallenge] = (),
    notify_violator: bool = False,
) -> PartnerUpdate:
    """Check one trader-day against every active shared rule.

    Evaluating the same day twice records each violation once.
    """
    _require_participant(relationship, trader_id)
    if not relationship.is_active:
        return PartnerUpdate(relationship)

    known = {v.id for v in relationship.violations}
    partner = relationship.counterpart(trader_id)
    violations: list[RuleViolation] = []
    events: list[RelationshipEvent] = []
    penalize = False

    for rule in relationship.active_rules():
        observed = rule.metric.measure((activity,))
        if observed <= rule.limit:
            continue
        violation_id = violation_id_for(relationship, rule, trader_id, activity)
        if violation_id in known:
            continue
        violation = RuleViolation(
            id=violation_id,
            rule_id=rule.id,
            trader_id=trader_id,
            day=activity.day,
            observed=observed,
            amount_owed=rule.stake_amount,
        )
        violations.append(violation)
        payload = {
            "rule_id": rule.id,
            "title": rule.title,
            "violator": trader_id,
            "day": activity.day.isoformat(),
            "observed": observed,
            "limit": rule.limit,
            "amount_owed": rule.stake_amount,
        }
        events.append(_event(relationship, "rule_violation", recipient=partner, **payload))
        if notify_violator:
            events.append(_event(relationship, "rule_violation", recipient=trader_id, **payload))
        if rule.consequence is Consequence.CHALLENGE_PENALTY:
            penalize = True

    if not violations:
        return PartnerUpdate(relationship)

    penalized: tuple[SharedEvaluation, ...] = ()
    if penalize:
        penalized = _penalize_open(relationship, trader_id, shared_challenges, now)

    moved = replace(relationship, violations=relationship.violations + tuple(violations), updated_at=now)
    logger.info("Trader %s broke %d partner rule(s) in %s", trader_id, len(violations), relationship.id)
    return PartnerUpdate(moved, tuple(events), penalized, tuple(violations))


def report_violation(
    relationship: PartnerRelationship,
    rule_id: str,
    trader_id: str,
    reported_by: str,
    day: date,
    now: datetime,
    amount_owed: float | None = None,
    notes: str = "",
    shared_challenges: Sequence[SharedChallenge] = (),
) -> PartnerUpdate:
    """Record a violation a participant reports by hand.

    Covers rules the activity data cannot measure. Either participant can
    report, including the violator. The stake defaults to the rule's and the
    violator's partner is notified. A rule, trader and day is recorded once,
    whether it was reported or detected.
    """
    _require_participant(relationship, trader_id)
    _require_participant(relationship, reported_by)
    if amount_owed is not None and amount_owed < 0:
        raise OutOfRangeInputError("Amount owed cannot be negative")

    rule = relationship.rule(rule_id)
    if not relationship.is_active or rule is None or not rule.is_active:
        return PartnerUpdate(relationship)
    violation_id = _violation_id(relationship, rule.id, trader_id, day)
    if any(v.id == violation_id for v in relationship.violations):
        return PartnerUpdate(relationship)

    violation = RuleViolation(
        id=violation_id,
        rule_id=rule.id,
        trader_id=trader_id,
        day=day,
        observed=None,
        amount_owed=rule.stake_amount if amount_owed is None else amount_owed,
        reported_by=reported_by,
        notes=notes,
    )
    event = _event(
        relationship, "rule_violation",
        recipient=relationship.counterpart(trader_id),
        rule_id=rule.id, title=rule.title, violator=trader_id, reported_by=reported_by,
        day=day.isoformat(), amount_owed=violation.amount_owed,
    )
    penalized: tuple[SharedEvaluation, ...] = ()
    if rule.consequence is Consequence.CHALLENGE_PENALTY:
        penalized = _penalize_open(relationship, trader_id, shared_challenges, now)

    moved = replace(relationship, violations=relationship.violations + (violation,), updated_at=now)
    logger.info("Violation of %s by %s reported by %s", rule.id, trader_id, reported_by)
    return PartnerUpdate(moved, (event,), penalized, (violation,))


def settle_violation(
    relationship: PartnerRelationship,
    violation_id: str,
    trader_id: str,
    now: datetime,
) -> PartnerUpdate:
    """Mark a violation settled. History of an ended relationship stays frozen."""
    _require_participant(relationship, trader_id)
    if relationship.is_frozen:
        return PartnerUpdate(relationship)
    target = next((v for v in relationship.violations if v.id == violation_id), None)
    if target is None or target.is_settled:
        return PartnerUpdate(relationship)

    violations = tuple(
        replace(v, is_settled=True, settled_at=now) if v.id == violation_id else v
        for v in relationship.violations
    )
    moved = replace(relationship, violations=violations, updated_at=now)
    event = _event(moved, "violation_settled", recipient=target.trader_id, violation_id=violation_id)
    return PartnerUpdate(moved, (event,))


# ---------------------------------------------------------------------------
# Mirroring and summaries
# ---------------------------------------------------------------------------


def mirror_events(
    relationship: PartnerRelationship,
    trader_id: str,
    level_up: TraderLevel | None = None,
    completed: Iterable[Challenge] = (),
) -> tuple[RelationshipEvent, ...]:
    """Notify the partner about a trader's level-up and completed challenges."""
    if not relationship.is_active or not relationship.has_participant(trader_id):
        return ()
    partner = relationship.counterpart(trader_id)
    events: list[RelationshipEvent] = []
    if level_up is not None:
        events.append(_event(
            relationship, "partner_level_up",
            recipient=partner, trader_id=trader_id, level=level_up.level, title=level_up.title,
        ))
    for challenge in completed:
        events.append(_event(
            relationship, "partner_challenge_completed",
            recipient=partner, trader_id=trader_id,
            challenge_id=challenge.id, name=challenge.definition.name,
            xp_reward=challenge.definition.xp_reward,
        ))
    return tuple(events)


def partner_balance(relationship: PartnerRelationship) -> dict:
    """Unsettled stakes each way; positive net means the inviter owes the invitee."""
    inviter_owes = sum(
        v.amount_owed for v in relationship.violations
        if v.trader_id == relationship.inviter and not v.is_settled
    )
    invitee_owes = sum(
        v.amount_owed for v in relationship.violations
        if v.trader_id == relationship.invitee and not v.is_settled
    )
    return {
        "inviter_id": relationship.inviter,
        "invitee_id": relationship.invitee,
        "inviter_owes": inviter_owes,
        "invitee_owes": invitee_owes,
        "net_balance": inviter_owes - invitee_owes,
    }


def partner_stats(
    relationship: PartnerRelationship,
    trader_id: str,
    shared_challenges: Iterable[SharedChallenge] = (),
) -> dict:
    """Head-to-head record of one trader in this relationship."""
    _require_participant(relationship, trader_id)
    finished = [s for s in shared_challenges if s.relationship_id == relationship.id and s.is_terminal]
    if trader_id == relationship.inviter:
        mine, theirs = SharedOutcome.INVITER_WON, SharedOutcome.INVITEE_WON
    else:
        mine, theirs = SharedOutcome.INVITEE_WON, SharedOutcome.INVITER_WON
    # A loss only counts when the partner won; both_lost is nobody's win.
    won = sum(1 for s in finished if s.outcome in (mine, SharedOutcome.BOTH_WON))
    lost = sum(1 for s in finished if s.outcome is theirs)
    own_violations = [v for v in relationship.violations if v.trader_id == trader_id]
    return {
        "total_challenges": len(finished),
        "challenges_won": won,
        "challenges_lost": lost,
        "win_rate": round(100 * won / len(finished), 1) if finished else 0.0,
        "total_violations": len(own_violations),
        "total_violation_amount": sum(v.amount_owed for v in own_violations),
    }
