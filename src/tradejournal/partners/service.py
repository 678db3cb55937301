"""Partnership persistence: loads rows into the engine's records and commits its updates."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import date, datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.db.models import (
    DailyActivityLog,
    Partnership,
    PartnerCheckInRecord,
    PartnershipRule,
    RuleViolationRecord,
    SharedChallengeRecord,
)
from tradejournal.errors import InvalidStateError, OutOfRangeInputError
from tradejournal.gamification.activity import DailyActivity, Metric
from tradejournal.gamification.catalog import CATALOG
from tradejournal.gamification.challenges import Challenge, ChallengeState
from tradejournal.gamification.periods import PeriodKind, period_for
from tradejournal.gamification.xp_service import grant_xp
from tradejournal.notifications.service import deliver_relationship_events
from tradejournal.partners import accountability
from tradejournal.partners.checkins import CheckIn, CheckInType, record_check_in, today_status
from tradejournal.partners.models import (
    Consequence,
    PartnerRelationship,
    PartnerRule,
    RelationshipStatus,
    RuleViolation,
)
from tradejournal.partners.shared import (
    RewardPolicy,
    SharedChallenge,
    SharedEvaluation,
    create_shared_challenge,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = (RelationshipStatus.INVITED.value, RelationshipStatus.ACTIVE.value)


# ---------------------------------------------------------------------------
# Row <-> record conversion
# ---------------------------------------------------------------------------


def to_rule(row: PartnershipRule) -> PartnerRule:
    return PartnerRule(
        id=row.id,
        title=row.title,
        metric=Metric(row.metric),
        limit=row.limit_value,
        created_by=row.created_by,
        consequence=Consequence(row.consequence),
        stake_amount=row.stake_amount,
        is_active=row.is_active,
        description=row.description,
    )


def to_violation(row: RuleViolationRecord) -> RuleViolation:
    return RuleViolation(
        id=row.id,
        rule_id=row.rule_id,
        trader_id=row.trader_id,
        day=row.day,
        observed=row.observed,
        amount_owed=row.amount_owed,
        is_settled=row.is_settled,
        settled_at=row.settled_at,
        reported_by=row.reported_by,
        notes=row.notes,
    )


def to_relationship(row: Partnership) -> PartnerRelationship:
    return PartnerRelationship(
        id=row.id,
        inviter=row.inviter_id,
        invitee=row.invitee_id,
        status=RelationshipStatus(row.status),
        created_at=row.created_at,
        rules=tuple(to_rule(r) for r in row.rules),
        violations=tuple(to_violation(v) for v in row.violations),
        updated_at=row.updated_at,
        ended_by=row.ended_by,
    )


def to_shared(row: SharedChallengeRecord, relationship: PartnerRelationship) -> SharedChallenge:
    definition = CATALOG[row.definition_id]
    period = period_for(PeriodKind(row.period_kind), row.period_start)
    sides = (
        (relationship.inviter, row.inviter_state, row.inviter_progress),
        (relationship.invitee, row.invitee_state, row.invitee_progress),
    )
    parts = tuple(
        Challenge(
            id=f"{row.id}:{trader}",
            trader_id=trader,
            definition=definition,
            period=period,
            state=ChallengeState(state),
            progress=progress,
        )
        for trader, state, progress in sides
    )
    return SharedChallenge(
        id=row.id,
        relationship_id=row.partnership_id,
        definition=definition,
        period=period,
        policy=RewardPolicy(row.policy),
        parts=parts,  # type: ignore[arg-type]
        state=ChallengeState(row.state),
        resolved_at=row.resolved_at,
    )


def to_activity(row: DailyActivityLog) -> DailyActivity:
    return DailyActivity(
        day=row.day,
        trades_logged=row.trades_logged,
        winning_trades=row.winning_trades,
        losing_trades=row.losing_trades,
        net_pnl=row.net_pnl,
        journal_entries=row.journal_entries,
        notes_added=row.notes_added,
        trades_reviewed=row.trades_reviewed,
        lessons_documented=row.lessons_documented,
        trades_with_setup=row.trades_with_setup,
        trades_with_stop_loss=row.trades_with_stop_loss,
        has_pre_market_note=row.has_pre_market_note,
        has_post_market_note=row.has_post_market_note,
        weekly_review_completed=row.weekly_review_completed,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_partnership(db: AsyncSession, partnership_id: str, trader_id: str) -> Partnership:
    """Load a partnership the trader belongs to. Raises LookupError otherwise."""
    result = await db.execute(select(Partnership).where(Partnership.id == partnership_id))
    row = result.scalar_one_or_none()
    if row is None or trader_id not in (row.inviter_id, row.invitee_id):
        raise LookupError(f"Partnership {partnership_id} not found")
    return row


async def get_active_partnership(db: AsyncSession, trader_id: str) -> Partnership | None:
    result = await db.execute(
        select(Partnership).where(
            or_(Partnership.inviter_id == trader_id, Partnership.invitee_id == trader_id),
            Partnership.status == RelationshipStatus.ACTIVE.value,
        )
    )
    return result.scalars().first()


async def find_open_partnership(db: AsyncSession, trader_a: str, trader_b: str) -> Partnership | None:
    """Invited or active partnership between two traders, in either direction."""
    result = await db.execute(
        select(Partnership).where(
            or_(
                (Partnership.inviter_id == trader_a) & (Partnership.invitee_id == trader_b),
                (Partnership.inviter_id == trader_b) & (Partnership.invitee_id == trader_a),
            ),
            Partnership.status.in_(OPEN_STATUSES),
        )
    )
    return result.scalars().first()


async def list_partnerships(db: AsyncSession, trader_id: str) -> list[Partnership]:
    result = await db.execute(
        select(Partnership)
        .where(or_(Partnership.inviter_id == trader_id, Partnership.invitee_id == trader_id))
        .order_by(Partnership.created_at.desc())
    )
    return list(result.scalars().all())


async def load_shared_challenges(
    db: AsyncSession,
    relationship: PartnerRelationship,
    open_only: bool = False,
) -> list[SharedChallenge]:
    query = select(SharedChallengeRecord).where(SharedChallengeRecord.partnership_id == relationship.id)
    if open_only:
        query = query.where(SharedChallengeRecord.state.in_((ChallengeState.PENDING.value, ChallengeState.ACTIVE.value)))
    result = await db.execute(query.order_by(SharedChallengeRecord.period_start))
    return [to_shared(row, relationship) for row in result.scalars().all() if row.definition_id in CATALOG]


async def load_activity(db: AsyncSession, trader_id: str, since: date) -> list[DailyActivity]:
    result = await db.execute(
        select(DailyActivityLog)
        .where(DailyActivityLog.trader_id == trader_id, DailyActivityLog.day >= since)
        .order_by(DailyActivityLog.day)
    )
    return [to_activity(row) for row in result.scalars().all()]


# ---------------------------------------------------------------------------
# Committing engine output
# ---------------------------------------------------------------------------


async def store_shared(db: AsyncSession, evaluations: Iterable[SharedEvaluation]) -> None:
    """Write shared challenge states back and commit their XP grants."""
    for evaluation in evaluations:
        if not evaluation.changed:
            continue
        shared = evaluation.shared
        row = await db.get(SharedChallengeRecord, shared.id)
        if row is None:
            continue
        inviter_part, invitee_part = shared.parts
        row.state = shared.state.value
        row.inviter_state = inviter_part.state.value
        row.invitee_state = invitee_part.state.value
        row.inviter_progress = inviter_part.progress
        row.invitee_progress = invitee_part.progress
        row.resolved_at = shared.resolved_at
    await db.flush()


async def apply_update(
    db: AsyncSession,
    redis: object | None,
    row: Partnership,
    update: accountability.PartnerUpdate,
) -> Partnership:
    """Sync a partnership row with the engine's next state and deliver its events."""
    relationship = update.relationship
    row.status = relationship.status.value
    row.updated_at = relationship.updated_at
    row.ended_by = relationship.ended_by

    rule_rows = {r.id: r for r in row.rules}
    for rule in relationship.rules:
        existing = rule_rows.get(rule.id)
        if existing is None:
            row.rules.append(PartnershipRule(
                id=rule.id,
                title=rule.title,
                description=rule.description,
                metric=rule.metric.value,
                limit_value=rule.limit,
                consequence=rule.consequence.value,
                stake_amount=rule.stake_amount,
                created_by=rule.created_by,
                is_active=rule.is_active,
            ))
        else:
            existing.is_active = rule.is_active

    violation_rows = {v.id: v for v in row.violations}
    for violation in relationship.violations:
        existing = violation_rows.get(violation.id)
        if existing is None:
            row.violations.append(RuleViolationRecord(
                id=violation.id,
                rule_id=violation.rule_id,
                trader_id=violation.trader_id,
                day=violation.day,
                observed=violation.observed,
                amount_owed=violation.amount_owed,
                settled_at=None,
                reported_by=violation.reported_by,
                notes=violation.notes,
            ))
        else:
            existing.is_settled = violation.is_settled
            existing.settled_at = violation.settled_at

    await db.flush()
    await store_shared(db, update.shared_challenges)
    for evaluation in update.shared_challenges:
        for grant in evaluation.grants:
            await grant_xp(db, redis, grant)
    await deliver_relationship_events(db, redis, update.events)
    return row


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def invite(db: AsyncSession, redis: object | None, inviter: str, invitee: str) -> Partnership:
    """Invite a trader. An open partnership between the two is returned unchanged."""
    existing = await find_open_partnership(db, inviter, invitee)
    if existing is None:
        for trader in (inviter, invitee):
            if await get_active_partnership(db, trader) is not None:
                raise InvalidStateError(
                    f"Trader {trader} already has an active partner",
                    current_state=RelationshipStatus.ACTIVE.value,
                )

    update = accountability.invite_partner(
        uuid.uuid4().hex,
        inviter,
        invitee,
        _now(),
        existing=to_relationship(existing) if existing is not None else None,
    )
    if existing is not None:
        return existing

    relationship = update.relationship
    row = Partnership(
        id=relationship.id,
        inviter_id=relationship.inviter,
        invitee_id=relationship.invitee,
        status=relationship.status.value,
        created_at=relationship.created_at,
        updated_at=relationship.updated_at,
        ended_by=None,
    )
    db.add(row)
    await db.flush()
    await deliver_relationship_events(db, redis, update.events)
    await db.commit()
    return row


async def accept(db: AsyncSession, redis: object | None, partnership_id: str, trader_id: str) -> Partnership:
    row = await get_partnership(db, partnership_id, trader_id)
    if row.status == RelationshipStatus.INVITED.value and await get_active_partnership(db, trader_id) is not None:
        raise InvalidStateError(
            f"Trader {trader_id} already has an active partner",
            current_state=row.status,
        )
    update = accountability.accept_partner(to_relationship(row), trader_id, _now())
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


async def decline(db: AsyncSession, redis: object | None, partnership_id: str, trader_id: str) -> Partnership:
    row = await get_partnership(db, partnership_id, trader_id)
    update = accountability.decline_partner(to_relationship(row), trader_id, _now())
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


async def end(db: AsyncSession, redis: object | None, partnership_id: str, trader_id: str) -> Partnership:
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    shared = await load_shared_challenges(db, relationship, open_only=True)
    update = accountability.end_partnership(relationship, trader_id, _now(), shared)
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


async def add_rule(
    db: AsyncSession,
    redis: object | None,
    partnership_id: str,
    trader_id: str,
    title: str,
    metric: str,
    limit: float,
    consequence: str = Consequence.NOTIFY.value,
    stake_amount: float = 0.0,
    description: str = "",
) -> Partnership:
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    if not relationship.is_active:
        raise InvalidStateError(
            f"Rules can only be added to an active partnership, {row.id} is {row.status}",
            current_state=row.status,
        )
    rule = PartnerRule(
        id=uuid.uuid4().hex,
        title=title,
        metric=metric,  # type: ignore[arg-type]
        limit=limit,
        created_by=trader_id,
        consequence=consequence,  # type: ignore[arg-type]
        stake_amount=stake_amount,
        description=description,
    )
    update = accountability.add_rule(relationship, rule, _now())
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


async def deactivate_rule(
    db: AsyncSession,
    redis: object | None,
    partnership_id: str,
    rule_id: str,
    trader_id: str,
) -> Partnership:
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    if relationship.rule(rule_id) is None:
        raise LookupError(f"Rule {rule_id} not found")
    update = accountability.deactivate_rule(relationship, rule_id, trader_id, _now())
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


async def settle(
    db: AsyncSession,
    redis: object | None,
    partnership_id: str,
    violation_id: str,
    trader_id: str,
) -> Partnership:
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    if not any(v.id == violation_id for v in relationship.violations):
        raise LookupError(f"Violation {violation_id} not found")
    update = accountability.settle_violation(relationship, violation_id, trader_id, _now())
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


async def report_violation(
    db: AsyncSession,
    redis: object | None,
    partnership_id: str,
    trader_id: str,
    rule_id: str,
    violator_id: str,
    day: date,
    amount_owed: float | None = None,
    notes: str = "",
) -> Partnership:
    """Report a violation by hand. Reporting the same rule, trader and day again is a no-op."""
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    if relationship.rule(rule_id) is None:
        raise LookupError(f"Rule {rule_id} not found")
    if not relationship.has_participant(violator_id):
        raise LookupError(f"Trader {violator_id} is not part of partnership {partnership_id}")
    if not relationship.is_active:
        raise InvalidStateError(
            f"Violations can only be reported in an active partnership, {row.id} is {row.status}",
            current_state=row.status,
        )
    if day > _now().date():
        raise OutOfRangeInputError(f"Day {day} is in the future")

    shared = await load_shared_challenges(db, relationship, open_only=True)
    update = accountability.report_violation(
        relationship, rule_id, violator_id, trader_id, day, _now(),
        amount_owed=amount_owed, notes=notes, shared_challenges=shared,
    )
    await apply_update(db, redis, row, update)
    await db.commit()
    return row


def to_check_in(row: PartnerCheckInRecord) -> CheckIn:
    return CheckIn(
        relationship_id=row.partnership_id,
        trader_id=row.trader_id,
        day=row.day,
        kind=CheckInType(row.check_in_type),
        checked_calendar=row.checked_calendar,
        marked_levels=row.marked_levels,
        has_bias=row.has_bias,
        set_max_loss=row.set_max_loss,
        trading_plan=row.trading_plan,
        daily_pnl=row.daily_pnl,
        followed_rules=row.followed_rules,
        session_notes=row.session_notes,
        created_at=row.created_at,
    )


_CHECK_IN_FIELDS = (
    "checked_calendar", "marked_levels", "has_bias", "set_max_loss", "trading_plan",
    "daily_pnl", "followed_rules", "session_notes",
)


async def check_in(
    db: AsyncSession,
    redis: object | None,
    partnership_id: str,
    trader_id: str,
    kind: str,
    day: date,
    **answers,
) -> CheckIn:
    """Upsert the trader's check-in for the day and type; the partner hears about the first one."""
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    if day > _now().date():
        raise OutOfRangeInputError(f"Day {day} is in the future")

    now = _now()
    submitted = CheckIn(relationship.id, trader_id, day, CheckInType(kind), created_at=now, **answers)
    stored = await db.get(PartnerCheckInRecord, submitted.id)
    previous = to_check_in(stored) if stored is not None else None
    recorded, events = record_check_in(relationship, submitted, previous)

    if stored is None:
        stored = PartnerCheckInRecord(
            id=recorded.id,
            partnership_id=recorded.relationship_id,
            trader_id=recorded.trader_id,
            day=recorded.day,
            check_in_type=recorded.kind.value,
            created_at=now,
            updated_at=None,
        )
        db.add(stored)
    else:
        stored.updated_at = now
    for name in _CHECK_IN_FIELDS:
        setattr(stored, name, getattr(recorded, name))
    await db.flush()

    await deliver_relationship_events(db, redis, events)
    await db.commit()
    return to_check_in(stored)


async def today_check_ins(db: AsyncSession, partnership_id: str, trader_id: str, day: date) -> dict:
    """Both sides' check-ins and weekly review flags for the day."""
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    result = await db.execute(
        select(PartnerCheckInRecord).where(
            PartnerCheckInRecord.partnership_id == relationship.id,
            PartnerCheckInRecord.day == day,
        )
    )
    check_ins = [to_check_in(r) for r in result.scalars().all()]

    activity: dict[str, DailyActivity] = {}
    for participant in relationship.participants:
        days = await load_activity(db, participant, day)
        if days and days[0].day == day:
            activity[participant] = days[0]
    return today_status(relationship, trader_id, day, check_ins, activity)


async def start_shared_challenge(
    db: AsyncSession,
    partnership_id: str,
    trader_id: str,
    definition_id: str,
    policy: str,
    day: date,
) -> SharedChallenge:
    """Start a shared challenge. Starting the same one twice in a period returns the existing one."""
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    definition = CATALOG.get(definition_id)
    if definition is None:
        raise LookupError(f"Challenge {definition_id} not found")

    shared = create_shared_challenge(relationship, definition, day, RewardPolicy(policy))
    existing = await db.get(SharedChallengeRecord, shared.id)
    if existing is not None:
        return to_shared(existing, relationship)

    db.add(SharedChallengeRecord(
        id=shared.id,
        partnership_id=relationship.id,
        definition_id=definition.id,
        period_kind=definition.kind.value,
        period_start=shared.period.start,
        policy=shared.policy.value,
        state=shared.state.value,
        inviter_state=shared.parts[0].state.value,
        invitee_state=shared.parts[1].state.value,
        resolved_at=None,
    ))
    await db.commit()
    logger.info("Shared challenge %s started (%s)", shared.id, shared.policy.value)
    return shared


async def summarize(db: AsyncSession, partnership_id: str, trader_id: str) -> dict:
    """Partnership with rules, unsettled balance, head-to-head stats and shared challenges."""
    row = await get_partnership(db, partnership_id, trader_id)
    relationship = to_relationship(row)
    shared = await load_shared_challenges(db, relationship)
    return {
        "relationship": relationship,
        "balance": accountability.partner_balance(relationship),
        "stats": accountability.partner_stats(relationship, trader_id, shared),
        "shared_challenges": shared,
    }
