"""Partner accountability API endpoints."""

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.db.models import Partnership
from tradejournal.dependencies import get_db, get_redis_dep, get_trader_id
from tradejournal.partners import service
from tradejournal.partners.checkins import CheckIn
from tradejournal.partners.schemas import (
    BalanceResponse,
    CheckInRequest,
    CheckInResponse,
    InviteRequest,
    PartnershipListResponse,
    PartnershipResponse,
    PartnershipSummaryResponse,
    ReportViolationRequest,
    RuleRequest,
    RuleResponse,
    SharedChallengeRequest,
    SharedChallengeResponse,
    StatsResponse,
    TodayCheckInsResponse,
    ViolationResponse,
)
from tradejournal.partners.shared import SharedChallenge

router = APIRouter(prefix="/api/v1/partnerships", tags=["Partners"])


def _partnership_response(row: Partnership) -> PartnershipResponse:
    return PartnershipResponse(
        id=row.id,
        inviter_id=row.inviter_id,
        invitee_id=row.invitee_id,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        ended_by=row.ended_by,
    )


def _shared_response(shared: SharedChallenge) -> SharedChallengeResponse:
    outcome = shared.outcome
    return SharedChallengeResponse(
        id=shared.id,
        definition_id=shared.definition.id,
        name=shared.definition.name,
        period_key=shared.period.key,
        policy=shared.policy.value,
        state=shared.state.value,
        inviter_state=shared.parts[0].state.value,
        invitee_state=shared.parts[1].state.value,
        outcome=outcome.value if outcome is not None else None,
    )


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _check_in_response(check_in: CheckIn) -> CheckInResponse:
    return CheckInResponse(
        partnership_id=check_in.relationship_id,
        trader_id=check_in.trader_id,
        day=check_in.day,
        check_in_type=check_in.kind.value,
        checked_calendar=check_in.checked_calendar,
        marked_levels=check_in.marked_levels,
        has_bias=check_in.has_bias,
        set_max_loss=check_in.set_max_loss,
        trading_plan=check_in.trading_plan,
        daily_pnl=check_in.daily_pnl,
        followed_rules=check_in.followed_rules,
        session_notes=check_in.session_notes,
        created_at=check_in.created_at,
    )


@router.get("", response_model=PartnershipListResponse)
async def list_partnerships(
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """Every partnership the trader is part of, newest first."""
    rows = await service.list_partnerships(db, trader_id)
    return PartnershipListResponse(partnerships=[_partnership_response(r) for r in rows])


@router.post("", response_model=PartnershipResponse, status_code=status.HTTP_201_CREATED)
async def invite(
    body: InviteRequest,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """Invite another trader to become an accountability partner."""
    row = await service.invite(db, redis, trader_id, body.invitee_id)
    return _partnership_response(row)


@router.post("/{partnership_id}/accept", response_model=PartnershipResponse)
async def accept(
    partnership_id: str,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    row = await service.accept(db, redis, partnership_id, trader_id)
    return _partnership_response(row)


@router.post("/{partnership_id}/decline", response_model=PartnershipResponse)
async def decline(
    partnership_id: str,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    row = await service.decline(db, redis, partnership_id, trader_id)
    return _partnership_response(row)


@router.post("/{partnership_id}/end", response_model=PartnershipResponse)
async def end(
    partnership_id: str,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """End the partnership. Open shared challenges expire immediately."""
    row = await service.end(db, redis, partnership_id, trader_id)
    return _partnership_response(row)


@router.post("/{partnership_id}/rules", response_model=PartnershipSummaryResponse, status_code=status.HTTP_201_CREATED)
async def add_rule(
    partnership_id: str,
    body: RuleRequest,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """Add a shared rule to an active partnership."""
    await service.add_rule(
        db,
        redis,
        partnership_id,
        trader_id,
        title=body.title,
        metric=body.metric.value,
        limit=body.limit,
        consequence=body.consequence.value,
        stake_amount=body.stake_amount,
        description=body.description,
    )
    return await _summary(db, partnership_id, trader_id)


@router.post("/{partnership_id}/rules/{rule_id}/deactivate", response_model=PartnershipSummaryResponse)
async def deactivate_rule(
    partnership_id: str,
    rule_id: str,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    await service.deactivate_rule(db, redis, partnership_id, rule_id, trader_id)
    return await _summary(db, partnership_id, trader_id)


@router.post(
    "/{partnership_id}/violations",
    response_model=PartnershipSummaryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def report_violation(
    partnership_id: str,
    body: ReportViolationRequest,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """Report a rule violation the activity data cannot show."""
    await service.report_violation(
        db,
        redis,
        partnership_id,
        trader_id,
        rule_id=body.rule_id,
        violator_id=body.trader_id,
        day=body.day or _today(),
        amount_owed=body.amount_owed,
        notes=body.notes,
    )
    return await _summary(db, partnership_id, trader_id)


@router.post("/{partnership_id}/violations/{violation_id}/settle", response_model=PartnershipSummaryResponse)
async def settle_violation(
    partnership_id: str,
    violation_id: str,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    await service.settle(db, redis, partnership_id, violation_id, trader_id)
    return await _summary(db, partnership_id, trader_id)


@router.post(
    "/{partnership_id}/challenges",
    response_model=SharedChallengeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_shared_challenge(
    partnership_id: str,
    body: SharedChallengeRequest,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """Start a shared challenge from the catalog for the current (or given) period."""
    day = body.day or _today()
    shared = await service.start_shared_challenge(
        db, partnership_id, trader_id, body.definition_id, body.policy.value, day
    )
    return _shared_response(shared)


@router.post(
    "/{partnership_id}/check-ins",
    response_model=CheckInResponse,
    status_code=status.HTTP_201_CREATED,
)
async def check_in(
    partnership_id: str,
    body: CheckInRequest,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """Pre-market or post-market check-in. Checking in again the same day updates it."""
    answers = body.model_dump(exclude={"check_in_type", "day"})
    recorded = await service.check_in(
        db, redis, partnership_id, trader_id, body.check_in_type.value, body.day or _today(), **answers
    )
    return _check_in_response(recorded)


@router.get("/{partnership_id}/check-ins/today", response_model=TodayCheckInsResponse)
async def today_check_ins(
    partnership_id: str,
    day: date | None = None,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    summary = await service.today_check_ins(db, partnership_id, trader_id, day or _today())
    return TodayCheckInsResponse(
        **{k: v for k, v in summary.items() if k not in ("my_check_ins", "partner_check_ins")},
        my_check_ins=[_check_in_response(c) for c in summary["my_check_ins"]],
        partner_check_ins=[_check_in_response(c) for c in summary["partner_check_ins"]],
    )


@router.get("/{partnership_id}", response_model=PartnershipSummaryResponse)
async def get_partnership(
    partnership_id: str,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """Partnership with rules, violations, balance, stats and shared challenges."""
    return await _summary(db, partnership_id, trader_id)


async def _summary(db: AsyncSession, partnership_id: str, trader_id: str) -> PartnershipSummaryResponse:
    summary = await service.summarize(db, partnership_id, trader_id)
    row = await service.get_partnership(db, partnership_id, trader_id)
    relationship = summary["relationship"]
    return PartnershipSummaryResponse(
        partnership=_partnership_response(row),
        rules=[
            RuleResponse(
                id=r.id,
                title=r.title,
                description=r.description,
                metric=r.metric.value,
                limit=r.limit,
                consequence=r.consequence.value,
                stake_amount=r.stake_amount,
                created_by=r.created_by,
                is_active=r.is_active,
            )
            for r in relationship.rules
        ],
        violations=[
            ViolationResponse(
                id=v.id,
                rule_id=v.rule_id,
                trader_id=v.trader_id,
                day=v.day,
                observed=v.observed,
                amount_owed=v.amount_owed,
                is_settled=v.is_settled,
                settled_at=v.settled_at,
                reported_by=v.reported_by,
                notes=v.notes,
            )
            for v in relationship.violations
        ],
        balance=BalanceResponse(**summary["balance"]),
        stats=StatsResponse(**summary["stats"]),
        shared_challenges=[_shared_response(s) for s in summary["shared_challenges"]],
    )
