"""Gamification API endpoints."""

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.config import Settings
from tradejournal.db.models import ChallengeRecord
from tradejournal.dependencies import get_db, get_redis_dep, get_settings_dep, get_trader_id
from tradejournal.gamification import service
from tradejournal.gamification.activity import DailyActivity
from tradejournal.gamification.catalog import CATALOG, daily_rotation, rotation_xp_potential, weekly_rotation
from tradejournal.gamification.challenges import ChallengeDefinition
from tradejournal.gamification.levels import TRADER_LEVELS, TraderLevel, summarize_level
from tradejournal.gamification.periods import get_week_iso
from tradejournal.gamification.schemas import (
    ActivityRequest,
    ActivityResultResponse,
    AllLevelsResponse,
    CatalogEntry,
    CatalogResponse,
    ChallengeResponse,
    ChallengesResponse,
    GamificationSummaryResponse,
    GrantEntry,
    LevelEntry,
    LevelSummaryResponse,
    NotificationResponse,
    NotificationsResponse,
    StreakResponse,
    TransitionEntry,
)
from tradejournal.gamification.streaks import Streak, effective_length
from tradejournal.gamification.xp_service import get_or_create_gamification
from tradejournal.notifications.service import list_notifications, mark_all_read, mark_read

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _level_entry(level: TraderLevel) -> LevelEntry:
    return LevelEntry(
        level=level.level,
        title=level.title,
        min_xp=level.min_xp,
        max_xp=level.max_xp,
        badge=level.badge,
        color=level.color,
    )


def _level_summary(total_xp: int) -> LevelSummaryResponse:
    summary = summarize_level(total_xp)
    following = summary["next_level"]
    return LevelSummaryResponse(
        total_xp=total_xp,
        level=_level_entry(summary["level"]),
        next_level=_level_entry(following) if following is not None else None,
        progress=summary["progress"],
        xp_to_next_level=summary["xp_to_next_level"],
        motivation=summary["motivation"],
    )


def _streak_response(streak: Streak, today: date) -> StreakResponse:
    shown = effective_length(streak, today)
    return StreakResponse(
        current_streak=shown,
        longest_streak=streak.longest_length,
        last_qualifying_date=streak.last_qualifying_date,
        is_active=shown > 0,
    )


def _catalog_entry(definition: ChallengeDefinition) -> CatalogEntry:
    return CatalogEntry(
        id=definition.id,
        name=definition.name,
        description=definition.description,
        kind=definition.kind.value,
        xp_reward=definition.xp_reward,
        unit=definition.unit,
        rule=definition.rule.describe(),
    )


def _challenge_response(row: ChallengeRecord) -> ChallengeResponse:
    definition = CATALOG[row.definition_id]
    return ChallengeResponse(
        id=row.id,
        definition_id=row.definition_id,
        name=definition.name,
        description=definition.description,
        kind=row.period_kind,
        period_key=row.period_key,
        state=row.state,
        progress=row.progress,
        xp_reward=definition.xp_reward,
        resolved_at=row.resolved_at,
    )


# ── Public endpoints ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get the full level table."""
    return AllLevelsResponse(levels=[_level_entry(level) for level in TRADER_LEVELS])


@router.get("/levels/resolve", response_model=LevelSummaryResponse)
async def resolve(xp: int = Query(ge=0)):
    """Resolve a total XP value to its level, progress and motivation."""
    return _level_summary(xp)


@router.get("/challenges/catalog", response_model=CatalogResponse)
async def catalog(
    day: date | None = None,
    settings: Settings = Depends(get_settings_dep),
):
    """The daily and weekly challenge rotation for a day (today by default)."""
    day = day or _today()
    return CatalogResponse(
        day=day,
        week=get_week_iso(day),
        daily=[_catalog_entry(d) for d in daily_rotation(day, settings.daily_challenge_count)],
        weekly=[_catalog_entry(d) for d in weekly_rotation(day, settings.weekly_challenge_count)],
        weekly_xp_potential=rotation_xp_potential(day),
    )


# ── Trader endpoints ──


@router.get("/traders/me/gamification", response_model=GamificationSummaryResponse)
async def my_gamification(
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """XP, level summary and streak of the calling trader."""
    gam = await get_or_create_gamification(db, trader_id)
    await db.commit()
    today = _today()
    return GamificationSummaryResponse(
        trader_id=trader_id,
        summary=_level_summary(gam.total_xp),
        streak=_streak_response(service.streak_of(gam), today),
        weekly_xp_potential=rotation_xp_potential(today),
    )


@router.post("/traders/me/activity", response_model=ActivityResultResponse)
async def submit_activity(
    body: ActivityRequest,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
    settings: Settings = Depends(get_settings_dep),
):
    """Record a day of journal activity and run the gamification engine over it."""
    activity = DailyActivity(**body.model_dump())
    outcome = await service.process_activity(db, redis, trader_id, activity, settings)

    gam = await get_or_create_gamification(db, trader_id)
    streak = outcome.streak_update.streak if outcome.streak_update else service.streak_of(gam)
    violations = len(outcome.partner.new_violations) if outcome.partner else 0
    return ActivityResultResponse(
        total_xp=gam.total_xp,
        level_up=_level_entry(outcome.level_up) if outcome.level_up else None,
        streak=_streak_response(streak, max(activity.day, _today())),
        transitions=[
            TransitionEntry(
                challenge_id=t.challenge_id,
                previous_state=t.previous_state,
                new_state=t.new_state,
                timestamp=t.timestamp,
            )
            for t in outcome.transitions
        ],
        grants=[
            GrantEntry(
                trader_id=g.trader_id,
                amount=g.amount,
                reason=g.reason,
                idempotency_key=g.idempotency_key,
            )
            for g in outcome.grants
        ],
        violations=violations,
    )


@router.get("/traders/me/challenges", response_model=ChallengesResponse)
async def my_challenges(
    day: date | None = None,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    """The trader's challenge instances for a day and its ISO week."""
    day = day or _today()
    rows = await service.ensure_challenges(
        db, trader_id, day, settings.daily_challenge_count, settings.weekly_challenge_count
    )
    await db.commit()
    return ChallengesResponse(
        day=day,
        challenges=[_challenge_response(row) for row in rows if row.definition_id in CATALOG],
    )


@router.get("/traders/me/notifications", response_model=NotificationsResponse)
async def my_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = False,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """Latest notifications, newest first."""
    rows = await list_notifications(db, trader_id, limit=limit, unread_only=unread_only)
    return NotificationsResponse(
        notifications=[
            NotificationResponse(
                id=n.id,
                type=n.type,
                subtype=n.subtype,
                title=n.title,
                description=n.description,
                action_url=n.action_url,
                read=n.read,
                metadata=n.notification_metadata or {},
                created_at=n.created_at,
            )
            for n in rows
        ]
    )


@router.post("/traders/me/notifications/{notification_id}/read")
async def read_notification(
    notification_id: int,
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """Mark a notification as read."""
    await mark_read(db, trader_id, notification_id)
    await db.commit()
    return {"status": "read"}


@router.post("/traders/me/notifications/read-all")
async def read_all_notifications(
    trader_id: str = Depends(get_trader_id),
    db: AsyncSession = Depends(get_db),
):
    """Mark every unread notification as read."""
    count = await mark_all_read(db, trader_id)
    await db.commit()
    return {"status": "read", "count": count}
