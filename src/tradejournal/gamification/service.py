"""Daily activity processing: load state, run the engine, commit the outcome."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.config import Settings
from tradejournal.db.models import ChallengeRecord, DailyActivityLog, TraderGamification
from tradejournal.errors import OutOfRangeInputError
from tradejournal.gamification.activity import DailyActivity
from tradejournal.gamification.catalog import CATALOG, challenges_for_day
from tradejournal.gamification.challenges import Challenge, ChallengeState, Evaluation
from tradejournal.gamification.periods import PeriodKind, get_monday, get_week_iso, period_for
from tradejournal.gamification.pipeline import DailyOutcome, process_daily_activity
from tradejournal.gamification.streaks import Streak
from tradejournal.gamification.xp_service import get_or_create_gamification, grant_xp
from tradejournal.notifications.service import deliver_relationship_events, notify
from tradejournal.partners import service as partner_service

logger = logging.getLogger(__name__)

OPEN_STATES = (ChallengeState.PENDING.value, ChallengeState.ACTIVE.value)


def to_challenge(row: ChallengeRecord) -> Challenge:
    return Challenge(
        id=row.id,
        trader_id=row.trader_id,
        definition=CATALOG[row.definition_id],
        period=period_for(PeriodKind(row.period_kind), row.period_start),
        state=ChallengeState(row.state),
        progress=row.progress,
        resolved_at=row.resolved_at,
    )


def streak_of(gam: TraderGamification) -> Streak:
    return Streak(
        current_length=gam.current_streak,
        longest_length=gam.longest_streak,
        last_qualifying_date=gam.last_qualifying_date,
    )


async def record_activity(db: AsyncSession, trader_id: str, activity: DailyActivity) -> DailyActivityLog:
    """Upsert the day's activity summary. The latest submission for a day wins."""
    result = await db.execute(
        select(DailyActivityLog).where(
            DailyActivityLog.trader_id == trader_id,
            DailyActivityLog.day == activity.day,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = DailyActivityLog(trader_id=trader_id, day=activity.day)
        db.add(row)
    for field in (
        "trades_logged", "winning_trades", "losing_trades", "net_pnl", "journal_entries",
        "notes_added", "trades_reviewed", "lessons_documented", "trades_with_setup",
        "trades_with_stop_loss", "has_pre_market_note", "has_post_market_note",
        "weekly_review_completed",
    ):
        setattr(row, field, getattr(activity, field))
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return row


async def ensure_challenges(
    db: AsyncSession,
    trader_id: str,
    day: date,
    daily_count: int,
    weekly_count: int,
) -> list[ChallengeRecord]:
    """Create the rotation's instances for the day and week if they do not exist yet."""
    keys = (day.isoformat(), get_week_iso(day))
    result = await db.execute(
        select(ChallengeRecord).where(
            ChallengeRecord.trader_id == trader_id,
            ChallengeRecord.period_key.in_(keys),
        )
    )
    rows = {row.id: row for row in result.scalars().all()}

    for challenge in challenges_for_day(trader_id, day, daily_count, weekly_count):
        if challenge.id in rows:
            continue
        row = ChallengeRecord(
            id=challenge.id,
            trader_id=trader_id,
            definition_id=challenge.definition.id,
            period_kind=challenge.period.kind.value,
            period_key=challenge.period.key,
            period_start=challenge.period.start,
            state=challenge.state.value,
            progress=challenge.progress,
            resolved_at=None,
        )
        db.add(row)
        rows[row.id] = row
    await db.flush()
    return sorted(rows.values(), key=lambda r: (r.period_kind, r.definition_id))


async def _open_challenges(db: AsyncSession, trader_id: str) -> list[ChallengeRecord]:
    result = await db.execute(
        select(ChallengeRecord).where(
            ChallengeRecord.trader_id == trader_id,
            ChallengeRecord.state.in_(OPEN_STATES),
        )
    )
    return [row for row in result.scalars().all() if row.definition_id in CATALOG]


async def _store_challenges(db: AsyncSession, evaluations: tuple[Evaluation, ...]) -> None:
    for evaluation in evaluations:
        challenge = evaluation.challenge
        row = await db.get(ChallengeRecord, challenge.id)
        if row is None or ChallengeState(row.state).is_terminal:
            continue
        row.state = challenge.state.value
        row.progress = challenge.progress
        row.resolved_at = challenge.resolved_at
    await db.flush()


async def process_activity(
    db: AsyncSession,
    redis: object | None,
    trader_id: str,
    activity: DailyActivity,
    settings: Settings,
    now: datetime | None = None,
) -> DailyOutcome:
    """Record a trader-day and commit everything the engine derives from it."""
    now = now or datetime.now(timezone.utc)
    if activity.day > now.date():
        raise OutOfRangeInputError(f"Day {activity.day} is in the future")
    gam = await get_or_create_gamification(db, trader_id)
    await record_activity(db, trader_id, activity)
    await ensure_challenges(
        db, trader_id, activity.day, settings.daily_challenge_count, settings.weekly_challenge_count
    )
    challenges = [to_challenge(row) for row in await _open_challenges(db, trader_id)]

    since = min([c.period.start for c in challenges] + [get_monday(activity.day)])
    history = await partner_service.load_activity(db, trader_id, since)

    partnership = await partner_service.get_active_partnership(db, trader_id)
    relationship = None
    shared = []
    partner_history: list[DailyActivity] = []
    if partnership is not None:
        relationship = partner_service.to_relationship(partnership)
        shared = await partner_service.load_shared_challenges(db, relationship, open_only=True)
        if shared:
            partner_since = min(s.period.start for s in shared)
            partner_history = await partner_service.load_activity(
                db, relationship.counterpart(trader_id), partner_since
            )

    outcome = process_daily_activity(
        trader_id,
        gam.total_xp,
        streak_of(gam),
        activity,
        now,
        history=history,
        challenges=challenges,
        relationship=relationship,
        shared_challenges=shared,
        partner_history=partner_history,
        notify_violator=settings.notify_violator,
    )

    if outcome.streak_update is not None:
        streak = outcome.streak_update.streak
        gam.current_streak = streak.current_length
        gam.longest_streak = streak.longest_length
        gam.last_qualifying_date = streak.last_qualifying_date
        gam.updated_at = now

    await _store_challenges(db, outcome.challenges)
    for challenge in outcome.completed:
        await notify(
            db,
            redis,
            trader_id,
            "gamification",
            "challenge_completed",
            "Challenge Completed!",
            f"{challenge.definition.name}: +{challenge.definition.xp_reward} XP",
            action_url="/challenges",
            metadata={"challenge_id": challenge.id, "xp_reward": challenge.definition.xp_reward},
        )

    if partnership is not None and outcome.partner is not None:
        await partner_service.apply_update(db, redis, partnership, replace(outcome.partner, shared_challenges=()))
    await partner_service.store_shared(db, outcome.shared_challenges)
    if partnership is not None:
        await deliver_relationship_events(db, redis, outcome.mirrored)

    for grant in outcome.grants:
        await grant_xp(db, redis, grant)

    await db.commit()
    logger.info(
        "Processed %s for trader %s: %d transitions, %d grants",
        activity.day, trader_id, len(outcome.transitions), len(outcome.grants),
    )
    return outcome
