"""XP grant service with idempotency and level-up notification."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.db.models import TraderGamification, XPLedger
from tradejournal.gamification.events import XPGrant
from tradejournal.gamification.levels import TraderLevel, detect_level_up, resolve_level
from tradejournal.notifications.service import notify

logger = logging.getLogger(__name__)


async def get_or_create_gamification(db: AsyncSession, trader_id: str) -> TraderGamification:
    """Get or create the denormalized gamification row for a trader."""
    result = await db.execute(
        select(TraderGamification).where(TraderGamification.trader_id == trader_id)
    )
    gam = result.scalar_one_or_none()
    if gam is None:
        level = resolve_level(0)
        gam = TraderGamification(
            trader_id=trader_id,
            total_xp=0,
            level=level.level,
            level_title=level.title,
            current_streak=0,
            longest_streak=0,
            last_qualifying_date=None,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(gam)
        await db.flush()
    return gam


async def grant_xp(db: AsyncSession, redis: object | None, grant: XPGrant) -> bool:
    """Commit one XP grant. Returns True if granted, False if the key was already used.

    After granting:
    1. Insert into xp_ledger
    2. Update trader_gamification.total_xp
    3. Recompute level from total_xp
    4. If the level changed, emit a level_up notification
    """
    existing = await db.execute(
        select(XPLedger).where(XPLedger.idempotency_key == grant.idempotency_key)
    )
    if existing.scalar_one_or_none():
        logger.debug("Duplicate XP grant %s ignored", grant.idempotency_key)
        return False

    now = datetime.now(timezone.utc)
    db.add(XPLedger(
        trader_id=grant.trader_id,
        amount=grant.amount,
        source=grant.source,
        source_id=grant.source_id,
        description=grant.reason,
        idempotency_key=grant.idempotency_key,
        created_at=now,
    ))

    gam = await get_or_create_gamification(db, grant.trader_id)
    previous_xp = gam.total_xp
    gam.total_xp += grant.amount
    level = resolve_level(gam.total_xp)
    gam.level = level.level
    gam.level_title = level.title
    gam.updated_at = now
    await db.flush()

    reached = detect_level_up(previous_xp, gam.total_xp)
    if reached is not None:
        await _emit_level_up(db, redis, grant.trader_id, reached)
    return True


async def _emit_level_up(db: AsyncSession, redis: object | None, trader_id: str, level: TraderLevel) -> None:
    """Emit level-up notification via DB + pub/sub."""
    await notify(
        db,
        redis,
        trader_id,
        "gamification",
        "level_up",
        "Level Up!",
        f"Level {level.level}: {level.title} {level.badge}",
        action_url="/profile/level",
        metadata={"level": level.level, "title": level.title},
    )
    if redis is not None:
        try:
            await redis.publish(  # type: ignore[union-attr]
                "pubsub:level_up",
                json.dumps({"trader_id": trader_id, "level": level.level, "title": level.title}),
            )
        except Exception:
            logger.warning("Failed to publish level_up broadcast", exc_info=True)


async def get_xp_history(db: AsyncSession, trader_id: str, limit: int = 50) -> list[XPLedger]:
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.trader_id == trader_id)
        .order_by(XPLedger.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
