"""Persisted trader notifications with Redis pub/sub delivery."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.db.models import Notification
from tradejournal.gamification.events import RelationshipEvent

logger = logging.getLogger(__name__)


def trader_channel(trader_id: str) -> str:
    return f"ws:trader:{trader_id}"


# Partner event kind -> (title, description template)
_PARTNER_MESSAGES: dict[str, tuple[str, str]] = {
    "partner_request": ("New Partner Request", "{from_trader} wants to be your accountability partner"),
    "partner_accepted": ("Partner Request Accepted", "{from_trader} accepted your partner request"),
    "partner_declined": ("Partner Request Declined", "{from_trader} declined your partner request"),
    "partnership_ended": ("Partnership Ended", "{ended_by} ended the partnership"),
    "new_rule": ("New Partner Rule", "A new rule was added: {title}"),
    "rule_violation": ("Rule Violation", "{violator} broke the rule: {title}"),
    "violation_settled": ("Violation Settled", "A rule violation was marked as settled"),
    "partner_level_up": ("Partner Leveled Up", "{trader_id} reached level {level}: {title}"),
    "partner_challenge_completed": ("Partner Completed a Challenge", "{trader_id} completed {name}"),
    "partner_checked_in": ("Partner Checked In", "{trader_id} finished their {label_lower} check-in"),
}


async def push_notification(redis: object | None, notification: Notification) -> None:
    """Publish a formatted notification to ws:trader:{trader_id}.

    The notification must already be flushed (have an ``id``).
    """
    if redis is None:
        return

    ws_payload = {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "subtype": notification.subtype,
            "title": notification.title,
            "description": notification.description,
            "timestamp": notification.created_at.isoformat() if notification.created_at else None,
            "read": False,
            "actionUrl": notification.action_url,
            "metadata": notification.notification_metadata,
        },
    }
    try:
        await redis.publish(  # type: ignore[union-attr]
            trader_channel(notification.trader_id),
            json.dumps(ws_payload, default=str),
        )
    except Exception:
        logger.warning("Failed to push notification via %s", trader_channel(notification.trader_id), exc_info=True)


async def notify(
    db: AsyncSession,
    redis: object | None,
    trader_id: str,
    type_: str,
    subtype: str,
    title: str,
    description: str | None = None,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    """Persist a notification and push it to the trader's live connections."""
    notification = Notification(
        trader_id=trader_id,
        type=type_,
        subtype=subtype,
        title=title,
        description=description,
        action_url=action_url,
        notification_metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()
    await push_notification(redis, notification)
    return notification


async def deliver_relationship_events(
    db: AsyncSession,
    redis: object | None,
    events: list[RelationshipEvent] | tuple[RelationshipEvent, ...],
) -> int:
    """Turn addressed partner events into notifications. Returns the count delivered."""
    delivered = 0
    for event in events:
        if event.recipient is None or event.kind not in _PARTNER_MESSAGES:
            continue
        title, template = _PARTNER_MESSAGES[event.kind]
        try:
            description = template.format(**event.payload)
        except KeyError:
            description = None
        await notify(
            db,
            redis,
            event.recipient,
            "partner",
            event.kind,
            title,
            description,
            action_url=f"/partnerships/{event.relationship_id}",
            metadata={"relationship_id": event.relationship_id, **event.payload},
        )
        delivered += 1
    return delivered


async def list_notifications(
    db: AsyncSession,
    trader_id: str,
    limit: int = 20,
    unread_only: bool = False,
) -> list[Notification]:
    query = select(Notification).where(Notification.trader_id == trader_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.id.desc()).limit(limit))
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, trader_id: str, notification_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(Notification.id == notification_id, Notification.trader_id == trader_id)
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise LookupError(f"Notification {notification_id} not found")
    notification.read = True
    await db.flush()
    return notification


async def mark_all_read(db: AsyncSession, trader_id: str) -> int:
    """Mark every unread notification as read. Returns the count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.trader_id == trader_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return result.rowcount
