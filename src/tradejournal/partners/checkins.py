"""Daily partner check-ins.

Each partner checks in at most once per day and type: a pre-market routine
before the session and a post-market recap after it. Checking in again the
same day replaces the earlier answers without notifying the partner twice.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from tradejournal.errors import InvalidStateError
from tradejournal.gamification.activity import DailyActivity
from tradejournal.gamification.events import RelationshipEvent
from tradejournal.partners.models import PartnerRelationship

logger = logging.getLogger(__name__)


class CheckInType(str, Enum):
    PRE_MARKET = "pre_market"
    POST_MARKET = "post_market"

    @property
    def label(self) -> str:
        return "Pre-Market" if self is CheckInType.PRE_MARKET else "Post-Market"


@dataclass(frozen=True)
class CheckIn:
    relationship_id: str
    trader_id: str
    day: date
    kind: CheckInType
    # pre-market
    checked_calendar: bool = False
    marked_levels: bool = False
    has_bias: bool = False
    set_max_loss: bool = False
    trading_plan: str | None = None
    # post-market
    daily_pnl: float | None = None
    followed_rules: bool | None = None
    session_notes: str | None = None
    created_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", CheckInType(self.kind))

    @property
    def id(self) -> str:
        return check_in_id(self.relationship_id, self.trader_id, self.day, self.kind)


def check_in_id(relationship_id: str, trader_id: str, day: date, kind: CheckInType) -> str:
    return f"{relationship_id}:{trader_id}:{day.isoformat()}:{CheckInType(kind).value}"


def record_check_in(
    relationship: PartnerRelationship,
    check_in: CheckIn,
    previous: CheckIn | None = None,
) -> tuple[CheckIn, tuple[RelationshipEvent, ...]]:
    """Validate a check-in and return it with the events to deliver.

    previous is the stored check-in for the same trader, day and type, if any.
    """
    if not relationship.has_participant(check_in.trader_id):
        raise ValueError(f"Trader {check_in.trader_id} is not part of relationship {relationship.id}")
    if check_in.relationship_id != relationship.id:
        raise ValueError(f"Check-in belongs to {check_in.relationship_id}, not {relationship.id}")
    if not relationship.is_active:
        raise InvalidStateError(
            f"Check-ins need an active partnership, {relationship.id} is {relationship.status.value}",
            current_state=relationship.status.value,
        )

    if previous is not None:
        logger.debug("Check-in %s updated", check_in.id)
        return check_in, ()

    event = RelationshipEvent(
        relationship_id=relationship.id,
        kind="partner_checked_in",
        recipient=relationship.counterpart(check_in.trader_id),
        payload={
            "trader_id": check_in.trader_id,
            "check_in_type": check_in.kind.value,
            "label": check_in.kind.label,
            "label_lower": check_in.kind.label.lower(),
            "day": check_in.day.isoformat(),
        },
    )
    logger.info("Trader %s checked in (%s) for %s", check_in.trader_id, check_in.kind.value, check_in.day)
    return check_in, (event,)


def today_status(
    relationship: PartnerRelationship,
    trader_id: str,
    day: date,
    check_ins: Iterable[CheckIn],
    activity: Mapping[str, DailyActivity] | None = None,
) -> dict:
    """Which routines each side has completed for the day.

    activity maps trader ids to their record for the day and supplies the
    weekly review flags.
    """
    partner = relationship.counterpart(trader_id)
    todays = [c for c in check_ins if c.relationship_id == relationship.id and c.day == day]
    mine = {c.kind: c for c in todays if c.trader_id == trader_id}
    theirs = {c.kind: c for c in todays if c.trader_id == partner}
    activity = activity or {}

    def reviewed(trader: str) -> bool:
        record = activity.get(trader)
        return record is not None and record.day == day and record.weekly_review_completed

    return {
        "day": day,
        "partner_id": partner,
        "pre_market_done": CheckInType.PRE_MARKET in mine,
        "post_market_done": CheckInType.POST_MARKET in mine,
        "partner_pre_market_done": CheckInType.PRE_MARKET in theirs,
        "partner_post_market_done": CheckInType.POST_MARKET in theirs,
        "weekly_review_done": reviewed(trader_id),
        "partner_weekly_review_done": reviewed(partner),
        "my_check_ins": [mine[k] for k in CheckInType if k in mine],
        "partner_check_ins": [theirs[k] for k in CheckInType if k in theirs],
    }
