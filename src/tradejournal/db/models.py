"""ORM models for the gamification tables.

Challenge, partnership and violation rows are keyed by the same ids the
engine derives, so replaying a day upserts rather than duplicates.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tradejournal.db.base import Base, BigIntPK


# ---------------------------------------------------------------------------
# XP, levels and streaks
# ---------------------------------------------------------------------------


class TraderGamification(Base):
    """Denormalized gamification summary, single row per trader."""

    __tablename__ = "trader_gamification"

    trader_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    level_title: Mapped[str] = mapped_column(String(64), nullable=False, default="Rookie")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_qualifying_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class XPLedger(Base):
    """Immutable XP transaction log with idempotency key."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    trader_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)


class DailyActivityLog(Base):
    """Per-day journal activity summary, one row per trader and day."""

    __tablename__ = "daily_activity"
    __table_args__ = (UniqueConstraint("trader_id", "day", name="daily_activity_trader_day_key"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    trader_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    trades_logged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winning_trades: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losing_trades: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    net_pnl: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    journal_entries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_reviewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lessons_documented: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_with_setup: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_with_stop_loss: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_pre_market_note: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_post_market_note: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    weekly_review_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class ChallengeRecord(Base):
    """One challenge instance per (trader, definition, period)."""

    __tablename__ = "challenges"
    __table_args__ = (
        UniqueConstraint("trader_id", "definition_id", "period_key", name="challenges_trader_def_period_key"),
    )

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    trader_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    definition_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(16), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SharedChallengeRecord(Base):
    """A challenge taken on by both partners; each side keeps its own state."""

    __tablename__ = "shared_challenges"

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    partnership_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("partnerships.id", ondelete="CASCADE"), nullable=False, index=True
    )
    definition_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    policy: Mapped[str] = mapped_column(String(16), nullable=False, default="individual")
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    inviter_state: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    invitee_state: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    inviter_progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    invitee_progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------


class Partnership(Base):
    """Accountability partnership between two traders."""

    __tablename__ = "partnerships"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    inviter_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    invitee_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="invited")
    ended_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    rules: Mapped[list[PartnershipRule]] = relationship(
        back_populates="partnership", cascade="all, delete-orphan", lazy="selectin",
        order_by="PartnershipRule.created_at",
    )
    violations: Mapped[list[RuleViolationRecord]] = relationship(
        back_populates="partnership", cascade="all, delete-orphan", lazy="selectin",
        order_by="RuleViolationRecord.day",
    )


class PartnershipRule(Base):
    __tablename__ = "partnership_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    partnership_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("partnerships.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    metric: Mapped[str] = mapped_column(String(32), nullable=False)
    limit_value: Mapped[float] = mapped_column(Float, nullable=False)
    consequence: Mapped[str] = mapped_column(String(32), nullable=False, default="notify")
    stake_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    partnership: Mapped[Partnership] = relationship(back_populates="rules")


class RuleViolationRecord(Base):
    __tablename__ = "rule_violations"

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    partnership_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("partnerships.id", ondelete="CASCADE"), nullable=False
    )
    rule_id: Mapped[str] = mapped_column(String(64), nullable=False)
    trader_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    observed: Mapped[float | None] = mapped_column(Float, nullable=True)
    amount_owed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reported_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    partnership: Mapped[Partnership] = relationship(back_populates="violations")


class PartnerCheckInRecord(Base):
    """Daily pre-market or post-market check-in, one per partner, day and type."""

    __tablename__ = "partner_check_ins"
    __table_args__ = (
        UniqueConstraint("partnership_id", "trader_id", "day", "check_in_type", name="partner_check_ins_partnership_trader_day_type_key"),
    )

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    partnership_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("partnerships.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trader_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    check_in_type: Mapped[str] = mapped_column(String(16), nullable=False)
    checked_calendar: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    marked_levels: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_bias: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    set_max_loss: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trading_plan: Mapped[str | None] = mapped_column(Text, nullable=True)
    daily_pnl: Mapped[float | None] = mapped_column(Float, nullable=True)
    followed_rules: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    session_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted trader notifications."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    trader_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    subtype: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
