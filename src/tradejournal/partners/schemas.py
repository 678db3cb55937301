"""Pydantic request and response models for partnership endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from tradejournal.gamification.activity import Metric
from tradejournal.partners.checkins import CheckInType
from tradejournal.partners.models import Consequence
from tradejournal.partners.shared import RewardPolicy


class InviteRequest(BaseModel):
    invitee_id: str = Field(min_length=1, max_length=64)


class RuleRequest(BaseModel):
    title: str = Field(min_length=1, max_length=128)
    metric: Metric
    limit: float = Field(ge=0)
    consequence: Consequence = Consequence.NOTIFY
    stake_amount: float = Field(default=0.0, ge=0)
    description: str = ""


class SharedChallengeRequest(BaseModel):
    definition_id: str
    policy: RewardPolicy = RewardPolicy.INDIVIDUAL
    day: date | None = None


class ReportViolationRequest(BaseModel):
    rule_id: str
    trader_id: str = Field(min_length=1, max_length=64)
    day: date | None = None
    amount_owed: float | None = Field(default=None, ge=0)
    notes: str = ""


class CheckInRequest(BaseModel):
    check_in_type: CheckInType
    day: date | None = None
    checked_calendar: bool = False
    marked_levels: bool = False
    has_bias: bool = False
    set_max_loss: bool = False
    trading_plan: str | None = None
    daily_pnl: float | None = None
    followed_rules: bool | None = None
    session_notes: str | None = None


class RuleResponse(BaseModel):
    id: str
    title: str
    description: str
    metric: str
    limit: float
    consequence: str
    stake_amount: float
    created_by: str
    is_active: bool


class ViolationResponse(BaseModel):
    id: str
    rule_id: str
    trader_id: str
    day: date
    observed: float | None
    amount_owed: float
    is_settled: bool
    settled_at: datetime | None = None
    reported_by: str | None = None
    notes: str = ""


class PartnershipResponse(BaseModel):
    id: str
    inviter_id: str
    invitee_id: str
    status: str
    created_at: datetime
    updated_at: datetime | None = None
    ended_by: str | None = None


class PartnershipListResponse(BaseModel):
    partnerships: list[PartnershipResponse]


class BalanceResponse(BaseModel):
    inviter_id: str
    invitee_id: str
    inviter_owes: float
    invitee_owes: float
    net_balance: float


class StatsResponse(BaseModel):
    total_challenges: int
    challenges_won: int
    challenges_lost: int
    win_rate: float
    total_violations: int
    total_violation_amount: float


class SharedChallengeResponse(BaseModel):
    id: str
    definition_id: str
    name: str
    period_key: str
    policy: str
    state: str
    inviter_state: str
    invitee_state: str
    outcome: str | None = None


class PartnershipSummaryResponse(BaseModel):
    partnership: PartnershipResponse
    rules: list[RuleResponse]
    violations: list[ViolationResponse]
    balance: BalanceResponse
    stats: StatsResponse
    shared_challenges: list[SharedChallengeResponse]


class CheckInResponse(BaseModel):
    partnership_id: str
    trader_id: str
    day: date
    check_in_type: str
    checked_calendar: bool
    marked_levels: bool
    has_bias: bool
    set_max_loss: bool
    trading_plan: str | None = None
    daily_pnl: float | None = None
    followed_rules: bool | None = None
    session_notes: str | None = None
    created_at: datetime | None = None


class TodayCheckInsResponse(BaseModel):
    day: date
    partner_id: str
    pre_market_done: bool
    post_market_done: bool
    partner_pre_market_done: bool
    partner_post_market_done: bool
    weekly_review_done: bool
    partner_weekly_review_done: bool
    my_check_ins: list[CheckInResponse]
    partner_check_ins: list[CheckInResponse]
