"""Pydantic request and response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    title: str
    min_xp: int
    max_xp: int | None
    badge: str
    color: str


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class LevelSummaryResponse(BaseModel):
    total_xp: int
    level: LevelEntry
    next_level: LevelEntry | None
    progress: int
    xp_to_next_level: int
    motivation: str


# --- Streak ---


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_qualifying_date: date | None
    is_active: bool


class GamificationSummaryResponse(BaseModel):
    trader_id: str
    summary: LevelSummaryResponse
    streak: StreakResponse
    weekly_xp_potential: int


# --- Challenges ---


class CatalogEntry(BaseModel):
    id: str
    name: str
    description: str
    kind: str
    xp_reward: int
    unit: str
    rule: str


class CatalogResponse(BaseModel):
    day: date
    week: str
    daily: list[CatalogEntry]
    weekly: list[CatalogEntry]
    weekly_xp_potential: int


class ChallengeResponse(BaseModel):
    id: str
    definition_id: str
    name: str
    description: str
    kind: str
    period_key: str
    state: str
    progress: float
    xp_reward: int
    resolved_at: datetime | None = None


class ChallengesResponse(BaseModel):
    day: date
    challenges: list[ChallengeResponse]


# --- Activity ---


class ActivityRequest(BaseModel):
    day: date
    trades_logged: int = Field(default=0, ge=0)
    winning_trades: int = Field(default=0, ge=0)
    losing_trades: int = Field(default=0, ge=0)
    net_pnl: float = 0.0
    journal_entries: int = Field(default=0, ge=0)
    notes_added: int = Field(default=0, ge=0)
    trades_reviewed: int = Field(default=0, ge=0)
    lessons_documented: int = Field(default=0, ge=0)
    trades_with_setup: int = Field(default=0, ge=0)
    trades_with_stop_loss: int = Field(default=0, ge=0)
    has_pre_market_note: bool = False
    has_post_market_note: bool = False
    weekly_review_completed: bool = False


class TransitionEntry(BaseModel):
    challenge_id: str
    previous_state: str | None
    new_state: str
    timestamp: datetime


class GrantEntry(BaseModel):
    trader_id: str
    amount: int
    reason: str
    idempotency_key: str


class ActivityResultResponse(BaseModel):
    total_xp: int
    level_up: LevelEntry | None
    streak: StreakResponse
    transitions: list[TransitionEntry]
    grants: list[GrantEntry]
    violations: int = 0


# --- Notifications ---


class NotificationResponse(BaseModel):
    id: int
    type: str
    subtype: str
    title: str
    description: str | None
    action_url: str | None
    read: bool
    metadata: dict = {}
    created_at: datetime | None


class NotificationsResponse(BaseModel):
    notifications: list[NotificationResponse]
