"""Challenge catalog and the deterministic daily/weekly rotation.

Every trader sees the same rotation on the same day: the selection is seeded
by the calendar day (daily) or the ISO week (weekly).
"""

from __future__ import annotations

import random
from datetime import date

from tradejournal.gamification.activity import Metric
from tradejournal.gamification.challenges import Challenge, ChallengeDefinition, create_challenge
from tradejournal.gamification.levels import weekly_xp_potential
from tradejournal.gamification.periods import PeriodKind
from tradejournal.gamification.rules import AllOf, Limit, Target

DAILY_CHALLENGES_COUNT = 3
WEEKLY_CHALLENGES_COUNT = 4

DAILY = PeriodKind.DAILY
WEEKLY = PeriodKind.WEEKLY

ALL_DAILY_CHALLENGES: tuple[ChallengeDefinition, ...] = (
    ChallengeDefinition(
        "write_journal", "Reflective Trader", "Write a journal entry today",
        DAILY, Target(Metric.JOURNAL_ENTRIES, 1), 15, "entry",
    ),
    ChallengeDefinition(
        "add_notes", "Detailed Logger", "Add notes to your trades today",
        DAILY, Target(Metric.NOTES_ADDED, 1), 20, "trade with notes",
    ),
    ChallengeDefinition(
        "review_trade", "Trade Analyst", "Rate a past trade's entry, exit, or management",
        DAILY, Target(Metric.TRADES_REVIEWED, 1), 15, "trade reviewed",
    ),
    ChallengeDefinition(
        "pre_market_prep", "Prepared Trader", "Complete your pre-market preparation",
        DAILY, Target(Metric.PRE_MARKET_NOTES, 1), 20, "pre-market note",
    ),
    ChallengeDefinition(
        "post_market_review", "End of Day Review", "Write your post-market analysis",
        DAILY, Target(Metric.POST_MARKET_NOTES, 1), 20, "post-market note",
    ),
    ChallengeDefinition(
        "document_lesson", "Lesson Learned", "Document a lesson from one of your trades",
        DAILY, Target(Metric.LESSONS_DOCUMENTED, 1), 25, "lesson",
    ),
    ChallengeDefinition(
        "use_setup", "Setup Discipline", "Tag a trade with a setup/strategy",
        DAILY, Target(Metric.TRADES_WITH_SETUP, 1), 15, "trade with setup",
    ),
    ChallengeDefinition(
        "risk_management", "Risk Manager", "Set a stop loss on a trade",
        DAILY, Target(Metric.TRADES_WITH_STOP_LOSS, 1), 20, "trade with stop loss",
    ),
    ChallengeDefinition(
        "mindful_trading", "Mindful Trader", "Review 2 past trades to identify patterns",
        DAILY, Target(Metric.TRADES_REVIEWED, 2), 25, "trades reviewed",
    ),
    ChallengeDefinition(
        "focus_session", "Focused Analysis", "Add detailed notes to 2 trades",
        DAILY, Target(Metric.NOTES_ADDED, 2), 30, "trades with notes",
    ),
    ChallengeDefinition(
        "loss_discipline", "Cut Your Losses", "Trade today with no more than 2 losing trades",
        DAILY, AllOf((Target(Metric.TRADES_LOGGED, 1), Limit(Metric.LOSING_TRADES, 2))), 20, "day",
    ),
)

ALL_WEEKLY_CHALLENGES: tuple[ChallengeDefinition, ...] = (
    ChallengeDefinition(
        "weekly_journal", "Weekly Reflection", "Write journal entries on 3 days this week",
        WEEKLY, Target(Metric.JOURNAL_DAYS, 3), 40, "entries",
    ),
    ChallengeDefinition(
        "weekly_review", "Week in Review", "Complete your weekly review on the weekend",
        WEEKLY, Target(Metric.WEEKLY_REVIEWS, 1), 50, "weekly review",
    ),
    ChallengeDefinition(
        "review_trades", "Trade Analyst", "Review and rate 5 past trades this week",
        WEEKLY, Target(Metric.TRADES_REVIEWED, 5), 45, "trades reviewed",
    ),
    ChallengeDefinition(
        "document_lessons", "Continuous Learner", "Document lessons learned from 3 trades",
        WEEKLY, Target(Metric.LESSONS_DOCUMENTED, 3), 35, "lessons documented",
    ),
    ChallengeDefinition(
        "consistent_logging", "Disciplined Logger", "Journal 5 days in a row this week",
        WEEKLY, Target(Metric.QUALIFYING_STREAK, 5), 60, "days in a row",
    ),
    ChallengeDefinition(
        "setup_master", "Setup Master", "Tag 5 trades with setups this week",
        WEEKLY, Target(Metric.TRADES_WITH_SETUP, 5), 40, "trades tagged",
    ),
    ChallengeDefinition(
        "risk_discipline", "Risk Discipline", "Set stop losses on 5 trades this week",
        WEEKLY, Target(Metric.TRADES_WITH_STOP_LOSS, 5), 50, "trades with SL",
    ),
    ChallengeDefinition(
        "pattern_hunter", "Pattern Hunter", "Review 6 trades, including 3 winners and 3 losers",
        WEEKLY,
        AllOf((
            Target(Metric.WINNING_TRADES, 3),
            Target(Metric.LOSING_TRADES, 3),
            Target(Metric.TRADES_REVIEWED, 6),
        )),
        55,
        "trades reviewed",
    ),
)

CATALOG: dict[str, ChallengeDefinition] = {d.id: d for d in ALL_DAILY_CHALLENGES + ALL_WEEKLY_CHALLENGES}


def _day_seed(day: date) -> int:
    return day.year * 10000 + day.month * 100 + day.day


def _week_seed(day: date) -> int:
    iso_year, iso_week, _ = day.isocalendar()
    return iso_year * 100 + iso_week


def _rotate(pool: tuple[ChallengeDefinition, ...], seed: int, count: int) -> list[ChallengeDefinition]:
    count = max(0, min(count, len(pool)))
    return random.Random(seed).sample(list(pool), count)


def daily_rotation(day: date, count: int = DAILY_CHALLENGES_COUNT) -> list[ChallengeDefinition]:
    """The daily challenges offered on a calendar day."""
    return _rotate(ALL_DAILY_CHALLENGES, _day_seed(day), count)


def weekly_rotation(day: date, count: int = WEEKLY_CHALLENGES_COUNT) -> list[ChallengeDefinition]:
    """The weekly challenges offered in the ISO week containing day."""
    return _rotate(ALL_WEEKLY_CHALLENGES, _week_seed(day), count)


def challenges_for_day(
    trader_id: str,
    day: date,
    daily_count: int = DAILY_CHALLENGES_COUNT,
    weekly_count: int = WEEKLY_CHALLENGES_COUNT,
) -> list[Challenge]:
    """Pending instances of the day's and week's rotation for one trader."""
    definitions = daily_rotation(day, daily_count) + weekly_rotation(day, weekly_count)
    return [create_challenge(trader_id, d, day) for d in definitions]


def rotation_xp_potential(day: date) -> int:
    """XP on offer this week: the day's daily rewards times 7 plus the week's weekly rewards."""
    daily_xp = sum(d.xp_reward for d in daily_rotation(day))
    weekly_xp = sum(d.xp_reward for d in weekly_rotation(day))
    return weekly_xp_potential(daily_xp, weekly_xp)
