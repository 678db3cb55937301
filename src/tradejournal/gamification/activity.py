"""Daily activity snapshots consumed from the journal.

The engine only reads these records; it never changes trade data.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum

from tradejournal.gamification.periods import Period
from tradejournal.gamification.streaks import longest_run


@dataclass(frozen=True)
class DailyActivity:
    day: date
    trades_logged: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    net_pnl: float = 0.0
    journal_entries: int = 0
    notes_added: int = 0
    trades_reviewed: int = 0
    lessons_documented: int = 0
    trades_with_setup: int = 0
    trades_with_stop_loss: int = 0
    has_pre_market_note: bool = False
    has_post_market_note: bool = False
    weekly_review_completed: bool = False

    @property
    def loss(self) -> float:
        """Size of the day's net loss (0 on a green day)."""
        return max(0.0, -self.net_pnl)

    @property
    def is_qualifying(self) -> bool:
        """A day counts towards the journaling streak when anything was journaled."""
        return (
            self.trades_logged > 0
            or self.journal_entries > 0
            or self.has_pre_market_note
            or self.has_post_market_note
        )


def _total(field: str) -> Callable[[tuple[DailyActivity, ...]], float]:
    def aggregate(days: tuple[DailyActivity, ...]) -> float:
        return sum(getattr(d, field) for d in days)

    return aggregate


def _count_days(predicate: Callable[[DailyActivity], bool]) -> Callable[[tuple[DailyActivity, ...]], float]:
    def aggregate(days: tuple[DailyActivity, ...]) -> float:
        return sum(1 for d in days if predicate(d))

    return aggregate


def _largest_loss(days: tuple[DailyActivity, ...]) -> float:
    return max((d.loss for d in days), default=0.0)


def _qualifying_run(days: tuple[DailyActivity, ...]) -> float:
    return longest_run(d.day for d in days if d.is_qualifying)


class Metric(str, Enum):
    TRADES_LOGGED = "trades_logged"
    WINNING_TRADES = "winning_trades"
    LOSING_TRADES = "losing_trades"
    JOURNAL_ENTRIES = "journal_entries"
    JOURNAL_DAYS = "journal_days"
    NOTES_ADDED = "notes_added"
    TRADES_REVIEWED = "trades_reviewed"
    LESSONS_DOCUMENTED = "lessons_documented"
    TRADES_WITH_SETUP = "trades_with_setup"
    TRADES_WITH_STOP_LOSS = "trades_with_stop_loss"
    PRE_MARKET_NOTES = "pre_market_notes"
    POST_MARKET_NOTES = "post_market_notes"
    WEEKLY_REVIEWS = "weekly_reviews"
    GREEN_DAYS = "green_days"
    LARGEST_DAILY_LOSS = "largest_daily_loss"
    QUALIFYING_STREAK = "qualifying_streak"

    @property
    def is_day_bounded(self) -> bool:
        """Metrics that can grow by at most one per calendar day."""
        return self in _DAY_BOUNDED

    def measure(self, days: Iterable[DailyActivity]) -> float:
        return _AGGREGATORS[self](tuple(days))


_DAY_BOUNDED = frozenset({
    Metric.JOURNAL_DAYS,
    Metric.PRE_MARKET_NOTES,
    Metric.POST_MARKET_NOTES,
    Metric.WEEKLY_REVIEWS,
    Metric.GREEN_DAYS,
    Metric.QUALIFYING_STREAK,
})

_AGGREGATORS: dict[Metric, Callable[[tuple[DailyActivity, ...]], float]] = {
    Metric.TRADES_LOGGED: _total("trades_logged"),
    Metric.WINNING_TRADES: _total("winning_trades"),
    Metric.LOSING_TRADES: _total("losing_trades"),
    Metric.JOURNAL_ENTRIES: _total("journal_entries"),
    Metric.JOURNAL_DAYS: _count_days(lambda d: d.journal_entries > 0),
    Metric.NOTES_ADDED: _total("notes_added"),
    Metric.TRADES_REVIEWED: _total("trades_reviewed"),
    Metric.LESSONS_DOCUMENTED: _total("lessons_documented"),
    Metric.TRADES_WITH_SETUP: _total("trades_with_setup"),
    Metric.TRADES_WITH_STOP_LOSS: _total("trades_with_stop_loss"),
    Metric.PRE_MARKET_NOTES: _count_days(lambda d: d.has_pre_market_note),
    Metric.POST_MARKET_NOTES: _count_days(lambda d: d.has_post_market_note),
    Metric.WEEKLY_REVIEWS: _count_days(lambda d: d.weekly_review_completed),
    Metric.GREEN_DAYS: _count_days(lambda d: d.trades_logged > 0 and d.net_pnl > 0),
    Metric.LARGEST_DAILY_LOSS: _largest_loss,
    Metric.QUALIFYING_STREAK: _qualifying_run,
}


@dataclass(frozen=True)
class ActivitySnapshot:
    """Read-only view of a trader's activity restricted to one period."""

    period: Period
    days: tuple[DailyActivity, ...] = ()

    @classmethod
    def for_period(cls, period: Period, activity: Iterable[DailyActivity]) -> ActivitySnapshot:
        """Keep only the days inside the period, latest record per day wins."""
        by_day: dict[date, DailyActivity] = {}
        for record in activity:
            if period.contains(record.day):
                by_day[record.day] = record
        return cls(period=period, days=tuple(by_day[d] for d in sorted(by_day)))

    def measure(self, metric: Metric) -> float:
        return metric.measure(self.days)
