"""Activity metrics and rule predicate tests."""

from datetime import date, timedelta

import pytest

from tradejournal.errors import UnsatisfiableRuleError
from tradejournal.gamification.activity import ActivitySnapshot, DailyActivity, Metric
from tradejournal.gamification.periods import daily_period, weekly_period
from tradejournal.gamification.rules import AllOf, Limit, RuleStatus, Target

MONDAY = date(2026, 3, 2)
WEEK = weekly_period(MONDAY)


def _week(*days: DailyActivity) -> ActivitySnapshot:
    return ActivitySnapshot.for_period(WEEK, days)


class TestDailyActivity:
    def test_qualifying(self):
        assert DailyActivity(MONDAY, trades_logged=1).is_qualifying
        assert DailyActivity(MONDAY, journal_entries=1).is_qualifying
        assert DailyActivity(MONDAY, has_pre_market_note=True).is_qualifying
        assert not DailyActivity(MONDAY, net_pnl=-100).is_qualifying

    def test_loss(self):
        assert DailyActivity(MONDAY, net_pnl=-250.0).loss == 250.0
        assert DailyActivity(MONDAY, net_pnl=80.0).loss == 0.0


class TestSnapshot:
    def test_keeps_only_days_in_period(self):
        snapshot = _week(
            DailyActivity(MONDAY - timedelta(days=1), trades_logged=9),
            DailyActivity(MONDAY, trades_logged=2),
            DailyActivity(MONDAY + timedelta(days=7), trades_logged=9),
        )
        assert snapshot.measure(Metric.TRADES_LOGGED) == 2

    def test_latest_record_per_day_wins(self):
        snapshot = _week(
            DailyActivity(MONDAY, trades_logged=1),
            DailyActivity(MONDAY, trades_logged=4),
        )
        assert snapshot.measure(Metric.TRADES_LOGGED) == 4

    def test_day_metrics(self):
        snapshot = _week(
            DailyActivity(MONDAY, journal_entries=2, trades_logged=1, net_pnl=50),
            DailyActivity(MONDAY + timedelta(days=1), journal_entries=1, trades_logged=2, net_pnl=-300),
            DailyActivity(MONDAY + timedelta(days=3), has_post_market_note=True, net_pnl=-100),
        )
        assert snapshot.measure(Metric.JOURNAL_ENTRIES) == 3
        assert snapshot.measure(Metric.JOURNAL_DAYS) == 2
        assert snapshot.measure(Metric.GREEN_DAYS) == 1
        assert snapshot.measure(Metric.LARGEST_DAILY_LOSS) == 300
        assert snapshot.measure(Metric.POST_MARKET_NOTES) == 1
        assert snapshot.measure(Metric.QUALIFYING_STREAK) == 2


class TestTarget:
    def test_satisfied_when_reached(self):
        rule = Target(Metric.TRADES_LOGGED, 2)
        assert rule.status(_week(DailyActivity(MONDAY, trades_logged=2))) is RuleStatus.SATISFIED

    def test_open_below_target_even_after_period(self):
        rule = Target(Metric.TRADES_LOGGED, 2)
        snapshot = _week(DailyActivity(MONDAY, trades_logged=1))
        assert rule.status(snapshot) is RuleStatus.OPEN
        assert rule.status(snapshot, period_over=True) is RuleStatus.OPEN

    def test_progress_capped_at_target(self):
        rule = Target(Metric.TRADES_LOGGED, 2)
        assert rule.progress(_week(DailyActivity(MONDAY, trades_logged=5))) == 2

    def test_accepts_metric_name(self):
        assert Target("trades_logged", 1).metric is Metric.TRADES_LOGGED

    def test_unknown_metric(self):
        with pytest.raises(UnsatisfiableRuleError):
            Target("win_rate", 1)

    def test_non_positive_target_unsatisfiable(self):
        with pytest.raises(UnsatisfiableRuleError):
            Target(Metric.TRADES_LOGGED, 0).validate(1)

    def test_day_bounded_target_beyond_period(self):
        with pytest.raises(UnsatisfiableRuleError):
            Target(Metric.JOURNAL_DAYS, 2).validate(1)
        Target(Metric.JOURNAL_DAYS, 7).validate(7)


class TestLimit:
    def test_violated_above_limit(self):
        rule = Limit(Metric.LOSING_TRADES, 2)
        assert rule.status(_week(DailyActivity(MONDAY, losing_trades=3))) is RuleStatus.VIOLATED

    def test_open_until_period_ends(self):
        rule = Limit(Metric.LOSING_TRADES, 2)
        snapshot = _week(DailyActivity(MONDAY, losing_trades=2))
        assert rule.status(snapshot) is RuleStatus.OPEN
        assert rule.status(snapshot, period_over=True) is RuleStatus.SATISFIED

    def test_negative_limit_unsatisfiable(self):
        with pytest.raises(UnsatisfiableRuleError):
            Limit(Metric.LOSING_TRADES, -1).validate(1)


class TestAllOf:
    rule = AllOf((Target(Metric.TRADES_LOGGED, 1), Limit(Metric.LOSING_TRADES, 2)))

    def test_open_while_limit_is_open(self):
        snapshot = _week(DailyActivity(MONDAY, trades_logged=1))
        assert self.rule.status(snapshot) is RuleStatus.OPEN

    def test_satisfied_at_period_end(self):
        snapshot = _week(DailyActivity(MONDAY, trades_logged=1))
        assert self.rule.status(snapshot, period_over=True) is RuleStatus.SATISFIED

    def test_any_violation_fails(self):
        snapshot = _week(DailyActivity(MONDAY, trades_logged=5, losing_trades=3))
        assert self.rule.status(snapshot) is RuleStatus.VIOLATED

    def test_empty_is_unsatisfiable(self):
        with pytest.raises(UnsatisfiableRuleError):
            AllOf(()).validate(1)

    def test_describe(self):
        assert self.rule.describe() == "trades_logged >= 1 and losing_trades <= 2"

    def test_daily_snapshot(self):
        snapshot = ActivitySnapshot.for_period(daily_period(MONDAY), [DailyActivity(MONDAY, trades_logged=1)])
        assert self.rule.status(snapshot, period_over=True) is RuleStatus.SATISFIED
