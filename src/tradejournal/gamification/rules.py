"""Challenge rule predicates.

Target rules are opportunity rules: they complete once the metric reaches the
target and otherwise simply run out of time. Limit rules are restrictions:
they fail as soon as the metric exceeds the limit and complete when the
period closes without a breach.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tradejournal.errors import UnsatisfiableRuleError
from tradejournal.gamification.activity import ActivitySnapshot, Metric


class RuleStatus(str, Enum):
    OPEN = "open"
    SATISFIED = "satisfied"
    VIOLATED = "violated"


def _as_metric(metric: Metric | str) -> Metric:
    try:
        return Metric(metric)
    except ValueError as exc:
        raise UnsatisfiableRuleError(f"Unknown metric: {metric!r}") from exc


@dataclass(frozen=True)
class Target:
    metric: Metric
    target: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "metric", _as_metric(self.metric))

    def status(self, snapshot: ActivitySnapshot, period_over: bool = False) -> RuleStatus:
        if snapshot.measure(self.metric) >= self.target:
            return RuleStatus.SATISFIED
        return RuleStatus.OPEN

    def progress(self, snapshot: ActivitySnapshot) -> float:
        return min(snapshot.measure(self.metric), self.target)

    def validate(self, period_days: int) -> None:
        if self.target <= 0:
            raise UnsatisfiableRuleError(f"Target for {self.metric.value} must be positive, got {self.target}")
        if self.metric.is_day_bounded and self.target > period_days:
            raise UnsatisfiableRuleError(
                f"{self.metric.value} can reach at most {period_days} in this period, target is {self.target}"
            )

    def describe(self) -> str:
        return f"{self.metric.value} >= {self.target:g}"


@dataclass(frozen=True)
class Limit:
    metric: Metric
    limit: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "metric", _as_metric(self.metric))

    def status(self, snapshot: ActivitySnapshot, period_over: bool = False) -> RuleStatus:
        if snapshot.measure(self.metric) > self.limit:
            return RuleStatus.VIOLATED
        if period_over:
            return RuleStatus.SATISFIED
        return RuleStatus.OPEN

    def progress(self, snapshot: ActivitySnapshot) -> float:
        return snapshot.measure(self.metric)

    def validate(self, period_days: int) -> None:
        if self.limit < 0:
            raise UnsatisfiableRuleError(f"Limit for {self.metric.value} cannot be negative, got {self.limit}")

    def describe(self) -> str:
        return f"{self.metric.value} <= {self.limit:g}"


@dataclass(frozen=True)
class AllOf:
    rules: tuple[RuleSpec, ...]

    def status(self, snapshot: ActivitySnapshot, period_over: bool = False) -> RuleStatus:
        statuses = [rule.status(snapshot, period_over) for rule in self.rules]
        if RuleStatus.VIOLATED in statuses:
            return RuleStatus.VIOLATED
        if all(s is RuleStatus.SATISFIED for s in statuses):
            return RuleStatus.SATISFIED
        return RuleStatus.OPEN

    def progress(self, snapshot: ActivitySnapshot) -> float:
        satisfied = sum(1 for rule in self.rules if rule.status(snapshot) is RuleStatus.SATISFIED)
        return float(satisfied)

    def validate(self, period_days: int) -> None:
        if not self.rules:
            raise UnsatisfiableRuleError("AllOf needs at least one rule")
        for rule in self.rules:
            rule.validate(period_days)

    def describe(self) -> str:
        return " and ".join(rule.describe() for rule in self.rules)


RuleSpec = Target | Limit | AllOf
