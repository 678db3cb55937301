"""Challenge period helpers: calendar days and ISO weeks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from tradejournal.errors import OutOfRangeInputError


class PeriodKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class Period:
    """Inclusive calendar-day range [start, end]."""

    kind: PeriodKind
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise OutOfRangeInputError(f"Period ends before it starts: {self.start} > {self.end}")

    @property
    def key(self) -> str:
        if self.kind is PeriodKind.DAILY:
            return self.start.isoformat()
        return get_week_iso(self.start)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def has_started(self, now: datetime) -> bool:
        return _as_utc(now) >= period_start_at(self)

    def has_ended(self, now: datetime) -> bool:
        return _as_utc(now) >= period_end_at(self)


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def get_week_iso(d: date | datetime) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return d.strftime("%G-W%V")


def get_monday(d: date | datetime) -> date:
    """Get the Monday of the ISO week containing d."""
    day = d.date() if isinstance(d, datetime) else d
    return day - timedelta(days=day.weekday())


def daily_period(day: date) -> Period:
    return Period(PeriodKind.DAILY, day, day)


def weekly_period(day: date) -> Period:
    """ISO week (Monday to Sunday) containing day."""
    monday = get_monday(day)
    return Period(PeriodKind.WEEKLY, monday, monday + timedelta(days=6))


def period_for(kind: PeriodKind, day: date) -> Period:
    if kind is PeriodKind.DAILY:
        return daily_period(day)
    return weekly_period(day)


def iso_week_to_period(week_iso: str) -> Period:
    """Convert '2026-W09' to its weekly period."""
    try:
        monday = datetime.strptime(week_iso + "-1", "%G-W%V-%u").date()
    except ValueError as exc:
        raise OutOfRangeInputError(f"Malformed ISO week: {week_iso!r}") from exc
    return weekly_period(monday)


def period_start_at(period: Period) -> datetime:
    """00:00 UTC on the first day of the period."""
    return datetime.combine(period.start, time.min, tzinfo=timezone.utc)


def period_end_at(period: Period) -> datetime:
    """00:00 UTC on the day after the period; the period is over at this instant."""
    return datetime.combine(period.end + timedelta(days=1), time.min, tzinfo=timezone.utc)
