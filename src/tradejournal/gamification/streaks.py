"""Streak tracking over qualifying journal days.

A streak only moves when a day is evaluated: it advances on consecutive
qualifying days, resets to 1 after a gap of more than one day, and never
decays on its own.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, timedelta

from tradejournal.errors import OutOfRangeInputError


@dataclass(frozen=True)
class Streak:
    current_length: int = 0
    longest_length: int = 0
    last_qualifying_date: date | None = None

    @property
    def is_cold(self) -> bool:
        return self.current_length == 0


def advance_streak(streak: Streak, day: date, qualifying: bool) -> Streak:
    """Apply one day's evaluation and return the next streak state.

    Evaluating the same day twice returns the streak unchanged.
    """
    if not qualifying:
        return streak

    last = streak.last_qualifying_date
    if last is not None:
        if day == last:
            return streak
        if day < last:
            raise OutOfRangeInputError(f"Day {day} is before the last qualifying day {last}")

    if last is not None and day - last == timedelta(days=1):
        current = streak.current_length + 1
    else:
        current = 1

    return replace(
        streak,
        current_length=current,
        longest_length=max(streak.longest_length, current),
        last_qualifying_date=day,
    )


def streak_from_days(days: Iterable[date], initial: Streak | None = None) -> Streak:
    """Replay an ordered sequence of qualifying days."""
    streak = initial or Streak()
    for day in days:
        streak = advance_streak(streak, day, qualifying=True)
    return streak


def longest_run(days: Iterable[date]) -> int:
    """Longest run of consecutive days in an unordered collection."""
    return streak_from_days(sorted(set(days))).longest_length


def effective_length(streak: Streak, today: date) -> int:
    """Length to display today: 0 once a full day has been missed."""
    last = streak.last_qualifying_date
    if last is None:
        return 0
    if today - last > timedelta(days=1):
        return 0
    return streak.current_length
