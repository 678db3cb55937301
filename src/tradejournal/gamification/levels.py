"""Trader level table and XP resolution.

XP is earned by completing daily and weekly challenges. The table is
validated once at import; lookups never re-check it.

These values MUST match the journal frontend level badges exactly.
"""

from __future__ import annotations

from dataclasses import dataclass

from tradejournal.errors import OutOfRangeInputError


@dataclass(frozen=True)
class TraderLevel:
    level: int
    title: str
    min_xp: int
    max_xp: int | None  # None = unbounded (terminal level)
    badge: str
    color: str

    @property
    def is_terminal(self) -> bool:
        return self.max_xp is None

    def contains(self, total_xp: int) -> bool:
        """True when total_xp falls inside [min_xp, max_xp)."""
        if total_xp < self.min_xp:
            return False
        return self.max_xp is None or total_xp < self.max_xp


TRADER_LEVELS: tuple[TraderLevel, ...] = (
    TraderLevel(1, "Rookie", 0, 100, "\U0001F331", "text-gray-500"),
    TraderLevel(2, "Apprentice", 100, 250, "\U0001F4DA", "text-green-500"),
    TraderLevel(3, "Novice Trader", 250, 500, "\U0001F4C8", "text-green-600"),
    TraderLevel(4, "Journeyman", 500, 850, "⚡", "text-blue-500"),
    TraderLevel(5, "Skilled Trader", 850, 1300, "\U0001F3AF", "text-blue-600"),
    TraderLevel(6, "Experienced", 1300, 1900, "\U0001F4AA", "text-purple-500"),
    TraderLevel(7, "Veteran", 1900, 2600, "\U0001F3C6", "text-purple-600"),
    TraderLevel(8, "Expert Trader", 2600, 3500, "⭐", "text-yellow-500"),
    TraderLevel(9, "Master Trader", 3500, 4600, "\U0001F31F", "text-yellow-600"),
    TraderLevel(10, "Elite Trader", 4600, 6000, "\U0001F48E", "text-cyan-500"),
    TraderLevel(11, "Champion", 6000, 7700, "\U0001F451", "text-amber-500"),
    TraderLevel(12, "Legend", 7700, 9700, "\U0001F525", "text-orange-500"),
    TraderLevel(13, "Grandmaster", 9700, 12000, "\U0001F3C5", "text-red-500"),
    TraderLevel(14, "Trading Sage", 12000, 15000, "\U0001F9D9", "text-indigo-500"),
    TraderLevel(15, "Market Wizard", 15000, None, "✨", "text-pink-500"),
)


def validate_level_table(levels: tuple[TraderLevel, ...]) -> None:
    """Check contiguity and ordering. Raises ValueError on a malformed table."""
    if not levels:
        raise ValueError("Level table is empty")
    if levels[0].min_xp != 0:
        raise ValueError("First level must start at 0 XP")
    for i, entry in enumerate(levels):
        if entry.level != i + 1:
            raise ValueError(f"Level numbers must be consecutive from 1, got {entry.level} at index {i}")
        is_last = i == len(levels) - 1
        if is_last:
            if entry.max_xp is not None:
                raise ValueError("Terminal level must be unbounded")
            continue
        following = levels[i + 1]
        if entry.max_xp is None:
            raise ValueError(f"Only the terminal level may be unbounded (level {entry.level})")
        if entry.min_xp >= entry.max_xp:
            raise ValueError(f"Level {entry.level} has an empty XP interval")
        if entry.max_xp != following.min_xp:
            raise ValueError(
                f"Gap between level {entry.level} and {following.level}: "
                f"{entry.max_xp} != {following.min_xp}"
            )


validate_level_table(TRADER_LEVELS)

_BY_NUMBER: dict[int, TraderLevel] = {lvl.level: lvl for lvl in TRADER_LEVELS}


def _check_xp(total_xp: int) -> None:
    if isinstance(total_xp, bool) or not isinstance(total_xp, int):
        raise OutOfRangeInputError(f"XP must be an integer, got {total_xp!r}")
    if total_xp < 0:
        raise OutOfRangeInputError(f"XP cannot be negative: {total_xp}")


def resolve_level(total_xp: int) -> TraderLevel:
    """Return the level whose [min_xp, max_xp) interval contains total_xp.

    Searches from the highest level down. Fails explicitly instead of
    clamping when no interval matches.
    """
    _check_xp(total_xp)
    for entry in reversed(TRADER_LEVELS):
        if total_xp >= entry.min_xp:
            if not entry.contains(total_xp):
                raise OutOfRangeInputError(f"XP {total_xp} exceeds the bounds of level {entry.level}")
            return entry
    raise OutOfRangeInputError(f"No level covers {total_xp} XP")


def next_level(level: int) -> TraderLevel | None:
    """Get the next level entry, or None at the terminal level."""
    return _BY_NUMBER.get(level + 1)


def progress_to_next_level(total_xp: int) -> int:
    """Progress through the current level as a percentage in [0, 100]."""
    current = resolve_level(total_xp)
    following = next_level(current.level)
    if following is None:
        return 100

    xp_into_level = total_xp - current.min_xp
    xp_for_level = following.min_xp - current.min_xp
    # Halves round up: 0.5% of a 600 XP level is 1, not 0.
    return min(100, (200 * xp_into_level + xp_for_level) // (2 * xp_for_level))


def xp_to_next_level(total_xp: int) -> int:
    """XP still needed for the next level (0 at the terminal level)."""
    current = resolve_level(total_xp)
    following = next_level(current.level)
    if following is None:
        return 0
    return following.min_xp - total_xp


def detect_level_up(previous_xp: int, new_xp: int) -> TraderLevel | None:
    """Return the level reached by new_xp if it is above the one for previous_xp.

    A grant that crosses several boundaries reports only the final level.
    """
    previous = resolve_level(previous_xp)
    reached = resolve_level(new_xp)
    if reached.level > previous.level:
        return reached
    return None


def level_motivation(total_xp: int) -> str:
    """Motivational line for the level progress widget."""
    progress = progress_to_next_level(total_xp)
    remaining = xp_to_next_level(total_xp)
    current = resolve_level(total_xp)
    following = next_level(current.level)

    if following is None:
        return f"You've reached the highest level! You're a true {current.title}!"
    if progress >= 90:
        return f"Almost there! Just {remaining} XP to become a {following.title}!"
    if progress >= 75:
        return f"Great progress! {remaining} XP to {following.title}"
    if progress >= 50:
        return f"Halfway to {following.title}! Keep it up!"
    if progress >= 25:
        return f"Making progress! {remaining} XP to go"
    return f"{remaining} XP until {following.title}"


def weekly_xp_potential(daily_challenge_xp: int, weekly_challenge_xp: int) -> int:
    """Total XP available per week, assuming a fixed daily reward every day."""
    if daily_challenge_xp < 0 or weekly_challenge_xp < 0:
        raise OutOfRangeInputError("Challenge XP cannot be negative")
    return daily_challenge_xp * 7 + weekly_challenge_xp


def summarize_level(total_xp: int) -> dict:
    """Level info bundle for the presentation layer."""
    current = resolve_level(total_xp)
    following = next_level(current.level)
    return {
        "total_xp": total_xp,
        "level": current,
        "next_level": following,
        "progress": progress_to_next_level(total_xp),
        "xp_to_next_level": xp_to_next_level(total_xp),
        "motivation": level_motivation(total_xp),
    }
