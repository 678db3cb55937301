"""Level table and resolver tests. Values MUST match the journal frontend badges."""

import pytest

from tradejournal.errors import OutOfRangeInputError
from tradejournal.gamification.levels import (
    TRADER_LEVELS,
    TraderLevel,
    detect_level_up,
    level_motivation,
    next_level,
    progress_to_next_level,
    resolve_level,
    summarize_level,
    validate_level_table,
    weekly_xp_potential,
    xp_to_next_level,
)


def _forward_search(total_xp: int) -> TraderLevel:
    for entry in TRADER_LEVELS:
        if entry.contains(total_xp):
            return entry
    raise AssertionError(f"no level for {total_xp}")


class TestLevelTable:
    def test_fifteen_levels(self):
        assert len(TRADER_LEVELS) == 15
        assert TRADER_LEVELS[0].title == "Rookie"
        assert TRADER_LEVELS[-1].title == "Market Wizard"

    def test_exactly_one_level_starts_at_zero(self):
        assert [lvl.level for lvl in TRADER_LEVELS if lvl.min_xp == 0] == [1]

    def test_only_terminal_level_is_unbounded(self):
        assert [lvl.level for lvl in TRADER_LEVELS if lvl.max_xp is None] == [15]

    def test_table_is_contiguous(self):
        for current, following in zip(TRADER_LEVELS, TRADER_LEVELS[1:]):
            assert current.max_xp == following.min_xp

    def test_validate_rejects_gap(self):
        broken = (
            TraderLevel(1, "A", 0, 100, "", ""),
            TraderLevel(2, "B", 150, None, "", ""),
        )
        with pytest.raises(ValueError, match="Gap"):
            validate_level_table(broken)

    def test_validate_rejects_nonzero_start(self):
        with pytest.raises(ValueError, match="start at 0"):
            validate_level_table((TraderLevel(1, "A", 10, None, "", ""),))

    def test_validate_rejects_bounded_terminal(self):
        with pytest.raises(ValueError, match="unbounded"):
            validate_level_table((TraderLevel(1, "A", 0, 100, "", ""),))


class TestResolveLevel:
    @pytest.mark.parametrize(
        "xp,expected_level,expected_title",
        [
            (0, 1, "Rookie"),
            (99, 1, "Rookie"),
            (100, 2, "Apprentice"),
            (7699, 11, "Champion"),
            (7700, 12, "Legend"),
            (14999, 14, "Trading Sage"),
            (15000, 15, "Market Wizard"),
            (1_000_000, 15, "Market Wizard"),
        ],
    )
    def test_known_values(self, xp, expected_level, expected_title):
        result = resolve_level(xp)
        assert result.level == expected_level
        assert result.title == expected_title

    def test_interval_holds_densely(self):
        for xp in range(0, 20001):
            level = resolve_level(xp)
            assert level.min_xp <= xp
            assert level.max_xp is None or xp < level.max_xp

    def test_agrees_with_forward_search(self):
        for xp in range(0, 20001, 7):
            assert resolve_level(xp) == _forward_search(xp)

    def test_every_boundary(self):
        for entry in TRADER_LEVELS:
            assert resolve_level(entry.min_xp) == entry
            if entry.min_xp > 0:
                assert resolve_level(entry.min_xp - 1).level == entry.level - 1

    def test_monotonic(self):
        previous = 0
        for xp in range(0, 20001, 13):
            level = resolve_level(xp).level
            assert level >= previous
            previous = level

    @pytest.mark.parametrize("bad", [-1, -100, 1.5, "100", None, True])
    def test_rejects_invalid_xp(self, bad):
        with pytest.raises(OutOfRangeInputError):
            resolve_level(bad)


class TestProgress:
    def test_next_level(self):
        assert next_level(1).title == "Apprentice"
        assert next_level(15) is None

    def test_zero_at_every_min_xp(self):
        for entry in TRADER_LEVELS[:-1]:
            assert progress_to_next_level(entry.min_xp) == 0

    def test_hundred_at_terminal(self):
        for xp in (15000, 15001, 99999):
            assert progress_to_next_level(xp) == 100

    def test_rounding(self):
        # level 2 spans 100..250
        assert progress_to_next_level(175) == 50
        assert progress_to_next_level(249) == 99

    @pytest.mark.parametrize("xp,expected", [(1303, 1), (1315, 3), (1447, 25), (1302, 0)])
    def test_halves_round_up(self, xp, expected):
        # level 6 spans 1300..1900, so every 3 XP is half a percent
        assert progress_to_next_level(xp) == expected

    def test_xp_to_next_level(self):
        assert xp_to_next_level(0) == 100
        assert xp_to_next_level(240) == 10
        assert xp_to_next_level(20000) == 0


class TestDetectLevelUp:
    def test_multi_level_jump_reports_final_level(self):
        result = detect_level_up(90, 250)
        assert result is not None
        assert result.level == 3
        assert result.title == "Novice Trader"

    def test_same_level_is_none(self):
        assert detect_level_up(0, 99) is None
        assert detect_level_up(100, 100) is None

    def test_exact_resolved_level_when_crossing(self):
        for a, b in [(0, 100), (99, 7700), (6000, 15000), (14999, 50000)]:
            assert detect_level_up(a, b) == resolve_level(b)

    def test_decrease_is_none(self):
        assert detect_level_up(500, 100) is None


class TestPresentation:
    @pytest.mark.parametrize(
        "xp,fragment",
        [
            (0, "100 XP until Apprentice"),
            (140, "Making progress!"),
            (175, "Halfway to Novice Trader"),
            (215, "Great progress!"),
            (240, "Almost there! Just 10 XP"),
            (1447, "Making progress! 453 XP to go"),
            (15000, "You've reached the highest level! You're a true Market Wizard!"),
        ],
    )
    def test_motivation_bands(self, xp, fragment):
        assert fragment in level_motivation(xp)

    def test_weekly_xp_potential(self):
        assert weekly_xp_potential(50, 200) == 550

    def test_weekly_xp_potential_rejects_negative(self):
        with pytest.raises(OutOfRangeInputError):
            weekly_xp_potential(-1, 0)

    def test_summary(self):
        summary = summarize_level(175)
        assert summary["level"].title == "Apprentice"
        assert summary["next_level"].title == "Novice Trader"
        assert summary["progress"] == 50
        assert summary["xp_to_next_level"] == 75
