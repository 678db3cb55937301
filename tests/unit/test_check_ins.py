"""Daily pre-market and post-market partner check-ins."""

from datetime import date, datetime, timezone

import pytest

from tradejournal.errors import InvalidStateError
from tradejournal.gamification.activity import DailyActivity
from tradejournal.partners.accountability import accept_partner, end_partnership, invite_partner
from tradejournal.partners.checkins import CheckIn, CheckInType, record_check_in, today_status

DAY = date(2026, 3, 2)
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def relationship():
    invited = invite_partner("rel1", "alice", "bob", NOW).relationship
    return accept_partner(invited, "bob", NOW).relationship


class TestRecordCheckIn:
    def test_first_check_in_notifies_partner(self, relationship):
        check_in = CheckIn("rel1", "alice", DAY, CheckInType.PRE_MARKET, has_bias=True, trading_plan="Wait for the ORB")
        recorded, events = record_check_in(relationship, check_in)

        assert recorded.id == "rel1:alice:2026-03-02:pre_market"
        [event] = events
        assert event.kind == "partner_checked_in"
        assert event.recipient == "bob"
        assert event.payload["label"] == "Pre-Market"
        assert event.payload["check_in_type"] == "pre_market"

    def test_update_same_day_is_silent(self, relationship):
        first = CheckIn("rel1", "bob", DAY, "post_market", daily_pnl=-40.0)
        second = CheckIn("rel1", "bob", DAY, "post_market", daily_pnl=85.0, followed_rules=True)
        recorded, events = record_check_in(relationship, second, previous=first)
        assert events == ()
        assert recorded.daily_pnl == 85.0
        assert recorded.id == first.id

    def test_kind_accepts_plain_value(self):
        assert CheckIn("rel1", "bob", DAY, "pre_market").kind is CheckInType.PRE_MARKET

    def test_needs_active_relationship(self, relationship):
        ended = end_partnership(relationship, "alice", NOW).relationship
        with pytest.raises(InvalidStateError) as exc_info:
            record_check_in(ended, CheckIn("rel1", "alice", DAY, CheckInType.PRE_MARKET))
        assert exc_info.value.current_state == "ended"

    def test_outsider_rejected(self, relationship):
        with pytest.raises(ValueError):
            record_check_in(relationship, CheckIn("rel1", "carol", DAY, CheckInType.PRE_MARKET))


class TestTodayStatus:
    def test_both_sides(self, relationship):
        check_ins = [
            CheckIn("rel1", "alice", DAY, CheckInType.POST_MARKET),
            CheckIn("rel1", "alice", DAY, CheckInType.PRE_MARKET),
            CheckIn("rel1", "bob", DAY, CheckInType.PRE_MARKET),
            CheckIn("rel1", "bob", date(2026, 3, 1), CheckInType.POST_MARKET),
        ]
        activity = {"bob": DailyActivity(DAY, weekly_review_completed=True)}
        status = today_status(relationship, "alice", DAY, check_ins, activity)

        assert status["partner_id"] == "bob"
        assert status["pre_market_done"] is True
        assert status["post_market_done"] is True
        assert status["partner_pre_market_done"] is True
        assert status["partner_post_market_done"] is False
        assert status["weekly_review_done"] is False
        assert status["partner_weekly_review_done"] is True
        assert [c.kind for c in status["my_check_ins"]] == [CheckInType.PRE_MARKET, CheckInType.POST_MARKET]
        assert len(status["partner_check_ins"]) == 1

    def test_nothing_yet(self, relationship):
        status = today_status(relationship, "bob", DAY, [])
        assert status["partner_id"] == "alice"
        assert not any(status[k] for k in ("pre_market_done", "post_market_done", "partner_pre_market_done"))
        assert status["my_check_ins"] == []
