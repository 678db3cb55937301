"""Shared rule evaluation, violations, balances and partner mirroring."""

from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from tradejournal.errors import OutOfRangeInputError
from tradejournal.gamification.activity import ActivitySnapshot, DailyActivity, Metric
from tradejournal.gamification.catalog import CATALOG
from tradejournal.gamification.challenges import ChallengeState, create_challenge
from tradejournal.gamification.levels import TRADER_LEVELS
from tradejournal.partners.accountability import (
    accept_partner,
    add_rule,
    end_partnership,
    evaluate_partner_rules,
    invite_partner,
    mirror_events,
    partner_balance,
    partner_stats,
    report_violation,
    settle_violation,
    violation_id_for,
)
from tradejournal.partners.models import Consequence, PartnerRule
from tradejournal.partners.shared import (
    RewardPolicy,
    SharedOutcome,
    create_shared_challenge,
    evaluate_shared_challenge,
)

DAY = date(2026, 3, 2)
NOW = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)

MAX_LOSS = PartnerRule(
    id="max_loss",
    title="Max daily loss 500",
    metric=Metric.LARGEST_DAILY_LOSS,
    limit=500,
    created_by="alice",
    stake_amount=25.0,
)
MAX_LOSERS = PartnerRule(
    id="max_losers",
    title="No more than 2 losing trades",
    metric=Metric.LOSING_TRADES,
    limit=2,
    created_by="bob",
    consequence=Consequence.CHALLENGE_PENALTY,
)

BAD_DAY = DailyActivity(DAY, trades_logged=5, losing_trades=4, net_pnl=-800.0)
GOOD_DAY = DailyActivity(DAY, trades_logged=2, winning_trades=2, net_pnl=300.0)


def _with_rules(*rules):
    relationship = invite_partner("rel1", "alice", "bob", NOW).relationship
    relationship = accept_partner(relationship, "bob", NOW).relationship
    for rule in rules:
        relationship = add_rule(relationship, rule, NOW).relationship
    return relationship


class TestViolations:
    def test_within_limits_is_quiet(self):
        update = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", GOOD_DAY, NOW)
        assert not update.changed
        assert update.new_violations == ()

    def test_breach_notifies_partner(self):
        relationship = _with_rules(MAX_LOSS)
        update = evaluate_partner_rules(relationship, "bob", BAD_DAY, NOW)

        [violation] = update.new_violations
        assert violation.id == "rel1:max_loss:bob:2026-03-02"
        assert violation.observed == 800.0
        assert violation.amount_owed == 25.0

        [event] = update.events
        assert event.kind == "rule_violation"
        assert event.recipient == "alice"
        assert event.payload["violator"] == "bob"
        assert event.payload["limit"] == 500

    def test_limit_is_inclusive(self):
        at_limit = DailyActivity(DAY, trades_logged=1, losing_trades=1, net_pnl=-500.0)
        update = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", at_limit, NOW)
        assert update.new_violations == ()

    def test_same_day_recorded_once(self):
        first = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW)
        second = evaluate_partner_rules(first.relationship, "bob", BAD_DAY, NOW)
        assert second.new_violations == ()
        assert len(second.relationship.violations) == 1

    def test_violator_copy_when_enabled(self):
        update = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW, notify_violator=True)
        assert sorted(e.recipient for e in update.events) == ["alice", "bob"]

    def test_each_broken_rule_counts(self):
        update = evaluate_partner_rules(_with_rules(MAX_LOSS, MAX_LOSERS), "alice", BAD_DAY, NOW)
        assert {v.rule_id for v in update.new_violations} == {"max_loss", "max_losers"}

    def test_inactive_rule_ignored(self):
        relationship = replace(_with_rules(MAX_LOSS), rules=(replace(MAX_LOSS, is_active=False),))
        update = evaluate_partner_rules(relationship, "bob", BAD_DAY, NOW)
        assert update.new_violations == ()

    def test_ended_relationship_records_nothing(self):
        relationship = end_partnership(_with_rules(MAX_LOSS), "alice", NOW).relationship
        update = evaluate_partner_rules(relationship, "bob", BAD_DAY, NOW)
        assert update.new_violations == ()
        assert update.events == ()


class TestChallengePenalty:
    def test_penalty_fails_violator_shared_part(self):
        relationship = _with_rules(MAX_LOSERS)
        shared = create_shared_challenge(relationship, CATALOG["weekly_journal"], DAY, RewardPolicy.JOINT)
        update = evaluate_partner_rules(relationship, "alice", BAD_DAY, NOW, shared_challenges=[shared])

        [penalized] = update.shared_challenges
        assert penalized.shared.part_for("alice").state is ChallengeState.FAILED
        assert penalized.shared.state is ChallengeState.FAILED

    def test_notify_rule_does_not_penalize(self):
        relationship = _with_rules(MAX_LOSS)
        shared = create_shared_challenge(relationship, CATALOG["weekly_journal"], DAY)
        update = evaluate_partner_rules(relationship, "bob", BAD_DAY, NOW, shared_challenges=[shared])
        assert update.shared_challenges == ()


class TestSettlement:
    def test_balance_counts_unsettled_stakes(self):
        relationship = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW).relationship
        balance = partner_balance(relationship)
        assert balance["invitee_owes"] == 25.0
        assert balance["inviter_owes"] == 0
        assert balance["net_balance"] == -25.0

    def test_settle_clears_balance(self):
        relationship = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW).relationship
        violation_id = violation_id_for(relationship, MAX_LOSS, "bob", BAD_DAY)
        update = settle_violation(relationship, violation_id, "alice", NOW)

        [event] = update.events
        assert event.kind == "violation_settled"
        assert event.recipient == "bob"
        assert update.relationship.violations[0].is_settled
        assert update.relationship.violations[0].settled_at == NOW
        assert partner_balance(update.relationship)["net_balance"] == 0

    def test_settle_twice_is_noop(self):
        relationship = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW).relationship
        violation_id = relationship.violations[0].id
        settled = settle_violation(relationship, violation_id, "alice", NOW).relationship
        again = settle_violation(settled, violation_id, "alice", NOW)
        assert not again.changed

    def test_history_frozen_after_end(self):
        relationship = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW).relationship
        ended = end_partnership(relationship, "bob", NOW).relationship
        update = settle_violation(ended, ended.violations[0].id, "alice", NOW)
        assert not update.changed
        assert not update.relationship.violations[0].is_settled
        assert update.relationship.rules == relationship.rules


class TestMirroring:
    def test_level_up_and_completions_go_to_partner(self):
        relationship = _with_rules()
        completed = create_challenge("alice", CATALOG["weekly_journal"], DAY)
        events = mirror_events(relationship, "alice", TRADER_LEVELS[2], [completed])

        assert [e.kind for e in events] == ["partner_level_up", "partner_challenge_completed"]
        assert all(e.recipient == "bob" for e in events)
        assert events[0].payload["level"] == 3
        assert events[1].payload["challenge_id"] == completed.id

    def test_nothing_to_mirror(self):
        assert mirror_events(_with_rules(), "alice") == ()

    def test_not_mirrored_after_end(self):
        ended = end_partnership(_with_rules(), "bob", NOW).relationship
        assert mirror_events(ended, "alice", TRADER_LEVELS[2]) == ()


class TestStats:
    def test_head_to_head_record(self):
        relationship = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW).relationship
        definition = CATALOG["weekly_journal"]
        shared = create_shared_challenge(relationship, definition, DAY)
        ended_week = datetime(2026, 3, 9, 0, 0, tzinfo=timezone.utc)
        journaled = tuple(DailyActivity(date(2026, 3, d), journal_entries=1) for d in range(2, 9))
        snapshots = {"alice": ActivitySnapshot.for_period(shared.period, journaled)}
        finished = evaluate_shared_challenge(shared, snapshots, ended_week).shared

        alice = partner_stats(relationship, "alice", [finished])
        bob = partner_stats(relationship, "bob", [finished])
        assert alice["challenges_won"] == 1
        assert alice["win_rate"] == 100.0
        assert bob["challenges_lost"] == 1
        assert bob["total_violations"] == 1
        assert bob["total_violation_amount"] == 25.0

    def test_open_challenges_not_counted(self):
        relationship = _with_rules()
        shared = create_shared_challenge(relationship, CATALOG["weekly_journal"], DAY)
        stats = partner_stats(relationship, "alice", [shared])
        assert stats["total_challenges"] == 0
        assert stats["win_rate"] == 0.0

    def _daily_joint(self, relationship, alice_days, bob_days):
        shared = create_shared_challenge(relationship, CATALOG["write_journal"], DAY, RewardPolicy.JOINT)
        day_over = datetime(2026, 3, 3, 0, 0, tzinfo=timezone.utc)
        snapshots = {
            "alice": ActivitySnapshot.for_period(shared.period, alice_days),
            "bob": ActivitySnapshot.for_period(shared.period, bob_days),
        }
        return evaluate_shared_challenge(shared, snapshots, day_over).shared

    def test_joint_failure_is_nobodys_win(self):
        relationship = _with_rules()
        journaled = (DailyActivity(DAY, journal_entries=1),)
        finished = self._daily_joint(relationship, journaled, ())
        assert finished.part_for("alice").state is ChallengeState.COMPLETED
        assert finished.outcome is SharedOutcome.BOTH_LOST

        for trader in ("alice", "bob"):
            stats = partner_stats(relationship, trader, [finished])
            assert stats["total_challenges"] == 1
            assert stats["challenges_won"] == 0
            assert stats["challenges_lost"] == 0
            assert stats["win_rate"] == 0.0

    def test_joint_success_is_a_win_for_both(self):
        relationship = _with_rules()
        journaled = (DailyActivity(DAY, journal_entries=1),)
        finished = self._daily_joint(relationship, journaled, journaled)
        assert finished.outcome is SharedOutcome.BOTH_WON

        for trader in ("alice", "bob"):
            stats = partner_stats(relationship, trader, [finished])
            assert stats["challenges_won"] == 1
            assert stats["challenges_lost"] == 0

    def test_loss_only_when_partner_won(self):
        relationship = _with_rules()
        both_lost = self._daily_joint(relationship, (), ())
        definition = CATALOG["weekly_journal"]
        shared = create_shared_challenge(relationship, definition, DAY)
        ended_week = datetime(2026, 3, 9, 0, 0, tzinfo=timezone.utc)
        bob_journaled = tuple(DailyActivity(date(2026, 3, d), journal_entries=1) for d in range(2, 9))
        bob_won = evaluate_shared_challenge(
            shared, {"bob": ActivitySnapshot.for_period(shared.period, bob_journaled)}, ended_week
        ).shared
        assert bob_won.outcome is SharedOutcome.INVITEE_WON

        alice = partner_stats(relationship, "alice", [both_lost, bob_won])
        assert alice["total_challenges"] == 2
        assert alice["challenges_won"] == 0
        assert alice["challenges_lost"] == 1
        bob = partner_stats(relationship, "bob", [both_lost, bob_won])
        assert bob["challenges_won"] == 1
        assert bob["challenges_lost"] == 0
        assert bob["win_rate"] == 50.0


class TestReportedViolations:
    def test_report_uses_rule_stake_and_notifies_partner(self):
        update = report_violation(_with_rules(MAX_LOSS), "max_loss", "bob", "alice", DAY, NOW, notes="held a loser")

        [violation] = update.new_violations
        assert violation.id == "rel1:max_loss:bob:2026-03-02"
        assert violation.observed is None
        assert violation.reported_by == "alice"
        assert violation.amount_owed == 25.0
        assert violation.notes == "held a loser"
        [event] = update.events
        assert event.kind == "rule_violation"
        assert event.recipient == "alice"
        assert event.payload["reported_by"] == "alice"
        assert partner_balance(update.relationship)["invitee_owes"] == 25.0

    def test_custom_amount(self):
        update = report_violation(_with_rules(MAX_LOSS), "max_loss", "alice", "alice", DAY, NOW, amount_owed=5.0)
        [violation] = update.new_violations
        assert violation.amount_owed == 5.0
        assert update.events[0].recipient == "bob"

    def test_negative_amount_rejected(self):
        with pytest.raises(OutOfRangeInputError):
            report_violation(_with_rules(MAX_LOSS), "max_loss", "bob", "alice", DAY, NOW, amount_owed=-1.0)

    def test_same_rule_trader_and_day_recorded_once(self):
        detected = evaluate_partner_rules(_with_rules(MAX_LOSS), "bob", BAD_DAY, NOW).relationship
        update = report_violation(detected, "max_loss", "bob", "alice", DAY, NOW)
        assert not update.changed
        assert len(update.relationship.violations) == 1

        reported = report_violation(_with_rules(MAX_LOSS), "max_loss", "bob", "alice", DAY, NOW).relationship
        again = report_violation(reported, "max_loss", "bob", "bob", DAY, NOW)
        assert again.new_violations == ()

    def test_only_while_active(self):
        ended = end_partnership(_with_rules(MAX_LOSS), "alice", NOW).relationship
        update = report_violation(ended, "max_loss", "bob", "alice", DAY, NOW)
        assert update.new_violations == ()
        assert update.events == ()

    def test_unknown_or_inactive_rule_is_noop(self):
        relationship = replace(_with_rules(MAX_LOSS), rules=(replace(MAX_LOSS, is_active=False),))
        assert report_violation(relationship, "max_loss", "bob", "alice", DAY, NOW).new_violations == ()
        assert report_violation(relationship, "missing", "bob", "alice", DAY, NOW).new_violations == ()

    def test_outsider_rejected(self):
        with pytest.raises(ValueError):
            report_violation(_with_rules(MAX_LOSS), "max_loss", "bob", "carol", DAY, NOW)

    def test_penalty_rule_fails_shared_part(self):
        relationship = _with_rules(MAX_LOSERS)
        shared = create_shared_challenge(relationship, CATALOG["weekly_journal"], DAY, RewardPolicy.JOINT)
        update = report_violation(relationship, "max_losers", "bob", "alice", DAY, NOW, shared_challenges=[shared])
        [penalized] = update.shared_challenges
        assert penalized.shared.part_for("bob").state is ChallengeState.FAILED
