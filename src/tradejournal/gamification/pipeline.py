"""One trader-day through the whole engine.

Order: streak update, challenge evaluation (with XP grants), level-up
detection, shared challenges, partner rules, partner mirroring. Nothing here
touches storage; the caller commits the returned outcome in one transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from tradejournal.gamification.activity import ActivitySnapshot, DailyActivity
from tradejournal.gamification.challenges import Challenge, ChallengeState, Evaluation, evaluate_challenge
from tradejournal.gamification.events import ChallengeTransition, RelationshipEvent, StreakUpdate, XPGrant
from tradejournal.gamification.levels import TraderLevel, detect_level_up
from tradejournal.gamification.streaks import Streak, advance_streak
from tradejournal.partners.accountability import PartnerUpdate, evaluate_partner_rules, mirror_events
from tradejournal.partners.models import PartnerRelationship
from tradejournal.partners.shared import SharedChallenge, SharedEvaluation, evaluate_shared_challenge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyOutcome:
    trader_id: str
    previous_xp: int
    total_xp: int
    streak_update: StreakUpdate | None
    challenges: tuple[Evaluation, ...] = ()
    shared_challenges: tuple[SharedEvaluation, ...] = ()
    level_up: TraderLevel | None = None
    partner: PartnerUpdate | None = None
    mirrored: tuple[RelationshipEvent, ...] = ()

    @property
    def grants(self) -> tuple[XPGrant, ...]:
        """Every XP grant to commit, including the partner's share of joint rewards."""
        own = [g for e in self.challenges for g in e.grants]
        shared = [g for e in self.shared_challenges for g in e.grants]
        return tuple(own + shared)

    @property
    def transitions(self) -> tuple[ChallengeTransition, ...]:
        own = [t for e in self.challenges for t in e.transitions]
        shared = [t for e in self.shared_challenges for t in e.transitions]
        return tuple(own + shared)

    @property
    def relationship_events(self) -> tuple[RelationshipEvent, ...]:
        partner_events = self.partner.events if self.partner is not None else ()
        return tuple(partner_events) + self.mirrored

    @property
    def completed(self) -> tuple[Challenge, ...]:
        return tuple(
            e.challenge for e in self.challenges
            if e.changed and e.challenge.state is ChallengeState.COMPLETED
        )


def _merge(first: SharedEvaluation, second: SharedEvaluation) -> SharedEvaluation:
    return SharedEvaluation(
        shared=second.shared,
        transitions=first.transitions + second.transitions,
        grants=first.grants + second.grants,
    )


def process_daily_activity(
    trader_id: str,
    total_xp: int,
    streak: Streak,
    activity: DailyActivity,
    now: datetime,
    history: Sequence[DailyActivity] = (),
    challenges: Sequence[Challenge] = (),
    relationship: PartnerRelationship | None = None,
    shared_challenges: Sequence[SharedChallenge] = (),
    partner_history: Sequence[DailyActivity] = (),
    notify_violator: bool = False,
) -> DailyOutcome:
    """Evaluate one day of journal activity for a trader.

    history holds the trader's earlier days; activity replaces any record for
    the same day. partner_history is only used to evaluate shared challenges.
    A day before the streak's last qualifying day still runs through
    challenges and partner rules but leaves the streak alone.
    """
    days = [d for d in history if d.day != activity.day] + [activity]

    next_streak = streak
    last = streak.last_qualifying_date
    if last is not None and activity.day < last:
        logger.info("Backfilled day %s for trader %s, streak stays at %s", activity.day, trader_id, last)
    else:
        next_streak = advance_streak(streak, activity.day, activity.is_qualifying)
    streak_update = StreakUpdate(trader_id, next_streak) if next_streak != streak else None

    evaluations = tuple(
        evaluate_challenge(challenge, ActivitySnapshot.for_period(challenge.period, days), now)
        for challenge in challenges
        if challenge.trader_id == trader_id
    )

    shared_results: dict[str, SharedEvaluation] = {}
    if relationship is not None:
        partner_id = relationship.counterpart(trader_id)
        for shared in shared_challenges:
            if shared.relationship_id != relationship.id:
                continue
            snapshots = {
                trader_id: ActivitySnapshot.for_period(shared.period, days),
                partner_id: ActivitySnapshot.for_period(shared.period, partner_history),
            }
            shared_results[shared.id] = evaluate_shared_challenge(shared, snapshots, now)

    own_xp = sum(g.amount for e in evaluations for g in e.grants)
    own_xp += sum(
        g.amount for e in shared_results.values() for g in e.grants if g.trader_id == trader_id
    )
    new_xp = total_xp + own_xp
    level_up = detect_level_up(total_xp, new_xp)
    if level_up is not None:
        logger.info("Trader %s reached level %d (%s)", trader_id, level_up.level, level_up.title)

    partner_update = None
    mirrored: tuple[RelationshipEvent, ...] = ()
    if relationship is not None:
        partner_update = evaluate_partner_rules(
            relationship,
            trader_id,
            activity,
            now,
            shared_challenges=[e.shared for e in shared_results.values()],
            notify_violator=notify_violator,
        )
        for penalized in partner_update.shared_challenges:
            if penalized.changed:
                shared_results[penalized.shared.id] = _merge(shared_results[penalized.shared.id], penalized)

        completed = [
            e.challenge for e in evaluations
            if e.changed and e.challenge.state is ChallengeState.COMPLETED
        ]
        mirrored = mirror_events(partner_update.relationship, trader_id, level_up, completed)

    return DailyOutcome(
        trader_id=trader_id,
        previous_xp=total_xp,
        total_xp=new_xp,
        streak_update=streak_update,
        challenges=evaluations,
        shared_challenges=tuple(shared_results.values()),
        level_up=level_up,
        partner=partner_update,
        mirrored=mirrored,
    )
