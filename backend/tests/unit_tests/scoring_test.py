import pytest
from sqlalchemy.orm import Session

from fantasy_survivor.errors import NotFoundError, ValidationError
from fantasy_survivor.ledger import leaderboard, list_transactions, user_score
from fantasy_survivor.models import LedgerReason
from fantasy_survivor.predictions import set_winner_pick, submit_votes
from fantasy_survivor.schemas import VoteAllocationIn
from fantasy_survivor.scoring import (
    DEFAULT_SCORING_RULES,
    apply_vote_points,
    award_winner_picks,
    ensure_default_scoring_rules,
    list_scoring_rules,
    record_scoring_event,
    update_scoring_rule,
)
from shared import EPISODE_1_AIR, MOCK_NOW, LeagueContext, add_episode, give


@pytest.fixture
def scored(db: Session, ctx: LeagueContext) -> LeagueContext:
    ensure_default_scoring_rules(db, ctx.league.id)
    return ctx


def test_default_rules_are_idempotent(db: Session, scored: LeagueContext) -> None:
    rules = ensure_default_scoring_rules(db, scored.league.id)
    assert len(rules) == len(DEFAULT_SCORING_RULES)

    immunity = next(rule for rule in rules if rule.action_type == "individual_immunity")
    update_scoring_rule(db, immunity.id, 12)
    ensure_default_scoring_rules(db, scored.league.id)
    points = {rule.action_type: rule.points for rule in list_scoring_rules(db, scored.league.id)}
    assert points["individual_immunity"] == 12


def test_update_missing_rule(db: Session, scored: LeagueContext) -> None:
    with pytest.raises(NotFoundError):
        update_scoring_rule(db, 9999, 1)


def test_scoring_event_credits_current_owner(db: Session, scored: LeagueContext) -> None:
    ctx = scored
    c = ctx.contestants
    give(db, ctx.league, ctx.alice, c[0], c[1])
    episode = add_episode(db, ctx, 1, EPISODE_1_AIR)

    _event, awarded = record_scoring_event(
        db, ctx.admin.id, ctx.league.id, episode.id, "individual_immunity", c[0].id
    )
    _event, unowned = record_scoring_event(db, ctx.admin.id, ctx.league.id, episode.id, "idol_found", c[5].id)
    event, no_rule = record_scoring_event(db, ctx.admin.id, ctx.league.id, episode.id, "fire_making", c[1].id)

    assert (awarded, unowned, no_rule) == (10, 0, 0)
    assert event.id is not None
    assert user_score(db, ctx.league.id, ctx.alice.id) == 10
    assert [row.reason for row in list_transactions(db, ctx.league.id)] == [LedgerReason.SCORING_EVENT.value]


def test_vote_points_paid_once(db: Session, scored: LeagueContext) -> None:
    ctx = scored
    c = ctx.contestants
    episode = add_episode(db, ctx, 1, EPISODE_1_AIR)
    submit_votes(
        db,
        ctx.league.id,
        ctx.alice.id,
        episode.id,
        [VoteAllocationIn(contestant_id=c[0].id, votes=7), VoteAllocationIn(contestant_id=c[1].id, votes=3)],
        now=MOCK_NOW,
    )
    submit_votes(
        db, ctx.league.id, ctx.bob.id, episode.id, [VoteAllocationIn(contestant_id=c[2].id, votes=10)], now=MOCK_NOW
    )

    assert apply_vote_points(db, ctx.admin.id, ctx.league.id, episode.id, [c[0].id]) == 1
    assert apply_vote_points(db, ctx.admin.id, ctx.league.id, episode.id, [c[0].id]) == 0
    assert user_score(db, ctx.league.id, ctx.alice.id) == 21
    assert user_score(db, ctx.league.id, ctx.bob.id) == 0


def test_winner_placements(db: Session, scored: LeagueContext) -> None:
    ctx = scored
    c = ctx.contestants
    add_episode(db, ctx, 1, EPISODE_1_AIR)
    set_winner_pick(db, ctx.league.id, ctx.alice.id, c[0].id, now=MOCK_NOW)
    set_winner_pick(db, ctx.league.id, ctx.bob.id, c[2].id, now=MOCK_NOW)
    set_winner_pick(db, ctx.league.id, ctx.carol.id, c[4].id, now=MOCK_NOW)

    with pytest.raises(ValidationError):
        award_winner_picks(db, ctx.admin.id, ctx.league.id, {c[0].id: 4})

    placements = {c[0].id: 1, c[2].id: 2}
    assert award_winner_picks(db, ctx.admin.id, ctx.league.id, placements) == 2
    assert award_winner_picks(db, ctx.admin.id, ctx.league.id, placements) == 0
    assert user_score(db, ctx.league.id, ctx.alice.id) == 50
    assert user_score(db, ctx.league.id, ctx.bob.id) == 25
    assert user_score(db, ctx.league.id, ctx.carol.id) == 0


def test_leaderboard_breakdown_and_order(db: Session, scored: LeagueContext) -> None:
    ctx = scored
    c = ctx.contestants
    give(db, ctx.league, ctx.bob, c[2], c[3])
    episode = add_episode(db, ctx, 1, EPISODE_1_AIR)
    record_scoring_event(db, ctx.admin.id, ctx.league.id, episode.id, "tribe_reward_win", c[2].id)
    record_scoring_event(db, ctx.admin.id, ctx.league.id, episode.id, "eliminated", c[3].id)
    set_winner_pick(db, ctx.league.id, ctx.carol.id, c[0].id, now=MOCK_NOW)
    award_winner_picks(db, ctx.admin.id, ctx.league.id, {c[0].id: 3})

    rows = leaderboard(db, ctx.league.id)

    assert [(row.username, row.total) for row in rows] == [("carol", 15), ("alice", 0), ("bob", 0)]
    bob = rows[2]
    assert bob.breakdown[LedgerReason.SCORING_EVENT.value] == 0
    assert set(bob.breakdown) == {reason.value for reason in LedgerReason}
    assert rows[0].breakdown[LedgerReason.WINNER_PICK.value] == 15
