from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from fantasy_survivor.audit import ADMIN_ROSTER_ADD, ADMIN_ROSTER_REMOVE, ATTEMPT_MODIFY_LOCKED, TEAM_ADD_CONTESTANT
from fantasy_survivor.errors import ForbiddenError, LockedError, NotFoundError, ValidationError
from fantasy_survivor.models import AuditLog, Contestant, League
from fantasy_survivor.rosters import (
    MAX_ROSTER,
    add_contestant,
    admin_add_contestant,
    admin_remove_contestant,
    list_league_rosters,
    lock_roster,
    remove_contestant,
    roster_lock_queries,
    roster_status,
)
from shared import (
    AFTER_EPISODE_1_LOCK,
    EPISODE_1_AIR,
    MOCK_NOW,
    LeagueContext,
    add_episode,
    admin_capability,
    give,
    roster_ids,
)


def test_add_up_to_max(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    for contestant in c[:MAX_ROSTER]:
        add_contestant(db, ctx.league.id, ctx.alice.id, contestant.id, now=MOCK_NOW)

    assert roster_ids(db, ctx.league, ctx.alice) == {x.id for x in c[:MAX_ROSTER]}
    with pytest.raises(ValidationError):
        add_contestant(db, ctx.league.id, ctx.alice.id, c[MAX_ROSTER].id, now=MOCK_NOW)

    actions = db.execute(select(AuditLog.action_type)).scalars().all()
    assert actions.count(TEAM_ADD_CONTESTANT) == MAX_ROSTER


def test_contestant_on_one_roster_per_league(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    add_contestant(db, ctx.league.id, ctx.alice.id, c[0].id, now=MOCK_NOW)

    with pytest.raises(ValidationError):
        add_contestant(db, ctx.league.id, ctx.bob.id, c[0].id, now=MOCK_NOW)
    assert roster_ids(db, ctx.league, ctx.bob) == set()


def test_contestant_from_another_league(db: Session, ctx: LeagueContext) -> None:
    other = League(name="Other")
    db.add(other)
    db.flush()
    stranger = Contestant(league_id=other.id, name="Stranger")
    db.add(stranger)
    db.commit()

    with pytest.raises(NotFoundError):
        add_contestant(db, ctx.league.id, ctx.alice.id, stranger.id, now=MOCK_NOW)


def test_non_member_cannot_edit(db: Session, ctx: LeagueContext) -> None:
    with pytest.raises(NotFoundError):
        add_contestant(db, ctx.league.id, ctx.admin.id, ctx.contestants[0].id, now=MOCK_NOW)


def test_remove_respects_minimum(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    give(db, ctx.league, ctx.alice, c[0], c[1], c[2])

    remove_contestant(db, ctx.league.id, ctx.alice.id, c[2].id, now=MOCK_NOW)
    assert roster_ids(db, ctx.league, ctx.alice) == {c[0].id, c[1].id}

    with pytest.raises(ValidationError):
        remove_contestant(db, ctx.league.id, ctx.alice.id, c[1].id, now=MOCK_NOW)
    with pytest.raises(NotFoundError):
        remove_contestant(db, ctx.league.id, ctx.alice.id, c[4].id, now=MOCK_NOW)


def test_roster_locks_after_latest_episode(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    add_episode(db, ctx, 1, EPISODE_1_AIR)

    _slots, locked, _lock_at = roster_status(db, ctx.league.id, ctx.alice.id, now=MOCK_NOW)
    assert not locked
    slots, locked, lock_at = roster_status(db, ctx.league.id, ctx.alice.id, now=AFTER_EPISODE_1_LOCK)
    assert locked
    assert lock_at == EPISODE_1_AIR
    assert slots == []

    with pytest.raises(LockedError):
        add_contestant(db, ctx.league.id, ctx.alice.id, c[0].id, now=AFTER_EPISODE_1_LOCK)
    assert roster_ids(db, ctx.league, ctx.alice) == set()

    [attempt] = db.execute(select(AuditLog).where(AuditLog.action_type == ATTEMPT_MODIFY_LOCKED)).scalars()
    assert attempt.actor_user_id == ctx.alice.id
    assert attempt.metadata_json["contestantId"] == c[0].id


def test_roster_status_lists_names(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    give(db, ctx.league, ctx.bob, c[4], c[3])

    slots, locked, lock_at = roster_status(db, ctx.league.id, ctx.bob.id, now=MOCK_NOW)
    assert [slot.name for slot in slots] == ["Q", "Dee"]
    assert not locked
    assert lock_at is None


def test_roster_lock_selects_rows_for_update(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    give(db, ctx.league, ctx.alice, c[0], c[1])

    for query in roster_lock_queries(ctx.league.id, ctx.alice.id):
        sql = str(query.compile(dialect=postgresql.dialect()))
        assert sql.rstrip().endswith("FOR UPDATE")
        assert "count(" not in sql.lower()
    assert lock_roster(db, ctx.league.id, ctx.alice.id) == 2
    assert lock_roster(db, ctx.league.id, ctx.bob.id) == 0


def test_admin_edits_another_roster_after_lock(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    add_episode(db, ctx, 1, EPISODE_1_AIR)
    give(db, ctx.league, ctx.bob, c[0], c[1])
    admin = admin_capability(ctx, expires_at=AFTER_EPISODE_1_LOCK + timedelta(minutes=10))

    admin_add_contestant(db, admin, ctx.league.id, ctx.bob.id, c[2].id, now=AFTER_EPISODE_1_LOCK)
    admin_remove_contestant(db, admin, ctx.league.id, ctx.bob.id, c[0].id, now=AFTER_EPISODE_1_LOCK)
    assert roster_ids(db, ctx.league, ctx.bob) == {c[1].id, c[2].id}

    rows = db.execute(
        select(AuditLog).where(AuditLog.entity_type == "team").order_by(AuditLog.id)
    ).scalars().all()
    assert [row.action_type for row in rows] == [ADMIN_ROSTER_ADD, ADMIN_ROSTER_REMOVE]
    assert rows[0].metadata_json["userId"] == ctx.bob.id


def test_admin_roster_edits_keep_bounds(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    give(db, ctx.league, ctx.bob, c[0], c[1], c[2])
    admin = admin_capability(ctx)

    with pytest.raises(ValidationError):
        admin_add_contestant(db, admin, ctx.league.id, ctx.bob.id, c[3].id, now=MOCK_NOW)
    admin_remove_contestant(db, admin, ctx.league.id, ctx.bob.id, c[2].id, now=MOCK_NOW)
    with pytest.raises(ValidationError):
        admin_remove_contestant(db, admin, ctx.league.id, ctx.bob.id, c[1].id, now=MOCK_NOW)
    assert roster_ids(db, ctx.league, ctx.bob) == {c[0].id, c[1].id}


def test_admin_roster_edits_need_live_capability_and_member(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    expired = admin_capability(ctx, expires_at=MOCK_NOW - timedelta(minutes=1))

    with pytest.raises(ForbiddenError):
        admin_add_contestant(db, expired, ctx.league.id, ctx.bob.id, c[0].id, now=MOCK_NOW)
    with pytest.raises(NotFoundError):
        admin_add_contestant(db, admin_capability(ctx), ctx.league.id, ctx.admin.id, c[0].id, now=MOCK_NOW)
    assert roster_ids(db, ctx.league, ctx.bob) == set()


def test_list_league_rosters(db: Session, ctx: LeagueContext) -> None:
    c = ctx.contestants
    give(db, ctx.league, ctx.alice, c[0], c[1])
    give(db, ctx.league, ctx.carol, c[5])

    rosters = list_league_rosters(db, ctx.league.id)
    assert [member.username for member in rosters] == ["alice", "bob", "carol"]
    assert [[slot.name for slot in member.roster] for member in rosters] == [["Ozzy", "Cirie"], [], ["Joe"]]
