from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from . import audit
from .auth import AdminCapability, require_admin
from .deadlines import DeadlinePolicy, ensure_episode_unlocked, ensure_unlocked, governing_deadline
from .errors import ValidationError
from .leagues import (
    ensure_league_member,
    ensure_target_member,
    get_league_contestant_or_raise,
    get_league_episode_or_raise,
    list_members,
)
from .lock import as_utc, is_locked
from .models import Contestant, VotePrediction, WinnerPick
from .schemas import VoteAllocationIn

VOTE_TOTAL = 10
WINNER_PICK_DEADLINE_POLICY = DeadlinePolicy.NEAREST_FUTURE


@dataclass
class MemberWinnerPick:
    user_id: int
    username: str
    contestant_id: int | None = None
    name: str | None = None


@dataclass
class MemberVotes:
    user_id: int
    username: str
    allocations: list[tuple[int, str, int]] = field(default_factory=list)


def get_winner_pick(
    db: Session, league_id: int, user_id: int, now: datetime | None = None
) -> tuple[WinnerPick | None, Contestant | None, bool, datetime | None]:
    ensure_league_member(db, league_id, user_id)
    row = db.execute(
        select(WinnerPick, Contestant)
        .join(Contestant, Contestant.id == WinnerPick.contestant_id)
        .where(WinnerPick.league_id == league_id, WinnerPick.user_id == user_id)
    ).first()
    lock_at = governing_deadline(db, league_id, WINNER_PICK_DEADLINE_POLICY, now=now)
    locked = lock_at is not None and is_locked(lock_at, now)
    if row is None:
        return None, None, locked, lock_at
    return row[0], row[1], locked, lock_at


def list_winner_picks(db: Session, league_id: int) -> list[MemberWinnerPick]:
    picks = {
        int(user_id): (int(contestant_id), name)
        for user_id, contestant_id, name in db.execute(
            select(WinnerPick.user_id, WinnerPick.contestant_id, Contestant.name)
            .join(Contestant, Contestant.id == WinnerPick.contestant_id)
            .where(WinnerPick.league_id == league_id)
        ).all()
    }
    result = []
    for user_id, username in list_members(db, league_id):
        contestant_id, name = picks.get(user_id, (None, None))
        result.append(MemberWinnerPick(user_id=user_id, username=username, contestant_id=contestant_id, name=name))
    return result


def _replace_winner_pick(db: Session, league_id: int, user_id: int, contestant_id: int) -> WinnerPick:
    get_league_contestant_or_raise(db, league_id, contestant_id)
    db.execute(delete(WinnerPick).where(WinnerPick.league_id == league_id, WinnerPick.user_id == user_id))
    pick = WinnerPick(league_id=league_id, user_id=user_id, contestant_id=contestant_id)
    db.add(pick)
    db.commit()
    return pick


def set_winner_pick(
    db: Session, league_id: int, user_id: int, contestant_id: int, now: datetime | None = None
) -> WinnerPick:
    ensure_league_member(db, league_id, user_id)
    ensure_unlocked(
        db,
        league_id,
        WINNER_PICK_DEADLINE_POLICY,
        actor_user_id=user_id,
        entity_type="winner_pick",
        operation="set",
        now=now,
        metadata={"contestantId": contestant_id},
    )
    pick = _replace_winner_pick(db, league_id, user_id, contestant_id)

    audit.log_audit(
        db,
        actor_user_id=user_id,
        action_type=audit.WINNER_PICK_CREATE,
        entity_type="winner_pick",
        entity_id=pick.id,
        metadata={"leagueId": league_id, "contestantId": contestant_id},
    )
    return pick


def admin_set_winner_pick(
    db: Session,
    admin: AdminCapability,
    league_id: int,
    user_id: int,
    contestant_id: int,
    now: datetime | None = None,
) -> WinnerPick:
    """Set another user's winner pick. Not subject to the weekly deadline."""
    require_admin(admin, now)
    ensure_target_member(db, league_id, user_id)
    pick = _replace_winner_pick(db, league_id, user_id, contestant_id)

    audit.log_audit(
        db,
        actor_user_id=admin.user_id,
        action_type=audit.ADMIN_WINNER_PICK_SET,
        entity_type="winner_pick",
        entity_id=pick.id,
        metadata={"leagueId": league_id, "userId": user_id, "contestantId": contestant_id},
    )
    return pick


def _vote_rows(db: Session, league_id: int, episode_id: int, user_id: int | None = None):
    stmt = (
        select(VotePrediction.user_id, VotePrediction.contestant_id, Contestant.name, VotePrediction.votes)
        .join(Contestant, Contestant.id == VotePrediction.contestant_id)
        .where(VotePrediction.league_id == league_id, VotePrediction.episode_id == episode_id)
        .order_by(VotePrediction.contestant_id)
    )
    if user_id is not None:
        stmt = stmt.where(VotePrediction.user_id == user_id)
    return db.execute(stmt).all()


def get_votes(
    db: Session, league_id: int, user_id: int, episode_id: int, now: datetime | None = None
) -> tuple[list[tuple[int, str, int]], bool, datetime]:
    ensure_league_member(db, league_id, user_id)
    episode = get_league_episode_or_raise(db, league_id, episode_id)
    lock_at = as_utc(episode.lock_at)
    allocations = [
        (int(contestant_id), name, int(votes))
        for _user_id, contestant_id, name, votes in _vote_rows(db, league_id, episode_id, user_id)
    ]
    return allocations, is_locked(lock_at, now), lock_at


def list_episode_votes(db: Session, league_id: int, episode_id: int) -> list[MemberVotes]:
    get_league_episode_or_raise(db, league_id, episode_id)
    by_user: dict[int, list[tuple[int, str, int]]] = {}
    for user_id, contestant_id, name, votes in _vote_rows(db, league_id, episode_id):
        by_user.setdefault(int(user_id), []).append((int(contestant_id), name, int(votes)))
    return [
        MemberVotes(user_id=user_id, username=username, allocations=by_user.get(user_id, []))
        for user_id, username in list_members(db, league_id)
    ]


def _replace_votes(
    db: Session,
    league_id: int,
    user_id: int,
    episode_id: int,
    allocations: Sequence[VoteAllocationIn],
) -> list[VotePrediction]:
    total = sum(allocation.votes for allocation in allocations)
    if total != VOTE_TOTAL:
        raise ValidationError(f"Total votes must equal {VOTE_TOTAL}")
    league_contestants = set(
        db.execute(select(Contestant.id).where(Contestant.league_id == league_id)).scalars()
    )
    for allocation in allocations:
        if allocation.contestant_id not in league_contestants:
            raise ValidationError(f"Contestant {allocation.contestant_id} not in league")

    db.execute(
        delete(VotePrediction).where(
            VotePrediction.league_id == league_id,
            VotePrediction.user_id == user_id,
            VotePrediction.episode_id == episode_id,
        )
    )
    votes_by_contestant: dict[int, int] = {}
    for allocation in allocations:
        votes_by_contestant[allocation.contestant_id] = (
            votes_by_contestant.get(allocation.contestant_id, 0) + allocation.votes
        )
    rows = [
        VotePrediction(
            league_id=league_id,
            user_id=user_id,
            episode_id=episode_id,
            contestant_id=contestant_id,
            votes=votes,
        )
        for contestant_id, votes in votes_by_contestant.items()
        if votes > 0
    ]
    db.add_all(rows)
    db.commit()
    return rows


def submit_votes(
    db: Session,
    league_id: int,
    user_id: int,
    episode_id: int,
    allocations: Sequence[VoteAllocationIn],
    now: datetime | None = None,
) -> list[VotePrediction]:
    """Replace the user's vote-out allocation for one episode."""
    ensure_league_member(db, league_id, user_id)
    episode = get_league_episode_or_raise(db, league_id, episode_id)
    ensure_episode_unlocked(
        db,
        episode,
        actor_user_id=user_id,
        entity_type="vote_predictions",
        operation="update",
        now=now,
    )
    rows = _replace_votes(db, league_id, user_id, episode_id, allocations)

    audit.log_audit(
        db,
        actor_user_id=user_id,
        action_type=audit.VOTE_PREDICTIONS_UPDATE,
        entity_type="vote_predictions",
        entity_id=episode_id,
        metadata={"leagueId": league_id, "episodeId": episode_id},
    )
    return rows


def admin_set_votes(
    db: Session,
    admin: AdminCapability,
    league_id: int,
    user_id: int,
    episode_id: int,
    allocations: Sequence[VoteAllocationIn],
    now: datetime | None = None,
) -> list[VotePrediction]:
    require_admin(admin, now)
    ensure_target_member(db, league_id, user_id)
    get_league_episode_or_raise(db, league_id, episode_id)
    rows = _replace_votes(db, league_id, user_id, episode_id, allocations)

    audit.log_audit(
        db,
        actor_user_id=admin.user_id,
        action_type=audit.ADMIN_VOTE_PREDICTIONS_SET,
        entity_type="vote_predictions",
        entity_id=episode_id,
        metadata={"leagueId": league_id, "episodeId": episode_id, "userId": user_id},
    )
    return rows
