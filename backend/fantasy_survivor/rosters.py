import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit
from .auth import AdminCapability, require_admin
from .deadlines import DeadlinePolicy, ensure_unlocked, governing_deadline
from .errors import NotFoundError, ValidationError
from .leagues import ensure_league_member, ensure_target_member, get_league_contestant_or_raise, list_members
from .lock import is_locked
from .models import Contestant, LeagueMember, Team

logger = logging.getLogger(__name__)

MIN_ROSTER = 2
MAX_ROSTER = 3

# Roster edits follow the latest-airing episode's lock, unlike trades and winner picks.
ROSTER_DEADLINE_POLICY = DeadlinePolicy.MOST_RECENT


@dataclass
class RosterSlot:
    id: int
    contestant_id: int
    name: str
    status: str


@dataclass
class MemberRoster:
    user_id: int
    username: str
    roster: list[RosterSlot] = field(default_factory=list)


def get_roster(db: Session, league_id: int, user_id: int) -> list[RosterSlot]:
    rows = db.execute(
        select(Team.id, Team.contestant_id, Contestant.name, Contestant.status)
        .join(Contestant, Contestant.id == Team.contestant_id)
        .where(Team.league_id == league_id, Team.user_id == user_id)
        .order_by(Team.contestant_id)
    ).all()
    return [
        RosterSlot(id=int(slot_id), contestant_id=int(contestant_id), name=name, status=status)
        for slot_id, contestant_id, name, status in rows
    ]


def roster_contestant_ids(db: Session, league_id: int, user_id: int) -> set[int]:
    return set(
        db.execute(
            select(Team.contestant_id).where(Team.league_id == league_id, Team.user_id == user_id)
        ).scalars()
    )


def roster_status(
    db: Session, league_id: int, user_id: int, now: datetime | None = None
) -> tuple[list[RosterSlot], bool, datetime | None]:
    ensure_league_member(db, league_id, user_id)
    lock_at = governing_deadline(db, league_id, ROSTER_DEADLINE_POLICY, now=now)
    locked = lock_at is not None and is_locked(lock_at, now)
    return get_roster(db, league_id, user_id), locked, lock_at


def list_league_rosters(db: Session, league_id: int) -> list[MemberRoster]:
    return [
        MemberRoster(user_id=user_id, username=username, roster=get_roster(db, league_id, user_id))
        for user_id, username in list_members(db, league_id)
    ]


def roster_size(db: Session, league_id: int, user_id: int) -> int:
    return int(
        db.execute(
            select(func.count()).select_from(Team).where(Team.league_id == league_id, Team.user_id == user_id)
        ).scalar_one()
    )


def roster_lock_queries(league_id: int, user_id: int) -> tuple[Select, Select]:
    member = (
        select(LeagueMember)
        .where(LeagueMember.league_id == league_id, LeagueMember.user_id == user_id)
        .with_for_update()
    )
    slots = select(Team.id).where(Team.league_id == league_id, Team.user_id == user_id).with_for_update()
    return member, slots


def lock_roster(db: Session, league_id: int, user_id: int) -> int:
    """
    Lock the member row and the user's roster rows, then return the roster size.

    The member row serializes concurrent adds, which have no existing row to lock.
    Rows are counted in Python since Postgres rejects FOR UPDATE with aggregates.
    """
    member, slots = roster_lock_queries(league_id, user_id)
    db.execute(member).scalar_one_or_none()
    return len(db.execute(slots).scalars().all())


def check_roster_bounds(user_id: int, before: int, after: int) -> None:
    """
    A change may not take a roster above MAX_ROSTER, nor shrink one that ends
    below MIN_ROSTER. Rosters still filling up after league setup may grow.
    """
    if after > MAX_ROSTER:
        raise ValidationError(f"Roster of user {user_id} would exceed {MAX_ROSTER} contestants")
    if after < MIN_ROSTER and after < before:
        raise ValidationError(f"Roster of user {user_id} would drop below {MIN_ROSTER} contestants")


def _insert_slot(
    db: Session, league_id: int, user_id: int, contestant_id: int, actor_user_id: int, action_type: str
) -> Team:
    if lock_roster(db, league_id, user_id) >= MAX_ROSTER:
        db.rollback()
        raise ValidationError(f"Roster already has maximum {MAX_ROSTER} contestants")
    get_league_contestant_or_raise(db, league_id, contestant_id)

    slot = Team(league_id=league_id, user_id=user_id, contestant_id=contestant_id)
    db.add(slot)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Contestant is already on a roster in this league") from exc

    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=action_type,
        entity_type="team",
        entity_id=slot.id,
        metadata={"leagueId": league_id, "userId": user_id, "contestantId": contestant_id},
    )
    return slot


def _delete_slot(
    db: Session, league_id: int, user_id: int, contestant_id: int, actor_user_id: int, action_type: str
) -> None:
    size = lock_roster(db, league_id, user_id)
    slot = db.execute(
        select(Team).where(Team.league_id == league_id, Team.user_id == user_id, Team.contestant_id == contestant_id)
    ).scalar_one_or_none()
    if slot is None:
        db.rollback()
        raise NotFoundError("Contestant not on roster")
    if size <= MIN_ROSTER:
        db.rollback()
        raise ValidationError(f"Roster must have at least {MIN_ROSTER} contestants")

    slot_id = slot.id
    db.delete(slot)
    db.commit()

    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=action_type,
        entity_type="team",
        entity_id=slot_id,
        metadata={"leagueId": league_id, "userId": user_id, "contestantId": contestant_id},
    )


def add_contestant(
    db: Session, league_id: int, user_id: int, contestant_id: int, now: datetime | None = None
) -> Team:
    ensure_league_member(db, league_id, user_id)
    ensure_unlocked(
        db,
        league_id,
        ROSTER_DEADLINE_POLICY,
        actor_user_id=user_id,
        entity_type="team",
        operation="add",
        now=now,
        metadata={"contestantId": contestant_id},
    )
    return _insert_slot(db, league_id, user_id, contestant_id, user_id, audit.TEAM_ADD_CONTESTANT)


def remove_contestant(
    db: Session, league_id: int, user_id: int, contestant_id: int, now: datetime | None = None
) -> None:
    ensure_league_member(db, league_id, user_id)
    ensure_unlocked(
        db,
        league_id,
        ROSTER_DEADLINE_POLICY,
        actor_user_id=user_id,
        entity_type="team",
        operation="remove",
        now=now,
        metadata={"contestantId": contestant_id},
    )
    _delete_slot(db, league_id, user_id, contestant_id, user_id, audit.TEAM_REMOVE_CONTESTANT)


def admin_add_contestant(
    db: Session,
    admin: AdminCapability,
    league_id: int,
    user_id: int,
    contestant_id: int,
    now: datetime | None = None,
) -> Team:
    """Add to another user's roster. Bounds apply; the weekly deadline does not."""
    require_admin(admin, now)
    ensure_target_member(db, league_id, user_id)
    return _insert_slot(db, league_id, user_id, contestant_id, admin.user_id, audit.ADMIN_ROSTER_ADD)


def admin_remove_contestant(
    db: Session,
    admin: AdminCapability,
    league_id: int,
    user_id: int,
    contestant_id: int,
    now: datetime | None = None,
) -> None:
    require_admin(admin, now)
    ensure_target_member(db, league_id, user_id)
    _delete_slot(db, league_id, user_id, contestant_id, admin.user_id, audit.ADMIN_ROSTER_REMOVE)
