from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit
from .auth import AdminCapability, require_admin
from .errors import NotFoundError, ValidationError
from .lock import as_utc, lock_time_for_week
from .models import Contestant, ContestantStatus, Episode, League, LeagueMember, User


def is_league_member(db: Session, league_id: int, user_id: int) -> bool:
    member = db.execute(
        select(LeagueMember).where(
            LeagueMember.league_id == league_id,
            LeagueMember.user_id == user_id,
        )
    ).scalar_one_or_none()
    return member is not None


def ensure_league_member(db: Session, league_id: int, user_id: int) -> None:
    # Non-members get the same answer as a missing league.
    if not is_league_member(db, league_id, user_id):
        raise NotFoundError("League not found")


def get_league_or_raise(db: Session, league_id: int) -> League:
    league = db.get(League, league_id)
    if league is None:
        raise NotFoundError("League not found")
    return league


def get_league_contestant_or_raise(db: Session, league_id: int, contestant_id: int) -> Contestant:
    contestant = db.execute(
        select(Contestant).where(Contestant.id == contestant_id, Contestant.league_id == league_id)
    ).scalar_one_or_none()
    if contestant is None:
        raise NotFoundError("Contestant not found")
    return contestant


def get_league_episode_or_raise(db: Session, league_id: int, episode_id: int) -> Episode:
    episode = db.execute(
        select(Episode).where(Episode.id == episode_id, Episode.league_id == league_id)
    ).scalar_one_or_none()
    if episode is None:
        raise NotFoundError("Episode not found")
    return episode


def list_leagues_for_user(db: Session, user_id: int) -> list[League]:
    return list(
        db.execute(
            select(League)
            .join(LeagueMember, LeagueMember.league_id == League.id)
            .where(LeagueMember.user_id == user_id)
            .order_by(League.id)
        ).scalars()
    )


def list_contestants(db: Session, league_id: int) -> list[Contestant]:
    return list(
        db.execute(
            select(Contestant).where(Contestant.league_id == league_id).order_by(Contestant.id)
        ).scalars()
    )


def list_episodes(db: Session, league_id: int) -> list[Episode]:
    return list(
        db.execute(
            select(Episode).where(Episode.league_id == league_id).order_by(Episode.episode_number)
        ).scalars()
    )


def create_league(db: Session, actor_user_id: int, name: str, season_name: str | None = None) -> League:
    league = League(name=name.strip(), season_name=season_name)
    db.add(league)
    db.commit()
    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.LEAGUE_CREATE,
        entity_type="league",
        entity_id=league.id,
        after={"name": league.name, "seasonName": league.season_name},
    )
    return league


def add_member(db: Session, actor_user_id: int, league_id: int, user_id: int) -> LeagueMember:
    get_league_or_raise(db, league_id)
    if db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    if is_league_member(db, league_id, user_id):
        raise ValidationError("User is already a member of this league")

    member = LeagueMember(league_id=league_id, user_id=user_id)
    db.add(member)
    db.commit()
    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.LEAGUE_MEMBER_ADD,
        entity_type="league",
        entity_id=league_id,
        metadata={"userId": user_id},
    )
    return member


def create_contestant(db: Session, actor_user_id: int, league_id: int, name: str) -> Contestant:
    get_league_or_raise(db, league_id)
    contestant = Contestant(league_id=league_id, name=name.strip())
    db.add(contestant)
    db.commit()
    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.CONTESTANT_CREATE,
        entity_type="contestant",
        entity_id=contestant.id,
        after={"leagueId": league_id, "name": contestant.name},
    )
    return contestant


def create_episode(
    db: Session,
    actor_user_id: int,
    league_id: int,
    episode_number: int,
    air_date: datetime,
    title: str | None = None,
) -> Episode:
    """Create an episode. lock_at is derived from air_date here and never set directly."""
    get_league_or_raise(db, league_id)
    air_date_utc = as_utc(air_date)
    episode = Episode(
        league_id=league_id,
        episode_number=episode_number,
        title=title,
        air_date=air_date_utc,
        lock_at=lock_time_for_week(air_date_utc),
    )
    db.add(episode)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError(f"Episode {episode_number} already exists in this league") from exc

    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.EPISODE_CREATE,
        entity_type="episode",
        entity_id=episode.id,
        after={
            "episodeNumber": episode.episode_number,
            "airDate": air_date_utc.isoformat(),
            "lockAt": as_utc(episode.lock_at).isoformat(),
        },
    )
    return episode


def list_members(db: Session, league_id: int) -> list[tuple[int, str]]:
    rows = db.execute(
        select(User.id, User.username)
        .join(LeagueMember, LeagueMember.user_id == User.id)
        .where(LeagueMember.league_id == league_id)
        .order_by(User.username)
    ).all()
    return [(int(user_id), username) for user_id, username in rows]


def ensure_target_member(db: Session, league_id: int, user_id: int) -> None:
    """Membership check for admin actions on another user's behalf."""
    get_league_or_raise(db, league_id)
    if not is_league_member(db, league_id, user_id):
        raise NotFoundError("User not in league")


def update_contestant(
    db: Session,
    admin: AdminCapability,
    contestant_id: int,
    status: ContestantStatus | None = None,
    eliminated_episode_id: int | None = None,
    now: datetime | None = None,
) -> Contestant:
    """
    Change a contestant's status. Marking one active again clears the
    elimination episode unless a new one is given.
    """
    require_admin(admin, now)
    contestant = db.get(Contestant, contestant_id)
    if contestant is None:
        raise NotFoundError("Contestant not found")
    if eliminated_episode_id is not None:
        get_league_episode_or_raise(db, contestant.league_id, eliminated_episode_id)

    before = {"status": contestant.status, "eliminatedEpisodeId": contestant.eliminated_episode_id}
    if status is not None:
        contestant.status = status.value
        if status == ContestantStatus.ACTIVE and eliminated_episode_id is None:
            contestant.eliminated_episode_id = None
    if eliminated_episode_id is not None:
        contestant.eliminated_episode_id = eliminated_episode_id
    db.commit()

    audit.log_audit(
        db,
        actor_user_id=admin.user_id,
        action_type=audit.CONTESTANT_UPDATE,
        entity_type="contestant",
        entity_id=contestant.id,
        before=before,
        after={"status": contestant.status, "eliminatedEpisodeId": contestant.eliminated_episode_id},
    )
    return contestant
