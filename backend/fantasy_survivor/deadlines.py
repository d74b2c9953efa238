"""
Governing-deadline resolution.

Different mutations are gated by different episodes' locks, so every caller
names the policy it means instead of running its own query:

* ``MOST_RECENT``: the league episode with the latest air date (roster add/remove).
* ``NEAREST_FUTURE``: the earliest lock strictly after now (winner pick, trades).

Vote predictions target one episode and are gated on that episode's own lock.
"""

import logging
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from .audit import ATTEMPT_MODIFY_LOCKED, log_audit
from .errors import LockedError
from .lock import as_utc, is_locked, utcnow
from .models import Episode

logger = logging.getLogger(__name__)


class DeadlinePolicy(str, Enum):
    NEAREST_FUTURE = "nearest_future"
    MOST_RECENT = "most_recent"


def governing_deadline(
    db: Session,
    league_id: int,
    policy: DeadlinePolicy,
    now: datetime | None = None,
) -> datetime | None:
    if policy == DeadlinePolicy.NEAREST_FUTURE:
        current = as_utc(now or utcnow())
        stmt = (
            select(Episode.lock_at)
            .where(Episode.league_id == league_id, Episode.lock_at > current)
            .order_by(Episode.lock_at.asc())
            .limit(1)
        )
    elif policy == DeadlinePolicy.MOST_RECENT:
        stmt = (
            select(Episode.lock_at)
            .where(Episode.league_id == league_id)
            .order_by(Episode.air_date.desc(), Episode.id.desc())
            .limit(1)
        )
    else:
        raise ValueError(f"Unknown deadline policy: {policy!r}")

    lock_at = db.execute(stmt).scalar_one_or_none()
    return as_utc(lock_at) if lock_at is not None else None


def reject_locked(
    db: Session,
    lock_at: datetime,
    *,
    actor_user_id: int | None,
    entity_type: str,
    operation: str,
    metadata: dict | None = None,
) -> None:
    logger.info(
        "Rejected %s on %s: locked since %s (actor=%s)",
        operation,
        entity_type,
        lock_at.isoformat(),
        actor_user_id,
    )
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=ATTEMPT_MODIFY_LOCKED,
        entity_type=entity_type,
        metadata={
            "reason": "episode_locked",
            "operation": operation,
            "lockAt": lock_at.isoformat(),
            **(metadata or {}),
        },
    )
    raise LockedError(f"Locked: this week's deadline passed at {lock_at.isoformat()}.")


def ensure_unlocked(
    db: Session,
    league_id: int,
    policy: DeadlinePolicy,
    *,
    actor_user_id: int | None,
    entity_type: str,
    operation: str,
    now: datetime | None = None,
    metadata: dict | None = None,
) -> datetime | None:
    """Raise LockedError if the league's governing deadline has passed. Returns the deadline."""
    lock_at = governing_deadline(db, league_id, policy, now=now)
    if lock_at is not None and is_locked(lock_at, now):
        reject_locked(
            db,
            lock_at,
            actor_user_id=actor_user_id,
            entity_type=entity_type,
            operation=operation,
            metadata={"leagueId": league_id, "policy": policy.value, **(metadata or {})},
        )
    return lock_at


def ensure_episode_unlocked(
    db: Session,
    episode: Episode,
    *,
    actor_user_id: int | None,
    entity_type: str,
    operation: str,
    now: datetime | None = None,
) -> datetime:
    lock_at = as_utc(episode.lock_at)
    if is_locked(lock_at, now):
        reject_locked(
            db,
            lock_at,
            actor_user_id=actor_user_id,
            entity_type=entity_type,
            operation=operation,
            metadata={"leagueId": episode.league_id, "episodeId": episode.id},
        )
    return lock_at
