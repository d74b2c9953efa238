import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import AuditLog

logger = logging.getLogger(__name__)

# Action types emitted by the core.
TEAM_ADD_CONTESTANT = "team.add_contestant"
TEAM_REMOVE_CONTESTANT = "team.remove_contestant"
WINNER_PICK_CREATE = "winner_pick.create"
VOTE_PREDICTIONS_UPDATE = "vote_predictions.update"
TRADE_PROPOSE = "trade.propose"
TRADE_ACCEPT = "trade.accept"
TRADE_REJECT = "trade.reject"
TRADE_CANCEL = "trade.cancel"
ATTEMPT_MODIFY_LOCKED = "attempt_modify_locked"
LEAGUE_CREATE = "league.create"
LEAGUE_MEMBER_ADD = "league.member_add"
CONTESTANT_CREATE = "contestant.create"
EPISODE_CREATE = "episode.create"
SCORING_EVENT_CREATE = "scoring_event.create"
LEDGER_CREDIT = "ledger.credit"
USER_CREATE = "user.create"
USER_UPDATE = "admin.user.update"
USER_SESSION_ISSUE = "admin.user.session_issue"
CONTESTANT_UPDATE = "contestant.update"
ADMIN_ROSTER_ADD = "admin.roster.add"
ADMIN_ROSTER_REMOVE = "admin.roster.remove"
ADMIN_WINNER_PICK_SET = "admin.winner_pick.set"
ADMIN_VOTE_PREDICTIONS_SET = "admin.vote_predictions.set"

ACTIVITY_DEFAULT_LIMIT = 20
ACTIVITY_MAX_LIMIT = 50


def log_audit(
    db: Session,
    actor_user_id: int | None,
    action_type: str,
    entity_type: str,
    entity_id: int | None = None,
    metadata: dict | None = None,
    before: dict | None = None,
    after: dict | None = None,
) -> None:
    """
    Record an audit event in its own commit.

    Call only after the primary mutation has been committed (or when nothing
    was written). A failure here is logged and rolled back on its own; it never
    undoes the mutation being audited.
    """
    db.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            before_json=before,
            after_json=after,
            metadata_json=metadata,
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Audit write failed: action=%s entity=%s:%s actor=%s",
            action_type,
            entity_type,
            entity_id,
            actor_user_id,
        )


def activity_for_user(db: Session, user_id: int, limit: int = ACTIVITY_DEFAULT_LIMIT) -> list[AuditLog]:
    """The user's own audit trail, newest first. `limit` is clamped to 1..50."""
    limit = min(max(1, limit), ACTIVITY_MAX_LIMIT)
    return list(
        db.execute(
            select(AuditLog)
            .where(AuditLog.actor_user_id == user_id)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(limit)
        ).scalars()
    )
