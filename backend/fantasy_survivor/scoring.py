import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit
from .errors import NotFoundError, ValidationError
from .leagues import get_league_contestant_or_raise, get_league_episode_or_raise, get_league_or_raise
from .ledger import append_transaction
from .models import LedgerReason, LedgerTransaction, ScoringEvent, ScoringRule, Team, VotePrediction, WinnerPick

logger = logging.getLogger(__name__)

VOTE_CORRECT_ACTION = "vote_correct"
DEFAULT_VOTE_CORRECT_POINTS = 3

DEFAULT_SCORING_RULES: list[tuple[str, int]] = [
    ("tribe_reward_win", 5),
    ("tribe_immunity_win", 5),
    ("individual_immunity", 10),
    ("idol_found", 5),
    ("idol_played", 10),
    ("survived_tribal", 2),
    ("eliminated", -5),
    (VOTE_CORRECT_ACTION, DEFAULT_VOTE_CORRECT_POINTS),
    ("winner_placement_1", 50),
    ("winner_placement_2", 25),
    ("winner_placement_3", 15),
]


def already_credited_users(
    db: Session, league_id: int, reason: LedgerReason, reference_type: str, reference_id: int
) -> set[int]:
    return set(
        db.execute(
            select(LedgerTransaction.user_id).where(
                LedgerTransaction.league_id == league_id,
                LedgerTransaction.reason == reason.value,
                LedgerTransaction.reference_type == reference_type,
                LedgerTransaction.reference_id == reference_id,
            )
        ).scalars()
    )


def list_scoring_rules(db: Session, league_id: int) -> list[ScoringRule]:
    return list(
        db.execute(
            select(ScoringRule).where(ScoringRule.league_id == league_id).order_by(ScoringRule.id)
        ).scalars()
    )


def rule_points(db: Session, league_id: int, action_type: str, default: int = 0) -> int:
    points = db.execute(
        select(ScoringRule.points).where(
            ScoringRule.league_id == league_id,
            ScoringRule.action_type == action_type,
        )
    ).scalar_one_or_none()
    return int(points) if points is not None else default


def ensure_default_scoring_rules(db: Session, league_id: int) -> list[ScoringRule]:
    """Insert any missing default rules. Existing rules keep their points."""
    get_league_or_raise(db, league_id)
    existing = {rule.action_type for rule in list_scoring_rules(db, league_id)}
    for action_type, points in DEFAULT_SCORING_RULES:
        if action_type in existing:
            continue
        db.add(ScoringRule(league_id=league_id, action_type=action_type, points=points))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request seeded the same rules first.
        db.rollback()
    return list_scoring_rules(db, league_id)


def update_scoring_rule(db: Session, rule_id: int, points: int) -> ScoringRule:
    rule = db.get(ScoringRule, rule_id)
    if rule is None:
        raise NotFoundError("Scoring rule not found")
    rule.points = int(points)
    db.commit()
    return rule


def record_scoring_event(
    db: Session,
    actor_user_id: int,
    league_id: int,
    episode_id: int,
    action_type: str,
    contestant_id: int | None = None,
    metadata: dict | None = None,
) -> tuple[ScoringEvent, int]:
    """
    Store a scoring event. When it names a rostered contestant and the rule is
    worth points, the contestant's current owner is credited.
    """
    get_league_episode_or_raise(db, league_id, episode_id)
    if contestant_id is not None:
        get_league_contestant_or_raise(db, league_id, contestant_id)

    points = rule_points(db, league_id, action_type)
    event = ScoringEvent(
        league_id=league_id,
        episode_id=episode_id,
        action_type=action_type,
        contestant_id=contestant_id,
        metadata_json=metadata,
        created_by_user_id=actor_user_id,
    )
    db.add(event)
    db.flush()

    awarded = 0
    if contestant_id is not None and points != 0:
        owner_id = db.execute(
            select(Team.user_id).where(Team.league_id == league_id, Team.contestant_id == contestant_id)
        ).scalar_one_or_none()
        if owner_id is not None:
            append_transaction(
                db, league_id, int(owner_id), points, LedgerReason.SCORING_EVENT, "scoring_event", event.id
            )
            awarded = points
    db.commit()

    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.SCORING_EVENT_CREATE,
        entity_type="scoring_event",
        entity_id=event.id,
        after={
            "leagueId": league_id,
            "episodeId": episode_id,
            "actionType": action_type,
            "contestantId": contestant_id,
            "pointsAwarded": awarded,
        },
    )
    return event, awarded


def apply_vote_points(
    db: Session,
    actor_user_id: int,
    league_id: int,
    episode_id: int,
    voted_out_contestant_ids: list[int],
) -> int:
    """Credit votes x vote_correct points for each vote placed on a voted-out contestant."""
    get_league_episode_or_raise(db, league_id, episode_id)
    points_per_vote = rule_points(db, league_id, VOTE_CORRECT_ACTION, DEFAULT_VOTE_CORRECT_POINTS)
    voted_out = set(voted_out_contestant_ids)

    predictions = db.execute(
        select(VotePrediction).where(
            VotePrediction.league_id == league_id,
            VotePrediction.episode_id == episode_id,
        )
    ).scalars().all()

    points_by_user: dict[int, int] = {}
    for prediction in predictions:
        if prediction.contestant_id in voted_out:
            points_by_user[prediction.user_id] = (
                points_by_user.get(prediction.user_id, 0) + prediction.votes * points_per_vote
            )

    already_paid = already_credited_users(db, league_id, LedgerReason.VOTE_PREDICTION, "episode", episode_id)
    credited = 0
    for user_id, amount in sorted(points_by_user.items()):
        if amount <= 0 or user_id in already_paid:
            continue
        append_transaction(db, league_id, user_id, amount, LedgerReason.VOTE_PREDICTION, "episode", episode_id)
        credited += 1
    db.commit()

    logger.info("Vote points for league %s episode %s: %s users credited", league_id, episode_id, credited)
    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.LEDGER_CREDIT,
        entity_type="episode",
        entity_id=episode_id,
        metadata={"leagueId": league_id, "reason": LedgerReason.VOTE_PREDICTION.value, "usersCredited": credited},
    )
    return credited


def award_winner_picks(
    db: Session,
    actor_user_id: int,
    league_id: int,
    placements: dict[int, int],
) -> int:
    """Credit users whose winner pick finished in the top three (winner_placement_N rules)."""
    get_league_or_raise(db, league_id)
    for contestant_id, place in placements.items():
        if place not in (1, 2, 3):
            raise ValidationError(f"Placement for contestant {contestant_id} must be 1, 2 or 3")
        get_league_contestant_or_raise(db, league_id, contestant_id)

    picks = db.execute(select(WinnerPick).where(WinnerPick.league_id == league_id)).scalars().all()
    paid_picks = set(
        db.execute(
            select(LedgerTransaction.reference_id).where(
                LedgerTransaction.league_id == league_id,
                LedgerTransaction.reason == LedgerReason.WINNER_PICK.value,
                LedgerTransaction.reference_type == "winner_pick",
            )
        ).scalars()
    )
    credited = 0
    for pick in picks:
        place = placements.get(pick.contestant_id)
        if place is None or pick.id in paid_picks:
            continue
        amount = rule_points(db, league_id, f"winner_placement_{place}")
        if amount == 0:
            continue
        append_transaction(db, league_id, pick.user_id, amount, LedgerReason.WINNER_PICK, "winner_pick", pick.id)
        credited += 1
    db.commit()

    audit.log_audit(
        db,
        actor_user_id=actor_user_id,
        action_type=audit.LEDGER_CREDIT,
        entity_type="league",
        entity_id=league_id,
        metadata={"reason": LedgerReason.WINNER_PICK.value, "usersCredited": credited},
    )
    return credited
