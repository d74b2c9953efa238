"""
Trade settlement.

A trade moves through ``proposed`` to exactly one terminal state:

    proposed --accept(acceptor)--> accepted   (settles atomically)
    proposed --reject(acceptor)--> rejected
    proposed --cancel(proposer or admin)--> canceled

Acceptance swaps roster slots and transfers points through the ledger in one
database transaction. The trade row and every source roster row are locked
FOR UPDATE, and the (league, contestant) unique index backs that up: if a
contestant is no longer where the proposal expected it, the whole acceptance
rolls back with ConflictError and the trade stays ``proposed``. Both rosters
must also end within the 2-3 bounds, or acceptance rolls back with
ValidationError.
"""

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import audit
from .auth import AdminCapability
from .deadlines import DeadlinePolicy, ensure_unlocked
from .errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from .leagues import ensure_league_member, is_league_member
from .ledger import append_transaction
from .lock import utcnow
from .models import LedgerReason, Team, Trade, TradeItem, TradeItemType, TradeSide, TradeStatus
from .rosters import check_roster_bounds, lock_roster, roster_size
from .schemas import TradeItemIn

logger = logging.getLogger(__name__)

TRADE_DEADLINE_POLICY = DeadlinePolicy.NEAREST_FUTURE


def validate_trade_items(items: Sequence[TradeItemIn]) -> None:
    if not items:
        raise ValidationError("A trade needs at least one item")
    seen_contestants: set[int] = set()
    for item in items:
        if item.type == TradeItemType.CONTESTANT:
            if item.contestant_id is None or item.contestant_id <= 0:
                raise ValidationError("Contestant item must have contestant_id")
            if item.contestant_id in seen_contestants:
                raise ValidationError(f"Contestant {item.contestant_id} appears twice in this trade")
            seen_contestants.add(item.contestant_id)
        elif item.type == TradeItemType.POINTS:
            if item.points is None or item.points < 0:
                raise ValidationError("Points item must have non-negative points")


def source_and_destination(trade: Trade, item: TradeItem) -> tuple[int, int]:
    if item.side == TradeSide.FROM_PROPOSER.value:
        return trade.proposer_id, trade.acceptor_id
    return trade.acceptor_id, trade.proposer_id


def get_trade_or_raise(db: Session, trade_id: int, for_update: bool = False) -> Trade:
    stmt = select(Trade).where(Trade.id == trade_id)
    if for_update:
        stmt = stmt.with_for_update()
    trade = db.execute(stmt).scalar_one_or_none()
    if trade is None:
        raise NotFoundError("Trade not found")
    return trade


def ensure_proposed(trade: Trade) -> None:
    if trade.status != TradeStatus.PROPOSED.value:
        raise InvalidStateError(f"Trade is {trade.status}, not proposed")


def propose_trade(
    db: Session,
    league_id: int,
    proposer_id: int,
    acceptor_id: int,
    items: Sequence[TradeItemIn],
    note: str | None = None,
    now: datetime | None = None,
) -> Trade:
    if proposer_id == acceptor_id:
        raise ValidationError("Cannot propose trade to yourself")
    ensure_league_member(db, league_id, proposer_id)
    if not is_league_member(db, league_id, acceptor_id):
        raise ValidationError("Acceptor is not in this league")
    ensure_unlocked(
        db,
        league_id,
        TRADE_DEADLINE_POLICY,
        actor_user_id=proposer_id,
        entity_type="trade",
        operation="propose",
        now=now,
    )
    validate_trade_items(items)

    trade = Trade(
        league_id=league_id,
        proposer_id=proposer_id,
        acceptor_id=acceptor_id,
        status=TradeStatus.PROPOSED.value,
        note=note,
    )
    db.add(trade)
    db.flush()
    for item in items:
        is_contestant = item.type == TradeItemType.CONTESTANT
        db.add(
            TradeItem(
                trade_id=trade.id,
                side=item.side.value,
                type=item.type.value,
                contestant_id=item.contestant_id if is_contestant else None,
                points=None if is_contestant else item.points,
            )
        )
    db.commit()
    logger.info("Trade %s proposed in league %s: %s -> %s", trade.id, league_id, proposer_id, acceptor_id)

    audit.log_audit(
        db,
        actor_user_id=proposer_id,
        action_type=audit.TRADE_PROPOSE,
        entity_type="trade",
        entity_id=trade.id,
        metadata={"leagueId": league_id, "acceptorId": acceptor_id},
    )
    return trade


def settle_trade(db: Session, trade: Trade, items: Sequence[TradeItem]) -> None:
    """Apply roster moves and ledger transfers. Does not commit."""
    parties = sorted({trade.proposer_id, trade.acceptor_id})
    sizes_before = {user_id: lock_roster(db, trade.league_id, user_id) for user_id in parties}

    for item in items:
        if item.type != TradeItemType.CONTESTANT.value or item.contestant_id is None:
            continue
        from_user, to_user = source_and_destination(trade, item)
        slot = db.execute(
            select(Team)
            .where(
                Team.league_id == trade.league_id,
                Team.user_id == from_user,
                Team.contestant_id == item.contestant_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if slot is None:
            raise ConflictError(
                f"Contestant {item.contestant_id} is no longer on user {from_user}'s roster"
            )
        db.delete(slot)
        # Deletes flush after inserts by default; push this one first so the unique index sees it gone.
        db.flush()
        db.add(Team(league_id=trade.league_id, user_id=to_user, contestant_id=item.contestant_id))
        db.flush()

    for user_id in parties:
        check_roster_bounds(user_id, sizes_before[user_id], roster_size(db, trade.league_id, user_id))

    for item in items:
        if item.type != TradeItemType.POINTS.value or not item.points:
            continue
        from_user, to_user = source_and_destination(trade, item)
        append_transaction(db, trade.league_id, from_user, -item.points, LedgerReason.TRADE, "trade", trade.id)
        append_transaction(db, trade.league_id, to_user, item.points, LedgerReason.TRADE, "trade", trade.id)


def accept_trade(db: Session, trade_id: int, acting_user_id: int, now: datetime | None = None) -> Trade:
    trade = get_trade_or_raise(db, trade_id, for_update=True)
    if trade.acceptor_id != acting_user_id:
        raise ForbiddenError("Only the acceptor can accept")
    ensure_proposed(trade)
    ensure_unlocked(
        db,
        trade.league_id,
        TRADE_DEADLINE_POLICY,
        actor_user_id=acting_user_id,
        entity_type="trade",
        operation="accept",
        now=now,
        metadata={"tradeId": trade.id},
    )

    items = list(db.execute(select(TradeItem).where(TradeItem.trade_id == trade.id).order_by(TradeItem.id)).scalars())
    try:
        settle_trade(db, trade, items)
        trade.status = TradeStatus.ACCEPTED.value
        trade.updated_at = utcnow()
        db.commit()
    except ConflictError:
        db.rollback()
        logger.warning("Trade %s acceptance aborted: roster changed since proposal", trade_id)
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Trade %s acceptance aborted on roster uniqueness: %s", trade_id, exc.orig)
        raise ConflictError("Roster changed while accepting this trade; nothing was applied") from exc
    except ValidationError:
        db.rollback()
        logger.warning("Trade %s acceptance aborted: roster size out of bounds", trade_id)
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("Trade %s accepted by user %s", trade.id, acting_user_id)
    audit.log_audit(
        db,
        actor_user_id=acting_user_id,
        action_type=audit.TRADE_ACCEPT,
        entity_type="trade",
        entity_id=trade.id,
        metadata={"leagueId": trade.league_id},
    )
    return trade


def reject_trade(db: Session, trade_id: int, acting_user_id: int) -> Trade:
    # No deadline check: rejecting has no scoring effect and must not strand stale proposals.
    trade = get_trade_or_raise(db, trade_id, for_update=True)
    if trade.acceptor_id != acting_user_id:
        raise ForbiddenError("Only the acceptor can reject")
    ensure_proposed(trade)

    trade.status = TradeStatus.REJECTED.value
    trade.updated_at = utcnow()
    db.commit()

    audit.log_audit(
        db,
        actor_user_id=acting_user_id,
        action_type=audit.TRADE_REJECT,
        entity_type="trade",
        entity_id=trade.id,
        metadata={"leagueId": trade.league_id},
    )
    return trade


def cancel_trade(
    db: Session,
    trade_id: int,
    acting_user_id: int,
    admin: AdminCapability | None = None,
    now: datetime | None = None,
) -> Trade:
    trade = get_trade_or_raise(db, trade_id, for_update=True)
    as_admin = admin is not None and admin.user_id == acting_user_id and admin.is_valid(now)
    if trade.proposer_id != acting_user_id and not as_admin:
        raise ForbiddenError("Only the proposer or an admin can cancel")
    ensure_proposed(trade)

    trade.status = TradeStatus.CANCELED.value
    trade.updated_at = utcnow()
    db.commit()

    audit.log_audit(
        db,
        actor_user_id=acting_user_id,
        action_type=audit.TRADE_CANCEL,
        entity_type="trade",
        entity_id=trade.id,
        metadata={"leagueId": trade.league_id, "byAdmin": as_admin and trade.proposer_id != acting_user_id},
    )
    return trade


def list_trades(db: Session, league_id: int, user_id: int) -> list[Trade]:
    ensure_league_member(db, league_id, user_id)
    return list(
        db.execute(
            select(Trade)
            .options(selectinload(Trade.items))
            .where(
                Trade.league_id == league_id,
                or_(Trade.proposer_id == user_id, Trade.acceptor_id == user_id),
            )
            .order_by(Trade.created_at.desc(), Trade.id.desc())
        ).scalars()
    )


def list_league_trades(db: Session, league_id: int) -> list[Trade]:
    return list(
        db.execute(
            select(Trade)
            .options(selectinload(Trade.items))
            .where(Trade.league_id == league_id)
            .order_by(Trade.created_at.desc(), Trade.id.desc())
        ).scalars()
    )
