from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import LeagueMember, LedgerReason, LedgerTransaction, User


@dataclass
class LeaderboardRow:
    user_id: int
    username: str
    total: int = 0
    breakdown: dict[str, int] = field(default_factory=lambda: {reason.value: 0 for reason in LedgerReason})


def append_transaction(
    db: Session,
    league_id: int,
    user_id: int,
    amount: int,
    reason: LedgerReason,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> LedgerTransaction:
    """Add a ledger row to the session. The caller owns the transaction boundary."""
    row = LedgerTransaction(
        league_id=league_id,
        user_id=user_id,
        amount=int(amount),
        reason=reason.value,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(row)
    return row


def user_score(db: Session, league_id: int, user_id: int) -> int:
    total = db.execute(
        select(func.coalesce(func.sum(LedgerTransaction.amount), 0)).where(
            LedgerTransaction.league_id == league_id,
            LedgerTransaction.user_id == user_id,
        )
    ).scalar_one()
    return int(total)


def transactions_for_reference(db: Session, reference_type: str, reference_id: int) -> list[LedgerTransaction]:
    return list(
        db.execute(
            select(LedgerTransaction)
            .where(
                LedgerTransaction.reference_type == reference_type,
                LedgerTransaction.reference_id == reference_id,
            )
            .order_by(LedgerTransaction.id)
        ).scalars()
    )


def list_transactions(db: Session, league_id: int, limit: int = 500) -> list[LedgerTransaction]:
    return list(
        db.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.league_id == league_id)
            .order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
            .limit(limit)
        ).scalars()
    )


def leaderboard(db: Session, league_id: int) -> list[LeaderboardRow]:
    """Scores are always a fold over the ledger; members with no rows score 0."""
    members = db.execute(
        select(User.id, User.username)
        .join(LeagueMember, LeagueMember.user_id == User.id)
        .where(LeagueMember.league_id == league_id)
    ).all()
    rows = {int(user_id): LeaderboardRow(user_id=int(user_id), username=username) for user_id, username in members}

    sums = db.execute(
        select(LedgerTransaction.user_id, LedgerTransaction.reason, func.sum(LedgerTransaction.amount))
        .where(LedgerTransaction.league_id == league_id)
        .group_by(LedgerTransaction.user_id, LedgerTransaction.reason)
    ).all()
    for user_id, reason, amount in sums:
        row = rows.get(int(user_id))
        if row is None:
            continue
        row.breakdown[reason] = row.breakdown.get(reason, 0) + int(amount)
        row.total += int(amount)

    return sorted(rows.values(), key=lambda row: (-row.total, row.username))
