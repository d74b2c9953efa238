from __future__ import annotations
from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, UniqueConstraint, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .db import Base
from .lock import utcnow

TIMESTAMP = DateTime(timezone=True)


class UserRole(str, Enum):
    ADMIN = "admin"
    PLAYER = "player"


class ContestantStatus(str, Enum):
    ACTIVE = "active"
    ELIMINATED = "eliminated"
    INJURED = "injured"


class TradeStatus(str, Enum):
    PROPOSED = "proposed"
    PENDING = "pending"  # reserved, never assigned
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELED = "canceled"


class TradeSide(str, Enum):
    FROM_PROPOSER = "from_proposer"
    FROM_ACCEPTOR = "from_acceptor"


class TradeItemType(str, Enum):
    CONTESTANT = "contestant"
    POINTS = "points"


class LedgerReason(str, Enum):
    SCORING_EVENT = "scoring_event"
    VOTE_PREDICTION = "vote_prediction"
    WINNER_PICK = "winner_pick"
    TRADE = "trade"


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(16), default=UserRole.PLAYER.value)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)

    sessions: Mapped[list["UserSession"]] = relationship(back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class UserSession(Base):
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    token_hash: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP, index=True)
    revoked_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True, index=True)
    # Set by an explicit admin re-verification; read only to build an AdminCapability.
    admin_verified_until: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow, index=True)

    user: Mapped["User"] = relationship(back_populates="sessions")


class League(Base):
    __tablename__ = "leagues"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(256))
    season_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class LeagueMember(Base):
    __tablename__ = "league_members"
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    joined_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class Contestant(Base):
    __tablename__ = "contestants"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(256))
    status: Mapped[str] = mapped_column(String(32), default=ContestantStatus.ACTIVE.value)
    eliminated_episode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class Episode(Base):
    __tablename__ = "episodes"
    __table_args__ = (UniqueConstraint("league_id", "episode_number", name="uq_episodes_league_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    episode_number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    air_date: Mapped[datetime] = mapped_column(TIMESTAMP, index=True)
    lock_at: Mapped[datetime] = mapped_column(TIMESTAMP, index=True)  # derived from air_date at creation
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class Team(Base):
    """One roster slot: (league, user, contestant)."""

    __tablename__ = "teams"
    __table_args__ = (UniqueConstraint("league_id", "contestant_id", name="uq_teams_league_contestant"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    contestant_id: Mapped[int] = mapped_column(ForeignKey("contestants.id", ondelete="CASCADE"))
    added_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class WinnerPick(Base):
    __tablename__ = "winner_picks"
    __table_args__ = (UniqueConstraint("league_id", "user_id", name="uq_winner_picks_league_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    contestant_id: Mapped[int] = mapped_column(ForeignKey("contestants.id", ondelete="CASCADE"))
    picked_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class VotePrediction(Base):
    __tablename__ = "vote_predictions"
    __table_args__ = (
        UniqueConstraint(
            "league_id", "user_id", "episode_id", "contestant_id", name="uq_vote_predictions_allocation"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    episode_id: Mapped[int] = mapped_column(ForeignKey("episodes.id", ondelete="CASCADE"), index=True)
    contestant_id: Mapped[int] = mapped_column(ForeignKey("contestants.id", ondelete="CASCADE"))
    votes: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow, onupdate=utcnow)


class Trade(Base):
    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    proposer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    acceptor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(32), default=TradeStatus.PROPOSED.value, index=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow, onupdate=utcnow)

    items: Mapped[list["TradeItem"]] = relationship(
        back_populates="trade",
        order_by="TradeItem.id",
    )


class TradeItem(Base):
    __tablename__ = "trade_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    trade_id: Mapped[int] = mapped_column(ForeignKey("trades.id", ondelete="CASCADE"), index=True)
    side: Mapped[str] = mapped_column(String(16))  # from_proposer | from_acceptor
    type: Mapped[str] = mapped_column(String(32))  # contestant | points
    contestant_id: Mapped[int | None] = mapped_column(ForeignKey("contestants.id"), nullable=True)
    points: Mapped[int | None] = mapped_column(Integer, nullable=True)

    trade: Mapped["Trade"] = relationship(back_populates="items")


class ScoringRule(Base):
    __tablename__ = "scoring_rules"
    __table_args__ = (UniqueConstraint("league_id", "action_type", name="uq_scoring_rules_league_action"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    action_type: Mapped[str] = mapped_column(String(64))
    points: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class ScoringEvent(Base):
    __tablename__ = "scoring_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    episode_id: Mapped[int] = mapped_column(ForeignKey("episodes.id", ondelete="CASCADE"), index=True)
    action_type: Mapped[str] = mapped_column(String(64))
    contestant_id: Mapped[int | None] = mapped_column(ForeignKey("contestants.id"), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow)


class LedgerTransaction(Base):
    """Append-only. A user's score is the sum of their rows; never updated or deleted."""

    __tablename__ = "ledger_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    amount: Mapped[int] = mapped_column(Integer)  # signed: + credit, - debit
    reason: Mapped[str] = mapped_column(String(64), index=True)
    reference_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow, index=True)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(TIMESTAMP, default=utcnow, index=True)
    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    action_type: Mapped[str] = mapped_column(String(64), index=True)
    entity_type: Mapped[str] = mapped_column(String(64))
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    before_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
