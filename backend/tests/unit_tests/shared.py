from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from fantasy_survivor.auth import AdminCapability
from fantasy_survivor.leagues import create_episode
from fantasy_survivor.models import Contestant, Episode, League, Team, TradeItemType, TradeSide, User
from fantasy_survivor.rosters import roster_contestant_ids
from fantasy_survivor.schemas import TradeItemIn

# Monday 2026-03-02 10:00 EST.
MOCK_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
# Wednesday 2026-03-04 20:00 EST, so the episode locks as it airs.
EPISODE_1_AIR = datetime(2026, 3, 5, 1, 0, tzinfo=timezone.utc)
AFTER_EPISODE_1_LOCK = EPISODE_1_AIR + timedelta(minutes=1)


@dataclass
class LeagueContext:
    league: League
    admin: User
    alice: User
    bob: User
    carol: User
    contestants: list[Contestant]


def give(db: Session, league: League, user: User, *contestants: Contestant) -> None:
    db.add_all(Team(league_id=league.id, user_id=user.id, contestant_id=c.id) for c in contestants)
    db.commit()


def roster_ids(db: Session, league: League, user: User) -> set[int]:
    return roster_contestant_ids(db, league.id, user.id)


def add_episode(db: Session, ctx: LeagueContext, number: int, air_date: datetime) -> Episode:
    return create_episode(db, ctx.admin.id, ctx.league.id, number, air_date)


def contestant_item(side: TradeSide, contestant: Contestant) -> TradeItemIn:
    return TradeItemIn(side=side, type=TradeItemType.CONTESTANT, contestant_id=contestant.id)


def points_item(side: TradeSide, points: int) -> TradeItemIn:
    return TradeItemIn(side=side, type=TradeItemType.POINTS, points=points)


def admin_capability(ctx: LeagueContext, expires_at: datetime = MOCK_NOW + timedelta(minutes=10)) -> AdminCapability:
    return AdminCapability(user_id=ctx.admin.id, expires_at=expires_at)
