from datetime import datetime
from pydantic import BaseModel, Field

from .models import ContestantStatus, TradeItemType, TradeSide, UserRole


class OkOut(BaseModel):
    ok: bool = True


class UserOut(BaseModel):
    id: int
    username: str
    role: str
    is_admin: bool = False


class AdminVerifyOut(BaseModel):
    admin_verified_until: datetime


class LeagueCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    season_name: str | None = Field(default=None, max_length=256)


class LeagueOut(BaseModel):
    id: int
    name: str
    season_name: str | None = None
    created_at: datetime


class LeagueMemberIn(BaseModel):
    user_id: int = Field(gt=0)


class ContestantCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=256)


class ContestantOut(BaseModel):
    id: int
    league_id: int
    name: str
    status: str
    eliminated_episode_id: int | None = None


class EpisodeCreateIn(BaseModel):
    episode_number: int = Field(gt=0)
    air_date: datetime
    title: str | None = Field(default=None, max_length=256)


class EpisodeOut(BaseModel):
    id: int
    league_id: int
    episode_number: int
    title: str | None = None
    air_date: datetime
    lock_at: datetime
    locked: bool


class RosterSlotOut(BaseModel):
    id: int
    contestant_id: int
    name: str
    status: str


class RosterOut(BaseModel):
    roster: list[RosterSlotOut]
    locked: bool
    lock_at: datetime | None = None


class RosterAddIn(BaseModel):
    contestant_id: int = Field(gt=0)


class WinnerPickIn(BaseModel):
    contestant_id: int = Field(gt=0)


class WinnerPickOut(BaseModel):
    contestant_id: int | None = None
    name: str | None = None
    picked_at: datetime | None = None
    locked: bool
    lock_at: datetime | None = None


class VoteAllocationIn(BaseModel):
    contestant_id: int = Field(gt=0)
    votes: int = Field(ge=0)


class VoteAllocationOut(BaseModel):
    contestant_id: int
    name: str
    votes: int


class VotesIn(BaseModel):
    allocations: list[VoteAllocationIn]


class VotesOut(BaseModel):
    episode_id: int
    locked: bool
    lock_at: datetime
    allocations: list[VoteAllocationOut]
    vote_total: int


class TradeItemIn(BaseModel):
    side: TradeSide
    type: TradeItemType
    contestant_id: int | None = None
    points: int | None = None


class TradeProposeIn(BaseModel):
    league_id: int = Field(gt=0)
    acceptor_id: int = Field(gt=0)
    note: str | None = Field(default=None, max_length=2000)
    items: list[TradeItemIn] = Field(min_length=1)


class TradeItemOut(BaseModel):
    id: int
    side: str
    type: str
    contestant_id: int | None = None
    points: int | None = None


class TradeOut(BaseModel):
    id: int
    league_id: int
    proposer_id: int
    acceptor_id: int
    status: str
    note: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[TradeItemOut] = []


class ScoringRuleOut(BaseModel):
    id: int
    action_type: str
    points: int


class ScoringRuleUpdateIn(BaseModel):
    points: int


class ScoringEventIn(BaseModel):
    league_id: int = Field(gt=0)
    episode_id: int = Field(gt=0)
    action_type: str = Field(min_length=1, max_length=64)
    contestant_id: int | None = Field(default=None, gt=0)
    metadata: dict | None = None


class ScoringEventOut(BaseModel):
    id: int
    league_id: int
    episode_id: int
    action_type: str
    contestant_id: int | None = None
    points_awarded: int


class VotePointsIn(BaseModel):
    voted_out_contestant_ids: list[int]


class WinnerPlacementsIn(BaseModel):
    # contestant_id -> finishing place (1, 2 or 3)
    placements: dict[int, int]


class AppliedOut(BaseModel):
    ok: bool = True
    applied: int


class LeaderboardRowOut(BaseModel):
    user_id: int
    username: str
    total: int
    breakdown: dict[str, int]


class LedgerTransactionOut(BaseModel):
    id: int
    user_id: int
    amount: int
    reason: str
    reference_type: str | None = None
    reference_id: int | None = None
    created_at: datetime


class AuditLogOut(BaseModel):
    id: int
    timestamp: datetime
    actor_user_id: int | None = None
    action_type: str
    entity_type: str
    entity_id: int | None = None
    metadata_json: dict | None = None


class UserCreateIn(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    role: UserRole = UserRole.PLAYER


class UserUpdateIn(BaseModel):
    username: str | None = Field(default=None, min_length=1, max_length=64)
    role: UserRole | None = None


class SessionIssuedOut(BaseModel):
    token: str
    expires_at: datetime


class ContestantUpdateIn(BaseModel):
    status: ContestantStatus | None = None
    eliminated_episode_id: int | None = Field(default=None, gt=0)


class MemberRosterOut(BaseModel):
    user_id: int
    username: str
    roster: list[RosterSlotOut]


class AdminWinnerPickIn(BaseModel):
    user_id: int = Field(gt=0)
    contestant_id: int = Field(gt=0)


class MemberWinnerPickOut(BaseModel):
    user_id: int
    username: str
    contestant_id: int | None = None
    name: str | None = None


class AdminVotesIn(BaseModel):
    user_id: int = Field(gt=0)
    allocations: list[VoteAllocationIn]


class MemberVotesOut(BaseModel):
    user_id: int
    username: str
    allocations: list[VoteAllocationOut]
