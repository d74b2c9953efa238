import logging
import os
from dataclasses import dataclass

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import audit as audit_service
from . import leagues as league_service
from . import ledger as ledger_service
from . import predictions as prediction_service
from . import rosters as roster_service
from . import scoring as scoring_service
from . import trades as trade_service
from . import users as user_service
from .auth import (
    AdminCapability,
    admin_capability_for,
    resolve_session,
    revoke_session,
    verify_admin,
)
from .db import SessionLocal, get_db
from .errors import FantasyError
from .lock import as_utc, is_locked, next_lock_time
from .models import AuditLog, Contestant, Episode, League, ScoringRule, Trade, User, UserSession
from .schemas import (
    AdminVerifyOut,
    AdminVotesIn,
    AdminWinnerPickIn,
    AppliedOut,
    AuditLogOut,
    ContestantCreateIn,
    ContestantOut,
    ContestantUpdateIn,
    EpisodeCreateIn,
    EpisodeOut,
    LeaderboardRowOut,
    LeagueCreateIn,
    LeagueMemberIn,
    LeagueOut,
    LedgerTransactionOut,
    MemberRosterOut,
    MemberVotesOut,
    MemberWinnerPickOut,
    OkOut,
    RosterAddIn,
    RosterOut,
    RosterSlotOut,
    ScoringEventIn,
    ScoringEventOut,
    ScoringRuleOut,
    ScoringRuleUpdateIn,
    SessionIssuedOut,
    TradeItemOut,
    TradeOut,
    TradeProposeIn,
    UserCreateIn,
    UserOut,
    UserUpdateIn,
    VoteAllocationOut,
    VotePointsIn,
    VotesIn,
    VotesOut,
    WinnerPickIn,
    WinnerPickOut,
    WinnerPlacementsIn,
)
from .seed import init_db, seed

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Fantasy Survivor API")
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FantasyError)
def fantasy_error_handler(request: Request, exc: FantasyError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/")
def root():
    return {"ok": True, "service": "Fantasy Survivor API", "docs": "/docs", "health": "/healthz"}


@app.get("/healthz")
def healthz():
    return {"ok": True}


@dataclass
class AuthContext:
    user: User
    session: UserSession


@app.on_event("startup")
def on_startup():
    init_db()
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()
    logger.info("Startup complete; next weekly lock at %s", next_lock_time().isoformat())


def auth_exception(detail: str = "Authentication required.") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_bearer_token(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> str:
    if not authorization:
        raise auth_exception()
    scheme, _, token = authorization.partition(" ")
    if scheme.strip().lower() != "bearer" or not token.strip():
        raise auth_exception("Invalid authorization header.")
    return token.strip()


def get_auth_context(
    bearer_token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> AuthContext:
    session = resolve_session(db, bearer_token)
    if not session:
        raise auth_exception("Session is invalid or expired.")
    user = db.get(User, session.user_id)
    if not user:
        raise auth_exception("User not found.")
    return AuthContext(user=user, session=session)


def get_admin_context(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not auth.user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return auth


def get_admin_capability(auth: AuthContext = Depends(get_admin_context)) -> AdminCapability:
    capability = admin_capability_for(auth.user, auth.session)
    if capability is None:
        raise HTTPException(status_code=403, detail="Admin re-verification required. Call POST /auth/admin/verify.")
    return capability


def user_to_out(user: User) -> UserOut:
    return UserOut(id=user.id, username=user.username, role=user.role, is_admin=user.is_admin)


def league_to_out(league: League) -> LeagueOut:
    return LeagueOut(id=league.id, name=league.name, season_name=league.season_name, created_at=league.created_at)


def contestant_to_out(contestant: Contestant) -> ContestantOut:
    return ContestantOut(
        id=contestant.id,
        league_id=contestant.league_id,
        name=contestant.name,
        status=contestant.status,
        eliminated_episode_id=contestant.eliminated_episode_id,
    )


def episode_to_out(episode: Episode) -> EpisodeOut:
    lock_at = as_utc(episode.lock_at)
    return EpisodeOut(
        id=episode.id,
        league_id=episode.league_id,
        episode_number=episode.episode_number,
        title=episode.title,
        air_date=as_utc(episode.air_date),
        lock_at=lock_at,
        locked=is_locked(lock_at),
    )


def trade_to_out(trade: Trade) -> TradeOut:
    return TradeOut(
        id=trade.id,
        league_id=trade.league_id,
        proposer_id=trade.proposer_id,
        acceptor_id=trade.acceptor_id,
        status=trade.status,
        note=trade.note,
        created_at=trade.created_at,
        updated_at=trade.updated_at,
        items=[
            TradeItemOut(
                id=item.id,
                side=item.side,
                type=item.type,
                contestant_id=item.contestant_id,
                points=item.points,
            )
            for item in trade.items
        ],
    )


def roster_to_out(slots: list[roster_service.RosterSlot]) -> list[RosterSlotOut]:
    return [
        RosterSlotOut(id=slot.id, contestant_id=slot.contestant_id, name=slot.name, status=slot.status)
        for slot in slots
    ]


def scoring_rule_to_out(rule: ScoringRule) -> ScoringRuleOut:
    return ScoringRuleOut(id=rule.id, action_type=rule.action_type, points=rule.points)


def audit_to_out(row: AuditLog) -> AuditLogOut:
    return AuditLogOut(
        id=row.id,
        timestamp=row.timestamp,
        actor_user_id=row.actor_user_id,
        action_type=row.action_type,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        metadata_json=row.metadata_json,
    )


def allocations_to_out(allocations: list[tuple[int, str, int]]) -> list[VoteAllocationOut]:
    return [
        VoteAllocationOut(contestant_id=contestant_id, name=name, votes=votes)
        for contestant_id, name, votes in allocations
    ]


# ---------- Auth ----------

@app.get("/auth/me", response_model=UserOut)
def auth_me(auth: AuthContext = Depends(get_auth_context)):
    return user_to_out(auth.user)


@app.post("/auth/logout", response_model=OkOut)
def logout(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    revoke_session(db, auth.session)
    return OkOut()


@app.post("/auth/admin/verify", response_model=AdminVerifyOut)
def admin_verify(
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    capability = verify_admin(db, auth.user, auth.session)
    return AdminVerifyOut(admin_verified_until=capability.expires_at)


@app.get("/lock/next")
def lock_next():
    return {"lock_at": next_lock_time().isoformat()}


# ---------- Leagues ----------

@app.get("/leagues", response_model=list[LeagueOut])
def my_leagues(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return [league_to_out(league) for league in league_service.list_leagues_for_user(db, auth.user.id)]


@app.get("/leagues/{league_id}/contestants", response_model=list[ContestantOut])
def league_contestants(
    league_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    league_service.ensure_league_member(db, league_id, auth.user.id)
    return [contestant_to_out(contestant) for contestant in league_service.list_contestants(db, league_id)]


@app.get("/leagues/{league_id}/episodes", response_model=list[EpisodeOut])
def league_episodes(
    league_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    league_service.ensure_league_member(db, league_id, auth.user.id)
    return [episode_to_out(episode) for episode in league_service.list_episodes(db, league_id)]


# ---------- Teams ----------

@app.get("/teams/{league_id}", response_model=RosterOut)
def my_roster(
    league_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    slots, locked, lock_at = roster_service.roster_status(db, league_id, auth.user.id)
    return RosterOut(roster=roster_to_out(slots), locked=locked, lock_at=lock_at)


@app.get("/teams/{league_id}/roster/{user_id}", response_model=list[RosterSlotOut])
def member_roster(
    league_id: int,
    user_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    league_service.ensure_league_member(db, league_id, auth.user.id)
    return roster_to_out(roster_service.get_roster(db, league_id, user_id))


@app.post("/teams/{league_id}/add", response_model=OkOut, status_code=201)
def roster_add(
    league_id: int,
    payload: RosterAddIn,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    roster_service.add_contestant(db, league_id, auth.user.id, payload.contestant_id)
    return OkOut()


@app.delete("/teams/{league_id}/{contestant_id}", response_model=OkOut)
def roster_remove(
    league_id: int,
    contestant_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    roster_service.remove_contestant(db, league_id, auth.user.id, contestant_id)
    return OkOut()


# ---------- Predictions ----------

@app.get("/predictions/winner/{league_id}", response_model=WinnerPickOut)
def winner_pick_get(
    league_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    pick, contestant, locked, lock_at = prediction_service.get_winner_pick(db, league_id, auth.user.id)
    return WinnerPickOut(
        contestant_id=pick.contestant_id if pick else None,
        name=contestant.name if contestant else None,
        picked_at=pick.picked_at if pick else None,
        locked=locked,
        lock_at=lock_at,
    )


@app.post("/predictions/winner/{league_id}", response_model=OkOut)
def winner_pick_set(
    league_id: int,
    payload: WinnerPickIn,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    prediction_service.set_winner_pick(db, league_id, auth.user.id, payload.contestant_id)
    return OkOut()


@app.get("/predictions/votes/{league_id}/{episode_id}", response_model=VotesOut)
def votes_get(
    league_id: int,
    episode_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    allocations, locked, lock_at = prediction_service.get_votes(db, league_id, auth.user.id, episode_id)
    return VotesOut(
        episode_id=episode_id,
        locked=locked,
        lock_at=lock_at,
        allocations=allocations_to_out(allocations),
        vote_total=prediction_service.VOTE_TOTAL,
    )


@app.put("/predictions/votes/{league_id}/{episode_id}", response_model=OkOut)
def votes_put(
    league_id: int,
    episode_id: int,
    payload: VotesIn,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    prediction_service.submit_votes(db, league_id, auth.user.id, episode_id, payload.allocations)
    return OkOut()


# ---------- Trades ----------

@app.post("/trades/propose", response_model=TradeOut, status_code=201)
def trade_propose(
    payload: TradeProposeIn,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    trade = trade_service.propose_trade(
        db,
        league_id=payload.league_id,
        proposer_id=auth.user.id,
        acceptor_id=payload.acceptor_id,
        items=payload.items,
        note=payload.note,
    )
    return trade_to_out(trade)


@app.get("/trades/{league_id}", response_model=list[TradeOut])
def trade_list(
    league_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return [trade_to_out(trade) for trade in trade_service.list_trades(db, league_id, auth.user.id)]


@app.post("/trades/{trade_id}/accept", response_model=TradeOut)
def trade_accept(
    trade_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return trade_to_out(trade_service.accept_trade(db, trade_id, auth.user.id))


@app.post("/trades/{trade_id}/reject", response_model=TradeOut)
def trade_reject(
    trade_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return trade_to_out(trade_service.reject_trade(db, trade_id, auth.user.id))


@app.post("/trades/{trade_id}/cancel", response_model=TradeOut)
def trade_cancel(
    trade_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return trade_to_out(trade_service.cancel_trade(db, trade_id, auth.user.id))


# ---------- Leaderboard ----------

@app.get("/leaderboard/{league_id}", response_model=list[LeaderboardRowOut])
def league_leaderboard(
    league_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    league_service.ensure_league_member(db, league_id, auth.user.id)
    return [
        LeaderboardRowOut(user_id=row.user_id, username=row.username, total=row.total, breakdown=row.breakdown)
        for row in ledger_service.leaderboard(db, league_id)
    ]


# ---------- Activity ----------

@app.get("/activity", response_model=list[AuditLogOut])
def my_activity(
    limit: int = Query(default=audit_service.ACTIVITY_DEFAULT_LIMIT),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return [audit_to_out(row) for row in audit_service.activity_for_user(db, auth.user.id, limit=limit)]


# ---------- Admin ----------

@app.post("/admin/leagues", response_model=LeagueOut, status_code=201)
def admin_create_league(
    payload: LeagueCreateIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    league = league_service.create_league(db, auth.user.id, payload.name, payload.season_name)
    return league_to_out(league)


@app.post("/admin/leagues/{league_id}/members", response_model=OkOut, status_code=201)
def admin_add_member(
    league_id: int,
    payload: LeagueMemberIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    league_service.add_member(db, auth.user.id, league_id, payload.user_id)
    return OkOut()


@app.post("/admin/leagues/{league_id}/contestants", response_model=ContestantOut, status_code=201)
def admin_create_contestant(
    league_id: int,
    payload: ContestantCreateIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return contestant_to_out(league_service.create_contestant(db, auth.user.id, league_id, payload.name))


@app.post("/admin/leagues/{league_id}/episodes", response_model=EpisodeOut, status_code=201)
def admin_create_episode(
    league_id: int,
    payload: EpisodeCreateIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    episode = league_service.create_episode(
        db,
        auth.user.id,
        league_id,
        episode_number=payload.episode_number,
        air_date=payload.air_date,
        title=payload.title,
    )
    return episode_to_out(episode)


@app.post("/admin/leagues/{league_id}/scoring-rules/defaults", response_model=list[ScoringRuleOut])
def admin_default_scoring_rules(
    league_id: int,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return [scoring_rule_to_out(rule) for rule in scoring_service.ensure_default_scoring_rules(db, league_id)]


@app.get("/admin/leagues/{league_id}/scoring-rules", response_model=list[ScoringRuleOut])
def admin_scoring_rules(
    league_id: int,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return [scoring_rule_to_out(rule) for rule in scoring_service.list_scoring_rules(db, league_id)]


@app.put("/admin/scoring-rules/{rule_id}", response_model=ScoringRuleOut)
def admin_update_scoring_rule(
    rule_id: int,
    payload: ScoringRuleUpdateIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return scoring_rule_to_out(scoring_service.update_scoring_rule(db, rule_id, payload.points))


@app.post("/admin/scoring-events", response_model=ScoringEventOut, status_code=201)
def admin_scoring_event(
    payload: ScoringEventIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    event, awarded = scoring_service.record_scoring_event(
        db,
        auth.user.id,
        league_id=payload.league_id,
        episode_id=payload.episode_id,
        action_type=payload.action_type,
        contestant_id=payload.contestant_id,
        metadata=payload.metadata,
    )
    return ScoringEventOut(
        id=event.id,
        league_id=event.league_id,
        episode_id=event.episode_id,
        action_type=event.action_type,
        contestant_id=event.contestant_id,
        points_awarded=awarded,
    )


@app.post("/admin/leagues/{league_id}/episodes/{episode_id}/apply-vote-points", response_model=AppliedOut)
def admin_apply_vote_points(
    league_id: int,
    episode_id: int,
    payload: VotePointsIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    applied = scoring_service.apply_vote_points(
        db, auth.user.id, league_id, episode_id, payload.voted_out_contestant_ids
    )
    return AppliedOut(applied=applied)


@app.post("/admin/leagues/{league_id}/winner-placements", response_model=AppliedOut)
def admin_winner_placements(
    league_id: int,
    payload: WinnerPlacementsIn,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    applied = scoring_service.award_winner_picks(db, auth.user.id, league_id, payload.placements)
    return AppliedOut(applied=applied)


@app.get("/admin/leagues/{league_id}/trades", response_model=list[TradeOut])
def admin_league_trades(
    league_id: int,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return [trade_to_out(trade) for trade in trade_service.list_league_trades(db, league_id)]


@app.post("/admin/trades/{trade_id}/cancel", response_model=TradeOut)
def admin_cancel_trade(
    trade_id: int,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    return trade_to_out(trade_service.cancel_trade(db, trade_id, capability.user_id, admin=capability))


@app.get("/admin/leagues/{league_id}/ledger", response_model=list[LedgerTransactionOut])
def admin_league_ledger(
    league_id: int,
    limit: int = Query(default=500, ge=1, le=5000),
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return [
        LedgerTransactionOut(
            id=row.id,
            user_id=row.user_id,
            amount=row.amount,
            reason=row.reason,
            reference_type=row.reference_type,
            reference_id=row.reference_id,
            created_at=row.created_at,
        )
        for row in ledger_service.list_transactions(db, league_id, limit=limit)
    ]


@app.get("/admin/audit-log", response_model=list[AuditLogOut])
def admin_audit_log(
    limit: int = Query(default=200, ge=1, le=2000),
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    rows = db.execute(
        select(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit)
    ).scalars().all()
    return [audit_to_out(row) for row in rows]


@app.get("/admin/users", response_model=list[UserOut])
def admin_list_users(
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return [user_to_out(user) for user in user_service.list_users(db)]


@app.post("/admin/users", response_model=UserOut, status_code=201)
def admin_create_user(
    payload: UserCreateIn,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    return user_to_out(user_service.create_user(db, capability, payload.username, payload.role))


@app.patch("/admin/users/{user_id}", response_model=UserOut)
def admin_update_user(
    user_id: int,
    payload: UserUpdateIn,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    user = user_service.update_user(db, capability, user_id, username=payload.username, role=payload.role)
    return user_to_out(user)


@app.post("/admin/users/{user_id}/sessions", response_model=SessionIssuedOut, status_code=201)
def admin_issue_user_session(
    user_id: int,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    token, session = user_service.issue_user_session(db, capability, user_id)
    return SessionIssuedOut(token=token, expires_at=as_utc(session.expires_at))


@app.patch("/admin/contestants/{contestant_id}", response_model=ContestantOut)
def admin_update_contestant(
    contestant_id: int,
    payload: ContestantUpdateIn,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    contestant = league_service.update_contestant(
        db,
        capability,
        contestant_id,
        status=payload.status,
        eliminated_episode_id=payload.eliminated_episode_id,
    )
    return contestant_to_out(contestant)


@app.get("/admin/leagues/{league_id}/teams", response_model=list[MemberRosterOut])
def admin_league_rosters(
    league_id: int,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    league_service.get_league_or_raise(db, league_id)
    return [
        MemberRosterOut(user_id=member.user_id, username=member.username, roster=roster_to_out(member.roster))
        for member in roster_service.list_league_rosters(db, league_id)
    ]


@app.post("/admin/leagues/{league_id}/teams/{user_id}/add", response_model=OkOut, status_code=201)
def admin_roster_add(
    league_id: int,
    user_id: int,
    payload: RosterAddIn,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    roster_service.admin_add_contestant(db, capability, league_id, user_id, payload.contestant_id)
    return OkOut()


@app.delete("/admin/leagues/{league_id}/teams/{user_id}/contestants/{contestant_id}", response_model=OkOut)
def admin_roster_remove(
    league_id: int,
    user_id: int,
    contestant_id: int,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    roster_service.admin_remove_contestant(db, capability, league_id, user_id, contestant_id)
    return OkOut()


@app.get("/admin/leagues/{league_id}/winner-picks", response_model=list[MemberWinnerPickOut])
def admin_winner_picks(
    league_id: int,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    league_service.get_league_or_raise(db, league_id)
    return [
        MemberWinnerPickOut(
            user_id=pick.user_id, username=pick.username, contestant_id=pick.contestant_id, name=pick.name
        )
        for pick in prediction_service.list_winner_picks(db, league_id)
    ]


@app.put("/admin/leagues/{league_id}/winner-picks", response_model=OkOut)
def admin_set_winner_pick(
    league_id: int,
    payload: AdminWinnerPickIn,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    prediction_service.admin_set_winner_pick(db, capability, league_id, payload.user_id, payload.contestant_id)
    return OkOut()


@app.get("/admin/leagues/{league_id}/episodes/{episode_id}/votes", response_model=list[MemberVotesOut])
def admin_episode_votes(
    league_id: int,
    episode_id: int,
    auth: AuthContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return [
        MemberVotesOut(user_id=row.user_id, username=row.username, allocations=allocations_to_out(row.allocations))
        for row in prediction_service.list_episode_votes(db, league_id, episode_id)
    ]


@app.put("/admin/leagues/{league_id}/episodes/{episode_id}/votes", response_model=OkOut)
def admin_set_votes(
    league_id: int,
    episode_id: int,
    payload: AdminVotesIn,
    capability: AdminCapability = Depends(get_admin_capability),
    db: Session = Depends(get_db),
):
    prediction_service.admin_set_votes(db, capability, league_id, payload.user_id, episode_id, payload.allocations)
    return OkOut()
