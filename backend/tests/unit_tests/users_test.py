from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from fantasy_survivor.audit import USER_CREATE, USER_SESSION_ISSUE, USER_UPDATE
from fantasy_survivor.auth import resolve_session
from fantasy_survivor.errors import ForbiddenError, NotFoundError, ValidationError
from fantasy_survivor.models import AuditLog, User, UserRole
from fantasy_survivor.users import create_user, issue_user_session, list_users, update_user
from shared import MOCK_NOW, LeagueContext, admin_capability


def test_create_and_list_users(db: Session, ctx: LeagueContext) -> None:
    user = create_user(db, admin_capability(ctx), "  Dana ", now=MOCK_NOW)

    assert user.username == "dana"
    assert user.role == UserRole.PLAYER.value
    assert [u.username for u in list_users(db)] == ["admin", "alice", "bob", "carol", "dana"]
    [row] = db.execute(select(AuditLog).where(AuditLog.action_type == USER_CREATE)).scalars()
    assert row.actor_user_id == ctx.admin.id
    assert row.after_json == {"username": "dana", "role": "player"}


def test_create_user_rejects_duplicates_and_blank(db: Session, ctx: LeagueContext) -> None:
    admin = admin_capability(ctx)
    with pytest.raises(ValidationError):
        create_user(db, admin, "Alice", now=MOCK_NOW)
    with pytest.raises(ValidationError):
        create_user(db, admin, "   ", now=MOCK_NOW)
    assert len(list_users(db)) == 4


def test_user_admin_operations_need_live_capability(db: Session, ctx: LeagueContext) -> None:
    expired = admin_capability(ctx, expires_at=MOCK_NOW - timedelta(seconds=1))
    with pytest.raises(ForbiddenError):
        create_user(db, expired, "dana", now=MOCK_NOW)
    with pytest.raises(ForbiddenError):
        update_user(db, expired, ctx.bob.id, role=UserRole.ADMIN, now=MOCK_NOW)
    with pytest.raises(ForbiddenError):
        issue_user_session(db, None, ctx.bob.id, now=MOCK_NOW)
    assert not ctx.bob.is_admin


def test_update_user(db: Session, ctx: LeagueContext) -> None:
    admin = admin_capability(ctx)
    updated = update_user(db, admin, ctx.bob.id, username="Robert", role=UserRole.ADMIN, now=MOCK_NOW)

    assert (updated.username, updated.role) == ("robert", "admin")
    [row] = db.execute(select(AuditLog).where(AuditLog.action_type == USER_UPDATE)).scalars()
    assert row.before_json == {"username": "bob", "role": "player"}
    assert row.after_json == {"username": "robert", "role": "admin"}

    with pytest.raises(ValidationError):
        update_user(db, admin, ctx.bob.id, username="alice", now=MOCK_NOW)
    with pytest.raises(NotFoundError):
        update_user(db, admin, 9999, username="ghost", now=MOCK_NOW)
    assert db.get(User, ctx.bob.id).username == "robert"


def test_issue_user_session(db: Session, ctx: LeagueContext) -> None:
    token, session = issue_user_session(db, admin_capability(ctx), ctx.carol.id, now=MOCK_NOW)

    assert resolve_session(db, token, now=MOCK_NOW).id == session.id
    assert session.user_id == ctx.carol.id
    [row] = db.execute(select(AuditLog).where(AuditLog.action_type == USER_SESSION_ISSUE)).scalars()
    assert row.entity_id == ctx.carol.id
    assert token not in str(row.metadata_json)
