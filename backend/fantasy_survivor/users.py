from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit
from .auth import AdminCapability, issue_session, require_admin
from .errors import NotFoundError, ValidationError
from .models import User, UserRole, UserSession


def normalize_username(value: str) -> str:
    username = value.strip().lower()
    if not username:
        raise ValidationError("Username is required")
    return username


def get_user_or_raise(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(db: Session) -> list[User]:
    return list(db.execute(select(User).order_by(User.id)).scalars())


def create_user(
    db: Session,
    admin: AdminCapability,
    username: str,
    role: UserRole = UserRole.PLAYER,
    now: datetime | None = None,
) -> User:
    require_admin(admin, now)
    user = User(username=normalize_username(username), role=role.value)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Username already exists") from exc

    audit.log_audit(
        db,
        actor_user_id=admin.user_id,
        action_type=audit.USER_CREATE,
        entity_type="user",
        entity_id=user.id,
        after={"username": user.username, "role": user.role},
    )
    return user


def update_user(
    db: Session,
    admin: AdminCapability,
    user_id: int,
    username: str | None = None,
    role: UserRole | None = None,
    now: datetime | None = None,
) -> User:
    require_admin(admin, now)
    user = get_user_or_raise(db, user_id)
    before = {"username": user.username, "role": user.role}
    if username is not None:
        user.username = normalize_username(username)
    if role is not None:
        user.role = role.value
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Username already exists") from exc

    audit.log_audit(
        db,
        actor_user_id=admin.user_id,
        action_type=audit.USER_UPDATE,
        entity_type="user",
        entity_id=user.id,
        before=before,
        after={"username": user.username, "role": user.role},
    )
    return user


def issue_user_session(
    db: Session, admin: AdminCapability, user_id: int, now: datetime | None = None
) -> tuple[str, UserSession]:
    """Mint a bearer token for another user; there is no password login."""
    require_admin(admin, now)
    user = get_user_or_raise(db, user_id)
    token, session = issue_session(db, user, now=now)
    audit.log_audit(
        db,
        actor_user_id=admin.user_id,
        action_type=audit.USER_SESSION_ISSUE,
        entity_type="user",
        entity_id=user.id,
    )
    return token, session
