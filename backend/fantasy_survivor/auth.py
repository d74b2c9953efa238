from __future__ import annotations

import hashlib
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import ForbiddenError
from .lock import as_utc, utcnow
from .models import User, UserSession

SESSION_TOKEN_BYTES = int(os.environ.get("SESSION_TOKEN_BYTES", "32"))
SESSION_TOKEN_PREFIX = os.environ.get("SESSION_TOKEN_PREFIX", "fsv")
SESSION_TTL_HOURS = max(1, int(os.environ.get("SESSION_TTL_HOURS", "168")))
SESSION_TOKEN_PEPPER = os.environ.get("SESSION_TOKEN_PEPPER", "").encode("utf-8")
ADMIN_VERIFY_TTL_MINUTES = max(1, int(os.environ.get("ADMIN_VERIFY_TTL_MINUTES", "30")))


@dataclass(frozen=True)
class AdminCapability:
    """
    Proof that an admin re-verified recently. Passed explicitly into core
    operations that admins may perform on other users' behalf.
    """

    user_id: int
    expires_at: datetime

    def is_valid(self, now: datetime | None = None) -> bool:
        return as_utc(now or utcnow()) < as_utc(self.expires_at)


def generate_session_token() -> str:
    return f"{SESSION_TOKEN_PREFIX}_{secrets.token_urlsafe(SESSION_TOKEN_BYTES)}"


def hash_session_token(token: str) -> str:
    digest = hashlib.sha256()
    digest.update(SESSION_TOKEN_PEPPER)
    digest.update(token.encode("utf-8"))
    return digest.hexdigest()


def session_expiry_from_now(now: datetime | None = None) -> datetime:
    return as_utc(now or utcnow()) + timedelta(hours=SESSION_TTL_HOURS)


def issue_session(db: Session, user: User, now: datetime | None = None) -> tuple[str, UserSession]:
    """Create a session row and return the raw bearer token (only its hash is stored)."""
    token = generate_session_token()
    session = UserSession(
        user_id=user.id,
        token_hash=hash_session_token(token),
        expires_at=session_expiry_from_now(now),
    )
    db.add(session)
    db.commit()
    return token, session


def resolve_session(db: Session, token: str, now: datetime | None = None) -> UserSession | None:
    current = as_utc(now or utcnow())
    return db.execute(
        select(UserSession).where(
            UserSession.token_hash == hash_session_token(token),
            UserSession.revoked_at.is_(None),
            UserSession.expires_at > current,
        )
    ).scalar_one_or_none()


def revoke_session(db: Session, session: UserSession, now: datetime | None = None) -> None:
    session.revoked_at = as_utc(now or utcnow())
    db.commit()


def verify_admin(db: Session, user: User, session: UserSession, now: datetime | None = None) -> AdminCapability:
    """Stamp the session with a short-lived admin verification. Caller checks the role."""
    session.admin_verified_until = as_utc(now or utcnow()) + timedelta(minutes=ADMIN_VERIFY_TTL_MINUTES)
    db.commit()
    return AdminCapability(user_id=user.id, expires_at=as_utc(session.admin_verified_until))


def admin_capability_for(user: User, session: UserSession, now: datetime | None = None) -> AdminCapability | None:
    if not user.is_admin or session.admin_verified_until is None:
        return None
    capability = AdminCapability(user_id=user.id, expires_at=as_utc(session.admin_verified_until))
    return capability if capability.is_valid(now) else None


def require_admin(admin: AdminCapability | None, now: datetime | None = None) -> AdminCapability:
    if admin is None or not admin.is_valid(now):
        raise ForbiddenError("Admin re-verification required")
    return admin
