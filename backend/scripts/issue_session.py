"""Create a user if needed and print a bearer token for it."""

import argparse
import sys
from pathlib import Path


def main() -> int:
    backend_dir = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(backend_dir))

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("username")
    parser.add_argument("--admin", action="store_true", help="grant the admin role")
    parser.add_argument("--league-id", type=int, help="also add the user to this league")
    args = parser.parse_args()

    from sqlalchemy import select

    from fantasy_survivor.auth import issue_session
    from fantasy_survivor.db import SessionLocal
    from fantasy_survivor.leagues import add_member, is_league_member
    from fantasy_survivor.models import User, UserRole
    from fantasy_survivor.seed import init_db

    init_db()
    db = SessionLocal()
    try:
        username = args.username.strip().lower()
        user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if user is None:
            user = User(username=username, role=UserRole.PLAYER.value)
            db.add(user)
        if args.admin:
            user.role = UserRole.ADMIN.value
        db.commit()

        if args.league_id is not None and not is_league_member(db, args.league_id, user.id):
            add_member(db, user.id, args.league_id, user.id)

        token, session = issue_session(db, user)
        print(token)
        print(f"user={user.username} id={user.id} expires_at={session.expires_at.isoformat()}", file=sys.stderr)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
