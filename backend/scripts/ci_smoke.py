import os
import sys
from pathlib import Path


def main() -> int:
    # Ensure `import fantasy_survivor.*` works when running from repo root in CI.
    backend_dir = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(backend_dir))

    database_url = os.environ.get("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is required for CI smoke test")

    from sqlalchemy import func, select

    from fantasy_survivor.db import SessionLocal
    from fantasy_survivor.lock import next_lock_time
    from fantasy_survivor.models import Contestant, League, ScoringRule, User
    from fantasy_survivor.seed import init_db, seed

    safe_url = database_url
    if "://" in safe_url and "@" in safe_url:
        scheme, rest = safe_url.split("://", 1)
        creds, host = rest.split("@", 1)
        if ":" in creds:
            user, _pw = creds.split(":", 1)
            safe_url = f"{scheme}://{user}:***@{host}"
    print("CI smoke DATABASE_URL:", safe_url)

    # 1) Create tables (fresh DB should be empty).
    init_db()

    # 2) Seed must be idempotent: run twice for "from scratch" and "restart".
    db = SessionLocal()
    try:
        seed(db)
        seed(db)

        user_count = int(db.execute(select(func.count()).select_from(User)).scalar_one())
        league_count = int(db.execute(select(func.count()).select_from(League)).scalar_one())
        contestant_count = int(db.execute(select(func.count()).select_from(Contestant)).scalar_one())
        rule_count = int(db.execute(select(func.count()).select_from(ScoringRule)).scalar_one())
    finally:
        db.close()

    if user_count < 1:
        raise RuntimeError("Expected at least 1 seeded user")

    print(
        "OK create_all + seed",
        {
            "users": user_count,
            "leagues": league_count,
            "contestants": contestant_count,
            "scoring_rules": rule_count,
            "next_lock": next_lock_time().isoformat(),
        },
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
