import logging
import os
import time

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .db import Base, engine
from .models import Contestant, League, LeagueMember, User, UserRole
from .scoring import ensure_default_scoring_rules

logger = logging.getLogger(__name__)

ADMIN_USERNAME = (os.environ.get("ADMIN_USERNAME") or "admin").strip().lower()
SEED_DEMO_LEAGUE = os.environ.get("SEED_DEMO_LEAGUE", "false").strip().lower() in {"1", "true", "yes"}
DEMO_LEAGUE_NAME = "Survivor 50"

SURVIVOR50_CONTESTANTS: list[str] = [
    "Angelina", "Charlie", "Tiffany", "Chrissy", "Colby", "Rizo", "Joe", "Savannah",
    "Rick", "Genevieve", "Christian", "Coach", "Ozzy", "Mike", "Cirie", "Q",
    "Dee", "Kamilla", "Stephenie", "Jonathan", "Emily", "Aubry",
]


def init_db():
    # Wait for the database to accept connections
    for attempt in range(30):  # ~30 seconds
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            break
        except OperationalError:
            logger.info("Database not ready (attempt %s/30), retrying", attempt + 1)
            time.sleep(1)
    else:
        raise RuntimeError("Database not ready after 30 seconds")

    Base.metadata.create_all(bind=engine)


def seed_demo_league(db: Session, admin: User) -> League:
    league = db.execute(select(League).where(League.name == DEMO_LEAGUE_NAME)).scalar_one_or_none()
    if league is None:
        league = League(name=DEMO_LEAGUE_NAME, season_name="Season 50")
        db.add(league)
        db.flush()

    member = db.get(LeagueMember, (league.id, admin.id))
    if member is None:
        db.add(LeagueMember(league_id=league.id, user_id=admin.id))

    existing_names = set(
        db.execute(select(Contestant.name).where(Contestant.league_id == league.id)).scalars()
    )
    db.add_all(
        Contestant(league_id=league.id, name=name)
        for name in SURVIVOR50_CONTESTANTS
        if name not in existing_names
    )
    db.commit()
    ensure_default_scoring_rules(db, league.id)
    return league


def seed(db: Session):
    admin = db.execute(select(User).where(User.username == ADMIN_USERNAME)).scalar_one_or_none()
    if admin is None:
        admin = User(username=ADMIN_USERNAME, role=UserRole.ADMIN.value)
        db.add(admin)
    elif not admin.is_admin:
        admin.role = UserRole.ADMIN.value
    db.commit()

    if SEED_DEMO_LEAGUE:
        league = seed_demo_league(db, admin)
        logger.info("Demo league ready: %s (id=%s)", league.name, league.id)
