import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fantasy_survivor.db import Base, get_db
from fantasy_survivor.models import Contestant, League, LeagueMember, User, UserRole
from shared import LeagueContext


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ctx(db: Session) -> LeagueContext:
    admin = User(username="admin", role=UserRole.ADMIN.value)
    alice = User(username="alice", role=UserRole.PLAYER.value)
    bob = User(username="bob", role=UserRole.PLAYER.value)
    carol = User(username="carol", role=UserRole.PLAYER.value)
    league = League(name="Survivor 50", season_name="Season 50")
    db.add_all([admin, alice, bob, carol, league])
    db.flush()
    db.add_all([LeagueMember(league_id=league.id, user_id=user.id) for user in (alice, bob, carol)])
    contestants = [
        Contestant(league_id=league.id, name=name) for name in ("Ozzy", "Cirie", "Coach", "Q", "Dee", "Joe")
    ]
    db.add_all(contestants)
    db.commit()
    return LeagueContext(league=league, admin=admin, alice=alice, bob=bob, carol=carol, contestants=contestants)


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    from fantasy_survivor.main import app

    def override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: startup would run init_db/seed against DATABASE_URL.
    yield TestClient(app)
    app.dependency_overrides.clear()
