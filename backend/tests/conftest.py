import os
import sys
from datetime import date
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "app" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any app modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_REQUIRE_SSL", "false")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALG", "HS256")
os.environ.setdefault("JWT_ACCESS_MIN", "30")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

# Import the DB session module first so we can patch it before the app is imported
import app.db.session as app_db_session  # type: ignore

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False)

# --- Ensure tests and app code share the SAME in-memory engine/sessionmaker ---
setattr(app_db_session, "ENGINE", ENGINE)
app_db_session.SessionLocal = SessionTesting
app_db_session.get_engine = lambda: ENGINE            # type: ignore
app_db_session.get_sessionmaker = lambda: SessionTesting  # type: ignore

from app.core.security import create_access
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import User, UserProfile

from _helpers import FixedClock


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def db(reset_db):
    session = SessionTesting()

    def _override_get_db():
        yield session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def clock():
    # Wednesday; keeps the plan week (Mon 12th - Sun 18th) inside one month
    return FixedClock(2026, 10, 14, 9, 30, 15, 250000)


REFERENCE_PROFILE = dict(
    weight_kg=70.0,
    height_cm=175.0,
    gender="male",
    activity_level="moderately_active",
    primary_goal="lose_weight",
    target_weight_kg=62.0,
    onboarding_completed=True,
)


def _dob_for_age(age: int, today: date) -> date:
    # Jan 1st so the birthday has always passed by `today`
    return date(today.year - age, 1, 1)


@pytest.fixture
def make_user(db, clock):
    """Create a user with a profile; keyword overrides go onto the profile."""
    counter = {"n": 0}

    def _make(age: int | None = 30, with_profile: bool = True, **overrides) -> User:
        counter["n"] += 1
        user = User(email=f"user{counter['n']}@example.com", is_active=True)
        db.add(user)
        db.flush()
        if with_profile:
            fields = {**REFERENCE_PROFILE, **overrides}
            dob = _dob_for_age(age, clock().date()) if age is not None else None
            db.add(UserProfile(user_id=user.id, date_of_birth=dob, **fields))
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def client(db, user):
    token = create_access(user.id)
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        yield c


@pytest.fixture
def anyio_backend():
    # client tests run on asyncio only
    return "asyncio"
