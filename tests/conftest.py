import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

import announcements
from database import init_db


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def local_announcements(monkeypatch):
    # keep announcements in process memory, never touch a real Redis
    monkeypatch.setattr(announcements, "REDIS_URL", None)
    monkeypatch.setattr(announcements, "_redis_client", None)
    announcements.clear()
    yield
    announcements.clear()
