"""
Shared fixtures: in-memory SQLite database and a test client bound to it.
No network calls, no LLM.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import create_app
from newsradar.config import settings
from newsradar.database import Base, get_db


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    # bcrypt's minimum cost keeps user creation fast
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def app(db):
    # Not entered as a context manager, so the lifespan (and the real engine) never runs
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)
