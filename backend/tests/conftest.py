"""Shared fixtures: in-memory SQLite database, users and bearer tokens."""
import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("S3_ATTACHMENTS_BUCKET", "test-chat-attachments")
os.environ.setdefault("DEBUG", "False")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.database import Base, SessionLocal
from app.db.models import User, UserRole
from app.main import app

# One shared connection so every session sees the same in-memory database
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
SessionLocal.configure(bind=engine)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def api():
    return TestClient(app)


def _make_user(db, email, role, full_name=None, is_active=True):
    user = User(email=email, full_name=full_name, role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def client_user(db):
    return _make_user(db, "asha@example.com", UserRole.client, "Asha Menon")


@pytest.fixture
def other_client(db):
    return _make_user(db, "ravi@example.com", UserRole.client, "Ravi Kumar")


@pytest.fixture
def lawyer(db):
    return _make_user(db, "adv.nair@example.com", UserRole.lawyer, "Adv. Nair")


@pytest.fixture
def other_lawyer(db):
    return _make_user(db, "adv.pillai@example.com", UserRole.lawyer, "Adv. Pillai")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def client_headers(client_user):
    return auth_headers(client_user)


@pytest.fixture
def lawyer_headers(lawyer):
    return auth_headers(lawyer)
