"""
Shared fixtures: in-memory SQLite profile store, a stubbed Dodo API and a
TestClient wired to both through dependency overrides.
"""
import json
import os

# Keep the app from building a real Postgres engine or reading live keys
os.environ["DATABASE_URL"] = ""
os.environ["DODO_PAYMENTS_API_KEY"] = ""
os.environ["DODO_API_KEY"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db.base import Base
from app.db.session import get_db
from app.dependencies.billing import get_dodo_client, get_settings
from app.main import app
from app.models.profile import Profile
from app.models.user import User
from app.services.dodo_client import DodoClient

TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


def add_user(db, user_id, email=None, **profile_fields):
    """Create an auth identity plus its (signup-time) profile."""
    db.add(User(id=user_id, email=email))
    profile = Profile(user_id=user_id, **profile_fields)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def get_profile(db, user_id):
    db.expire_all()
    return db.query(Profile).filter(Profile.user_id == user_id).first()


class DodoStub:
    """In-process stand-in for the Dodo REST API."""

    def __init__(self):
        self.subscriptions = []
        self.requests = []
        self.fail_status = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"message": "rejected"})

        path = request.url.path
        if request.method == "GET" and path == "/subscriptions":
            page = int(request.url.params.get("page_number", "0"))
            size = int(request.url.params.get("page_size", "100"))
            items = self.subscriptions[page * size:(page + 1) * size]
            return httpx.Response(200, json={"items": items})
        if request.method == "PATCH" and path.startswith("/subscriptions/"):
            return httpx.Response(200, json={"subscription_id": path.rsplit("/", 1)[-1]})
        return httpx.Response(404, json={"message": "not found"})

    def client(self, **kwargs) -> DodoClient:
        return DodoClient(
            api_key="test_key",
            base_url="https://test.dodopayments.com",
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )

    @property
    def patches(self):
        return [
            (request.url.path, json.loads(request.content))
            for request in self.requests
            if request.method == "PATCH"
        ]


@pytest.fixture
def dodo():
    return DodoStub()


@pytest.fixture
def client(db, dodo):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: Settings(dodo_api_key="test_key")
    app.dependency_overrides[get_dodo_client] = lambda: dodo.client()
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def make_user(db):
    def _make_user(user_id, email=None, **profile_fields):
        return add_user(db, user_id, email, **profile_fields)
    return _make_user


@pytest.fixture
def load_profile(db):
    def _load_profile(user_id):
        return get_profile(db, user_id)
    return _load_profile
