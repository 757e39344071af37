import os
import warnings
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

# Set environment variables BEFORE importing app modules
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-32-chars-minimum!!"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

warnings.filterwarnings("ignore", category=DeprecationWarning)

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from giftlist.db.session import Base, get_db
from giftlist.main import app
from giftlist.models import models as models_module


PASSWORD = "Test1234!"


@pytest.fixture
def anyio_backend():
    # SQLAlchemy's async engine only runs on asyncio.
    return "asyncio"


@pytest.fixture(autouse=True)
def db_override(tmp_path):
    db_path = tmp_path / "giftlist-test.db"
    _ = models_module
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    # Every TestClient request may run on its own event loop, so connections are never pooled.
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    async_session = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with async_session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield async_session
    app.dependency_overrides.clear()
    engine.sync_engine.dispose()


@pytest.fixture
def client():
    return TestClient(app)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_user(client):
    """Register a fresh account and return its payload (id, name, email, token)."""

    def _register(name: str = "User", email: str | None = None, password: str = PASSWORD) -> dict:
        email = email or f"user-{uuid4().hex}@example.com"
        res = client.post("/users", json={"name": name, "email": email, "password": password})
        assert res.status_code == 201, res.text
        data = res.json()
        data["headers"] = auth_headers(data["token"])
        return data

    return _register


@pytest.fixture
def make_friends(client):
    """Send a request from `sender` to `recipient`, accept it, and return the friendship id."""

    def _make_friends(sender: dict, recipient: dict) -> int:
        res = client.post("/friends/request", json={"email": recipient["email"]}, headers=sender["headers"])
        assert res.status_code == 201, res.text
        request_id = res.json()["request"]["id"]
        res = client.put(f"/friends/{request_id}/accept", headers=recipient["headers"])
        assert res.status_code == 200, res.text
        return request_id

    return _make_friends
