import os
# The app module builds its engine at import time; point it at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import random
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from luvrix.config import settings
from luvrix.db import Base, get_session
from luvrix.main import app
from luvrix.models.giveaway import Giveaway, Task
from luvrix.models.user import User
from luvrix.routes.winners import get_rng
from luvrix.services.events import EventPublisher, get_event_publisher

ADMIN_EMAIL = "admin@luvrix.io"
PASSWORD = "supersecret"


def now():
    return datetime.now(timezone.utc)


class RecordingPublisher(EventPublisher):
    def __init__(self):
        self.events = []

    def publish(self, name, payload):
        self.events.append((name, payload))


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def events():
    return RecordingPublisher()


@pytest_asyncio.fixture
async def client(session_factory, events, monkeypatch):
    monkeypatch.setattr(settings, "admin_emails", [ADMIN_EMAIL])

    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_event_publisher] = lambda: events
    app.dependency_overrides[get_rng] = lambda: random.Random(1234)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def register_login(ac: AsyncClient, email: str | None = None) -> dict:
    """Register a fresh account and return Authorization headers plus its user id."""
    email = email or f"user-{uuid.uuid4().hex[:10]}@luvrix.io"
    username = f"user_{uuid.uuid4().hex[:10]}"
    r = await ac.post("/auth/register", json={"email": email, "username": username, "password": PASSWORD})
    assert r.status_code == 201, r.text
    user_id = r.json()["id"]
    r = await ac.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {"headers": {"Authorization": f"Bearer {r.json()['access']}"}, "id": user_id, "username": username}


@pytest_asyncio.fixture
async def admin(client):
    return await register_login(client, ADMIN_EMAIL)


# ---------- direct-to-database builders for service tests ----------

async def make_user(session, name: str | None = None) -> User:
    name = name or uuid.uuid4().hex[:10]
    u = User(email=f"{name}@luvrix.io", username=name, password_hash="x")
    session.add(u)
    await session.commit()
    return u


async def make_giveaway(session, *, status="active", required_points=0, end_in=timedelta(days=7), **kw) -> Giveaway:
    start = kw.pop("start_date", now() - timedelta(days=1))
    end_date = kw.pop("end_date", now() + end_in if end_in is not None else None)
    g = Giveaway(
        slug=f"g-{uuid.uuid4().hex[:8]}",
        title="Test giveaway",
        status=status,
        required_points=required_points,
        start_date=start,
        end_date=end_date,
        **kw,
    )
    session.add(g)
    await session.commit()
    return g


async def make_task(session, g: Giveaway, *, points=5, required=False, type="custom", meta=None) -> Task:
    t = Task(
        giveaway_id=g.id,
        type=type,
        title=f"{type} task",
        points=points,
        required=required,
        meta_json=meta or {"type": type},
    )
    session.add(t)
    await session.commit()
    return t
