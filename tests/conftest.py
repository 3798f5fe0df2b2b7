import os
import sys
from datetime import datetime

import pytest

# --- Ensure backend root is on sys.path so "app" imports work ---
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))  # go up from tests/ to backend root
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

# Settings are read at import time; keep tests off the developer's files
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("LEDGER_PATH", os.path.join(REPO_ROOT, ".pytest-ledger.json"))

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.db import models  # noqa: E402,F401
from app.db.database import Base, get_db  # noqa: E402
from app.scheduling.ledger import DoseLedger  # noqa: E402
from app.scheduling.registry import AlarmRegistry, get_alarm_registry  # noqa: E402
from app.scheduling.storage import InMemoryStore  # noqa: E402

from fakes import FakeClock, FakeRecorder, FakeScheduler, RecordingAlertSink  # noqa: E402

# 2026-10-19 is a Monday; 08:59:31 is just before the 09:00 dose
START = datetime(2026, 10, 19, 8, 59, 31)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def ledger(store, clock):
    return DoseLedger(store, clock)


@pytest.fixture
def alerts():
    return RecordingAlertSink()


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def registry(session_factory, clock, scheduler):
    reg = AlarmRegistry(session_factory, clock=clock, scheduler=scheduler, store=InMemoryStore())
    yield reg
    reg.shutdown()


@pytest.fixture
async def client(session_factory, registry):
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_alarm_registry] = lambda: registry
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def auth_headers(client):
    res = await client.post(
        "/auth/register",
        json={"email": "tester@example.com", "name": "Tester", "password": "s3cret-pass"},
    )
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['access_token']}"}
