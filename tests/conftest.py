"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database (one shared connection via
``StaticPool``) and an in-memory Redis double for the lockout counters.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, aclosing, asynccontextmanager

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from bagelfunds.auth.jwt import create_session_token
from bagelfunds.auth.service import register_user
from bagelfunds.config import get_settings
from bagelfunds.database import close_db, get_engine, get_session, init_db
from bagelfunds.db.base import Base
from bagelfunds.db.models import User
from bagelfunds.dependencies import get_redis_dep
from bagelfunds.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "bagels4ever"


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the login counters."""

    def __init__(self) -> None:
        self.store: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        value = self.store.get(key)
        return None if value is None else str(value)

    async def incr(self, key: str) -> int:
        self.store[key] = self.store.get(key, 0) + 1
        return self.store[key]

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)


class FakePipeline:
    """Queues commands and runs them in order on ``execute()``."""

    def __init__(self, redis: FakeRedis) -> None:
        self.redis = redis
        self.commands: list[tuple[str, tuple]] = []

    def incr(self, key: str) -> FakePipeline:
        self.commands.append(("incr", (key,)))
        return self

    def expire(self, key: str, seconds: int) -> FakePipeline:
        self.commands.append(("expire", (key, seconds)))
        return self

    async def execute(self) -> list:
        return [await getattr(self.redis, name)(*args) for name, args in self.commands]


@asynccontextmanager
async def open_session() -> AsyncIterator[AsyncSession]:
    """A session that is always closed before the next request runs."""
    async with aclosing(get_session()) as sessions:
        yield await anext(sessions)


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema in an in-memory SQLite database."""
    get_settings.cache_clear()
    await init_db(TEST_DATABASE_URL, poolclass=StaticPool)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service-level tests."""
    async with open_session() as session:
        yield session


@pytest.fixture
def session_scope(database: None) -> Callable[[], AbstractAsyncContextManager[AsyncSession]]:
    """Open short-lived sessions between HTTP calls."""
    return open_session


@pytest_asyncio.fixture
async def client(database: None, fake_redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app. Redirects are not followed."""
    app = create_app()
    app.dependency_overrides[get_redis_dep] = lambda: fake_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(database: None) -> Callable[..., Awaitable[User]]:
    """Create a user through the signup service and commit it."""

    async def _make(username: str, password: str = TEST_PASSWORD) -> User:
        async with open_session() as db:
            user = await register_user(db, username, f"{username}@example.com", password)
            await db.commit()
            return user

    return _make


def login_as(client: AsyncClient, user: User) -> AsyncClient:
    """Switch the client's session cookie to ``user``."""
    client.cookies.clear()
    client.cookies.set(get_settings().session_cookie_name, create_session_token(user.id))
    return client


@pytest.fixture
def as_user() -> Callable[[AsyncClient, User], AsyncClient]:
    return login_as
