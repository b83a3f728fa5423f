import os
from typing import AsyncGenerator, Callable, Iterable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "movieclub_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("ADMIN_PASSWORD", "hunter2")


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory database and lock registry for every test."""
    from movieclub.core.locks import reset_locks
    from movieclub.db.init import init_db

    reset_locks()
    await init_db(database=AsyncMongoMockClient()["movieclub_test"])
    yield
    reset_locks()


@pytest_asyncio.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    from movieclub.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


def _scripted(values: Iterable[float]) -> Callable[[], float]:
    it = iter(values)

    def rng() -> float:
        return next(it)

    return rng


def _cycling(values: Iterable[float]) -> Callable[[], float]:
    seq = list(values)
    state = {"i": 0}

    def rng() -> float:
        v = seq[state["i"] % len(seq)]
        state["i"] += 1
        return v

    return rng


@pytest.fixture
def scripted() -> Callable:
    """Factory for a uniform source that replays the given values in order."""
    return _scripted


@pytest.fixture
def cycling() -> Callable:
    """Factory for a uniform source that loops over the given values forever."""
    return _cycling


@pytest.fixture
def fund() -> Callable:
    async def _fund(user_id: str, amount: int) -> None:
        from movieclub.services import ledger
        await ledger.credit(user_id, amount, "admin_grant")

    return _fund
