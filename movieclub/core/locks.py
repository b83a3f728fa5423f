"""Keyed async locks serializing read-check-write sequences per entity.

Keys are plain strings such as ``balance:<user_id>:credits`` or
``listing:<listing_id>``. ``entity_lock`` acquires every key in sorted order
so two settlements touching the same entities cannot deadlock. Keys already
held by the current task are skipped, which lets a settlement call the ledger
primitives (which lock their own balance key) while it holds that key.

A key's lock lives only while some task holds or waits for it.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator

_locks: dict[str, asyncio.Lock] = {}
_users: dict[str, int] = {}
_held: ContextVar[frozenset[str]] = ContextVar("held_entity_locks", default=frozenset())


def balance_key(user_id: str, currency: str) -> str:
    return f"balance:{user_id}:{currency}"


def _checkout(key: str) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    _users[key] = _users.get(key, 0) + 1
    return lock


def _checkin(key: str) -> None:
    remaining = _users.pop(key) - 1
    if remaining:
        _users[key] = remaining
    else:
        del _locks[key]


@asynccontextmanager
async def entity_lock(*keys: str) -> AsyncIterator[None]:
    held = _held.get()
    wanted = sorted({k for k in keys if k not in held})
    claimed: list[str] = []
    acquired: list[asyncio.Lock] = []
    try:
        for key in wanted:
            lock = _checkout(key)
            claimed.append(key)
            await lock.acquire()
            acquired.append(lock)
        token = _held.set(held | frozenset(wanted))
        try:
            yield
        finally:
            _held.reset(token)
    finally:
        for lock in reversed(acquired):
            lock.release()
        for key in claimed:
            _checkin(key)


def reset_locks() -> None:
    """Drop every lock; only safe when nothing is running (tests, shutdown)."""
    _locks.clear()
    _users.clear()
