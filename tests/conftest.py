"""Shared fixtures for tablefs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from tablefs.fs.cache import MemoryExistenceCache
from tablefs.fs.database_driver import DatabaseDriver
from tablefs.fs.dialect import enable_sqlite_foreign_keys
from tablefs.models import StorageRecord

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Async SQLite engine on a temporary file with all tables created.

    A file database gives every session its own connection, so
    transactions are isolated the way they are on a real server.
    """
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tablefs.db'}", echo=False)
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def storages(session_factory: async_sessionmaker[AsyncSession]) -> list[StorageRecord]:
    """Two database-backed storages with uids 1 and 2."""
    records = [
        StorageRecord(uid=1, name="primary", driver="Database"),
        StorageRecord(uid=2, name="archive", driver="Database"),
    ]
    async with session_factory() as session:
        session.add_all(records)
        await session.commit()
    return records


@pytest.fixture
def cache() -> MemoryExistenceCache:
    """A fresh cache per test so nothing leaks through the process-wide default."""
    return MemoryExistenceCache()


@pytest.fixture
async def driver(
    session_factory: async_sessionmaker[AsyncSession],
    storages: list[StorageRecord],
    cache: MemoryExistenceCache,
    tmp_path: Path,
) -> AsyncIterator[DatabaseDriver]:
    """DatabaseDriver for storage 1."""
    async with DatabaseDriver(1, session_factory, cache=cache, temp_dir=tmp_path) as drv:
        yield drv
