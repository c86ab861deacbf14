"""Tests for fs/dialect.py — dialect detection, batch insert, SQLite pragmas."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import select

from tablefs.fs.dialect import enable_sqlite_foreign_keys, get_dialect, insert_rows
from tablefs.models import Entry


class TestGetDialect:
    async def test_sqlite_async(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        assert get_dialect(engine) == "sqlite"
        await engine.dispose()

    def test_sqlite_sync(self):
        from sqlmodel import create_engine

        engine = create_engine("sqlite://", echo=False)
        assert get_dialect(engine) == "sqlite"


class TestInsertRows:
    async def test_returns_rowcount(self, session_factory, storages):
        rows = [
            {"storage": 1, "entry_id": "/", "data": None},
            {"storage": 1, "entry_id": "/a/", "data": None},
            {"storage": 1, "entry_id": "/a/b.txt", "data": b"b"},
        ]
        async with session_factory() as session:
            assert await insert_rows(session, Entry, rows) == 3
            await session.commit()

        async with session_factory() as session:
            result = await session.execute(select(Entry.entry_id).order_by(Entry.entry_id))
            assert list(result.scalars()) == ["/", "/a/", "/a/b.txt"]

    async def test_empty_batch(self, session_factory):
        async with session_factory() as session:
            assert await insert_rows(session, Entry, []) == 0


class TestForeignKeys:
    async def test_pragma_enabled(self, async_engine):
        async with async_engine.connect() as conn:
            result = await conn.execute(text("PRAGMA foreign_keys"))
            assert result.scalar_one() == 1

    async def test_in_memory_engine(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        enable_sqlite_foreign_keys(engine)
        async with engine.connect() as conn:
            result = await conn.execute(text("PRAGMA foreign_keys"))
            assert result.scalar_one() == 1
        await engine.dispose()
