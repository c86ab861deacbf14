"""Dialect-aware SQL helpers: dialect names, batched inserts, SQLite pragmas."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event, insert

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite', 'postgresql', 'mysql' or the raw dialect name."""
    # AsyncEngine wraps a sync engine
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    if name in ("postgresql", "postgres"):
        return "postgresql"
    if name in ("mysql", "mariadb"):
        return "mysql"
    return name


async def insert_rows(
    session: AsyncSession,
    model: type,
    rows: list[dict[str, Any]],
) -> int:
    """Insert *rows* into *model*'s table with one statement. Returns rowcount.

    Callers compare the rowcount with ``len(rows)``; a mismatch means
    the batch did not fully apply.
    """
    if not rows:
        return 0
    table = model.__table__  # type: ignore[attr-defined]
    result = await session.execute(insert(table).values(rows))
    return result.rowcount  # type: ignore[return-value]


def enable_sqlite_foreign_keys(engine: Engine | AsyncEngine) -> None:
    """Turn on ``PRAGMA foreign_keys`` for every new SQLite connection.

    Without it ``ON DELETE CASCADE`` from storages to entries is ignored.
    """
    sync_engine = getattr(engine, "sync_engine", engine)
    if sync_engine.dialect.name != "sqlite":
        return

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: object, connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[union-attr]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
