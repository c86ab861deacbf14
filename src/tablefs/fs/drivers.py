"""Driver lookup: build the driver for a storage record by backend kind."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from tablefs.models.storages import DATABASE_DRIVER, LOCAL_DRIVER

from .database_driver import DatabaseDriver
from .exceptions import StorageError
from .local_driver import LocalDriver

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tablefs.models.storages import StorageRecordBase

    from .cache import ExistenceCache
    from .protocol import StorageDriver

    DriverBuilder = Callable[..., StorageDriver]

logger = logging.getLogger(__name__)


def _build_database_driver(
    record: StorageRecordBase,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None,
    cache: ExistenceCache | None,
) -> DatabaseDriver:
    assert record.uid is not None
    return DatabaseDriver(record.uid, session_factory, cache=cache, writable=record.is_writable)


def _build_local_driver(
    record: StorageRecordBase,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None,
    cache: ExistenceCache | None,
) -> LocalDriver:
    assert record.uid is not None
    # Migrated files are deleted from disk afterwards, so the location must be unambiguous
    if not record.base_path or not Path(record.base_path).is_absolute():
        raise StorageError(
            f'Storage with ID {record.uid} uses the "{LOCAL_DRIVER}" driver, but does not have '
            "an absolute path configured as base path."
        )
    return LocalDriver(record.uid, record.base_path, writable=record.is_writable)


DRIVERS: dict[str, DriverBuilder] = {
    DATABASE_DRIVER: _build_database_driver,
    LOCAL_DRIVER: _build_local_driver,
}


def register_driver(key: str, builder: DriverBuilder) -> None:
    """Make an additional backend kind available to ``create_driver``."""
    DRIVERS[key] = builder


def create_driver(
    record: StorageRecordBase,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    cache: ExistenceCache | None = None,
    drivers: dict[str, DriverBuilder] | None = None,
) -> StorageDriver:
    """Return a driver for *record*, chosen by ``record.driver``."""
    table = drivers if drivers is not None else DRIVERS
    builder = table.get(record.driver)
    if builder is None:
        raise StorageError(f"Unknown driver {record.driver!r} for storage {record.uid}")
    logger.debug("Building %s driver for storage %s", record.driver, record.uid)
    return builder(record, session_factory=session_factory, cache=cache)
