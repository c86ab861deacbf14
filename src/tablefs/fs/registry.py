"""StorageRepository and FileRegistry: lookups over storage and file records."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlmodel import select

from .utils import entry_name, hash_identifier, normalize_identifier, parent_folder_identifier

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from tablefs.models.files import FileRecordBase
    from tablefs.models.storages import StorageRecordBase


class StorageRepository:
    """Find storage records by uid."""

    def __init__(self, storage_model: type[StorageRecordBase] | None = None) -> None:
        from tablefs.models.storages import StorageRecord

        self._storage_model: type[StorageRecordBase] = storage_model or StorageRecord  # type: ignore[assignment]

    async def find_by_uid(self, session: AsyncSession, uid: int) -> StorageRecordBase | None:
        return await session.get(self._storage_model, uid)


class FileRegistry:
    """The file registry: which storage and identifier hold a logical file."""

    def __init__(self, file_model: type[FileRecordBase] | None = None) -> None:
        from tablefs.models.files import FileRecord

        self._file_model: type[FileRecordBase] = file_model or FileRecord  # type: ignore[assignment]

    def _values(self, storage: int, identifier: str) -> dict[str, object]:
        return {
            "storage": storage,
            "identifier": identifier,
            "identifier_hash": hash_identifier(identifier),
            "folder_hash": hash_identifier(parent_folder_identifier(identifier)),
            "name": entry_name(identifier),
            "updated_at": datetime.now(UTC),
        }

    async def index_file(self, session: AsyncSession, storage: int, identifier: str) -> FileRecordBase:
        """Register a file and return the new record."""
        record = self._file_model(**self._values(storage, normalize_identifier(identifier)))
        session.add(record)
        await session.flush()
        return record

    async def get(self, session: AsyncSession, storage: int, identifier: str) -> FileRecordBase | None:
        model = self._file_model
        result = await session.execute(
            select(model).where(
                model.storage == storage,  # type: ignore[arg-type]
                model.identifier_hash == hash_identifier(normalize_identifier(identifier)),  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def relocate(
        self,
        session: AsyncSession,
        old_storage: int,
        old_identifier: str,
        new_storage: int,
        new_identifier: str,
    ) -> int:
        """Point a registered file at its new location. Returns the number of rows updated."""
        model = self._file_model
        result = await session.execute(
            update(model)
            .where(
                model.storage == old_storage,  # type: ignore[arg-type]
                model.identifier_hash == hash_identifier(old_identifier),  # type: ignore[arg-type]
            )
            .values(**self._values(new_storage, new_identifier))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[return-value]
