"""MigrationService: move a folder tree from one storage into another.

The walk runs inside one database transaction.  Per-file failures are
collected as messages instead of aborting the walk; any message forces
a full rollback.  Source entries are deleted only after the target side
has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .drivers import create_driver
from .exceptions import ExistingTargetFolderError, PermissionDeniedError, TableFSError
from .registry import FileRegistry, StorageRepository
from .types import MigrationResult
from .utils import entry_name, is_folder_identifier, normalize_folder_identifier

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .cache import ExistenceCache
    from .drivers import DriverBuilder
    from .protocol import StorageDriver

logger = logging.getLogger(__name__)

ROLLBACK_MESSAGE = "Rolled back changes because errors occurred."
MAX_REASON_LENGTH = 100


@dataclass
class _MigrationState:
    """Accumulator threaded through the recursive walk."""

    errors: list[str] = field(default_factory=list)
    files_to_delete: list[str] = field(default_factory=list)
    folders_to_delete: list[str] = field(default_factory=list)
    created_in_target: list[str] = field(default_factory=list)
    migrated_files: dict[str, str] = field(default_factory=dict)
    migrated_folders: dict[str, str] = field(default_factory=dict)


class MigrationService:
    """Migrates folder trees between storages of any registered driver kind."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        cache: ExistenceCache | None = None,
        drivers: dict[str, DriverBuilder] | None = None,
        storage_repository: StorageRepository | None = None,
        file_registry: FileRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._drivers = drivers
        self._storages = storage_repository or StorageRepository()
        self._files = file_registry or FileRegistry()

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    async def _build_drivers(
        self, source_storage_uid: int, target_storage_uid: int, messages: list[str]
    ) -> tuple[StorageDriver | None, StorageDriver | None]:
        async with self._session_factory() as session:
            source_record = await self._storages.find_by_uid(session, source_storage_uid)
            if source_record is None:
                messages.append("The source storage does not exist.")
            target_record = await self._storages.find_by_uid(session, target_storage_uid)
            if target_record is None:
                messages.append("The target storage does not exist.")
        if source_record is None or target_record is None:
            return None, None

        drivers: list[StorageDriver | None] = []
        for record in (source_record, target_record):
            try:
                drivers.append(
                    create_driver(
                        record,
                        session_factory=self._session_factory,
                        cache=self._cache,
                        drivers=self._drivers,
                    )
                )
            except TableFSError as e:
                messages.append(str(e))
                drivers.append(None)
        return drivers[0], drivers[1]

    async def _resolve_folder(
        self,
        driver: StorageDriver,
        identifier: str | None,
        role: str,
        session: AsyncSession,
        messages: list[str],
    ) -> str | None:
        if identifier is None:
            identifier = await driver.get_root_level_folder(session=session)
        folder = normalize_folder_identifier(identifier)
        if not await driver.folder_exists(folder, session=session):
            messages.append(f"The {role} folder does not exist.")
            return None
        permissions = await driver.get_permissions(folder, session=session)
        if not permissions.get("r"):
            messages.append(f"{role.capitalize()} folder is not accessible.")
            return None
        return folder

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    async def migrate_folder(
        self,
        source_storage_uid: int,
        target_storage_uid: int,
        source_folder: str | None = None,
        target_folder: str | None = None,
    ) -> MigrationResult:
        """Move the contents of *source_folder* into *target_folder*.

        Folders default to the storage roots.  Returns every accumulated
        error message; the result is successful only when there are none.
        """
        messages: list[str] = []
        source_driver, target_driver = await self._build_drivers(
            source_storage_uid, target_storage_uid, messages
        )
        if source_driver is None or target_driver is None:
            return _failed(messages)

        session = self._session_factory()
        try:
            source = await self._resolve_folder(source_driver, source_folder, "source", session, messages)
            target = await self._resolve_folder(target_driver, target_folder, "target", session, messages)
            if source is None or target is None:
                await session.rollback()
                return _failed(messages)

            logger.info(
                "Starting migration from %s:%s to %s:%s",
                source_storage_uid, source, target_storage_uid, target,
            )
            state = await self._migrate_folder_contents(
                session, source_driver, target_driver, [source], source, target, _MigrationState()
            )

            if state.errors:
                await session.rollback()
                logger.error(ROLLBACK_MESSAGE)
                await self._discard_target_writes(target_driver, state)
                return _failed([*state.errors, ROLLBACK_MESSAGE])

            await session.commit()
        except Exception as e:
            logger.error("Migration failed: %s", e, exc_info=True)
            await session.rollback()
            raise
        finally:
            await session.close()

        await self._delete_migrated_sources(source_driver, state)
        logger.info(
            "Migrated %d files and %d folders", len(state.migrated_files), len(state.migrated_folders)
        )
        return MigrationResult(
            success=True,
            message=f"Migrated {len(state.migrated_files)} files and {len(state.migrated_folders)} folders",
            migrated_files=state.migrated_files,
            migrated_folders=state.migrated_folders,
        )

    async def _migrate_folder_contents(
        self,
        session: AsyncSession,
        source_driver: StorageDriver,
        target_driver: StorageDriver,
        sub_path: list[str],
        source_folder: str,
        target_folder: str,
        state: _MigrationState,
    ) -> _MigrationState:
        """Depth-first walk: subfolders first, then the files of *source_folder*."""
        subfolders = sorted(await source_driver.get_folders_in_folder(source_folder, session=session))
        logger.debug("Moving %d subfolders of %s", len(subfolders), source_folder)
        for subfolder in subfolders:
            name = entry_name(subfolder)
            try:
                permissions = await target_driver.get_permissions(target_folder, session=session)
                if not permissions.get("w"):
                    raise PermissionDeniedError(f"Folder {target_folder} is not writable")
                target_subfolder = await target_driver.create_folder(name, target_folder, session=session)
            except PermissionDeniedError:
                message = (
                    f'The target subfolder named "{name}" cannot be created due to missing '
                    f"permissions. Current source subpath: [{', '.join(sub_path)}]"
                )
                logger.error(message)
                state.errors.append(message)
                continue
            except ExistingTargetFolderError:
                message = (
                    f'The target subfolder named "{name}" cannot be created because it already '
                    f"exists. Current source subpath: [{', '.join(sub_path)}]"
                )
                logger.error(message)
                state.errors.append(message)
                continue

            if not target_driver.transactional:
                state.created_in_target.append(target_subfolder)
            state.migrated_folders[subfolder] = target_subfolder
            state = await self._migrate_folder_contents(
                session, source_driver, target_driver,
                [*sub_path, subfolder], subfolder, target_subfolder, state,
            )
            state.folders_to_delete.append(subfolder)

        files = sorted(await source_driver.get_files_in_folder(source_folder, session=session))
        logger.debug("Moving %d files of %s", len(files), source_folder)
        for identifier in files:
            try:
                content = await source_driver.get_file_contents(identifier, session=session)
                new_identifier = await target_driver.add_file_contents(
                    content,
                    normalize_folder_identifier(target_folder),
                    entry_name(identifier).replace("/", "_"),
                    session=session,
                )
                if not target_driver.transactional:
                    state.created_in_target.append(new_identifier)

                updated = await self._files.relocate(
                    session,
                    source_driver.storage_uid,
                    identifier,
                    target_driver.storage_uid,
                    new_identifier,
                )
                if updated != 1:
                    message = (
                        f'Could not update file record for moved file with ID "{identifier}" '
                        f'and new ID "{new_identifier}".'
                    )
                    logger.error(message)
                    state.errors.append(message)
                    continue

                state.files_to_delete.append(identifier)
                state.migrated_files[identifier] = new_identifier
            except Exception as e:
                message = (
                    f'The file with ID "{identifier}" could not be moved. '
                    f'Reason: "{str(e)[:MAX_REASON_LENGTH]}".'
                )
                logger.error(message, exc_info=True)
                state.errors.append(message)

        return state

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def _delete_migrated_sources(self, source_driver: StorageDriver, state: _MigrationState) -> None:
        """Best-effort removal of migrated entries from the source storage."""
        logger.info("Deleting %d files from source storage", len(state.files_to_delete))
        for identifier in state.files_to_delete:
            try:
                await source_driver.delete_file(identifier)
            except Exception:
                logger.error("Deletion of source file %s failed", identifier, exc_info=True)

        logger.info("Deleting %d folders from source storage", len(state.folders_to_delete))
        for identifier in state.folders_to_delete:
            try:
                await source_driver.delete_folder(identifier, recursive=True)
            except Exception:
                logger.error("Deletion of source folder %s failed", identifier, exc_info=True)

    async def _discard_target_writes(self, target_driver: StorageDriver, state: _MigrationState) -> None:
        """Undo writes on a target whose changes the rollback did not cover."""
        for identifier in reversed(state.created_in_target):
            try:
                if is_folder_identifier(identifier):
                    await target_driver.delete_folder(identifier, recursive=True)
                else:
                    await target_driver.delete_file(identifier)
            except Exception:
                logger.warning("Could not remove %s from target storage", identifier, exc_info=True)


def _failed(messages: list[str]) -> MigrationResult:
    return MigrationResult(
        success=False,
        message=messages[-1] if messages else "Migration failed",
        messages=messages,
    )
