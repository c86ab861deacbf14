"""DatabaseDriver: a folder hierarchy stored as rows of one table.

Every file and folder is a row keyed by ``(storage, entry_id)``.  Folder
membership is a string-prefix relation on ``entry_id``: there are no
parent pointers.  Multi-row mutations run in one transaction and are
checked against the affected-row count.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from sqlalchemy import and_, func, update
from sqlalchemy import delete as sa_delete
from sqlmodel import select

from .cache import default_cache, has_staged_changes, stage_existence, staged_existence
from .dialect import insert_rows
from .exceptions import (
    ConflictError,
    ExistingTargetFolderError,
    FileNotFoundInStorageError,
    FolderNotFoundError,
    InvalidArgumentError,
    OperationFailedError,
    StorageError,
    TableFSError,
)
from .utils import (
    DEFAULT_FOLDER_IDENTIFIER,
    ROOT_IDENTIFIER,
    detect_mime_type,
    entry_name,
    escape_like,
    file_extension,
    format_combined_identifier,
    hash_identifier,
    is_direct_child,
    is_folder_identifier,
    normalize_folder_identifier,
    normalize_identifier,
    parent_folder_identifier,
    sanitize_name,
    validate_hash_algorithm,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Iterable, Sequence
    from typing import BinaryIO

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tablefs.models.entries import EntryBase

    from .cache import ExistenceCache

    NameFilter = Callable[[str, str, str], bool]

logger = logging.getLogger(__name__)

# Properties derived from the identifier alone
_IDENTIFIER_PROPERTIES: dict[str, Callable[[int, str], Any]] = {
    "name": lambda storage, identifier: entry_name(identifier),
    "extension": lambda storage, identifier: file_extension(identifier),
    "identifier": lambda storage, identifier: identifier,
    "identifier_hash": lambda storage, identifier: hash_identifier(identifier),
    "storage": lambda storage, identifier: storage,
    "folder_hash": lambda storage, identifier: hash_identifier(parent_folder_identifier(identifier)),
}

FILE_INFO_PROPERTIES: tuple[str, ...] = (
    "size",
    "mimetype",
    "name",
    "extension",
    "identifier",
    "identifier_hash",
    "storage",
    "folder_hash",
)


@dataclass
class _Transaction:
    """Session handle for one driver operation."""

    session: AsyncSession
    owns: bool
    aborted: bool = False

    def abort(self) -> None:
        """Discard the operation's changes without raising."""
        self.aborted = True


class DatabaseDriver:
    """Virtual filesystem over the entries table, scoped to one storage.

    Every operation takes an optional ``session``.  A given session is
    borrowed: the driver flushes and leaves commit/rollback to the
    caller.  Without one, the driver opens a session from
    ``session_factory``, commits on success and rolls back on failure.

    Existence checks go through the shared ``ExistenceCache``.  Values
    changed by a mutation are staged on the session and published to
    the cache when it commits.

    ``writable`` mirrors the storage record's flag and is reported by
    ``get_permissions``.
    """

    transactional = True

    def __init__(
        self,
        storage_uid: int,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        cache: ExistenceCache | None = None,
        entry_model: type[EntryBase] | None = None,
        sanitizer: Callable[[str], str] | None = None,
        base_url: str = "",
        temp_dir: str | Path | None = None,
        writable: bool = True,
    ) -> None:
        from tablefs.models.entries import Entry

        self.storage_uid = storage_uid
        self.writable = writable
        self.base_url = base_url
        self._session_factory = session_factory
        self._cache = cache if cache is not None else default_cache()
        self._entry_model: type[EntryBase] = entry_model or Entry  # type: ignore[assignment]
        self._sanitizer = sanitizer or sanitize_name
        self._temp_dir = str(temp_dir) if temp_dir is not None else None
        self._temp_files: list[Path] = []

    @property
    def entry_model(self) -> type[EntryBase]:
        """The SQLModel table class used for entry rows."""
        return self._entry_model

    @property
    def cache(self) -> ExistenceCache:
        return self._cache

    def sanitize_name(self, name: str) -> str:
        return self._sanitizer(name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DatabaseDriver:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Remove temporary files handed out by ``get_file_for_local_processing``."""
        temp_files, self._temp_files = self._temp_files, []
        for path in temp_files:
            await self._remove_temp_file(path)

    # ------------------------------------------------------------------
    # Session Management
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(
        self, session: AsyncSession | None, action: str, identifier: str
    ) -> AsyncGenerator[_Transaction]:
        owns = session is None
        if session is None:
            if self._session_factory is None:
                raise StorageError("DatabaseDriver requires a session or a session_factory")
            session = self._session_factory()

        tx = _Transaction(session=session, owns=owns)
        try:
            yield tx
            if owns:
                if tx.aborted:
                    await session.rollback()
                else:
                    await session.commit()
            elif not tx.aborted:
                await session.flush()
        except TableFSError as e:
            logger.debug("%s rejected for %s: %s", action, identifier, e)
            if owns:
                await session.rollback()
            raise
        except Exception as e:
            logger.error("%s failed for %s: %s", action, identifier, e, exc_info=True)
            if owns:
                await session.rollback()
            raise
        finally:
            if owns:
                await session.close()

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _where_id(self, identifier: str) -> Any:
        model = self._entry_model
        return and_(
            model.storage == self.storage_uid,  # type: ignore[arg-type]
            model.entry_id == identifier,  # type: ignore[arg-type]
        )

    def _where_prefixed(self, folder: str, include_self: bool = False) -> Any:
        """Rows inside *folder*, optionally including the folder row itself."""
        model = self._entry_model
        conditions = [
            model.storage == self.storage_uid,
            model.entry_id.like(escape_like(folder) + "%", escape="\\"),  # type: ignore[attr-defined]
        ]
        if not include_self:
            conditions.append(model.entry_id != folder)
        return and_(*conditions)

    async def _count_prefixed(self, session: AsyncSession, folder: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(self._entry_model).where(self._where_prefixed(folder))
        )
        return result.scalar_one()

    async def _select_prefixed_ids(
        self,
        session: AsyncSession,
        folder: str,
        include_self: bool = False,
        sort: bool = True,
        reverse: bool = False,
    ) -> list[str]:
        model = self._entry_model
        stmt = select(model.entry_id).where(self._where_prefixed(folder, include_self))
        if sort:
            order = model.entry_id.desc() if reverse else model.entry_id.asc()  # type: ignore[attr-defined]
            stmt = stmt.order_by(order)
        result = await session.execute(stmt)
        return list(result.scalars())

    async def _insert_entries(self, session: AsyncSession, rows: list[dict[str, Any]]) -> None:
        inserted = await insert_rows(session, self._entry_model, rows)
        if inserted != len(rows):
            raise OperationFailedError(
                f"Inserted {inserted} of {len(rows)} rows in storage {self.storage_uid}"
            )
        for row in rows:
            self._stage(session, row["entry_id"], True)

    async def _rename_row(self, session: AsyncSession, old_identifier: str, new_identifier: str) -> None:
        """Rewrite one row's identifier in place; the blob is untouched."""
        model = self._entry_model
        result = await session.execute(
            update(model).where(self._where_id(old_identifier)).values(entry_id=new_identifier)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OperationFailedError(
                f"Renaming {old_identifier} to {new_identifier} affected {result.rowcount} rows"
            )
        self._stage(session, old_identifier, False)
        self._stage(session, new_identifier, True)

    # ------------------------------------------------------------------
    # Existence
    # ------------------------------------------------------------------

    def _stage(self, session: AsyncSession, identifier: str, exists: bool) -> None:
        stage_existence(session, self._cache, self.storage_uid, identifier, exists)

    async def _exists(self, session: AsyncSession, identifier: str) -> bool:
        """Cache-first existence check with a row count on miss."""
        identifier = normalize_identifier(identifier)
        staged = staged_existence(session, self.storage_uid, identifier)
        if staged is not None:
            return staged
        if self._cache.has(self.storage_uid, identifier):
            return self._cache.get(self.storage_uid, identifier)

        result = await session.execute(
            select(func.count()).select_from(self._entry_model).where(self._where_id(identifier))
        )
        exists = result.scalar_one() > 0
        # A session with pending writes may see rows nobody else can yet
        if has_staged_changes(session):
            self._stage(session, identifier, exists)
        else:
            self._cache.set(self.storage_uid, identifier, exists)
        return exists

    async def _ensure_root(self, session: AsyncSession) -> None:
        if not await self._exists(session, ROOT_IDENTIFIER):
            logger.debug("Creating root folder for storage %s", self.storage_uid)
            try:
                await self._insert_entries(
                    session, [{"storage": self.storage_uid, "entry_id": ROOT_IDENTIFIER, "data": None}]
                )
            except OperationFailedError as e:
                raise StorageError(f"Could not create root folder for storage {self.storage_uid}") from e

    async def _require_folder(self, session: AsyncSession, identifier: str) -> str:
        folder = normalize_folder_identifier(identifier)
        if folder == ROOT_IDENTIFIER:
            await self._ensure_root(session)
        elif not await self._exists(session, folder):
            raise FolderNotFoundError(f"Folder not found: {folder}")
        return folder

    async def _require_file(self, session: AsyncSession, identifier: str) -> str:
        identifier = normalize_identifier(identifier)
        if is_folder_identifier(identifier) or not await self._exists(session, identifier):
            raise FileNotFoundInStorageError(f"File not found: {identifier}")
        return identifier

    async def _new_file_identifier(self, session: AsyncSession, folder: str, name: str) -> str:
        folder = await self._require_folder(session, folder)
        sanitized = self.sanitize_name(name)
        if not sanitized:
            raise InvalidArgumentError(f"Invalid file name: {name!r}")
        identifier = folder + sanitized
        if await self._exists(session, identifier):
            raise ConflictError(f"File already exists: {identifier}")
        return identifier

    async def file_exists(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        if is_folder_identifier(identifier):
            return False
        async with self._transaction(session, "file_exists", identifier) as tx:
            return await self._exists(tx.session, identifier)

    async def folder_exists(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        folder = normalize_folder_identifier(identifier)
        async with self._transaction(session, "folder_exists", folder) as tx:
            return await self._exists(tx.session, folder)

    async def file_exists_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> bool:
        return await self.file_exists(normalize_folder_identifier(folder_identifier) + name, session=session)

    async def folder_exists_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> bool:
        return await self.folder_exists(normalize_folder_identifier(folder_identifier) + name, session=session)

    async def is_folder_empty(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        folder = normalize_folder_identifier(identifier)
        async with self._transaction(session, "is_folder_empty", folder) as tx:
            return await self._count_prefixed(tx.session, folder) == 0

    async def get_file_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> str:
        identifier = normalize_folder_identifier(folder_identifier) + name
        if not await self.file_exists(identifier, session=session):
            raise FileNotFoundInStorageError(f"File not found: {identifier}")
        return identifier

    async def get_folder_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> str:
        identifier = normalize_folder_identifier(normalize_folder_identifier(folder_identifier) + name)
        if not await self.folder_exists(identifier, session=session):
            raise FolderNotFoundError(f"Folder not found: {identifier}")
        return identifier

    def is_within(self, folder_identifier: str, identifier: str) -> bool:
        return normalize_identifier(identifier).startswith(normalize_folder_identifier(folder_identifier))

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def get_root_level_folder(self, *, session: AsyncSession | None = None) -> str:
        """Return ``/``, creating the root row for this storage if missing."""
        async with self._transaction(session, "get_root_level_folder", ROOT_IDENTIFIER) as tx:
            await self._ensure_root(tx.session)
        return ROOT_IDENTIFIER

    async def get_default_folder(self, *, session: AsyncSession | None = None) -> str:
        return DEFAULT_FOLDER_IDENTIFIER

    async def _create_folder_rows(self, session: AsyncSession, parent: str, segments: Sequence[str]) -> str:
        """Insert every missing folder from *parent* down to the target in one batch."""
        target = parent + "".join(f"{segment}/" for segment in segments)
        if await self._exists(session, target):
            raise ExistingTargetFolderError(f"Folder already exists: {target}")

        missing: list[str] = []
        current = parent
        for segment in segments:
            current = f"{current}{segment}/"
            if not await self._exists(session, current):
                missing.append(current)
        logger.debug("Creating %d folder rows for %s", len(missing), target)
        await self._insert_entries(
            session,
            [{"storage": self.storage_uid, "entry_id": folder, "data": None} for folder in missing],
        )
        return target

    async def create_folder(
        self,
        name: str,
        parent_identifier: str = "",
        recursive: bool = False,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        """Create a folder under *parent_identifier* (the root by default).

        With ``recursive`` every ``/``-separated segment of *name* becomes
        a folder level and missing intermediate folders are created too.
        Returns the full identifier of the deepest folder.
        """
        if recursive:
            segments = [self.sanitize_name(part) for part in name.split("/")]
        else:
            segments = [self.sanitize_name(name)]
        segments = [segment for segment in segments if segment]
        if not segments:
            raise InvalidArgumentError(f"Invalid folder name: {name!r}")

        async with self._transaction(session, "create_folder", name) as tx:
            parent = await self._require_folder(tx.session, parent_identifier)
            return await self._create_folder_rows(tx.session, parent, segments)

    async def delete_folder(
        self, identifier: str, recursive: bool = False, *, session: AsyncSession | None = None
    ) -> bool:
        """Delete a folder.

        Returns ``False`` (and changes nothing) when the folder is not
        empty and ``recursive`` is not set.
        """
        folder = normalize_folder_identifier(identifier)
        async with self._transaction(session, "delete_folder", folder) as tx:
            s = tx.session
            if not await self._exists(s, folder):
                raise FolderNotFoundError(f"Folder not found: {folder}")
            if not recursive and await self._count_prefixed(s, folder) > 0:
                logger.debug("Refusing to delete non-empty folder %s", folder)
                tx.abort()
                return False

            identifiers = await self._select_prefixed_ids(s, folder, include_self=True)
            result = await s.execute(
                sa_delete(self._entry_model)
                .where(self._where_prefixed(folder, True))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(identifiers):
                raise OperationFailedError(
                    f"Deleting {folder} removed {result.rowcount} of {len(identifiers)} rows"
                )
            for deleted in identifiers:
                self._stage(s, deleted, False)
            return True

    async def rename_folder(
        self, identifier: str, new_name: str, *, session: AsyncSession | None = None
    ) -> dict[str, str]:
        folder = normalize_folder_identifier(identifier)
        parent = parent_folder_identifier(folder)
        if f"{parent}{self.sanitize_name(new_name)}/" == folder:
            return {}
        return await self.move_folder_within_storage(folder, parent, new_name, session=session)

    async def move_folder_within_storage(
        self,
        source_identifier: str,
        target_folder_identifier: str,
        new_name: str,
        *,
        session: AsyncSession | None = None,
    ) -> dict[str, str]:
        """Move a folder and everything below it.

        Each row is renamed individually; if any rename does not touch
        exactly one row the whole move is rolled back.  Returns a mapping
        of old identifier to new identifier.
        """
        source = normalize_folder_identifier(source_identifier)
        target = normalize_folder_identifier(target_folder_identifier)
        new_root = f"{target}{self.sanitize_name(new_name)}/"
        if new_root == source:
            return {}
        if target.startswith(source):
            raise OperationFailedError(f"Cannot move folder {source} into itself ({target})")

        async with self._transaction(session, "move_folder", source) as tx:
            s = tx.session
            if not await self._exists(s, source):
                raise FolderNotFoundError(f"Folder not found: {source}")
            await self._require_folder(s, target)
            if await self._exists(s, new_root):
                raise ConflictError(f"Folder already exists: {new_root}")

            mapping: dict[str, str] = {}
            for old_identifier in await self._select_prefixed_ids(s, source, include_self=True):
                new_identifier = new_root + old_identifier[len(source):]
                await self._rename_row(s, old_identifier, new_identifier)
                mapping[old_identifier] = new_identifier
            logger.debug("Moved %d rows from %s to %s", len(mapping), source, new_root)
            return mapping

    async def copy_folder_within_storage(
        self,
        source_identifier: str,
        target_folder_identifier: str,
        new_name: str,
        *,
        session: AsyncSession | None = None,
    ) -> bool:
        """Copy a folder tree.

        Returns ``False`` and rolls back when the batch insert of the
        descendants does not insert every selected row.
        """
        source = normalize_folder_identifier(source_identifier)
        model = self._entry_model
        async with self._transaction(session, "copy_folder", source) as tx:
            s = tx.session
            if not await self._exists(s, source):
                raise FolderNotFoundError(f"Folder not found: {source}")
            target = await self._require_folder(s, target_folder_identifier)
            new_name = self.sanitize_name(new_name)
            if await self._exists(s, f"{target}{new_name}/"):
                raise ConflictError(f"Folder already exists: {target}{new_name}/")

            result = await s.execute(
                select(model.entry_id, model.data)
                .where(self._where_prefixed(source))
                .order_by(model.entry_id)  # type: ignore[arg-type]
            )
            descendants = result.all()

            new_root = await self._create_folder_rows(s, target, [new_name])
            rows = [
                {
                    "storage": self.storage_uid,
                    "entry_id": new_root + old_identifier[len(source):],
                    "data": data,
                }
                for old_identifier, data in descendants
            ]
            inserted = await insert_rows(s, model, rows)
            if inserted != len(rows):
                logger.warning(
                    "Copy of %s inserted %d of %d rows, rolling back", source, inserted, len(rows)
                )
                tx.abort()
                return False
            for row in rows:
                self._stage(s, row["entry_id"], True)
            return True

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def add_file(
        self,
        local_path: str | Path,
        target_folder_identifier: str,
        name: str = "",
        remove_original: bool = True,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        """Store the bytes of a local file and return the new identifier.

        When ``remove_original`` is set the local file is deleted inside
        the transaction; if that fails the insert is rolled back.
        """
        path = Path(local_path)
        async with self._transaction(session, "add_file", str(path)) as tx:
            s = tx.session
            identifier = await self._new_file_identifier(s, target_folder_identifier, name or path.name)
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise OperationFailedError(f"Cannot read local file {path}: {e}") from e

            await self._insert_entries(s, [{"storage": self.storage_uid, "entry_id": identifier, "data": content}])
            if remove_original:
                try:
                    await asyncio.to_thread(path.unlink)
                except OSError as e:
                    raise OperationFailedError(f"Cannot remove local file {path}: {e}") from e
            return identifier

    async def add_file_contents(
        self,
        content: bytes,
        target_folder_identifier: str,
        name: str,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        async with self._transaction(session, "add_file_contents", name) as tx:
            identifier = await self._new_file_identifier(tx.session, target_folder_identifier, name)
            await self._insert_entries(
                tx.session, [{"storage": self.storage_uid, "entry_id": identifier, "data": content}]
            )
            return identifier

    async def create_file(
        self, name: str, parent_identifier: str, *, session: AsyncSession | None = None
    ) -> str:
        return await self.add_file_contents(b"", parent_identifier, name, session=session)

    async def get_file_contents(self, identifier: str, *, session: AsyncSession | None = None) -> bytes:
        identifier = normalize_identifier(identifier)
        async with self._transaction(session, "get_file_contents", identifier) as tx:
            result = await tx.session.execute(
                select(self._entry_model.data).where(self._where_id(identifier))
            )
            row = result.first()
        if row is None or is_folder_identifier(identifier):
            raise FileNotFoundInStorageError(f"File not found: {identifier}")
        return bytes(row[0] or b"")

    async def set_file_contents(
        self, identifier: str, content: bytes, *, session: AsyncSession | None = None
    ) -> int:
        """Overwrite a file's bytes. Returns the number of bytes written, 0 if no row matched."""
        async with self._transaction(session, "set_file_contents", identifier) as tx:
            identifier = await self._require_file(tx.session, identifier)
            result = await tx.session.execute(
                update(self._entry_model).where(self._where_id(identifier)).values(data=content)
                .execution_options(synchronize_session=False)
            )
            return len(content) if result.rowcount == 1 else 0

    async def dump_file_contents(
        self, identifier: str, stream: BinaryIO, *, session: AsyncSession | None = None
    ) -> int:
        content = await self.get_file_contents(identifier, session=session)
        return stream.write(content)

    async def replace_file(
        self, identifier: str, local_path: str | Path, *, session: AsyncSession | None = None
    ) -> None:
        """Overwrite a file's bytes with the contents of a local file."""
        path = Path(local_path)
        async with self._transaction(session, "replace_file", identifier) as tx:
            identifier = await self._require_file(tx.session, identifier)
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise OperationFailedError(f"Cannot read local file {path}: {e}") from e
            result = await tx.session.execute(
                update(self._entry_model).where(self._where_id(identifier)).values(data=content)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise OperationFailedError(f"Replacing {identifier} affected {result.rowcount} rows")

    async def delete_file(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        """Delete one file. Returns whether exactly one row was removed."""
        async with self._transaction(session, "delete_file", identifier) as tx:
            identifier = await self._require_file(tx.session, identifier)
            result = await tx.session.execute(
                sa_delete(self._entry_model)
                .where(self._where_id(identifier))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning("Deleting %s affected %d rows, rolling back", identifier, result.rowcount)
                tx.abort()
                return False
            self._stage(tx.session, identifier, False)
            return True

    async def rename_file(
        self, identifier: str, new_name: str, *, session: AsyncSession | None = None
    ) -> str:
        identifier = normalize_identifier(identifier)
        new_identifier = parent_folder_identifier(identifier) + self.sanitize_name(new_name)
        if new_identifier == identifier:
            return identifier
        async with self._transaction(session, "rename_file", identifier) as tx:
            await self._require_file(tx.session, identifier)
            if await self._exists(tx.session, new_identifier):
                raise ConflictError(f"File already exists: {new_identifier}")
            await self._rename_row(tx.session, identifier, new_identifier)
            return new_identifier

    async def move_file_within_storage(
        self,
        identifier: str,
        target_folder_identifier: str,
        new_name: str,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        identifier = normalize_identifier(identifier)
        async with self._transaction(session, "move_file", identifier) as tx:
            s = tx.session
            await self._require_file(s, identifier)
            target = await self._require_folder(s, target_folder_identifier)
            new_identifier = target + self.sanitize_name(new_name)
            if new_identifier == identifier:
                return identifier
            if await self._exists(s, new_identifier):
                raise ConflictError(f"File already exists: {new_identifier}")
            await self._rename_row(s, identifier, new_identifier)
            return new_identifier

    async def copy_file_within_storage(
        self,
        identifier: str,
        target_folder_identifier: str,
        name: str,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        identifier = normalize_identifier(identifier)
        async with self._transaction(session, "copy_file", identifier) as tx:
            s = tx.session
            new_identifier = await self._new_file_identifier(s, target_folder_identifier, name)
            result = await s.execute(select(self._entry_model.data).where(self._where_id(identifier)))
            row = result.first()
            if row is None:
                raise FileNotFoundInStorageError(f"File not found: {identifier}")
            await self._insert_entries(
                s, [{"storage": self.storage_uid, "entry_id": new_identifier, "data": row[0] or b""}]
            )
            return new_identifier

    async def hash(self, identifier: str, algorithm: str, *, session: AsyncSession | None = None) -> str:
        """Hex digest of a file's bytes using *algorithm*."""
        name = validate_hash_algorithm(algorithm)
        content = await self.get_file_contents(identifier, session=session)
        return hashlib.new(name, content).hexdigest()

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @staticmethod
    def _passes_filters(identifier: str, name_filters: Iterable[NameFilter]) -> bool:
        name = entry_name(identifier)
        parent = parent_folder_identifier(identifier)
        for name_filter in name_filters:
            if not name_filter(name, identifier, parent):
                logger.debug("Entry %s vetoed by %r", identifier, name_filter)
                return False
        return True

    async def _collect(
        self,
        session: AsyncSession | None,
        folder_identifier: str,
        *,
        files: bool,
        folders: bool,
        recursive: bool,
        name_filters: Iterable[NameFilter],
        sort: bool = False,
        reverse: bool = False,
    ) -> list[str]:
        name_filters = list(name_filters)
        async with self._transaction(session, "list", folder_identifier) as tx:
            folder = await self._require_folder(tx.session, folder_identifier)
            candidates = await self._select_prefixed_ids(tx.session, folder, sort=sort, reverse=reverse)

        identifiers: list[str] = []
        for identifier in candidates:
            is_folder = is_folder_identifier(identifier)
            if (is_folder and not folders) or (not is_folder and not files):
                continue
            if not recursive and not is_direct_child(folder, identifier):
                continue
            if name_filters and not self._passes_filters(identifier, name_filters):
                continue
            identifiers.append(identifier)
        return identifiers

    @staticmethod
    def _paginate(identifiers: list[str], start: int, number_of_items: int) -> list[str]:
        identifiers = identifiers[max(0, start):]
        if number_of_items > 0:
            identifiers = identifiers[:number_of_items]
        return identifiers

    async def get_entries_in_folder(
        self,
        folder_identifier: str,
        start: int = 0,
        number_of_items: int = 0,
        recursive: bool = False,
        name_filters: Iterable[NameFilter] = (),
        sort: bool = False,
        sort_reverse: bool = False,
        *,
        session: AsyncSession | None = None,
    ) -> list[str]:
        """List files and folders below a folder.

        With ``sort`` the result is ordered by identifier, descending when
        ``sort_reverse`` is also set; otherwise the order is whatever the
        database returns.  ``number_of_items=0`` means no limit.  Each name
        filter receives ``(name, identifier, parent_identifier)`` and vetoes
        the entry by returning a falsy value.
        """
        identifiers = await self._collect(
            session, folder_identifier, files=True, folders=True,
            recursive=recursive, name_filters=name_filters, sort=sort, reverse=sort_reverse,
        )
        return self._paginate(identifiers, start, number_of_items)

    async def get_files_in_folder(
        self,
        folder_identifier: str,
        start: int = 0,
        number_of_items: int = 0,
        recursive: bool = False,
        name_filters: Iterable[NameFilter] = (),
        sort: bool = False,
        sort_reverse: bool = False,
        *,
        session: AsyncSession | None = None,
    ) -> list[str]:
        identifiers = await self._collect(
            session, folder_identifier, files=True, folders=False,
            recursive=recursive, name_filters=name_filters, sort=sort, reverse=sort_reverse,
        )
        return self._paginate(identifiers, start, number_of_items)

    async def get_folders_in_folder(
        self,
        folder_identifier: str,
        start: int = 0,
        number_of_items: int = 0,
        recursive: bool = False,
        name_filters: Iterable[NameFilter] = (),
        sort: bool = False,
        sort_reverse: bool = False,
        *,
        session: AsyncSession | None = None,
    ) -> list[str]:
        identifiers = await self._collect(
            session, folder_identifier, files=False, folders=True,
            recursive=recursive, name_filters=name_filters, sort=sort, reverse=sort_reverse,
        )
        return self._paginate(identifiers, start, number_of_items)

    async def count_files_in_folder(
        self,
        folder_identifier: str,
        recursive: bool = False,
        name_filters: Iterable[NameFilter] = (),
        *,
        session: AsyncSession | None = None,
    ) -> int:
        identifiers = await self._collect(
            session, folder_identifier, files=True, folders=False,
            recursive=recursive, name_filters=name_filters,
        )
        return len(identifiers)

    async def count_folders_in_folder(
        self,
        folder_identifier: str,
        recursive: bool = False,
        name_filters: Iterable[NameFilter] = (),
        *,
        session: AsyncSession | None = None,
    ) -> int:
        identifiers = await self._collect(
            session, folder_identifier, files=False, folders=True,
            recursive=recursive, name_filters=name_filters,
        )
        return len(identifiers)

    # ------------------------------------------------------------------
    # Info & permissions
    # ------------------------------------------------------------------

    async def get_permissions(
        self, identifier: str, *, session: AsyncSession | None = None
    ) -> dict[str, bool]:
        return {"r": True, "w": self.writable}

    def get_public_url(self, identifier: str) -> str:
        combined = format_combined_identifier(self.storage_uid, normalize_identifier(identifier))
        return f"{self.base_url}download?id={quote(combined, safe='')}"

    async def get_folder_info_by_identifier(
        self, identifier: str, *, session: AsyncSession | None = None
    ) -> dict[str, Any]:
        folder = normalize_folder_identifier(identifier)
        if not await self.folder_exists(folder, session=session):
            raise FolderNotFoundError(f"Folder not found: {folder}")
        return {"identifier": folder, "name": entry_name(folder), "storage": self.storage_uid}

    async def get_file_info_by_identifier(
        self,
        identifier: str,
        properties: Iterable[str] = (),
        *,
        session: AsyncSession | None = None,
    ) -> dict[str, Any]:
        """Extract metadata properties for a file.

        All of ``FILE_INFO_PROPERTIES`` are returned when *properties* is
        empty.  ``mimetype`` is detected from the bytes of a temporary local
        copy, falling back to the file extension.
        """
        requested = list(properties) or list(FILE_INFO_PROPERTIES)
        unknown = [name for name in requested if name not in FILE_INFO_PROPERTIES]
        if unknown:
            raise InvalidArgumentError(f"Unsupported file info properties: {', '.join(unknown)}")

        identifier = normalize_identifier(identifier)
        model = self._entry_model
        async with self._transaction(session, "get_file_info", identifier) as tx:
            result = await tx.session.execute(
                select(func.length(model.data)).where(self._where_id(identifier))
            )
            row = result.first()
            if row is None or is_folder_identifier(identifier):
                raise FileNotFoundInStorageError(f"File not found: {identifier}")

            info: dict[str, Any] = {}
            for name in requested:
                if name == "size":
                    info[name] = row[0] or 0
                elif name == "mimetype":
                    async with self.local_copy(identifier, session=tx.session) as path:
                        info[name] = await asyncio.to_thread(detect_mime_type, path, path.name)
                else:
                    info[name] = _IDENTIFIER_PROPERTIES[name](self.storage_uid, identifier)
            return info

    # ------------------------------------------------------------------
    # Local copies
    # ------------------------------------------------------------------

    async def _materialize(self, identifier: str, session: AsyncSession | None) -> Path:
        content = await self.get_file_contents(identifier, session=session)
        suffix = Path(entry_name(identifier)).suffix

        def _do_write() -> Path:
            fd, tmp_path = tempfile.mkstemp(prefix="tablefs_", suffix=suffix, dir=self._temp_dir)
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            return Path(tmp_path)

        try:
            return await asyncio.to_thread(_do_write)
        except OSError as e:
            raise OperationFailedError(f"Cannot create local copy of {identifier}: {e}") from e

    async def _remove_temp_file(self, path: Path) -> None:
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError:
            logger.warning("Could not remove temporary file %s", path, exc_info=True)

    @asynccontextmanager
    async def local_copy(
        self, identifier: str, *, session: AsyncSession | None = None
    ) -> AsyncGenerator[Path]:
        """Yield a temporary local copy of a file, removed on exit."""
        path = await self._materialize(identifier, session)
        try:
            yield path
        finally:
            await self._remove_temp_file(path)

    async def get_file_for_local_processing(
        self, identifier: str, *, session: AsyncSession | None = None
    ) -> Path:
        """Return a temporary local copy of a file.

        The copy lives until ``close()`` or the end of ``async with driver``.
        Prefer ``local_copy`` when the copy is only needed briefly.
        """
        path = await self._materialize(identifier, session)
        self._temp_files.append(path)
        return path
