"""LocalDriver: a storage backed by a directory on the host filesystem."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import (
    ConflictError,
    ExistingTargetFolderError,
    FileNotFoundInStorageError,
    FolderNotFoundError,
    InvalidArgumentError,
    OperationFailedError,
    StorageError,
)
from .utils import (
    DEFAULT_FOLDER_IDENTIFIER,
    ROOT_IDENTIFIER,
    normalize_folder_identifier,
    normalize_identifier,
    sanitize_name,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class LocalDriver:
    """Direct disk access. No database, no transactions.

    Identifiers map onto paths below ``base_path``.  ``session`` is
    accepted everywhere for interface compatibility and ignored.

    Security: _resolve_path() ensures all paths stay within base_path
    and never pass through a symlink.
    """

    transactional = False

    def __init__(
        self,
        storage_uid: int,
        base_path: Path | str,
        *,
        sanitizer: Callable[[str], str] | None = None,
        writable: bool = True,
    ) -> None:
        if not Path(base_path).is_absolute():
            raise StorageError(f"Storage {storage_uid} needs an absolute base path, got {base_path!r}")
        self.storage_uid = storage_uid
        self.base_path = Path(base_path).resolve()
        self.writable = writable
        self._sanitizer = sanitizer or sanitize_name

        if not self.base_path.exists():
            raise StorageError(f"Base path does not exist: {self.base_path}")
        if not self.base_path.is_dir():
            raise StorageError(f"Base path is not a directory: {self.base_path}")

    def sanitize_name(self, name: str) -> str:
        return self._sanitizer(name)

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve_path(self, identifier: str) -> Path:
        """Resolve an identifier to a physical path below base_path.

        Rejects symlinks and anything that resolves outside base_path.
        """
        rel = normalize_identifier(identifier).strip("/")
        if not rel:
            return self.base_path

        current = self.base_path
        for part in Path(rel).parts:
            current = current / part
            if current.is_symlink():
                raise InvalidArgumentError(
                    f"Symlinks not allowed: {identifier} contains symlink at "
                    f"{current.relative_to(self.base_path)}"
                )

        resolved = (self.base_path / rel).resolve()
        try:
            resolved.relative_to(self.base_path)
        except ValueError:
            raise InvalidArgumentError(
                f"Path traversal detected: {identifier} resolves outside {self.base_path}"
            ) from None
        return resolved

    def _to_identifier(self, physical_path: Path, is_folder: bool) -> str:
        rel = physical_path.relative_to(self.base_path).as_posix()
        if rel == ".":
            return ROOT_IDENTIFIER
        return f"/{rel}/" if is_folder else f"/{rel}"

    # =========================================================================
    # Structure
    # =========================================================================

    async def get_root_level_folder(self, *, session: AsyncSession | None = None) -> str:
        return ROOT_IDENTIFIER

    async def get_default_folder(self, *, session: AsyncSession | None = None) -> str:
        return DEFAULT_FOLDER_IDENTIFIER

    async def folder_exists(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        try:
            resolved = self._resolve_path(normalize_folder_identifier(identifier))
        except InvalidArgumentError:
            return False
        return await asyncio.to_thread(resolved.is_dir)

    async def file_exists(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        if identifier.endswith("/"):
            return False
        try:
            resolved = self._resolve_path(identifier)
        except InvalidArgumentError:
            return False
        return await asyncio.to_thread(resolved.is_file)

    async def folder_exists_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> bool:
        return await self.folder_exists(normalize_folder_identifier(folder_identifier) + name)

    async def file_exists_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> bool:
        return await self.file_exists(normalize_folder_identifier(folder_identifier) + name)

    async def get_permissions(
        self, identifier: str, *, session: AsyncSession | None = None
    ) -> dict[str, bool]:
        resolved = self._resolve_path(identifier)
        return {
            "r": os.access(resolved, os.R_OK),
            "w": self.writable and os.access(resolved, os.W_OK),
        }

    # =========================================================================
    # Listing & content
    # =========================================================================

    async def _list(self, folder_identifier: str, want_dirs: bool) -> list[str]:
        folder = normalize_folder_identifier(folder_identifier)
        resolved = self._resolve_path(folder)

        def _do_list() -> list[str]:
            if not resolved.is_dir():
                raise FolderNotFoundError(f"Folder not found: {folder}")
            identifiers = []
            for child in resolved.iterdir():
                if child.is_symlink():
                    continue
                if child.is_dir() == want_dirs:
                    identifiers.append(self._to_identifier(child, want_dirs))
            return sorted(identifiers)

        return await asyncio.to_thread(_do_list)

    async def get_files_in_folder(
        self, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> list[str]:
        return await self._list(folder_identifier, want_dirs=False)

    async def get_folders_in_folder(
        self, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> list[str]:
        return await self._list(folder_identifier, want_dirs=True)

    async def get_file_contents(self, identifier: str, *, session: AsyncSession | None = None) -> bytes:
        resolved = self._resolve_path(identifier)
        if not await asyncio.to_thread(resolved.is_file):
            raise FileNotFoundInStorageError(f"File not found: {identifier}")
        try:
            return await asyncio.to_thread(resolved.read_bytes)
        except OSError as e:
            raise OperationFailedError(f"Cannot read {identifier}: {e}") from e

    # =========================================================================
    # Mutation
    # =========================================================================

    async def create_folder(
        self,
        name: str,
        parent_identifier: str = "",
        recursive: bool = False,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        parts = name.split("/") if recursive else [name]
        segments = [s for s in (self.sanitize_name(part) for part in parts) if s]
        if not segments:
            raise InvalidArgumentError(f"Invalid folder name: {name!r}")

        parent = normalize_folder_identifier(parent_identifier)
        if not await self.folder_exists(parent):
            raise FolderNotFoundError(f"Folder not found: {parent}")
        target = parent + "".join(f"{segment}/" for segment in segments)
        resolved = self._resolve_path(target)

        def _do_mkdir() -> None:
            resolved.mkdir(parents=recursive, exist_ok=False)

        try:
            await asyncio.to_thread(_do_mkdir)
        except FileExistsError:
            raise ExistingTargetFolderError(f"Folder already exists: {target}") from None
        except OSError as e:
            raise OperationFailedError(f"Cannot create folder {target}: {e}") from e
        logger.debug("Created folder %s at %s", target, resolved)
        return target

    async def add_file_contents(
        self,
        content: bytes,
        target_folder_identifier: str,
        name: str,
        *,
        session: AsyncSession | None = None,
    ) -> str:
        folder = normalize_folder_identifier(target_folder_identifier)
        if not await self.folder_exists(folder):
            raise FolderNotFoundError(f"Folder not found: {folder}")
        sanitized = self.sanitize_name(name)
        if not sanitized:
            raise InvalidArgumentError(f"Invalid file name: {name!r}")
        identifier = folder + sanitized
        resolved = self._resolve_path(identifier)

        def _do_write() -> None:
            # "xb" fails instead of overwriting an existing file
            with resolved.open("xb") as f:
                f.write(content)

        try:
            await asyncio.to_thread(_do_write)
        except FileExistsError:
            raise ConflictError(f"File already exists: {identifier}") from None
        except OSError as e:
            raise OperationFailedError(f"Cannot write {identifier}: {e}") from e
        logger.debug("Wrote %d bytes to %s", len(content), resolved)
        return identifier

    async def delete_file(self, identifier: str, *, session: AsyncSession | None = None) -> bool:
        resolved = self._resolve_path(identifier)
        if not await asyncio.to_thread(resolved.is_file):
            raise FileNotFoundInStorageError(f"File not found: {identifier}")
        try:
            await asyncio.to_thread(resolved.unlink)
        except OSError as e:
            raise OperationFailedError(f"Cannot delete {identifier}: {e}") from e
        return True

    async def delete_folder(
        self, identifier: str, recursive: bool = False, *, session: AsyncSession | None = None
    ) -> bool:
        folder = normalize_folder_identifier(identifier)
        if folder == ROOT_IDENTIFIER:
            raise InvalidArgumentError("The root folder cannot be deleted")
        resolved = self._resolve_path(folder)
        if not await asyncio.to_thread(resolved.is_dir):
            raise FolderNotFoundError(f"Folder not found: {folder}")

        def _do_delete() -> bool:
            if recursive:
                shutil.rmtree(resolved)
                return True
            if any(resolved.iterdir()):
                return False
            resolved.rmdir()
            return True

        try:
            return await asyncio.to_thread(_do_delete)
        except OSError as e:
            raise OperationFailedError(f"Cannot delete folder {folder}: {e}") from e
