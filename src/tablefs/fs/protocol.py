"""StorageDriver protocol: the capability the migration engine depends on.

Any backend that can list, read, create and delete entries by
identifier implements it.  ``session`` is optional on every method:
the database driver joins the given transaction, non-SQL drivers
ignore it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@runtime_checkable
class StorageDriver(Protocol):
    """Core interface every storage backend implements."""

    storage_uid: int

    # Whether writes join the caller's database transaction.  Migration
    # cleans up after non-transactional targets itself on rollback.
    transactional: bool

    def sanitize_name(self, name: str) -> str: ...

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    async def get_root_level_folder(self, *, session: AsyncSession | None = None) -> str: ...

    async def get_default_folder(self, *, session: AsyncSession | None = None) -> str: ...

    async def folder_exists(self, identifier: str, *, session: AsyncSession | None = None) -> bool: ...

    async def file_exists(self, identifier: str, *, session: AsyncSession | None = None) -> bool: ...

    async def folder_exists_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> bool: ...

    async def file_exists_in_folder(
        self, name: str, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> bool: ...

    async def get_permissions(
        self, identifier: str, *, session: AsyncSession | None = None
    ) -> dict[str, bool]: ...

    # ------------------------------------------------------------------
    # Listing & content
    # ------------------------------------------------------------------

    async def get_files_in_folder(
        self, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> list[str]: ...

    async def get_folders_in_folder(
        self, folder_identifier: str, *, session: AsyncSession | None = None
    ) -> list[str]: ...

    async def get_file_contents(self, identifier: str, *, session: AsyncSession | None = None) -> bytes: ...

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def create_folder(
        self,
        name: str,
        parent_identifier: str = "",
        recursive: bool = False,
        *,
        session: AsyncSession | None = None,
    ) -> str: ...

    async def add_file_contents(
        self,
        content: bytes,
        target_folder_identifier: str,
        name: str,
        *,
        session: AsyncSession | None = None,
    ) -> str: ...

    async def delete_file(self, identifier: str, *, session: AsyncSession | None = None) -> bool: ...

    async def delete_folder(
        self, identifier: str, recursive: bool = False, *, session: AsyncSession | None = None
    ) -> bool: ...
