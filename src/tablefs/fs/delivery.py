"""Resolve a combined identifier to downloadable bytes and response headers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .drivers import create_driver
from .exceptions import EntryNotFoundError, InvalidArgumentError, StorageError
from .registry import StorageRepository
from .types import DownloadResult
from .utils import detect_mime_type, entry_name, parse_combined_identifier

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .cache import ExistenceCache

logger = logging.getLogger(__name__)


def _not_found(message: str) -> DownloadResult:
    return DownloadResult(success=False, message=message, status=404)


async def resolve_download(
    combined_identifier: str | None,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    cache: ExistenceCache | None = None,
    storage_repository: StorageRepository | None = None,
) -> DownloadResult:
    """Look up ``"<storage>:<identifier>"`` and return its bytes.

    Missing, malformed or unresolvable identifiers give a 404 result.
    """
    if not combined_identifier:
        return _not_found("No identifier given")
    try:
        storage_uid, identifier = parse_combined_identifier(combined_identifier)
    except InvalidArgumentError as e:
        return _not_found(str(e))

    storages = storage_repository or StorageRepository()
    async with session_factory() as session:
        record = await storages.find_by_uid(session, storage_uid)
    if record is None:
        return _not_found(f"Storage {storage_uid} does not exist")

    try:
        driver = create_driver(record, session_factory=session_factory, cache=cache)
        if not await driver.file_exists(identifier):
            return _not_found(f"File not found: {combined_identifier}")
        content = await driver.get_file_contents(identifier)
    except (EntryNotFoundError, StorageError) as e:
        logger.debug("Download of %s failed: %s", combined_identifier, e)
        return _not_found(str(e))

    file_name = entry_name(identifier)
    mime_type = detect_mime_type(content, file_name)
    return DownloadResult(
        success=True,
        message="OK",
        status=200,
        content=content,
        mime_type=mime_type,
        file_name=file_name,
        headers={
            "Content-Type": mime_type,
            "Content-Disposition": f'inline; filename="{file_name}"',
        },
    )
