"""Storage layer: drivers, existence cache, migration and delivery."""

from tablefs.fs.cache import ExistenceCache, MemoryExistenceCache, cache_key, default_cache
from tablefs.fs.database_driver import FILE_INFO_PROPERTIES, DatabaseDriver
from tablefs.fs.delivery import resolve_download
from tablefs.fs.drivers import DRIVERS, create_driver, register_driver
from tablefs.fs.exceptions import (
    ConflictError,
    EntryNotFoundError,
    ExistingTargetFolderError,
    FileNotFoundInStorageError,
    FolderNotFoundError,
    InvalidArgumentError,
    OperationFailedError,
    PermissionDeniedError,
    StorageError,
    TableFSError,
)
from tablefs.fs.local_driver import LocalDriver
from tablefs.fs.migration import MigrationService
from tablefs.fs.protocol import StorageDriver
from tablefs.fs.registry import FileRegistry, StorageRepository
from tablefs.fs.types import DownloadResult, MigrationResult

__all__ = [
    "DRIVERS",
    "FILE_INFO_PROPERTIES",
    "ConflictError",
    "DatabaseDriver",
    "DownloadResult",
    "EntryNotFoundError",
    "ExistenceCache",
    "ExistingTargetFolderError",
    "FileNotFoundInStorageError",
    "FileRegistry",
    "FolderNotFoundError",
    "InvalidArgumentError",
    "LocalDriver",
    "MemoryExistenceCache",
    "MigrationResult",
    "MigrationService",
    "OperationFailedError",
    "PermissionDeniedError",
    "StorageDriver",
    "StorageError",
    "StorageRepository",
    "TableFSError",
    "cache_key",
    "create_driver",
    "default_cache",
    "register_driver",
    "resolve_download",
]
