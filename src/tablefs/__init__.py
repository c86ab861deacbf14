"""tablefs: a hierarchical file store held in a single relational table.

Folders and files are rows addressed by slash-delimited identifiers,
with an existence cache and cross-storage folder migration.
"""

__version__ = "0.1.0"

from tablefs.fs import (
    ConflictError,
    DatabaseDriver,
    DownloadResult,
    EntryNotFoundError,
    ExistenceCache,
    FileRegistry,
    FolderNotFoundError,
    InvalidArgumentError,
    LocalDriver,
    MemoryExistenceCache,
    MigrationResult,
    MigrationService,
    OperationFailedError,
    StorageDriver,
    StorageError,
    TableFSError,
    resolve_download,
)
from tablefs.models import Entry, FileRecord, StorageRecord

__all__ = [
    "ConflictError",
    "DatabaseDriver",
    "DownloadResult",
    "Entry",
    "EntryNotFoundError",
    "ExistenceCache",
    "FileRecord",
    "FileRegistry",
    "FolderNotFoundError",
    "InvalidArgumentError",
    "LocalDriver",
    "MemoryExistenceCache",
    "MigrationResult",
    "MigrationService",
    "OperationFailedError",
    "StorageDriver",
    "StorageError",
    "StorageRecord",
    "TableFSError",
    "__version__",
    "resolve_download",
]
