"""SQLModel database models for tablefs."""

from tablefs.models.entries import Entry, EntryBase
from tablefs.models.files import FileRecord, FileRecordBase
from tablefs.models.storages import (
    DATABASE_DRIVER,
    LOCAL_DRIVER,
    StorageRecord,
    StorageRecordBase,
)

__all__ = [
    "DATABASE_DRIVER",
    "LOCAL_DRIVER",
    "Entry",
    "EntryBase",
    "FileRecord",
    "FileRecordBase",
    "StorageRecord",
    "StorageRecordBase",
]
