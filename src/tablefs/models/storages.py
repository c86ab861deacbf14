"""Storage records: the partitions entries and files belong to."""

from __future__ import annotations

from sqlmodel import Field, SQLModel

DATABASE_DRIVER = "Database"
LOCAL_DRIVER = "Local"


class StorageRecordBase(SQLModel):
    """Base fields for a storage. Subclass with ``table=True`` for a concrete table."""

    uid: int | None = Field(default=None, primary_key=True)
    name: str = Field(default="")
    driver: str = Field(default=DATABASE_DRIVER)
    base_path: str | None = Field(default=None)
    is_writable: bool = Field(default=True)


class StorageRecord(StorageRecordBase, table=True):
    """Default storage table: ``tablefs_storages``."""

    __tablename__ = "tablefs_storages"
