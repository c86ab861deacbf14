"""File registry model.

The registry maps a logical file to the storage and identifier that
currently hold its bytes.  Migrations rewrite these rows when files
change storage.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class FileRecordBase(SQLModel):
    """Base fields for a registered file. Subclass with ``table=True`` for a concrete table."""

    uid: int | None = Field(default=None, primary_key=True)
    storage: int = Field(index=True)
    identifier: str = Field(max_length=1024)
    identifier_hash: str = Field(default="", max_length=40, index=True)
    folder_hash: str = Field(default="", max_length=40)
    name: str = Field(default="")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class FileRecord(FileRecordBase, table=True):
    """Default file registry table: ``tablefs_files``."""

    __tablename__ = "tablefs_files"
    __table_args__ = (UniqueConstraint("storage", "identifier_hash"),)
