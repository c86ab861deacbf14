"""Entry model: one row per file or folder.

Provides the ``EntryBase`` non-table base class.  Subclass with
``table=True`` and a custom ``__tablename__`` to store entries in a
different table.
"""

from __future__ import annotations

from sqlalchemy import LargeBinary
from sqlmodel import Field, SQLModel

MAX_IDENTIFIER_LENGTH: int = 1024


class EntryBase(SQLModel):
    """Base fields for an entry. Subclass with ``table=True`` for a concrete table.

    ``entry_id`` is the full identifier inside the storage: folders end
    with ``/``, files never do.  ``data`` is ``None`` for folders.
    """

    storage: int = Field(
        primary_key=True,
        foreign_key="tablefs_storages.uid",
        ondelete="CASCADE",
    )
    entry_id: str = Field(primary_key=True, max_length=MAX_IDENTIFIER_LENGTH)
    data: bytes | None = Field(default=None, sa_type=LargeBinary)


class Entry(EntryBase, table=True):
    """Default entry table: ``tablefs_entries``."""

    __tablename__ = "tablefs_entries"
