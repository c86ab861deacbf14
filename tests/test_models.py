"""Tests for database models."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, create_engine

from tablefs.models import DATABASE_DRIVER, Entry, FileRecord, StorageRecord


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", echo=False)
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


# ---------------------------------------------------------------------------
# Table creation
# ---------------------------------------------------------------------------


class TestTableCreation:
    def test_tables_exist(self, engine):
        names = inspect(engine).get_table_names()
        assert {"tablefs_entries", "tablefs_storages", "tablefs_files"} <= set(names)

    def test_entry_primary_key(self, engine):
        pk = inspect(engine).get_pk_constraint("tablefs_entries")
        assert pk["constrained_columns"] == ["storage", "entry_id"]


# ---------------------------------------------------------------------------
# Defaults & constraints
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_storage_defaults(self, session: Session):
        record = StorageRecord(uid=1)
        session.add(record)
        session.commit()
        session.refresh(record)
        assert record.driver == DATABASE_DRIVER
        assert record.base_path is None
        assert record.is_writable is True

    def test_folder_entry_has_no_data(self, session: Session):
        session.add(StorageRecord(uid=1))
        session.add(Entry(storage=1, entry_id="/docs/"))
        session.commit()
        assert session.get(Entry, (1, "/docs/")).data is None

    def test_file_record_timestamp(self, session: Session):
        record = FileRecord(storage=1, identifier="/a.txt", identifier_hash="h")
        session.add(record)
        session.commit()
        session.refresh(record)
        assert record.uid is not None
        assert record.updated_at is not None


class TestConstraints:
    def test_entry_identifier_unique_per_storage(self, session: Session):
        session.add_all([StorageRecord(uid=1), StorageRecord(uid=2)])
        session.commit()
        session.add(Entry(storage=1, entry_id="/a.txt", data=b"1"))
        session.add(Entry(storage=2, entry_id="/a.txt", data=b"2"))
        session.commit()

        session.add(Entry(storage=1, entry_id="/a.txt", data=b"3"))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_file_record_hash_unique_per_storage(self, session: Session):
        session.add(FileRecord(storage=1, identifier="/a.txt", identifier_hash="h"))
        session.commit()
        session.add(FileRecord(storage=1, identifier="/a.txt", identifier_hash="h"))
        with pytest.raises(IntegrityError):
            session.commit()
