"""Tests for LocalDriver — directory-backed storage with path security."""

from __future__ import annotations

import pytest

from tablefs.fs.exceptions import (
    ConflictError,
    ExistingTargetFolderError,
    FileNotFoundInStorageError,
    FolderNotFoundError,
    InvalidArgumentError,
    StorageError,
)
from tablefs.fs.local_driver import LocalDriver
from tablefs.fs.protocol import StorageDriver


@pytest.fixture
def disk(tmp_path):
    base = tmp_path / "disk"
    base.mkdir()
    return base


@pytest.fixture
def local(disk):
    return LocalDriver(5, disk)


class TestConstruction:
    def test_implements_protocol(self, local):
        assert isinstance(local, StorageDriver)
        assert local.transactional is False

    def test_relative_base_path(self):
        with pytest.raises(StorageError):
            LocalDriver(5, "relative/dir")

    def test_missing_base_path(self, tmp_path):
        with pytest.raises(StorageError):
            LocalDriver(5, tmp_path / "missing")

    def test_base_path_is_file(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(StorageError):
            LocalDriver(5, target)


class TestPathSecurity:
    async def test_traversal_rejected(self, local):
        assert await local.file_exists("/../outside.txt") is False
        with pytest.raises(InvalidArgumentError):
            await local.get_file_contents("/../outside.txt")

    async def test_symlink_rejected(self, local, disk, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("secret")
        (disk / "link").symlink_to(outside)
        assert await local.folder_exists("/link/") is False
        with pytest.raises(InvalidArgumentError):
            await local.get_file_contents("/link/secret.txt")

    async def test_symlinks_skipped_in_listing(self, local, disk, tmp_path):
        (tmp_path / "real.txt").write_text("x")
        (disk / "alias.txt").symlink_to(tmp_path / "real.txt")
        (disk / "plain.txt").write_text("y")
        assert await local.get_files_in_folder("/") == ["/plain.txt"]


class TestStructure:
    async def test_root_and_default(self, local):
        assert await local.get_root_level_folder() == "/"
        assert await local.get_default_folder() == "/user_upload/"

    async def test_create_folder(self, local, disk):
        assert await local.create_folder("docs") == "/docs/"
        assert (disk / "docs").is_dir()
        assert await local.folder_exists("/docs") is True
        assert await local.folder_exists_in_folder("docs", "/") is True

    async def test_create_recursive(self, local, disk):
        assert await local.create_folder("a/b", recursive=True) == "/a/b/"
        assert (disk / "a" / "b").is_dir()

    async def test_create_existing(self, local):
        await local.create_folder("docs")
        with pytest.raises(ExistingTargetFolderError):
            await local.create_folder("docs")

    async def test_create_parent_missing(self, local):
        with pytest.raises(FolderNotFoundError):
            await local.create_folder("x", "/missing/")

    async def test_listing(self, local, disk):
        (disk / "b").mkdir()
        (disk / "a").mkdir()
        (disk / "z.txt").write_text("z")
        (disk / "y.txt").write_text("y")
        assert await local.get_folders_in_folder("/") == ["/a/", "/b/"]
        assert await local.get_files_in_folder("/") == ["/y.txt", "/z.txt"]

    async def test_listing_missing(self, local):
        with pytest.raises(FolderNotFoundError):
            await local.get_files_in_folder("/missing/")

    async def test_permissions(self, local):
        assert await local.get_permissions("/") == {"r": True, "w": True}


class TestFiles:
    async def test_write_and_read(self, local, disk):
        identifier = await local.add_file_contents(b"data", "/", "a.txt")
        assert identifier == "/a.txt"
        assert (disk / "a.txt").read_bytes() == b"data"
        assert await local.get_file_contents(identifier) == b"data"
        assert await local.file_exists(identifier) is True
        assert await local.file_exists_in_folder("a.txt", "/") is True

    async def test_folder_is_not_a_file(self, local):
        await local.create_folder("docs")
        assert await local.file_exists("/docs/") is False

    async def test_no_overwrite(self, local):
        await local.add_file_contents(b"old", "/", "a.txt")
        with pytest.raises(ConflictError):
            await local.add_file_contents(b"new", "/", "a.txt")
        assert await local.get_file_contents("/a.txt") == b"old"

    async def test_name_sanitized(self, local):
        assert await local.add_file_contents(b"x", "/", "../evil.txt") == "/.._evil.txt"

    async def test_target_missing(self, local):
        with pytest.raises(FolderNotFoundError):
            await local.add_file_contents(b"x", "/missing/", "a.txt")

    async def test_read_missing(self, local):
        with pytest.raises(FileNotFoundInStorageError):
            await local.get_file_contents("/nope.txt")

    async def test_delete_file(self, local, disk):
        await local.add_file_contents(b"x", "/", "a.txt")
        assert await local.delete_file("/a.txt") is True
        assert not (disk / "a.txt").exists()

    async def test_delete_missing_file(self, local):
        with pytest.raises(FileNotFoundInStorageError):
            await local.delete_file("/nope.txt")


class TestDeleteFolder:
    async def test_empty(self, local, disk):
        await local.create_folder("docs")
        assert await local.delete_folder("/docs/") is True
        assert not (disk / "docs").exists()

    async def test_non_empty(self, local, disk):
        await local.create_folder("docs")
        await local.add_file_contents(b"x", "/docs/", "a.txt")
        assert await local.delete_folder("/docs/") is False
        assert (disk / "docs" / "a.txt").exists()

    async def test_recursive(self, local, disk):
        await local.create_folder("docs/sub", recursive=True)
        await local.add_file_contents(b"x", "/docs/sub/", "a.txt")
        assert await local.delete_folder("/docs/", recursive=True) is True
        assert not (disk / "docs").exists()

    async def test_root_refused(self, local):
        with pytest.raises(InvalidArgumentError):
            await local.delete_folder("/", recursive=True)

    async def test_missing(self, local):
        with pytest.raises(FolderNotFoundError):
            await local.delete_folder("/nope/")
