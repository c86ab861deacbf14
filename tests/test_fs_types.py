"""Tests for FS result dataclasses."""

from __future__ import annotations

from tablefs.fs.types import DownloadResult, MigrationResult


class TestMigrationResult:
    def test_defaults(self):
        result = MigrationResult(success=True, message="done")
        assert result.messages == []
        assert result.migrated_files == {}
        assert result.migrated_folders == {}

    def test_defaults_not_shared(self):
        first = MigrationResult(success=False, message="x")
        second = MigrationResult(success=False, message="y")
        first.messages.append("boom")
        assert second.messages == []


class TestDownloadResult:
    def test_defaults(self):
        result = DownloadResult(success=False, message="missing", status=404)
        assert result.content is None
        assert result.mime_type is None
        assert result.file_name is None
        assert result.headers == {}
