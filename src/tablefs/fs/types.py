"""Result types: MigrationResult, DownloadResult."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class MigrationResult:
    """Result of a folder migration.

    ``messages`` holds every accumulated error; it is empty on success.
    """

    success: bool
    message: str
    messages: list[str] = field(default_factory=list)
    migrated_files: dict[str, str] = field(default_factory=dict)
    migrated_folders: dict[str, str] = field(default_factory=dict)


@dataclass
class DownloadResult:
    """Result of resolving a combined identifier to downloadable bytes."""

    success: bool
    message: str
    status: int = 200
    content: bytes | None = None
    mime_type: str | None = None
    file_name: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
