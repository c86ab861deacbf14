"""Identifier utilities, name sanitization, hashing helpers."""

from __future__ import annotations

import hashlib
import mimetypes
import posixpath
import re
from pathlib import Path

import filetype

from .exceptions import InvalidArgumentError

ROOT_IDENTIFIER = "/"
DEFAULT_FOLDER_IDENTIFIER = "/user_upload/"

# Characters that cannot appear in a single name component
_UNSAFE_NAME_CHARS = re.compile(r'[\x00-\x1f\x7f/\\:*?"<>|]')


# =============================================================================
# Identifier Utilities
# =============================================================================


def is_folder_identifier(identifier: str) -> bool:
    """Folder identifiers end with ``/``."""
    return identifier.endswith("/")


def is_file_identifier(identifier: str) -> bool:
    return not identifier.endswith("/")


def normalize_identifier(identifier: str) -> str:
    """Ensure a single leading ``/``.

    Examples:
        normalize_identifier("a/b.txt") -> "/a/b.txt"
        normalize_identifier("//a/") -> "/a/"
        normalize_identifier("") -> "/"
    """
    return "/" + identifier.lstrip("/")


def normalize_folder_identifier(identifier: str) -> str:
    """Normalize a folder identifier so it starts and ends with exactly one ``/``.

    Examples:
        normalize_folder_identifier("docs") -> "/docs/"
        normalize_folder_identifier("/docs///") -> "/docs/"
        normalize_folder_identifier("") -> "/"
    """
    stripped = identifier.strip("/")
    if not stripped:
        return ROOT_IDENTIFIER
    return f"/{stripped}/"


def parent_folder_identifier(identifier: str) -> str:
    """Return the identifier of the folder containing *identifier*.

    Examples:
        parent_folder_identifier("/a/b.txt") -> "/a/"
        parent_folder_identifier("/a/b/") -> "/a/"
        parent_folder_identifier("/a.txt") -> "/"
        parent_folder_identifier("/") -> "/"
    """
    parent = posixpath.dirname(identifier.rstrip("/"))
    return normalize_folder_identifier(parent)


def entry_name(identifier: str) -> str:
    """Return the last segment of an identifier (``""`` for the root)."""
    return posixpath.basename(identifier.rstrip("/"))


def file_extension(identifier: str) -> str:
    """Return the lower-cased extension without the dot, or ``""``."""
    name = entry_name(identifier)
    if "." not in name.lstrip("."):
        return ""
    return name.rsplit(".", 1)[1].lower()


def is_direct_child(folder_identifier: str, identifier: str) -> bool:
    """True when *identifier* sits directly inside *folder_identifier*."""
    remainder = identifier[len(folder_identifier):].rstrip("/")
    return bool(remainder) and "/" not in remainder


def escape_like(value: str, escape: str = "\\") -> str:
    """Escape SQL ``LIKE`` wildcards so *value* matches literally."""
    return (
        value.replace(escape, escape * 2)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )


# =============================================================================
# Names
# =============================================================================


def sanitize_name(name: str) -> str:
    """Make a single name component safe to append to an identifier.

    Control characters and ``/ \\ : * ? " < > |`` become ``_``;
    surrounding whitespace and trailing dots are stripped.
    """
    cleaned = _UNSAFE_NAME_CHARS.sub("_", name).strip()
    return cleaned.rstrip(".")


# =============================================================================
# Hashing & MIME
# =============================================================================


def hash_identifier(identifier: str) -> str:
    """sha1 hex digest used for ``identifier_hash`` / ``folder_hash`` columns."""
    return hashlib.sha1(identifier.encode()).hexdigest()  # noqa: S324


def validate_hash_algorithm(algorithm: str) -> str:
    """Return the canonical algorithm name or raise ``InvalidArgumentError``.

    Variable-length digests (``shake_*``) are rejected because they need
    an explicit length.
    """
    name = algorithm.lower()
    if name not in hashlib.algorithms_available or name.startswith("shake"):
        raise InvalidArgumentError(f"Hash algorithm not supported: {algorithm}")
    return name


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type of a file based on its name."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


def detect_mime_type(source: bytes | str | Path, filename: str) -> str:
    """Detect the MIME type from the leading bytes of *source*.

    *source* is raw content or a path to read.  Falls back to the
    extension of *filename* when the content has no known signature.
    """
    if isinstance(source, Path):
        source = str(source)
    kind = filetype.guess(source)
    if kind is not None:
        return kind.mime
    return guess_mime_type(filename)


# =============================================================================
# Combined Identifiers
# =============================================================================


def parse_combined_identifier(combined: str) -> tuple[int, str]:
    """Split ``"<storage>:<identifier>"`` into its parts.

    Examples:
        parse_combined_identifier("3:/a/b.pdf") -> (3, "/a/b.pdf")
    """
    storage, sep, identifier = combined.partition(":")
    if not sep or not storage.strip().isdigit() or not identifier:
        raise InvalidArgumentError(f"Malformed combined identifier: {combined!r}")
    return int(storage), normalize_identifier(identifier)


def format_combined_identifier(storage: int, identifier: str) -> str:
    return f"{storage}:{identifier}"
