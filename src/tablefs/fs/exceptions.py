"""Custom exception hierarchy for the tablefs storage layer."""


class TableFSError(Exception):
    """Base exception for all tablefs errors."""


class EntryNotFoundError(TableFSError):
    """Raised when a file or folder that must exist does not."""


class FolderNotFoundError(EntryNotFoundError):
    """Raised when a required folder does not exist."""


class FileNotFoundInStorageError(EntryNotFoundError):
    """Raised when a required file does not exist."""


class ConflictError(TableFSError):
    """Raised when the target identifier is already occupied."""


class ExistingTargetFolderError(ConflictError):
    """Raised when a folder cannot be created because it already exists."""


class OperationFailedError(TableFSError):
    """Raised when a mutation touched an unexpected number of rows or local I/O failed."""


class InvalidArgumentError(TableFSError):
    """Raised for unsupported property names, hash algorithms or malformed identifiers."""


class PermissionDeniedError(TableFSError):
    """Raised when a folder is not writable."""


class StorageError(TableFSError):
    """Raised on storage configuration failures (unknown driver, missing session, bad base path)."""
