"""Custom exceptions for the roster index."""


class RosterIndexError(Exception):
    """Base exception for roster-index errors."""
    pass


class StorageError(RosterIndexError):
    """Base class for storage-related errors"""
    pass


class IndexIOError(StorageError):
    """Raised when an index file cannot be opened, read, written or replaced"""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class MalformedIndexError(StorageError):
    """Raised when an index file violates the fixed-width line format"""

    def __init__(self, message: str, path: str | None = None, offset: int = -1):
        super().__init__(message)
        self.path = path
        self.offset = offset


class EncodingError(StorageError):
    """Raised when a record cannot be encoded as an index line"""
    pass


class EncodingOverflowError(EncodingError):
    """Raised when an entity id does not fit the fixed id width"""

    def __init__(self, message: str, entity_id: int, id_width: int):
        super().__init__(message)
        self.entity_id = entity_id
        self.id_width = id_width


class FeedError(RosterIndexError):
    """Raised when the upstream data feed cannot enumerate entities."""
    pass


class ConfigError(RosterIndexError):
    """Raised when configuration values are missing or invalid."""
    pass
