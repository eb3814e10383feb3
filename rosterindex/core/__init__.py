from .exceptions import (
    RosterIndexError,
    StorageError,
    IndexIOError,
    MalformedIndexError,
    EncodingError,
    EncodingOverflowError,
    FeedError,
    ConfigError,
)
from .keys import Normaliser, normalize_key, strip_numeric_suffix, base_key, disambiguated_key

__all__ = [
    "RosterIndexError",
    "StorageError",
    "IndexIOError",
    "MalformedIndexError",
    "EncodingError",
    "EncodingOverflowError",
    "FeedError",
    "ConfigError",
    "Normaliser",
    "normalize_key",
    "strip_numeric_suffix",
    "base_key",
    "disambiguated_key",
]
