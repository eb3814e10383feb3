"""Name-to-id indexes for league statistics lookups."""
from .config import IndexConfig
from .catalog import RosterCatalog, LookupResult
from .storage import IndexBuilder, IndexReader, build_index, lookup

__version__ = "0.1.0"

__all__ = ["IndexConfig", "RosterCatalog", "LookupResult",
           "IndexBuilder", "IndexReader", "build_index", "lookup"]
