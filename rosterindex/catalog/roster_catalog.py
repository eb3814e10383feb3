import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config import IndexConfig
from ..storage import BuildReport, Entity, IndexBuilder, IndexEntry, IndexReader, NameFile, verify_index

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupResult:
    query: str
    match: Optional[IndexEntry] = None
    candidates: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.match is not None


class RosterCatalog:
    """
    Entry point for the player and team indexes.

    The catalog binds each index name to its configured files and schema:

    1. **Rebuild**: write a fresh index and name file from feed entities
    2. **Find**: exact lookup, falling back to the disambiguated keys that
       share the queried name
    3. **Browse / verify**: list stored keys and check file integrity

    One IndexReader is kept per index so its layout cache and statistics
    survive across lookups.
    """

    def __init__(self, config: IndexConfig):
        self.config = config
        self._readers: dict[str, IndexReader] = {}
        self._lock = threading.RLock()

    def reader(self, name: str) -> IndexReader:
        """Return the (shared) reader of an index."""
        with self._lock:
            if name not in self._readers:
                self._readers[name] = IndexReader(
                    self.config.index_path(name), self.config.schema(name), self.config.normaliser)
            return self._readers[name]

    def rebuild(self, name: str, entities: Iterable[Entity]) -> BuildReport:
        """Replace an index and its name file with ones built from ``entities``."""
        builder = IndexBuilder(self.config.schema(name), self.config.normaliser)
        return builder.build(entities, self.config.index_path(name), self.config.names_path(name))

    def rebuild_players(self, entities: Iterable[Entity]) -> BuildReport:
        return self.rebuild("players", entities)

    def rebuild_teams(self, entities: Iterable[Entity]) -> BuildReport:
        return self.rebuild("teams", entities)

    def find(self, name: str, query: str) -> LookupResult:
        """
        Look a name up in an index.

        Args:
            name: Index to search ("players" or "teams")
            query: Name as typed by the user

        Returns:
            A LookupResult holding either the match, or the keys sharing the
            queried name when the exact key is absent (possibly none)
        """
        entry = self.reader(name).lookup(query)
        if entry is not None:
            return LookupResult(query, entry)

        names_path = self.config.names_path(name)
        if not names_path.exists():
            return LookupResult(query)
        candidates = NameFile(names_path, self.config.normaliser).candidates(query)
        if candidates:
            logger.debug("%r is ambiguous in %s: %s", query, name, ", ".join(candidates))
        return LookupResult(query, None, tuple(candidates))

    def find_player(self, query: str) -> LookupResult:
        return self.find("players", query)

    def find_team(self, query: str) -> LookupResult:
        return self.find("teams", query)

    def names(self, name: str, prefix: str = "") -> list[str]:
        """List the stored keys of an index, optionally filtered by prefix."""
        name_file = NameFile(self.config.names_path(name), self.config.normaliser)
        if prefix:
            return name_file.with_prefix(prefix)
        return list(name_file.keys())

    def verify(self, name: str) -> list[str]:
        names_path = self.config.names_path(name)
        return verify_index(self.config.index_path(name), self.config.schema(name),
                            names_path if names_path.exists() else None)
