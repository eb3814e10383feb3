import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Optional

from cachetools import LRUCache

from ..core.exceptions import IndexIOError, MalformedIndexError
from ..core.keys import Normaliser, normalize_key
from .schema import IndexLayout, IndexSchema, MAX_LINE_LENGTH, PAD, TERMINATOR, entity_schema

logger = logging.getLogger(__name__)


@dataclass
class ReaderStats:
    lookups: int = 0
    hits: int = 0
    misses: int = 0
    rejected_keys: int = 0
    seeks: int = 0
    bytes_read: int = 0
    layout_scans: int = 0


@dataclass(frozen=True)
class IndexEntry:
    key: str
    values: tuple
    schema: IndexSchema = field(compare=False, repr=False)

    def get(self, field_name: str) -> Any:
        """Return a trailing field value by name."""
        return self.values[self.schema.name_to_index(field_name)]

    @property
    def aux_flag(self) -> str:
        return self.get("aux_flag")

    @property
    def entity_id(self) -> int:
        return self.get("entity_id")

    def as_pair(self) -> tuple[str, int]:
        return self.aux_flag, self.entity_id


def compare_key(query: bytes, line: bytes, key_width: int) -> int:
    """
    Compare a query against the key stored at the start of a line.

    The stored key ends at the first padding space or at the end of the key
    column. A stored key that is a strict prefix of the query sorts before
    it, a query that is a strict prefix of the stored key sorts before the
    stored key, and otherwise the first differing byte decides.

    Returns:
        A negative number if the query sorts first, 0 if equal, positive otherwise
    """
    for i in range(key_width):
        stored = line[i]
        if stored == PAD:
            return 0 if i == len(query) else 1
        if i == len(query):
            return -1
        if query[i] != stored:
            return query[i] - stored
    return len(query) - key_width


class IndexReader:
    """
    Point lookups against a fixed-width index file.

    The file is never loaded. A lookup opens the file, learns the line length
    from the first line, and binary searches over byte offsets snapped down
    to line boundaries, reading one line per probe. That is O(log N) seeks of
    one line each.

    The file is reopened for every lookup so a concurrent rebuild, which
    replaces the file atomically, is picked up by the next call. Line layouts
    are cached per file identity (device, inode, size, mtime) so the
    first-line scan only happens once per built file.
    """

    def __init__(self, path: str | Path, schema: IndexSchema,
                 normaliser: Normaliser = normalize_key, layout_cache_size: int = 8):
        self.path = Path(path)
        self.schema = schema
        self.normaliser = normaliser
        self._layouts: LRUCache[tuple, IndexLayout] = LRUCache(maxsize=layout_cache_size)
        self._lock = threading.RLock()
        self.stats = ReaderStats()

    def lookup(self, key: str) -> Optional[IndexEntry]:
        """
        Find the record stored under ``key``.

        Args:
            key: Name to search for; normalised with the builder's rule

        Returns:
            The matching IndexEntry, or None when the key is absent or too
            long to be stored in this file

        Raises:
            IndexIOError: If the file cannot be opened or read
            MalformedIndexError: If the file violates the fixed-width format
        """
        query = self.normaliser(key).encode("utf-8")
        with self._lock:
            self.stats.lookups += 1

        try:
            with open(self.path, "rb") as f:
                entry = self._search(f, query)
        except MalformedIndexError as e:
            if e.path is None:
                e.path = str(self.path)
            raise
        except OSError as e:
            raise IndexIOError(f"Failed to read index {self.path}: {e}", str(self.path)) from e

        with self._lock:
            if entry is None:
                self.stats.misses += 1
            else:
                self.stats.hits += 1
        return entry

    def layout(self) -> Optional[IndexLayout]:
        """Return the layout of the current file, or None if it is empty."""
        try:
            with open(self.path, "rb") as f:
                info = os.fstat(f.fileno())
                if info.st_size == 0:
                    return None
                return self._layout_for(f, info)
        except OSError as e:
            raise IndexIOError(f"Failed to read index {self.path}: {e}", str(self.path)) from e

    def _search(self, f: BinaryIO, query: bytes) -> Optional[IndexEntry]:
        info = os.fstat(f.fileno())
        file_length = info.st_size
        if file_length == 0:
            return None

        layout = self._layout_for(f, info)
        if not query or len(query) > layout.key_width:
            with self._lock:
                self.stats.rejected_keys += 1
            logger.debug("Key %r cannot be stored in %s (key column is %d bytes)",
                         query, self.path, layout.key_width)
            return None

        line_length = layout.line_length
        lo, hi = 0, file_length
        while lo < hi:
            # Snap the midpoint down to the start of a line
            mid = (lo + hi) // 2 // line_length * line_length
            f.seek(mid)
            line = f.read(line_length)
            with self._lock:
                self.stats.seeks += 1
                self.stats.bytes_read += len(line)
            layout.check_line(line, mid)

            cmp = compare_key(query, line, layout.key_width)
            if cmp == 0:
                return IndexEntry(query.decode("utf-8"), layout.decode_fields(line), self.schema)
            if cmp > 0:
                lo = mid + line_length
            else:
                hi = mid
        return None

    def _layout_for(self, f: BinaryIO, info: os.stat_result) -> IndexLayout:
        identity = (info.st_dev, info.st_ino, info.st_size, info.st_mtime_ns)
        with self._lock:
            layout = self._layouts.get(identity)
        if layout is None:
            layout = self._scan_layout(f, info.st_size)
            with self._lock:
                self._layouts[identity] = layout
        return layout

    def _scan_layout(self, f: BinaryIO, file_length: int) -> IndexLayout:
        """Measure the first line, terminator included, and validate the file size."""
        first = f.readline(MAX_LINE_LENGTH)
        with self._lock:
            self.stats.layout_scans += 1
            self.stats.bytes_read += len(first)

        if not first.endswith(TERMINATOR):
            raise MalformedIndexError(
                f"No line terminator within the first {len(first)} bytes", str(self.path), 0)
        line_length = len(first)
        if file_length % line_length:
            raise MalformedIndexError(
                f"File size {file_length} is not a multiple of the {line_length}-byte line length",
                str(self.path), file_length - file_length % line_length)

        logger.debug("Index %s: %d-byte lines, %d records", self.path, line_length,
                     file_length // line_length)
        return self.schema.layout(line_length)


def lookup(path: str | Path, key: str, id_width: int = 6,
           normaliser: Normaliser = normalize_key) -> Optional[tuple[str, int]]:
    """One-shot lookup returning (aux flag, entity id), or None if absent."""
    entry = IndexReader(path, entity_schema(Path(path).stem, id_width), normaliser).lookup(key)
    return None if entry is None else entry.as_pair()
