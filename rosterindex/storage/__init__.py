"""
Fixed-width, sorted, disk-resident key index.

An index file is a sequence of equally long lines sorted by key:

    babe-ruth h 000121
    ruth-0-h  h 000001
    ruth-1-p  p 000002

The builder writes it wholesale (atomically, alongside a keys-only name
file); the reader binary searches it with one seek per probe, deriving
the line length from the first line. Nothing else is stored: no header,
no footer, no offset table.
"""
from .schema import FieldKind, FieldSpec, IndexSchema, IndexLayout, MAX_LINE_LENGTH, entity_schema
from .builder import Entity, IndexRecord, BuildReport, IndexBuilder, resolve_keys, build_index
from .reader import ReaderStats, IndexEntry, IndexReader, compare_key, lookup
from .names import NameFile
from .utilities import verify_index, format_size

__all__ = [
    "FieldKind", "FieldSpec", "IndexSchema", "IndexLayout", "MAX_LINE_LENGTH", "entity_schema",
    "Entity", "IndexRecord", "BuildReport", "IndexBuilder", "resolve_keys", "build_index",
    "ReaderStats", "IndexEntry", "IndexReader", "compare_key", "lookup",
    "NameFile",
    "verify_index", "format_size",
]
