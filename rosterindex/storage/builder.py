import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ..core.exceptions import EncodingError, IndexIOError
from ..core.keys import Normaliser, normalize_key, base_key, disambiguated_key
from .schema import IndexSchema, MAX_LINE_LENGTH, TERMINATOR, entity_schema

logger = logging.getLogger(__name__)

# (raw name, entity id, aux flag) as supplied by a feed
Entity = tuple[str, int, str]


@dataclass(frozen=True)
class IndexRecord:
    key: str
    aux_flag: str
    entity_id: int


@dataclass
class BuildReport:
    index_path: str
    names_path: Optional[str]
    records: int = 0
    collisions: int = 0
    key_width: int = 0
    line_length: int = 0


def resolve_keys(entities: Iterable[Entity],
                 normaliser: Normaliser = normalize_key) -> tuple[list[IndexRecord], int]:
    """
    Turn raw entities into uniquely keyed records, sorted for the index.

    Entities are grouped by base key. A base key shared by several distinct
    ids gives every one of them a "{base}-{n}-{flag}" key, where ``n`` is the
    rank of the id among the colliding ids in ascending order. The same
    (name, id) pair seen more than once counts as one entity; the last flag
    wins. Flags must already be in normalised form, since they become part
    of disambiguated keys and lookups normalise the whole query.

    Returns:
        The records sorted by the UTF-8 bytes of their keys, and the number
        of base keys that needed disambiguation

    Raises:
        EncodingError: If a name normalises to nothing, a flag changes under
            normalisation, or two final keys clash
    """
    groups: dict[str, dict[int, str]] = {}
    for raw_name, entity_id, aux_flag in entities:
        base = base_key(raw_name, normaliser)
        if not base:
            raise EncodingError(f"Name {raw_name!r} of entity {entity_id} normalises to an empty key")
        if isinstance(aux_flag, str) and normaliser(aux_flag) != aux_flag:
            raise EncodingError(
                f"Flag {aux_flag!r} of entity {entity_id} is not in normalised form "
                f"({normaliser(aux_flag)!r})")
        groups.setdefault(base, {})[entity_id] = aux_flag

    records: list[IndexRecord] = []
    collisions = 0
    for base, members in groups.items():
        if len(members) == 1:
            [(entity_id, aux_flag)] = members.items()
            records.append(IndexRecord(base, aux_flag, entity_id))
            continue

        collisions += 1
        logger.debug("Disambiguating %d entities named %r", len(members), base)
        for ordinal, entity_id in enumerate(sorted(members)):
            aux_flag = members[entity_id]
            records.append(IndexRecord(disambiguated_key(base, ordinal, aux_flag), aux_flag, entity_id))

    records.sort(key=lambda r: r.key.encode("utf-8"))
    for previous, current in zip(records, records[1:]):
        if previous.key == current.key:
            raise EncodingError(
                f"Key {current.key!r} is produced for both entity {previous.entity_id} "
                f"and entity {current.entity_id}")
    return records, collisions


class IndexBuilder:
    """
    Writes a sorted, fixed-width index file and its companion name file.

    The build is all-or-nothing. Every record is encoded in memory first, so
    a bad id or flag fails before any file is touched. Both files are then
    written to temporary files in the target directory, flushed, fsynced and
    moved over the canonical paths with os.replace. Readers see either the
    complete old files or the complete new ones.
    """

    def __init__(self, schema: IndexSchema, normaliser: Normaliser = normalize_key):
        self.schema = schema
        self.normaliser = normaliser

    def build(self, entities: Iterable[Entity], index_path: str | Path,
              names_path: str | Path | None = None) -> BuildReport:
        """
        Build the index from raw entities, replacing any previous index.

        Args:
            entities: (raw name, entity id, aux flag) triples
            index_path: Where the fixed-width index is written
            names_path: Where the keys-only name file is written (optional)

        Returns:
            A BuildReport describing the written files

        Raises:
            EncodingError: If a record cannot be encoded (nothing is written)
            IndexIOError: If writing or replacing a file fails
        """
        index_path = Path(index_path)
        names_path = Path(names_path) if names_path is not None else None

        records, collisions = resolve_keys(entities, self.normaliser)
        keys = [record.key.encode("utf-8") for record in records]
        key_width = max((len(key) for key in keys), default=0)
        if keys and self.schema.line_length(key_width) > MAX_LINE_LENGTH:
            longest = max(records, key=lambda r: len(r.key.encode("utf-8")))
            raise EncodingError(
                f"Key {longest.key[:40]!r}... of entity {longest.entity_id} makes "
                f"{self.schema.line_length(key_width)}-byte lines, over the "
                f"{MAX_LINE_LENGTH}-byte limit")

        lines = [
            self.schema.encode_line(key, {"aux_flag": record.aux_flag,
                                          "entity_id": record.entity_id}, key_width)
            for key, record in zip(keys, records)
        ]

        staged: list[tuple[Path, Path]] = []
        try:
            staged.append((self._stage(index_path, lines), index_path))
            if names_path is not None:
                staged.append((self._stage(names_path, [key + TERMINATOR for key in keys]), names_path))
            for temp_path, target in staged:
                os.replace(temp_path, target)
        except OSError as e:
            raise IndexIOError(f"Failed to write index {index_path}: {e}", str(index_path)) from e
        finally:
            for temp_path, _ in staged:
                temp_path.unlink(missing_ok=True)

        report = BuildReport(
            index_path=str(index_path),
            names_path=str(names_path) if names_path is not None else None,
            records=len(records),
            collisions=collisions,
            key_width=key_width,
            line_length=self.schema.line_length(key_width) if records else 0,
        )
        logger.info("Built %s index %s: %d records, %d disambiguated names, %d-byte lines",
                    self.schema.name, index_path, report.records, report.collisions,
                    report.line_length)
        return report

    @staticmethod
    def _stage(target: Path, lines: list[bytes]) -> Path:
        """Write lines to a temporary file next to ``target`` and return its path."""
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.writelines(lines)
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        return temp_path


def build_index(entities: Iterable[Entity], path: str | Path, id_width: int = 6,
                names_path: str | Path | None = None,
                normaliser: Normaliser = normalize_key) -> BuildReport:
    """One-shot build of an entity index with the (flag, id) schema."""
    builder = IndexBuilder(entity_schema(Path(path).stem, id_width), normaliser)
    return builder.build(entities, path, names_path)
