from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from ..core.exceptions import EncodingError, EncodingOverflowError, MalformedIndexError

SEPARATOR = b" "
TERMINATOR = b"\n"
PAD = 0x20

# Longest line, terminator included, that readers will measure
MAX_LINE_LENGTH = 4096


class FieldKind(Enum):
    """
    Enum for trailing field kinds.
    """
    FLAG = "flag"
    INT = "int"

    def encode(self, value: Any, width: int) -> bytes:
        """Encode a value into exactly ``width`` ASCII bytes."""
        if self is FieldKind.FLAG:
            if not isinstance(value, str) or len(value) != width:
                raise EncodingError(
                    f"Flag must be exactly {width} character(s), got {value!r}")
            if not value.isascii() or not value.isprintable() or " " in value:
                raise EncodingError(f"Flag must be printable non-space ASCII, got {value!r}")
            return value.encode("ascii")

        if isinstance(value, bool) or not isinstance(value, int):
            raise EncodingError(f"Integer field expects an int, got {value!r}")
        digits = str(value)
        if value < 0 or len(digits) > width:
            raise EncodingOverflowError(
                f"Id {value} does not fit in {width} decimal digits", value, width)
        return digits.zfill(width).encode("ascii")

    def decode(self, raw: bytes) -> Any:
        """Decode a field from its on-disk bytes."""
        if self is FieldKind.FLAG:
            if PAD in raw:
                raise MalformedIndexError(f"Blank flag field {raw!r}")
            return raw.decode("ascii", errors="replace")

        if not raw.isdigit():
            raise MalformedIndexError(f"Non-numeric id field {raw!r}")
        return int(raw)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    width: int
    kind: FieldKind = FieldKind.INT


class IndexSchema:
    """
    Layout descriptor for a fixed-width index file.

    An index line is a key column followed by the trailing fields of the
    schema, each preceded by one separator space, and a newline:

        <key padded to key_width> <field 0> <field 1> ...\\n

    The key column width is not part of the schema. The builder infers it
    from the longest key in the data set and the reader infers it from the
    length of the first line, so a schema only declares what follows the key.
    """

    def __init__(self, name: str, fields: list[FieldSpec]):
        if not fields:
            raise ValueError("IndexSchema must have at least one trailing field")
        names = [f.name for f in fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names in schema {name}: {names}")
        for spec in fields:
            if spec.width < 1:
                raise ValueError(f"Field '{spec.name}' must be at least 1 byte wide")

        self.name = name
        self.fields = tuple(fields)

    def num_fields(self) -> int:
        """Return the number of trailing fields."""
        return len(self.fields)

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def name_to_index(self, field_name: str) -> int:
        """Find the position of a trailing field by name."""
        for i, spec in enumerate(self.fields):
            if spec.name == field_name:
                return i
        raise ValueError(f"Field '{field_name}' not found in schema {self.name}")

    def trailing_size(self) -> int:
        """Bytes after the key column: separators, fields and the newline."""
        return sum(spec.width + 1 for spec in self.fields) + 1

    def line_length(self, key_width: int) -> int:
        return key_width + self.trailing_size()

    def key_width(self, line_length: int) -> int:
        return line_length - self.trailing_size()

    def field_offsets(self, line_length: int) -> tuple[int, ...]:
        """
        Byte offset of every trailing field within a line.

        Offsets are counted back from the end of the line, which is what
        lets a reader locate the fields knowing only the line length.
        """
        offsets = []
        remaining = 0
        for spec in reversed(self.fields):
            remaining += spec.width + 1
            offsets.append(line_length - remaining)
        return tuple(reversed(offsets))

    def layout(self, line_length: int) -> "IndexLayout":
        """Bind this schema to the line length found in a file."""
        if self.key_width(line_length) < 1:
            raise MalformedIndexError(
                f"Line length {line_length} is too short for schema {self.name}")
        return IndexLayout(self, line_length)

    def encode_line(self, key: bytes, values: Mapping[str, Any], key_width: int) -> bytes:
        """
        Serialise one record as a fixed-width line.

        Args:
            key: Encoded, normalised key
            values: Trailing field values keyed by field name
            key_width: Width of the key column for the whole file

        Raises:
            EncodingError: If the key or a field value cannot be encoded
        """
        if not key:
            raise EncodingError("Index keys must not be empty")
        if len(key) > key_width:
            raise EncodingError(
                f"Key {key!r} is longer than the key column ({key_width} bytes)")
        if min(key) <= PAD:
            raise EncodingError(f"Key {key!r} contains whitespace or control bytes")

        parts = [key.ljust(key_width, SEPARATOR)]
        for spec in self.fields:
            if spec.name not in values:
                raise EncodingError(f"Missing value for field '{spec.name}'")
            parts.append(spec.kind.encode(values[spec.name], spec.width))
        return SEPARATOR.join(parts) + TERMINATOR

    def __eq__(self, other: object) -> bool:
        return isinstance(other, IndexSchema) and self.fields == other.fields

    def __hash__(self) -> int:
        return hash(self.fields)

    def __str__(self) -> str:
        parts = [f"{spec.name}:{spec.kind.value}({spec.width})" for spec in self.fields]
        return f"IndexSchema({self.name}: key, {', '.join(parts)})"

    def __repr__(self) -> str:
        return self.__str__()


class IndexLayout:
    """An IndexSchema bound to a concrete line length."""

    def __init__(self, schema: IndexSchema, line_length: int):
        self.schema = schema
        self.line_length = line_length
        self.key_width = schema.key_width(line_length)
        self.offsets = schema.field_offsets(line_length)

    def key_of(self, line: bytes) -> bytes:
        """Return the stored key: the key column up to the first padding byte."""
        end = line.find(SEPARATOR, 0, self.key_width)
        return line[:self.key_width] if end == -1 else line[:end]

    def check_line(self, line: bytes, position: Optional[int] = None) -> None:
        """
        Verify the fixed structure of a line.

        Raises:
            MalformedIndexError: If the length, a separator or the terminator is wrong
        """
        if len(line) != self.line_length:
            raise MalformedIndexError(
                f"Expected a {self.line_length}-byte line, got {len(line)} bytes",
                offset=-1 if position is None else position)
        if line[-1:] != TERMINATOR:
            raise MalformedIndexError("Line is not newline-terminated",
                                      offset=-1 if position is None else position)
        for offset in self.offsets:
            if line[offset - 1] != PAD:
                raise MalformedIndexError(
                    f"Missing field separator at byte {offset - 1}",
                    offset=-1 if position is None else position)

    def decode_fields(self, line: bytes) -> tuple:
        """Decode every trailing field of a line."""
        return tuple(
            spec.kind.decode(line[offset:offset + spec.width])
            for spec, offset in zip(self.schema.fields, self.offsets)
        )


def entity_schema(name: str, id_width: int) -> IndexSchema:
    """Schema of a name → (flag, id) index, used for both players and teams."""
    return IndexSchema(name, [
        FieldSpec("aux_flag", 1, FieldKind.FLAG),
        FieldSpec("entity_id", id_width, FieldKind.INT),
    ])
