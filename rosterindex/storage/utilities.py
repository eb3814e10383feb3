from pathlib import Path
from typing import Optional

from ..core.exceptions import IndexIOError, MalformedIndexError
from .names import NameFile
from .schema import IndexSchema, MAX_LINE_LENGTH, PAD, TERMINATOR


def verify_index(path: str | Path, schema: IndexSchema,
                 names_path: str | Path | None = None) -> list[str]:
    """
    Verify the integrity of an index file by scanning every line.

    This is an offline check for debugging and tests; lookups never call it.
    It reports lines of the wrong length, missing separators or terminators,
    undecodable fields, keys with embedded spaces, keys that are not strictly
    ascending (which covers duplicates), and, when a name file is given, any
    drift between the two files.

    Args:
        path: The index file
        schema: Schema the file was built with
        names_path: Optional companion name file

    Returns:
        List of error messages (empty if file is valid)

    Raises:
        IndexIOError: If a file cannot be read
    """
    errors: list[str] = []
    keys: list[bytes] = []
    path = Path(path)

    try:
        with open(path, "rb") as f:
            first = f.readline(MAX_LINE_LENGTH)
            if not first:
                return _check_names(keys, names_path, errors)
            if not first.endswith(TERMINATOR):
                errors.append(f"First line has no terminator within {len(first)} bytes")
                return errors
            try:
                layout = schema.layout(len(first))
            except MalformedIndexError as e:
                errors.append(str(e))
                return errors

            f.seek(0)
            line_number = 0
            previous: Optional[bytes] = None
            while line := f.read(layout.line_length):
                line_number += 1
                try:
                    layout.check_line(line)
                    layout.decode_fields(line)
                except MalformedIndexError as e:
                    errors.append(f"Line {line_number}: {e}")
                    continue

                key = layout.key_of(line)
                if any(b != PAD for b in line[len(key):layout.key_width]):
                    errors.append(f"Line {line_number}: key column holds an embedded space")
                if previous is not None and key <= previous:
                    errors.append(f"Line {line_number}: key {key!r} does not sort after {previous!r}")
                previous = key
                keys.append(key)
    except OSError as e:
        raise IndexIOError(f"Failed to read index {path}: {e}", str(path)) from e

    return _check_names(keys, names_path, errors)


def _check_names(keys: list[bytes], names_path: str | Path | None, errors: list[str]) -> list[str]:
    if names_path is None:
        return errors
    names = [name.encode("utf-8") for name in NameFile(names_path).keys()]
    if names != keys:
        errors.append(f"Name file {names_path} does not match the index "
                      f"({len(names)} names, {len(keys)} records)")
    return errors


def format_size(bytes_size: int) -> str:
    """
    Format a byte size as a human-readable string.

    Args:
        bytes_size: Size in bytes

    Returns:
        Formatted string like "1.5 KB" or "2.3 MB"
    """
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.1f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.1f} TB"
