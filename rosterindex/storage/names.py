import re
from pathlib import Path
from typing import Iterator

from ..core.exceptions import IndexIOError
from ..core.keys import Normaliser, normalize_key


class NameFile:
    """
    The keys-only companion of an index file.

    One final key per line, in the same sorted order as the index. It is
    what a caller falls back to when a bare name misses: the disambiguated
    keys sharing that name are listed so the user can pick one.
    """

    def __init__(self, path: str | Path, normaliser: Normaliser = normalize_key):
        self.path = Path(path)
        self.normaliser = normaliser

    def keys(self) -> Iterator[str]:
        """Iterate over every stored key in index order."""
        try:
            with open(self.path, "r", encoding="utf-8", newline="\n") as f:
                for line in f:
                    yield line.rstrip("\n")
        except OSError as e:
            raise IndexIOError(f"Failed to read name file {self.path}: {e}", str(self.path)) from e

    def with_prefix(self, prefix: str) -> list[str]:
        """Return the stored keys starting with the normalised prefix."""
        prefix = self.normaliser(prefix)
        matches = []
        for key in self.keys():
            if key.startswith(prefix):
                matches.append(key)
            elif key > prefix:
                # Sorted file: nothing further can share the prefix
                break
        return matches

    def candidates(self, name: str) -> list[str]:
        """
        List the keys a bare name may refer to.

        That is the name itself, if it was stored undisambiguated, and every
        "{name}-{n}-{flag}" key produced when several entities shared it.
        """
        base = self.normaliser(name)
        if not base:
            return []
        pattern = re.compile(rf"{re.escape(base)}-\d+-.")
        return [key for key in self.with_prefix(base) if key == base or pattern.fullmatch(key)]

    def __len__(self) -> int:
        return sum(1 for _ in self.keys())
