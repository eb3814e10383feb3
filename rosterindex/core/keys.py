"""
Key normalisation shared by the index builder and the index reader.

Both sides of the index must apply the same rule, otherwise a name that was
stored can never be found again. The rule is deliberately small: lowercase,
and collapse every run of whitespace into a single hyphen so that
"Shohei Ohtani" and the Stats API slug "shohei-ohtani" meet in the middle.
"""
import re
from typing import Callable

Normaliser = Callable[[str], str]

_NUMERIC_SUFFIX = re.compile(r"-\d+$")


def normalize_key(name: str) -> str:
    """Lowercase a name and replace whitespace runs with '-'."""
    return "-".join(name.lower().split())


def strip_numeric_suffix(key: str) -> str:
    """
    Drop a trailing '-<digits>' suffix.

    Stats API slugs carry the player id at the end ("babe-ruth-121578"),
    which is exactly the part a human will never type.
    """
    stripped = _NUMERIC_SUFFIX.sub("", key)
    return stripped or key


def base_key(raw_name: str, normaliser: Normaliser = normalize_key) -> str:
    """Return the collision-grouping key for a raw display name or slug."""
    return strip_numeric_suffix(normaliser(raw_name))


def disambiguated_key(base: str, ordinal: int, aux_flag: str) -> str:
    """Build the unique key given to one of several entities sharing ``base``."""
    return f"{base}-{ordinal}-{aux_flag}"
