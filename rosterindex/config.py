"""
Configuration for the roster indexes.

All paths and widths are explicit so that both the builder and the reader
can be pointed at temporary directories in tests. Values come from the
environment when ``IndexConfig.from_env`` is used, and command-line flags
override them.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .core.exceptions import ConfigError
from .core.keys import Normaliser, normalize_key
from .storage.schema import IndexSchema, entity_schema

DEFAULT_DATA_DIR = "database"
DEFAULT_ID_WIDTH = 6
DEFAULT_API_BASE = "https://statsapi.mlb.com/api/v1"
DEFAULT_TIMEOUT = 30.0

# Widest id that still fits a signed 64-bit integer
MAX_ID_WIDTH = 18

INDEX_NAMES = ("players", "teams")

ENV_DATA_DIR = "ROSTERINDEX_DATA_DIR"
ENV_ID_WIDTH = "ROSTERINDEX_ID_WIDTH"
ENV_API_BASE = "ROSTERINDEX_API_BASE"
ENV_TIMEOUT = "ROSTERINDEX_TIMEOUT"


@dataclass
class IndexConfig:
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    id_width: int = DEFAULT_ID_WIDTH
    normaliser: Normaliser = field(default=normalize_key, repr=False)
    api_base: str = DEFAULT_API_BASE
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if isinstance(self.id_width, bool) or not isinstance(self.id_width, int):
            raise ConfigError(f"id_width must be an integer, got {self.id_width!r}")
        if not 1 <= self.id_width <= MAX_ID_WIDTH:
            raise ConfigError(f"id_width must be between 1 and {MAX_ID_WIDTH}, got {self.id_width}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")

    def index_path(self, name: str) -> Path:
        """Path of the fixed-width index for ``name`` (players, teams)."""
        self._check_name(name)
        return self.data_dir / f"{name}_ids.txt"

    def names_path(self, name: str) -> Path:
        """Path of the keys-only name file for ``name``."""
        self._check_name(name)
        return self.data_dir / f"{name}.txt"

    def schema(self, name: str) -> IndexSchema:
        self._check_name(name)
        return entity_schema(name, self.id_width)

    @staticmethod
    def _check_name(name: str) -> None:
        if name not in INDEX_NAMES:
            raise ConfigError(f"Unknown index '{name}', expected one of {', '.join(INDEX_NAMES)}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "IndexConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            overrides: Explicit values that win over the environment; None is ignored

        Raises:
            ConfigError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        values = {
            "data_dir": env.get(ENV_DATA_DIR, DEFAULT_DATA_DIR),
            "id_width": _parse(env, ENV_ID_WIDTH, int, DEFAULT_ID_WIDTH),
            "api_base": env.get(ENV_API_BASE, DEFAULT_API_BASE),
            "timeout": _parse(env, ENV_TIMEOUT, float, DEFAULT_TIMEOUT),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _parse(env: Mapping[str, str], name: str, convert, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ConfigError(f"{name} has an invalid value: {raw!r}")
