"""
Store configuration.

Values come from, in increasing precedence: the defaults below, a YAML file,
and ``GENEALOGY_STORE_*`` environment variables.

Example config.yaml:
    database_path: ./data/genealogy.sqlite
    chunk_size: 65536
    default_encoding: null
    strict_import: false
    log_level: INFO
    log_file: ./logs/store.log
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

ENV_PREFIX = "GENEALOGY_STORE_"

DEFAULT_CONFIG_PATHS = (
    Path("genealogy-store.yaml"),
    Path.home() / ".config" / "genealogy-store" / "config.yaml",
)


@dataclass
class StoreConfig:
    """Configuration for the genealogy store."""

    # Storage
    database_path: str = "./genealogy.sqlite"

    # Import
    chunk_size: int = 65536
    default_encoding: str | None = None  # None: detect from the file
    strict_import: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoreConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> StoreConfig:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: str | Path | None = None, environ: dict[str, str] | None = None) -> StoreConfig:
        """Load from ``path`` (or the first default path that exists), then apply the environment."""
        config = cls()
        if path is not None:
            config = cls.from_yaml(path)
        else:
            for candidate in DEFAULT_CONFIG_PATHS:
                if candidate.exists():
                    config = cls.from_yaml(candidate)
                    break
        return config.with_environment(os.environ if environ is None else environ)

    def with_environment(self, environ) -> StoreConfig:
        for f in fields(self):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            setattr(self, f.name, _coerce(getattr(self, f.name), raw, f.name))
        return self


def _coerce(current: Any, raw: str, name: str) -> Any:
    if name == "chunk_size":
        return int(raw)
    if isinstance(current, bool) or name == "strict_import":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if raw == "" and name in ("default_encoding", "log_file"):
        return None
    return raw
