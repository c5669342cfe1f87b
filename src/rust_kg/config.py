#!/usr/bin/env python3
"""
config.py

Project settings for rust-kg, read from ``rust-kg.toml`` at the project root.

Example::

    [rust-kg]
    source_root = "src"
    cache_path = ".rustkg/cache.json"
    db_path = ".rustkg/graph.sqlite"
    workers = 8
    skip_dirs = ["target", "vendor"]
    snippets = true
    log_level = "INFO"

Every key is optional; a missing file means defaults.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

from rust_kg.errors import ConfigError

CONFIG_FILENAME = "rust-kg.toml"

DEFAULT_SKIP_DIRS: tuple[str, ...] = (
    ".git",
    "target",
    "node_modules",
    ".rustkg",
)


@dataclass
class Settings:
    """
    Build and query settings.

    :param source_root: Primary source root, relative to the project root.
                        Used for module paths and resolver ranking.
    :param cache_path: Extraction cache record, relative to the project root.
    :param db_path: SQLite graph record, relative to the project root.
    :param workers: Extraction threads (``None`` lets the executor decide).
    :param skip_dirs: Directory names never descended into.
    :param snippets: Keep each item's source lines in the graph.
    :param log_level: Console log level used by the CLI.
    """

    source_root: str = "src"
    cache_path: str = ".rustkg/cache.json"
    db_path: str = ".rustkg/graph.sqlite"
    workers: int | None = None
    skip_dirs: tuple[str, ...] = field(default=DEFAULT_SKIP_DIRS)
    snippets: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, data: dict) -> Settings:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown setting(s): {', '.join(unknown)}")

        kwargs = dict(data)
        if "skip_dirs" in kwargs:
            dirs = kwargs["skip_dirs"]
            if not isinstance(dirs, list) or not all(isinstance(d, str) for d in dirs):
                raise ConfigError("skip_dirs must be a list of directory names")
            kwargs["skip_dirs"] = tuple(dirs)
        if "workers" in kwargs:
            w = kwargs["workers"]
            if not isinstance(w, int) or isinstance(w, bool) or w < 1:
                raise ConfigError("workers must be a positive integer")
        for key in ("source_root", "cache_path", "db_path", "log_level"):
            if key in kwargs and not isinstance(kwargs[key], str):
                raise ConfigError(f"{key} must be a string")
        if "snippets" in kwargs and not isinstance(kwargs["snippets"], bool):
            raise ConfigError("snippets must be true or false")
        return cls(**kwargs)


def load_settings(path: str | Path) -> Settings:
    """
    Load settings from a TOML file.

    :param path: Path to the TOML file.
    :raises ConfigError: If the file cannot be read or parsed.
    """
    p = Path(path)
    try:
        with p.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"cannot read {p}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {p}: {exc}") from exc

    table = data.get("rust-kg", {})
    if not isinstance(table, dict):
        raise ConfigError(f"[rust-kg] in {p} must be a table")
    return Settings.from_mapping(table)


def load_settings_near(root: str | Path) -> Settings:
    """Load ``<root>/rust-kg.toml`` if present, else return defaults."""
    p = Path(root) / CONFIG_FILENAME
    if not p.exists():
        return Settings()
    return load_settings(p)
