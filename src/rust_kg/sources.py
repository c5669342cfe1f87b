#!/usr/bin/env python3
"""
sources.py

File discovery: the ordered ``(path, bytes)`` input of a build.

Paths are repo-relative and posix-style; order is sorted so that two
walks of the same tree always agree.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator

from loguru import logger

from rust_kg.config import DEFAULT_SKIP_DIRS
from rust_kg.errors import BuildError


def iter_rust_files(repo_root: Path, skip_dirs: Iterable[str] = DEFAULT_SKIP_DIRS) -> Iterator[Path]:
    """
    Yield ``.rs`` files under repo_root in sorted order.

    :param repo_root: Repository root
    :param skip_dirs: Directory names never descended into (hidden
                      directories are always skipped).
    """
    skip = set(skip_dirs)
    for root, dirs, files in os.walk(repo_root):
        dirs[:] = sorted(d for d in dirs if d not in skip and not d.startswith("."))
        for f in sorted(files):
            if f.endswith(".rs") and not f.startswith("."):
                yield Path(root) / f


def rel_path(path: Path, repo_root: Path) -> str:
    """Repo-relative posix path of *path*."""
    return path.relative_to(repo_root).as_posix()


def read_sources(
    repo_root: str | Path,
    skip_dirs: Iterable[str] = DEFAULT_SKIP_DIRS,
) -> list[tuple[str, bytes]]:
    """
    Read every Rust file under *repo_root*.

    Unreadable individual files are skipped with a warning.

    :raises BuildError: If *repo_root* is not a readable directory.
    """
    root = Path(repo_root)
    if not root.is_dir():
        raise BuildError(f"project root is not a directory: {root}")
    try:
        os.listdir(root)
    except OSError as exc:
        raise BuildError(f"cannot read project root {root}: {exc}") from exc

    out: list[tuple[str, bytes]] = []
    for path in iter_rust_files(root, skip_dirs):
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("skipping unreadable file {}: {}", path, exc)
            continue
        out.append((rel_path(path, root), data))
    return out
