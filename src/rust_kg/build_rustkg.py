#!/usr/bin/env python3
"""
build_rustkg.py

CLI entry point: repo → extraction (cached) → KnowledgeGraph → SQLite
(and, with ``--json-out``, a standalone JSON graph file)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rust_kg.cache import CacheMode
from rust_kg.config import load_settings, load_settings_near
from rust_kg.errors import KnowledgeGraphError
from rust_kg.kg import RustKG
from rust_kg.log import setup_logging


def _parse_args(argv: list | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="rustkg-build",
        description="Extract a knowledge graph from a Rust project and store it in SQLite.",
    )
    p.add_argument("--repo", default=".", help="Path to project root (default: .)")
    p.add_argument("--db", default=None, help="SQLite database path (default: .rustkg/graph.sqlite)")
    p.add_argument("--cache", default=None, help="Cache file path (default: .rustkg/cache.json)")
    p.add_argument("--config", default=None, help="Settings file (default: <repo>/rust-kg.toml)")
    p.add_argument(
        "--cache-mode",
        choices=[m.value for m in CacheMode],
        default=CacheMode.USE.value,
        help="use: reuse unchanged files; ignore: re-parse all; rebuild: discard cache first",
    )
    p.add_argument("--no-save", action="store_true", help="Do not write the SQLite graph")
    p.add_argument("--json-out", default=None, help="Also write the graph to this JSON file")
    p.add_argument("--json", action="store_true", help="Print build stats as JSON")
    p.add_argument("--log-level", default=None, help="Console log level (default from settings)")
    return p.parse_args(argv)


def _under(repo: Path, path: str | None) -> Path | None:
    if path is None:
        return None
    return Path(path) if Path(path).is_absolute() else repo / path


def main(argv: list | None = None) -> None:
    args = _parse_args(argv)
    repo = Path(args.repo).resolve()

    try:
        settings = load_settings(args.config) if args.config else load_settings_near(repo)
        setup_logging(args.log_level or settings.log_level)
        kg = RustKG(repo, _under(repo, args.db), _under(repo, args.cache), config=settings)
        with kg:
            stats = kg.build(args.cache_mode, save=not args.no_save)
            if args.json_out:
                kg.save_json(_under(repo, args.json_out))
    except KnowledgeGraphError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    print(stats.to_json() if args.json else stats)


if __name__ == "__main__":
    main()
