#!/usr/bin/env python3
"""
rustkg_viz.py — render a stored Rust knowledge graph.

Usage:
    rustkg-viz [--repo PATH] [--db PATH] [--level file|module|item]
               [--format html|dot] [--rels calls,uses] [--out FILE]

HTML output is an interactive pyvis page; DOT output can be fed to
Graphviz (``dot -Tsvg``).
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rust_kg.errors import KnowledgeGraphError
from rust_kg.kg import RustKG
from rust_kg.log import setup_logging
from rust_kg.query import parse_rels
from rust_kg.viz import LEVELS, save_html, to_dot


def main(argv: list | None = None) -> None:
    parser = argparse.ArgumentParser(prog="rustkg-viz", description="Render a Rust knowledge graph.")
    parser.add_argument("--repo", default=".", help="Project root (default: .)")
    parser.add_argument("--db", default=None, help="SQLite database (default: .rustkg/graph.sqlite)")
    parser.add_argument("--level", choices=LEVELS, default="file")
    parser.add_argument("--format", choices=("html", "dot"), default="html")
    parser.add_argument("--rels", type=parse_rels, default=None, help="Comma-separated relationship kinds")
    parser.add_argument("--no-physics", action="store_true", help="Disable the force layout (html)")
    parser.add_argument("--out", default=None, help="Output file (default: rustkg.<format>; '-' = stdout for dot)")
    args = parser.parse_args(argv)

    setup_logging("WARNING")
    repo = Path(args.repo).resolve()
    db = None
    if args.db is not None:
        db = Path(args.db) if Path(args.db).is_absolute() else repo / args.db

    try:
        with RustKG(repo, db) as kg:
            graph = kg.graph
            if args.format == "dot":
                text = to_dot(graph, args.level, args.rels)
                if args.out == "-":
                    sys.stdout.write(text)
                    return
                out = Path(args.out or "rustkg.dot")
                out.write_text(text, encoding="utf-8")
            else:
                out = save_html(
                    graph,
                    args.out or "rustkg.html",
                    args.level,
                    args.rels,
                    physics=not args.no_physics,
                )
    except (KnowledgeGraphError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"wrote {out}")


if __name__ == "__main__":
    main()
