#!/usr/bin/env python3
"""
rustkg_query.py

Structural queries over a stored Rust knowledge graph.

Subcommands::

    stats                          item / relationship counts
    connected FILE [--direction]   files reachable from FILE
    cycles [--limit N]             elementary file cycles
    path SRC DST                   shortest file path
    hubs [--metric] [--top]        most connected files
    modules [--metric] [--top]     most connected directories
    trait-impls TRAIT              (type, file) per impl of TRAIT
    item NAME [--kind]             metadata, snippet and relationships
    usage NAME [--callees]         callers (or callees) of a function
    items [--kind] [--path] [--name]  list items matching filters
    resolve NAME [--kind]          name -> item(s)
    unreferenced [--public]        items nothing refers to

Every subcommand accepts ``--json``, and ``--graph FILE`` to query a JSON
graph written by ``rustkg-build --json-out`` instead of the database.

``item`` and ``usage`` take a name or an exact item id.  Exit codes: 2 when
nothing matches, 3 when a name is ambiguous (the ranked candidates are
printed).
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from rust_kg import query as q
from rust_kg.errors import AmbiguousNameError, KnowledgeGraphError, NotFoundError
from rust_kg.extract import Item
from rust_kg.kg import RustKG
from rust_kg.log import setup_logging
from rust_kg.resolver import Ambiguous, NotFound, Unique


def _parse_args(argv: list | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", default=".", help="Project root (default: .)")
    common.add_argument("--db", default=None, help="SQLite database (default: .rustkg/graph.sqlite)")
    common.add_argument("--graph", default=None, help="Read a JSON graph file instead of the database")
    common.add_argument("--json", action="store_true", help="Emit JSON")
    common.add_argument("--rels", type=q.parse_rels, default=None, help="Comma-separated relationship kinds")

    p = argparse.ArgumentParser(prog="rustkg-query", description="Query a Rust knowledge graph.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("stats", parents=[common], help="Graph counts")

    s = sub.add_parser("connected", parents=[common], help="Files reachable from a file")
    s.add_argument("file")
    s.add_argument("--direction", choices=q.DIRECTIONS, default="out")
    s.add_argument("--depth", type=int, default=None, help="Maximum hops (default: unlimited)")

    s = sub.add_parser("cycles", parents=[common], help="Elementary cycles between files")
    s.add_argument("--limit", type=int, default=None)

    s = sub.add_parser("path", parents=[common], help="Shortest path between two files")
    s.add_argument("src")
    s.add_argument("dst")

    for name, help_ in (("hubs", "Most connected files"), ("modules", "Most connected directories")):
        s = sub.add_parser(name, parents=[common], help=help_)
        s.add_argument("--metric", choices=q.METRICS, default="total")
        s.add_argument("--top", type=int, default=10)

    s = sub.add_parser("trait-impls", parents=[common], help="Implementations of a trait")
    s.add_argument("trait")

    s = sub.add_parser("item", parents=[common], help="Item metadata and relationships")
    s.add_argument("name", help="Item name or id")
    s.add_argument("--kind", default=None)

    s = sub.add_parser("usage", parents=[common], help="Callers of a function")
    s.add_argument("name", help="Function name or id")
    s.add_argument("--kind", default="function")
    s.add_argument("--callees", action="store_true", help="List callees instead of callers")

    s = sub.add_parser("items", parents=[common], help="List items matching filters")
    s.add_argument("--kind", action="append", default=[], help="Item kind (repeatable)")
    s.add_argument("--path", default=None, help="Defining file")
    s.add_argument("--name", default=None, help="Exact item name")

    s = sub.add_parser("resolve", parents=[common], help="Resolve a name to items")
    s.add_argument("name")
    s.add_argument("--kind", default=None)

    s = sub.add_parser("unreferenced", parents=[common], help="Items nothing refers to")
    s.add_argument("--public", action="store_true", help="Include pub items")
    s.add_argument("--exclude", action="append", default=[], help="Name glob to skip (repeatable)")

    return p.parse_args(argv)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _item_line(it: Item) -> str:
    return f"{it.kind:10s} {it.name:32s} {it.path}:{it.line_start}  [{it.id}]"


def _emit(args: argparse.Namespace, data, text_lines: list[str]) -> None:
    if args.json:
        print(json.dumps(data, indent=2, ensure_ascii=False))
    else:
        print("\n".join(text_lines) if text_lines else "(none)")


def run(args: argparse.Namespace, kg: RustKG) -> None:
    cmd = args.cmd
    if cmd == "items":
        items = kg.items(args.kind, args.path, args.name)
        _emit(args, [i.to_dict() for i in items], [_item_line(i) for i in items])
        return

    graph = kg.graph
    if cmd == "stats":
        s = graph.stats()
        _emit(args, s, [f"{k:22s}: {v}" for k, v in s.items()])

    elif cmd == "connected":
        files = q.connected_files(graph, args.file, args.direction, max_depth=args.depth, rels=args.rels)
        _emit(args, files, files)

    elif cmd == "cycles":
        cycles = q.find_cycles(graph, args.rels, args.limit)
        _emit(args, cycles, [" -> ".join(c + [c[0]]) for c in cycles])

    elif cmd == "path":
        path = q.shortest_path(graph, args.src, args.dst, args.rels)
        if path is None:
            _emit(args, None, [f"no path from {args.src} to {args.dst}"])
        else:
            _emit(args, path, [" -> ".join(path)])

    elif cmd in ("hubs", "modules"):
        fn = q.hubs if cmd == "hubs" else q.module_centrality
        rows = fn(graph, args.metric, args.top, args.rels)
        _emit(
            args,
            [r.to_dict() for r in rows],
            [f"{r.value(args.metric):5d}  in={r.in_degree:<4d} out={r.out_degree:<4d} {r.node}" for r in rows],
        )

    elif cmd == "trait-impls":
        impls = q.trait_impls(graph, args.trait)
        _emit(args, [t._asdict() for t in impls], [f"{t.type_name:32s} {t.path}" for t in impls])

    elif cmd == "item":
        item = kg.resolve_item(args.name, args.kind)
        info = q.item_info(graph, item.id, args.rels)
        lines = [_item_line(info.item), f"visibility: {info.item.visibility}"]
        if info.item.snippet:
            lines += ["", info.item.snippet, ""]
        lines += [f"  -> {r.rel:10s} {r.dst}" for r in info.outgoing]
        lines += [f"  <- {r.rel:10s} {r.src}" for r in info.incoming]
        _emit(args, info.to_dict(), lines)

    elif cmd == "usage":
        direction = "callees" if args.callees else "callers"
        target = kg.resolve_item(args.name, args.kind)
        items = q.function_usage(graph, target.id, direction)
        _emit(args, [i.to_dict() for i in items], [_item_line(i) for i in items])

    elif cmd == "resolve":
        res = kg.resolve(args.name, args.kind)
        if isinstance(res, Unique):
            _emit(args, {"status": "unique", "item": res.item.to_dict()}, [_item_line(res.item)])
        elif isinstance(res, Ambiguous):
            _emit(
                args,
                {"status": "ambiguous", "candidates": [i.to_dict() for i in res.candidates]},
                [f"ambiguous: {len(res.candidates)} candidates"]
                + [_item_line(i) for i in res.candidates],
            )
        elif isinstance(res, NotFound):
            _emit(args, {"status": "not_found", "name": res.name}, [f"not found: {res.name}"])

    elif cmd == "unreferenced":
        items = q.unreferenced_items(graph, include_public=args.public, exclude=args.exclude)
        _emit(args, [i.to_dict() for i in items], [_item_line(i) for i in items])


def _under(repo: Path, path: str | None) -> Path | None:
    if path is None:
        return None
    return Path(path) if Path(path).is_absolute() else repo / path


def main(argv: list | None = None) -> None:
    args = _parse_args(argv)
    setup_logging("WARNING")
    repo = Path(args.repo).resolve()
    db = _under(repo, args.db)

    try:
        with RustKG(repo, db) as kg:
            if args.graph is not None:
                kg.load(_under(repo, args.graph))
            run(args, kg)
    except AmbiguousNameError as exc:
        _emit(
            args,
            {"status": "ambiguous", "candidates": [i.to_dict() for i in exc.candidates]},
            [f"ambiguous: {exc.name} matches {len(exc.candidates)} items"]
            + [_item_line(i) for i in exc.candidates],
        )
        sys.exit(3)
    except NotFoundError as exc:
        print(f"not found: {exc}", file=sys.stderr)
        sys.exit(2)
    except (KnowledgeGraphError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
