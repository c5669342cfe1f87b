#!/usr/bin/env python3
"""
mcp_server.py — rust-kg MCP Server

Exposes the structural queries over a Rust knowledge graph as Model
Context Protocol (MCP) tools, so an MCP-compatible agent can ask about
a codebase directly.

Tools
-----
graph_stats()
    Item and relationship counts.
resolve_name(name, kind)
    Name -> unique item, ranked ambiguous candidates, or not found.
item_info(name, kind, rels)
    Metadata, snippet and relationships of one item.
function_usage(name, direction)
    Callers or callees of a function.
connected_files(file, direction, max_depth, rels)
    Files reachable from a file.
find_cycles(rels, limit)
    Elementary dependency cycles between files.
shortest_path(src, dst, rels)
    Shortest file path.
hubs(metric, top, rels) / module_centrality(metric, top, rels)
    Degree centrality over files / directories.
trait_impls(trait_name)
    (type, file) for every impl of a trait.

Every tool returns a JSON string.

Usage
-----
Install the package, build the graph, then run::

    rustkg-mcp --repo /path/to/crate

Or configure in an MCP client::

    {
      "mcpServers": {
        "rustkg": {
          "command": "rustkg-mcp",
          "args": ["--repo", "/path/to/crate"]
        }
      }
    }
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Lazy MCP import: give a clear error if the package is absent
# ---------------------------------------------------------------------------

try:
    from mcp.server.fastmcp import FastMCP
except ImportError:
    print(
        "ERROR: 'mcp' package not found.\nInstall it with:  pip install mcp",
        file=sys.stderr,
    )
    sys.exit(1)

from rust_kg import query as q
from rust_kg.errors import AmbiguousNameError, KnowledgeGraphError, NotFoundError
from rust_kg.kg import RustKG
from rust_kg.log import setup_logging
from rust_kg.resolver import Ambiguous, Unique

# ---------------------------------------------------------------------------
# Global state: initialised in main() before the server starts
# ---------------------------------------------------------------------------

_kg: RustKG | None = None


def _get_kg() -> RustKG:
    if _kg is None:
        raise RuntimeError("RustKG not initialised.  Run the server via 'rustkg-mcp --repo ...'")
    return _kg


def _dumps(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _answer(fn, *args, **kwargs) -> str:
    """Run a query and wrap not-found / ambiguous / bad-argument outcomes as JSON errors."""
    try:
        return _dumps(fn(*args, **kwargs))
    except AmbiguousNameError as exc:
        return _dumps(
            {
                "error": "ambiguous",
                "detail": str(exc),
                "candidates": [i.to_dict() for i in exc.candidates],
            }
        )
    except NotFoundError as exc:
        return _dumps({"error": "not_found", "detail": str(exc)})
    except (KnowledgeGraphError, ValueError) as exc:
        return _dumps({"error": "invalid", "detail": str(exc)})


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "rustkg",
    instructions=(
        "rust-kg answers structural questions about a Rust codebase: which files depend "
        "on which, dependency cycles, central files, trait implementations and who calls "
        "a function.  item_info and function_usage accept a name or an item id; an "
        "ambiguous name returns the ranked candidates.  Call edges are name-based and "
        "may fan out to several same-named functions."
    ),
)


@mcp.tool()
def graph_stats() -> str:
    """
    Return item and relationship counts broken down by kind.

    :return: JSON string with total_files, total_items,
             total_relationships, item_counts, relationship_counts.
    """
    return _dumps(_get_kg().stats())


@mcp.tool()
def resolve_name(name: str, kind: str = "") -> str:
    """
    Resolve a name (or exact item id) to graph items.

    :param name: Item name such as ``parse`` or ``Point``.
    :param kind: Optional kind filter: function/fn, struct, enum, trait,
                 impl, module/mod, const, static, type_alias/type, macro.
    :return: JSON with ``status`` unique | ambiguous | not_found.
    """

    def run() -> dict:
        res = _get_kg().resolve(name, kind or None)
        if isinstance(res, Unique):
            return {"status": "unique", "item": res.item.to_dict()}
        if isinstance(res, Ambiguous):
            return {"status": "ambiguous", "candidates": [i.to_dict() for i in res.candidates]}
        return {"status": "not_found", "name": name}

    return _answer(run)


@mcp.tool()
def item_info(name: str, kind: str = "", rels: str = "") -> str:
    """
    Metadata, source snippet and relationships of one item.

    An ambiguous name returns ``{"error": "ambiguous", "candidates": [...]}``.

    :param name: Item name or stable item id.
    :param kind: Optional kind filter, as for resolve_name.
    :param rels: Optional comma-separated relationship kinds
                 (contains, uses, calls, implements, extends).
    """

    def run() -> dict:
        kg = _get_kg()
        item = kg.resolve_item(name, kind or None)
        return q.item_info(kg.graph, item.id, q.parse_rels(rels)).to_dict()

    return _answer(run)


@mcp.tool()
def function_usage(name: str, direction: str = "callers") -> str:
    """
    Functions calling (``callers``) or called by (``callees``) a function.

    :param name: Function name or stable item id.
    :param direction: ``callers`` or ``callees``.
    """

    def run() -> list:
        kg = _get_kg()
        fn = kg.resolve_item(name, "function")
        return [i.to_dict() for i in q.function_usage(kg.graph, fn.id, direction)]

    return _answer(run)


@mcp.tool()
def connected_files(file: str, direction: str = "out", max_depth: int = 0, rels: str = "") -> str:
    """
    Files reachable from *file* in the file dependency graph.

    :param file: Repo-relative file path, e.g. ``src/lib.rs``.
    :param direction: ``out``, ``in`` or ``both``.
    :param max_depth: Maximum hops; 0 means unlimited.
    :param rels: Optional comma-separated relationship kinds.
    """
    return _answer(
        lambda: q.connected_files(
            _get_kg().graph,
            file,
            direction,
            max_depth=max_depth or None,
            rels=q.parse_rels(rels),
        )
    )


@mcp.tool()
def find_cycles(rels: str = "", limit: int = 50) -> str:
    """
    Elementary dependency cycles between files.

    :param rels: Optional comma-separated relationship kinds.
    :param limit: Maximum number of cycles to return; 0 means unlimited.
    """
    return _answer(lambda: q.find_cycles(_get_kg().graph, q.parse_rels(rels), limit or None))


@mcp.tool()
def shortest_path(src: str, dst: str, rels: str = "") -> str:
    """
    Shortest dependency path between two files (``null`` if none).

    :param src: Start file.
    :param dst: Target file.
    :param rels: Optional comma-separated relationship kinds.
    """
    return _answer(lambda: q.shortest_path(_get_kg().graph, src, dst, q.parse_rels(rels)))


@mcp.tool()
def hubs(metric: str = "total", top: int = 10, rels: str = "") -> str:
    """
    Most connected files by degree.

    :param metric: ``in``, ``out`` or ``total``.
    :param top: Number of files to return.
    """
    return _answer(
        lambda: [d.to_dict() for d in q.hubs(_get_kg().graph, metric, top, q.parse_rels(rels))]
    )


@mcp.tool()
def module_centrality(metric: str = "total", top: int = 10, rels: str = "") -> str:
    """
    Most connected directories by degree.

    :param metric: ``in``, ``out`` or ``total``.
    :param top: Number of directories to return.
    """
    return _answer(
        lambda: [
            d.to_dict() for d in q.module_centrality(_get_kg().graph, metric, top, q.parse_rels(rels))
        ]
    )


@mcp.tool()
def trait_impls(trait_name: str) -> str:
    """
    Implementations of a trait as ``{type_name, path}`` records.

    :param trait_name: Trait name or path, e.g. ``Display`` or ``fmt::Display``.
    """
    return _answer(lambda: [t._asdict() for t in q.trait_impls(_get_kg().graph, trait_name)])


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _parse_args(argv: list | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="rustkg-mcp",
        description="rust-kg MCP server — exposes Rust codebase queries to AI agents.",
    )
    p.add_argument("--repo", default=".", help="Project root directory (default: current directory)")
    p.add_argument("--db", default=None, help="SQLite graph (default: .rustkg/graph.sqlite)")
    p.add_argument(
        "--build",
        action="store_true",
        help="Build (or refresh) the graph before serving",
    )
    p.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="MCP transport: stdio (default) or sse (HTTP)",
    )
    return p.parse_args(argv)


def main(argv: list | None = None) -> None:
    """
    CLI entry point for the rust-kg MCP server.

    Loads (or builds) the graph and starts the MCP server using the
    requested transport.
    """
    global _kg

    args = _parse_args(argv)
    setup_logging("WARNING")

    repo = Path(args.repo).resolve()
    db = None
    if args.db is not None:
        db = Path(args.db) if Path(args.db).is_absolute() else repo / args.db

    _kg = RustKG(repo, db)
    try:
        if args.build or not _kg.db_path.exists():
            _kg.build()
        else:
            _kg.load()
    except KnowledgeGraphError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    print(
        f"rust-kg MCP server starting\n"
        f"  repo     : {repo}\n"
        f"  db       : {_kg.db_path}\n"
        f"  transport: {args.transport}",
        file=sys.stderr,
    )
    mcp.run(transport=args.transport)


if __name__ == "__main__":
    main()
