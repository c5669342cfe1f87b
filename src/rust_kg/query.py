#!/usr/bin/env python3
"""
query.py

Read-only structural queries over a :class:`~rust_kg.graph.KnowledgeGraph`.

File-level queries run on the file projection (optionally restricted to
some relationship kinds); item-level queries work on relationships
directly.  Unknown targets raise a :class:`~rust_kg.errors.NotFoundError`
subclass; empty-but-valid answers are ``[]`` (or ``None`` for "no path").
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from fnmatch import fnmatch
from typing import Iterable, NamedTuple

from rust_kg.errors import FileNotInGraphError, ItemNotFoundError, TraitNotFoundError
from rust_kg.extract import REL_KINDS, Item, Relationship, last_segment
from rust_kg.graph import KnowledgeGraph, Projection

DIRECTIONS = ("out", "in", "both")
METRICS = ("in", "out", "total")
REFERENCE_RELS = ("uses", "calls", "implements", "extends")

# kinds reported by unreferenced_items() unless told otherwise
UNREFERENCED_KINDS = (
    "function",
    "struct",
    "enum",
    "trait",
    "const",
    "static",
    "type_alias",
    "macro",
)


def _require_file(graph: KnowledgeGraph, path: str) -> None:
    if path not in graph.files:
        raise FileNotInGraphError(path)


def _require_item(graph: KnowledgeGraph, item_id: str) -> Item:
    it = graph.items.get(item_id)
    if it is None:
        raise ItemNotFoundError(item_id)
    return it


def _neighbours(proj: Projection, node: str, direction: str) -> list[str]:
    if direction == "out":
        return proj.successors(node)
    if direction == "in":
        return proj.predecessors(node)
    return sorted(proj.succ.get(node, set()) | proj.pred.get(node, set()))


# ---------------------------------------------------------------------------
# Reachability
# ---------------------------------------------------------------------------


def connected_files(
    graph: KnowledgeGraph,
    file: str,
    direction: str = "out",
    *,
    max_depth: int | None = None,
    rels: Iterable[str] | None = None,
) -> list[str]:
    """
    Files reachable from *file* in the file-level graph (BFS order).

    :param direction: ``out`` (files it depends on), ``in`` (files that
                      depend on it) or ``both``.
    :param max_depth: Stop after this many hops (``1`` = direct neighbours).
    :param rels: Relationship kinds to follow (default: all).
    :raises FileNotInGraphError: If *file* is not in the graph.
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
    _require_file(graph, file)
    proj = graph.file_graph(rels)

    seen = {file}
    out: list[str] = []
    frontier = deque([(file, 0)])
    while frontier:
        node, depth = frontier.popleft()
        if max_depth is not None and depth >= max_depth:
            continue
        for nxt in _neighbours(proj, node, direction):
            if nxt not in seen:
                seen.add(nxt)
                out.append(nxt)
                frontier.append((nxt, depth + 1))
    return out


def find_cycles(
    graph: KnowledgeGraph,
    rels: Iterable[str] | None = None,
    limit: int | None = None,
) -> list[list[str]]:
    """
    All elementary cycles of the directed file-level graph.

    Each cycle is reported once, as a list of distinct files starting at
    its smallest path; the edge back to the first file is implicit.  The
    search from each start only visits larger nodes, so a cycle is only
    ever found from its smallest member.

    :param rels: Relationship kinds to consider (default: all).
    :param limit: Stop after this many cycles; ``0`` returns none.
    :raises ValueError: If *limit* is negative.
    """
    if limit is not None:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        if limit == 0:
            return []
    proj = graph.file_graph(rels)
    order = {n: i for i, n in enumerate(proj.nodes)}
    cycles: list[list[str]] = []

    for start in proj.nodes:
        floor = order[start]
        path = [start]
        on_path = {start}
        stack = [iter(proj.successors(start))]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt == start:
                cycles.append(list(path))
                if limit is not None and len(cycles) >= limit:
                    return cycles
            elif order[nxt] > floor and nxt not in on_path:
                path.append(nxt)
                on_path.add(nxt)
                stack.append(iter(proj.successors(nxt)))
    return cycles


def shortest_path(
    graph: KnowledgeGraph,
    src: str,
    dst: str,
    rels: Iterable[str] | None = None,
) -> list[str] | None:
    """
    Unweighted shortest path between two files, or ``None``.

    Among equal-length paths the first one found wins.

    :raises FileNotInGraphError: If either file is not in the graph.
    """
    _require_file(graph, src)
    _require_file(graph, dst)
    if src == dst:
        return [src]

    proj = graph.file_graph(rels)
    parent: dict[str, str] = {}
    seen = {src}
    frontier = deque([src])
    while frontier:
        node = frontier.popleft()
        for nxt in proj.successors(node):
            if nxt in seen:
                continue
            seen.add(nxt)
            parent[nxt] = node
            if nxt == dst:
                path = [dst]
                while path[-1] != src:
                    path.append(parent[path[-1]])
                return path[::-1]
            frontier.append(nxt)
    return None


# ---------------------------------------------------------------------------
# Centrality
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Degree:
    node: str
    in_degree: int
    out_degree: int

    @property
    def total(self) -> int:
        return self.in_degree + self.out_degree

    def value(self, metric: str) -> int:
        if metric == "in":
            return self.in_degree
        if metric == "out":
            return self.out_degree
        return self.total

    def to_dict(self) -> dict:
        return {
            "node": self.node,
            "in_degree": self.in_degree,
            "out_degree": self.out_degree,
            "total": self.total,
        }


def degree_centrality(proj: Projection, metric: str = "total", top: int | None = 10) -> list[Degree]:
    """
    Rank projection nodes by degree; ties by node name ascending.

    :param metric: ``in``, ``out`` or ``total``.
    :param top: Number of rows to return (``None`` = all).
    """
    if metric not in METRICS:
        raise ValueError(f"metric must be one of {METRICS}, got {metric!r}")
    rows = [Degree(n, len(proj.pred[n]), len(proj.succ[n])) for n in proj.nodes]
    rows.sort(key=lambda d: (-d.value(metric), d.node))
    return rows if top is None else rows[:top]


def hubs(
    graph: KnowledgeGraph,
    metric: str = "total",
    top: int | None = 10,
    rels: Iterable[str] | None = None,
) -> list[Degree]:
    """Most connected files."""
    return degree_centrality(graph.file_graph(rels), metric, top)


def module_centrality(
    graph: KnowledgeGraph,
    metric: str = "total",
    top: int | None = 10,
    rels: Iterable[str] | None = None,
) -> list[Degree]:
    """Most connected directories."""
    return degree_centrality(graph.module_graph(rels), metric, top)


# ---------------------------------------------------------------------------
# Traits
# ---------------------------------------------------------------------------


class TraitImpl(NamedTuple):
    type_name: str
    path: str


def trait_impls(graph: KnowledgeGraph, trait_name: str) -> list[TraitImpl]:
    """
    ``(type name, file)`` for every impl of *trait_name*.

    Uses both resolved ``implements`` edges and the trait name recorded on
    impl items, so traits from outside the analysed tree (``Display``)
    are covered too.

    :param trait_name: Trait name or path (``fmt::Display``).
    :raises TraitNotFoundError: If neither a trait nor an impl of it exists.
    """
    name = last_segment(trait_name)
    impl_ids: set[str] = set()

    for r in graph.edges(("implements",)):
        dst = graph.items.get(r.dst)
        if dst is not None and dst.name == name:
            impl_ids.add(r.src)
    for it in graph.items.values():
        if it.kind == "impl" and it.attr("trait_name") == name:
            impl_ids.add(it.id)

    if not impl_ids:
        if any(i.kind == "trait" and i.name == name for i in graph.items.values()):
            return []
        raise TraitNotFoundError(trait_name)

    found = {
        TraitImpl(graph.items[i].attr("type_name", "?"), graph.items[i].path)
        for i in impl_ids
        if i in graph.items
    }
    return sorted(found, key=lambda t: (t.path, t.type_name))


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@dataclass
class ItemInfo:
    item: Item
    outgoing: list[Relationship]
    incoming: list[Relationship]

    def to_dict(self) -> dict:
        return {
            "item": self.item.to_dict(),
            "outgoing": [r.to_dict() for r in self.outgoing],
            "incoming": [r.to_dict() for r in self.incoming],
        }


def item_info(graph: KnowledgeGraph, item_id: str, rels: Iterable[str] | None = None) -> ItemInfo:
    """
    Metadata, snippet and relationships of one item.

    :param rels: Only report relationships of these kinds.
    :raises ItemNotFoundError: If *item_id* is not in the graph.
    """
    it = _require_item(graph, item_id)
    wanted = list(rels) if rels is not None else None
    out = [r for r in graph.edges(wanted) if r.src == item_id]
    inc = [r for r in graph.edges(wanted) if r.dst == item_id]
    return ItemInfo(item=it, outgoing=out, incoming=inc)


def function_usage(graph: KnowledgeGraph, item_id: str, direction: str = "callers") -> list[Item]:
    """
    Callers of, or callees from, one item via ``calls`` edges.

    :param direction: ``callers`` or ``callees``.
    :raises ItemNotFoundError: If *item_id* is not in the graph.
    """
    if direction not in ("callers", "callees"):
        raise ValueError(f"direction must be 'callers' or 'callees', got {direction!r}")
    _require_item(graph, item_id)
    if direction == "callers":
        ids = {r.src for r in graph.edges(("calls",)) if r.dst == item_id}
    else:
        ids = {r.dst for r in graph.edges(("calls",)) if r.src == item_id}
    found = [graph.items[i] for i in ids if i in graph.items]
    return sorted(found, key=lambda i: (i.path, i.line_start, i.id))


def unreferenced_items(
    graph: KnowledgeGraph,
    *,
    include_public: bool = False,
    kinds: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[Item]:
    """
    Items nothing refers to (no inbound uses/calls/implements/extends).

    ``main`` functions are never reported.

    :param include_public: Also report ``pub`` items.
    :param kinds: Item kinds to consider.
    :param exclude: Glob patterns matched against item names.
    """
    referenced = {r.dst for r in graph.edges(REFERENCE_RELS)}
    wanted = set(kinds) if kinds is not None else set(UNREFERENCED_KINDS)
    patterns = list(exclude or ())

    out: list[Item] = []
    for it in graph.items.values():
        if it.kind not in wanted or it.id in referenced:
            continue
        if it.is_public and not include_public:
            continue
        if it.kind == "function" and it.name == "main":
            continue
        if any(fnmatch(it.name, p) for p in patterns):
            continue
        out.append(it)
    return sorted(out, key=lambda i: (i.path, i.line_start, i.id))


def parse_rels(value: str | None) -> list[str] | None:
    """
    Parse a comma-separated relationship filter (``"calls,uses"``).

    :raises ValueError: On an unknown relationship kind.
    """
    if not value:
        return None
    rels = [r.strip().lower() for r in value.split(",") if r.strip()]
    bad = [r for r in rels if r not in REL_KINDS]
    if bad:
        raise ValueError(f"unknown relationship kind(s): {', '.join(bad)}")
    return rels
