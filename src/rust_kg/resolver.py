#!/usr/bin/env python3
"""
resolver.py

Resolver — map a user-supplied name to graph items.

Ambiguity is data, not an error: a name that matches several equally
ranked items comes back as :class:`Ambiguous` with the full ranked
candidate list.

Ranking (best first):

1. items under the primary source root (``src/`` by default),
2. shallower path depth,
3. path, then line.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Union

from rust_kg.extract import ITEM_KINDS, Item
from rust_kg.graph import KnowledgeGraph

KIND_ALIASES = {
    "fn": "function",
    "func": "function",
    "mod": "module",
    "type": "type_alias",
    "alias": "type_alias",
    "union": "struct",
    "macro_rules": "macro",
}


def normalize_kind(kind: str | None) -> str | None:
    """
    Canonical item kind for a kind name or alias.

    :raises ValueError: If *kind* is not a known kind or alias.
    """
    if kind is None:
        return None
    k = kind.strip().lower()
    k = KIND_ALIASES.get(k, k)
    if k not in ITEM_KINDS:
        raise ValueError(f"unknown item kind: {kind!r}")
    return k


@dataclass(frozen=True)
class Unique:
    item: Item


@dataclass(frozen=True)
class Ambiguous:
    name: str
    candidates: tuple[Item, ...]


@dataclass(frozen=True)
class NotFound:
    name: str
    kind: str | None = None


Resolution = Union[Unique, Ambiguous, NotFound]


class Resolver:
    """
    Name lookup over a :class:`KnowledgeGraph`.

    Example::

        r = Resolver(graph)
        res = r.resolve("parse", kind="fn")
        if isinstance(res, Ambiguous):
            for item in res.candidates:
                print(item.id)

    :param graph: Graph to search.
    :param source_root: Primary source root; defaults to the graph's.
    """

    def __init__(self, graph: KnowledgeGraph, source_root: str | None = None) -> None:
        self.graph = graph
        self.source_root = PurePosixPath(source_root or graph.source_root).parts
        self._by_name: dict[str, list[Item]] = {}
        for it in graph.items.values():
            self._by_name.setdefault(it.name, []).append(it)

    def _tier(self, item: Item) -> tuple[int, int]:
        parts = PurePosixPath(item.path).parts
        n = len(self.source_root)
        if n and tuple(parts[:n]) == self.source_root:
            return (0, len(parts) - n)
        return (1, len(parts))

    def rank_key(self, item: Item) -> tuple:
        return (*self._tier(item), item.path, item.line_start, item.id)

    def candidates(self, name: str, kind: str | None = None) -> list[Item]:
        """All items named *name* (optionally of *kind*), best first."""
        k = normalize_kind(kind)
        found = [i for i in self._by_name.get(name, []) if k is None or i.kind == k]
        return sorted(found, key=self.rank_key)

    def resolve(self, name: str, kind: str | None = None) -> Resolution:
        """
        Resolve *name* (or an exact item id) to items.

        :param name: Item name, or a full item id.
        :param kind: Optional kind filter (``function``, ``fn``, ``struct``, ...).
        :return: :class:`Unique`, :class:`Ambiguous` or :class:`NotFound`.
        :raises ValueError: If *kind* is not a known kind.
        """
        k = normalize_kind(kind)
        exact = self.graph.items.get(name)
        if exact is not None and (k is None or exact.kind == k):
            return Unique(exact)

        ranked = self.candidates(name, k)
        if not ranked:
            return NotFound(name, k)
        if len(ranked) == 1:
            return Unique(ranked[0])

        top = self._tier(ranked[0])
        if self._tier(ranked[1]) == top:
            return Ambiguous(name, tuple(ranked))
        return Unique(ranked[0])

    def __repr__(self) -> str:
        return f"Resolver(names={len(self._by_name)})"
