#!/usr/bin/env python3
"""
graph.py

KnowledgeGraph — the assembled, resolved program graph.

Flat id arena: items live in one ``id -> Item`` map, relationships refer
to ids only.  File-level and module-level projections are derived on
demand and never stored.
"""

from __future__ import annotations

import contextlib
import json
import os
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from rust_kg.errors import PersistError
from rust_kg.extract import Item, Relationship

GRAPH_FORMAT_VERSION = 1


@dataclass
class FileNode:
    """
    One analysed source file.

    :param path: Repo-relative posix path.
    :param item_ids: Ids of the items defined in the file, in source order.
    :param fingerprint: Content fingerprint the items were extracted from.
    :param imports: ``(path, alias)`` pairs from the file's ``use`` trees.
    """

    path: str
    item_ids: list[str] = field(default_factory=list)
    fingerprint: str | None = None
    imports: list[tuple[str, str | None]] = field(default_factory=list)

    @property
    def module(self) -> str:
        parent = PurePosixPath(self.path).parent.as_posix()
        return parent if parent else "."

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "item_ids": list(self.item_ids),
            "fingerprint": self.fingerprint,
            "imports": [list(i) for i in self.imports],
        }

    @classmethod
    def from_dict(cls, d: dict) -> FileNode:
        return cls(
            path=d["path"],
            item_ids=list(d["item_ids"]),
            fingerprint=d.get("fingerprint"),
            imports=[(p, a) for p, a in d.get("imports", [])],
        )


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


class Projection:
    """
    Simple directed graph over string nodes (files or modules).

    Self-edges are dropped and parallel edges collapsed on insertion.
    """

    def __init__(self, nodes: Iterable[str] = ()) -> None:
        self.succ: dict[str, set[str]] = {}
        self.pred: dict[str, set[str]] = {}
        for n in nodes:
            self.add_node(n)

    def add_node(self, n: str) -> None:
        self.succ.setdefault(n, set())
        self.pred.setdefault(n, set())

    def add_edge(self, a: str, b: str) -> None:
        if a == b:
            return
        self.add_node(a)
        self.add_node(b)
        self.succ[a].add(b)
        self.pred[b].add(a)

    @property
    def nodes(self) -> list[str]:
        return sorted(self.succ)

    def successors(self, n: str) -> list[str]:
        return sorted(self.succ.get(n, ()))

    def predecessors(self, n: str) -> list[str]:
        return sorted(self.pred.get(n, ()))

    def edges(self) -> list[tuple[str, str]]:
        return sorted((a, b) for a, bs in self.succ.items() for b in bs)

    def __contains__(self, n: object) -> bool:
        return n in self.succ

    def __len__(self) -> int:
        return len(self.succ)

    def __repr__(self) -> str:
        return f"Projection(nodes={len(self)}, edges={len(self.edges())})"


# ---------------------------------------------------------------------------
# KnowledgeGraph
# ---------------------------------------------------------------------------


@dataclass
class KnowledgeGraph:
    """
    Assembled knowledge graph of a Rust project.

    :param files: ``path -> FileNode`` in discovery order.
    :param items: ``id -> Item`` for every item of every file.
    :param relationships: Resolved edges; both endpoints always exist.
    :param warnings: ``path -> [message]`` for files that were skipped
                     or only partly understood.
    :param metadata: Free-form build metadata (root, source_root, ...).
    """

    files: dict[str, FileNode] = field(default_factory=dict)
    items: dict[str, Item] = field(default_factory=dict)
    relationships: list[Relationship] = field(default_factory=list)
    warnings: dict[str, list[str]] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def item(self, item_id: str) -> Item | None:
        return self.items.get(item_id)

    def items_in(self, path: str) -> list[Item]:
        node = self.files.get(path)
        if node is None:
            return []
        return [self.items[i] for i in node.item_ids if i in self.items]

    def file_of(self, item_id: str) -> str | None:
        it = self.items.get(item_id)
        return it.path if it else None

    def edges(self, rels: Iterable[str] | None = None) -> Iterator[Relationship]:
        """Iterate relationships, optionally restricted to *rels*."""
        wanted = set(rels) if rels is not None else None
        for r in self.relationships:
            if wanted is None or r.rel in wanted:
                yield r

    @property
    def source_root(self) -> str:
        return self.metadata.get("source_root", "src")

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def file_graph(self, rels: Iterable[str] | None = None) -> Projection:
        """
        File-level projection: edge A -> B when an item in A relates to an
        item in B.  Every analysed file is a node.
        """
        proj = Projection(self.files)
        for r in self.edges(rels):
            a = self.file_of(r.src)
            b = self.file_of(r.dst)
            if a is not None and b is not None:
                proj.add_edge(a, b)
        return proj

    def module_graph(self, rels: Iterable[str] | None = None) -> Projection:
        """Files grouped by containing directory (``.`` for root files)."""
        proj = Projection(node.module for node in self.files.values())
        for r in self.edges(rels):
            a = self.file_of(r.src)
            b = self.file_of(r.dst)
            if a is not None and b is not None:
                proj.add_edge(self.files[a].module, self.files[b].module)
        return proj

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """
        Return item and relationship counts by kind.

        :return: dict with ``total_files``, ``total_items``,
                 ``total_relationships``, ``item_counts``,
                 ``relationship_counts``, ``files_with_warnings``.
        """
        return {
            "total_files": len(self.files),
            "total_items": len(self.items),
            "total_relationships": len(self.relationships),
            "item_counts": dict(Counter(i.kind for i in self.items.values())),
            "relationship_counts": dict(Counter(r.rel for r in self.relationships)),
            "files_with_warnings": len(self.warnings),
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "version": GRAPH_FORMAT_VERSION,
            "files": [f.to_dict() for f in self.files.values()],
            "items": [i.to_dict() for i in self.items.values()],
            "relationships": [r.to_dict() for r in self.relationships],
            "warnings": {p: list(w) for p, w in self.warnings.items()},
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, d: dict) -> KnowledgeGraph:
        if d.get("version") != GRAPH_FORMAT_VERSION:
            raise PersistError(f"unsupported graph format version: {d.get('version')!r}")
        files = [FileNode.from_dict(f) for f in d["files"]]
        items = [Item.from_dict(i) for i in d["items"]]
        return cls(
            files={f.path: f for f in files},
            items={i.id: i for i in items},
            relationships=[Relationship.from_dict(r) for r in d["relationships"]],
            warnings={p: list(w) for p, w in d.get("warnings", {}).items()},
            metadata=dict(d.get("metadata", {})),
        )

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def save_json(self, path: str | Path) -> None:
        """
        Write the graph as JSON, atomically.

        :raises PersistError: If the file cannot be written.
        """
        p = Path(path)
        tmp = p.with_name(p.name + ".tmp")
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(self.to_json(), encoding="utf-8")
            os.replace(tmp, p)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise PersistError(f"cannot write graph to {p}: {exc}") from exc

    @classmethod
    def load_json(cls, path: str | Path) -> KnowledgeGraph:
        """
        :raises PersistError: If the file is missing or not a graph record.
        """
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistError(f"cannot read graph from {p}: {exc}") from exc
        try:
            return cls.from_dict(data)
        except (KeyError, TypeError) as exc:
            raise PersistError(f"malformed graph record {p}: {exc}") from exc

    def __repr__(self) -> str:
        return (
            f"KnowledgeGraph(files={len(self.files)}, items={len(self.items)}, "
            f"relationships={len(self.relationships)})"
        )
