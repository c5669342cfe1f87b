#!/usr/bin/env python3
"""
assemble.py

GraphAssembler — merge per-file extractions and resolve names.

Two phases, always in this order:

1. **Merge**: every :class:`~rust_kg.extract.FileExtraction` (fresh or
   cached) contributes its items and local edges.  A file is atomic: all
   of its ids come from one extraction.
2. **Resolve**: every pending reference is resolved against the complete
   merged item set.  This phase never uses cached resolution results, so
   a change in one file is visible to references in every other file.

Name resolution is heuristic.  When a name cannot be pinned down by
module path, the reference fans out to every item with that name and an
allowed kind (one edge per match).
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable

from loguru import logger

from rust_kg.extract import (
    FileExtraction,
    Item,
    PendingRef,
    Relationship,
    module_id_for,
)
from rust_kg.graph import FileNode, KnowledgeGraph

# Crates whose paths never resolve inside the analysed tree.
EXTERNAL_ROOTS = frozenset({"std", "core", "alloc"})

_CRATE_ROOT_FILES = ("lib.rs", "main.rs")
_NO_SELF_LOOP = ("calls", "uses")


def allowed_kinds(rel: str, detail: str | None = None) -> frozenset[str] | None:
    """Item kinds a reference of this relationship kind may point at."""
    if rel == "calls":
        return frozenset({"function"})
    if rel == "implements":
        return frozenset({"trait"})
    if rel == "extends":
        if detail == "supertrait":
            return frozenset({"trait"})
        return frozenset({"struct", "enum", "type_alias"})
    return None


def module_scope(path: str, source_root: str = "src") -> tuple[str, tuple[str, ...]] | None:
    """
    Crate base directory and module segments of a file.

    ``src/a/b.rs`` -> ``("src", ("a", "b"))``; ``src/a/mod.rs`` ->
    ``("src", ("a",))``; ``src/lib.rs`` -> ``("src", ())``.  Files under a
    nested ``src`` (workspace members) get that directory as their base.
    Files outside any source root give ``None``.
    """
    parts = PurePosixPath(path).parts
    root = PurePosixPath(source_root).parts
    idx: int | None = None
    if root and tuple(parts[: len(root)]) == root and len(parts) > len(root):
        idx = len(root)
    else:
        for i, part in enumerate(parts[:-1]):
            if part == "src":
                idx = i + 1
                break
    if idx is None:
        return None

    base = "/".join(parts[:idx])
    rest = list(parts[idx:])
    fname = rest.pop()
    if fname == "mod.rs" or (not rest and fname in _CRATE_ROOT_FILES):
        return base, tuple(rest)
    return base, tuple(rest) + (PurePosixPath(fname).stem,)


def _module_file_rank(path: str) -> tuple:
    name = PurePosixPath(path).name
    return (name != "lib.rs", name != "main.rs", path)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class _Linker:
    """Whole-program indexes used to turn pending references into ids."""

    def __init__(self, graph: KnowledgeGraph, parents: dict[str, str], source_root: str) -> None:
        self.graph = graph
        self.parents = parents

        self.by_name: dict[str, list[Item]] = {}
        for it in graph.items.values():
            if it.kind != "impl":
                self.by_name.setdefault(it.name, []).append(it)

        self.scopes: dict[str, tuple[str, tuple[str, ...]]] = {}
        candidates: dict[tuple[str, tuple[str, ...]], list[str]] = {}
        for path in graph.files:
            scope = module_scope(path, source_root)
            if scope is None:
                continue
            self.scopes[path] = scope
            candidates.setdefault(scope, []).append(path)
        self.modules = {k: min(v, key=_module_file_rank) for k, v in candidates.items()}

        self.aliases: dict[str, dict[str, list[str]]] = {}
        for path, node in graph.files.items():
            bound: dict[str, list[str]] = {}
            for upath, alias in node.imports:
                segs = [s for s in upath.split("::") if s]
                if not segs or segs[-1] == "*" or alias == "_":
                    continue
                bound[alias or segs[-1]] = segs
            self.aliases[path] = bound

        # (type or trait name, method name) -> function ids
        self.methods: dict[tuple[str, str], list[str]] = {}
        for child, parent_id in parents.items():
            fn = graph.items.get(child)
            owner = graph.items.get(parent_id)
            if fn is None or owner is None or fn.kind != "function":
                continue
            if owner.kind == "impl":
                key = owner.attr("type_name")
            elif owner.kind == "trait":
                key = owner.name
            else:
                continue
            self.methods.setdefault((key, fn.name), []).append(fn.id)

    # ------------------------------------------------------------------

    def resolve(self, ref: PendingRef, path: str) -> list[str]:
        kinds = allowed_kinds(ref.rel, ref.detail)
        segs = [s for s in ref.target.split("::") if s]
        if not segs or segs[0] in EXTERNAL_ROOTS:
            return []

        if segs[0] == "Self":
            owner = self._enclosing_type(ref.src)
            if owner and len(segs) == 2:
                hits = self.methods.get((owner, segs[1]), [])
                if hits:
                    return list(hits)
            return self._by_name(segs[-1], kinds)

        if ref.rel != "uses":
            bound = self.aliases.get(path, {}).get(segs[0])
            if bound is not None:
                segs = bound + segs[1:]
                if segs[0] in EXTERNAL_ROOTS:
                    return []

        hits = self._scoped(segs, path, kinds, ref.src)
        if hits:
            return hits

        if ref.rel == "calls" and len(segs) >= 2:
            hits = self.methods.get((segs[-2], segs[-1]), [])
            if hits:
                return list(hits)

        return self._by_name(segs[-1], kinds)

    def _by_name(self, name: str, kinds: frozenset[str] | None) -> list[str]:
        return [i.id for i in self.by_name.get(name, []) if kinds is None or i.kind in kinds]

    def _enclosing_type(self, item_id: str) -> str | None:
        cur = self.parents.get(item_id)
        while cur is not None:
            it = self.graph.items.get(cur)
            if it is None:
                return None
            if it.kind == "impl":
                return it.attr("type_name")
            if it.kind == "trait":
                return it.name
            cur = self.parents.get(cur)
        return None

    def _inline_depth(self, item_id: str) -> int:
        depth, cur = 0, item_id
        while cur is not None:
            it = self.graph.items.get(cur)
            if it is not None and it.kind == "module" and it.attr("is_inline"):
                depth += 1
            cur = self.parents.get(cur)
        return depth

    def _scoped(
        self, segs: list[str], path: str, kinds: frozenset[str] | None, src: str
    ) -> list[str]:
        scope = self.scopes.get(path)
        if scope is None:
            return []
        base, here = scope

        head = segs[0]
        if head == "crate":
            starts, rest = [()], segs[1:]
        elif head == "self":
            starts, rest = [here], segs[1:]
        elif head == "super":
            # `super` leaves enclosing inline modules before the file module
            cur, rest = list(here), list(segs)
            inline = self._inline_depth(src)
            while rest and rest[0] == "super":
                if inline:
                    inline -= 1
                else:
                    cur = cur[:-1]
                rest = rest[1:]
            starts = [tuple(cur)]
        elif len(segs) == 1 or not here:
            starts, rest = [here], segs
        else:
            starts, rest = [here, ()], segs

        for start in starts:
            if not rest:
                return self._module_item(base, start, kinds)
            owner_segs = start + tuple(rest[:-1])
            file = path if owner_segs == here else self.modules.get((base, owner_segs))
            if file is not None:
                mod_id = module_id_for(file)
                hits = [
                    i.id
                    for i in self.graph.items_in(file)
                    if i.name == rest[-1]
                    and i.id != mod_id
                    and self.parents.get(i.id) == mod_id
                    and (kinds is None or i.kind in kinds)
                ]
                if hits:
                    return hits
            hits = self._module_item(base, start + tuple(rest), kinds)
            if hits:
                return hits
        return []

    def _module_item(self, base: str, segs: tuple[str, ...], kinds) -> list[str]:
        if kinds is not None and "module" not in kinds:
            return []
        file = self.modules.get((base, segs))
        if file is None:
            return []
        mid = module_id_for(file)
        return [mid] if mid in self.graph.items else []


# ---------------------------------------------------------------------------
# GraphAssembler
# ---------------------------------------------------------------------------


class GraphAssembler:
    """
    Single-writer merge of per-file extractions into a :class:`KnowledgeGraph`.

    Example::

        asm = GraphAssembler(source_root="src")
        for extraction, fp in results:
            asm.add(extraction, fp)
        graph = asm.assemble()

    :param source_root: Primary source root (module paths start below it).
    """

    def __init__(self, source_root: str = "src") -> None:
        self.source_root = source_root
        self._files: list[tuple[FileExtraction, str | None]] = []

    def add(self, extraction: FileExtraction, fingerprint: str | None = None) -> None:
        self._files.append((extraction, fingerprint))

    def assemble(self, metadata: dict | None = None) -> KnowledgeGraph:
        """
        Run both phases and return the finished graph.

        :param metadata: Extra metadata stored on the graph.
        """
        graph = KnowledgeGraph(metadata={"source_root": self.source_root, **(metadata or {})})
        edges: dict[tuple[str, str, str], Relationship] = {}
        pending: list[tuple[str, PendingRef]] = []
        parents: dict[str, str] = {}

        # ---- phase 1: merge ----------------------------------------
        for ex, fp in self._files:
            if ex.path in graph.files:
                logger.warning("duplicate file {} ignored", ex.path)
                continue
            node = FileNode(path=ex.path, fingerprint=fp, imports=list(ex.imports))
            for it in ex.items:
                if it.id in graph.items:
                    msg = f"duplicate item id {it.id} dropped"
                    logger.warning("{}: {}", ex.path, msg)
                    graph.warnings.setdefault(ex.path, []).append(msg)
                    continue
                graph.items[it.id] = it
                node.item_ids.append(it.id)
            graph.files[ex.path] = node

            if ex.warnings:
                graph.warnings.setdefault(ex.path, []).extend(ex.warnings)
                for w in ex.warnings:
                    logger.warning("{}", w)

            for r in ex.relationships:
                if r.src in graph.items and r.dst in graph.items:
                    _add_edge(edges, r)
                    if r.rel == "contains":
                        parents.setdefault(r.dst, r.src)
            pending.extend((ex.path, ref) for ref in ex.refs if ref.src in graph.items)

        # ---- phase 2: resolve ---------------------------------------
        linker = _Linker(graph, parents, self.source_root)

        for path, (base, segs) in linker.scopes.items():
            if not segs:
                continue
            parent_file = linker.modules.get((base, segs[:-1]))
            child, parent = module_id_for(path), None
            if parent_file is not None and parent_file != path:
                parent = module_id_for(parent_file)
            if parent in graph.items and child in graph.items:
                _add_edge(edges, Relationship(parent, "contains", child, {"via": "file_layout"}))

        unresolved = 0
        for path, ref in pending:
            dsts = linker.resolve(ref, path)
            if not dsts:
                unresolved += 1
                continue
            evidence: dict = {"line": ref.line, "expr": ref.target}
            if ref.detail:
                evidence["via"] = ref.detail
            if len(dsts) > 1:
                evidence["fanout"] = len(dsts)
            for dst in dsts:
                _add_edge(edges, Relationship(ref.src, ref.rel, dst, dict(evidence)))

        graph.relationships = list(edges.values())
        logger.debug(
            "assembled {} files, {} items, {} relationships ({} refs unresolved)",
            len(graph.files),
            len(graph.items),
            len(graph.relationships),
            unresolved,
        )
        return graph


def _add_edge(edges: dict, r: Relationship) -> None:
    if r.src == r.dst and r.rel in _NO_SELF_LOOP:
        return
    edges.setdefault(r.key, r)


def assemble(
    extractions: Iterable[FileExtraction | tuple[FileExtraction, str | None]],
    *,
    source_root: str = "src",
    metadata: dict | None = None,
) -> KnowledgeGraph:
    """Convenience wrapper: assemble a graph from extractions in order."""
    asm = GraphAssembler(source_root=source_root)
    for entry in extractions:
        if isinstance(entry, tuple):
            asm.add(*entry)
        else:
            asm.add(entry)
    return asm.assemble(metadata)
