#!/usr/bin/env python3
"""
kg.py

RustKG — top-level orchestrator for the Rust knowledge graph.

Owns the full pipeline:
    repo → sources → extract (cache-checked, thread pool)
         → GraphAssembler → KnowledgeGraph → GraphStore

Also defines the structured result type :class:`BuildStats`.
"""

from __future__ import annotations

import json
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from loguru import logger

from rust_kg.assemble import GraphAssembler
from rust_kg.cache import CacheMode, CacheStore, fingerprint
from rust_kg.config import Settings, load_settings_near
from rust_kg.errors import AmbiguousNameError, ItemNotFoundError
from rust_kg.extract import FileExtraction, Item, extract_source
from rust_kg.graph import KnowledgeGraph
from rust_kg.resolver import Ambiguous, Resolution, Resolver, Unique, normalize_kind
from rust_kg.sources import read_sources
from rust_kg.store import GraphStore

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class BuildStats:
    """
    Statistics returned by :meth:`RustKG.build`.

    :param repo_root: Repository root that was analysed.
    :param db_path: SQLite database path (``None`` when not saved).
    :param mode: Cache mode used.
    :param total_files: Files in the build input.
    :param parsed_files: Files extracted afresh, in input order.
    :param reused_files: Files whose cached extraction was reused.
    :param failed_files: Files that yielded no items, only warnings.
    :param total_items: Items in the assembled graph.
    :param total_relationships: Relationships in the assembled graph.
    :param item_counts: Items by kind.
    :param relationship_counts: Relationships by kind.
    :param warnings: ``path -> [message]`` per-file warnings.
    :param elapsed: Wall-clock seconds.
    """

    repo_root: str
    db_path: str | None
    mode: str
    total_files: int
    parsed_files: list[str] = field(default_factory=list)
    reused_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)
    total_items: int = 0
    total_relationships: int = 0
    item_counts: dict[str, int] = field(default_factory=dict)
    relationship_counts: dict[str, int] = field(default_factory=dict)
    warnings: dict[str, list[str]] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def parsed(self) -> int:
        return len(self.parsed_files)

    @property
    def reused(self) -> int:
        return len(self.reused_files)

    def to_dict(self) -> dict:
        return {
            "repo_root": self.repo_root,
            "db_path": self.db_path,
            "mode": self.mode,
            "total_files": self.total_files,
            "parsed": self.parsed,
            "reused": self.reused,
            "failed_files": self.failed_files,
            "total_items": self.total_items,
            "total_relationships": self.total_relationships,
            "item_counts": self.item_counts,
            "relationship_counts": self.relationship_counts,
            "warnings": self.warnings,
            "elapsed": round(self.elapsed, 3),
        }

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def __str__(self) -> str:
        lines = [
            f"repo_root     : {self.repo_root}",
            f"db_path       : {self.db_path}",
            f"files         : {self.total_files}  (parsed {self.parsed}, reused {self.reused}, cache={self.mode})",
            f"items         : {self.total_items}  {self.item_counts}",
            f"relationships : {self.total_relationships}  {self.relationship_counts}",
        ]
        if self.warnings:
            lines.append(f"warnings      : {len(self.warnings)} file(s)")
        if self.failed_files:
            lines.append(f"failed        : {', '.join(self.failed_files)}")
        lines.append(f"elapsed       : {self.elapsed:.2f}s")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# RustKG: orchestrator
# ---------------------------------------------------------------------------


class RustKG:
    """
    Top-level orchestrator for the Rust knowledge graph.

    Typical usage::

        kg = RustKG("/path/to/crate")
        stats = kg.build()            # cache mode "use"
        print(stats)

        res = kg.resolve("parse", kind="fn")
        graph = kg.graph              # in-memory graph for queries

    :param repo_root: Project root directory.
    :param db_path: SQLite database path (default from settings).
    :param cache_path: Extraction cache path (default from settings).
    :param config: Settings; read from ``rust-kg.toml`` when omitted.
    """

    def __init__(
        self,
        repo_root: str | Path,
        db_path: str | Path | None = None,
        cache_path: str | Path | None = None,
        *,
        config: Settings | None = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self.settings = config if config is not None else load_settings_near(self.repo_root)
        self.db_path = Path(db_path) if db_path else self.repo_root / self.settings.db_path
        self.cache_path = (
            Path(cache_path) if cache_path else self.repo_root / self.settings.cache_path
        )

        self._store: GraphStore | None = None
        self._graph: KnowledgeGraph | None = None
        self._resolver: Resolver | None = None

    # ------------------------------------------------------------------
    # Layer accessors (lazy init)
    # ------------------------------------------------------------------

    @property
    def store(self) -> GraphStore:
        """SQLite persistence layer (lazy)."""
        if self._store is None:
            self._store = GraphStore(self.db_path)
        return self._store

    @property
    def graph(self) -> KnowledgeGraph:
        """Last built graph, or the stored one."""
        if self._graph is None:
            self.load()
        return self._graph  # type: ignore[return-value]

    @property
    def cache_options(self) -> dict:
        """Settings baked into cached extractions; a change invalidates the cache."""
        return {"snippets": self.settings.snippets}

    @property
    def resolver(self) -> Resolver:
        if self._resolver is None:
            self._resolver = Resolver(self.graph, self.settings.source_root)
        return self._resolver

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(
        self,
        mode: CacheMode | str = CacheMode.USE,
        *,
        save: bool = True,
        sources: Sequence[tuple[str, bytes]] | None = None,
    ) -> BuildStats:
        """
        Full pipeline: discovery → extraction → assembly → SQLite.

        :param mode: Cache mode: ``use``, ``ignore`` or ``rebuild``.
        :param save: Write the graph to SQLite.
        :param sources: Explicit ``(path, bytes)`` input instead of walking
                        the project root.
        :return: :class:`BuildStats`.
        :raises BuildError: If the project root cannot be read.
        :raises PersistError: If the graph cannot be written.
        """
        mode = CacheMode(mode)
        started = time.perf_counter()
        if sources is None:
            sources = read_sources(self.repo_root, self.settings.skip_dirs)

        cache = CacheStore(self.cache_path, self.cache_options)
        if mode is CacheMode.REBUILD:
            cache.clear()
        elif mode is CacheMode.USE:
            cache.load()

        results: dict[str, tuple[FileExtraction, str]] = {}
        todo: list[tuple[str, bytes, str]] = []
        for path, data in sources:
            fp = fingerprint(data)
            cached = cache.fresh(path, fp) if mode is CacheMode.USE else None
            if cached is not None:
                results[path] = (cached, fp)
            else:
                todo.append((path, data, fp))

        parsed = {path for path, _, _ in todo}
        if todo:
            with ThreadPoolExecutor(max_workers=self.settings.workers) as pool:
                futures = {
                    pool.submit(extract_source, path, data, snippets=self.settings.snippets): (
                        path,
                        fp,
                    )
                    for path, data, fp in todo
                }
                for fut in as_completed(futures):
                    path, fp = futures[fut]
                    extraction = fut.result()
                    results[path] = (extraction, fp)
                    cache.put(path, fp, extraction)

        # single-writer merge, in input order
        failed: list[str] = []
        assembler = GraphAssembler(source_root=self.settings.source_root)
        for path, _ in sources:
            extraction, fp = results[path]
            assembler.add(extraction, fp)
            if extraction.failed:
                failed.append(path)

        pruned = cache.prune(path for path, _ in sources)
        if pruned:
            logger.debug("pruned {} stale cache entries", pruned)
        cache.persist()

        graph = assembler.assemble({"repo_root": str(self.repo_root)})
        if save:
            self.store.write(graph)
        self._graph = graph
        self._resolver = None

        s = graph.stats()
        stats = BuildStats(
            repo_root=str(self.repo_root),
            db_path=str(self.db_path) if save else None,
            mode=mode.value,
            total_files=len(sources),
            parsed_files=[p for p, _ in sources if p in parsed],
            reused_files=[p for p, _ in sources if p not in parsed],
            failed_files=failed,
            total_items=s["total_items"],
            total_relationships=s["total_relationships"],
            item_counts=s["item_counts"],
            relationship_counts=s["relationship_counts"],
            warnings={p: list(w) for p, w in graph.warnings.items()},
            elapsed=time.perf_counter() - started,
        )
        logger.info(
            "built graph: {} files ({} parsed, {} reused), {} items, {} relationships",
            stats.total_files,
            stats.parsed,
            stats.reused,
            stats.total_items,
            stats.total_relationships,
        )
        return stats

    def load(self, json_path: str | Path | None = None) -> KnowledgeGraph:
        """
        Load the graph from SQLite, or from a JSON graph file.

        :param json_path: Read this file (written by ``rustkg-build
                          --json-out``) instead of the database.
        :raises PersistError: If nothing has been stored yet, or the
                              JSON file is unreadable.
        """
        if json_path is not None:
            self._graph = KnowledgeGraph.load_json(json_path)
        else:
            self._graph = self.store.load()
        self._resolver = None
        return self._graph

    def save_json(self, path: str | Path) -> None:
        """Write the current graph to a JSON file."""
        self.graph.save_json(path)
        logger.info("graph written to {}", path)

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def resolve(self, name: str, kind: str | None = None) -> Resolution:
        """Resolve a name (or id) against the current graph."""
        return self.resolver.resolve(name, kind)

    def resolve_item(self, name: str, kind: str | None = None) -> Item:
        """
        The single item a name (or id) stands for.

        :raises ItemNotFoundError: If nothing matches.
        :raises AmbiguousNameError: If several items rank equally; the
                                    exception carries the ranked candidates.
        """
        res = self.resolve(name, kind)
        if isinstance(res, Unique):
            return res.item
        if isinstance(res, Ambiguous):
            raise AmbiguousNameError(name, res.candidates)
        raise ItemNotFoundError(name)

    def item(self, item_id: str) -> Item | None:
        """One item by id; read straight from SQLite if no graph is loaded."""
        if self._graph is None:
            return self.store.item(item_id)
        return self._graph.item(item_id)

    def items(
        self,
        kinds: Sequence[str] | None = None,
        path: str | None = None,
        name: str | None = None,
    ) -> list[Item]:
        """
        Items matching optional filters, ordered by file and line.

        Without a loaded graph the filter runs as a SQLite query.

        :param kinds: Restrict to these kinds (aliases such as ``fn`` allowed).
        :param path: Restrict to items defined in this file.
        :param name: Restrict to items with this exact name.
        """
        wanted = [normalize_kind(k) for k in kinds] if kinds else None
        if self._graph is None:
            return self.store.query_items(kinds=wanted, path=path, name=name)
        found = [
            it
            for it in self._graph.items.values()
            if (wanted is None or it.kind in wanted)
            and (path is None or it.path == path)
            and (name is None or it.name == name)
        ]
        return sorted(found, key=lambda it: (it.path, it.line_start))

    def stats(self) -> dict:
        """Item/relationship counts of the current graph."""
        return self.graph.stats()

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._store is not None:
            self._store.close()

    def __enter__(self) -> RustKG:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"RustKG(repo_root={self.repo_root!r}, "
            f"db_path={self.db_path!r}, "
            f"cache_path={self.cache_path!r})"
        )
