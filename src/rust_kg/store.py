#!/usr/bin/env python3
"""
store.py

GraphStore — SQLite persistence layer for the Rust knowledge graph.

SQLite is the authoritative persisted graph record.  A graph is always
written whole, inside one transaction, so a reader never sees a partial
graph: either the previous complete graph or the new one.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import List, Optional, Sequence

from rust_kg.errors import PersistError
from rust_kg.extract import Item, Relationship
from rust_kg.graph import FileNode, KnowledgeGraph

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS items (
  id          TEXT PRIMARY KEY,
  seq         INTEGER NOT NULL,
  kind        TEXT NOT NULL,
  name        TEXT NOT NULL,
  path        TEXT NOT NULL,
  line_start  INTEGER,
  line_end    INTEGER,
  visibility  TEXT,
  snippet     TEXT,
  attrs       TEXT
);

CREATE TABLE IF NOT EXISTS relationships (
  src      TEXT NOT NULL,
  rel      TEXT NOT NULL,
  dst      TEXT NOT NULL,
  seq      INTEGER NOT NULL,
  evidence TEXT,
  PRIMARY KEY (src, rel, dst)
);

CREATE TABLE IF NOT EXISTS files (
  path        TEXT PRIMARY KEY,
  seq         INTEGER NOT NULL,
  fingerprint TEXT,
  item_ids    TEXT NOT NULL,
  imports     TEXT NOT NULL,
  warnings    TEXT
);

CREATE TABLE IF NOT EXISTS meta (
  key   TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_kind ON items(kind);
CREATE INDEX IF NOT EXISTS idx_items_name ON items(name);
CREATE INDEX IF NOT EXISTS idx_items_path ON items(path);

CREATE INDEX IF NOT EXISTS idx_rel_src ON relationships(src);
CREATE INDEX IF NOT EXISTS idx_rel_dst ON relationships(dst);
CREATE INDEX IF NOT EXISTS idx_rel_rel ON relationships(rel);
"""

_ITEM_COLUMNS = "id, kind, name, path, line_start, line_end, visibility, snippet, attrs"


# ---------------------------------------------------------------------------
# GraphStore
# ---------------------------------------------------------------------------


class GraphStore:
    """
    SQLite-backed record of a :class:`KnowledgeGraph`.

    Example::

        with GraphStore(".rustkg/graph.sqlite") as store:
            store.write(graph)
            again = store.load()
            print(store.stats())

    :param db_path: Path to the SQLite database file (created if absent).
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._con: Optional[sqlite3.Connection] = None

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @property
    def con(self) -> sqlite3.Connection:
        """Lazy SQLite connection (created on first access)."""
        if self._con is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._con = sqlite3.connect(str(self.db_path), check_same_thread=False)
                self._con.executescript(_SCHEMA_SQL)
            except (OSError, sqlite3.Error) as exc:
                self._con = None
                raise PersistError(f"cannot open graph store {self.db_path}: {exc}") from exc
        return self._con

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._con is not None:
            self._con.close()
            self._con = None

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, graph: KnowledgeGraph) -> None:
        """
        Replace the stored graph with *graph* in a single transaction.

        :raises PersistError: If the write fails (the previous graph is kept).
        """
        item_rows = [
            (
                it.id,
                seq,
                it.kind,
                it.name,
                it.path,
                it.line_start,
                it.line_end,
                it.visibility,
                it.snippet,
                _dumps(it.attrs),
            )
            for seq, it in enumerate(graph.items.values())
        ]
        rel_rows = [
            (r.src, r.rel, r.dst, seq, _dumps(r.evidence))
            for seq, r in enumerate(graph.relationships)
        ]
        file_rows = [
            (
                f.path,
                seq,
                f.fingerprint,
                json.dumps(f.item_ids),
                json.dumps([list(i) for i in f.imports]),
                _dumps(graph.warnings.get(f.path)),
            )
            for seq, f in enumerate(graph.files.values())
        ]
        meta_rows = [("metadata", json.dumps(graph.metadata, ensure_ascii=False))]
        orphan_warnings = {p: w for p, w in graph.warnings.items() if p not in graph.files}
        meta_rows.append(("orphan_warnings", json.dumps(orphan_warnings, ensure_ascii=False)))
        meta_rows.append(("complete", "1"))

        con = self.con
        try:
            with con:
                con.execute("DELETE FROM relationships;")
                con.execute("DELETE FROM items;")
                con.execute("DELETE FROM files;")
                con.execute("DELETE FROM meta;")
                con.executemany(
                    f"INSERT INTO items (id, seq, {_ITEM_COLUMNS[4:]}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    item_rows,
                )
                con.executemany(
                    "INSERT INTO relationships (src, rel, dst, seq, evidence) VALUES (?, ?, ?, ?, ?)",
                    rel_rows,
                )
                con.executemany(
                    "INSERT INTO files (path, seq, fingerprint, item_ids, imports, warnings) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    file_rows,
                )
                con.executemany("INSERT INTO meta (key, value) VALUES (?, ?)", meta_rows)
        except sqlite3.Error as exc:
            raise PersistError(f"cannot write graph to {self.db_path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Read: whole graph
    # ------------------------------------------------------------------

    def has_graph(self) -> bool:
        row = self.con.execute("SELECT value FROM meta WHERE key = 'complete'").fetchone()
        return row is not None

    def load(self) -> KnowledgeGraph:
        """
        Reconstruct the stored graph.

        :raises PersistError: If no complete graph has been stored.
        """
        if not self.has_graph():
            raise PersistError(f"no graph stored in {self.db_path}")
        con = self.con

        meta = dict(con.execute("SELECT key, value FROM meta").fetchall())
        graph = KnowledgeGraph(metadata=json.loads(meta.get("metadata", "{}")))
        graph.warnings.update(json.loads(meta.get("orphan_warnings", "{}")))

        for row in con.execute(f"SELECT {_ITEM_COLUMNS} FROM items ORDER BY seq"):
            it = _row_to_item(row)
            graph.items[it.id] = it

        for path, fp, item_ids, imports, warnings in con.execute(
            "SELECT path, fingerprint, item_ids, imports, warnings FROM files ORDER BY seq"
        ):
            graph.files[path] = FileNode(
                path=path,
                item_ids=json.loads(item_ids),
                fingerprint=fp,
                imports=[(p, a) for p, a in json.loads(imports)],
            )
            if warnings is not None:
                graph.warnings[path] = json.loads(warnings)

        graph.relationships = [
            Relationship(src, rel, dst, json.loads(ev) if ev is not None else None)
            for src, rel, dst, ev in con.execute(
                "SELECT src, rel, dst, evidence FROM relationships ORDER BY seq"
            )
        ]
        return graph

    # ------------------------------------------------------------------
    # Read: single item / filtered lists
    # ------------------------------------------------------------------

    def item(self, item_id: str) -> Optional[Item]:
        """
        Fetch a single item by id.

        :return: :class:`Item` or ``None`` if not found.
        """
        row = self.con.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (item_id,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def query_items(
        self,
        *,
        kinds: Optional[Sequence[str]] = None,
        path: Optional[str] = None,
        name: Optional[str] = None,
    ) -> List[Item]:
        """
        Return items matching optional filters.

        :param kinds: Restrict to these kinds (e.g. ``["function", "trait"]``).
        :param path: Restrict to items defined in this file.
        :param name: Restrict to items with this exact name.
        """
        clauses: List[str] = []
        params: List[object] = []

        if kinds:
            clauses.append(f"kind IN ({','.join('?' for _ in kinds)})")
            params.extend(kinds)
        if path is not None:
            clauses.append("path = ?")
            params.append(path)
        if name is not None:
            clauses.append("name = ?")
            params.append(name)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.con.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items {where} ORDER BY path, line_start, seq",
            params,
        ).fetchall()
        return [_row_to_item(r) for r in rows]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """
        Return item and relationship counts by kind.

        :return: dict with ``total_items``, ``total_relationships``,
                 ``total_files``, ``item_counts``, ``relationship_counts``.
        """
        con = self.con
        item_rows = con.execute("SELECT kind, COUNT(*) FROM items GROUP BY kind").fetchall()
        rel_rows = con.execute("SELECT rel, COUNT(*) FROM relationships GROUP BY rel").fetchall()
        return {
            "db_path": str(self.db_path),
            "total_files": con.execute("SELECT COUNT(*) FROM files").fetchone()[0],
            "total_items": con.execute("SELECT COUNT(*) FROM items").fetchone()[0],
            "total_relationships": con.execute("SELECT COUNT(*) FROM relationships").fetchone()[0],
            "item_counts": {r[0]: r[1] for r in item_rows},
            "relationship_counts": {r[0]: r[1] for r in rel_rows},
        }

    def __repr__(self) -> str:
        return f"GraphStore(db_path={self.db_path!r})"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _dumps(value) -> Optional[str]:
    return json.dumps(value, ensure_ascii=False) if value is not None else None


def _row_to_item(row: tuple) -> Item:
    return Item(
        id=row[0],
        kind=row[1],
        name=row[2],
        path=row[3],
        line_start=row[4],
        line_end=row[5],
        visibility=row[6],
        snippet=row[7],
        attrs=json.loads(row[8]) if row[8] is not None else None,
    )
