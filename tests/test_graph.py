"""
test_graph.py

Tests for KnowledgeGraph and Projection:
  lookups, file/module projections, stats, JSON round trip
"""

from __future__ import annotations

import json

import pytest

from rust_kg.assemble import assemble
from rust_kg.errors import PersistError
from rust_kg.extract import extract_source
from rust_kg.graph import FileNode, KnowledgeGraph, Projection

FILES = {
    "src/lib.rs": "pub mod net;\npub fn start() { net::connect(); }\n",
    "src/net/mod.rs": "pub fn connect() { crate::util::retry(); }\n",
    "src/util.rs": "pub fn retry() {}\n",
}


def _graph(files=FILES) -> KnowledgeGraph:
    return assemble([extract_source(p, s) for p, s in files.items()])


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def test_projection_drops_self_edges_and_duplicates():
    p = Projection(["a", "b"])
    p.add_edge("a", "b")
    p.add_edge("a", "b")
    p.add_edge("a", "a")
    assert p.edges() == [("a", "b")]
    assert p.successors("a") == ["b"]
    assert p.predecessors("b") == ["a"]
    assert len(p) == 2


def test_projection_adds_unknown_nodes():
    p = Projection()
    p.add_edge("x", "y")
    assert p.nodes == ["x", "y"]
    assert "x" in p


# ---------------------------------------------------------------------------
# KnowledgeGraph
# ---------------------------------------------------------------------------


def test_lookups():
    g = _graph()
    assert g.item("fn:src/util.rs:retry:1").name == "retry"
    assert g.item("nope") is None
    assert g.file_of("fn:src/lib.rs:start:2") == "src/lib.rs"
    assert [i.name for i in g.items_in("src/util.rs")] == ["util", "retry"]
    assert g.items_in("missing.rs") == []


def test_edges_filter():
    g = _graph()
    assert {r.rel for r in g.edges(["calls"])} == {"calls"}
    assert len(list(g.edges())) == len(g.relationships)


def test_file_graph():
    proj = _graph().file_graph(["calls"])
    assert proj.nodes == ["src/lib.rs", "src/net/mod.rs", "src/util.rs"]
    assert proj.edges() == [("src/lib.rs", "src/net/mod.rs"), ("src/net/mod.rs", "src/util.rs")]


def test_file_graph_includes_isolated_files():
    g = _graph({"a.rs": "fn a() {}\n", "b.rs": "fn b() {}\n"})
    proj = g.file_graph()
    assert proj.nodes == ["a.rs", "b.rs"]
    assert proj.edges() == []


def test_module_graph_groups_by_directory():
    proj = _graph().module_graph(["calls"])
    assert proj.nodes == ["src", "src/net"]
    assert proj.edges() == [("src", "src/net"), ("src/net", "src")]


def test_file_node_module():
    assert FileNode("src/a/b.rs").module == "src/a"
    assert FileNode("main.rs").module == "."


def test_stats():
    s = _graph().stats()
    assert s["total_files"] == 3
    assert s["item_counts"]["function"] == 3
    assert s["item_counts"]["module"] == 3
    assert s["relationship_counts"]["calls"] == 2
    assert s["files_with_warnings"] == 0


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def test_dict_round_trip():
    g = _graph()
    again = KnowledgeGraph.from_dict(json.loads(g.to_json()))
    assert again == g


def test_save_and_load_json(tmp_path):
    g = _graph()
    path = tmp_path / "out" / "graph.json"
    g.save_json(path)
    assert KnowledgeGraph.load_json(path) == g
    assert not (tmp_path / "out" / "graph.json.tmp").exists()


def test_load_json_missing_file(tmp_path):
    with pytest.raises(PersistError):
        KnowledgeGraph.load_json(tmp_path / "nope.json")


def test_from_dict_rejects_unknown_version():
    with pytest.raises(PersistError, match="version"):
        KnowledgeGraph.from_dict({"version": 99, "files": [], "items": [], "relationships": []})
