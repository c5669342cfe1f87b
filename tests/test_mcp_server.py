"""
test_mcp_server.py

Tests for the MCP tool functions (called directly, no transport).
"""

from __future__ import annotations

import json

import pytest

from rust_kg import mcp_server
from rust_kg.kg import RustKG


@pytest.fixture
def kg(tmp_path, monkeypatch):
    kg = RustKG(tmp_path, db_path=tmp_path / "g.sqlite")
    kg.build(
        sources=[
            ("a.rs", b"pub fn parse() { helper() }\nfn helper() {}\n"),
            ("b.rs", b"pub fn parse() {}\npub trait Codec {}\nimpl Codec for B {}\npub struct B;\n"),
        ]
    )
    monkeypatch.setattr(mcp_server, "_kg", kg)
    yield kg
    kg.close()


def test_uninitialised_server_raises(monkeypatch):
    monkeypatch.setattr(mcp_server, "_kg", None)
    with pytest.raises(RuntimeError):
        mcp_server.graph_stats()


def test_graph_stats(kg):
    assert json.loads(mcp_server.graph_stats())["total_files"] == 2


def test_resolve_name_outcomes(kg):
    assert json.loads(mcp_server.resolve_name("parse"))["status"] == "ambiguous"
    assert json.loads(mcp_server.resolve_name("helper", "fn"))["status"] == "unique"
    assert json.loads(mcp_server.resolve_name("nothing"))["status"] == "not_found"


def test_resolve_name_bad_kind(kg):
    assert json.loads(mcp_server.resolve_name("parse", "klass"))["error"] == "invalid"


def test_function_usage(kg):
    callers = json.loads(mcp_server.function_usage("fn:a.rs:helper:2"))
    assert [c["id"] for c in callers] == ["fn:a.rs:parse:1"]


def test_item_info_by_name(kg):
    info = json.loads(mcp_server.item_info("helper"))
    assert info["item"]["id"] == "fn:a.rs:helper:2"
    assert [r["src"] for r in info["incoming"] if r["rel"] == "calls"] == ["fn:a.rs:parse:1"]


def test_ambiguous_name_returns_candidates(kg):
    out = json.loads(mcp_server.item_info("parse"))
    assert out["error"] == "ambiguous"
    assert [c["id"] for c in out["candidates"]] == ["fn:a.rs:parse:1", "fn:b.rs:parse:1"]
    assert json.loads(mcp_server.function_usage("parse"))["error"] == "ambiguous"


def test_function_usage_by_name(kg):
    callers = json.loads(mcp_server.function_usage("helper"))
    assert [c["id"] for c in callers] == ["fn:a.rs:parse:1"]
    assert json.loads(mcp_server.function_usage("nothing"))["error"] == "not_found"


def test_trait_impls(kg):
    assert json.loads(mcp_server.trait_impls("Codec")) == [{"type_name": "B", "path": "b.rs"}]
    assert json.loads(mcp_server.trait_impls("Missing"))["error"] == "not_found"


def test_connected_files_errors(kg):
    assert json.loads(mcp_server.connected_files("zzz.rs"))["error"] == "not_found"
    assert json.loads(mcp_server.connected_files("a.rs", rels="bogus"))["error"] == "invalid"


def test_item_info_and_cycles(kg):
    info = json.loads(mcp_server.item_info("fn:a.rs:parse:1", rels="calls"))
    assert [r["dst"] for r in info["outgoing"]] == ["fn:a.rs:helper:2"]
    assert json.loads(mcp_server.find_cycles()) == []
    assert json.loads(mcp_server.shortest_path("a.rs", "b.rs")) is None
