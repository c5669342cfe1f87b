"""
test_viz.py

Tests for the DOT and pyvis renderers.
"""

from __future__ import annotations

import pytest

from rust_kg.assemble import assemble
from rust_kg.errors import PersistError
from rust_kg.extract import extract_source
from rust_kg.viz import build_network, render_html, save_html, to_dot

FILES = {
    "core/a.rs": "pub fn a() { b() }\n",
    "core/b.rs": 'pub fn b() { let s = "quote\\"d"; }\n',
    "app/main.rs": "fn main() { a() }\n",
}


@pytest.fixture
def graph():
    return assemble([extract_source(p, s) for p, s in FILES.items()])


# ---------------------------------------------------------------------------
# DOT
# ---------------------------------------------------------------------------


def test_dot_file_level(graph):
    dot = to_dot(graph)
    assert dot.startswith("digraph rust_kg {")
    assert '"core/a.rs" -> "core/b.rs";' in dot
    assert '"app/main.rs" -> "core/a.rs";' in dot
    assert dot.rstrip().endswith("}")


def test_dot_module_level(graph):
    dot = to_dot(graph, "module")
    assert '"app" -> "core";' in dot
    assert '"core" -> "core"' not in dot


def test_dot_item_level_with_rel_filter(graph):
    dot = to_dot(graph, "item", ["calls"])
    assert '"fn:core/a.rs:a:1" -> "fn:core/b.rs:b:1" [label="calls"' in dot
    assert "contains" not in dot


def test_dot_bad_level(graph):
    with pytest.raises(ValueError):
        to_dot(graph, "crate")


# ---------------------------------------------------------------------------
# pyvis
# ---------------------------------------------------------------------------


def test_network_file_level(graph):
    net = build_network(graph)
    assert sorted(net.get_nodes()) == ["app/main.rs", "core/a.rs", "core/b.rs"]
    assert len(net.get_edges()) == 2


def test_network_item_level_only_connected_items(graph):
    net = build_network(graph, "item", ["calls"])
    assert sorted(net.get_nodes()) == ["fn:app/main.rs:main:1", "fn:core/a.rs:a:1", "fn:core/b.rs:b:1"]


def test_render_html(graph):
    page = render_html(graph, "module", physics=False)
    assert "<html>" in page.lower() or "<html" in page.lower()
    assert "core" in page


def test_save_html(graph, tmp_path):
    out = save_html(graph, tmp_path / "viz" / "kg.html", "file")
    assert out.exists()
    assert "core/a.rs" in out.read_text(encoding="utf-8")


def test_save_html_unwritable(graph, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(PersistError):
        save_html(graph, blocker / "kg.html")
