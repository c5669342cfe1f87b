"""
test_cli.py

Smoke tests for the rustkg-build / rustkg-query / rustkg-viz entry points.
"""

from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest

from rust_kg import build_rustkg, rustkg_query, rustkg_viz


def _write_repo(tmp_path: Path, files: dict) -> Path:
    for rel, src in files.items():
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(textwrap.dedent(src))
    return tmp_path


@pytest.fixture
def repo(tmp_path):
    root = _write_repo(
        tmp_path / "repo",
        {
            "a.rs": "pub fn a() { b() }\n",
            "b.rs": "pub fn b() { c() }\n",
            "c.rs": "pub fn c() { a() }\npub trait Shape {}\nimpl Shape for C {}\npub struct C;\n",
        },
    )
    build_rustkg.main(["--repo", str(root), "--json"])
    return root


def _query(capsys, repo, *args):
    capsys.readouterr()
    rustkg_query.main([*args, "--repo", str(repo), "--json"])
    return json.loads(capsys.readouterr().out)


def test_build_prints_stats(repo, capsys):
    build_rustkg.main(["--repo", str(repo), "--json"])
    stats = json.loads(capsys.readouterr().out)
    assert stats["reused"] == 3
    assert stats["total_files"] == 3


def test_build_bad_root_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        build_rustkg.main(["--repo", str(tmp_path / "missing")])
    assert exc.value.code == 1


def test_query_stats(repo, capsys):
    assert _query(capsys, repo, "stats")["total_files"] == 3


def test_query_cycles_and_path(repo, capsys):
    assert _query(capsys, repo, "cycles") == [["a.rs", "b.rs", "c.rs"]]
    assert _query(capsys, repo, "path", "a.rs", "c.rs") == ["a.rs", "b.rs", "c.rs"]


def test_query_trait_impls(repo, capsys):
    assert _query(capsys, repo, "trait-impls", "Shape") == [{"type_name": "C", "path": "c.rs"}]


def test_query_resolve(repo, capsys):
    out = _query(capsys, repo, "resolve", "b", "--kind", "fn")
    assert out["status"] == "unique"
    assert out["item"]["id"] == "fn:b.rs:b:1"


def test_query_not_found_exit_code(repo):
    with pytest.raises(SystemExit) as exc:
        rustkg_query.main(["connected", "nope.rs", "--repo", str(repo)])
    assert exc.value.code == 2


def test_query_text_output(repo, capsys):
    capsys.readouterr()
    rustkg_query.main(["usage", "fn:b.rs:b:1", "--repo", str(repo)])
    assert "fn:a.rs:a:1" in capsys.readouterr().out


def test_viz_dot_to_stdout(repo, capsys):
    capsys.readouterr()
    rustkg_viz.main(["--repo", str(repo), "--format", "dot", "--out", "-"])
    assert '"a.rs" -> "b.rs";' in capsys.readouterr().out


def test_viz_html_file(repo, tmp_path):
    out = tmp_path / "kg.html"
    rustkg_viz.main(["--repo", str(repo), "--out", str(out), "--level", "module"])
    assert out.exists()


# ---------------------------------------------------------------------------
# Lookup by name
# ---------------------------------------------------------------------------

DUPES = {
    "src/lib.rs": "pub fn run() { parse(); }\n",
    "src/json.rs": "pub fn parse() {}\n",
    "src/toml.rs": "pub fn parse() {}\npub struct Parser;\n",
}


@pytest.fixture
def dupes(tmp_path):
    root = _write_repo(tmp_path / "dupes", DUPES)
    build_rustkg.main(["--repo", str(root)])
    return root


def test_query_item_by_name(repo, capsys):
    out = _query(capsys, repo, "item", "b", "--kind", "fn")
    assert out["item"]["id"] == "fn:b.rs:b:1"
    assert [r["dst"] for r in out["outgoing"] if r["rel"] == "calls"] == ["fn:c.rs:c:1"]


def test_query_usage_by_name(repo, capsys):
    out = _query(capsys, repo, "usage", "b")
    assert [i["id"] for i in out] == ["fn:a.rs:a:1"]


def test_query_item_ambiguous_name(dupes, capsys):
    capsys.readouterr()
    with pytest.raises(SystemExit) as exc:
        rustkg_query.main(["item", "parse", "--repo", str(dupes), "--json"])
    assert exc.value.code == 3
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "ambiguous"
    assert [c["id"] for c in out["candidates"]] == [
        "fn:src/json.rs:parse:1",
        "fn:src/toml.rs:parse:1",
    ]


def test_query_usage_ambiguous_name_text(dupes, capsys):
    capsys.readouterr()
    with pytest.raises(SystemExit) as exc:
        rustkg_query.main(["usage", "parse", "--repo", str(dupes)])
    assert exc.value.code == 3
    text = capsys.readouterr().out
    assert "ambiguous: parse matches 2 items" in text
    assert "fn:src/toml.rs:parse:1" in text


def test_query_item_kind_narrows_to_nothing(dupes):
    with pytest.raises(SystemExit) as exc:
        rustkg_query.main(["item", "parse", "--kind", "struct", "--repo", str(dupes)])
    assert exc.value.code == 2


def test_query_items_filter(dupes, capsys):
    out = _query(capsys, dupes, "items", "--kind", "struct")
    assert [i["id"] for i in out] == ["struct:src/toml.rs:Parser:2"]
    out = _query(capsys, dupes, "items", "--name", "parse")
    assert [i["path"] for i in out] == ["src/json.rs", "src/toml.rs"]


# ---------------------------------------------------------------------------
# JSON graph files
# ---------------------------------------------------------------------------


def test_build_json_out_then_query_graph_file(tmp_path, capsys):
    root = _write_repo(tmp_path / "r", DUPES)
    out = tmp_path / "graph.json"
    build_rustkg.main(["--repo", str(root), "--no-save", "--json-out", str(out)])
    assert out.exists()
    assert not (root / ".rustkg" / "graph.sqlite").exists()

    callers = _query(capsys, root, "usage", "fn:src/json.rs:parse:1", "--graph", str(out))
    assert [c["id"] for c in callers] == ["fn:src/lib.rs:run:1"]
    assert _query(capsys, root, "stats", "--graph", str(out))["total_files"] == 3


def test_query_missing_graph_file_exits(repo, tmp_path):
    with pytest.raises(SystemExit) as exc:
        rustkg_query.main(["stats", "--repo", str(repo), "--graph", str(tmp_path / "absent.json")])
    assert exc.value.code == 1
