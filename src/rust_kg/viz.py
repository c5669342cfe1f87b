#!/usr/bin/env python3
"""
viz.py

Read-only renderers for a KnowledgeGraph.

* :func:`to_dot` — Graphviz DOT text (no Graphviz needed to produce it)
* :func:`build_network` / :func:`save_html` — interactive pyvis HTML

Three levels: ``item`` (items and relationships), ``file`` (file-level
projection) and ``module`` (directory-level projection).
"""

from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Iterable

from pyvis.network import Network

from rust_kg.errors import PersistError
from rust_kg.graph import KnowledgeGraph, Projection

LEVELS = ("item", "file", "module")

# ---------------------------------------------------------------------------
# Palette
# ---------------------------------------------------------------------------

_KIND_COLOR: dict[str, str] = {
    "module": "#4A90D9",  # blue
    "function": "#27AE60",  # green
    "struct": "#E67E22",  # orange
    "enum": "#D35400",
    "trait": "#8E44AD",  # purple
    "impl": "#16A085",
    "const": "#7F8C8D",
    "static": "#7F8C8D",
    "type_alias": "#95A5A6",
    "macro": "#C0392B",
    "file": "#4A90D9",
    "dir": "#2C3E50",
}

_KIND_SHAPE: dict[str, str] = {
    "module": "box",
    "function": "ellipse",
    "struct": "diamond",
    "enum": "diamond",
    "trait": "hexagon",
    "impl": "dot",
    "macro": "triangle",
    "file": "box",
    "dir": "database",
}

_REL_COLOR: dict[str, str] = {
    "contains": "#BDC3C7",
    "calls": "#E74C3C",
    "uses": "#3498DB",
    "implements": "#9B59B6",
    "extends": "#F1C40F",
}


def _check_level(level: str) -> None:
    if level not in LEVELS:
        raise ValueError(f"level must be one of {LEVELS}, got {level!r}")


def _projection(graph: KnowledgeGraph, level: str, rels) -> Projection:
    return graph.module_graph(rels) if level == "module" else graph.file_graph(rels)


# ---------------------------------------------------------------------------
# DOT
# ---------------------------------------------------------------------------


def _dot_id(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def to_dot(graph: KnowledgeGraph, level: str = "file", rels: Iterable[str] | None = None) -> str:
    """
    Render *graph* as a Graphviz digraph.

    :param level: ``item``, ``file`` or ``module``.
    :param rels: Relationship kinds to include (default: all).
    """
    _check_level(level)
    rels = list(rels) if rels is not None else None
    lines = ["digraph rust_kg {", "  rankdir=LR;", '  node [fontname="Helvetica", fontsize=10];']

    if level == "item":
        used: set[str] = set()
        edges = list(graph.edges(rels))
        for r in edges:
            used.update((r.src, r.dst))
        for it in graph.items.values():
            if it.id not in used:
                continue
            color = _KIND_COLOR.get(it.kind, "#95A5A6")
            label = f"{it.name}\\n({it.kind})"
            lines.append(f'  {_dot_id(it.id)} [label="{label}", color="{color}"];')
        for r in edges:
            color = _REL_COLOR.get(r.rel, "#888888")
            lines.append(f'  {_dot_id(r.src)} -> {_dot_id(r.dst)} [label="{r.rel}", color="{color}"];')
    else:
        proj = _projection(graph, level, rels)
        shape = "box" if level == "file" else "folder"
        for n in proj.nodes:
            lines.append(f"  {_dot_id(n)} [shape={shape}];")
        for a, b in proj.edges():
            lines.append(f"  {_dot_id(a)} -> {_dot_id(b)};")

    lines.append("}")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# pyvis
# ---------------------------------------------------------------------------


def _item_tooltip(graph: KnowledgeGraph, item_id: str) -> str:
    it = graph.items[item_id]
    if it.line_end != it.line_start:
        line_str = f"lines {it.line_start}–{it.line_end}"
    else:
        line_str = f"line {it.line_start}"
    parts = [
        f"<b>{html.escape(it.name)}</b> <i>{it.kind}</i>",
        f"{html.escape(it.path)} · {line_str}",
        f"visibility: {html.escape(it.visibility)}",
    ]
    if it.snippet:
        shown = it.snippet.splitlines()[:8]
        parts.append("<pre>" + html.escape("\n".join(shown)) + "</pre>")
    return "<br>".join(parts)


def build_network(
    graph: KnowledgeGraph,
    level: str = "file",
    rels: Iterable[str] | None = None,
    *,
    height: str = "750px",
    physics: bool = True,
) -> Network:
    """
    Build a pyvis Network for one level of the graph.

    :param level: ``item``, ``file`` or ``module``.
    :param rels: Relationship kinds to include (default: all).
    :param height: CSS height of the canvas.
    :param physics: Enable the force layout.
    """
    _check_level(level)
    rels = list(rels) if rels is not None else None
    net = Network(
        height=height,
        width="100%",
        bgcolor="#0e1117",
        font_color="#e0e0e0",
        directed=True,
        notebook=False,
        cdn_resources="remote",
    )
    net.set_options(
        json.dumps(
            {
                "physics": {
                    "enabled": physics,
                    "barnesHut": {
                        "gravitationalConstant": -8000,
                        "centralGravity": 0.3,
                        "springLength": 120,
                        "springConstant": 0.04,
                        "damping": 0.09,
                    },
                    "stabilization": {"iterations": 150},
                },
                "edges": {
                    "smooth": {"type": "dynamic"},
                    "arrows": {"to": {"enabled": True, "scaleFactor": 0.6}},
                    "font": {"size": 10, "color": "#aaaaaa"},
                },
                "interaction": {"hover": True, "tooltipDelay": 80, "navigationButtons": True},
            }
        )
    )

    if level == "item":
        edges = list(graph.edges(rels))
        used = {r.src for r in edges} | {r.dst for r in edges}
        for item_id in (i for i in graph.items if i in used):
            it = graph.items[item_id]
            color = _KIND_COLOR.get(it.kind, "#95A5A6")
            label = it.name if len(it.name) <= 28 else it.name[:25] + "…"
            net.add_node(
                item_id,
                label=label,
                title=_item_tooltip(graph, item_id),
                color=color,
                shape=_KIND_SHAPE.get(it.kind, "dot"),
                size=18 if it.kind in ("module", "trait") else 12,
            )
        for r in edges:
            net.add_edge(r.src, r.dst, title=r.rel, color=_REL_COLOR.get(r.rel, "#888888"), width=1.5)
        return net

    proj = _projection(graph, level, rels)
    kind = "file" if level == "file" else "dir"
    for n in proj.nodes:
        degree = len(proj.pred[n]) + len(proj.succ[n])
        net.add_node(
            n,
            label=n,
            title=f"{html.escape(n)}<br>in {len(proj.pred[n])} · out {len(proj.succ[n])}",
            color=_KIND_COLOR[kind],
            shape=_KIND_SHAPE[kind],
            size=10 + min(degree, 20),
        )
    for a, b in proj.edges():
        net.add_edge(a, b, color="#888888", width=1.0)
    return net


def render_html(graph: KnowledgeGraph, level: str = "file", rels: Iterable[str] | None = None, **kw) -> str:
    """HTML page for :func:`build_network`."""
    return build_network(graph, level, rels, **kw).generate_html()


def save_html(
    graph: KnowledgeGraph,
    path: str | Path,
    level: str = "file",
    rels: Iterable[str] | None = None,
    **kw,
) -> Path:
    """
    Write an interactive HTML view of the graph.

    :raises PersistError: If the file cannot be written.
    """
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(render_html(graph, level, rels, **kw), encoding="utf-8")
    except OSError as exc:
        raise PersistError(f"cannot write {p}: {exc}") from exc
    return p
