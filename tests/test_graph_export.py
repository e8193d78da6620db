"""Tests for snapshot and DOT export."""

import json
from pathlib import Path

from nodegraph_cli.graph_export import export_dot, write_snapshot
from nodegraph_cli.models import Graph, GraphLink, GraphNode


def _graph() -> Graph:
    return Graph(
        entry="server.js",
        nodes=[
            GraphNode(id="server.js", file="server.js", lines=12, complexity=2, header_comment="Entry"),
            GraphNode(id="public", file="public", kind="dir"),
            GraphNode(id='odd"name.css', file='odd"name.css', kind="asset"),
        ],
        links=[
            GraphLink(source="server.js", target="public", type="include"),
            GraphLink(source="public", target='odd"name.css', type="include"),
        ],
    )


def test_write_snapshot_creates_parents(temp_dir: Path):
    out = write_snapshot(_graph(), temp_dir / "nested" / "out.json")
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["meta"] == {"entry": "server.js", "urlInfo": None}
    assert data["nodes"][0] == {
        "id": "server.js",
        "file": "server.js",
        "lines": 12,
        "complexity": 2,
        "headerComment": "Entry",
        "kind": "file",
    }
    assert data["links"][0] == {"source": "server.js", "target": "public", "type": "include"}


def test_export_dot(temp_dir: Path):
    text = export_dot(_graph(), temp_dir / "g.dot").read_text(encoding="utf-8")
    assert text.startswith("digraph NodeGraph {")
    assert '"server.js" [label="server.js\\n12 lines", shape=box, style=bold];' in text
    assert '"public" [label="public", shape=folder];' in text
    assert '"server.js" -> "public" [label="include", style=dashed];' in text
    assert '"odd\\"name.css"' in text
