"""Graph export helpers for JSON snapshots and Graphviz DOT."""

from __future__ import annotations

import json
from pathlib import Path

from .models import Graph

NODE_SHAPES = {"file": "box", "dir": "folder", "asset": "note", "root": "doubleoctagon"}


def write_snapshot(graph: Graph, output_file: Path) -> Path:
    """Write the graph as the JSON document consumers load."""
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(json.dumps(graph.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return output_file


def export_dot(graph: Graph, output_file: Path) -> Path:
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    lines = ["digraph NodeGraph {"]
    lines.append("  rankdir=LR;")

    for node in graph.nodes:
        label = node.id if node.kind in ("dir", "root") else f"{node.id}\\n{node.lines} lines"
        shape = NODE_SHAPES.get(node.kind, "box")
        attrs = f'label="{_esc(label)}", shape={shape}'
        if node.id == graph.entry:
            attrs += ", style=bold"
        lines.append(f'  "{_esc(node.id)}" [{attrs}];')

    for link in graph.links:
        style = ", style=dashed" if link.type == "include" else ""
        lines.append(
            f'  "{_esc(link.source)}" -> "{_esc(link.target)}" [label="{link.type}"{style}];'
        )

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")
    return output_file


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
