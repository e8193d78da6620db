"""Core data models shared by the extractor, graph builder and change feed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Symbol:
    name: str
    kind: str


@dataclass
class Extraction:
    """Everything the extractor learned about one file."""

    imports: List[str] = field(default_factory=list)
    lines: int = 0
    complexity: int = 0
    header_comment: str = ""
    asset_refs: List[str] = field(default_factory=list)
    file_refs_abs: List[str] = field(default_factory=list)
    symbols: List[Symbol] = field(default_factory=list)
    calls_by: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class GraphNode:
    id: str
    file: str
    lines: int = 0
    complexity: int = 0
    header_comment: str = ""
    kind: str = "file"

    @property
    def is_placeholder(self) -> bool:
        return self.lines == 0 and self.complexity == 0

    def upgrade(self, lines: int, complexity: int, header_comment: str, kind: Optional[str] = None) -> None:
        """Fill empty metrics in place; populated fields are never lowered."""
        if lines > self.lines:
            self.lines = lines
        if complexity > self.complexity:
            self.complexity = complexity
        if header_comment and not self.header_comment:
            self.header_comment = header_comment
        if kind == "file" and self.kind == "asset":
            self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file": self.file,
            "lines": self.lines,
            "complexity": self.complexity,
            "headerComment": self.header_comment,
            "kind": self.kind,
        }


@dataclass(frozen=True)
class GraphLink:
    source: str
    target: str
    type: str

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target, "type": self.type}


@dataclass
class Graph:
    entry: str
    nodes: List[GraphNode] = field(default_factory=list)
    links: List[GraphLink] = field(default_factory=list)
    url_info: Optional[Dict[str, Any]] = None

    def node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": {"entry": self.entry, "urlInfo": self.url_info},
            "nodes": [n.to_dict() for n in self.nodes],
            "links": [link.to_dict() for link in self.links],
        }


@dataclass
class ActiveAnalysis:
    """The analysis target the change feed currently watches."""

    run_token: str
    started_at: str
    root: Optional[str] = None
    entry_rel: Optional[str] = None
    app_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appId": self.app_id,
            "rootAbs": self.root,
            "entryRel": self.entry_rel,
            "startedAt": self.started_at,
            "runToken": self.run_token,
        }


@dataclass
class ChangeEvent:
    """One message on the change feed.

    ``type`` is ``hello``, ``analysis``, ``fs-change`` or ``fs-watch-error``;
    ``ev`` and ``id`` are only set for ``fs-change``.
    """

    type: str
    at: str
    run_token: Optional[str] = None
    ev: str = ""
    id: str = ""
    app_id: Optional[str] = None
    message: str = ""
    analysis: Optional[ActiveAnalysis] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "at": self.at, "runToken": self.run_token}
        if self.type == "fs-change":
            data.update(ev=self.ev, id=self.id, appId=self.app_id)
        elif self.type == "fs-watch-error":
            data.update(message=self.message, appId=self.app_id)
        if self.analysis is not None:
            data["activeAnalysis"] = self.analysis.to_dict()
        return data
