"""Entrypoint-driven static dependency graph builder.

Starting from a single entry file, the builder walks the project's
internal import graph breadth-first and emits file-level nodes with
basic metrics (non-empty lines, heuristic complexity, header comment)
plus directed links:

- ``use``: a resolved program-level import
- ``include``: a structural reference (static directory, config file,
  markup/stylesheet asset, directory membership)

Traversal order is strictly FIFO, so the same tree always yields the same
node order and link set. When import discovery finds next to nothing
(typical for single-file servers), *auto-mode* adds a shallow project
skeleton so the output is never empty.

Every discovered path is re-checked against the project root; anything
outside it is dropped without comment.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple, Union

from .errors import EntrypointUnreadable
from .extractor import extract, is_lightweight_text, is_program_source
from .models import Extraction, Graph, GraphLink, GraphNode
from .resolver import is_inside_root, resolve, to_rel_id

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

ROOT_NODE_ID = "."

SKIP_DIRS: Set[str] = {
    "node_modules", "bower_components", "jspm_packages",
    ".git", ".hg", ".svn",
    "dist", "build", "out", "coverage", ".next", ".nuxt", ".cache",
    "__pycache__", ".venv", "venv",
}

SKELETON_DIRS = (
    "app", "src", "lib", "server", "routes", "controllers", "models",
    "services", "views", "templates", "public", "static", "config",
    "scripts", "test", "tests", "docs",
)

SKELETON_EXTENSIONS = {
    ".js", ".mjs", ".cjs", ".ts", ".tsx", ".jsx",
    ".json", ".html", ".htm", ".css", ".md", ".yml", ".yaml", ".toml",
    ".ejs", ".hbs", ".pug", ".sql", ".csv",
}

CONVENTION_FILES = (
    "package.json", "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    "LICENSE", "LICENSE.md", "README.md", "readme.md",
    "tsconfig.json", "jsconfig.json", "config.json", ".env.example",
)

# Skeleton files larger than this get a node but no metrics.
MAX_MEASURED_BYTES = 512 * 1024


@dataclass
class BuilderSettings:
    """Tunable limits for traversal heuristics.

    ``auto_max_nodes`` / ``auto_max_links`` define a near-empty graph: when
    the finished traversal has at most that many nodes and links, the
    project skeleton is synthesized.
    """

    auto_max_nodes: int = 1
    auto_max_links: int = 1
    expand_max_entries: int = 200
    expand_max_depth: int = 2
    skeleton_max_files_per_dir: int = 12


class _Budget:
    def __init__(self, remaining: int) -> None:
        self.remaining = remaining


class GraphBuilder:
    """Builds one graph per :meth:`build` call; runs share no state."""

    def __init__(self, settings: Optional[BuilderSettings] = None) -> None:
        self.settings = settings or BuilderSettings()

    def build(
        self,
        project_root: PathLike,
        entry_abs: PathLike,
        url_info: Optional[dict] = None,
    ) -> Graph:
        return _BuildRun(Path(project_root).resolve(), self.settings).execute(
            Path(entry_abs).resolve(), url_info
        )


def build(
    project_root: PathLike,
    entry_abs: PathLike,
    url_info: Optional[dict] = None,
    settings: Optional[BuilderSettings] = None,
) -> Graph:
    """Build the dependency graph of *project_root* starting at *entry_abs*."""
    return GraphBuilder(settings).build(project_root, entry_abs, url_info=url_info)


class _BuildRun:
    """Traversal state for a single analysis run."""

    def __init__(self, root: Path, settings: BuilderSettings) -> None:
        self.root = root
        self.settings = settings
        self.nodes: Dict[str, GraphNode] = {}
        self.links: Dict[Tuple[str, str, str], GraphLink] = {}
        self.visited: Set[Path] = set()
        self.queue: Deque[Path] = deque()
        self.scanned_text: Set[Path] = set()
        self.expanded_dirs: Set[Path] = set()

    def execute(self, entry: Path, url_info: Optional[dict]) -> Graph:
        try:
            entry_source = entry.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            raise EntrypointUnreadable(entry, str(exc)) from exc

        self.queue.append(entry)
        while self.queue:
            current = self.queue.popleft()
            if current in self.visited:
                continue
            self.visited.add(current)
            self._visit(current, entry_source if current == entry else None)

        if self._is_near_empty():
            logger.info("Import discovery found %d node(s); adding project skeleton", len(self.nodes))
            self._synthesize_skeleton(entry)

        graph = Graph(
            entry=to_rel_id(self.root, entry),
            nodes=list(self.nodes.values()),
            links=list(self.links.values()),
            url_info=url_info,
        )
        logger.info(
            "Built graph from %s: %d nodes, %d links", graph.entry, len(graph.nodes), len(graph.links)
        )
        return graph

    # ------------------------------------------------------------------
    # Primary traversal
    # ------------------------------------------------------------------

    def _visit(self, path: Path, content: Optional[str]) -> None:
        node = self._ensure_node(path, "file")
        if content is None:
            content = self._read(path)
        if content is None:
            return

        parsed = extract(content, path)
        node.upgrade(parsed.lines, parsed.complexity, parsed.header_comment, kind="file")
        self.scanned_text.add(path)

        for spec in parsed.imports:
            target = resolve(path, spec, self.root)
            if target is None:
                continue
            self._link(node.id, to_rel_id(self.root, target), "use")
            if target not in self.visited:
                self.queue.append(target)

        self._follow_secondary(path, node.id, parsed)

    def _follow_secondary(self, path: Path, source_id: str, parsed: Extraction) -> None:
        for candidate in self._secondary_candidates(path, parsed):
            if not is_inside_root(candidate, self.root):
                continue
            resolved = candidate.resolve()
            if resolved == self.root or resolved == path:
                continue
            if resolved.is_dir():
                self._include_dir(source_id, resolved)
            elif resolved.is_file():
                self._include_file(source_id, resolved)

    def _secondary_candidates(self, path: Path, parsed: Extraction) -> List[Path]:
        seen: Dict[Path, None] = {}
        for ref in parsed.file_refs_abs:
            seen.setdefault(Path(ref), None)
        # Web-absolute refs ("/css/site.css") are served from a public root
        for ref in parsed.asset_refs:
            if ref.startswith("/") and not ref.startswith("//"):
                hit = resolve(path, ref, self.root)
                if hit is not None:
                    seen.setdefault(hit, None)
        return list(seen)

    def _include_file(self, source_id: str, path: Path) -> None:
        program = is_program_source(path)
        node = self._ensure_node(path, "file" if program else "asset")
        self._link(source_id, node.id, "include")
        if program:
            if path not in self.visited:
                self.queue.append(path)
        elif is_lightweight_text(path):
            self._scan_text(path, node)

    def _scan_text(self, path: Path, node: GraphNode) -> None:
        """Extract a markup/data/prose file once for its own references."""
        if path in self.scanned_text:
            return
        self.scanned_text.add(path)
        content = self._read(path)
        if content is None:
            return
        parsed = extract(content, path)
        node.upgrade(parsed.lines, parsed.complexity, parsed.header_comment)
        self._follow_secondary(path, node.id, parsed)

    # ------------------------------------------------------------------
    # Bounded directory expansion
    # ------------------------------------------------------------------

    def _include_dir(self, source_id: str, path: Path) -> None:
        node = self._ensure_node(path, "dir")
        self._link(source_id, node.id, "include")
        if path in self.expanded_dirs:
            return
        self.expanded_dirs.add(path)
        self._expand_dir(path, node.id, 0, _Budget(self.settings.expand_max_entries))

    def _expand_dir(self, directory: Path, dir_id: str, depth: int, budget: _Budget) -> None:
        for entry in self._list_dir(directory):
            if budget.remaining <= 0:
                logger.debug("Expansion cap reached under %s", dir_id)
                return
            if entry.name.startswith(".") or entry.name in SKIP_DIRS:
                continue
            if not is_inside_root(entry, self.root):
                continue
            budget.remaining -= 1
            resolved = entry.resolve()
            if resolved.is_dir():
                child = self._ensure_node(resolved, "dir")
                self._link(dir_id, child.id, "include")
                if depth + 1 < self.settings.expand_max_depth and resolved not in self.expanded_dirs:
                    self.expanded_dirs.add(resolved)
                    self._expand_dir(resolved, child.id, depth + 1, budget)
            elif resolved.is_file():
                self._include_file(dir_id, resolved)

    # ------------------------------------------------------------------
    # Auto-mode skeleton
    # ------------------------------------------------------------------

    def _is_near_empty(self) -> bool:
        return (
            len(self.nodes) <= self.settings.auto_max_nodes
            and len(self.links) <= self.settings.auto_max_links
        )

    def _synthesize_skeleton(self, entry: Path) -> None:
        root_node = self.nodes.setdefault(
            ROOT_NODE_ID, GraphNode(id=ROOT_NODE_ID, file=ROOT_NODE_ID, kind="root")
        )
        entry_id = to_rel_id(self.root, entry)
        if entry_id in self.nodes:
            self._link(root_node.id, entry_id, "include")

        for name in SKELETON_DIRS:
            directory = self.root / name
            if not directory.is_dir() or not is_inside_root(directory, self.root):
                continue
            dir_node = self._ensure_node(directory.resolve(), "dir")
            self._link(root_node.id, dir_node.id, "include")
            for child in self._skeleton_files(directory):
                self._link(dir_node.id, self._measured_node(child).id, "include")

        for name in CONVENTION_FILES:
            candidate = self.root / name
            if candidate.is_file() and is_inside_root(candidate, self.root):
                self._link(root_node.id, self._measured_node(candidate.resolve()).id, "include")

    def _skeleton_files(self, directory: Path) -> Iterable[Path]:
        files = [
            entry.resolve() for entry in self._list_dir(directory)
            if entry.is_file()
            and not entry.name.startswith(".")
            and entry.suffix.lower() in SKELETON_EXTENSIONS
            and is_inside_root(entry, self.root)
        ]
        return files[: self.settings.skeleton_max_files_per_dir]

    def _measured_node(self, path: Path) -> GraphNode:
        node = self._ensure_node(path, "file" if is_program_source(path) else "asset")
        try:
            too_big = path.stat().st_size > MAX_MEASURED_BYTES
        except OSError:
            return node
        if not too_big:
            content = self._read(path)
            if content is not None:
                parsed = extract(content, path)
                node.upgrade(parsed.lines, parsed.complexity, parsed.header_comment)
        return node

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_node(self, path: Path, kind: str) -> GraphNode:
        node_id = to_rel_id(self.root, path)
        node = self.nodes.get(node_id)
        if node is None:
            node = GraphNode(id=node_id, file=node_id, kind=kind)
            self.nodes[node_id] = node
        return node

    def _link(self, source: str, target: str, link_type: str) -> None:
        key = (source, link_type, target)
        if key not in self.links:
            self.links[key] = GraphLink(source=source, target=target, type=link_type)

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.debug("Cannot read %s: %s", path, exc)
            return None

    @staticmethod
    def _list_dir(directory: Path) -> List[Path]:
        try:
            return sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            logger.debug("Cannot list %s: %s", directory, exc)
            return []
