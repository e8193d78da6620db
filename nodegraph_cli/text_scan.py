"""Text-level signals that do not need a syntax tree.

Line counting, header comments and the pattern scanners for markup,
stylesheets, structured data and prose all live here, together with
:class:`RefCollector`, the accumulator every extraction path writes into.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml
import yaml

from .models import Extraction, Symbol

logger = logging.getLogger(__name__)

MAX_SCANNED_STRING = 260

PATH_KEYS = {
    "path", "file", "filepath", "filename", "dir", "folder",
    "root", "rootdir", "csvpath", "datapath",
    "publicdir", "staticdir", "assetsdir",
    "template", "templates", "view", "views",
}

_ASSET_EXT_RE = re.compile(
    r"\.(json|ya?ml|toml|ini|env|csv|tsv|txt|md|html?|css|svg|png|jpe?g|gif|webp|ico|map)$",
    re.IGNORECASE,
)
_ASSET_DIR_RE = re.compile(r"^(config|data|public|assets|static|views|templates)/", re.IGNORECASE)
_RELATIVE_ASSET_DIR_RE = re.compile(r"(config|data|public|assets|static|views|templates)/", re.IGNORECASE)
_CONFIG_NAME_RE = re.compile(r"^(config|settings)\.(json|ya?ml|toml|ini)$", re.IGNORECASE)
_NON_LOCAL_RE = re.compile(r"^(https?://|data:|mailto:)", re.IGNORECASE)

_HTML_ATTR_RE = re.compile(r"\b(?:src|href|data-src|data-href)\s*=\s*([\"'])(.*?)\1", re.IGNORECASE)
_CSS_URL_RE = re.compile(r"url\(\s*([\"']?)([^\"')]+)\1\s*\)", re.IGNORECASE)
_MD_LINK_RE = re.compile(r"!\[[^\]]*\]\(([^)]+)\)|\[[^\]]*\]\(([^)]+)\)")
_QUOTED_RE = re.compile(r"([\"'`])([^\n\r]*?)\1")

_BLOCK_COMMENT_RE = re.compile(r"^/\*\*?[\s\S]*?\*/")


class RefCollector:
    """Ordered, de-duplicating accumulator for one file's extraction."""

    def __init__(self, base_dir: Path, lines: int = 0, header_comment: str = "") -> None:
        self.base_dir = base_dir
        self.lines = lines
        self.header_comment = header_comment
        self.complexity = 0
        self.imports: List[str] = []
        self.asset_refs: List[str] = []
        self.symbols: List[Symbol] = []
        self.calls_by: Dict[str, List[str]] = {}
        self._file_refs: Dict[str, None] = {}

    def add_import(self, spec: str) -> None:
        if spec:
            self.imports.append(spec)

    def add_asset_hint(self, value: str) -> None:
        if looks_like_asset_path(value):
            self.asset_refs.append(value)

    def add_abs_ref(self, path: Optional[Path]) -> None:
        if path is None:
            return
        self._file_refs[os.path.normpath(str(path))] = None

    def add_symbol(self, name: str, kind: str) -> None:
        if name:
            self.symbols.append(Symbol(name=name, kind=kind))

    def add_call(self, caller: str, callee: str) -> None:
        if callee:
            self.calls_by.setdefault(caller, []).append(callee)

    def resolve_string_path(self, value: str) -> Optional[Path]:
        v = (value or "").strip()
        if not v or is_non_local_ref(v):
            return None
        return Path(os.path.normpath(os.path.join(str(self.base_dir), v)))

    def add_ref_from_text(self, ref: str) -> None:
        """Record a reference found by a pattern scanner."""
        raw = (ref or "").strip()
        if not raw or is_non_local_ref(raw):
            return
        cleaned = raw.split("#", 1)[0].split("?", 1)[0].strip()
        if not cleaned:
            return
        self.add_asset_hint(cleaned)
        self.add_abs_ref(self.resolve_string_path(cleaned))

    def finalize(self) -> Extraction:
        seen_symbols: Dict[str, Symbol] = {}
        for sym in self.symbols:
            seen_symbols.setdefault(f"{sym.kind}:{sym.name}", sym)
        return Extraction(
            imports=_uniq(self.imports),
            lines=self.lines,
            complexity=self.complexity,
            header_comment=self.header_comment,
            asset_refs=_uniq(self.asset_refs),
            file_refs_abs=list(self._file_refs),
            symbols=list(seen_symbols.values()),
            calls_by={caller: _uniq(callees) for caller, callees in self.calls_by.items()},
        )


def _uniq(items: List[str]) -> List[str]:
    return list(dict.fromkeys(i for i in items if i))


# ---------------------------------------------------------------------------
# Cheap signals
# ---------------------------------------------------------------------------

def count_non_empty_lines(code: str) -> int:
    return sum(1 for line in re.split(r"\r?\n", code or "") if line.strip())


def extract_header_comment(code: str) -> str:
    """Return the leading block or ``//`` comment run of a source file.

    A byte-order mark and a ``#!`` interpreter line are skipped first. A
    block comment is returned without its delimiters and per-line leading
    asterisks; otherwise consecutive ``//`` lines are joined. Returns an
    empty string when the file does not start with a comment.
    """
    s = (code or "").replace("\r\n", "\n")
    if s.startswith("\ufeff"):
        s = s[1:]
    if s.startswith("#!"):
        nl = s.find("\n")
        s = s[nl + 1:] if nl >= 0 else ""
    s = s.lstrip()

    block = _BLOCK_COMMENT_RE.match(s)
    if block:
        return _cleanup_block(block.group(0))

    collected: List[str] = []
    for line in s.split("\n"):
        stripped = line.strip()
        if not stripped:
            if not collected:
                continue
            break
        if stripped.startswith("//"):
            collected.append(re.sub(r"^//\s?", "", stripped))
            continue
        break
    return "\n".join(collected).strip()


def _cleanup_block(block: str) -> str:
    body = re.sub(r"^/\*\*?", "", block)
    body = re.sub(r"\*/$", "", body)
    cleaned = [re.sub(r"^\s*\*\s?", "", line).rstrip() for line in body.split("\n")]
    return "\n".join(cleaned).strip()


def is_non_local_ref(value: str) -> bool:
    s = (value or "").strip()
    return not s or bool(_NON_LOCAL_RE.match(s)) or s.startswith("#")


def looks_like_asset_path(value: str) -> bool:
    """Heuristic: does *value* look like a reference to a data/config/static file?"""
    v = (value or "").strip()
    if not v:
        return False
    if re.match(r"^https?://", v, re.IGNORECASE):
        return False
    if v.lower() == ".ds_store":
        return False
    if v.startswith("/") and not v.startswith("//"):
        return True
    if _ASSET_EXT_RE.search(v):
        return True
    if _ASSET_DIR_RE.match(v):
        return True
    if (v.startswith("./") or v.startswith("../")) and _RELATIVE_ASSET_DIR_RE.search(v):
        return True
    return bool(_CONFIG_NAME_RE.match(v))


# ---------------------------------------------------------------------------
# Lightweight format scanners
# ---------------------------------------------------------------------------

def scan_html(src: str, out: RefCollector) -> None:
    for match in _HTML_ATTR_RE.finditer(src):
        out.add_ref_from_text(match.group(2))


def scan_css(src: str, out: RefCollector) -> None:
    for match in _CSS_URL_RE.finditer(src):
        out.add_ref_from_text(match.group(2))


def scan_markdown(src: str, out: RefCollector) -> None:
    for match in _MD_LINK_RE.finditer(src):
        ref = (match.group(1) or match.group(2) or "").strip()
        out.add_ref_from_text(re.sub(r"^<|>$", "", ref))


def scan_structured(src: str, suffix: str, out: RefCollector) -> None:
    """Walk parsed JSON/YAML/TOML data and record path-like values."""
    try:
        if suffix == ".json":
            data = json.loads(src)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(src)
        elif suffix == ".toml":
            data = toml.loads(src)
        else:
            return
    except (ValueError, yaml.YAMLError) as exc:
        logger.debug("Structured data not parseable (%s): %s", suffix, exc)
        return
    _walk_structured(data, "", out)


def _walk_structured(value: Any, parent_key: str, out: RefCollector) -> None:
    if value is None:
        return
    if isinstance(value, list):
        for item in value:
            _walk_structured(item, parent_key, out)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            _walk_structured(item, str(key), out)
        return
    if isinstance(value, str):
        key = parent_key.lower()
        if key in PATH_KEYS or key.endswith("path") or key.endswith("dir"):
            out.add_ref_from_text(value)
        elif looks_like_asset_path(value):
            out.add_ref_from_text(value)


def scan_quoted_strings(src: str, out: RefCollector) -> None:
    """Conservative fallback: quoted literals shaped like asset paths."""
    for match in _QUOTED_RE.finditer(src):
        raw = match.group(2)
        if not raw or len(raw) > MAX_SCANNED_STRING:
            continue
        if looks_like_asset_path(raw):
            out.add_ref_from_text(raw)
