"""Best-effort static signal extraction for project files.

Many apps (especially single-file servers) have few internal imports but
depend on lots of files and folders: a ``public/`` frontend, JSON config,
CSV data, templates, stylesheets. To keep the graph meaningful, each file
category gets its own scanner:

- program source (JS/TS/JSX/TSX): Tree-sitter walk, see :mod:`.js_parser`
- markup (HTML): ``src`` / ``href`` style attributes
- stylesheets (CSS): ``url(...)``
- structured data (JSON/YAML/TOML): values under path-like keys
- prose (Markdown): links and images
- anything else: quoted strings shaped like asset paths

No code is executed and no dynamic expression is evaluated; paths are only
resolved from string literals and known directory anchors.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from .js_parser import LANGUAGE_MAP, extract_structure
from .models import Extraction
from .text_scan import (
    RefCollector,
    count_non_empty_lines,
    extract_header_comment,
    scan_css,
    scan_html,
    scan_markdown,
    scan_quoted_strings,
    scan_structured,
)

logger = logging.getLogger(__name__)

PROGRAM_SOURCE = "source"
MARKUP = "markup"
STYLESHEET = "stylesheet"
STRUCTURED_DATA = "data"
PROSE = "prose"
OTHER = "other"

CATEGORY_BY_EXT = {
    **{ext: PROGRAM_SOURCE for ext in LANGUAGE_MAP},
    ".html": MARKUP,
    ".htm": MARKUP,
    ".css": STYLESHEET,
    ".json": STRUCTURED_DATA,
    ".yaml": STRUCTURED_DATA,
    ".yml": STRUCTURED_DATA,
    ".toml": STRUCTURED_DATA,
    ".md": PROSE,
    ".markdown": PROSE,
}

LIGHTWEIGHT_TEXT = frozenset({MARKUP, STYLESHEET, STRUCTURED_DATA, PROSE})


def category_for(path: Union[str, Path]) -> str:
    return CATEGORY_BY_EXT.get(Path(path).suffix.lower(), OTHER)


def is_program_source(path: Union[str, Path]) -> bool:
    return category_for(path) == PROGRAM_SOURCE


def is_lightweight_text(path: Union[str, Path]) -> bool:
    return category_for(path) in LIGHTWEIGHT_TEXT


def extract(content: str, file_path: Union[str, Path]) -> Extraction:
    """Extract imports, metrics and file references from one file's contents."""
    src = content or ""
    path = Path(file_path)
    category = category_for(path)

    header = extract_header_comment(src) if category == PROGRAM_SOURCE else ""
    out = RefCollector(_base_dir(path), lines=count_non_empty_lines(src), header_comment=header)

    try:
        if category == PROGRAM_SOURCE:
            if not extract_structure(src, path, out):
                logger.debug("Syntax errors in %s; using text-only signals", path)
        elif category == MARKUP:
            scan_html(src, out)
        elif category == STYLESHEET:
            scan_css(src, out)
        elif category == STRUCTURED_DATA:
            scan_structured(src, path.suffix.lower(), out)
        elif category == PROSE:
            scan_markdown(src, out)
        scan_quoted_strings(src, out)
    except Exception as exc:
        logger.warning("Failed to scan %s: %s", path, exc)

    return out.finalize()


def _base_dir(path: Path) -> Path:
    parent = path.parent
    if str(parent) in ("", "."):
        return Path.cwd()
    return parent
