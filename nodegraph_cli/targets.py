"""Helpers around an analysis target: entrypoint, README lookup and URL probe."""

from __future__ import annotations

import logging
import secrets
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import EntrypointNotFound, NodeGraphError
from .resolver import is_inside_root, to_rel_id

logger = logging.getLogger(__name__)

# Conventional server entrypoints, most specific first.
ENTRY_CANDIDATES = (
    "app/server.js",
    "app/index.js",
    "src/server.js",
    "src/index.js",
    "server.js",
    "index.js",
)

README_NAMES = ("README.md", "readme.md")


def new_run_token() -> str:
    """``<epoch-ms>-<hex>``, unique per analysis run."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


def resolve_entrypoint(root: Path, entry_path: str = "", allow_explicit: bool = True) -> Tuple[Path, str]:
    """Pick the entry file for *root*.

    An explicit *entry_path* (absolute, or relative to the root) wins when
    allowed; it must be an existing file inside the root. Otherwise the
    first existing conventional candidate is used.

    Returns:
        ``(entry_abs, entry_rel)``

    Raises:
        EntrypointNotFound: when no usable entry exists.
    """
    root = Path(root).resolve()
    explicit = (entry_path or "").strip()

    if allow_explicit and explicit:
        candidate = Path(explicit)
        if not candidate.is_absolute():
            candidate = root / explicit.lstrip("/")
        candidate = candidate.resolve()
        if not is_inside_root(candidate, root):
            raise EntrypointNotFound(f"Entrypoint {explicit} is outside {root}")
        if not candidate.is_file():
            raise EntrypointNotFound(f"Entrypoint {explicit} is not a file under {root}")
        return candidate, to_rel_id(root, candidate)

    for rel in ENTRY_CANDIDATES:
        candidate = root / rel
        if candidate.is_file():
            return candidate.resolve(), rel

    raise EntrypointNotFound(
        f"No entrypoint found under {root} (tried: {', '.join(ENTRY_CANDIDATES)})"
    )


def find_nearest_readme(root: Path, file_rel: str) -> Optional[Tuple[str, str]]:
    """Walk up from *file_rel* to *root* and return the first README found.

    Returns ``(readme_rel, markdown)`` or ``None``.
    """
    root = Path(root).resolve()
    rel = (file_rel or "").replace("\\", "/").lstrip("/").strip()
    if not rel:
        raise NodeGraphError("A file path inside the project is required")

    target = (root / rel).resolve()
    if not is_inside_root(target, root):
        raise NodeGraphError(f"{file_rel} is outside {root}")
    if not target.exists():
        return None

    directory = target if target.is_dir() else target.parent
    while True:
        for name in README_NAMES:
            readme = directory / name
            if readme.is_file():
                try:
                    markdown = readme.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as exc:
                    logger.debug("Cannot read %s: %s", readme, exc)
                    continue
                return to_rel_id(root, readme), markdown
        if directory == root or directory.parent == directory:
            return None
        directory = directory.parent


def probe_app_url(url: str, timeout: float = 3.0) -> Dict[str, Any]:
    """Informational GET against a running app.

    Returns ``{url, status, contentType}`` on any HTTP response and
    ``{url, error}`` when the request fails.
    """
    try:
        req = urllib.request.Request(url, method="GET")
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return {"url": url, "status": resp.status, "contentType": resp.headers.get("Content-Type")}
    except urllib.error.HTTPError as e:
        return {"url": url, "status": e.code, "contentType": e.headers.get("Content-Type") if e.headers else None}
    except (urllib.error.URLError, TimeoutError, ValueError, OSError) as e:
        reason = getattr(e, "reason", None) or e
        return {"url": url, "error": str(reason)}
