"""Import specifier resolution for project-internal modules and assets.

Only relative (``./x``, ``../y``) and web-absolute (``/assets/app.js``)
specifiers are resolved. Bare package names and builtins (``express``,
``node:fs``) are external and always yield ``None``; the graph never
reaches outside the analyzed project root.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, Path]

CODE_EXTENSIONS = (".js", ".mjs", ".cjs", ".ts", ".tsx", ".jsx")

ASSET_EXTENSIONS = (
    ".json", ".css", ".scss", ".sass", ".less", ".html", ".htm", ".md", ".txt",
    ".csv", ".svg", ".png", ".jpg", ".jpeg", ".gif", ".webp", ".ico",
    ".woff", ".woff2", ".ttf", ".eot",
)

ALL_EXTENSIONS = CODE_EXTENSIONS + ASSET_EXTENSIONS

# Most common first; the project root itself is always tried last.
PUBLIC_ROOT_GUESSES = ("app/public", "public", "src/public", "www", "static")

_QUERY_OR_HASH = re.compile(r"[?#]")


def resolve(from_abs: PathLike, specifier: str, project_root: PathLike) -> Optional[Path]:
    """Resolve *specifier* imported by *from_abs* to an existing file inside *project_root*."""
    if not specifier or not isinstance(specifier, str):
        return None

    root = Path(project_root).resolve()
    from_dir = Path(from_abs).resolve().parent

    cleaned = _QUERY_OR_HASH.split(specifier.strip(), maxsplit=1)[0]
    if not cleaned:
        return None

    if cleaned.startswith("."):
        hit = _resolve_with_extensions(_join(from_dir, cleaned))
        return hit if hit is not None and is_inside_root(hit, root) else None

    if cleaned.startswith("/"):
        rel_web = cleaned.lstrip("/")
        for public_root in guess_public_roots(root):
            hit = _resolve_with_extensions(_join(public_root, rel_web))
            if hit is not None and is_inside_root(hit, root):
                return hit
        return None

    return None


def guess_public_roots(project_root: Path) -> List[Path]:
    roots = [project_root / rel for rel in PUBLIC_ROOT_GUESSES]
    roots.append(project_root)
    return [r for r in roots if r.is_dir()]


def is_inside_root(path: PathLike, root: PathLike) -> bool:
    """True when *path* equals *root* or is one of its descendants."""
    try:
        candidate = Path(path).resolve()
        base = Path(root).resolve()
    except (OSError, RuntimeError):
        return False
    return candidate == base or base in candidate.parents


def to_rel_id(root: PathLike, path: PathLike) -> str:
    """Project-relative, forward-slash id for *path* (``.`` for the root itself)."""
    rel = os.path.relpath(str(path), str(root))
    return rel.replace(os.sep, "/")


def _join(base: Path, rel: str) -> Path:
    # normpath keeps ".." handling lexical so the containment check sees escapes
    return Path(os.path.normpath(os.path.join(str(base), rel)))


def _resolve_with_extensions(base: Path) -> Optional[Path]:
    if base.suffix and _is_file(base):
        return base.resolve()

    for ext in ALL_EXTENSIONS:
        candidate = Path(f"{base}{ext}")
        if _is_file(candidate):
            return candidate.resolve()

    if _is_dir(base):
        for ext in ALL_EXTENSIONS:
            candidate = base / f"index{ext}"
            if _is_file(candidate):
                return candidate.resolve()

    return None


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False
