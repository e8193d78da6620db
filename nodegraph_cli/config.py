"""Configuration paths for local NodeGraph output and settings."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("NODEGRAPH_HOME", str(Path.home() / ".nodegraph"))).expanduser()
OUTPUT_DIR = BASE_DIR / "output"
CONFIG_FILE = BASE_DIR / "config.toml"
DEFAULT_SNAPSHOT_NAME = "code-structure.json"

# Directory names the change feed never reports on.
WATCH_IGNORED_DIRS = (
    "node_modules", ".git", "dist", "build", "coverage", ".next", ".cache", ".nodegraph",
)


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
