"""Configuration manager for NodeGraph using TOML files.

The config file holds two sections:

- ``[analysis]``: traversal heuristics and change-feed timing
- ``[[apps]]``: registered analysis targets (id, name, root_dir, entry, url)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional

import toml

from . import config
from .graph_builder import BuilderSettings

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS: Dict[str, Any] = {
    **asdict(BuilderSettings()),
    "settle_seconds": 0.25,
    "probe_timeout": 3.0,
}


@dataclass
class AppTarget:
    id: str
    root_dir: str
    name: str = ""
    entry: str = ""
    url: str = ""

    @property
    def label(self) -> str:
        return self.name or self.id


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return {}


def _save_full_config(data: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.BASE_DIR.mkdir(parents=True, exist_ok=True)
    try:
        with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", config.CONFIG_FILE, exc)
        return False


# ------------------------------------------------------------------
# Analysis settings
# ------------------------------------------------------------------

def load_analysis_config() -> Dict[str, Any]:
    """``[analysis]`` merged over the defaults; unknown keys are kept as-is."""
    merged = dict(DEFAULT_ANALYSIS)
    merged.update(load_full_config().get("analysis", {}))
    return merged


def builder_settings(analysis: Optional[Dict[str, Any]] = None) -> BuilderSettings:
    analysis = analysis if analysis is not None else load_analysis_config()
    values = {}
    for f in fields(BuilderSettings):
        try:
            values[f.name] = int(analysis.get(f.name, DEFAULT_ANALYSIS[f.name]))
        except (TypeError, ValueError):
            logger.warning("Invalid [analysis] %s=%r, using default", f.name, analysis.get(f.name))
            values[f.name] = DEFAULT_ANALYSIS[f.name]
    return BuilderSettings(**values)


# ------------------------------------------------------------------
# App registry
# ------------------------------------------------------------------

def load_apps() -> List[AppTarget]:
    apps = []
    for raw in load_full_config().get("apps", []):
        if not isinstance(raw, dict) or not raw.get("id") or not raw.get("root_dir"):
            continue
        apps.append(AppTarget(
            id=str(raw["id"]),
            root_dir=str(raw["root_dir"]),
            name=str(raw.get("name", "")),
            entry=str(raw.get("entry", "")),
            url=str(raw.get("url", "")),
        ))
    return apps


def get_app(app_id: str) -> Optional[AppTarget]:
    for app in load_apps():
        if app.id == app_id:
            return app
    return None


def save_app(app_id: str, root_dir: str, name: str = "", entry: str = "", url: str = "") -> bool:
    """Register (or replace) an analysis target.

    Preserves the ``[analysis]`` section and the other registered apps.
    """
    data = load_full_config()
    apps = [a for a in data.get("apps", []) if isinstance(a, dict) and a.get("id") != app_id]
    record = {"id": app_id, "root_dir": root_dir}
    if name:
        record["name"] = name
    if entry:
        record["entry"] = entry
    if url:
        record["url"] = url
    apps.append(record)
    data["apps"] = apps
    return _save_full_config(data)
