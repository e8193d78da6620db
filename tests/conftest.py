"""Pytest configuration and fixtures for NodeGraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest


@pytest.fixture(autouse=True)
def nodegraph_home(tmp_path_factory, monkeypatch) -> Path:
    """Point config and output paths at a throwaway home for every test."""
    home = tmp_path_factory.mktemp("nodegraph_home")
    monkeypatch.setattr("nodegraph_cli.config.BASE_DIR", home)
    monkeypatch.setattr("nodegraph_cli.config.OUTPUT_DIR", home / "output")
    monkeypatch.setattr("nodegraph_cli.config.CONFIG_FILE", home / "config.toml")
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp()).resolve()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app_path() -> Path:
    """Get path to the sample Express project."""
    return (Path(__file__).parent / "fixtures" / "sample_app").resolve()


@pytest.fixture
def write_files():
    """Create files under a root from a ``{relative_path: content}`` mapping."""

    def _write(root: Path, files: dict) -> Path:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _write
