"""Integration tests for CLI commands."""

import json
from pathlib import Path

from typer.testing import CliRunner

from nodegraph_cli import __version__, config
from nodegraph_cli.cli import app
from nodegraph_cli.cli_watch import render_event
from nodegraph_cli.models import ActiveAnalysis, ChangeEvent

runner = CliRunner()


class TestVersion:

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"NodeGraph v{__version__}" in result.stdout


class TestAnalyzeCommand:
    """Tests for 'nodegraph analyze'."""

    def test_analyze_writes_json(self, sample_app_path: Path, temp_dir: Path):
        out = temp_dir / "graph.json"
        result = runner.invoke(app, ["analyze", str(sample_app_path), "--output", str(out)])

        assert result.exit_code == 0, result.output
        assert "Wrote" in result.stdout
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["meta"] == {"entry": "app/server.js", "urlInfo": None}
        assert {"source": "app/server.js", "target": "app/routes/apps.js", "type": "use"} in data["links"]
        assert all({"id", "file", "lines", "complexity", "headerComment", "kind"} <= set(n) for n in data["nodes"])

    def test_default_output_location(self, sample_app_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_app_path)])
        assert result.exit_code == 0, result.output
        assert (config.OUTPUT_DIR / config.DEFAULT_SNAPSHOT_NAME).exists()

    def test_explicit_entry(self, sample_app_path: Path, temp_dir: Path):
        out = temp_dir / "graph.json"
        result = runner.invoke(
            app, ["analyze", str(sample_app_path), "--entry", "app/routes/apps.js", "-o", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["meta"]["entry"] == "app/routes/apps.js"

    def test_dot_format(self, sample_app_path: Path, temp_dir: Path):
        out = temp_dir / "graph.dot"
        result = runner.invoke(app, ["analyze", str(sample_app_path), "--format", "dot", "-o", str(out)])
        assert result.exit_code == 0, result.output
        text = out.read_text()
        assert text.startswith("digraph NodeGraph {")
        assert '"app/server.js" -> "app/routes/apps.js" [label="use"];' in text

    def test_bad_format(self, sample_app_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_app_path), "--format", "svg"])
        assert result.exit_code != 0

    def test_missing_entrypoint(self, temp_dir: Path):
        result = runner.invoke(app, ["analyze", str(temp_dir)])
        assert result.exit_code == 1
        assert "No entrypoint found" in result.output

    def test_requires_root_or_app(self):
        result = runner.invoke(app, ["analyze"])
        assert result.exit_code != 0

    def test_unknown_app(self):
        result = runner.invoke(app, ["analyze", "--app", "ghost"])
        assert result.exit_code != 0

    def test_registered_app(self, sample_app_path: Path, temp_dir: Path):
        add = runner.invoke(app, ["apps", "add", "demo", str(sample_app_path), "--entry", "app/routes/apps.js"])
        assert add.exit_code == 0, add.output

        out = temp_dir / "graph.json"
        result = runner.invoke(app, ["analyze", "--app", "demo", "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["meta"]["entry"] == "app/routes/apps.js"


class TestAppsCommands:

    def test_list_empty(self):
        result = runner.invoke(app, ["apps", "list"])
        assert result.exit_code == 0
        assert "No apps registered" in result.stdout

    def test_add_and_list(self, sample_app_path: Path):
        result = runner.invoke(app, ["apps", "add", "shop", str(sample_app_path), "--name", "Shop"])
        assert result.exit_code == 0, result.output
        assert "Registered app 'shop'" in result.stdout

        listed = runner.invoke(app, ["apps", "list"])
        assert listed.exit_code == 0
        assert "shop" in listed.stdout
        assert "Shop" in listed.stdout

    def test_add_requires_existing_dir(self, temp_dir: Path):
        result = runner.invoke(app, ["apps", "add", "x", str(temp_dir / "missing")])
        assert result.exit_code != 0


class TestReadmeCommand:

    def test_nearest_readme(self, sample_app_path: Path):
        result = runner.invoke(app, ["readme", str(sample_app_path), "app/lib/store.js"])
        assert result.exit_code == 0
        assert "app/lib/README.md" in result.stdout
        assert "In-memory app registry." in result.stdout

    def test_no_readme(self, temp_dir: Path, write_files):
        write_files(temp_dir, {"a.js": ""})
        result = runner.invoke(app, ["readme", str(temp_dir), "a.js"])
        assert result.exit_code == 0
        assert "No README found" in result.stdout

    def test_outside_root(self, sample_app_path: Path):
        result = runner.invoke(app, ["readme", str(sample_app_path / "app"), "../README.md"])
        assert result.exit_code == 1


class TestWatchRendering:

    def test_change_line(self):
        event = ChangeEvent(type="fs-change", at="t", run_token="r", ev="unlink", id="a.js")
        assert "a.js" in render_event(event)
        assert "[red]" in render_event(event)

    def test_analysis_line(self):
        analysis = ActiveAnalysis(run_token="r1", started_at="t", root="/srv/app")
        line = render_event(ChangeEvent(type="analysis", at="t", run_token="r1", analysis=analysis))
        assert "/srv/app" in line

    def test_hello_is_silent(self):
        assert render_event(ChangeEvent(type="hello", at="t")) is None

    def test_watch_missing_path(self, temp_dir: Path):
        result = runner.invoke(app, ["watch", "start", str(temp_dir / "missing")])
        assert result.exit_code == 1
