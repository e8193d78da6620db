"""Typer-based CLI for NodeGraph static dependency analysis."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .cli_watch import stream_changes, watch_app
from .config_manager import builder_settings, get_app, load_analysis_config, load_apps, save_app
from .errors import NodeGraphError
from .graph_builder import build
from .graph_export import export_dot, write_snapshot
from .models import Graph
from .targets import find_nearest_readme, probe_app_url, resolve_entrypoint

console = Console()

app = typer.Typer(
    help="🕸  NodeGraph: file-level dependency graphs for Node.js projects.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
apps_app = typer.Typer(help="Registered analysis targets.", no_args_is_help=True)

app.add_typer(apps_app, name="apps")
app.add_typer(watch_app, name="watch")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"NodeGraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log traversal details to stderr."),
):
    """NodeGraph: static, entrypoint-driven dependency graphs."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )


@app.command("analyze")
def analyze(
    root: Optional[Path] = typer.Argument(None, help="Project root to analyze."),
    entry: Optional[str] = typer.Option(None, "--entry", "-e", help="Entry file, relative to the root."),
    app_id: Optional[str] = typer.Option(None, "--app", "-a", help="Registered app id to analyze."),
    url: Optional[str] = typer.Option(None, "--url", help="Running app URL to probe."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    fmt: str = typer.Option("json", "--format", "-f", help="Output format: json or dot."),
    watch: bool = typer.Option(False, "--watch", "-w", help="Stream file changes after analysis."),
):
    """Build the dependency graph from an entrypoint and write a snapshot."""
    fmt = fmt.lower()
    if fmt not in {"json", "dot"}:
        raise typer.BadParameter("Format must be one of: json, dot")

    if app_id:
        target = get_app(app_id)
        if target is None:
            raise typer.BadParameter(f"Unknown app '{app_id}'. See 'nodegraph apps list'.")
        root = root or Path(target.root_dir)
        entry = entry or target.entry
        url = url or target.url or None
    if root is None:
        raise typer.BadParameter("Pass a project root or --app.")

    root = root.expanduser().resolve()
    if not root.is_dir():
        console.print(f"[red]✗[/red] Not a directory: {root}")
        raise typer.Exit(1)

    analysis = load_analysis_config()
    try:
        entry_abs, entry_rel = resolve_entrypoint(root, entry or "")
        url_info = probe_app_url(url, timeout=float(analysis["probe_timeout"])) if url else None
        graph = build(root, entry_abs, url_info=url_info, settings=builder_settings(analysis))
    except NodeGraphError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    if output is None:
        config.ensure_base_dirs()
        name = config.DEFAULT_SNAPSHOT_NAME if fmt == "json" else Path(config.DEFAULT_SNAPSHOT_NAME).stem + ".dot"
        output = config.OUTPUT_DIR / name

    if fmt == "json":
        write_snapshot(graph, output)
    else:
        export_dot(graph, output)

    _print_summary(graph, output)

    if watch:
        stream_changes(
            root,
            entry_rel=entry_rel,
            app_id=app_id,
            settle_seconds=float(analysis["settle_seconds"]),
            ignored_paths=[output.resolve().parent],
        )


def _print_summary(graph: Graph, output: Path) -> None:
    kinds = Counter(node.kind for node in graph.nodes)
    link_types = Counter(link.type for link in graph.links)

    table = Table(title=f"Graph from {graph.entry}", show_header=True, show_lines=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for kind in ("file", "asset", "dir", "root"):
        if kinds.get(kind):
            table.add_row(f"{kind} nodes", str(kinds[kind]))
    table.add_row("use links", str(link_types.get("use", 0)))
    table.add_row("include links", str(link_types.get("include", 0)))
    console.print(table)

    busiest = sorted((n for n in graph.nodes if n.complexity), key=lambda n: (-n.complexity, n.id))[:5]
    if busiest:
        console.print("[bold]Most complex files:[/bold]")
        for node in busiest:
            console.print(f"  {node.id} [dim]({node.complexity} branches, {node.lines} lines)[/dim]")

    if graph.url_info:
        status = graph.url_info.get("status", graph.url_info.get("error"))
        console.print(f"[dim]URL {graph.url_info['url']}: {status}[/dim]")

    typer.echo(f"Wrote {len(graph.nodes)} nodes, {len(graph.links)} links to {output}")


@apps_app.command("list")
def list_apps():
    """List registered analysis targets."""
    apps = load_apps()
    if not apps:
        typer.echo("No apps registered. Add one with 'nodegraph apps add ID ROOT'.")
        return

    table = Table(show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Root")
    table.add_column("Entry")
    table.add_column("URL", style="dim")
    for target in apps:
        table.add_row(target.id, target.label, target.root_dir, target.entry or "auto", target.url or "")
    console.print(table)


@apps_app.command("add")
def add_app(
    app_id: str = typer.Argument(..., help="Short unique id."),
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Project root."),
    name: str = typer.Option("", "--name", "-n", help="Display name."),
    entry: str = typer.Option("", "--entry", "-e", help="Entry file, relative to the root."),
    url: str = typer.Option("", "--url", help="URL of the running app."),
):
    """Register (or replace) an analysis target."""
    if not save_app(app_id, str(root.resolve()), name=name, entry=entry, url=url):
        console.print(f"[red]✗[/red] Could not write {config.CONFIG_FILE}")
        raise typer.Exit(1)
    typer.echo(f"Registered app '{app_id}' at {root.resolve()}")


@app.command("readme")
def readme(
    root: Path = typer.Argument(..., exists=True, file_okay=False, help="Project root."),
    file: str = typer.Argument(..., help="File or directory, relative to the root."),
):
    """Print the README closest to a project file."""
    try:
        found = find_nearest_readme(root, file)
    except NodeGraphError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    if found is None:
        typer.echo(f"No README found for {file}")
        return

    readme_rel, markdown = found
    typer.echo(f"# {readme_rel}\n")
    typer.echo(markdown)


if __name__ == "__main__":
    app()
