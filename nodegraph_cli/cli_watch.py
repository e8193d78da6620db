"""Watch mode: stream change events for an analysis root."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Iterable, Optional

import typer
from rich.console import Console

from .change_feed import ChangePropagator, RunTokenFilter
from .config_manager import load_analysis_config
from .models import ChangeEvent

console = Console()

watch_app = typer.Typer(help="👀 Watch an analysis root for file changes")

EVENT_STYLES = {
    "add": "green",
    "addDir": "green",
    "change": "yellow",
    "unlink": "red",
    "unlinkDir": "red",
}


def render_event(event: ChangeEvent) -> Optional[str]:
    """One console line for *event*, or ``None`` for events not worth showing."""
    if event.type == "fs-change":
        style = EVENT_STYLES.get(event.ev, "white")
        return f"[dim]{event.at}[/dim] [{style}]{event.ev:<9}[/{style}] {event.id}"
    if event.type == "fs-watch-error":
        return f"[dim]{event.at}[/dim] [red]watch error[/red] {event.message}"
    if event.type == "analysis" and event.analysis is not None:
        return f"[dim]{event.at}[/dim] [cyan]watching[/cyan] {event.analysis.root} [dim](run {event.run_token})[/dim]"
    return None


def stream_changes(
    root: Path,
    entry_rel: Optional[str] = None,
    app_id: Optional[str] = None,
    settle_seconds: float = 0.25,
    ignored_paths: Iterable[Path] = (),
) -> int:
    """Print change events for *root* until Ctrl+C; returns the number shown."""
    propagator = ChangePropagator(settle_seconds=settle_seconds, ignored_paths=ignored_paths)
    token_filter = RunTokenFilter()
    shown = 0

    def on_event(event: ChangeEvent) -> None:
        nonlocal shown
        if not token_filter.accept(event):
            return
        line = render_event(event)
        if line:
            console.print(line)
            if event.type == "fs-change":
                shown += 1

    subscription = propagator.subscribe(on_event)
    propagator.activate(root, entry_rel=entry_rel, app_id=app_id)
    console.print("[dim]  Press Ctrl+C to stop[/dim]\n")

    try:
        while propagator.is_watching:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        subscription.close()
        propagator.teardown()

    console.print(f"\n[yellow]Stopped watching.[/yellow] {shown} change(s) seen.")
    return shown


@watch_app.command("start")
def watch(
    path: str = typer.Argument(".", help="Project root to watch."),
    settle: Optional[float] = typer.Option(None, "--settle", "-s", help="Quiet period before a write is reported, in seconds."),
    app_id: Optional[str] = typer.Option(None, "--app", help="App id attached to events."),
):
    """👀 Stream file changes under a project root.

    Example:
      nodegraph watch start ./my-app
      nodegraph watch start . --settle 1
    """
    watch_path = Path(path).resolve()
    if not watch_path.is_dir():
        console.print(f"[red]✗[/red] Path not found: {path}")
        raise typer.Exit(1)

    if settle is None:
        settle = float(load_analysis_config()["settle_seconds"])
    stream_changes(watch_path, app_id=app_id, settle_seconds=settle)
