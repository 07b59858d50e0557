"""assetrefs CLI - find every scene, prefab and asset that references an asset."""

import json
import time
from pathlib import Path
from typing import List

import typer
from rich.markup import escape
from rich.table import Table

from assetrefs.config import ConfigError, __version__, get_config
from assetrefs.utils.safe_console import SafeConsole
from assetrefs.utils.logger import configure_logging
from assetrefs.utils.printer import print_report, render_tree, report_to_dict
from assetrefs.analyzer.project import AssetProject
from assetrefs.analyzer.cache import SnapshotCache
from assetrefs.analyzer.graph_decoder import GraphDecodeError, GraphDecoder

app = typer.Typer(
    name="assetrefs",
    help="Find references to content assets before deleting or refactoring them",
    add_completion=False
)
# Use SafeConsole for Windows Unicode compatibility
console = SafeConsole()

# Cache management sub-command
cache_app = typer.Typer(name="cache", help="Manage the decoded node tree cache")


def _load_config():
    try:
        return get_config()
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


def _resolve_project(project_path: str) -> Path:
    """Resolve and validate a project root (must contain `assets/`)."""
    project_path = Path(project_path).resolve()

    if not project_path.exists():
        console.print(f"[bold red]Error:[/bold red] Project path does not exist: {escape(str(project_path))}")
        raise typer.Exit(1)

    if not (project_path / 'assets').is_dir():
        console.print(f"[bold red]Error:[/bold red] No assets directory in {escape(str(project_path))}")
        raise typer.Exit(1)

    return project_path


@app.command()
def find(
    targets: List[str] = typer.Argument(..., help="Asset uuids, db:// urls or file paths"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root (the directory containing assets/)"),
    hide_nodes: bool = typer.Option(False, "--hide-nodes", help="Only list referencing files, not nodes"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Don't read or write the persistent tree cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log cache and decoding details"),
):
    """Find every reference to the given assets."""
    config = _load_config()
    configure_logging("DEBUG" if verbose else config.log_level)
    project_root = _resolve_project(project_path)
    show_node = config.show_node and not hide_nodes

    reports = []
    with AssetProject(project_root, persist_cache=config.persist_cache and not no_cache,
                      cache_dir_name=config.cache_dir, max_depth=config.max_depth) as project:
        for target in targets:
            asset = project.resolve(target)
            if asset is None:
                console.print(f"[yellow]Unknown asset:[/yellow] {escape(target)}")
                continue
            if asset.type == 'folder':
                console.print(f"[yellow]Skipping folder:[/yellow] {escape(asset.short_url)} [dim](select assets, not folders)[/dim]")
                continue

            if not as_json:
                console.print(f"[bold blue]🔎 Finding references to[/bold blue] {escape(asset.short_url)}")
            start_time = time.time()
            report = project.find_asset_references(asset.uuid)
            elapsed = time.time() - start_time

            if as_json:
                reports.append(report_to_dict(report))
                continue
            print_report(report, console, show_node=show_node)
            console.print(f"[dim]Searched in {elapsed:.2f}s[/dim]")

    if as_json:
        typer.echo(json.dumps(reports, indent=2))


@app.command()
def tree(
    file_path: str = typer.Argument(..., help="Scene (.fire/.scene) or prefab file"),
):
    """Print the node tree decoded from a scene or prefab."""
    config = _load_config()
    configure_logging(config.log_level)
    path = Path(file_path).resolve()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        decoded = GraphDecoder(config.max_depth).decode(data)
    except (OSError, json.JSONDecodeError, GraphDecodeError, RecursionError) as e:
        console.print(f"[bold red]Error:[/bold red] Failed to decode {escape(str(path))}: {escape(str(e))}")
        raise typer.Exit(1)

    if decoded is None:
        console.print(f"[bold red]Error:[/bold red] Not a scene or prefab: {escape(str(path))}")
        raise typer.Exit(1)

    console.print(render_tree(decoded, path.name))


# =========================================================================
# CACHE MANAGEMENT COMMANDS
# =========================================================================

@cache_app.command("clear")
def cache_clear(
    project_path: str = typer.Argument(".", help="Project root path"),
):
    """Clear the persistent tree cache for a project."""
    config = _load_config()
    project_root = _resolve_project(project_path)

    with SnapshotCache(project_root, config.cache_dir) as cache:
        cache.clear_cache()

    console.print(f"[green]✓ Cache cleared for {escape(str(project_root))}[/green]")


@cache_app.command("warm")
def cache_warm(
    project_path: str = typer.Argument(".", help="Project root path"),
):
    """Decode every scene and prefab into the persistent cache."""
    config = _load_config()
    configure_logging(config.log_level)
    project_root = _resolve_project(project_path)

    with console.status("[cyan]Decoding scenes and prefabs..."):
        with AssetProject(project_root, persist_cache=True, cache_dir_name=config.cache_dir,
                          max_depth=config.max_depth) as project:
            loaded = project.preload()

    console.print(f"[green]✓ Cached {loaded} node trees[/green]")


@cache_app.command("stats")
def cache_stats(
    project_path: str = typer.Argument(".", help="Project root path"),
):
    """Display cache statistics for a project."""
    config = _load_config()
    project_root = _resolve_project(project_path)

    with SnapshotCache(project_root, config.cache_dir) as cache:
        stats = cache.get_cache_stats()

    table = Table(title=f"Cache Statistics: {project_root}", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Total Files Cached", str(stats['total_files']))
    table.add_row("Node Trees", str(stats['trees_cached']))
    table.add_row("Tree Data (bytes)", str(stats['tree_bytes']))

    console.print(table)


# Register cache sub-command
app.add_typer(cache_app)


def _version_callback(value: bool):
    if value:
        console.print(f"assetrefs {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """assetrefs - Find where content assets are referenced."""
    pass


if __name__ == "__main__":
    app()
