"""
servicegraph - Main CLI Application

Command-line interface for inspecting and booting a service manifest.
"""
import asyncio
import json
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from config import get_settings
from core.bootstrap import FAILED_TO_START, Application, bootstrap
from core.errors import CircularDependencyError, ContainerError
from core.manifest import load_manifest
from di.container import Container
from di.registry import ServiceRegistry
from observability import set_level, setup_observability, shutdown_observability

# Initialize app
app = typer.Typer(
    name="servicegraph",
    help="servicegraph - Dependency-Ordered Service Container",
    add_completion=False
)

console = Console()

MANIFEST_HELP = "Path to a JSON service manifest (default: $SERVICEGRAPH_MANIFEST)"


class GraphFormat(str, Enum):
    """Graph export formats."""
    DOT = "dot"
    JSON = "json"


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show container logs")
):
    """Inspect, validate and boot service manifests."""
    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    setup_observability(settings.logging_config(), settings.tracing_config())
    set_level("DEBUG" if verbose else "WARNING")


@app.command()
def validate(manifest: Optional[Path] = typer.Argument(None, help=MANIFEST_HELP)):
    """Validate a manifest: missing dependencies, bad implementations, cycles."""
    registry = _load_registry(manifest)
    result = registry.validate()

    for error in result.errors:
        console.print(f"[red]✗ {escape(error)}[/red]")
    for warning in result.warnings:
        console.print(f"[yellow]! {escape(warning)}[/yellow]")

    if not result.valid:
        console.print(f"[red]Validation: FAILED ({len(result.errors)} errors)[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Validation: PASSED ({len(registry)} services)[/green]")


@app.command()
def order(manifest: Optional[Path] = typer.Argument(None, help=MANIFEST_HELP)):
    """Show the initialization order of auto-init services."""
    registry = _load_registry(manifest)

    try:
        names = registry.get_full_initialization_order()
    except CircularDependencyError as e:
        console.print(f"[red]Error: {escape(e.message)}[/red]")
        raise typer.Exit(1)

    table = Table(title="Initialization Order")
    table.add_column("#", justify="right")
    table.add_column("Service", style="cyan")
    table.add_column("Phase", justify="right")
    table.add_column("Dependencies")

    for index, name in enumerate(names, 1):
        service = registry.get_service(name)
        table.add_row(
            str(index),
            name,
            str(service.phase),
            ", ".join(service.dependency_names),
        )

    console.print(table)


@app.command()
def tree(manifest: Optional[Path] = typer.Argument(None, help=MANIFEST_HELP)):
    """Show services grouped by phase, with their dependencies."""
    registry = _load_registry(manifest)

    root = Tree("[bold]Services[/bold]")
    for phase in registry.get_phase_breakdown():
        branch = root.add(f"[bold blue]Phase {phase}[/bold blue]")
        for service in registry.get_services_by_phase(phase):
            flags = []
            if not service.auto_init:
                flags.append("manual")
            if not service.singleton:
                flags.append("factory")
            label = f"[cyan]{escape(service.name)}[/cyan]"
            if flags:
                label += f" [dim]({', '.join(flags)})[/dim]"
            node = branch.add(label)
            for dep in service.dependencies:
                node.add(f"{escape(dep.name)} [dim]as {escape(dep.key)}[/dim]")

    console.print(root)


@app.command()
def graph(
    manifest: Optional[Path] = typer.Argument(None, help=MANIFEST_HELP),
    format: GraphFormat = typer.Option(GraphFormat.DOT, "--format", "-f", help="Output format"),
):
    """Export the declared dependency graph."""
    registry = _load_registry(manifest)
    dependency_graph = Container(registry).get_dependency_graph()

    if format == GraphFormat.JSON:
        typer.echo(json.dumps(dependency_graph.to_dict(), indent=2))
    else:
        typer.echo(dependency_graph.to_dot(), nl=False)


@app.command()
def boot(
    manifest: Optional[Path] = typer.Argument(None, help=MANIFEST_HELP),
    serve: bool = typer.Option(
        False, "--serve", help="Keep services running until SIGINT or SIGTERM"
    ),
):
    """Run the bootstrap sweep, report health, then shut everything down."""
    registry = _load_registry(manifest)

    if serve:
        try:
            asyncio.run(_serve(registry))
        except Exception as e:
            _start_failed(e)
        console.print("[green]Stopped[/green]")
        return

    app_instance = Application(registry)

    try:
        health = asyncio.run(_boot(app_instance))
    except Exception as e:
        _start_failed(e)

    _display_stats(app_instance)
    _display_health(health)


def _start_failed(error: Exception):
    console.print(f"[red]Error: {FAILED_TO_START}[/red]")
    console.print(f"[dim]{escape(str(error))}[/dim]")
    raise typer.Exit(1)


async def _boot(app_instance: Application) -> dict:
    try:
        await app_instance.start()
        report = await app_instance.check_health()
    finally:
        await app_instance.stop()
    return report.to_dict()


async def _serve(registry: ServiceRegistry) -> None:
    async with bootstrap(registry, setup_signals=True) as app_instance:
        report = await app_instance.check_health()
        _display_stats(app_instance)
        _display_health(report.to_dict())
        console.print("[dim]Serving; send SIGINT or SIGTERM to stop[/dim]")
        await app_instance.wait_for_shutdown()


def _load_registry(manifest: Optional[Path]) -> ServiceRegistry:
    path = manifest or get_settings().manifest_path
    try:
        return load_manifest(path)
    except ContainerError as e:
        console.print(f"[red]Error: {escape(e.message)}[/red]")
        raise typer.Exit(1)


def _display_stats(app_instance: Application):
    """Display container statistics."""
    stats = app_instance.container.get_stats()

    table = Table(title="Bootstrap Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Services Initialized", str(stats["init_count"]))
    table.add_row("Attempts", str(stats["attempts"]))
    table.add_row("Errors", str(stats["error_count"]))
    table.add_row("Sweep Time (ms)", str(stats["init_time_ms"]))

    console.print(table)


def _display_health(health: dict):
    """Display health buckets."""
    lines = [
        f"[green]healthy:[/green] {escape(', '.join(health['healthy']) or '-')}",
        f"[red]unhealthy:[/red] {escape(', '.join(health['unhealthy']) or '-')}",
        f"[yellow]unknown:[/yellow] {escape(', '.join(health['unknown']) or '-')}",
    ]
    console.print(Panel.fit("\n".join(lines), title="Health", border_style="blue"))


def main():
    """Main entry point."""
    try:
        app()
    finally:
        shutdown_observability()


if __name__ == "__main__":
    main()
