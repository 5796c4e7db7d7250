"""Engine discovery CLI command for SliceQueue."""

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command()
@click.option("--all", "show_all", is_flag=True, help="Show engines that are not installed too")
def engines(show_all: bool) -> None:
    """List the slicing engines found on this machine."""
    from slicequeue.engines import EngineKind, EngineRegistry

    registry = EngineRegistry()
    descriptors = sorted(registry.discover(), key=lambda d: list(EngineKind).index(d.kind))
    if not show_all:
        descriptors = [d for d in descriptors if d.available]

    if not descriptors:
        console.print("[yellow]No slicing engines found[/yellow]")
        console.print("Install Slic3r, CuraEngine or MatterSlice, or set SLICEQUEUE_<ENGINE>_PATH")
        return

    table = Table(title="Slicing Engines")
    table.add_column("Kind", style="cyan")
    table.add_column("Engine")
    table.add_column("Status")
    table.add_column("Path", style="dim")

    for descriptor in descriptors:
        status = "[green]available[/green]" if descriptor.available else "[red]missing[/red]"
        path = str(descriptor.path) if descriptor.path else ("in-process" if descriptor.available else "-")
        table.add_row(descriptor.kind.value, descriptor.kind.label, status, path)

    console.print(table)
