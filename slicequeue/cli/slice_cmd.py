"""Slice command for SliceQueue."""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

console = Console()

STATE_COLORS = {
    "done": "green",
    "cancelled": "yellow",
    "failed": "red",
}


@click.command("slice")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--engine", "-e", default=None,
              type=click.Choice(["slic3r", "cura_engine", "matter_slice"]),
              help="Slicing engine (defaults to the profile's or SLICEQUEUE_ACTIVE_ENGINE)")
@click.option("--output-dir", "-o", default=None, type=click.Path(file_okay=False),
              help="Directory for the G-code files")
@click.option("--extruders", "-x", default=None, type=click.IntRange(min=1),
              help="Number of extruders for multi-material models")
@click.option("--profile", "-p", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Printer profile JSON")
def slice_models(
    files: tuple,
    engine: Optional[str],
    output_dir: Optional[str],
    extruders: Optional[int],
    profile: Optional[str],
) -> None:
    """Slice one or more models, one after another.

    Example: slicequeue slice part.stl dual_color.amf --engine matter_slice -x 2
    """
    from slicequeue.config import get_settings
    from slicequeue.engines import EngineKind
    from slicequeue.printer import StaticPrinterLink
    from slicequeue.profiles import ProfileSettings
    from slicequeue.queue import JobState, SliceJob, SlicingOrchestrator
    from slicequeue.utils import format_duration

    settings = get_settings()
    if output_dir:
        settings = settings.model_copy(update={"gcode_output_dir": Path(output_dir)})

    if profile:
        profile_settings = ProfileSettings.from_file(profile)
    else:
        profile_settings = ProfileSettings(engine=settings.active_engine)
    if engine:
        profile_settings.engine = EngineKind(engine)
    if extruders:
        profile_settings.extruder_count = extruders

    orchestrator = SlicingOrchestrator(
        StaticPrinterLink(connected=True), profile_settings, settings=settings
    )
    orchestrator.start()

    jobs = []
    for file_path in files:
        name = Path(file_path).name
        job = SliceJob(
            input_path=Path(file_path),
            notify=lambda message, name=name: console.print(f"[dim]{name}:[/dim] {message}"),
        )
        jobs.append(orchestrator.enqueue(job))

    try:
        for job in jobs:
            job.wait()
    except KeyboardInterrupt:
        console.print("[yellow]Cancelling...[/yellow]")
        orchestrator.cancel_current()
    finally:
        orchestrator.halt_worker()
        orchestrator.join(timeout=5.0)

    table = Table(title="Slicing Results")
    table.add_column("Model", style="cyan")
    table.add_column("State")
    table.add_column("Output", style="dim")
    table.add_column("Time", justify="right")
    table.add_column("Note")

    for job in jobs:
        color = STATE_COLORS.get(job.state.value, "white")
        note = job.error or ("" if job.sliced else "engine not run")
        table.add_row(
            job.input_path.name,
            f"[{color}]{job.state.value}[/{color}]",
            str(job.output_path) if job.output_path else "-",
            format_duration(job.duration) if job.duration is not None else "-",
            note,
        )

    console.print(table)

    if any(job.state != JobState.DONE for job in jobs):
        raise SystemExit(1)
