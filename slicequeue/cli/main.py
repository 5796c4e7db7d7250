"""Main CLI entry point for SliceQueue."""

import click
from rich.console import Console

from slicequeue import __version__
from slicequeue.utils import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="SliceQueue")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--engine-output", is_flag=True, help="Log raw slicing engine output (with --verbose)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, engine_output: bool) -> None:
    """SliceQueue - background slicing for 3D printers.

    Queues models, runs them through Slic3r, CuraEngine or MatterSlice one at
    a time, and stamps the resulting G-code with the settings used.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging("DEBUG" if verbose else "WARNING", engine_output=engine_output)


# Import and register command groups
from slicequeue.cli.engines_cmd import engines
from slicequeue.cli.slice_cmd import slice_models

cli.add_command(engines)
cli.add_command(slice_models)


@cli.command()
def status() -> None:
    """Show the effective configuration and installed engines."""
    from slicequeue.config import get_settings
    from slicequeue.engines import EngineRegistry
    from slicequeue.postprocess import product_stamp

    settings = get_settings()
    installed = [d.kind.label for d in EngineRegistry(settings).available()]

    console.print(f"[bold]SliceQueue {__version__}[/bold]")
    console.print(f"  G-code stamp: {product_stamp(settings.oem_name, settings.window_title_extra)}"
                  f" (build {settings.build_version})")
    console.print(f"  Data: {settings.data_dir}")
    console.print(f"  G-code output: {settings.resolved_gcode_output_dir}")
    console.print(f"  AMF scratch: {settings.resolved_scratch_dir}")
    console.print(f"  Active engine: {settings.active_engine}"
                  f"{' (in process)' if settings.run_in_process else ''}")
    console.print(f"  Installed engines: {', '.join(installed) or 'none'}")
    console.print(f"  Worker poll interval: {settings.poll_interval}s")


if __name__ == "__main__":
    cli()
