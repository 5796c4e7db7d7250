"""Shared utilities for SliceQueue."""

import hashlib
import logging
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from rich.console import Console
from rich.logging import RichHandler

# Rich console for pretty output
console = Console()

# Logs every raw engine line at DEBUG.
ENGINE_OUTPUT_LOGGER = "slicequeue.supervisor"


def setup_logging(level: str = "INFO", engine_output: bool = False) -> logging.Logger:
    """
    Set up logging with Rich handler.

    Args:
        level: Root log level
        engine_output: Also show raw engine stdout/stderr lines at DEBUG
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, markup=False)],
    )
    if not engine_output:
        logging.getLogger(ENGINE_OUTPUT_LOGGER).setLevel(max(logging.INFO, logging.getLogger().level))
    return logging.getLogger("slicequeue")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module."""
    return logging.getLogger(f"slicequeue.{name}")


def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists and return the Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def scratch_file(folder: Union[str, Path], suffix: str) -> Path:
    """Path for a new randomly named file in `folder` (created if missing)."""
    return ensure_dir(folder) / f"{uuid4().hex[:12]}{suffix}"


def file_hash(path: Union[str, Path], algorithm: str = "sha256", length: Optional[int] = None) -> str:
    """Hex digest of a file's contents, optionally cut to `length` characters."""
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    digest = h.hexdigest()
    return digest[:length] if length else digest


def format_duration(seconds: float) -> str:
    """Format a job duration, e.g. '0.4s', '12s', '3m 05s'."""
    if seconds < 10:
        return f"{seconds:.1f}s"
    if seconds < 60:
        return f"{seconds:.0f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"
