"""G-code provenance header.

Appends the settings a file was sliced with as trailing comments, so a
G-code file found on an SD card can be traced back to its profile.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from slicequeue import __version__
from slicequeue.errors import SoftFailure
from slicequeue.utils import get_logger

logger = get_logger("postprocess")

HEADER_MARKER = "GCode settings used"


def product_stamp(oem_name: str = "SliceQueue", window_title_extra: Optional[str] = None) -> str:
    """Product name for the header, with the OEM suffix when one is configured."""
    if window_title_extra and window_title_extra.strip():
        return f"{oem_name} - {window_title_extra.strip()}"
    return oem_name


def append_settings_header(
    gcode_path: Union[str, Path],
    settings_path: Union[str, Path],
    product: str = "SliceQueue",
    version: str = __version__,
    build: str = "0",
    now: Optional[datetime] = None,
) -> Optional[SoftFailure]:
    """
    Append the settings file to a G-code file as comments.

    Does nothing when either file is missing.

    Args:
        gcode_path: Sliced output to append to
        settings_path: Settings file the engine was given
        product: Product name for the first header line
        version: Release version
        build: Build number
        now: Timestamp to record (defaults to the current time)

    Returns:
        None on success, a SoftFailure if the files could not be read or written
    """
    gcode_path = Path(gcode_path)
    settings_path = Path(settings_path)
    if not gcode_path.exists() or not settings_path.exists():
        return None

    now = now or datetime.now()
    try:
        settings_lines = settings_path.read_text().splitlines()
        with open(gcode_path, "a") as f:
            f.write(f"; {product} Version {version} Build {build} : {HEADER_MARKER}\n")
            f.write(f"; Date {now.date().isoformat()} Time {now.hour}:{now.minute:02d}\n")
            for line in settings_lines:
                f.write(f"; {line}\n")
    except (OSError, UnicodeError) as e:
        failure = SoftFailure(stage="postprocess", message=f"Could not append settings to {gcode_path.name}: {e}")
        logger.warning(failure.message)
        return failure

    logger.debug(f"Appended {len(settings_lines)} settings lines to {gcode_path.name}")
    return None
