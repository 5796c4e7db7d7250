"""Engine command lines.

Every engine kind maps to an EngineStrategy: how to build its argument list,
whether it can run inside this process, and which settings file flavour it
reads. Adding an engine is an entry in ENGINE_STRATEGIES.
"""

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Union

from slicequeue.engines.registry import EngineKind

PathLike = Union[str, Path]


def quote_path(text: PathLike) -> str:
    """Wrap a path in double quotes unless it is already fully quoted."""
    text = str(text)
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text
    return '"' + text.replace('"', '\\"') + '"'


def to_command_line(arguments: Sequence[str]) -> str:
    """Join argument tokens into the single command line an engine receives."""
    return " ".join(arguments)


def to_argv(arguments: Sequence[str]) -> List[str]:
    """Split quoted argument tokens back into a process argv."""
    return shlex.split(to_command_line(arguments))


def _slic3r_arguments(settings_path, output_path, input_paths, engine_settings) -> List[str]:
    return [
        "--load", quote_path(settings_path),
        "--output", quote_path(output_path),
        quote_path(input_paths[0]),
    ]


def _cura_arguments(settings_path, output_path, input_paths, engine_settings) -> List[str]:
    # CuraEngine takes its settings on the command line, not from a file.
    return ["-v", "-o", quote_path(output_path), *engine_settings, quote_path(input_paths[0])]


def _matter_slice_arguments(settings_path, output_path, input_paths, engine_settings) -> List[str]:
    arguments = ["-v", "-o", quote_path(output_path), "-c", quote_path(settings_path)]
    # One file per extruder, in extruder order.
    arguments.extend(quote_path(path) for path in input_paths)
    return arguments


@dataclass(frozen=True)
class EngineStrategy:
    """How the orchestrator drives one engine kind."""
    builder: Callable[..., List[str]]
    supports_in_process: bool = False
    config_flavour: str = "ini"  # "ini" or "matter_slice"
    settings_on_command_line: bool = False


ENGINE_STRATEGIES: Dict[EngineKind, EngineStrategy] = {
    EngineKind.SLIC3R: EngineStrategy(builder=_slic3r_arguments),
    EngineKind.CURA_ENGINE: EngineStrategy(builder=_cura_arguments, settings_on_command_line=True),
    EngineKind.MATTER_SLICE: EngineStrategy(
        builder=_matter_slice_arguments,
        supports_in_process=True,
        config_flavour="matter_slice",
    ),
}


def get_strategy(kind: EngineKind) -> EngineStrategy:
    return ENGINE_STRATEGIES[EngineKind(kind)]


def build_arguments(
    kind: EngineKind,
    settings_path: PathLike,
    output_path: PathLike,
    input_paths: Sequence[PathLike],
    engine_settings: Sequence[str] = (),
) -> List[str]:
    """
    Build the argument tokens for one engine invocation.

    Args:
        kind: Engine to build arguments for
        settings_path: Generated settings/config file
        output_path: G-code file the engine should write
        input_paths: Geometry files; engines without multi-extruder
            support only receive the first one
        engine_settings: Extra tokens for engines configured on the command line

    Returns:
        Argument tokens with every path quoted
    """
    if not input_paths:
        raise ValueError("At least one input file is required")
    strategy = get_strategy(kind)
    return strategy.builder(settings_path, output_path, list(input_paths), list(engine_settings))
