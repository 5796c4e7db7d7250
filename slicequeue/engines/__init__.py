"""Slicing engine discovery and command lines."""

from slicequeue.engines.registry import (
    EngineKind,
    EngineDescriptor,
    EngineRegistry,
)
from slicequeue.engines.commands import (
    EngineStrategy,
    ENGINE_STRATEGIES,
    build_arguments,
    get_strategy,
    quote_path,
    to_argv,
    to_command_line,
)

__all__ = [
    "EngineKind",
    "EngineDescriptor",
    "EngineRegistry",
    "EngineStrategy",
    "ENGINE_STRATEGIES",
    "build_arguments",
    "get_strategy",
    "quote_path",
    "to_argv",
    "to_command_line",
]
