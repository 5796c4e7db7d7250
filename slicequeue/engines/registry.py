"""Discovery of installed slicing engines.

Each engine kind is probed once, on first access, and the result is cached
for the lifetime of the registry. A missing engine is recorded as an
unavailable descriptor rather than raised.
"""

import shutil
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from slicequeue.config import Settings, get_settings
from slicequeue.errors import EngineUnavailableError
from slicequeue.utils import get_logger

logger = get_logger("engines.registry")


class EngineKind(str, Enum):
    """Slicing engines the orchestrator knows how to drive."""
    SLIC3R = "slic3r"  # profile-driven slicer
    CURA_ENGINE = "cura_engine"  # layer engine with verbose CLI
    MATTER_SLICE = "matter_slice"  # embeddable native engine

    @property
    def label(self) -> str:
        return {
            EngineKind.SLIC3R: "Slic3r",
            EngineKind.CURA_ENGINE: "CuraEngine",
            EngineKind.MATTER_SLICE: "MatterSlice",
        }[self]


@dataclass(frozen=True)
class EngineDescriptor:
    """One slicing engine as found on this host."""
    kind: EngineKind
    path: Optional[Path] = None
    available: bool = False

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "label": self.kind.label,
            "path": str(self.path) if self.path else None,
            "available": self.available,
        }


# Well-known install locations, checked before falling back to PATH lookup.
ENGINE_SEARCH_PATHS: Dict[EngineKind, Dict[str, List[str]]] = {
    EngineKind.SLIC3R: {
        "win32": [r"C:\Program Files\Slic3r\slic3r-console.exe"],
        "darwin": ["/Applications/Slic3r.app/Contents/MacOS/slic3r"],
        "linux": ["/usr/bin/slic3r", "/usr/local/bin/slic3r"],
    },
    EngineKind.CURA_ENGINE: {
        "win32": [r"C:\Program Files\Cura\CuraEngine.exe"],
        "darwin": ["/Applications/Cura.app/Contents/MacOS/CuraEngine"],
        "linux": ["/usr/bin/CuraEngine", "/usr/local/bin/CuraEngine"],
    },
    EngineKind.MATTER_SLICE: {
        "win32": [r"C:\Program Files\MatterControl\MatterSlice.exe"],
        "darwin": ["/Applications/MatterControl.app/Contents/Resources/MatterSlice"],
        "linux": ["/usr/lib/mattercontrol/MatterSlice", "/usr/local/bin/MatterSlice"],
    },
}

ENGINE_COMMAND_NAMES: Dict[EngineKind, str] = {
    EngineKind.SLIC3R: "slic3r",
    EngineKind.CURA_ENGINE: "CuraEngine",
    EngineKind.MATTER_SLICE: "MatterSlice",
}


def host_platform() -> str:
    """Map sys.platform onto the keys of ENGINE_SEARCH_PATHS."""
    if sys.platform.startswith("win"):
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


class EngineRegistry:
    """Lazily probes and caches the slicing engines installed on this host."""

    def __init__(self, settings: Optional[Settings] = None, platform: Optional[str] = None):
        self.settings = settings or get_settings()
        self.platform = platform or host_platform()
        self._descriptors: Optional[Dict[EngineKind, EngineDescriptor]] = None
        self._lock = threading.Lock()

    def discover(self) -> FrozenSet[EngineDescriptor]:
        """Probe every known engine kind once and return all descriptors."""
        with self._lock:
            if self._descriptors is None:
                self._descriptors = {kind: self._probe(kind) for kind in EngineKind}
                found = [d.kind.label for d in self._descriptors.values() if d.available]
                logger.info(f"Discovered slicing engines: {', '.join(found) or 'none'}")
            return frozenset(self._descriptors.values())

    def lookup(self, kind: EngineKind) -> Optional[EngineDescriptor]:
        """Return the descriptor for an engine kind, or None for an unknown kind."""
        self.discover()
        try:
            kind = EngineKind(kind)
        except ValueError:
            return None
        return self._descriptors.get(kind)

    def available(self) -> List[EngineDescriptor]:
        """Installed engines in a stable order."""
        self.discover()
        return [self._descriptors[kind] for kind in EngineKind if self._descriptors[kind].available]

    def engine_path(self, kind: EngineKind) -> Path:
        """Executable path for an engine; raises EngineUnavailableError if it is absent."""
        descriptor = self.lookup(kind)
        if descriptor is None or not descriptor.available or descriptor.path is None:
            raise EngineUnavailableError(f"Slice engine {EngineKind(kind).label} is unavailable")
        return descriptor.path

    def _override_for(self, kind: EngineKind) -> Optional[Path]:
        return {
            EngineKind.SLIC3R: self.settings.slic3r_path,
            EngineKind.CURA_ENGINE: self.settings.cura_engine_path,
            EngineKind.MATTER_SLICE: self.settings.matter_slice_path,
        }[kind]

    def _probe(self, kind: EngineKind) -> EngineDescriptor:
        """Look for one engine on disk. Never raises for a missing engine."""
        override = self._override_for(kind)
        if override is not None:
            override = Path(override).expanduser().resolve()
            if override.is_file():
                return EngineDescriptor(kind=kind, path=override, available=True)
            logger.warning(f"{kind.label} override {override} does not exist")
        else:
            for candidate in ENGINE_SEARCH_PATHS[kind].get(self.platform, []):
                path = Path(candidate)
                if path.is_file():
                    return EngineDescriptor(kind=kind, path=path, available=True)

            found = shutil.which(ENGINE_COMMAND_NAMES[kind])
            if found:
                return EngineDescriptor(kind=kind, path=Path(found), available=True)

        # The embeddable engine can still run without an executable.
        if kind == EngineKind.MATTER_SLICE and self.settings.in_process_entry_point:
            return EngineDescriptor(kind=kind, path=None, available=True)

        logger.debug(f"{kind.label} not found")
        return EngineDescriptor(kind=kind, path=None, available=False)
