"""
Printer profile settings - the slicing parameters of the active printer.

Profiles are JSON files:

    {
        "name": "prusa_mk3_pla",
        "engine": "slic3r",
        "extruder_count": 1,
        "settings": {"layer_height": 0.2, "fill_density": "20%"}
    }
"""

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from slicequeue.engines.commands import quote_path
from slicequeue.engines.registry import EngineKind
from slicequeue.utils import get_logger

logger = get_logger("profiles")


@dataclass
class ProfileSettings:
    """Resolved slicing settings for one printer."""
    values: Dict[str, Any] = field(default_factory=dict)
    extruder_count: int = 1
    engine: EngineKind = EngineKind.MATTER_SLICE
    name: str = "default"

    def __post_init__(self):
        """Ensure proper types after initialization."""
        if isinstance(self.engine, str):
            self.engine = EngineKind(self.engine)
        if self.extruder_count < 1:
            raise ValueError("extruder_count must be at least 1")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ProfileSettings":
        """Load a profile from JSON file."""
        path = Path(path)
        with open(path) as f:
            data = json.load(f)
        profile = cls(
            values=data.get("settings", {}),
            extruder_count=int(data.get("extruder_count", 1)),
            engine=data.get("engine", EngineKind.MATTER_SLICE.value),
            name=data.get("name", path.stem),
        )
        logger.info(f"Loaded profile {profile.name} ({len(profile.values)} settings)")
        return profile

    def settings_hash(self) -> str:
        """Stable key for the current settings, used to name config files."""
        payload = json.dumps(
            {
                "engine": self.engine.value,
                "extruder_count": self.extruder_count,
                "values": self.values,
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode()).hexdigest()[:16]

    def config_file_name(self) -> str:
        return f"config_{self.settings_hash()}.ini"

    def write_config(self, path: Union[str, Path], flavour: str = "ini") -> Path:
        """
        Write the settings file an engine loads.

        Args:
            path: Destination file
            flavour: "ini" ("key = value") or "matter_slice" ("key=value")
        """
        if flavour not in ("ini", "matter_slice"):
            raise ValueError(f"Unknown settings flavour: {flavour}")
        separator = " = " if flavour == "ini" else "="
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [f"{key}{separator}{self.values[key]}" for key in sorted(self.values)]
        if flavour == "matter_slice":
            lines.append(f"extruderCount={self.extruder_count}")
        path.write_text("\n".join(lines) + "\n")
        return path

    def generate_config_file(self, path: Union[str, Path]) -> Path:
        return self.write_config(path, "ini")

    def cura_command_line_settings(self) -> List[str]:
        """CuraEngine '-s key=value' tokens."""
        tokens = []
        for key in sorted(self.values):
            tokens.extend(["-s", quote_path(f"{key}={self.values[key]}")])
        return tokens
