"""Configuration management for SliceQueue."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SLICEQUEUE_",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(
        default=Path.home() / ".slicequeue",
        description="Application user data directory",
    )
    gcode_output_dir: Optional[Path] = Field(
        default=None, description="Directory for sliced G-code and generated config files"
    )
    scratch_dir: Optional[Path] = Field(
        default=None, description="Directory for per-extruder STL files split out of AMF models"
    )

    # Worker loop
    poll_interval: float = Field(default=0.1, gt=0, description="Worker loop polling interval in seconds")

    # Engines
    active_engine: str = Field(default="matter_slice", description="Engine used for slicing")
    slic3r_path: Optional[Path] = Field(default=None, description="Slic3r executable override")
    cura_engine_path: Optional[Path] = Field(default=None, description="CuraEngine executable override")
    matter_slice_path: Optional[Path] = Field(default=None, description="MatterSlice executable override")
    run_in_process: bool = Field(
        default=False, description="Run MatterSlice inside this process instead of spawning it"
    )
    in_process_entry_point: Optional[str] = Field(
        default=None, description="Import string ('module:function') of the embeddable engine"
    )

    # Provenance header
    oem_name: str = Field(default="SliceQueue", description="Product name written to G-code headers")
    window_title_extra: Optional[str] = Field(default=None, description="OEM suffix for the product name")
    build_version: str = Field(default="0", description="Build number written to G-code headers")

    @property
    def resolved_gcode_output_dir(self) -> Path:
        return self.gcode_output_dir or self.data_dir / "data" / "gcode"

    @property
    def resolved_scratch_dir(self) -> Path:
        return self.scratch_dir or self.data_dir / "data" / "temp" / "amf_to_stl"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(settings: Settings) -> None:
    """Override global settings."""
    global _settings
    _settings = settings
