"""Tests for configuration management."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from slicequeue.config import Settings, configure, get_settings
from slicequeue import config as config_module


class TestSettings:
    """Tests for Settings."""

    def test_derived_directories(self, tmp_path):
        """Test output and scratch directories default under data_dir."""
        settings = Settings(data_dir=tmp_path)
        assert settings.resolved_gcode_output_dir == tmp_path / "data" / "gcode"
        assert settings.resolved_scratch_dir == tmp_path / "data" / "temp" / "amf_to_stl"

    def test_explicit_directories(self, tmp_path):
        """Test explicit directories win over the defaults."""
        settings = Settings(data_dir=tmp_path, gcode_output_dir=tmp_path / "g", scratch_dir=tmp_path / "s")
        assert settings.resolved_gcode_output_dir == tmp_path / "g"
        assert settings.resolved_scratch_dir == tmp_path / "s"

    def test_environment(self, monkeypatch):
        """Test settings are read from SLICEQUEUE_ variables."""
        monkeypatch.setenv("SLICEQUEUE_ACTIVE_ENGINE", "slic3r")
        monkeypatch.setenv("SLICEQUEUE_SLIC3R_PATH", "/opt/slic3r/slic3r")
        monkeypatch.setenv("SLICEQUEUE_RUN_IN_PROCESS", "true")

        settings = Settings()
        assert settings.active_engine == "slic3r"
        assert settings.slic3r_path == Path("/opt/slic3r/slic3r")
        assert settings.run_in_process is True

    def test_poll_interval_must_be_positive(self):
        """Test a zero poll interval is rejected."""
        with pytest.raises(ValidationError):
            Settings(poll_interval=0)

    def test_configure(self, monkeypatch, tmp_path):
        """Test replacing the global settings."""
        monkeypatch.setattr(config_module, "_settings", None)
        settings = Settings(data_dir=tmp_path)
        configure(settings)
        assert get_settings() is settings
