"""Tests for the SliceQueue command line."""

import json

import pytest
from click.testing import CliRunner

from slicequeue import __version__
from slicequeue import config as config_module
from slicequeue.cli.main import cli
from slicequeue.engines import registry as registry_module
from slicequeue.engines.registry import EngineKind


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(settings, monkeypatch):
    """Point the CLI at temporary settings with no system engines."""
    monkeypatch.setattr(config_module, "_settings", settings)
    monkeypatch.setattr(registry_module.shutil, "which", lambda name: None)
    for kind in EngineKind:
        monkeypatch.setitem(registry_module.ENGINE_SEARCH_PATHS, kind, {})
    return settings


class TestCli:
    """Tests for top-level commands."""

    def test_version(self, runner):
        """Test --version prints the package version."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status(self, runner, settings):
        """Test status shows the configuration."""
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert f"SliceQueue {__version__}" in result.output
        assert "Active engine: matter_slice" in result.output
        assert "Installed engines: none" in result.output


class TestEnginesCommand:
    """Tests for the engines command."""

    def test_no_engines(self, runner):
        """Test the hint shown when nothing is installed."""
        result = runner.invoke(cli, ["engines"])
        assert result.exit_code == 0
        assert "No slicing engines found" in result.output

    def test_show_all(self, runner):
        """Test --all lists missing engines too."""
        result = runner.invoke(cli, ["engines", "--all"])
        assert result.exit_code == 0
        assert "Slic3r" in result.output
        assert "missing" in result.output

    def test_installed_engine(self, runner, settings, tmp_path):
        """Test an installed engine is listed as available."""
        engine = tmp_path / "slic3r"
        engine.write_text("")
        settings.slic3r_path = engine

        result = runner.invoke(cli, ["engines"])
        assert result.exit_code == 0
        assert "available" in result.output
        assert "CuraEngine" not in result.output


class TestSliceCommand:
    """Tests for the slice command."""

    def test_slice_with_engine(self, runner, settings, fake_engine, make_stl, tmp_path):
        """Test slicing a model end to end with an external engine."""
        settings.slic3r_path = fake_engine()
        model = make_stl("bracket.stl")
        output_dir = tmp_path / "out"

        result = runner.invoke(
            cli, ["slice", str(model), "--engine", "slic3r", "--output-dir", str(output_dir)]
        )

        assert result.exit_code == 0, result.output
        gcode_files = list(output_dir.glob("bracket_*.gcode"))
        assert len(gcode_files) == 1
        assert "GCode settings used" in gcode_files[0].read_text()
        assert "Slicing Results" in result.output

    def test_slice_with_profile(self, runner, settings, fake_engine, make_stl, tmp_path):
        """Test the profile's engine and settings are used."""
        settings.slic3r_path = fake_engine()
        profile = tmp_path / "profile.json"
        profile.write_text(json.dumps({"engine": "slic3r", "settings": {"perimeters": 3}}))
        output_dir = tmp_path / "out"

        result = runner.invoke(
            cli, ["slice", str(make_stl()), "--profile", str(profile), "-o", str(output_dir)]
        )

        assert result.exit_code == 0, result.output
        gcode = next(output_dir.glob("part_*.gcode")).read_text()
        assert "; perimeters = 3" in gcode

    def test_slice_missing_engine_fails(self, runner, make_stl):
        """Test a failed job gives a non-zero exit code."""
        result = runner.invoke(cli, ["slice", str(make_stl()), "--engine", "cura_engine"])
        assert result.exit_code == 1
        assert "failed" in result.output

    def test_slice_requires_existing_file(self, runner, tmp_path):
        """Test click rejects a missing model."""
        result = runner.invoke(cli, ["slice", str(tmp_path / "absent.stl")])
        assert result.exit_code == 2
