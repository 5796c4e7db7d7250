"""Tests for slicing engine discovery."""

from pathlib import Path

import pytest

from slicequeue.engines import registry as registry_module
from slicequeue.engines.registry import (
    EngineDescriptor,
    EngineKind,
    EngineRegistry,
)
from slicequeue.errors import EngineUnavailableError


@pytest.fixture
def no_system_engines(monkeypatch):
    """Hide any engines installed on the machine running the tests."""
    monkeypatch.setattr(registry_module.shutil, "which", lambda name: None)
    for kind in EngineKind:
        monkeypatch.setitem(registry_module.ENGINE_SEARCH_PATHS, kind, {})


@pytest.fixture
def executable(tmp_path):
    path = tmp_path / "bin" / "slic3r"
    path.parent.mkdir()
    path.write_text("#!/bin/sh\n")
    return path


class TestEngineKind:
    """Tests for EngineKind."""

    def test_labels(self):
        """Test display names."""
        assert EngineKind.SLIC3R.label == "Slic3r"
        assert EngineKind.CURA_ENGINE.label == "CuraEngine"
        assert EngineKind.MATTER_SLICE.label == "MatterSlice"

    def test_descriptor_to_dict(self):
        """Test descriptor serialization."""
        descriptor = EngineDescriptor(EngineKind.SLIC3R, Path("/usr/bin/slic3r"), True)
        assert descriptor.to_dict() == {
            "kind": "slic3r",
            "label": "Slic3r",
            "path": "/usr/bin/slic3r",
            "available": True,
        }


@pytest.mark.usefixtures("no_system_engines")
class TestEngineRegistry:
    """Tests for EngineRegistry."""

    def test_missing_engines_are_unavailable(self, settings):
        """Test absent engines yield unavailable descriptors instead of errors."""
        registry = EngineRegistry(settings, platform="linux")
        descriptors = registry.discover()

        assert len(descriptors) == len(EngineKind)
        assert not any(d.available for d in descriptors)
        assert registry.available() == []

    def test_override_path(self, settings, executable):
        """Test an explicit executable path is used."""
        settings.slic3r_path = executable
        registry = EngineRegistry(settings, platform="linux")

        descriptor = registry.lookup(EngineKind.SLIC3R)
        assert descriptor.available
        assert descriptor.path == executable.resolve()
        assert registry.engine_path(EngineKind.SLIC3R) == executable.resolve()

    def test_relative_override_is_made_absolute(self, settings, executable, monkeypatch):
        """Test a relative override is stored as an absolute path."""
        monkeypatch.chdir(executable.parent.parent)
        settings.slic3r_path = Path("bin") / "slic3r"
        registry = EngineRegistry(settings, platform="linux")

        path = registry.engine_path(EngineKind.SLIC3R)
        assert path.is_absolute()
        assert path == executable.resolve()

    def test_missing_override_is_not_replaced(self, settings, tmp_path, monkeypatch):
        """Test a bad override does not fall back to PATH lookup."""
        monkeypatch.setattr(registry_module.shutil, "which", lambda name: "/usr/bin/" + name)
        settings.slic3r_path = tmp_path / "nope"
        registry = EngineRegistry(settings, platform="linux")

        assert not registry.lookup(EngineKind.SLIC3R).available

    def test_search_paths(self, settings, executable, monkeypatch):
        """Test well-known install locations for the host platform."""
        monkeypatch.setitem(
            registry_module.ENGINE_SEARCH_PATHS, EngineKind.CURA_ENGINE, {"darwin": [str(executable)]}
        )
        assert EngineRegistry(settings, platform="darwin").lookup(EngineKind.CURA_ENGINE).available
        assert not EngineRegistry(settings, platform="linux").lookup(EngineKind.CURA_ENGINE).available

    def test_path_lookup(self, settings, monkeypatch):
        """Test engines on PATH are found."""
        monkeypatch.setattr(
            registry_module.shutil, "which",
            lambda name: "/opt/bin/CuraEngine" if name == "CuraEngine" else None,
        )
        registry = EngineRegistry(settings, platform="linux")
        assert registry.engine_path(EngineKind.CURA_ENGINE) == Path("/opt/bin/CuraEngine")

    def test_probes_only_once(self, settings, monkeypatch):
        """Test discovery runs once and later calls reuse the result."""
        registry = EngineRegistry(settings, platform="linux")
        calls = []
        original = registry._probe
        monkeypatch.setattr(registry, "_probe", lambda kind: calls.append(kind) or original(kind))

        first = registry.discover()
        registry.lookup(EngineKind.SLIC3R)
        registry.available()
        assert registry.discover() == first
        assert len(calls) == len(EngineKind)

    def test_lookup_unknown_kind(self, settings):
        """Test an unknown engine kind gives None."""
        assert EngineRegistry(settings).lookup("blender") is None

    def test_engine_path_raises_when_missing(self, settings):
        """Test asking for a missing engine's executable."""
        registry = EngineRegistry(settings)
        with pytest.raises(EngineUnavailableError):
            registry.engine_path(EngineKind.MATTER_SLICE)

    def test_in_process_engine_is_available(self, settings):
        """Test MatterSlice counts as available when it can run in process."""
        settings.in_process_entry_point = "matterslice:main"
        registry = EngineRegistry(settings)

        descriptor = registry.lookup(EngineKind.MATTER_SLICE)
        assert descriptor.available
        assert descriptor.path is None
        assert not registry.lookup(EngineKind.SLIC3R).available
        with pytest.raises(EngineUnavailableError):
            registry.engine_path(EngineKind.MATTER_SLICE)

    def test_available_order(self, settings, executable):
        """Test installed engines are listed in a stable order."""
        settings.slic3r_path = executable
        settings.matter_slice_path = executable
        registry = EngineRegistry(settings)

        kinds = [d.kind for d in registry.available()]
        assert kinds == [EngineKind.SLIC3R, EngineKind.MATTER_SLICE]
