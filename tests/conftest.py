"""Shared fixtures for SliceQueue tests."""

import os
import stat
import sys
import zipfile
from pathlib import Path

import pytest

from slicequeue.config import Settings

FAKE_ENGINE = """#!{python}
import os, sys, time
args = sys.argv[1:]
output = args[args.index("--output") + 1]
print("=> Processing triangulated mesh", flush=True)
print("=> Exporting G-code to " + output, flush=True)
if os.path.basename(args[-1]).startswith("slow"):
    time.sleep({delay})
with open(output, "w") as f:
    f.write("G28\\nG1 X10 Y10\\n; filament used = 42.0mm\\n")
"""


def amf_document(volumes, unit="millimeter") -> str:
    """
    Build an AMF document with one object and one triangle per volume.

    Args:
        volumes: (material_index, z) pairs; material None leaves the volume untagged
    """
    vertices = []
    triangles = []
    for i, (material, z) in enumerate(volumes):
        base = len(vertices)
        vertices.extend([(0.0, 0.0, z), (10.0, 0.0, z), (0.0, 10.0, z)])
        attr = f' materialid="{material}"' if material is not None else ""
        triangles.append(
            f"<volume{attr}><triangle><v1>{base}</v1><v2>{base + 1}</v2><v3>{base + 2}</v3></triangle></volume>"
        )
    vertex_xml = "".join(
        f"<vertex><coordinates><x>{x}</x><y>{y}</y><z>{z}</z></coordinates></vertex>"
        for x, y, z in vertices
    )
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>\n<amf unit="{unit}">'
        f'<object id="0"><mesh><vertices>{vertex_xml}</vertices>{"".join(triangles)}</mesh></object>'
        "</amf>"
    )


@pytest.fixture
def make_amf(tmp_path):
    """Write an AMF model and return its path."""
    def _make(volumes, name="model.amf", compressed=False) -> Path:
        path = tmp_path / name
        document = amf_document(volumes)
        if compressed:
            with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(Path(name).with_suffix(".xml").name, document)
        else:
            path.write_text(document)
        return path
    return _make


@pytest.fixture
def make_stl(tmp_path):
    """Write a one-facet STL model and return its path."""
    def _make(name="part.stl") -> Path:
        path = tmp_path / "models" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            "solid part\n  facet normal 0 0 1\n    outer loop\n"
            "      vertex 0 0 0\n      vertex 1 0 0\n      vertex 0 1 0\n"
            "    endloop\n  endfacet\nendsolid part\n"
        )
        return path
    return _make


@pytest.fixture
def fake_engine(tmp_path):
    """Create an executable that behaves like Slic3r: reads --output, writes G-code.

    Inputs named slow* take `delay` seconds."""
    if os.name == "nt":
        pytest.skip("Fake engine scripts need a POSIX shebang")

    def _make(delay: float = 0.0, name="fake-slic3r") -> Path:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(FAKE_ENGINE.format(python=sys.executable, delay=delay))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path
    return _make


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in a temporary data directory."""
    return Settings(
        data_dir=tmp_path / "data",
        poll_interval=0.01,
        build_version="42",
    )
