"""
Multi-material model partitioning.

Splits an AMF model into one STL file per extruder so engines that only read
flat geometry can slice each material on its own extruder.

AMF structure:
    <amf>
    ├── <material id="1"> ...
    └── <object id="0">
        └── <mesh>
            ├── <vertices> <vertex><coordinates><x/><y/><z/></coordinates></vertex> ...
            └── <volume materialid="1"> <triangle><v1/><v2/><v3/></triangle> ...

Each <volume> becomes a SubMesh tagged with its material index. Material 1
goes to extruder 0, material 2 to extruder 1 and so on; materials past the
last extruder are printed by extruder 0.
"""

import math
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from slicequeue.errors import ModelLoadError, UnsupportedFormatError
from slicequeue.utils import get_logger, scratch_file

logger = get_logger("partition")

PASSTHROUGH_EXTENSIONS = (".stl", ".gcode")
PARTITIONED_EXTENSION = ".amf"
ACCEPTED_EXTENSIONS = PASSTHROUGH_EXTENSIONS + (PARTITIONED_EXTENSION,)

Vertex = Tuple[float, float, float]
Triangle = Tuple[int, int, int]


@dataclass
class SubMesh:
    """Triangles of one AMF volume, indexing into its object's vertex list."""
    vertices: List[Vertex]
    triangles: List[Triangle]
    material_index: int = 0
    name: str = ""


@dataclass
class MeshGroup:
    """A set of sub-meshes saved together."""
    meshes: List[SubMesh] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(mesh.triangles for mesh in self.meshes)


@dataclass(frozen=True)
class ExtruderAssignment:
    """Where one material index of a model ends up."""
    material_index: int
    extruder_index: int
    output_path: Path
    overflow: bool = False  # material has no extruder of its own


@dataclass
class PartitionResult:
    """Geometry files to slice, in extruder order."""
    files: List[Path]
    assignments: List[ExtruderAssignment] = field(default_factory=list)
    max_material_index: int = 0


def _float(element: Optional[ET.Element], tag: str) -> float:
    if element is None or element.find(tag) is None:
        raise ModelLoadError(f"Vertex is missing its {tag} coordinate")
    return float(element.find(tag).text)


def _int(element: ET.Element, tag: str) -> int:
    child = element.find(tag)
    if child is None:
        raise ModelLoadError(f"Triangle is missing {tag}")
    return int(child.text)


def _read_amf_root(path: Path) -> ET.Element:
    """Parse an AMF file, plain XML or zip-compressed."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            names = [n for n in zf.namelist() if not n.endswith("/")]
            if not names:
                raise ModelLoadError(f"Compressed AMF {path} is empty")
            return ET.fromstring(zf.read(names[0]))
    return ET.parse(path).getroot()


def load_amf(path: Union[str, Path]) -> List[MeshGroup]:
    """
    Load the mesh groups of an AMF model.

    Args:
        path: AMF file

    Returns:
        One MeshGroup per <object>, one SubMesh per <volume>

    Raises:
        ModelLoadError: File is unreadable, not AMF, or references missing vertices
    """
    path = Path(path)
    try:
        root = _read_amf_root(path)
        if root.tag != "amf":
            raise ModelLoadError(f"{path} is not an AMF document (root <{root.tag}>)")

        groups = []
        for obj in root.findall("object"):
            group = MeshGroup()
            for mesh in obj.findall("mesh"):
                vertices = [
                    (_float(v.find("coordinates"), "x"),
                     _float(v.find("coordinates"), "y"),
                     _float(v.find("coordinates"), "z"))
                    for v in mesh.findall("vertices/vertex")
                ]
                for volume in mesh.findall("volume"):
                    triangles = [
                        (_int(t, "v1"), _int(t, "v2"), _int(t, "v3"))
                        for t in volume.findall("triangle")
                    ]
                    for triangle in triangles:
                        if any(i < 0 or i >= len(vertices) for i in triangle):
                            raise ModelLoadError(f"Triangle {triangle} references a missing vertex")
                    group.meshes.append(SubMesh(
                        vertices=vertices,
                        triangles=triangles,
                        material_index=max(0, int(volume.get("materialid", 0))),
                        name=obj.get("id", ""),
                    ))
            groups.append(group)
    except ModelLoadError:
        raise
    except (OSError, ET.ParseError, zipfile.BadZipFile, ValueError, TypeError) as e:
        raise ModelLoadError(f"Failed to load {path}: {e}") from e

    logger.debug(f"Loaded {sum(len(g.meshes) for g in groups)} volumes from {path.name}")
    return groups


def _facet_normal(a: Vertex, b: Vertex, c: Vertex) -> Vertex:
    ux, uy, uz = b[0] - a[0], b[1] - a[1], b[2] - a[2]
    vx, vy, vz = c[0] - a[0], c[1] - a[1], c[2] - a[2]
    nx, ny, nz = uy * vz - uz * vy, uz * vx - ux * vz, ux * vy - uy * vx
    length = math.sqrt(nx * nx + ny * ny + nz * nz)
    if length == 0:
        return (0.0, 0.0, 0.0)
    return (nx / length, ny / length, nz / length)


def write_ascii_stl(meshes: Iterable[SubMesh], filepath: Path, name: str = "slicequeue") -> Path:
    """Write sub-meshes as a single ASCII STL solid."""
    lines = [f"solid {name}"]
    for mesh in meshes:
        for i1, i2, i3 in mesh.triangles:
            a, b, c = mesh.vertices[i1], mesh.vertices[i2], mesh.vertices[i3]
            n = _facet_normal(a, b, c)
            lines.append(f"  facet normal {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}")
            lines.append("    outer loop")
            for v in (a, b, c):
                lines.append(f"      vertex {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}")
            lines.append("    endloop")
            lines.append("  endfacet")
    lines.append(f"endsolid {name}")
    filepath.write_text("\n".join(lines) + "\n")
    return filepath


class MeshPartitioner:
    """Resolves a model file into the geometry files an engine should slice."""

    def __init__(self, extruder_count: int, scratch_dir: Union[str, Path]):
        if extruder_count < 1:
            raise ValueError("extruder_count must be at least 1")
        self.extruder_count = extruder_count
        self.scratch_dir = Path(scratch_dir)

    def resolve(self, path: Union[str, Path]) -> List[Path]:
        """Geometry files for a model; index 0 is always extruder 0's file."""
        return self.partition(path).files

    def partition(self, path: Union[str, Path]) -> PartitionResult:
        """
        Split a model into per-extruder files.

        Args:
            path: .stl or .gcode (returned unchanged) or .amf (split)

        Returns:
            PartitionResult with files in extruder order

        Raises:
            UnsupportedFormatError: Extension is not one of ACCEPTED_EXTENSIONS
            ModelLoadError: AMF could not be read
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix in PASSTHROUGH_EXTENSIONS:
            return PartitionResult(files=[path])
        if suffix != PARTITIONED_EXTENSION:
            raise UnsupportedFormatError(path, ACCEPTED_EXTENSIONS)

        mesh_groups = load_amf(path)
        extruder_groups = [MeshGroup() for _ in range(self.extruder_count)]
        max_extruder_index = 0
        material_to_extruder: Dict[int, int] = {}

        for mesh_group in mesh_groups:
            for mesh in mesh_group.meshes:
                extruder_index = max(0, mesh.material_index - 1)
                max_extruder_index = max(max_extruder_index, extruder_index)
                if extruder_index >= self.extruder_count:
                    extruder_index = 0
                extruder_groups[extruder_index].meshes.append(mesh)
                material_to_extruder[mesh.material_index] = extruder_index

        # Write extruder files up to the last one in use so positions line up.
        last_used = max(
            [i for i, group in enumerate(extruder_groups) if not group.is_empty],
            default=0,
        )

        files = []
        output_for_extruder: Dict[int, Path] = {}
        for i in range(last_used + 1):
            materials = self.materials_for_extruder(i, max_extruder_index)
            output_path = self._save_for_materials(extruder_groups[i], materials)
            output_for_extruder[i] = output_path
            files.append(output_path)

        assignments = [
            ExtruderAssignment(
                material_index=material,
                extruder_index=extruder,
                output_path=output_for_extruder[extruder],
                overflow=max(0, material - 1) >= self.extruder_count,
            )
            for material, extruder in sorted(material_to_extruder.items())
        ]
        for assignment in assignments:
            if assignment.overflow:
                logger.info(
                    f"Material {assignment.material_index} has no extruder; "
                    f"printing it with extruder 0"
                )

        logger.info(f"Split {path.name} into {len(files)} extruder file(s)")
        return PartitionResult(
            files=files,
            assignments=assignments,
            max_material_index=max(material_to_extruder, default=0),
        )

    def materials_for_extruder(self, extruder_index: int, max_extruder_index: int) -> Set[int]:
        """Material indices saved into one extruder's file."""
        materials = {extruder_index + 1}
        if extruder_index == 0:
            # Untagged volumes and materials without their own extruder.
            materials.add(0)
            materials.update(range(self.extruder_count + 1, max_extruder_index + 2))
        return materials

    def _save_for_materials(self, group: MeshGroup, materials: Set[int]) -> Path:
        output_path = scratch_file(self.scratch_dir, ".stl")
        meshes = [mesh for mesh in group.meshes if mesh.material_index in materials]
        return write_ascii_stl(meshes, output_path)
