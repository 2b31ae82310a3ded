"""Mesh loading and export helpers used by analysis and vertex colour baking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import trimesh

from .core import MeshLoadError, MeshWriteError

__all__ = ["MeshData", "UV_CHANNEL_COUNT", "load_mesh", "write_colored_mesh"]

_LOGGER = logging.getLogger(__name__)

UV_CHANNEL_COUNT = 8

# PLY property names tried for UV channel n >= 1, after the names trimesh reads for channel 0.
_PLY_UV_PROPERTIES = (("s{}", "t{}"), ("u{}", "v{}"), ("texture_u{}", "texture_v{}"))


@dataclass(frozen=True, eq=False)
class MeshData:
    """Raw mesh arrays supplied to :func:`uvmaskmaker.uvm.analysis.analyze`.

    ``triangles`` is the flat index list (three entries per triangle).
    ``uv_channels`` maps a channel number to its UV array; with
    ``uv_per_corner`` the arrays hold one coordinate per triangle corner
    instead of one per vertex.
    """

    positions: np.ndarray
    triangles: np.ndarray
    uv_channels: Mapping[int, np.ndarray] = field(default_factory=dict)
    normals: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None
    readable: bool = True
    name: str = "Mesh"
    uv_per_corner: bool = False

    @property
    def vertex_count(self) -> int:
        return int(np.asarray(self.positions).reshape(-1, 3).shape[0])

    @property
    def faces(self) -> np.ndarray:
        flat = np.asarray(self.triangles, dtype=np.int64).reshape(-1)
        usable = (flat.shape[0] // 3) * 3
        return flat[:usable].reshape(-1, 3)


def load_mesh(mesh_path: Path, loader: str = "auto") -> MeshData:
    """Load ``mesh_path`` into :class:`MeshData`.

    ``"trimesh"`` supports every format trimesh can read but splits vertices
    along UV seams. ``"obj"`` keeps shared positions and emits per-corner
    UVs. ``"auto"`` uses the OBJ reader for ``.obj`` files.
    """

    resolved_path = mesh_path.expanduser().resolve()
    loader_choice = loader.lower()
    if loader_choice not in {"auto", "trimesh", "obj"}:
        raise MeshLoadError(
            f"Unsupported loader '{loader}'. Use 'auto', 'trimesh' or 'obj'."
        )

    if loader_choice == "auto":
        loader_choice = "obj" if resolved_path.suffix.lower() == ".obj" else "trimesh"

    if loader_choice == "obj":
        if resolved_path.suffix.lower() != ".obj":
            raise MeshLoadError(f"The OBJ loader cannot read '{resolved_path}'")
        try:
            mesh_data = _load_obj_geometry(resolved_path)
        except OSError as exc:  # pragma: no cover - depends on filesystem
            raise MeshLoadError(f"Failed to read mesh '{resolved_path}': {exc}") from exc
    else:
        mesh_data = _load_with_trimesh(resolved_path)

    _LOGGER.debug(
        "Loaded mesh %s (%d vertices, %d triangles, UV channels %s)",
        mesh_data.name,
        mesh_data.vertex_count,
        mesh_data.faces.shape[0],
        sorted(mesh_data.uv_channels),
    )
    return mesh_data


def write_colored_mesh(mesh: MeshData, colors: np.ndarray, path: Path) -> Path:
    """Write ``mesh`` with ``colors`` attached as vertex colours."""

    color_array = np.asarray(colors, dtype=np.uint8)
    if color_array.shape != (mesh.vertex_count, 4):
        raise MeshWriteError(
            f"Expected {mesh.vertex_count} RGBA colours, received shape {color_array.shape}"
        )

    colored = trimesh.Trimesh(
        vertices=np.asarray(mesh.positions, dtype=np.float64).reshape(-1, 3),
        faces=mesh.faces,
        vertex_colors=color_array,
        process=False,
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        colored.export(str(path))
    except (OSError, ValueError, KeyError) as exc:
        raise MeshWriteError(f"Failed to write mesh '{path}': {exc}") from exc

    _LOGGER.debug("Wrote coloured mesh %s", path)
    return path


def _load_with_trimesh(resolved_path: Path) -> MeshData:
    options: Dict[str, object] = {}
    if resolved_path.suffix.lower() == ".ply":
        # Keep PLY vertices in file order so numbered UV properties stay aligned.
        options["fix_texture"] = False

    try:
        loaded = trimesh.load(str(resolved_path), process=False, **options)
    except Exception as exc:  # pragma: no cover - depends on asset
        raise MeshLoadError(f"Failed to load mesh '{resolved_path}': {exc}") from exc

    if isinstance(loaded, trimesh.Scene):
        geometries = [geom for geom in loaded.dump() if isinstance(geom, trimesh.Trimesh)]
        if not geometries:
            raise MeshLoadError(f"Mesh '{resolved_path}' does not contain any geometry")
        loaded = geometries[0] if len(geometries) == 1 else trimesh.util.concatenate(geometries)

    if not isinstance(loaded, trimesh.Trimesh):
        raise MeshLoadError(f"Mesh '{resolved_path}' does not contain triangulated geometry")

    vertices = np.asarray(loaded.vertices, dtype=np.float64)
    faces = np.asarray(loaded.faces, dtype=np.int64)
    if vertices.size == 0 or faces.size == 0:
        raise MeshLoadError(f"Mesh '{resolved_path}' does not contain triangulated geometry")

    uv_channels: Dict[int, np.ndarray] = {}
    visual = getattr(loaded, "visual", None)
    uv = getattr(visual, "uv", None)
    if uv is not None:
        uv_array = np.asarray(uv, dtype=np.float64)
        if uv_array.ndim == 2 and uv_array.shape[0] == vertices.shape[0]:
            uv_channels[0] = uv_array[:, :2]
        else:
            _LOGGER.warning(
                "Ignoring UVs of '%s': %s coordinates for %d vertices",
                resolved_path,
                uv_array.shape,
                vertices.shape[0],
            )
    uv_channels.update(_ply_uv_channels(loaded, vertices.shape[0]))

    colors = None
    if getattr(visual, "kind", None) == "vertex":
        colors = np.asarray(visual.vertex_colors, dtype=np.uint8)

    return MeshData(
        positions=vertices,
        triangles=faces.reshape(-1),
        uv_channels=uv_channels,
        normals=np.asarray(loaded.vertex_normals, dtype=np.float64),
        colors=colors,
        name=resolved_path.stem,
    )


def _ply_uv_channels(loaded: trimesh.Trimesh, vertex_count: int) -> Dict[int, np.ndarray]:
    """Read UV channels 1..7 stored as numbered PLY vertex properties (``s1``/``t1`` ...)."""

    raw = loaded.metadata.get("_ply_raw") if isinstance(loaded.metadata, dict) else None
    vertex_element = raw.get("vertex") if raw else None
    data = vertex_element.get("data") if vertex_element else None
    if data is None:
        return {}

    channels: Dict[int, np.ndarray] = {}
    for channel in range(1, UV_CHANNEL_COUNT):
        for u_template, v_template in _PLY_UV_PROPERTIES:
            u = _ply_property(data, u_template.format(channel))
            v = _ply_property(data, v_template.format(channel))
            if u is None or v is None:
                continue
            if u.shape[0] != vertex_count or v.shape[0] != vertex_count:
                _LOGGER.warning(
                    "Ignoring UV%d: %d coordinates for %d vertices",
                    channel,
                    u.shape[0],
                    vertex_count,
                )
                break
            channels[channel] = np.column_stack([u, v])
            break
    return channels


def _ply_property(data: Any, name: str) -> Optional[np.ndarray]:
    try:
        values = data[name]
    except (KeyError, ValueError, IndexError):
        return None
    return np.asarray(values, dtype=np.float64).reshape(-1)


def _load_obj_geometry(mesh_path: Path) -> MeshData:
    vertices: List[Tuple[float, float, float]] = []
    texcoords: List[Tuple[float, float]] = []
    triangles: List[int] = []
    corner_uvs: List[Tuple[float, float]] = []

    with mesh_path.open("r", encoding="utf-8") as handle:
        for raw_line in handle:
            stripped = raw_line.strip()
            if not stripped or stripped.startswith("#"):
                continue

            parts = stripped.split()
            prefix = parts[0]
            values = parts[1:]

            if prefix == "v" and len(values) >= 3:
                vertices.append((float(values[0]), float(values[1]), float(values[2])))
            elif prefix == "vt" and len(values) >= 2:
                texcoords.append((float(values[0]), float(values[1])))
            elif prefix == "f" and len(values) >= 3:
                corners = [
                    _parse_obj_indices(token, len(vertices), len(texcoords)) for token in values
                ]
                # Fan triangulation keeps the first corner of every polygon.
                for i in range(1, len(corners) - 1):
                    for v_index, vt_index in (corners[0], corners[i], corners[i + 1]):
                        triangles.append(v_index - 1)
                        corner_uvs.append(texcoords[vt_index - 1] if vt_index > 0 else (0.0, 0.0))

    if not vertices or not triangles:
        raise MeshLoadError(f"Mesh '{mesh_path}' does not contain triangulated geometry")

    uv_channels: Dict[int, np.ndarray] = {}
    if texcoords:
        uv_channels[0] = np.asarray(corner_uvs, dtype=np.float64)

    return MeshData(
        positions=np.asarray(vertices, dtype=np.float64),
        triangles=np.asarray(triangles, dtype=np.int64),
        uv_channels=uv_channels,
        name=mesh_path.stem,
        uv_per_corner=True,
    )


def _parse_obj_indices(token: str, vertex_count: int, texcoord_count: int) -> Tuple[int, int]:
    parts = token.split("/")
    if not parts or not parts[0]:
        raise MeshLoadError(f"Invalid face index token '{token}' in OBJ file")

    vertex_index = int(parts[0])
    if vertex_index < 0:
        vertex_index = vertex_count + vertex_index + 1

    texcoord_index = 0
    if len(parts) > 1 and parts[1]:
        texcoord_index = int(parts[1])
        if texcoord_index < 0:
            texcoord_index = texcoord_count + texcoord_index + 1

    if not 1 <= vertex_index <= vertex_count or texcoord_index > texcoord_count:
        raise MeshLoadError(f"Face index token '{token}' references missing data")

    return vertex_index, texcoord_index
