"""UV topology analysis: triangles, seam edges and UV islands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from .core import InvalidMeshState, MissingUvChannel
from .mesh_utils import UV_CHANNEL_COUNT, MeshData

__all__ = [
    "UvTriangle",
    "UvIsland",
    "UvBorderEdge",
    "UvAnalysis",
    "analyze",
    "hash_uv",
    "island_uv_bounds",
    "analysis_to_report",
]

_LOGGER = logging.getLogger(__name__)

UV_KEY_SCALE = 100000.0
MAX_UV_CHANNEL = UV_CHANNEL_COUNT - 1

UV = Tuple[float, float]
EdgeKey = Tuple[int, int]


@dataclass(frozen=True)
class UvTriangle:
    """A mesh triangle with the UVs it resolves to in the analysed channel."""

    tri_index: int
    v0: int
    v1: int
    v2: int
    uv0: UV
    uv1: UV
    uv2: UV

    @property
    def vertices(self) -> Tuple[int, int, int]:
        return (self.v0, self.v1, self.v2)

    @property
    def uvs(self) -> Tuple[UV, UV, UV]:
        return (self.uv0, self.uv1, self.uv2)


@dataclass
class UvIsland:
    """Triangles connected through shared, non-seam UV edges."""

    triangles: List[UvTriangle] = field(default_factory=list)


@dataclass(frozen=True)
class UvBorderEdge:
    """A mesh edge on a UV seam or on the open boundary of the mesh."""

    v0: int
    v1: int
    uv0: UV
    uv1: UV


@dataclass(eq=False)
class UvAnalysis:
    """Result of :func:`analyze` for one mesh and UV channel."""

    vertices: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    uv_channel: int
    triangles: List[UvTriangle]
    islands: List[UvIsland]
    border_edges: List[UvBorderEdge]
    triangle_to_island: Dict[int, int]

    @property
    def island_count(self) -> int:
        return len(self.islands)

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])


def hash_uv(uv: Sequence[float]) -> int:
    """Quantise ``uv`` to 1e-5 and pack both halves into one 64-bit key."""

    x = int(round(float(uv[0]) * UV_KEY_SCALE))
    y = int(round(float(uv[1]) * UV_KEY_SCALE))
    return (x << 32) ^ (y & 0xFFFFFFFF)


def analyze(mesh: Optional[MeshData], uv_channel: int = 0) -> UvAnalysis:
    """Compute UV islands and border edges of ``mesh`` for ``uv_channel``."""

    if mesh is None:
        raise InvalidMeshState("No mesh supplied for analysis")
    if not mesh.readable:
        raise InvalidMeshState(
            f"Mesh '{mesh.name}' is not readable; enable read access on the mesh first"
        )

    channel = min(max(int(uv_channel), 0), MAX_UV_CHANNEL)

    vertices = np.array(mesh.positions, dtype=np.float64).reshape(-1, 3)
    vertex_count = vertices.shape[0]

    normals: np.ndarray
    if mesh.normals is not None and np.asarray(mesh.normals).reshape(-1, 3).shape[0] == vertex_count:
        normals = np.array(mesh.normals, dtype=np.float64).reshape(-1, 3)
    else:
        normals = np.zeros((vertex_count, 3), dtype=np.float64)

    raw_uv = mesh.uv_channels.get(channel)
    if raw_uv is None or len(raw_uv) == 0:
        raise MissingUvChannel(f"Mesh '{mesh.name}' has no UV{channel}")
    uvs = np.array(raw_uv, dtype=np.float64).reshape(len(raw_uv), -1)[:, :2]

    faces = mesh.faces
    _validate_indices(mesh, faces, uvs, vertex_count)

    triangles = _build_triangles(faces, uvs, per_corner=mesh.uv_per_corner)
    border_edges = _classify_border_edges(triangles)
    islands, triangle_to_island = _flood_fill_islands(triangles, border_edges)

    _LOGGER.debug(
        "Analysed %s UV%d: %d triangles, %d islands, %d border edges",
        mesh.name,
        channel,
        len(triangles),
        len(islands),
        len(border_edges),
    )

    return UvAnalysis(
        vertices=vertices,
        normals=normals,
        uvs=uvs,
        uv_channel=channel,
        triangles=triangles,
        islands=islands,
        border_edges=border_edges,
        triangle_to_island=triangle_to_island,
    )


def island_uv_bounds(island: UvIsland) -> Tuple[float, float, float, float]:
    """Return ``(u_min, v_min, u_max, v_max)`` of ``island``."""

    if not island.triangles:
        return (0.0, 0.0, 0.0, 0.0)
    coords = np.array([uv for tri in island.triangles for uv in tri.uvs], dtype=np.float64)
    u_min, v_min = coords.min(axis=0)
    u_max, v_max = coords.max(axis=0)
    return (float(u_min), float(v_min), float(u_max), float(v_max))


def analysis_to_report(analysis: UvAnalysis) -> Dict[str, Any]:
    """Summarise ``analysis`` as a JSON-serialisable mapping."""

    islands = [
        {
            "id": index,
            "triangle_count": len(island.triangles),
            "bbox_uv": list(island_uv_bounds(island)),
        }
        for index, island in enumerate(analysis.islands)
    ]

    return {
        "uv_channel": analysis.uv_channel,
        "vertex_count": analysis.vertex_count,
        "triangle_count": len(analysis.triangles),
        "island_count": analysis.island_count,
        "border_edge_count": len(analysis.border_edges),
        "islands": islands,
    }


def _validate_indices(mesh: MeshData, faces: np.ndarray, uvs: np.ndarray, vertex_count: int) -> None:
    if faces.size == 0:
        return

    if int(faces.min()) < 0 or int(faces.max()) >= vertex_count:
        raise InvalidMeshState(
            f"Mesh '{mesh.name}' references vertices outside [0, {vertex_count})"
        )

    if mesh.uv_per_corner:
        if uvs.shape[0] < faces.size:
            raise InvalidMeshState(
                f"Mesh '{mesh.name}' has {uvs.shape[0]} UV corners for {faces.size} triangle corners"
            )
    elif uvs.shape[0] <= int(faces.max()):
        raise InvalidMeshState(
            f"Mesh '{mesh.name}' has {uvs.shape[0]} UV coordinates for {vertex_count} vertices"
        )


def _build_triangles(faces: np.ndarray, uvs: np.ndarray, *, per_corner: bool) -> List[UvTriangle]:
    triangles: List[UvTriangle] = []
    for tri_index, face in enumerate(faces):
        i0, i1, i2 = (int(face[0]), int(face[1]), int(face[2]))
        if per_corner:
            c0, c1, c2 = tri_index * 3, tri_index * 3 + 1, tri_index * 3 + 2
        else:
            c0, c1, c2 = i0, i1, i2
        triangles.append(
            UvTriangle(
                tri_index=tri_index,
                v0=i0,
                v1=i1,
                v2=i2,
                uv0=(float(uvs[c0, 0]), float(uvs[c0, 1])),
                uv1=(float(uvs[c1, 0]), float(uvs[c1, 1])),
                uv2=(float(uvs[c2, 0]), float(uvs[c2, 1])),
            )
        )
    return triangles


def _triangle_edges(tri: UvTriangle) -> Tuple[Tuple[int, int, UV, UV], ...]:
    return (
        (tri.v0, tri.v1, tri.uv0, tri.uv1),
        (tri.v1, tri.v2, tri.uv1, tri.uv2),
        (tri.v2, tri.v0, tri.uv2, tri.uv0),
    )


def _uv_edge_key(uv_a: UV, uv_b: UV) -> EdgeKey:
    key_a = hash_uv(uv_a)
    key_b = hash_uv(uv_b)
    return (key_a, key_b) if key_a < key_b else (key_b, key_a)


def _same_uv_edge(edge_a: Tuple[UV, UV], edge_b: Tuple[UV, UV]) -> bool:
    a0, a1 = hash_uv(edge_a[0]), hash_uv(edge_a[1])
    b0, b1 = hash_uv(edge_b[0]), hash_uv(edge_b[1])
    return (a0 == b0 and a1 == b1) or (a0 == b1 and a1 == b0)


def _classify_border_edges(triangles: Sequence[UvTriangle]) -> List[UvBorderEdge]:
    edge_uses: Dict[EdgeKey, List[Tuple[int, Tuple[UV, UV]]]] = {}
    for tri in triangles:
        for va, vb, uv_a, uv_b in _triangle_edges(tri):
            key = (va, vb) if va < vb else (vb, va)
            edge_uses.setdefault(key, []).append((tri.tri_index, (uv_a, uv_b)))

    border_edges: List[UvBorderEdge] = []
    for (v0, v1), uses in edge_uses.items():
        base_uv = uses[0][1]
        if len(uses) > 1 and all(_same_uv_edge(base_uv, uv_edge) for _, uv_edge in uses[1:]):
            continue
        border_edges.append(UvBorderEdge(v0=v0, v1=v1, uv0=base_uv[0], uv1=base_uv[1]))

    return border_edges


def _flood_fill_islands(
    triangles: Sequence[UvTriangle],
    border_edges: Sequence[UvBorderEdge],
) -> Tuple[List[UvIsland], Dict[int, int]]:
    border_keys: Set[EdgeKey] = {_uv_edge_key(edge.uv0, edge.uv1) for edge in border_edges}

    triangle_keys: List[List[EdgeKey]] = []
    edge_to_triangles: Dict[EdgeKey, List[int]] = {}
    for position, tri in enumerate(triangles):
        keys = [_uv_edge_key(uv_a, uv_b) for _, _, uv_a, uv_b in _triangle_edges(tri)]
        triangle_keys.append(keys)
        for key in keys:
            if key in border_keys:
                continue
            users = edge_to_triangles.setdefault(key, [])
            if position not in users:
                users.append(position)

    visited = np.zeros(len(triangles), dtype=bool)
    islands: List[UvIsland] = []
    triangle_to_island: Dict[int, int] = {}

    for start in range(len(triangles)):
        if visited[start]:
            continue
        island = UvIsland()
        stack = [start]
        visited[start] = True
        while stack:
            current = stack.pop()
            island.triangles.append(triangles[current])
            for key in triangle_keys[current]:
                for neighbour in edge_to_triangles.get(key, ()):
                    if not visited[neighbour]:
                        visited[neighbour] = True
                        stack.append(neighbour)

        island_index = len(islands)
        islands.append(island)
        for tri in island.triangles:
            triangle_to_island[tri.tri_index] = island_index

    return islands, triangle_to_island
