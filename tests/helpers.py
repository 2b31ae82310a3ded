from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import cv2
import numpy as np

from uvmaskmaker.uvm.mesh_utils import MeshData


def quad_mesh(*, normals: Optional[np.ndarray] = None) -> MeshData:
    positions = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
        ],
        dtype=np.float64,
    )
    uv = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]], dtype=np.float64)
    triangles = np.array([0, 1, 2, 0, 2, 3], dtype=np.int64)
    return MeshData(positions=positions, triangles=triangles, uv_channels={0: uv}, normals=normals)


def two_island_mesh() -> MeshData:
    positions = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
            [2.0, 0.0, 0.0],
            [3.0, 0.0, 0.0],
            [3.0, 1.0, 0.0],
            [2.0, 1.0, 0.0],
        ],
        dtype=np.float64,
    )
    uv = np.array(
        [
            [0.0, 0.0],
            [0.4, 0.0],
            [0.4, 1.0],
            [0.0, 1.0],
            [0.6, 0.0],
            [1.0, 0.0],
            [1.0, 1.0],
            [0.6, 1.0],
        ],
        dtype=np.float64,
    )
    triangles = np.array([0, 1, 2, 0, 2, 3, 4, 5, 6, 4, 6, 7], dtype=np.int64)
    return MeshData(positions=positions, triangles=triangles, uv_channels={0: uv}, name="TwoIslands")


def seam_quad_mesh() -> MeshData:
    """Two triangles sharing vertices 0 and 2 but not the UVs along that edge."""

    positions = quad_mesh().positions
    corner_uv = np.array(
        [
            [0.0, 0.0],
            [1.0, 0.0],
            [1.0, 1.0],
            [0.0, 0.1],
            [0.9, 1.0],
            [0.0, 1.0],
        ],
        dtype=np.float64,
    )
    triangles = np.array([0, 1, 2, 0, 2, 3], dtype=np.int64)
    return MeshData(
        positions=positions,
        triangles=triangles,
        uv_channels={0: corner_uv},
        uv_per_corner=True,
        name="SeamQuad",
    )


def grid_mesh(cells: int) -> MeshData:
    coords = np.linspace(0.0, 1.0, cells + 1)
    uu, vv = np.meshgrid(coords, coords)
    uv = np.stack([uu.reshape(-1), vv.reshape(-1)], axis=1)
    positions = np.concatenate([uv, np.zeros((uv.shape[0], 1))], axis=1)

    triangles = []
    stride = cells + 1
    for row in range(cells):
        for col in range(cells):
            a = row * stride + col
            b = a + 1
            c = a + stride + 1
            d = a + stride
            triangles.extend([a, b, c, a, c, d])

    return MeshData(
        positions=positions,
        triangles=np.asarray(triangles, dtype=np.int64),
        uv_channels={0: uv},
        name="Grid",
    )


def write_two_island_asset(directory: Path) -> Path:
    obj_data = """\
o TwoIslands
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
v 2 0 0
v 3 0 0
v 3 1 0
v 2 1 0
vt 0.05 0.05
vt 0.45 0.05
vt 0.45 0.95
vt 0.05 0.95
vt 0.55 0.05
vt 0.95 0.05
vt 0.95 0.95
vt 0.55 0.95
f 1/1 2/2 3/3
f 1/1 3/3 4/4
f 5/5 6/6 7/7
f 5/5 7/7 8/8
"""
    obj_path = directory / "two_islands.obj"
    obj_path.write_text(obj_data, encoding="utf-8")
    return obj_path


def write_seam_asset(directory: Path) -> Path:
    obj_data = """\
o SeamQuad
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
vt 0.05 0.05
vt 0.45 0.05
vt 0.45 0.45
vt 0.55 0.55
vt 0.95 0.95
vt 0.55 0.95
f 1/1 2/2 3/3
f 1/4 3/5 4/6
"""
    obj_path = directory / "seam_quad.obj"
    obj_path.write_text(obj_data, encoding="utf-8")
    return obj_path


def write_solid_png(path: Path, size: int, bgr: tuple = (128, 128, 128)) -> None:
    image = np.empty((size, size, 3), dtype=np.uint8)
    image[...] = np.asarray(bgr, dtype=np.uint8)
    if not cv2.imwrite(str(path), image):
        raise RuntimeError(f"Failed to write PNG to {path}")


def read_png_rgba(path: Path) -> np.ndarray:
    """Read ``path`` as RGBA with the file's own (top-down) row order."""

    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    assert image is not None, f"could not read {path}"
    return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)


def island_sizes(islands: Dict[int, int]) -> Dict[int, int]:
    sizes: Dict[int, int] = {}
    for island in islands.values():
        sizes[island] = sizes.get(island, 0) + 1
    return sizes


def write_two_uv_ply_asset(directory: Path) -> Path:
    """Quad whose second UV set (``s1``/``t1``) covers the lower-left quarter."""

    ply_data = """\
ply
format ascii 1.0
element vertex 4
property float x
property float y
property float z
property float s
property float t
property float s1
property float t1
element face 2
property list uchar int vertex_indices
end_header
0 0 0 0 0 0 0
1 0 0 1 0 0.5 0
1 1 0 1 1 0.5 0.5
0 1 0 0 1 0 0.5
3 0 1 2
3 0 2 3
"""
    ply_path = directory / "two_uv_quad.ply"
    ply_path.write_text(ply_data, encoding="utf-8")
    return ply_path


def write_split_png(path: Path, size: int, top_bgr: tuple, bottom_bgr: tuple) -> None:
    """Write a PNG whose upper half (in file row order) is ``top_bgr``."""

    image = np.empty((size, size, 3), dtype=np.uint8)
    image[: size // 2] = np.asarray(top_bgr, dtype=np.uint8)
    image[size // 2 :] = np.asarray(bottom_bgr, dtype=np.uint8)
    if not cv2.imwrite(str(path), image):
        raise RuntimeError(f"Failed to write PNG to {path}")
