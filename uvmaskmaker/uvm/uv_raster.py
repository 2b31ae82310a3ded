"""Rasterisation of selected UV islands into byte masks."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Sequence, Tuple

import numpy as np

from .analysis import UV, UvAnalysis

__all__ = ["build_union_mask", "build_label_map", "resolve_selection"]

_LOGGER = logging.getLogger(__name__)

_AREA_EPSILON = 1e-6

# Rows of a triangle's bounding box evaluated per pass.
_BAND_ROWS = 64


def resolve_selection(analysis: UvAnalysis, selected_islands: Iterable[int]) -> List[int]:
    """Return the valid island indices of ``selected_islands`` in ascending order."""

    valid: List[int] = []
    for island_index in set(int(index) for index in selected_islands):
        if 0 <= island_index < analysis.island_count:
            valid.append(island_index)
        else:
            _LOGGER.debug(
                "Ignoring island %d (analysis has %d islands)",
                island_index,
                analysis.island_count,
            )
    return sorted(valid)


def build_union_mask(
    analysis: UvAnalysis | None,
    selected_islands: Iterable[int] | None,
    width: int,
    height: int,
) -> np.ndarray:
    """Rasterise every triangle of ``selected_islands``.

    Returns a ``(height, width)`` ``uint8`` mask where 255 marks covered
    pixels and 0 the background. Row 0 corresponds to ``v = 0``.
    """

    _check_dimensions(width, height)
    mask = np.zeros((height, width), dtype=np.uint8)

    if analysis is None or selected_islands is None:
        return mask

    skipped = 0
    for island_index in resolve_selection(analysis, selected_islands):
        for tri in analysis.islands[island_index].triangles:
            if not _fill_triangle(mask, tri.uvs, 255):
                skipped += 1

    if skipped:
        _LOGGER.debug("Skipped %d degenerate triangles while building mask", skipped)

    return mask


def build_label_map(analysis: UvAnalysis, width: int, height: int) -> np.ndarray:
    """Rasterise every island into an ``int32`` map of island indices.

    Uncovered pixels hold -1. Where islands overlap the later one wins.
    """

    _check_dimensions(width, height)
    labels = np.full((height, width), -1, dtype=np.int32)

    for island_index, island in enumerate(analysis.islands):
        for tri in island.triangles:
            _fill_triangle(labels, tri.uvs, island_index)

    return labels


def _check_dimensions(width: int, height: int) -> None:
    if int(width) < 1 or int(height) < 1:
        raise ValueError(f"Mask dimensions must be positive; received {width}x{height}")


def _uv_to_pixels(uv_coords: Sequence[UV], width: int, height: int) -> np.ndarray:
    # Texel-centre aligned: u=0 hits the centre of column 0, u=1 the centre of the last one.
    uv = np.clip(np.asarray(uv_coords, dtype=np.float64), 0.0, 1.0)
    points = np.empty_like(uv)
    points[:, 0] = uv[:, 0] * (width - 1) + 0.5
    points[:, 1] = uv[:, 1] * (height - 1) + 0.5
    return points


def _edge(
    a: np.ndarray,
    b: np.ndarray,
    px: np.ndarray | float,
    py: np.ndarray | float,
) -> np.ndarray | float:
    # Evaluate every edge in one canonical direction so triangles sharing it agree exactly.
    if (b[0], b[1]) < (a[0], a[1]):
        return -((px - b[0]) * (a[1] - b[1]) - (py - b[1]) * (a[0] - b[0]))
    return (px - a[0]) * (b[1] - a[1]) - (py - a[1]) * (b[0] - a[0])


def _fill_triangle(target: np.ndarray, uv_coords: Sequence[UV], value: int) -> bool:
    """Write ``value`` into every pixel of ``target`` covered by the triangle.

    Returns ``False`` for degenerate triangles, which are left out.
    """

    height, width = target.shape
    points = _uv_to_pixels(uv_coords, width, height)
    p0, p1, p2 = points

    if abs(float(_edge(p0, p1, p2[0], p2[1]))) < _AREA_EPSILON:
        return False

    x0 = max(0, int(np.floor(points[:, 0].min())) - 1)
    x1 = min(width - 1, int(np.ceil(points[:, 0].max())))
    y0 = max(0, int(np.floor(points[:, 1].min())) - 1)
    y1 = min(height - 1, int(np.ceil(points[:, 1].max())))
    if x1 < x0 or y1 < y0:
        return True

    for (band_y0, band_y1), inside in _coverage_bands(points, x0, x1, y0, y1):
        target[band_y0:band_y1, x0 : x1 + 1][inside] = value

    return True


def _coverage_bands(
    points: np.ndarray, x0: int, x1: int, y0: int, y1: int
) -> Iterator[Tuple[Tuple[int, int], np.ndarray]]:
    # Peak memory scales with the band, not with the whole bounding box.
    p0, p1, p2 = points
    px = np.arange(x0, x1 + 1, dtype=np.float64)[None, :] + 0.5
    band_rows = max(int(_BAND_ROWS), 1)

    for band_y0 in range(y0, y1 + 1, band_rows):
        band_y1 = min(band_y0 + band_rows, y1 + 1)
        py = np.arange(band_y0, band_y1, dtype=np.float64)[:, None] + 0.5

        w0 = _edge(p1, p2, px, py)
        w1 = _edge(p2, p0, px, py)
        w2 = _edge(p0, p1, px, py)
        inside = ((w0 >= 0) & (w1 >= 0) & (w2 >= 0)) | ((w0 <= 0) & (w1 <= 0) & (w2 <= 0))
        yield (band_y0, band_y1), inside
