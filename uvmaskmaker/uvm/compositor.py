"""Turn processed masks into pixel or vertex colour buffers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import numpy as np

from .analysis import UvAnalysis
from .morphology import dilate_black, dilate_white, invert_mask
from .uv_raster import build_union_mask, resolve_selection

__all__ = [
    "ChannelFlags",
    "ExportOptions",
    "build_processed_mask",
    "composite_mask",
    "resample_base_pixels",
    "mask_to_colors",
    "mask_to_overlay",
    "label_map_to_colors",
    "selected_vertices",
    "build_vertex_colors",
    "build_vertex_colors_channel_wise",
]

_LOGGER = logging.getLogger(__name__)

SELECTED_COLOR = (0, 0, 0, 255)
UNSELECTED_COLOR = (255, 255, 255, 255)


@dataclass(frozen=True)
class ChannelFlags:
    """Which RGBA channels channel-write mode is allowed to touch."""

    r: bool = True
    g: bool = False
    b: bool = False
    a: bool = False

    @property
    def rgb_indices(self) -> list[int]:
        return [index for index, enabled in enumerate((self.r, self.g, self.b)) if enabled]


@dataclass
class ExportOptions:
    """Options that configure mask export."""

    texture_size: int = 512
    pixel_margin: int = 2
    invert: bool = False
    channel_write: bool = False
    channels: ChannelFlags = field(default_factory=ChannelFlags)
    base_image: Optional[np.ndarray] = None
    save_inverted_too: bool = False


def build_processed_mask(
    analysis: UvAnalysis | None,
    selected_islands: Iterable[int] | None,
    width: int,
    height: int,
    pixel_margin: int,
    invert: bool,
) -> np.ndarray:
    """Build the union mask, then invert and pad it as requested.

    Padding always grows the region that reads as selected after inversion,
    so an inverted mask dilates its 0 pixels instead of its 255 pixels.
    """

    mask = build_union_mask(analysis, selected_islands, width, height)
    if invert:
        invert_mask(mask)

    if pixel_margin > 0:
        if invert:
            dilate_white(mask, width, height, pixel_margin)
        else:
            dilate_black(mask, width, height, pixel_margin)

    return mask


def composite_mask(mask: np.ndarray, options: ExportOptions) -> np.ndarray:
    """Convert ``mask`` into a ``(height, width, 4)`` RGBA buffer."""

    height, width = mask.shape
    selected = mask != 0

    if not options.channel_write:
        return mask_to_colors(mask, SELECTED_COLOR, UNSELECTED_COLOR)

    has_base = options.base_image is not None
    if has_base:
        pixels = resample_base_pixels(options.base_image, width, height)
    else:
        pixels = np.full((height, width, 4), 255, dtype=np.uint8)

    _apply_channel_writes(pixels, selected, mask, options.channels, has_base)
    return pixels


def resample_base_pixels(base: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resample of an RGBA ``base`` to ``width`` x ``height``."""

    source = _as_rgba(base)
    src_h, src_w = source.shape[:2]

    xs = np.rint(np.arange(width, dtype=np.float64) / float(width) * (src_w - 1)).astype(np.int64)
    ys = np.rint(np.arange(height, dtype=np.float64) / float(height) * (src_h - 1)).astype(np.int64)
    xs = np.clip(xs, 0, src_w - 1)
    ys = np.clip(ys, 0, src_h - 1)

    return np.ascontiguousarray(source[ys[:, None], xs[None, :]])


def mask_to_colors(
    mask: np.ndarray,
    selected_color: Sequence[int] = SELECTED_COLOR,
    unselected_color: Sequence[int] = UNSELECTED_COLOR,
) -> np.ndarray:
    selected = (mask != 0)[..., None]
    return np.where(
        selected,
        np.asarray(selected_color, dtype=np.uint8),
        np.asarray(unselected_color, dtype=np.uint8),
    ).astype(np.uint8)


def mask_to_overlay(mask: np.ndarray, color: Sequence[int], alpha: float) -> np.ndarray:
    """Selected pixels in ``color`` at ``alpha`` (0-1), the rest fully transparent."""

    overlay_alpha = int(np.clip(round(float(alpha) * 255.0), 0, 255))
    rgba = [int(channel) for channel in tuple(color)[:3]] + [overlay_alpha]
    return mask_to_colors(mask, rgba, (0, 0, 0, 0))


def label_map_to_colors(labels: np.ndarray, *, seed: int = 0) -> np.ndarray:
    """Colour each island label with a stable pseudo-random colour; -1 stays transparent."""

    island_count = int(labels.max()) + 1 if labels.size else 0
    rng = np.random.default_rng(seed)
    palette = np.zeros((island_count + 1, 4), dtype=np.uint8)
    if island_count:
        palette[1:, :3] = rng.integers(48, 255, size=(island_count, 3), dtype=np.uint8, endpoint=True)
        palette[1:, 3] = 255
    return palette[labels + 1]


def selected_vertices(
    analysis: UvAnalysis | None,
    selected_islands: Iterable[int] | None,
    vertex_count: int,
) -> np.ndarray:
    """Flag every vertex referenced by a triangle of a selected island."""

    flags = np.zeros(max(int(vertex_count), 0), dtype=bool)
    if analysis is None or selected_islands is None or flags.size == 0:
        return flags

    for island_index in resolve_selection(analysis, selected_islands):
        for tri in analysis.islands[island_index].triangles:
            for vertex in tri.vertices:
                if 0 <= vertex < flags.size:
                    flags[vertex] = True

    return flags


def build_vertex_colors(
    analysis: UvAnalysis | None,
    selected_islands: Iterable[int] | None,
    vertex_count: int,
) -> np.ndarray:
    """Selected vertices opaque black, the rest opaque white."""

    flags = selected_vertices(analysis, selected_islands, vertex_count)
    return mask_to_colors(flags.astype(np.uint8) * 255)


def build_vertex_colors_channel_wise(
    analysis: UvAnalysis | None,
    selected_islands: Iterable[int] | None,
    vertex_count: int,
    base_colors: Optional[np.ndarray],
    channels: ChannelFlags,
) -> np.ndarray:
    """Channel-write bake into per-vertex colours.

    A ``base_colors`` array whose length differs from ``vertex_count`` is
    ignored and the bake proceeds as if no base was supplied.
    """

    if vertex_count <= 0:
        return np.zeros((0, 4), dtype=np.uint8)

    has_base = base_colors is not None and len(base_colors) == vertex_count
    if base_colors is not None and not has_base:
        _LOGGER.warning(
            "Base vertex colours have %d entries for %d vertices; ignoring them",
            len(base_colors),
            vertex_count,
        )

    if has_base:
        colors = _as_rgba(np.asarray(base_colors).reshape(vertex_count, -1)[:, None, :])[:, 0, :]
        colors = colors.copy()
    else:
        colors = np.full((vertex_count, 4), 255, dtype=np.uint8)

    flags = selected_vertices(analysis, selected_islands, vertex_count)
    _apply_channel_writes(colors, flags, flags.astype(np.uint8) * 255, channels, has_base)
    return colors


def _apply_channel_writes(
    colors: np.ndarray,
    selected: np.ndarray,
    mask: np.ndarray,
    channels: ChannelFlags,
    has_base: bool,
) -> None:
    rgb = channels.rgb_indices
    if has_base:
        # Only selected elements change; everything else keeps the base colour.
        for index in rgb:
            colors[..., index][selected] = 0
        if channels.a:
            colors[..., 3][selected] = 255
        return

    value = np.where(selected, 0, 255).astype(np.uint8)
    for index in rgb:
        colors[..., index] = value
    if channels.a:
        colors[..., 3] = mask


def _as_rgba(image: np.ndarray) -> np.ndarray:
    array = np.asarray(image)
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    if array.ndim == 2:
        array = array[..., None]
    channels = array.shape[2]
    if channels == 4:
        return array
    if channels == 3:
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
        return np.concatenate([array, alpha], axis=2)
    if channels == 1:
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
        return np.concatenate([array, array, array, alpha], axis=2)
    raise ValueError(f"Unsupported channel count {channels} for base colours")
