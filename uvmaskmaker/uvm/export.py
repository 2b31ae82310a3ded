"""Mask export and vertex colour bake orchestration."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional

import numpy as np

from .analysis import UvAnalysis
from .compositor import (
    ChannelFlags,
    ExportOptions,
    build_processed_mask,
    build_vertex_colors,
    build_vertex_colors_channel_wise,
    composite_mask,
)
from .image_utils import write_color_buffer
from .mesh_utils import MeshData, write_colored_mesh

__all__ = [
    "MIN_TEXTURE_SIZE",
    "MAX_TEXTURE_SIZE",
    "clamp_texture_size",
    "render_mask",
    "export_mask",
    "inverted_path",
    "bake_vertex_colors",
    "default_bake_path",
]

_LOGGER = logging.getLogger(__name__)

MIN_TEXTURE_SIZE = 8
MAX_TEXTURE_SIZE = 8192

_BAKE_FOLDER = "VertexColorMasks"
_BAKE_SUFFIX = "_WithVertexColors"
_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def clamp_texture_size(size: int) -> int:
    return min(max(int(size), MIN_TEXTURE_SIZE), MAX_TEXTURE_SIZE)


def render_mask(
    analysis: UvAnalysis,
    selected_islands: Iterable[int],
    options: ExportOptions,
) -> np.ndarray:
    """Build the final RGBA buffer for ``options`` without touching the disk."""

    size = clamp_texture_size(options.texture_size)
    mask = build_processed_mask(
        analysis,
        selected_islands,
        size,
        size,
        options.pixel_margin,
        options.invert,
    )
    return composite_mask(mask, options)


def export_mask(
    analysis: UvAnalysis,
    selected_islands: Iterable[int],
    options: ExportOptions,
    path: Path,
) -> List[Path]:
    """Write the mask PNG and, when requested, its inverted twin."""

    selection = list(selected_islands)
    written: List[Path] = []

    pixels = render_mask(analysis, selection, options)
    write_color_buffer(path, pixels)
    written.append(path)
    _LOGGER.info("Wrote mask %s", path)

    if options.save_inverted_too:
        inverted_options = replace(options, invert=not options.invert)
        inverted = inverted_path(path)
        write_color_buffer(inverted, render_mask(analysis, selection, inverted_options))
        written.append(inverted)
        _LOGGER.info("Wrote inverted mask %s", inverted)

    return written


def inverted_path(path: Path) -> Path:
    return path.with_name(f"{path.stem}_inv{path.suffix or '.png'}")


def bake_vertex_colors(
    mesh: MeshData,
    analysis: UvAnalysis,
    selected_islands: Iterable[int],
    *,
    mesh_path: Optional[Path] = None,
    output_path: Optional[Path] = None,
    channel_write: bool = True,
    channels: Optional[ChannelFlags] = None,
    base_colors: Optional[np.ndarray] = None,
    overwrite: bool = False,
) -> Path:
    """Bake the selection into vertex colours and write a coloured copy of ``mesh``.

    In channel-write mode the base colours default to the mesh's own vertex
    colours when ``base_colors`` is not supplied.
    """

    selection = list(selected_islands)
    vertex_count = mesh.vertex_count

    if channel_write:
        base = base_colors if base_colors is not None else mesh.colors
        colors = build_vertex_colors_channel_wise(
            analysis, selection, vertex_count, base, channels or ChannelFlags()
        )
    else:
        colors = build_vertex_colors(analysis, selection, vertex_count)

    target = output_path
    if target is None:
        target = default_bake_path(mesh, mesh_path)
    if not overwrite:
        target = _unique_path(target)

    write_colored_mesh(mesh, colors, target)
    _LOGGER.info("Saved mesh with vertex colours: %s", target)
    return target


def default_bake_path(mesh: MeshData, mesh_path: Optional[Path] = None) -> Path:
    """``<mesh dir>/VertexColorMasks/<name>_WithVertexColors.ply``."""

    directory = mesh_path.expanduser().resolve().parent if mesh_path else Path.cwd()
    if directory.name.lower() != _BAKE_FOLDER.lower():
        directory = directory / _BAKE_FOLDER
    return directory / f"{_sanitize(mesh.name + _BAKE_SUFFIX)}.ply"


def _sanitize(name: str) -> str:
    if not name.strip():
        return "NewMesh"
    return _INVALID_NAME_CHARS.sub("_", name)


def _unique_path(path: Path) -> Path:
    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem} {counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1
