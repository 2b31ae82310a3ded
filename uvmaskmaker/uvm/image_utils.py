"""Image I/O helpers for mask export and base images."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from .core import ImageIOError

__all__ = ["ImageInfo", "read_base_image", "write_color_buffer"]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageInfo:
    """Metadata about an image written by :func:`write_color_buffer`."""

    path: Path
    width: int
    height: int
    channels: int


def read_base_image(path: Path) -> np.ndarray:
    """Load ``path`` as an RGBA ``uint8`` buffer with row 0 at ``v = 0``."""

    resolved = path.expanduser()
    image = cv2.imread(str(resolved), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageIOError(f"Failed to read image '{resolved}'")

    if image.dtype != np.uint8:
        _LOGGER.warning(
            "Image '%s' has %s pixels; rescaling to 8 bits per channel", resolved, image.dtype
        )
        scale = 255.0 / float(np.iinfo(image.dtype).max) if image.dtype.kind in "ui" else 255.0
        image = np.clip(image.astype(np.float64) * scale, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 3:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    elif image.shape[2] == 4:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        raise ImageIOError(f"Image '{resolved}' has unsupported shape {image.shape}")

    return np.ascontiguousarray(np.flipud(rgba))


def write_color_buffer(path: Path, pixels: np.ndarray) -> ImageInfo:
    """Write an RGBA ``pixels`` buffer (row 0 at ``v = 0``) to ``path``."""

    array = np.asarray(pixels)
    if array.dtype != np.uint8 or array.ndim != 3 or array.shape[2] != 4:
        raise ImageIOError(
            f"Expected a (height, width, 4) uint8 buffer; received {array.shape}/{array.dtype}"
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    bgra = cv2.cvtColor(np.ascontiguousarray(np.flipud(array)), cv2.COLOR_RGBA2BGRA)
    try:
        written = cv2.imwrite(str(path), bgra)
    except cv2.error as exc:
        raise ImageIOError(f"Failed to write image '{path}': {exc}") from exc
    if not written:
        raise ImageIOError(f"Failed to write image '{path}'")

    height, width = array.shape[:2]
    _LOGGER.debug("Wrote %dx%d image %s", width, height, path)
    return ImageInfo(path=path, width=width, height=height, channels=4)
