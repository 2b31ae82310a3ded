"""Binary mask morphology used for seam padding."""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

__all__ = ["invert_mask", "dilate_black", "dilate_white"]

_LOGGER = logging.getLogger(__name__)

_KERNEL_8 = np.ones((3, 3), dtype=np.uint8)


def invert_mask(mask: Optional[np.ndarray]) -> Optional[np.ndarray]:
    """Swap 0 and 255 in ``mask`` in place."""

    if mask is None:
        return None
    mask[...] = np.where(mask == 0, 255, 0).astype(mask.dtype)
    return mask


def dilate_black(
    mask: Optional[np.ndarray], width: int, height: int, iterations: int
) -> Optional[np.ndarray]:
    """Grow the 255 region of ``mask`` by ``iterations`` pixels (8-connected).

    Neighbours outside the image are ignored rather than wrapped or mirrored.
    """

    image = _mask_image(mask, width, height, iterations)
    if image is None:
        return mask

    # Each pass produces a new buffer; the constant border is neutral for dilation.
    mask[...] = cv2.dilate(image, _KERNEL_8, iterations=int(iterations)).reshape(mask.shape)
    return mask


def dilate_white(
    mask: Optional[np.ndarray], width: int, height: int, iterations: int
) -> Optional[np.ndarray]:
    """Grow the 0 region of ``mask`` by ``iterations`` pixels (8-connected)."""

    image = _mask_image(mask, width, height, iterations)
    if image is None:
        return mask

    mask[...] = cv2.erode(image, _KERNEL_8, iterations=int(iterations)).reshape(mask.shape)
    return mask


def _mask_image(
    mask: Optional[np.ndarray], width: int, height: int, iterations: int
) -> Optional[np.ndarray]:
    if mask is None or width <= 0 or height <= 0 or iterations <= 0:
        return None
    if mask.dtype != np.uint8 or mask.size != width * height:
        _LOGGER.debug(
            "Skipping dilation: mask %s/%s does not match %dx%d",
            mask.shape,
            mask.dtype,
            width,
            height,
        )
        return None
    # Strided views come back as a copy; callers write the result back into ``mask``.
    return np.ascontiguousarray(mask).reshape(height, width)
