from __future__ import annotations

import logging
import math
from typing import Tuple

import numpy as np

from bottle_morph.models.composite import BoundingBox, PixelRect
from bottle_morph.services.errors import EmptyRegionError, InvalidGeometryError


logger = logging.getLogger(__name__)

# Edges within this many pixels of a pixel boundary are treated as on it.
_SNAP_TOLERANCE = 1e-6


def expand_box(
    box: BoundingBox,
    padding_fraction: float,
    image_size: Tuple[int, int],
) -> BoundingBox:
    """
    Grow a detection box outward so the generator sees surrounding context.

    Each side moves out by `padding_fraction * box.width` (left/right) or
    `padding_fraction * box.height` (top/bottom). Edges that would leave the
    image are clamped on that side only, so the opposite side keeps its full
    padding and the original box is always contained in the result.

    The expanded edges are then snapped outward to whole pixels of
    `image_size` (width, height) so the crop cut from the image covers the
    expanded box entirely.
    """
    box.validate()
    if not math.isfinite(padding_fraction) or padding_fraction < 0:
        raise InvalidGeometryError(f"Padding fraction must be >= 0, got {padding_fraction}")

    pad_x = box.width * padding_fraction
    pad_y = box.height * padding_fraction

    left = max(0.0, box.x - pad_x)
    top = max(0.0, box.y - pad_y)
    right = min(1.0, box.right + pad_x)
    bottom = min(1.0, box.bottom + pad_y)

    image_width, image_height = image_size
    if image_width > 0 and image_height > 0:
        # Snapping only ever moves an edge outward.
        left = min(left, math.floor(left * image_width + _SNAP_TOLERANCE) / image_width)
        top = min(top, math.floor(top * image_height + _SNAP_TOLERANCE) / image_height)
        right = min(1.0, max(right, math.ceil(right * image_width - _SNAP_TOLERANCE) / image_width))
        bottom = min(1.0, max(bottom, math.ceil(bottom * image_height - _SNAP_TOLERANCE) / image_height))

    expanded = BoundingBox(x=left, y=top, width=right - left, height=bottom - top)
    logger.debug("Expanded %s by %.2f to %s", box, padding_fraction, expanded)
    return expanded


def crop_region(image: np.ndarray, box: BoundingBox) -> Tuple[np.ndarray, PixelRect]:
    """
    Copy the pixels of `box` out of `image`.

    Returns the crop together with the pixel rectangle it came from, so the
    compositor can later put a same-sized region back in the same place.
    """
    box.validate()
    height, width = image.shape[:2]
    rect = box.to_pixels((width, height))
    if rect.area == 0:
        raise EmptyRegionError(f"Box {box} covers no pixels of a {width}x{height} image")
    rows, cols = rect.slices()
    return image[rows, cols].copy(), rect
