from __future__ import annotations

import logging

import numpy as np

from bottle_morph.models.composite import BoundingBox, PixelRect
from bottle_morph.services.errors import DimensionMismatchError
from bottle_morph.services.saturation import saturating_blend


logger = logging.getLogger(__name__)


def feather_weights(height: int, width: int, feather_fraction: float) -> np.ndarray:
    """
    Blend weight for generated content over a `height` x `width` box.

    For each pixel centre we take the normalized distance from the box centre
    along the axis that is closest to an edge, `r = max(|dx| / half_w, |dy| / half_h)`,
    which is 0 at the centre and 1 on the box boundary. Weight is:

    - 1.0 for `r <= 1 - feather_fraction` (interior, fully generated),
    - a cosine falloff `0.5 * (1 + cos(pi * t))` across the band, where
      `t = (r - (1 - feather_fraction)) / feather_fraction`,
    - 0.0 for `r >= 1`.

    The cosine has zero slope at both ends of the band, so there is no visible
    step where the band meets the interior or the untouched background.
    """
    if height <= 0 or width <= 0:
        return np.zeros((max(height, 0), max(width, 0)), dtype=np.float64)

    half_w = width / 2.0
    half_h = height / 2.0
    xs = np.abs((np.arange(width, dtype=np.float64) + 0.5) - half_w) / half_w
    ys = np.abs((np.arange(height, dtype=np.float64) + 0.5) - half_h) / half_h
    r = np.maximum(ys[:, np.newaxis], xs[np.newaxis, :])

    if feather_fraction <= 0:
        return np.where(r < 1.0, 1.0, 0.0)

    feather = min(feather_fraction, 1.0)
    inner = 1.0 - feather
    t = np.clip((r - inner) / feather, 0.0, 1.0)
    return 0.5 * (1.0 + np.cos(np.pi * t))


def composite(
    base: np.ndarray,
    corrected_region: np.ndarray,
    box: BoundingBox,
    feather_fraction: float = 0.12,
) -> np.ndarray:
    """
    Merge `corrected_region` into `base` over `box` with a feathered edge.

    Pixels outside the box's pixel rectangle are copied unchanged from `base`;
    inside, generated and original content are mixed by `feather_weights`.
    Returns a new image; neither input is modified.
    """
    height, width = base.shape[:2]
    rect: PixelRect = box.validate().to_pixels((width, height))
    expected = (rect.height, rect.width, base.shape[2] if base.ndim == 3 else 1)
    actual = (
        corrected_region.shape[0],
        corrected_region.shape[1],
        corrected_region.shape[2] if corrected_region.ndim == 3 else 1,
    )
    if actual != expected:
        raise DimensionMismatchError(
            f"Corrected region has shape {actual}, box {box} needs {expected} in a {width}x{height} image"
        )

    result = base.copy()
    if rect.area == 0:
        return result

    # The band also fades out along image borders the box was clamped to, so
    # original content can show through there when the object touches the frame.
    weights = feather_weights(rect.height, rect.width, feather_fraction)
    rows, cols = rect.slices()
    result[rows, cols] = saturating_blend(base[rows, cols], corrected_region, weights)

    logger.info(
        "Composited %dx%d region at (%d, %d) with feather %.2f",
        rect.width,
        rect.height,
        rect.x,
        rect.y,
        feather_fraction,
    )
    return result
