from __future__ import annotations

import logging
import math
from typing import Tuple

import cv2
import numpy as np

from bottle_morph.services.errors import DimensionMismatchError, EmptyRegionError


logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def plan_resize(size: Tuple[int, int], max_dimension: int) -> Tuple[int, int]:
    """
    Target (width, height) for the crop sent to the external generator.

    Crops whose longest side already fits within `max_dimension` are left
    alone; larger crops are scaled down by a single factor so the aspect
    ratio is preserved. Both sides are always at least one pixel.
    """
    if max_dimension < 1:
        raise ValueError(f"max_dimension must be >= 1, got {max_dimension}")
    width, height = size
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height

    scale = max_dimension / longest
    if width >= height:
        planned = (max_dimension, max(1, _round_half_up(height * scale)))
    else:
        planned = (max(1, _round_half_up(width * scale)), max_dimension)
    logger.info("Planned resize %dx%d -> %dx%d (scale %.4f)", width, height, planned[0], planned[1], scale)
    return planned


def resize_for_generation(region: np.ndarray, target: Tuple[int, int]) -> np.ndarray:
    """Resample `region` to `target` (width, height); returns a new array."""
    if region.size == 0:
        raise EmptyRegionError("Cannot resize an empty region")
    height, width = region.shape[:2]
    if (width, height) == tuple(target):
        return region.copy()
    return cv2.resize(region, tuple(target), interpolation=cv2.INTER_AREA)


def restore_generated_size(
    generated: np.ndarray,
    generation_size: Tuple[int, int],
    crop_size: Tuple[int, int],
) -> np.ndarray:
    """
    Map the generator's output back to the original crop's pixel size.

    The generator must return exactly the size it was given; anything else is
    a wiring bug and is reported as a DimensionMismatchError.
    """
    height, width = generated.shape[:2]
    if (width, height) != tuple(generation_size):
        raise DimensionMismatchError(
            f"Generator returned {width}x{height}, expected {generation_size[0]}x{generation_size[1]}"
        )
    if tuple(generation_size) == tuple(crop_size):
        return generated.copy()
    return cv2.resize(generated, tuple(crop_size), interpolation=cv2.INTER_LANCZOS4)
