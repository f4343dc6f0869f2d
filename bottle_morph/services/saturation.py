"""
Saturating arithmetic for 8-bit channel data.

Every stage that produces pixels routes its float results through `saturate`
so no overflow or underflow can reach an output image.
"""

from __future__ import annotations

import numpy as np

CHANNEL_MIN = 0
CHANNEL_MAX = 255


def saturate(values: np.ndarray) -> np.ndarray:
    """Round float pixel values to the nearest integer and clamp to [0, 255] as uint8."""
    return np.clip(np.rint(values), CHANNEL_MIN, CHANNEL_MAX).astype(np.uint8)


def saturating_add(pixels: np.ndarray, offset: np.ndarray) -> np.ndarray:
    """Add a per-channel float offset to uint8 pixels without wrap-around."""
    return saturate(pixels.astype(np.float64) + offset)


def saturating_blend(base: np.ndarray, overlay: np.ndarray, weight: np.ndarray) -> np.ndarray:
    """
    Linear blend `base * (1 - weight) + overlay * weight`.

    `weight` is broadcast against the channel axis; a weight of exactly 0 or 1
    reproduces `base` or `overlay` bit for bit.
    """
    if weight.ndim == base.ndim - 1:
        weight = weight[..., np.newaxis]
    blended = base.astype(np.float64) * (1.0 - weight) + overlay.astype(np.float64) * weight
    return saturate(blended)
