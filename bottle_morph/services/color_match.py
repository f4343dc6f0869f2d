"""
Adaptive colour matching between the original scene and a generated region.

The generator is asked to match the scene's lighting, but its output often
carries a colour cast of its own. We measure how far the generated region's
average colour sits from the original region's and pull it back with a
strength that grows with that divergence:

    shift     = original_mean - generated_mean          (per channel)
    magnitude = sqrt(shift_r^2 + shift_g^2 + shift_b^2)
    strength  = min(min_strength + magnitude / ramp * (max_strength - min_strength), max_strength)

With the default ramp of 100 a generator that already got the lighting right
receives only a light touch (0.3), while a strongly divergent one approaches
the 0.6 cap. Strength never reaches 1.0 because a full replacement would
flatten the shading and highlights the generator painted on purpose.

The same scalar shift is added to every pixel: this is a global colour-cast
correction, not per-pixel relighting.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from bottle_morph.models.composite import ColorCorrection, ColorStats
from bottle_morph.services.config import PipelineConfig
from bottle_morph.services.errors import DimensionMismatchError, EmptyRegionError
from bottle_morph.services.saturation import saturating_add


logger = logging.getLogger(__name__)


def correction_strength(magnitude: float, config: PipelineConfig) -> float:
    """Piecewise-linear ramp from `min_strength` at zero divergence up to `max_strength`."""
    span = config.max_strength - config.min_strength
    ramp = config.min_strength + (magnitude / config.strength_ramp) * span
    return max(config.min_strength, min(ramp, config.max_strength))


def match_colors(
    original_stats: ColorStats,
    generated_stats: ColorStats,
    config: PipelineConfig,
) -> ColorCorrection:
    """Compute the correction that pulls `generated_stats` toward `original_stats`."""
    shift = original_stats.as_array() - generated_stats.as_array()
    magnitude = math.sqrt(float(np.sum(shift * shift)))
    strength = correction_strength(magnitude, config)

    correction = ColorCorrection(
        shift_r=float(shift[0]),
        shift_g=float(shift[1]),
        shift_b=float(shift[2]),
        magnitude=magnitude,
        strength=strength,
    )
    logger.info(
        "Colour match: shift=(%.1f, %.1f, %.1f) magnitude=%.1f strength=%.3f",
        correction.shift_r,
        correction.shift_g,
        correction.shift_b,
        magnitude,
        strength,
    )
    return correction


def apply_correction(region: np.ndarray, correction: ColorCorrection) -> np.ndarray:
    """
    Add the scaled shift to every pixel's RGB channels, saturating at [0, 255].

    Alpha, when present, is copied through unchanged. Returns a new array.
    """
    if region.ndim != 3 or region.shape[2] < 3:
        raise DimensionMismatchError(f"Expected an (H, W, 3+) colour region, got shape {region.shape}")
    if region.shape[0] == 0 or region.shape[1] == 0:
        raise EmptyRegionError(f"Cannot colour-correct an empty region (shape {region.shape})")

    offset = correction.applied_shift()
    if not np.any(offset):
        return region.copy()

    corrected = region.copy()
    corrected[:, :, :3] = saturating_add(region[:, :, :3], offset)
    return corrected
