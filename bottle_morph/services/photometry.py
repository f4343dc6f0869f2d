"""
Photometric analysis of an image region.

Measures a region's average colour and turns it into a lighting
classification the external generator can be told about. Means are taken
over every pixel (no sampling) so results are reproducible.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from bottle_morph.models.composite import (
    BrightnessLevel,
    ColorStats,
    ColorTemperature,
    LightingDescriptor,
)
from bottle_morph.services.config import PipelineConfig
from bottle_morph.services.errors import DimensionMismatchError, EmptyRegionError


logger = logging.getLogger(__name__)

_LEVEL_PHRASES = {
    BrightnessLevel.BRIGHT: "bright",
    BrightnessLevel.MODERATE: "moderately bright",
    BrightnessLevel.DIM: "dim",
    BrightnessLevel.DARK: "dark",
}

_TEMPERATURE_PHRASES = {
    ColorTemperature.WARM: "warm",
    ColorTemperature.COOL: "cool",
    ColorTemperature.NEUTRAL: "neutral",
}


def compute_color_stats(region: np.ndarray) -> ColorStats:
    """Arithmetic mean of the R, G and B channels over the whole region."""
    if region.ndim != 3 or region.shape[2] < 3:
        raise DimensionMismatchError(f"Expected an (H, W, 3+) colour region, got shape {region.shape}")
    if region.shape[0] == 0 or region.shape[1] == 0:
        raise EmptyRegionError(f"Cannot measure colour of an empty region (shape {region.shape})")
    means = region[:, :, :3].reshape(-1, 3).mean(axis=0, dtype=np.float64)
    return ColorStats(mean_r=float(means[0]), mean_g=float(means[1]), mean_b=float(means[2]))


def classify_brightness(brightness: float, config: PipelineConfig) -> BrightnessLevel:
    if brightness >= config.bright_threshold:
        return BrightnessLevel.BRIGHT
    if brightness >= config.moderate_threshold:
        return BrightnessLevel.MODERATE
    if brightness >= config.dim_threshold:
        return BrightnessLevel.DIM
    return BrightnessLevel.DARK


def classify_temperature(delta: float, config: PipelineConfig) -> ColorTemperature:
    if delta > config.temperature_threshold:
        return ColorTemperature.WARM
    if delta < -config.temperature_threshold:
        return ColorTemperature.COOL
    return ColorTemperature.NEUTRAL


def describe_lighting(stats: ColorStats, config: PipelineConfig) -> LightingDescriptor:
    """
    Classify the lighting of `stats` and render it as a sentence.

    The sentence depends only on the two categories and the raw measurements,
    e.g. "moderately bright, warm lighting (brightness 167/255, red-blue delta +42)".
    """
    level = classify_brightness(stats.brightness, config)
    temperature = classify_temperature(stats.color_temperature_delta, config)
    description = (
        f"{_LEVEL_PHRASES[level]}, {_TEMPERATURE_PHRASES[temperature]} lighting "
        f"(brightness {stats.brightness:.0f}/255, red-blue delta {stats.color_temperature_delta:+.0f})"
    )
    return LightingDescriptor(level=level, temperature=temperature, description=description)


def analyze_region(region: np.ndarray, config: PipelineConfig) -> Tuple[ColorStats, LightingDescriptor]:
    """Measure `region` and classify its lighting in one step."""
    stats = compute_color_stats(region)
    lighting = describe_lighting(stats, config)
    logger.info(
        "Region lighting: %s (mean RGB %.1f, %.1f, %.1f)",
        lighting.description,
        stats.mean_r,
        stats.mean_g,
        stats.mean_b,
    )
    return stats, lighting
