"""
Immutable configuration for the compositing pipeline and its generator.

Both values are plain frozen dataclasses passed explicitly into the pipeline
entry point, so tests can vary any tunable without touching shared state.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path


logger = logging.getLogger(__name__)

ENV_PREFIX = "BOTTLE_MORPH_"


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Every tunable constant of the region/photometry/compositing pipeline."""

    # Fraction of the box width/height added on each side before cropping.
    padding_fraction: float = 0.30
    # Longest side of the crop sent to the external generator.
    max_dimension: int = 1536

    # Brightness classification (lower bounds, 0-255 domain).
    bright_threshold: float = 170.0
    moderate_threshold: float = 120.0
    dim_threshold: float = 70.0
    # |meanR - meanB| beyond which lighting is classified warm/cool.
    temperature_threshold: float = 15.0

    # Expected width:height of the target object class and allowed deviation.
    reference_aspect: float = 0.5
    tilt_tolerance: float = 0.15

    # Adaptive colour correction: strength climbs linearly from min to max
    # as the mean-colour divergence grows from 0 to `strength_ramp`.
    min_strength: float = 0.3
    max_strength: float = 0.6
    strength_ramp: float = 100.0

    # Outer fraction of the box half-extent used as the feather band.
    feather_fraction: float = 0.12

    def __post_init__(self) -> None:
        # Comparisons are written so that NaN fails them too.
        if not self.max_dimension >= 1:
            raise ValueError(f"max_dimension must be >= 1, got {self.max_dimension}")
        if not self.padding_fraction >= 0:
            raise ValueError(f"padding_fraction must be >= 0, got {self.padding_fraction}")
        if not self.reference_aspect > 0:
            raise ValueError(f"reference_aspect must be > 0, got {self.reference_aspect}")
        if not self.tilt_tolerance >= 0:
            raise ValueError(f"tilt_tolerance must be >= 0, got {self.tilt_tolerance}")
        if not self.strength_ramp > 0:
            raise ValueError(f"strength_ramp must be > 0, got {self.strength_ramp}")
        if not 0 <= self.min_strength <= self.max_strength <= 1:
            raise ValueError(
                f"Need 0 <= min_strength <= max_strength <= 1, got {self.min_strength} and {self.max_strength}"
            )
        if not 0 <= self.feather_fraction <= 1:
            raise ValueError(f"feather_fraction must be within [0, 1], got {self.feather_fraction}")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """
        Build a config from defaults overridden by `BOTTLE_MORPH_<FIELD>` env vars.

        Unparseable or out-of-range values are logged and ignored rather than
        failing startup.
        """
        overrides: dict[str, float | int] = {}
        for spec in fields(cls):
            name = f"{ENV_PREFIX}{spec.name.upper()}"
            raw = os.environ.get(name)
            if raw is None:
                continue
            caster = int if spec.type in ("int", int) else float
            try:
                value = caster(raw)
                cls(**{**overrides, spec.name: value})
            except ValueError as exc:
                logger.warning("Ignoring invalid value %r for %s: %s", raw, name, exc)
                continue
            overrides[spec.name] = value
        return cls(**overrides)


@dataclass(frozen=True, slots=True)
class GeneratorSettings:
    """Connection settings for the Gemini image-edit adapter."""

    api_key: str | None = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.5-flash-image"
    # Optional product reference image sent alongside the crop.
    reference_image_path: Path | None = None
    product_name: str = "the reference bottle"
    request_timeout: float = 60.0
    rate_limit_timeout: float = 30.0
    temperature: float = 0.4
    top_p: float = 0.8
    top_k: int = 40

    @classmethod
    def from_env(cls) -> "GeneratorSettings":
        reference = os.environ.get("BOTTLE_MORPH_REFERENCE_IMAGE")
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY"),
            model=os.environ.get("BOTTLE_MORPH_GEMINI_MODEL", "gemini-2.5-flash-image"),
            reference_image_path=Path(reference) if reference else None,
            product_name=os.environ.get("BOTTLE_MORPH_PRODUCT_NAME", "the reference bottle"),
        )
