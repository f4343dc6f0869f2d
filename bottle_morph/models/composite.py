from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple

import numpy as np

from bottle_morph.services.errors import InvalidGeometryError


# Tolerance for float round-off when checking normalized-coordinate invariants.
GEOMETRY_EPSILON = 1e-9


class BrightnessLevel(str, Enum):
    """Categorical brightness of a region's average colour."""

    BRIGHT = "bright"
    MODERATE = "moderate"
    DIM = "dim"
    DARK = "dark"


class ColorTemperature(str, Enum):
    """Warm/cool cast derived from the red-blue balance."""

    WARM = "warm"
    COOL = "cool"
    NEUTRAL = "neutral"


class VerticalZone(str, Enum):
    """Which third of the frame the region's vertical centre falls in."""

    UPPER = "upper"
    MIDDLE = "middle"
    LOWER = "lower"


@dataclass(frozen=True, slots=True)
class PixelRect:
    """Integer pixel rectangle, origin at the top-left corner."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def slices(self) -> Tuple[slice, slice]:
        """Row/column slices selecting this rectangle from an (H, W, C) array."""
        return slice(self.y, self.y + self.height), slice(self.x, self.x + self.width)


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """
    Normalized rectangle relative to an image's dimensions.

    All values live in [0, 1] with `x + width <= 1` and `y + height <= 1`.
    Boxes come from an external detector and are treated as read-only.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2.0

    def validate(self) -> "BoundingBox":
        """Raise InvalidGeometryError unless the box satisfies its invariants."""
        values = (self.x, self.y, self.width, self.height)
        if not all(math.isfinite(v) for v in values):
            raise InvalidGeometryError(f"Bounding box has non-finite values: {self}")
        if self.width <= 0 or self.height <= 0:
            raise InvalidGeometryError(f"Bounding box must have positive width and height: {self}")
        if self.x < 0 or self.y < 0:
            raise InvalidGeometryError(f"Bounding box origin must be non-negative: {self}")
        if self.right > 1 + GEOMETRY_EPSILON or self.bottom > 1 + GEOMETRY_EPSILON:
            raise InvalidGeometryError(f"Bounding box extends beyond the image: {self}")
        return self

    def contains(self, other: "BoundingBox") -> bool:
        return (
            self.x <= other.x + GEOMETRY_EPSILON
            and self.y <= other.y + GEOMETRY_EPSILON
            and self.right >= other.right - GEOMETRY_EPSILON
            and self.bottom >= other.bottom - GEOMETRY_EPSILON
        )

    def to_pixels(self, image_size: Tuple[int, int]) -> PixelRect:
        """Convert to a pixel rectangle for an image of `(width, height)`."""
        image_width, image_height = image_size
        left = min(max(int(round(self.x * image_width)), 0), image_width)
        top = min(max(int(round(self.y * image_height)), 0), image_height)
        right = min(max(int(round(self.right * image_width)), left), image_width)
        bottom = min(max(int(round(self.bottom * image_height)), top), image_height)
        return PixelRect(x=left, y=top, width=right - left, height=bottom - top)


@dataclass(frozen=True, slots=True)
class ColorStats:
    """Per-channel mean colour of a region in the 0-255 domain."""

    mean_r: float
    mean_g: float
    mean_b: float

    @property
    def brightness(self) -> float:
        return (self.mean_r + self.mean_g + self.mean_b) / 3.0

    @property
    def color_temperature_delta(self) -> float:
        # Positive means a red (warm) cast, negative a blue (cool) cast.
        return self.mean_r - self.mean_b

    def as_array(self) -> np.ndarray:
        return np.array([self.mean_r, self.mean_g, self.mean_b], dtype=np.float64)


@dataclass(frozen=True, slots=True)
class LightingDescriptor:
    """Categorical lighting classification plus its human-readable sentence."""

    level: BrightnessLevel
    temperature: ColorTemperature
    description: str


@dataclass(frozen=True, slots=True)
class OrientationDescriptor:
    """Shape and placement of the detected object within the frame."""

    aspect_ratio: float
    tilt_detected: bool
    vertical_zone: VerticalZone


@dataclass(frozen=True, slots=True)
class ColorCorrection:
    """
    Adaptive global colour-cast correction.

    The shift pulls the generated region toward the original scene's colour;
    `strength` (in [min_strength, max_strength]) scales how much of it is applied.
    """

    shift_r: float
    shift_g: float
    shift_b: float
    magnitude: float
    strength: float

    def applied_shift(self) -> np.ndarray:
        """Per-channel offset actually added to each pixel."""
        return np.array([self.shift_r, self.shift_g, self.shift_b], dtype=np.float64) * self.strength


@dataclass(slots=True)
class CompositeResult:
    """
    Final composited image plus the metadata the host logs or returns.

    The caller owns the image after the pipeline returns.
    """

    image: np.ndarray
    lighting: LightingDescriptor
    orientation: OrientationDescriptor
    correction: ColorCorrection
    # Expanded box actually cropped and replaced.
    crop_box: BoundingBox
    # (width, height) of the crop sent to the generator.
    generation_size: Tuple[int, int]
    context: str = ""

    @property
    def strength(self) -> float:
        return self.correction.strength

    def diagnostics(self) -> Dict[str, Any]:
        """Flat, JSON-friendly summary suitable for structured logging."""
        return {
            "strength": round(self.correction.strength, 4),
            "magnitude": round(self.correction.magnitude, 4),
            "lighting": self.lighting.description,
            "brightness_level": self.lighting.level.value,
            "temperature": self.lighting.temperature.value,
            "aspect_ratio": round(self.orientation.aspect_ratio, 4),
            "tilt_detected": self.orientation.tilt_detected,
            "vertical_zone": self.orientation.vertical_zone.value,
            "generation_size": list(self.generation_size),
        }
