from __future__ import annotations

import logging
import time
from typing import Optional, Protocol

import numpy as np

from bottle_morph.models.composite import BoundingBox, CompositeResult
from bottle_morph.services.color_match import apply_correction, match_colors
from bottle_morph.services.compositor import composite
from bottle_morph.services.config import PipelineConfig
from bottle_morph.services.context import build_generation_context
from bottle_morph.services.errors import DimensionMismatchError, EmptyRegionError, GenerationFailedError
from bottle_morph.services.geometry import crop_region, expand_box
from bottle_morph.services.orientation import analyze_orientation
from bottle_morph.services.photometry import analyze_region, compute_color_stats
from bottle_morph.services.resize_planner import plan_resize, resize_for_generation, restore_generated_size


logger = logging.getLogger(__name__)


class ReplacementGenerator(Protocol):
    """
    External collaborator that paints the replacement object.

    Must return an image with the same height and width as `crop`, or None
    if generation failed.
    """

    def generate(self, crop: np.ndarray, context: str) -> Optional[np.ndarray]:
        ...


def run_replacement(
    image: np.ndarray,
    box: BoundingBox,
    generator: ReplacementGenerator,
    config: Optional[PipelineConfig] = None,
) -> CompositeResult:
    """
    Replace the object in `box` with generated content that matches the scene.

    Steps:
    - Expand the detection box for context and crop it out of `image`
    - Measure the crop's lighting and the box's orientation
    - Downscale the crop for the generator and call it with the scene context
    - Restore the generated crop to full size and pull its colour cast toward
      the original crop
    - Feather the corrected crop back into a copy of `image`

    `image` is never modified. Core errors (InvalidGeometryError,
    EmptyRegionError, DimensionMismatchError) propagate unchanged;
    GenerationFailedError is raised when the generator returns nothing.
    """
    config = config or PipelineConfig()
    if image.ndim != 3 or image.shape[2] < 3:
        raise DimensionMismatchError(f"Expected an (H, W, 3+) colour image, got shape {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise EmptyRegionError(f"Input image has no pixels (shape {image.shape})")

    started = time.time()
    height, width = image.shape[:2]

    crop_box = expand_box(box, config.padding_fraction, (width, height))
    crop, rect = crop_region(image, crop_box)
    logger.info("Crop region %dx%d at (%d, %d) from %dx%d image", rect.width, rect.height, rect.x, rect.y, width, height)

    original_stats, lighting = analyze_region(crop, config)
    orientation = analyze_orientation(box, config)
    context = build_generation_context(lighting, orientation, config)

    crop_size = (rect.width, rect.height)
    generation_size = plan_resize(crop_size, config.max_dimension)
    generator_input = resize_for_generation(crop, generation_size)

    generated = generator.generate(generator_input, context)
    if generated is None:
        raise GenerationFailedError("External generator returned no image")

    generated = restore_generated_size(generated, generation_size, crop_size)
    generated_stats = compute_color_stats(generated)
    correction = match_colors(original_stats, generated_stats, config)
    corrected = apply_correction(generated, correction)

    final = composite(image, corrected, crop_box, config.feather_fraction)

    result = CompositeResult(
        image=final,
        lighting=lighting,
        orientation=orientation,
        correction=correction,
        crop_box=crop_box,
        generation_size=generation_size,
        context=context,
    )
    logger.info("Replacement finished in %.0fms: %s", (time.time() - started) * 1000, result.diagnostics())
    return result
