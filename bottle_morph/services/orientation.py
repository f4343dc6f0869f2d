from __future__ import annotations

import logging

from bottle_morph.models.composite import BoundingBox, OrientationDescriptor, VerticalZone
from bottle_morph.services.config import PipelineConfig


logger = logging.getLogger(__name__)


def analyze_orientation(box: BoundingBox, config: PipelineConfig) -> OrientationDescriptor:
    """
    Infer tilt and frame placement from the detection box alone.

    A box whose width:height ratio deviates from the expected subject shape by
    more than `config.tilt_tolerance` (relative) is reported as tilted; an
    upright bottle is roughly twice as tall as it is wide.
    """
    box.validate()
    aspect_ratio = box.width / box.height
    deviation = abs(aspect_ratio - config.reference_aspect) / config.reference_aspect
    tilt_detected = deviation > config.tilt_tolerance

    center = box.center_y
    if center < 1.0 / 3.0:
        zone = VerticalZone.UPPER
    elif center < 2.0 / 3.0:
        zone = VerticalZone.MIDDLE
    else:
        zone = VerticalZone.LOWER

    logger.debug(
        "Orientation: aspect %.3f (deviation %.1f%%), tilt=%s, zone=%s",
        aspect_ratio,
        deviation * 100,
        tilt_detected,
        zone.value,
    )
    return OrientationDescriptor(aspect_ratio=aspect_ratio, tilt_detected=tilt_detected, vertical_zone=zone)


def describe_orientation(orientation: OrientationDescriptor, config: PipelineConfig) -> str:
    """Render an orientation as a sentence for the generator's context."""
    if orientation.tilt_detected:
        pose = (
            f"The bottle appears tilted or viewed at an angle "
            f"(width:height {orientation.aspect_ratio:.2f} versus an upright {config.reference_aspect:.2f})"
        )
    else:
        pose = f"The bottle stands upright (width:height {orientation.aspect_ratio:.2f})"
    return f"{pose} and sits in the {orientation.vertical_zone.value} part of the frame."
