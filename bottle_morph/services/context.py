from __future__ import annotations

from bottle_morph.models.composite import LightingDescriptor, OrientationDescriptor
from bottle_morph.services.config import PipelineConfig
from bottle_morph.services.orientation import describe_orientation


def build_generation_context(
    lighting: LightingDescriptor,
    orientation: OrientationDescriptor,
    config: PipelineConfig,
) -> str:
    """
    Scene context handed to the external generator.

    Built only from the typed descriptors so every call site produces the
    same text for the same measurements.
    """
    return f"Scene lighting is {lighting.description}. {describe_orientation(orientation, config)}"
