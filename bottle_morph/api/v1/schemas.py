from typing import List

from pydantic import BaseModel, ConfigDict, Field

from bottle_morph.models.composite import BoundingBox


class BoundingBoxPayload(BaseModel):
    """Normalized detection box, each value relative to the image size."""

    x: float = Field(..., ge=0.0, le=1.0, description="Left edge, 0-1.")
    y: float = Field(..., ge=0.0, le=1.0, description="Top edge, 0-1.")
    width: float = Field(..., gt=0.0, le=1.0, description="Box width, 0-1.")
    height: float = Field(..., gt=0.0, le=1.0, description="Box height, 0-1.")

    def to_box(self) -> BoundingBox:
        return BoundingBox(x=self.x, y=self.y, width=self.width, height=self.height)

    @classmethod
    def from_box(cls, box: BoundingBox) -> "BoundingBoxPayload":
        return cls(x=box.x, y=box.y, width=box.width, height=box.height)


class MorphRequest(BaseModel):
    """Photo plus the detector's bounding box for the bottle to replace."""

    image: str = Field(
        ...,
        min_length=1,
        description="Base64-encoded photo, optionally as a data URL.",
    )
    bounding_box: BoundingBoxPayload = Field(
        ...,
        alias="boundingBox",
        description="Normalized box around the detected bottle.",
    )

    model_config = ConfigDict(populate_by_name=True)


class CorrectionPayload(BaseModel):
    """Colour correction that was applied to the generated region."""

    shift_r: float
    shift_g: float
    shift_b: float
    magnitude: float
    strength: float = Field(..., ge=0.0, le=1.0)


class OrientationPayload(BaseModel):
    aspect_ratio: float
    tilt_detected: bool
    vertical_zone: str


class LightingPayload(BaseModel):
    level: str
    temperature: str
    description: str


class MorphResponse(BaseModel):
    """Composited photo and the diagnostics gathered while producing it."""

    success: bool = True
    transformed_image: str = Field(..., description="JPEG data URL of the composited photo.")
    strength: float = Field(..., description="Colour correction strength actually applied.")
    lighting: LightingPayload
    orientation: OrientationPayload
    correction: CorrectionPayload
    crop_box: BoundingBoxPayload = Field(..., description="Expanded box that was replaced.")
    generation_size: List[int] = Field(
        ...,
        description="[width, height] of the crop sent to the generator.",
    )
