import logging

from fastapi import APIRouter, Depends, HTTPException, status

from bottle_morph.api.v1.schemas import (
    BoundingBoxPayload,
    CorrectionPayload,
    LightingPayload,
    MorphRequest,
    MorphResponse,
    OrientationPayload,
)
from bottle_morph.services.config import PipelineConfig
from bottle_morph.services.errors import (
    DimensionMismatchError,
    EmptyRegionError,
    GenerationFailedError,
    InvalidGeometryError,
)
from bottle_morph.services.gemini_client import get_gemini_client
from bottle_morph.services.imaging import ImageDecodeError, decode_image, to_data_url
from bottle_morph.services.pipeline import ReplacementGenerator, run_replacement

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

_default_config = PipelineConfig.from_env()


def get_pipeline_config() -> PipelineConfig:
    """Pipeline configuration dependency; overridden in tests."""
    return _default_config


def get_generator() -> ReplacementGenerator:
    """External generator dependency; overridden in tests."""
    return get_gemini_client()


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


@router.post(
    "/morph",
    response_model=MorphResponse,
    tags=["morph"],
    summary="Replace the detected bottle and composite it back into the photo",
)
def morph_bottle(
    request: MorphRequest,
    generator: ReplacementGenerator = Depends(get_generator),
    config: PipelineConfig = Depends(get_pipeline_config),
) -> MorphResponse:
    """
    Replace the bottle inside `boundingBox` with generated content.

    The region around the box is cropped, its lighting and orientation are
    described to the external generator, and the generated crop is colour
    matched and feathered back into the original photo.

    This handler is synchronous on purpose: the pipeline is CPU-bound and the
    generator call blocks, so FastAPI runs it in its threadpool.
    """
    try:
        image = decode_image(request.image)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        result = run_replacement(image, request.bounding_box.to_box(), generator, config)
    except (InvalidGeometryError, EmptyRegionError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except GenerationFailedError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Bottle replacement could not be generated.",
        ) from exc
    except DimensionMismatchError as exc:
        logger.error("Pipeline wiring error: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Generated region did not match the crop it replaces.",
        ) from exc

    correction = result.correction
    return MorphResponse(
        transformed_image=to_data_url(result.image),
        strength=result.strength,
        lighting=LightingPayload(
            level=result.lighting.level.value,
            temperature=result.lighting.temperature.value,
            description=result.lighting.description,
        ),
        orientation=OrientationPayload(
            aspect_ratio=result.orientation.aspect_ratio,
            tilt_detected=result.orientation.tilt_detected,
            vertical_zone=result.orientation.vertical_zone.value,
        ),
        correction=CorrectionPayload(
            shift_r=correction.shift_r,
            shift_g=correction.shift_g,
            shift_b=correction.shift_b,
            magnitude=correction.magnitude,
            strength=correction.strength,
        ),
        crop_box=BoundingBoxPayload.from_box(result.crop_box),
        generation_size=list(result.generation_size),
    )
