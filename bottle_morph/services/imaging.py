"""
Conversion between transport encodings (base64, data URLs) and RGB arrays.

Pipeline stages work on `uint8` numpy arrays in RGB[A] order; this module is
the only place that knows about file formats.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from io import BytesIO

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError


logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


class ImageDecodeError(ValueError):
    """Raised when a payload cannot be decoded into an image."""


def strip_data_url(payload: str) -> str:
    """Remove a leading `data:image/...;base64,` prefix if present."""
    return _DATA_URL_PREFIX.sub("", payload.strip(), count=1)


def decode_image(payload: str) -> np.ndarray:
    """
    Decode a base64 string (optionally a data URL) into an RGB uint8 array.

    EXIF orientation is applied so the array matches what the user saw.
    """
    try:
        raw = base64.b64decode(strip_data_url(payload), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError("Image payload is not valid base64.") from exc

    return decode_image_bytes(raw)


def decode_image_bytes(raw: bytes) -> np.ndarray:
    if not raw:
        raise ImageDecodeError("Image payload is empty.")
    try:
        pil_image = Image.open(BytesIO(raw))
        pil_image = ImageOps.exif_transpose(pil_image)
        rgb = pil_image.convert("RGB")
    except Image.DecompressionBombError as exc:
        raise ImageDecodeError("Image payload exceeds the maximum pixel count.") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError("Image payload is not a recognised image format.") from exc
    return np.asarray(rgb, dtype=np.uint8).copy()


def encode_image(image: np.ndarray, format: str = "JPEG", quality: int = 90) -> bytes:
    """Encode an RGB[A] array as JPEG or PNG bytes."""
    mode = "RGBA" if image.ndim == 3 and image.shape[2] == 4 else "RGB"
    pil_image = Image.fromarray(image)
    if format.upper() == "JPEG" and mode == "RGBA":
        pil_image = pil_image.convert("RGB")

    buffer = BytesIO()
    save_kwargs = {"quality": quality} if format.upper() == "JPEG" else {}
    pil_image.save(buffer, format=format, **save_kwargs)
    return buffer.getvalue()


def to_base64(image: np.ndarray, format: str = "JPEG", quality: int = 90) -> str:
    return base64.b64encode(encode_image(image, format=format, quality=quality)).decode("utf-8")


def to_data_url(image: np.ndarray, format: str = "JPEG", quality: int = 90) -> str:
    """Encode an array as a `data:image/...;base64,` URL."""
    mime = "image/jpeg" if format.upper() == "JPEG" else f"image/{format.lower()}"
    return f"data:{mime};base64,{to_base64(image, format=format, quality=quality)}"
