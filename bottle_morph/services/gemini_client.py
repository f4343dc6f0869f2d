"""
HTTP adapter for Gemini's image-edit model.

Implements the `ReplacementGenerator` contract used by the pipeline: given the
cropped region and a scene-context sentence, return an edited crop of the same
pixel size, or None if generation failed.

All calls go through the process-wide rate limiter. Transient server errors
(5xx) are retried with exponential delay; client errors and 429s are not.
"""

import base64
import logging
import time
from typing import Any, Dict, Optional

import cv2
import numpy as np
import requests

from bottle_morph.services.config import GeneratorSettings
from bottle_morph.services.imaging import ImageDecodeError, decode_image_bytes, to_base64
from bottle_morph.services.rate_limiter import GenerationRateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

# Retries apply to 5xx responses only; rate limits are handled by the limiter.
MAX_RETRIES = 2
RETRY_DELAY = 2  # seconds
RETRY_BACKOFF = 2


class GeminiImageClient:
    """Replacement generator backed by the Gemini `generateContent` endpoint."""

    def __init__(
        self,
        settings: Optional[GeneratorSettings] = None,
        rate_limiter: Optional[GenerationRateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or GeneratorSettings.from_env()
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.session = session or requests.Session()
        self._reference_b64: Optional[str] = None

        if not self.settings.api_key:
            logger.warning("GEMINI_API_KEY not set. Bottle replacement will be unavailable.")
            self.available = False
            return

        self.available = True
        self._reference_b64 = self._load_reference_image()
        logger.info("Gemini image client initialized (model: %s)", self.settings.model)

    def is_available(self) -> bool:
        return self.available and bool(self.settings.api_key)

    def _load_reference_image(self) -> Optional[str]:
        path = self.settings.reference_image_path
        if path is None:
            return None
        try:
            return base64.b64encode(path.read_bytes()).decode("utf-8")
        except OSError as exc:
            logger.warning("Could not read reference image %s: %s", path, exc)
            return None

    def build_prompt(self, context: str) -> str:
        """Replacement instruction followed by the measured scene context."""
        reference_clause = (
            f"with {self.settings.product_name} shown in the second image"
            if self._reference_b64
            else f"with {self.settings.product_name}"
        )
        return (
            f"Replace the bottle in the first image {reference_clause}. "
            "Keep its position, angle and scale, and keep any hands, background, table and "
            "shadows exactly as they are. Fill in the background naturally wherever the old "
            "bottle showed. "
            f"{context} "
            "Match that lighting on the new bottle. "
            "Return only the edited image at the same dimensions as the first image."
        )

    def generate(self, crop: np.ndarray, context: str) -> Optional[np.ndarray]:
        """
        Ask the model to replace the bottle in `crop`.

        Returns an RGB array with the same height and width as `crop`, or None
        when the client is unavailable, rate limiting times out, or the API
        fails after retries.
        """
        if not self.is_available():
            logger.warning("Gemini client not available. Generation skipped.")
            return None

        if not self.rate_limiter.acquire(timeout=self.settings.rate_limit_timeout):
            logger.error(
                "Failed to acquire rate limit token within %.0fs", self.settings.rate_limit_timeout
            )
            return None

        for attempt in range(MAX_RETRIES + 1):
            try:
                result = self._attempt_generation(crop, context, attempt)
                if result is not None:
                    self.rate_limiter.report_success()
                return result

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else 0

                if status_code == 429:
                    self.rate_limiter.report_429()
                    logger.error("Gemini API rate limited (429); backoff applied")
                    return None

                if 400 <= status_code < 500:
                    logger.error("Gemini client error (%d): %s", status_code, _error_detail(e.response))
                    return None

                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAY * (RETRY_BACKOFF ** attempt)
                    logger.warning(
                        "Gemini server error (%s); retrying in %ss (attempt %d/%d)",
                        status_code,
                        delay,
                        attempt + 1,
                        MAX_RETRIES,
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        "Gemini failed after %d attempts: %s", MAX_RETRIES + 1, _error_detail(e.response)
                    )
                    return None

            except requests.exceptions.RequestException as e:
                logger.error("Gemini request failed: %s", e)
                return None

        return None

    def _attempt_generation(self, crop: np.ndarray, context: str, attempt: int) -> Optional[np.ndarray]:
        """Single request/response round trip (used by the retry loop)."""
        height, width = crop.shape[:2]
        parts: list[Dict[str, Any]] = [
            {"inlineData": {"mimeType": "image/jpeg", "data": to_base64(crop, format="JPEG", quality=95)}},
        ]
        if self._reference_b64:
            parts.append({"inlineData": {"mimeType": "image/png", "data": self._reference_b64}})
        parts.append({"text": self.build_prompt(context)})

        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": self.settings.temperature,
                "topP": self.settings.top_p,
                "topK": self.settings.top_k,
            },
        }

        suffix = f" (attempt {attempt + 1})" if attempt > 0 else ""
        logger.info("Calling Gemini %s%s with %dx%d crop", self.settings.model, suffix, width, height)
        started = time.time()

        response = self.session.post(
            f"{self.settings.base_url}/models/{self.settings.model}:generateContent",
            headers={"Content-Type": "application/json", "x-goog-api-key": self.settings.api_key},
            json=payload,
            timeout=self.settings.request_timeout,
        )
        logger.info("Gemini responded %d in %.0fms", response.status_code, (time.time() - started) * 1000)
        response.raise_for_status()

        generated = self._extract_image(response.json())
        if generated is None:
            return None

        out_height, out_width = generated.shape[:2]
        if (out_width, out_height) != (width, height):
            # The model does not always honour the requested size.
            logger.warning(
                "Gemini returned %dx%d for a %dx%d crop; resizing to match",
                out_width,
                out_height,
                width,
                height,
            )
            generated = cv2.resize(generated, (width, height), interpolation=cv2.INTER_LANCZOS4)
        return generated

    def _extract_image(self, data: Dict[str, Any]) -> Optional[np.ndarray]:
        """Decode the first inline image part of a `generateContent` response."""
        if data.get("error"):
            logger.error("Gemini returned error: %s", data["error"].get("message", data["error"]))
            return None

        candidates = data.get("candidates") or []
        if not candidates:
            logger.error("Gemini response contained no candidates")
            return None

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason and finish_reason != "STOP":
            logger.error(
                "Gemini finished with %s: %s", finish_reason, candidate.get("finishMessage", "no message")
            )
            return None

        text_response = None
        for part in (candidate.get("content") or {}).get("parts", []):
            inline = part.get("inlineData") or {}
            if inline.get("data"):
                try:
                    return decode_image_bytes(base64.b64decode(inline["data"]))
                except ImageDecodeError as exc:
                    logger.error("Gemini image part could not be decoded: %s", exc)
                    return None
            if part.get("text"):
                text_response = part["text"]

        logger.error("No image data in Gemini response. Text response: %s", text_response)
        return None


def _error_detail(response: Optional[requests.Response]) -> str:
    if response is None:
        return "no response"
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message", body["error"]))
    return str(body)[:200]


_gemini_client: Optional[GeminiImageClient] = None


def get_gemini_client() -> GeminiImageClient:
    """Get or create the process-wide Gemini client."""
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiImageClient()
    return _gemini_client
