"""
Tests for the Gemini image-edit adapter.

No network calls are made: the HTTP session and the rate limiter are mocks.
"""

import base64
import logging
from unittest.mock import Mock, patch

import numpy as np
import requests

from bottle_morph.services.config import GeneratorSettings
from bottle_morph.services.gemini_client import GeminiImageClient
from bottle_morph.services.imaging import encode_image

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def make_crop(height=32, width=24):
    crop = np.zeros((height, width, 3), dtype=np.uint8)
    crop[:, :] = (120, 110, 90)
    return crop


def image_response(image, finish_reason="STOP"):
    data = base64.b64encode(encode_image(image, format="PNG")).decode("utf-8")
    response = Mock(status_code=200)
    response.json.return_value = {
        "candidates": [
            {
                "finishReason": finish_reason,
                "content": {"parts": [{"text": "Here is the edit."}, {"inlineData": {"mimeType": "image/png", "data": data}}]},
            }
        ]
    }
    return response


def error_response(status_code):
    response = Mock(status_code=status_code, text="error")
    response.json.return_value = {"error": {"message": f"status {status_code}"}}
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    return response


def make_client(*responses, api_key="test-key"):
    limiter = Mock()
    limiter.acquire.return_value = True
    session = Mock()
    session.post.side_effect = list(responses)
    client = GeminiImageClient(
        settings=GeneratorSettings(api_key=api_key),
        rate_limiter=limiter,
        session=session,
    )
    return client, limiter, session


def test_client_without_key_is_unavailable():
    client, limiter, session = make_client(api_key=None)

    assert not client.is_available()
    assert client.generate(make_crop(), "Scene lighting is bright.") is None
    limiter.acquire.assert_not_called()
    session.post.assert_not_called()


def test_generate_returns_decoded_image_and_sends_context():
    generated = np.full((32, 24, 3), 200, dtype=np.uint8)
    client, limiter, session = make_client(image_response(generated))

    result = client.generate(make_crop(), "Scene lighting is dim, warm lighting.")

    assert result.shape == (32, 24, 3)
    assert np.array_equal(result, generated)
    limiter.report_success.assert_called_once()

    url = session.post.call_args.args[0]
    assert url.endswith("/models/gemini-2.5-flash-image:generateContent")
    payload = session.post.call_args.kwargs["json"]
    parts = payload["contents"][0]["parts"]
    assert parts[0]["inlineData"]["mimeType"] == "image/jpeg"
    assert "Scene lighting is dim, warm lighting." in parts[-1]["text"]
    assert payload["generationConfig"] == {"temperature": 0.4, "topP": 0.8, "topK": 40}
    assert session.post.call_args.kwargs["headers"]["x-goog-api-key"] == "test-key"


def test_output_of_different_size_is_resized_to_crop():
    client, _, _ = make_client(image_response(np.full((64, 48, 3), 90, dtype=np.uint8)))

    result = client.generate(make_crop(32, 24), "context")

    assert result.shape == (32, 24, 3)


def test_blocked_generation_returns_none():
    client, limiter, _ = make_client(image_response(make_crop(), finish_reason="SAFETY"))

    assert client.generate(make_crop(), "context") is None
    limiter.report_success.assert_not_called()


def test_text_only_response_returns_none():
    response = Mock(status_code=200)
    response.json.return_value = {"candidates": [{"finishReason": "STOP", "content": {"parts": [{"text": "no"}]}}]}
    client, _, _ = make_client(response)

    assert client.generate(make_crop(), "context") is None


def test_rate_limit_response_reports_429():
    client, limiter, session = make_client(error_response(429))

    assert client.generate(make_crop(), "context") is None
    limiter.report_429.assert_called_once()
    assert session.post.call_count == 1


def test_client_error_is_not_retried():
    client, _, session = make_client(error_response(400))

    assert client.generate(make_crop(), "context") is None
    assert session.post.call_count == 1


def test_server_error_is_retried():
    generated = make_crop()
    client, _, session = make_client(error_response(503), image_response(generated))

    with patch("bottle_morph.services.gemini_client.time.sleep") as sleep:
        result = client.generate(make_crop(), "context")

    assert result is not None
    assert session.post.call_count == 2
    sleep.assert_called_once_with(2)


def test_rate_limiter_timeout_skips_request():
    client, limiter, session = make_client()
    limiter.acquire.return_value = False

    assert client.generate(make_crop(), "context") is None
    session.post.assert_not_called()


def test_connection_error_returns_none():
    client, _, _ = make_client(requests.exceptions.ConnectionError("down"))

    assert client.generate(make_crop(), "context") is None


def test_reference_image_is_sent(tmp_path):
    reference = tmp_path / "reference.png"
    reference.write_bytes(encode_image(make_crop(8, 8), format="PNG"))
    session = Mock()
    session.post.side_effect = [image_response(make_crop())]
    limiter = Mock()
    limiter.acquire.return_value = True
    client = GeminiImageClient(
        settings=GeneratorSettings(api_key="test-key", reference_image_path=reference),
        rate_limiter=limiter,
        session=session,
    )

    client.generate(make_crop(), "context")

    parts = session.post.call_args.kwargs["json"]["contents"][0]["parts"]
    assert [p.get("inlineData", {}).get("mimeType") for p in parts[:2]] == ["image/jpeg", "image/png"]
    assert "second image" in parts[2]["text"]
    logger.info("✓ Reference image attached after the crop")
