import base64
import io
import json
import unittest
from unittest.mock import Mock, patch

import requests
from PIL import Image

from avalanche.ai.errors import (
    InconsistentClassificationError,
    MissingFieldError,
    TransportError,
)
from avalanche.ai.openai_client import OpenAIAvalancheClassifier
from avalanche.ai.prompt import CLASSIFICATION_RUBRIC
from avalanche.ai.types import Accepted, HazardCategory, Rejected


def _analysis(avalanche_type: str = "slab") -> dict:
    return {
        "avalanche_present": True,
        "avalanche_type": avalanche_type,
        "confidence_level": 91.0,
        "terrain_features": ["Clean crown fracture"],
        "visual_characteristics": {
            "powder_cloud": False,
            "fracture_line": True,
            "fracture_depth": "shallow",
            "point_release": False,
            "debris_pattern": "linear",
            "snow_texture": {
                "granular": False,
                "blocky": True,
                "fluffy": False,
                "density": "high",
            },
            "movement_pattern": {
                "starting_width": "wide",
                "propagation": "linear",
                "vertical_movement": False,
                "lateral_spread": True,
            },
            "terrain": {
                "slope_angle": "moderate (30-45°)",
                "surface_roughness": "rough",
                "anchoring_points": True,
                "convex_rollover": False,
            },
        },
    }


def _response(body: str, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = body
    response.raise_for_status.return_value = None
    return response


def _completion(content: dict) -> str:
    return json.dumps({"choices": [{"message": {"content": json.dumps(content)}}]})


class OpenAIAvalancheClassifierTests(unittest.TestCase):
    def test_analyze_builds_payload_and_accepts_consistent_result(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="test-key", timeout=12.0)
        image_bytes = b"binary-image"
        expected_b64 = base64.b64encode(image_bytes).decode("ascii")

        with patch("avalanche.ai.openai_client.requests.post") as post:
            post.return_value = _response(_completion(_analysis()))
            outcome = classifier.analyze(image_bytes)

        self.assertIsInstance(outcome, Accepted)
        self.assertIs(outcome.result.category, HazardCategory.SLAB)
        self.assertAlmostEqual(outcome.result.confidence, 91.0)
        post.assert_called_once()

        url, kwargs = post.call_args
        self.assertEqual(url[0], "https://api.openai.com/v1/chat/completions")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer test-key")
        self.assertEqual(kwargs["timeout"], 12.0)
        payload = kwargs["json"]
        self.assertEqual(payload["model"], "gpt-4o-mini")
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertEqual(payload["max_tokens"], 600)

        self.assertEqual(len(payload["messages"]), 1)
        message = payload["messages"][0]
        self.assertEqual(message["role"], "user")
        text_part, image_part = message["content"]
        self.assertEqual(text_part, {"type": "text", "text": CLASSIFICATION_RUBRIC})
        self.assertIn("A single PRIMARY indicator is not enough", text_part["text"])
        self.assertEqual(image_part["type"], "image_url")
        self.assertEqual(
            image_part["image_url"],
            {"url": f"data:image/jpeg;base64,{expected_b64}", "detail": "high"},
        )

    def test_data_url_uses_detected_image_type(self) -> None:
        buffer = io.BytesIO()
        Image.new("RGB", (8, 8), color="white").save(buffer, format="PNG")
        classifier = OpenAIAvalancheClassifier(api_key="test-key")

        payload = classifier._build_payload(buffer.getvalue())

        url = payload["messages"][0]["content"][1]["image_url"]["url"]
        self.assertTrue(url.startswith("data:image/png;base64,"))

    def test_inconsistent_classification_is_rejected(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="test-key")

        with patch("avalanche.ai.openai_client.requests.post") as post:
            post.return_value = _response(_completion(_analysis("powder")))
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome, Rejected)
        self.assertIsInstance(outcome.error, InconsistentClassificationError)
        self.assertIs(outcome.error.expected, HazardCategory.SLAB)
        self.assertEqual(outcome.error.score, 15)

    def test_connection_error_maps_to_transport_without_retry(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="test-key")

        with patch("avalanche.ai.openai_client.requests.post") as post:
            post.side_effect = requests.ConnectionError("connection refused")
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome, Rejected)
        self.assertIsInstance(outcome.error, TransportError)
        self.assertIn("connection refused", str(outcome.error))
        post.assert_called_once()

    def test_timeout_maps_to_transport(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="test-key", timeout=5.0)

        with patch("avalanche.ai.openai_client.requests.post") as post:
            post.side_effect = requests.Timeout("read timed out")
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome.error, TransportError)
        self.assertIn("Timed out", str(outcome.error))

    def test_http_error_status_maps_to_transport(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="bad-key")
        response = _response("{}", status_code=401)
        response.raise_for_status.side_effect = requests.HTTPError("401 Client Error")
        response.json.return_value = {"error": {"message": "Incorrect API key provided"}}

        with patch("avalanche.ai.openai_client.requests.post", return_value=response):
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome.error, TransportError)
        self.assertEqual(outcome.error.status_code, 401)
        self.assertIn("Incorrect API key provided", str(outcome.error))

    def test_empty_body_maps_to_transport(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="test-key")

        with patch("avalanche.ai.openai_client.requests.post", return_value=_response("")):
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome.error, TransportError)
        self.assertIn("Empty API response", str(outcome.error))

    def test_missing_content_is_a_parse_rejection(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="test-key")
        body = json.dumps({"choices": [{"message": {"role": "assistant"}}]})

        with patch("avalanche.ai.openai_client.requests.post", return_value=_response(body)):
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome.error, MissingFieldError)
        self.assertEqual(outcome.error.field, "choices[0].message.content")

    def test_missing_api_key_skips_network_call(self) -> None:
        classifier = OpenAIAvalancheClassifier(api_key="")

        with patch("avalanche.ai.openai_client.requests.post") as post:
            outcome = classifier.analyze(b"image")

        self.assertIsInstance(outcome.error, TransportError)
        post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
