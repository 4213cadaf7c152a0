from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from ..imaging import detect_mime_type
from .errors import ClassificationError, TransportError
from .parser import parse_completion
from .prompt import CLASSIFICATION_RUBRIC, RUBRIC_VERSION
from .scoring import ConsistencyValidator
from .types import Accepted, ClassificationResult, Rejected, RequestOutcome

logger = logging.getLogger(__name__)


@dataclass
class OpenAIAvalancheClassifier:
    """Classify terrain photographs with an OpenAI vision model.

    Each call performs exactly one HTTP exchange. Nothing is retried or
    cached; callers that want resilience wrap :meth:`analyze` themselves.
    """

    api_key: str
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 60.0
    max_tokens: int = 600
    image_detail: str = "high"
    validator: ConsistencyValidator = field(default_factory=ConsistencyValidator)

    def analyze(self, image_bytes: bytes) -> RequestOutcome:
        try:
            result = self.classify(image_bytes)
        except ClassificationError as exc:
            logger.warning("Avalanche analysis rejected kind=%s: %s", exc.kind, exc)
            return Rejected(exc)
        logger.info(
            "Avalanche analysis accepted present=%s type=%s confidence=%.1f",
            result.present,
            result.category.value,
            result.confidence,
        )
        return Accepted(result)

    def classify(self, image_bytes: bytes) -> ClassificationResult:
        if not self.api_key:
            raise TransportError("OpenAI API key is required to classify images")

        payload = self._build_payload(image_bytes)
        logger.info(
            "Requesting avalanche analysis model=%s rubric=v%s image_bytes=%d",
            self.model,
            RUBRIC_VERSION,
            len(image_bytes),
        )
        body = self._send_request(payload)
        result = parse_completion(body)
        return self.validator.validate(result)

    def _send_request(self, payload: dict[str, Any]) -> str:
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        try:
            response = requests.post(
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TransportError(
                f"Timed out after {self.timeout:.0f}s waiting for OpenAI API"
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Failed to reach OpenAI API: {exc}") from exc

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = response.status_code
            detail = self._error_message(response)
            logger.warning("OpenAI API returned status=%s detail=%s", status, detail)
            message = f"OpenAI API returned HTTP {status}"
            if detail:
                message = f"{message}: {detail}"
            raise TransportError(message, status_code=status) from exc

        body = response.text
        if not body or not body.strip():
            raise TransportError("Empty API response", status_code=response.status_code)
        return body

    def _build_payload(self, image_bytes: bytes) -> dict[str, Any]:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        mime_type = detect_mime_type(image_bytes)
        return {
            "model": self.model,
            "response_format": {"type": "json_object"},
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": CLASSIFICATION_RUBRIC},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{mime_type};base64,{encoded}",
                                "detail": self.image_detail,
                            },
                        },
                    ],
                }
            ],
            "max_tokens": self.max_tokens,
        }

    @staticmethod
    def _error_message(response: requests.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"]
        return None


__all__ = ["OpenAIAvalancheClassifier"]
