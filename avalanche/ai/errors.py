"""Failure taxonomy for avalanche classification.

Every failure is terminal: nothing here is retried by the classifier, and the
lifecycle surfaces each one to the consumer as the resolved outcome.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .types import HazardCategory, ScoreVector, Unrecognized


class ClassificationError(Exception):
    """Base class for every rejected classification."""

    kind: str = "classification_error"

    def details(self) -> dict[str, Any]:
        return {}


class TransportError(ClassificationError):
    kind = "transport"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def details(self) -> dict[str, Any]:
        return {"status_code": self.status_code}


class ParseError(ClassificationError):
    kind = "parse_error"


class MalformedPayloadError(ParseError):
    kind = "malformed_payload"


class MissingFieldError(ParseError):
    kind = "missing_field"

    def __init__(self, field: str) -> None:
        super().__init__(f"Classifier response is missing required field '{field}'")
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"field": self.field}


class InvalidCategoryError(ClassificationError):
    kind = "invalid_category"

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid avalanche type: {value}")
        self.value = value

    def details(self) -> dict[str, Any]:
        return {"value": self.value}


class ConfidenceOutOfRangeError(ClassificationError):
    kind = "confidence_out_of_range"

    def __init__(self, value: float) -> None:
        super().__init__(f"Invalid confidence level: {value}")
        self.value = value

    def details(self) -> dict[str, Any]:
        return {"value": self.value if math.isfinite(self.value) else str(self.value)}


class _EvidenceError(ClassificationError):
    def __init__(self, message: str, scores: "ScoreVector") -> None:
        super().__init__(message)
        self.scores = scores

    def details(self) -> dict[str, Any]:
        return {
            "scores": {
                category.value: score for category, score in self.scores.as_dict().items()
            }
        }


class AmbiguousEvidenceError(_EvidenceError):
    kind = "ambiguous_evidence"

    def __init__(self, scores: "ScoreVector") -> None:
        super().__init__(
            "Classification uncertainty: Multiple types show similar characteristics",
            scores,
        )


class InsufficientEvidenceError(_EvidenceError):
    kind = "insufficient_evidence"

    def __init__(self, scores: "ScoreVector") -> None:
        super().__init__("Insufficient characteristic evidence for classification", scores)


class InconsistentClassificationError(ClassificationError):
    kind = "inconsistent_classification"

    def __init__(
        self,
        expected: "HazardCategory",
        reported: "HazardCategory | Unrecognized",
        score: int,
    ) -> None:
        super().__init__(
            "Inconsistent classification: Visual characteristics strongly indicate "
            f"{expected.value} (score: {score}) but classified as {reported.value}"
        )
        self.expected = expected
        self.reported = reported
        self.score = score

    def details(self) -> dict[str, Any]:
        return {
            "expected": self.expected.value,
            "reported": self.reported.value,
            "score": self.score,
        }


__all__ = [
    "AmbiguousEvidenceError",
    "ClassificationError",
    "ConfidenceOutOfRangeError",
    "InconsistentClassificationError",
    "InsufficientEvidenceError",
    "InvalidCategoryError",
    "MalformedPayloadError",
    "MissingFieldError",
    "ParseError",
    "TransportError",
]
