from __future__ import annotations

from .errors import ClassificationError
from .types import (
    Accepted,
    Analyzer,
    ClassificationResult,
    HazardCategory,
    Rejected,
    RequestOutcome,
    ScoreVector,
)

__all__ = [
    "Accepted",
    "Analyzer",
    "ClassificationError",
    "ClassificationResult",
    "ConsistencyValidator",
    "HazardCategory",
    "OpenAIAvalancheClassifier",
    "Rejected",
    "RequestOutcome",
    "ScoreVector",
]


def __getattr__(name: str):
    if name == "ConsistencyValidator":
        from .scoring import ConsistencyValidator

        return ConsistencyValidator
    if name == "OpenAIAvalancheClassifier":
        from .openai_client import OpenAIAvalancheClassifier

        return OpenAIAvalancheClassifier
    raise AttributeError(f"module 'avalanche.ai' has no attribute {name!r}")
