from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

from ..ai.parser import encode_analysis
from ..ai.scoring import matched_indicators, score_characteristics
from ..ai.types import Accepted
from ..runtime.lifecycle import Idle, LifecycleStatus, Pending


class AnalysisRequest(BaseModel):
    image_base64: str = Field(..., description="Base64 encoded terrain photograph")
    api_key: str | None = Field(
        default=None,
        description="OpenAI API key; falls back to the server's configured key",
    )


class EvidenceModel(BaseModel):
    scores: Dict[str, int]
    indicators: Dict[str, List[str]]


class AnalysisErrorModel(BaseModel):
    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AnalysisStatusResponse(BaseModel):
    state: Literal["idle", "pending", "resolved"]
    outcome: Literal["accepted", "rejected"] | None = None
    result: Dict[str, Any] | None = None
    evidence: EvidenceModel | None = None
    error: AnalysisErrorModel | None = None


def status_response(status: LifecycleStatus) -> AnalysisStatusResponse:
    if isinstance(status, Idle):
        return AnalysisStatusResponse(state="idle")
    if isinstance(status, Pending):
        return AnalysisStatusResponse(state="pending")

    outcome = status.outcome
    if isinstance(outcome, Accepted):
        characteristics = outcome.result.characteristics
        scores = score_characteristics(characteristics)
        return AnalysisStatusResponse(
            state="resolved",
            outcome="accepted",
            result=encode_analysis(outcome.result),
            evidence=EvidenceModel(
                scores={
                    category.value: score for category, score in scores.as_dict().items()
                },
                indicators={
                    category.value: labels
                    for category, labels in matched_indicators(characteristics).items()
                },
            ),
        )

    error = outcome.error
    return AnalysisStatusResponse(
        state="resolved",
        outcome="rejected",
        error=AnalysisErrorModel(kind=error.kind, message=str(error), details=error.details()),
    )


__all__ = [
    "AnalysisErrorModel",
    "AnalysisRequest",
    "AnalysisStatusResponse",
    "EvidenceModel",
    "status_response",
]
