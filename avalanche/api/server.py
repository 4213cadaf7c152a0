from __future__ import annotations

import base64
import binascii
import logging

from fastapi import FastAPI, HTTPException

from ..runtime.lifecycle import AnalysisInFlightError, AnalysisLifecycle
from .schemas import AnalysisRequest, AnalysisStatusResponse, status_response


logger = logging.getLogger(__name__)


def create_app(
    lifecycle: AnalysisLifecycle | None = None,
    api_key: str | None = None,
) -> FastAPI:
    selected_lifecycle = lifecycle or AnalysisLifecycle()

    app = FastAPI(title="Avalanche Analyzer API", version="0.1.0")
    app.state.lifecycle = selected_lifecycle
    app.state.api_key = api_key

    logger.info(
        "API server initialised default_key=%s",
        "configured" if api_key else "missing",
    )

    @app.get("/health", response_model=dict[str, str])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/analyses", response_model=AnalysisStatusResponse, status_code=202)
    def submit_analysis(request: AnalysisRequest) -> AnalysisStatusResponse:
        key = (request.api_key or "").strip() or app.state.api_key
        if not key:
            raise HTTPException(status_code=400, detail="An OpenAI API key is required")
        try:
            image_bytes = base64.b64decode(request.image_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(status_code=400, detail="Invalid base64 image payload") from exc

        try:
            status = selected_lifecycle.submit(key, image_bytes)
        except AnalysisInFlightError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        logger.info("Analysis submitted image_bytes=%d", len(image_bytes))
        return status_response(status)

    @app.get("/v1/analyses/current", response_model=AnalysisStatusResponse)
    def current_analysis() -> AnalysisStatusResponse:
        return status_response(selected_lifecycle.poll())

    @app.on_event("shutdown")
    def _close_lifecycle() -> None:
        if lifecycle is None:
            selected_lifecycle.close()

    return app


__all__ = ["create_app"]
