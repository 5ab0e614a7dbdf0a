"""Model proxy router.

Endpoints:
    POST /predict - Forward to the influenza prediction model
    POST /analyze - Forward to the clinical-note NER service
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests
from fastapi import APIRouter, Body, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from flu_etl.prediction_client import PredictionClient, PredictionError

from ..dependencies import (
    DEBUG_MODE,
    NER_API_URL,
    UPSTREAM_TIMEOUT_SECONDS,
    get_http_session,
    get_prediction_client,
)
from ..middleware.rate_limit import rate_limit_proxy

router = APIRouter()
logger = logging.getLogger(__name__)


def upstream_error(message: str, exc: Exception) -> JSONResponse:
    """502 in the standard error format; upstream detail only in debug mode."""
    content: Dict[str, Any] = {"error": message, "code": "UPSTREAM_ERROR"}
    if DEBUG_MODE:
        content["details"] = {"reason": str(exc)}
    return JSONResponse(status_code=502, content=content)


@router.post("/predict")
@rate_limit_proxy
async def predict(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    client: PredictionClient = Depends(get_prediction_client),
):
    """Forward the body as-is; the model service owns the payload shape."""
    try:
        return await run_in_threadpool(client.forward, payload)
    except PredictionError as e:
        logger.error(f"Prediction proxy failed: {e}")
        return upstream_error("Prediction service request failed", e)


def _post_ner(session: requests.Session, payload: Dict[str, Any]) -> Any:
    resp = session.post(NER_API_URL, json=payload, timeout=UPSTREAM_TIMEOUT_SECONDS)
    resp.raise_for_status()
    return resp.json()


@router.post("/analyze")
@rate_limit_proxy
async def analyze(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    session: requests.Session = Depends(get_http_session),
):
    """Named-entity extraction for a clinical note."""
    try:
        return await run_in_threadpool(_post_ner, session, payload)
    except (requests.RequestException, ValueError) as e:
        logger.error(f"NER proxy failed: {e}")
        return upstream_error("NER extraction failed", e)
