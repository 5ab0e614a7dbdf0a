"""HTTP client for the remote influenza prediction model.

Request:  POST {"input": [float, ...], "steps": int}
Response: {"success": bool, "predictions": [float, ...]}
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

PREDICTION_API_URL = os.environ.get("PREDICTION_API_URL", "http://localhost:5000/predict")
PREDICTION_TIMEOUT_SECONDS = float(os.environ.get("PREDICTION_TIMEOUT_SECONDS", "30"))


class PredictionError(Exception):
    """Prediction service unreachable or returned an unusable response."""


class PredictionClient:
    def __init__(
        self,
        url: str = PREDICTION_API_URL,
        timeout: float = PREDICTION_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def forward(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST an arbitrary payload and return the decoded JSON body."""
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise PredictionError(f"Prediction request failed: {e}") from e
        except ValueError as e:
            raise PredictionError(f"Prediction response is not JSON: {e}") from e

    def predict(self, values: Sequence[float], steps: int) -> List[float]:
        """Forecast ``steps`` values following ``values``."""
        body = self.forward({"input": [float(v) for v in values], "steps": int(steps)})
        if not isinstance(body, dict) or not body.get("success"):
            raise PredictionError(f"Prediction service reported failure: {body!r}")
        predictions = body.get("predictions")
        if not isinstance(predictions, list) or not predictions:
            raise PredictionError("Prediction service returned no predictions")
        return [float(p) for p in predictions]

    def __call__(self, values: Sequence[float], steps: int) -> List[float]:
        return self.predict(values, steps)
