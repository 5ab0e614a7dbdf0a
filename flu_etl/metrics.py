"""Backtest error metrics: MAE, RMSE and MAPE over finite (actual, predicted) pairs."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .models import Metrics


def _as_float_array(values: Sequence[Optional[float]]) -> np.ndarray:
    return np.array([np.nan if v is None else float(v) for v in values], dtype=float)


def compute_metrics(
    actual: Sequence[Optional[float]],
    predicted: Sequence[Optional[float]],
) -> Metrics:
    """Pairs where either side is missing or non-finite are ignored.

    MAPE (in percent) only uses samples with a non-zero actual and is None
    when there are none.
    """
    n = min(len(actual), len(predicted))
    y_true = _as_float_array(actual[:n])
    y_pred = _as_float_array(predicted[:n])

    mask = np.isfinite(y_true) & np.isfinite(y_pred)
    y_true = y_true[mask]
    y_pred = y_pred[mask]
    if y_true.size == 0:
        return Metrics(count=0)

    mae = mean_absolute_error(y_true, y_pred)
    rmse = np.sqrt(mean_squared_error(y_true, y_pred))

    nonzero = y_true != 0
    mape = None
    if nonzero.any():
        mape = float(np.mean(np.abs((y_true[nonzero] - y_pred[nonzero]) / y_true[nonzero])) * 100.0)

    return Metrics(count=int(y_true.size), mae=float(mae), rmse=float(rmse), mape=mape)
