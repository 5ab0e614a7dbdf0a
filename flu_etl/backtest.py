"""Rolling-window backtest of the prediction model over a weekly series.

For every start index ``t`` in ``[W, n-H]`` the ``W`` values before ``t`` are
sent to the model and the ``H`` returned predictions are placed at indices
``t .. t+H-1`` of one predicted series per horizon. Requests are sequential.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from .cache import BacktestStore, backtest_cache_key
from .metrics import compute_metrics
from .models import BacktestMeta, BacktestResult, HorizonResult

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 12
DEFAULT_STEPS = 3

STATUS_IDLE = "idle"
STATUS_RUNNING = "running"
STATUS_DONE = "done"
STATUS_ERROR = "error"

ERROR_SEASON_REQUIRED = "season required"
ERROR_INSUFFICIENT_DATA = "insufficient data"

PredictFn = Callable[[Sequence[float], int], Sequence[float]]
ProgressFn = Callable[[int, int], None]

cache_key = backtest_cache_key


def _finite(value: Optional[float]) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def build_horizon_series(
    values: Sequence[Optional[float]],
    preds_by_start: Dict[int, Sequence[float]],
    window_size: int,
    steps: int,
) -> Dict[int, HorizonResult]:
    """Predicted series per horizon ``h`` (1-based) plus its metrics against ``values``."""
    n = len(values)
    horizons: Dict[int, HorizonResult] = {}
    for h in range(1, steps + 1):
        predicted: List[Optional[float]] = [None] * n
        for t, preds in preds_by_start.items():
            if t < window_size or t > n - steps or len(preds) < h:
                continue
            index = t + h - 1
            if index < n:
                predicted[index] = _finite(preds[h - 1])
        horizons[h] = HorizonResult(predicted=predicted, metrics=compute_metrics(values, predicted))
    return horizons


class BacktestRunner:
    """One backtest run with observable status/progress and coarse cancellation.

    ``predict_fn(window, steps)`` returns the predictions or raises; any
    exception or empty result counts as a failed step. A cancelled runner
    stays cancelled; use a new runner for the next run.
    """

    def __init__(
        self,
        predict_fn: PredictFn,
        store: Optional[BacktestStore] = None,
        on_progress: Optional[ProgressFn] = None,
    ):
        self.predict_fn = predict_fn
        self.store = store
        self.on_progress = on_progress
        self.status = STATUS_IDLE
        self.error: Optional[str] = None
        self.current = 0
        self.total = 0
        self.result: Optional[BacktestResult] = None
        self._cancel = threading.Event()

    @property
    def progress(self) -> Dict[str, int]:
        return {"current": self.current, "total": self.total}

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _fail(self, message: str) -> None:
        self.error = message
        self.status = STATUS_ERROR
        logger.warning("Backtest not started: %s", message)

    def _advance(self) -> None:
        self.current += 1
        if self.on_progress is not None:
            self.on_progress(self.current, self.total)

    def _predict(self, window: List[float], steps: int) -> Optional[List[float]]:
        try:
            preds = self.predict_fn(window, steps)
        except Exception as e:
            logger.warning("Prediction failed: %s", e)
            return None
        if not preds:
            return None
        return list(preds)

    def run(
        self,
        season: Optional[str],
        dsid: str,
        weeks: Sequence[str],
        values: Sequence[Optional[float]],
        window_size: int = DEFAULT_WINDOW_SIZE,
        steps: int = DEFAULT_STEPS,
    ) -> Optional[BacktestResult]:
        """Run the backtest; returns the result, or None on error/cancel."""
        self.error = None
        self.result = None
        self.current = 0
        self.total = 0

        if not season:
            self._fail(ERROR_SEASON_REQUIRED)
            return None
        values = [_finite(v) for v in values]
        n = len(values)
        if n < window_size + steps:
            self._fail(ERROR_INSUFFICIENT_DATA)
            return None

        self.total = max(0, n - steps - window_size + 1)
        self.status = STATUS_RUNNING
        logger.info(
            "Backtest %s/%s: n=%d window=%d steps=%d (%d step(s))",
            dsid, season, n, window_size, steps, self.total,
        )

        preds_by_start: Dict[int, List[float]] = {}
        success_count = 0
        fail_count = 0

        for t in range(window_size, n - steps + 1):
            if self.cancelled:
                break
            window = values[t - window_size:t]
            if any(v is None for v in window):
                fail_count += 1
                self._advance()
                continue

            preds = self._predict(window, steps)
            if preds is None:
                fail_count += 1
            else:
                preds_by_start[t] = preds
                success_count += 1
            self._advance()

        if self.cancelled:
            logger.info("Backtest %s/%s cancelled at %d/%d", dsid, season, self.current, self.total)
            self.status = STATUS_IDLE
            return None

        result = BacktestResult(
            season=season,
            dsid=dsid,
            window_size=window_size,
            steps=steps,
            weeks=list(weeks),
            values=values,
            horizons=build_horizon_series(values, preds_by_start, window_size, steps),
            meta=BacktestMeta(
                success_count=success_count,
                fail_count=fail_count,
                created_at=datetime.now(timezone.utc).isoformat(),
            ),
        )
        self.result = result
        self.status = STATUS_DONE
        logger.info("Backtest %s/%s done: %d ok, %d failed", dsid, season, success_count, fail_count)

        if self.store is not None:
            self.store.save(result)
        return result

    def snapshot(self) -> Dict[str, object]:
        return {"status": self.status, "error": self.error, "progress": self.progress}
