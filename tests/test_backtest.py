"""Tests for the rolling-window backtest runner."""

import math

import pytest

from flu_etl.backtest import (
    ERROR_INSUFFICIENT_DATA,
    ERROR_SEASON_REQUIRED,
    STATUS_DONE,
    STATUS_ERROR,
    STATUS_IDLE,
    BacktestRunner,
    build_horizon_series,
    cache_key,
)
from flu_etl.cache import BacktestStore, TtlCache


class PerfectStub:
    """Returns the true continuation of ``series`` for the window it receives."""

    def __init__(self, series):
        self.series = list(series)
        self.calls = []

    def __call__(self, window, steps):
        window = list(window)
        self.calls.append(window)
        w = len(window)
        for t in range(w, len(self.series) + 1):
            if self.series[t - w:t] == window:
                return self.series[t:t + steps]
        raise AssertionError("window not found in series")


def _weeks(n):
    return [f"{i + 1}주" for i in range(n)]


class TestBacktestRun:
    """Core rolling-window behaviour."""

    def test_constant_series_perfect_model(self):
        values = [5.0] * 20
        runner = BacktestRunner(PerfectStub(values))
        result = runner.run("24/25", "ds_0101", _weeks(20), values, window_size=12, steps=3)

        assert runner.status == STATUS_DONE
        assert set(result.horizons) == {1, 2, 3}
        for h, horizon in result.horizons.items():
            assert horizon.metrics.count == 20 - 12 - 3 + 1, h
            assert horizon.metrics.mae == 0.0
            assert horizon.metrics.rmse == 0.0
            assert len(horizon.predicted) == 20

    def test_single_start_index(self):
        """[10]*12 + [20, 30, 40] with W=12, H=3 has exactly one window, at t=12."""
        values = [10.0] * 12 + [20.0, 30.0, 40.0]
        stub = PerfectStub(values)
        result = BacktestRunner(stub).run("24/25", "ds_0101", _weeks(15), values, window_size=12, steps=3)

        assert len(stub.calls) == 1
        h1 = result.horizons[1]
        assert h1.predicted[12] == 20.0
        assert h1.predicted[:12] == [None] * 12
        assert h1.metrics.count == 1
        assert h1.metrics.mae == 0.0
        assert result.horizons[2].predicted[13] == 30.0
        assert result.horizons[3].predicted[14] == 40.0
        assert result.meta.success_count == 1
        assert result.meta.fail_count == 0

    def test_window_with_missing_value_is_skipped(self):
        """Windows covering a None/NaN are failures and never reach the model."""
        values = [float(i + 1) for i in range(16)]
        values[3] = None
        values[9] = float("nan")
        stub = PerfectStub(values)
        runner = BacktestRunner(stub)
        result = runner.run("24/25", "ds_0101", _weeks(16), values, window_size=4, steps=1)

        for window in stub.calls:
            assert all(v is not None and math.isfinite(v) for v in window)
        # t in [4, 15]: windows touching index 3 (t=4..7) or 9 (t=10..13) fail
        assert result.meta.fail_count == 8
        assert result.meta.success_count == 4
        assert result.values[3] is None
        assert result.values[9] is None

    def test_model_failures_counted(self):
        calls = []

        def flaky(window, steps):
            calls.append(window)
            if len(calls) % 2:
                raise RuntimeError("model down")
            return []

        values = [1.0] * 10
        result = BacktestRunner(flaky).run("24/25", "ds_0101", _weeks(10), values, window_size=4, steps=2)
        assert result.meta.success_count == 0
        assert result.meta.fail_count == 10 - 2 - 4 + 1
        assert result.horizons[1].metrics.count == 0
        assert result.horizons[1].metrics.mae is None

    def test_mape_none_for_all_zero_actuals(self):
        values = [0.0] * 8
        result = BacktestRunner(PerfectStub(values)).run("24/25", "ds_0101", _weeks(8), values, window_size=3, steps=2)
        assert result.horizons[1].metrics.count == 8 - 3 - 2 + 1
        assert result.horizons[1].metrics.mape is None

    def test_progress(self):
        seen = []
        values = [2.0] * 10
        runner = BacktestRunner(PerfectStub(values), on_progress=lambda c, t: seen.append((c, t)))
        runner.run("24/25", "ds_0101", _weeks(10), values, window_size=4, steps=2)
        assert seen == [(i, 5) for i in range(1, 6)]
        assert runner.progress == {"current": 5, "total": 5}


class TestBacktestPreconditions:
    """Errors raised before any model call."""

    def test_season_required(self):
        runner = BacktestRunner(PerfectStub([1.0] * 20))
        assert runner.run(None, "ds_0101", _weeks(20), [1.0] * 20) is None
        assert runner.status == STATUS_ERROR
        assert runner.error == ERROR_SEASON_REQUIRED

    def test_insufficient_data(self):
        stub = PerfectStub([1.0] * 14)
        runner = BacktestRunner(stub)
        assert runner.run("24/25", "ds_0101", _weeks(14), [1.0] * 14, window_size=12, steps=3) is None
        assert runner.status == STATUS_ERROR
        assert runner.error == ERROR_INSUFFICIENT_DATA
        assert stub.calls == []


class TestBacktestCancelAndCache:
    """Cancellation discards results; successful runs are cached."""

    def test_cancel_discards_result(self):
        store = BacktestStore(TtlCache())
        values = [1.0] * 20
        holder = {}

        def cancelling(window, steps):
            holder["runner"].cancel()
            return [1.0] * steps

        runner = BacktestRunner(cancelling, store=store)
        holder["runner"] = runner
        assert runner.run("24/25", "ds_0101", _weeks(20), values) is None
        assert runner.status == STATUS_IDLE
        assert runner.current == 1
        assert store.load("ds_0101", "24/25", 12, 3) is None

    def test_successful_run_is_cached(self):
        store = BacktestStore(TtlCache())
        values = [float(i % 5) for i in range(20)]
        result = BacktestRunner(PerfectStub(values), store=store).run("24/25", "ds_0101", _weeks(20), values)

        cached = store.load("ds_0101", "24/25", 12, 3)
        assert cached is not None
        assert cached.weeks == result.weeks
        assert cached.values == result.values
        for h in (1, 2, 3):
            assert cached.horizons[h].metrics == result.horizons[h].metrics

    def test_cache_key_format(self):
        assert cache_key("ds_0101", "24/25", 12, 3) == "pred_backtest:v1:ds_0101:24/25:w12:s3"


class TestBuildHorizonSeries:
    """Placement of predictions per horizon."""

    def test_prediction_h_lands_at_t_plus_h_minus_1(self):
        values = [0.0] * 10
        horizons = build_horizon_series(values, {4: [1.0, 2.0], 8: [3.0, 4.0]}, window_size=4, steps=2)
        assert horizons[1].predicted[4] == 1.0
        assert horizons[2].predicted[5] == 2.0
        assert horizons[1].predicted[8] == 3.0
        assert horizons[2].predicted[9] == 4.0

    def test_short_prediction_list(self):
        horizons = build_horizon_series([1.0] * 6, {2: [1.0]}, window_size=2, steps=2)
        assert horizons[1].predicted[2] == 1.0
        assert horizons[2].predicted == [None] * 6

    def test_metrics_from_placed_values(self):
        values = [1.0, 1.0, 2.0, 4.0]
        horizons = build_horizon_series(values, {2: [3.0, 4.0]}, window_size=2, steps=2)
        assert horizons[1].metrics.mae == pytest.approx(1.0)
        assert horizons[2].metrics.mae == pytest.approx(0.0)
