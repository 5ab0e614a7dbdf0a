"""Tests for MAE / RMSE / MAPE."""

import math

import pytest

from flu_etl.metrics import compute_metrics


class TestComputeMetrics:
    """Error metrics over finite pairs."""

    def test_perfect_prediction(self):
        m = compute_metrics([1.0, 2.0, 3.0], [1.0, 2.0, 3.0])
        assert m.count == 3
        assert m.mae == 0.0
        assert m.rmse == 0.0
        assert m.mape == 0.0

    def test_known_values(self):
        """Errors 1 and 3: MAE 2, RMSE sqrt(5), MAPE mean(10%, 15%)."""
        m = compute_metrics([10.0, 20.0], [11.0, 17.0])
        assert m.count == 2
        assert m.mae == pytest.approx(2.0)
        assert m.rmse == pytest.approx(math.sqrt(5.0))
        assert m.mape == pytest.approx(12.5)

    def test_missing_pairs_skipped(self):
        m = compute_metrics([1.0, None, 3.0, float("nan")], [None, 2.0, 4.0, 1.0])
        assert m.count == 1
        assert m.mae == pytest.approx(1.0)

    def test_mape_ignores_zero_actuals(self):
        m = compute_metrics([0.0, 10.0], [5.0, 12.0])
        assert m.count == 2
        assert m.mae == pytest.approx(3.5)
        assert m.mape == pytest.approx(20.0)

    def test_mape_none_when_all_actuals_zero(self):
        m = compute_metrics([0.0, 0.0], [1.0, 2.0])
        assert m.count == 2
        assert m.mape is None
        assert m.mae == pytest.approx(1.5)

    def test_no_pairs(self):
        m = compute_metrics([1.0, 2.0], [None, None])
        assert m.count == 0
        assert m.mae is None
        assert m.rmse is None
        assert m.mape is None
