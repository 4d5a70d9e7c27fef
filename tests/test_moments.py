import numpy as np
import pytest

from leverage_rebalancer.moments import (
    MomentsEstimate,
    estimate_moments,
    estimate_moments_from_prices,
)


def test_shrunk_mean_and_sample_covariance() -> None:
    a = [0.01, 0.02, -0.01, 0.03]
    b = [0.00, 0.01, 0.02, -0.01]
    est = estimate_moments({"A": a, "B": b}, shrinkage=0.6, min_history=2)
    assert est is not None
    assert est.symbols == ("A", "B")
    assert est.window == 4
    assert est.mean_returns == pytest.approx(np.array([np.mean(a), np.mean(b)]) * 0.6)
    assert np.allclose(est.covariance, np.cov(np.vstack([a, b]), ddof=1))
    assert np.allclose(est.covariance, est.covariance.T)


def test_series_are_right_truncated_to_common_window() -> None:
    long = [0.5, 0.5, 0.01, 0.02, 0.03]
    short = [0.01, -0.02, 0.01]
    est = estimate_moments({"L": long, "S": short}, shrinkage=1.0, min_history=3)
    assert est is not None
    assert est.window == 3
    # the stale leading observations of L are ignored
    assert est.mean_returns[0] == pytest.approx(np.mean([0.01, 0.02, 0.03]))


def test_symbols_below_history_threshold_are_dropped() -> None:
    est = estimate_moments(
        {"A": [0.01] * 10, "B": [0.02, 0.01]}, shrinkage=0.5, min_history=5
    )
    assert est is not None
    assert est.symbols == ("A",)
    assert est.covariance.shape == (1, 1)


def test_insufficient_history_returns_none() -> None:
    assert estimate_moments({"A": [0.01]}, shrinkage=0.5, min_history=1) is None
    assert (
        estimate_moments({"A": [0.01] * 30}, shrinkage=0.5, min_history=1, min_symbols=2)
        is None
    )
    assert (
        estimate_moments(
            {"A": [0.01] * 10, "B": [0.02] * 10}, shrinkage=0.5, min_history=1, min_window=20
        )
        is None
    )


def test_shrinkage_out_of_range_raises() -> None:
    with pytest.raises(ValueError):
        estimate_moments({"A": [0.01, 0.02]}, shrinkage=1.5, min_history=1)


def test_estimate_from_prices_uses_log_returns() -> None:
    prices = {"A": [100.0, 101.0, 102.0, 101.0], "B": [50.0, 50.5, 50.0, 51.0]}
    est = estimate_moments_from_prices(prices, shrinkage=1.0, min_history=3)
    assert est is not None
    expected = np.mean(np.diff(np.log(prices["A"])))
    assert est.mean_returns[0] == pytest.approx(expected)


def test_estimate_is_immutable_and_serializable() -> None:
    est = MomentsEstimate(("A",), np.array([0.1]), np.array([[0.2]]), window=5)
    with pytest.raises(ValueError):
        est.mean_returns[0] = 1.0
    assert est.to_dict() == {
        "symbols": ["A"],
        "mean_returns": [0.1],
        "covariance": [[0.2]],
        "window": 5,
    }


def test_estimate_rejects_shape_mismatch() -> None:
    with pytest.raises(ValueError):
        MomentsEstimate(("A", "B"), np.array([0.1]), np.eye(2), window=3)
