from __future__ import annotations

import math
from typing import Iterable, Optional

import numpy as np


def _as_float_array(values: Iterable[Optional[float]]) -> np.ndarray:
    return np.asarray(
        [np.nan if value is None else float(value) for value in values],
        dtype=float,
    )


def log_returns(prices: Iterable[Optional[float]]) -> np.ndarray:
    """Log returns of adjacent price pairs.

    Pairs whose earlier or later price is missing, non-finite or non-positive
    are skipped rather than zero-filled, so the output can be shorter than
    ``len(prices) - 1``.
    """

    arr = _as_float_array(prices)
    if arr.size < 2:
        return np.empty(0, dtype=float)
    prev = arr[:-1]
    curr = arr[1:]
    with np.errstate(invalid="ignore"):
        mask = np.isfinite(prev) & np.isfinite(curr) & (prev > 0.0) & (curr > 0.0)
    return np.log(curr[mask] / prev[mask])


def sample_std(values: Iterable[float]) -> float:
    """Sample standard deviation (n - 1 denominator); a single value yields 0."""

    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return 0.0
    centered = arr - arr.mean()
    denom = max(arr.size - 1, 1)
    return float(math.sqrt(float(centered @ centered) / denom))


def annualized_volatility(returns: Iterable[float], trading_days: int) -> Optional[float]:
    """Annualized sample volatility of periodic returns, ``None`` when empty."""

    arr = np.asarray(list(returns), dtype=float)
    if arr.size == 0:
        return None
    return sample_std(arr) * math.sqrt(max(1, int(trading_days)))


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator > 0.0:
        return float(numerator) / float(denominator)
    return float(default)


__all__ = ["log_returns", "sample_std", "annualized_volatility", "safe_ratio"]
