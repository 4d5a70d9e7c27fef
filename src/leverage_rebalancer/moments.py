"""Shrunk mean and sample covariance estimation over aligned return windows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .utils import log_returns

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MomentsEstimate:
    """Per-symbol shrunk mean returns and their covariance matrix."""

    symbols: Tuple[str, ...]
    mean_returns: np.ndarray
    covariance: np.ndarray
    window: int

    def __post_init__(self) -> None:
        mu = np.array(self.mean_returns, dtype=float).reshape(-1)
        cov = np.array(self.covariance, dtype=float)
        n = len(self.symbols)
        if mu.shape != (n,):
            raise ValueError("mean_returns must have one entry per symbol")
        if cov.shape != (n, n):
            raise ValueError("covariance must be a square matrix matching symbols")
        if not np.all(np.isfinite(mu)) or not np.all(np.isfinite(cov)):
            raise ValueError("moments must be finite")
        mu.setflags(write=False)
        cov.setflags(write=False)
        object.__setattr__(self, "symbols", tuple(self.symbols))
        object.__setattr__(self, "mean_returns", mu)
        object.__setattr__(self, "covariance", cov)

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbols": list(self.symbols),
            "mean_returns": self.mean_returns.tolist(),
            "covariance": self.covariance.tolist(),
            "window": int(self.window),
        }


def _sample_covariance(window: np.ndarray) -> np.ndarray:
    # rows are observations, columns are symbols
    centered = window - window.mean(axis=0, keepdims=True)
    denom = window.shape[0] - 1
    return (centered.T @ centered) / denom


def estimate_moments(
    returns: Mapping[str, Sequence[float]],
    *,
    shrinkage: float,
    min_history: int,
    min_window: int = 2,
    min_symbols: int = 1,
) -> Optional[MomentsEstimate]:
    """Estimate shrunk means and sample covariance over the common recent window.

    Symbols with fewer than ``min_history`` return points are dropped. Every
    remaining series is right-truncated to the shortest length so the estimate
    uses the most recent aligned window. ``None`` is returned when fewer than
    ``min_symbols`` symbols qualify or the window is shorter than
    ``min_window`` observations.
    """

    if not (0.0 <= shrinkage <= 1.0):
        raise ValueError("shrinkage must lie in [0, 1]")
    window_floor = max(2, int(min_window))

    qualified: List[str] = []
    series: List[np.ndarray] = []
    for symbol, values in returns.items():
        arr = np.asarray(list(values), dtype=float)
        if arr.size >= min_history:
            qualified.append(symbol)
            series.append(arr)
        else:
            logger.debug("Dropping %s: %d return points < %d", symbol, arr.size, min_history)

    if len(qualified) < max(1, int(min_symbols)):
        return None

    min_length = min(arr.size for arr in series)
    if min_length < window_floor:
        return None

    window = np.column_stack([arr[-min_length:] for arr in series])
    raw_mean = window.mean(axis=0)
    return MomentsEstimate(
        symbols=tuple(qualified),
        mean_returns=raw_mean * shrinkage,
        covariance=_sample_covariance(window),
        window=min_length,
    )


def estimate_moments_from_prices(
    price_history: Mapping[str, Iterable[Optional[float]]],
    *,
    shrinkage: float,
    min_history: int,
    min_window: int = 2,
    min_symbols: int = 1,
) -> Optional[MomentsEstimate]:
    """Convenience wrapper turning raw price histories into log returns first."""

    returns = {symbol: log_returns(prices) for symbol, prices in price_history.items()}
    return estimate_moments(
        returns,
        shrinkage=shrinkage,
        min_history=min_history,
        min_window=min_window,
        min_symbols=min_symbols,
    )


__all__ = ["MomentsEstimate", "estimate_moments", "estimate_moments_from_prices"]
