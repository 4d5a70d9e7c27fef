"""Pytest configuration helpers for the test suite."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict, Sequence

import numpy as np
import pandas as pd
import pytest

_HERE = Path(__file__).resolve()
_PKG_ROOT = _HERE.parents[1]
_SRC = _PKG_ROOT / "src"

if _SRC.is_dir():
    p = str(_SRC)
    if p not in sys.path:
        sys.path.insert(0, p)

from leverage_rebalancer.data.prices import PriceBook  # noqa: E402

_DRIFTS: Dict[str, float] = {"SPY": 0.0005, "QQQ": 0.0007, "GLD": 0.0002}
_VOLS: Dict[str, float] = {"SPY": 0.010, "QQQ": 0.014, "GLD": 0.008}


def synthetic_frame(
    start: str,
    end: str,
    symbols: Sequence[str] = ("SPY", "QQQ", "GLD"),
    seed: int = 11,
) -> pd.DataFrame:
    dates = pd.bdate_range(start, end)
    rng = np.random.default_rng(seed)
    data = {}
    for i, symbol in enumerate(symbols):
        drift = _DRIFTS.get(symbol, 0.0004)
        vol = _VOLS.get(symbol, 0.01)
        shocks = rng.normal(drift, vol, size=len(dates))
        data[symbol] = 100.0 * (i + 1) * np.exp(np.cumsum(shocks))
    frame = pd.DataFrame(data, index=dates)
    frame.index.name = "date"
    return frame


@pytest.fixture
def make_book() -> Callable[..., PriceBook]:
    def _make(start: str, end: str, **kwargs) -> PriceBook:
        return PriceBook.from_frame(synthetic_frame(start, end, **kwargs))

    return _make


@pytest.fixture
def sim_book(make_book) -> PriceBook:
    return make_book("2021-01-01", "2021-12-31")


@pytest.fixture
def history_book(make_book) -> PriceBook:
    return make_book("2019-01-01", "2020-12-31", seed=5)


@pytest.fixture
def prices_csv(tmp_path: Path) -> Path:
    path = tmp_path / "prices.csv"
    synthetic_frame("2021-01-01", "2021-08-31").to_csv(path)
    return path
