"""Box constraints on portfolio weights and the post-optimization repair pass."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class WeightBounds:
    """Per-asset lower/upper weight limits with a feasibility tolerance."""

    min_weight: float
    max_weight: float
    tolerance: float = 1e-3

    def __post_init__(self) -> None:
        if not (0.0 <= self.min_weight <= self.max_weight <= 1.0):
            raise ValueError("bounds must satisfy 0 <= min_weight <= max_weight <= 1")
        if self.tolerance < 0.0:
            raise ValueError("tolerance must be non-negative")

    def admits(self, weights: Iterable[float]) -> bool:
        arr = np.asarray(list(weights), dtype=float)
        lo = self.min_weight - self.tolerance
        hi = self.max_weight + self.tolerance
        return bool(np.all((arr >= lo) & (arr <= hi)))

    def is_satisfiable(self, n_assets: int) -> bool:
        """Whether ``n_assets`` weights inside the box can sum to one."""

        if n_assets <= 0:
            return False
        return n_assets * self.min_weight <= 1.0 <= n_assets * self.max_weight


class WeightVector(Mapping):
    """Immutable symbol to weight mapping."""

    __slots__ = ("_data", "_hash")

    def __init__(self, weights: Optional[Mapping[str, float]] = None) -> None:
        data: Dict[str, float] = {}
        for symbol, value in (weights or {}).items():
            weight = float(value)
            if not np.isfinite(weight):
                raise ValueError(f"weight for {symbol} must be finite")
            data[str(symbol)] = weight
        self._data = MappingProxyType(data)
        self._hash: Optional[int] = None

    @classmethod
    def equal(cls, symbols: Sequence[str]) -> "WeightVector":
        if not symbols:
            return cls()
        share = 1.0 / len(symbols)
        return cls({symbol: share for symbol in symbols})

    @classmethod
    def from_array(cls, symbols: Sequence[str], values: Iterable[float]) -> "WeightVector":
        arr = np.asarray(list(values), dtype=float)
        if arr.shape != (len(symbols),):
            raise ValueError("weights must align with symbols")
        return cls(dict(zip(symbols, arr.tolist())))

    def __getitem__(self, symbol: str) -> float:
        return self._data[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(tuple(sorted(self._data.items())))
        return self._hash

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v:.4f}" for k, v in self._data.items())
        return f"WeightVector({inner})"

    def total(self) -> float:
        return float(sum(self._data.values()))

    def as_array(self, symbols: Sequence[str]) -> np.ndarray:
        return np.asarray([self._data.get(symbol, 0.0) for symbol in symbols], dtype=float)

    def within(self, bounds: WeightBounds) -> bool:
        return bounds.admits(self._data.values())

    def with_symbols(self, symbols: Iterable[str]) -> "WeightVector":
        """Return a copy that also lists ``symbols``, padding absent ones with 0."""

        data = dict(self._data)
        for symbol in symbols:
            data.setdefault(symbol, 0.0)
        return WeightVector(data)

    def to_dict(self) -> Dict[str, float]:
        return dict(self._data)


def _normalize(weights: np.ndarray) -> np.ndarray:
    total = float(weights.sum())
    if total > 0.0 and np.isfinite(total):
        return weights / total
    return np.full(weights.shape, 1.0 / weights.size)


def repair_weights(
    weights: Iterable[float],
    bounds: WeightBounds,
    *,
    passes: int = 20,
    decimals: Optional[int] = 4,
) -> np.ndarray:
    """Pull a weight vector back inside ``bounds`` while keeping its sum at one.

    Each pass clips violators to the nearest bound and spreads the net clipped
    mass evenly across the weights still strictly inside the box. The loop
    stops as soon as a pass finds nothing to clip. The result is renormalized
    and rounded to ``decimals`` places.
    """

    w = np.asarray(list(weights), dtype=float)
    if w.size == 0:
        return w
    w = _normalize(w)
    lo, hi = bounds.min_weight, bounds.max_weight

    for _ in range(max(0, int(passes))):
        above = w > hi
        below = w < lo
        if not above.any() and not below.any():
            break
        excess = float((w[above] - hi).sum()) - float((lo - w[below]).sum())
        w = np.clip(w, lo, hi)
        free = (w > lo) & (w < hi)
        count = int(free.sum())
        if count:
            w[free] += excess / count

    w = _normalize(w)
    if decimals is not None:
        w = np.round(w, int(decimals))
    return w


__all__ = ["WeightBounds", "WeightVector", "repair_weights"]
