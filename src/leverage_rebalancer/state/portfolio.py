"""Immutable portfolio state threaded through the rebalance loop."""
from __future__ import annotations

from dataclasses import dataclass, field, replace as _dc_replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Position:
    quantity: float
    value: float

    def to_dict(self) -> Dict[str, float]:
        return {"quantity": float(self.quantity), "value": float(self.value)}


def _freeze_positions(positions: Optional[Mapping[str, Any]]) -> Mapping[str, Position]:
    frozen: Dict[str, Position] = {}
    for symbol, pos in (positions or {}).items():
        if isinstance(pos, Position):
            frozen[str(symbol)] = pos
        elif isinstance(pos, Mapping):
            frozen[str(symbol)] = Position(float(pos["quantity"]), float(pos["value"]))
        else:
            quantity, value = pos
            frozen[str(symbol)] = Position(float(quantity), float(value))
    return MappingProxyType(frozen)


def _freeze_history(history: Optional[Mapping[str, Iterable[float]]]) -> Mapping[str, Tuple[float, ...]]:
    return MappingProxyType(
        {str(symbol): tuple(float(p) for p in prices) for symbol, prices in (history or {}).items()}
    )


@dataclass(frozen=True)
class PortfolioState:
    """Snapshot of equity, exposure and history at a period boundary.

    Instances are never mutated; every update returns a new state so the
    single loop driver owns the only live reference.
    """

    equity: float
    exposure: float
    peak_equity: float
    positions: Mapping[str, Position] = field(default_factory=dict)
    daily_equity_history: Tuple[float, ...] = ()
    price_history: Mapping[str, Tuple[float, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "equity", float(self.equity))
        object.__setattr__(self, "exposure", float(self.exposure))
        object.__setattr__(self, "peak_equity", float(self.peak_equity))
        object.__setattr__(self, "positions", _freeze_positions(self.positions))
        object.__setattr__(
            self, "daily_equity_history", tuple(float(x) for x in self.daily_equity_history)
        )
        object.__setattr__(self, "price_history", _freeze_history(self.price_history))

    @classmethod
    def initial(
        cls,
        capital: float,
        price_history: Optional[Mapping[str, Iterable[float]]] = None,
    ) -> "PortfolioState":
        return cls(
            equity=capital,
            exposure=0.0,
            peak_equity=capital,
            positions={},
            daily_equity_history=(),
            price_history=price_history or {},
        )

    def replace(self, **changes: Any) -> "PortfolioState":
        return _dc_replace(self, **changes)

    def with_equity_point(self, equity: float) -> "PortfolioState":
        """Append a daily equity observation and ratchet the peak."""

        value = float(equity)
        return _dc_replace(
            self,
            daily_equity_history=self.daily_equity_history + (value,),
            peak_equity=max(self.peak_equity, value),
        )

    def with_equity_points(self, values: Sequence[float]) -> "PortfolioState":
        if not values:
            return self
        values = tuple(float(v) for v in values)
        return _dc_replace(
            self,
            daily_equity_history=self.daily_equity_history + values,
            peak_equity=max(self.peak_equity, max(values)),
        )

    def with_prices(self, prices: Mapping[str, float]) -> "PortfolioState":
        """Append one observation per symbol to ``price_history``."""

        history = {symbol: list(values) for symbol, values in self.price_history.items()}
        for symbol, price in prices.items():
            history.setdefault(symbol, []).append(float(price))
        return _dc_replace(self, price_history=history)

    @property
    def leverage(self) -> float:
        if self.equity > 0.0:
            return self.exposure / self.equity
        return 0.0

    @property
    def borrow(self) -> float:
        return self.exposure - self.equity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equity": self.equity,
            "exposure": self.exposure,
            "peak_equity": self.peak_equity,
            "leverage": self.leverage,
            "borrow": self.borrow,
            "positions": {k: v.to_dict() for k, v in self.positions.items()},
        }


__all__ = ["Position", "PortfolioState"]
