"""Leverage range checks and the corrective actions they suggest."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from ..config import RebalanceConfig
from ..state.portfolio import PortfolioState

_TOLERANCE = 0.01
MIN_REBORROW_INCREASE = 10.0


class LeverageStatus(str, Enum):
    LOW = "low"
    IN_RANGE = "in_range"
    HIGH = "high"


@dataclass(frozen=True)
class Purchase:
    symbol: str
    weight: float
    price: float
    quantity: float
    value: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbol": self.symbol,
            "weight": float(self.weight),
            "price": float(self.price),
            "quantity": float(self.quantity),
            "value": float(self.value),
        }


@dataclass(frozen=True)
class LeverageRecommendation:
    status: LeverageStatus
    leverage: float
    extra_contribution: float = 0.0
    purchases: Tuple[Purchase, ...] = field(default_factory=tuple)

    @property
    def purchase_value(self) -> float:
        return float(sum(p.value for p in self.purchases))

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": self.status.value,
            "leverage": float(self.leverage),
            "extra_contribution": float(self.extra_contribution),
            "purchase_value": self.purchase_value,
            "purchases": [p.to_dict() for p in self.purchases],
        }


def classify_leverage(
    leverage: float,
    min_leverage: float,
    max_leverage: float,
    tolerance: float = _TOLERANCE,
) -> LeverageStatus:
    if leverage < min_leverage - tolerance:
        return LeverageStatus.LOW
    if leverage > max_leverage + tolerance:
        return LeverageStatus.HIGH
    return LeverageStatus.IN_RANGE


def extra_contribution(equity: float, exposure: float, max_leverage: float) -> float:
    """Equity to add so that ``exposure / equity`` falls back to ``max_leverage``."""

    if max_leverage <= 0.0:
        raise ValueError("max_leverage must be positive")
    return max(0.0, exposure / max_leverage - equity)


def reborrow_purchases(
    equity: float,
    exposure: float,
    target_leverage: float,
    weights: Mapping[str, float],
    prices: Mapping[str, Optional[float]],
    *,
    min_increase: float = MIN_REBORROW_INCREASE,
) -> List[Purchase]:
    """Spread the borrowing needed to reach ``target_leverage`` across ``weights``."""

    increase = equity * target_leverage - exposure
    if increase <= min_increase:
        return []
    purchases: List[Purchase] = []
    for symbol, weight in weights.items():
        if weight <= 0.0:
            continue
        price = prices.get(symbol)
        if price is None or not price > 0.0:
            continue
        value = increase * weight
        purchases.append(Purchase(symbol, float(weight), float(price), value / price, value))
    return purchases


def recommend(
    state: PortfolioState,
    config: RebalanceConfig,
    weights: Mapping[str, float],
    prices: Mapping[str, Optional[float]],
) -> LeverageRecommendation:
    leverage = state.leverage
    status = classify_leverage(leverage, config.min_leverage, config.max_leverage)
    if status is LeverageStatus.HIGH:
        extra = extra_contribution(state.equity, state.exposure, config.max_leverage)
        return LeverageRecommendation(status, leverage, extra_contribution=extra)
    if status is LeverageStatus.LOW:
        purchases = reborrow_purchases(
            state.equity, state.exposure, config.leverage, weights, prices
        )
        return LeverageRecommendation(status, leverage, purchases=tuple(purchases))
    return LeverageRecommendation(status, leverage)


__all__ = [
    "LeverageRecommendation",
    "LeverageStatus",
    "Purchase",
    "classify_leverage",
    "extra_contribution",
    "reborrow_purchases",
    "recommend",
]
