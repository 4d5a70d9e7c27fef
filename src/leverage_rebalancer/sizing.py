"""Target exposure sizing, position allocation and trade planning."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping, Optional

from .state.portfolio import Position

TRADE_THRESHOLD = 1e-4


def calculate_target_exposure(
    new_equity: float,
    current_exposure: float,
    pending_contribution: float,
    deploy_fraction: float,
    *,
    leverage: float,
    min_leverage: float,
) -> float:
    """Ratchet the current exposure toward the leveraged target.

    Exposure only moves up: to the ``min_leverage`` floor unless a pending
    contribution is being held back (no deploy signal and the previous floor
    is still met), and by up to ``pending * leverage * deploy_fraction`` when a
    deploy signal is present. The result never exceeds ``new_equity *
    leverage`` and is never negative.
    """

    desired = new_equity * leverage
    floor = new_equity * min_leverage
    previous_equity = max(new_equity - pending_contribution, 0.0)
    previous_floor = previous_equity * min_leverage

    holding = (
        pending_contribution > 0.0
        and deploy_fraction == 0.0
        and current_exposure >= previous_floor
    )

    target = current_exposure
    if not holding and target < floor:
        target = floor

    if deploy_fraction > 0.0 and pending_contribution > 0.0:
        proposed = current_exposure + pending_contribution * leverage * deploy_fraction
        target = max(target, min(desired, proposed))

    # negative equity would otherwise yield a negative ceiling
    return max(min(target, desired), 0.0)


def calculate_positions(
    target_exposure: float,
    weights: Mapping[str, float],
    prices: Mapping[str, Optional[float]],
) -> Dict[str, Position]:
    positions: Dict[str, Position] = {}
    for symbol, weight in weights.items():
        price = prices.get(symbol)
        if weight <= 0.0 or price is None or not price > 0.0:
            continue
        value = target_exposure * weight
        positions[symbol] = Position(quantity=value / price, value=value)
    return positions


def _tradable(price: Optional[float]) -> bool:
    return price is not None and math.isfinite(price) and price > 0.0


def allocate_priced(
    target_exposure: float,
    weights: Mapping[str, float],
    prices: Mapping[str, Optional[float]],
    held: Mapping[str, Position],
) -> Dict[str, Position]:
    """Spread ``target_exposure`` over the symbols that can trade today.

    Held symbols without a usable price are carried at their current value.
    The remaining exposure goes to the priced symbols with positive weight,
    scaled up by the weight of the unpriced ones, so the returned book is
    worth the target unless the carried holdings alone exceed it. With every
    symbol priced this is plain :func:`calculate_positions`.
    """

    carried = {s: pos for s, pos in held.items() if not _tradable(prices.get(s))}
    remaining = max(target_exposure - sum(pos.value for pos in carried.values()), 0.0)
    wanted = {s: float(w) for s, w in weights.items() if w > 0.0}
    priced = {s: w for s, w in wanted.items() if _tradable(prices.get(s))}
    priced_total = sum(priced.values())
    positions: Dict[str, Position] = {}
    if priced_total > 0.0:
        scale = sum(wanted.values()) / priced_total
        positions = calculate_positions(
            remaining, {s: w * scale for s, w in priced.items()}, prices
        )
    positions.update(carried)
    return positions


def borrow_change(current_exposure: float, target_exposure: float) -> float:
    """Change in borrowed capital needed to move between two exposures.

    Equity is unchanged by a rebalance, so every unit of extra exposure is
    borrowed and every unit sold repays debt.
    """

    return float(target_exposure) - float(current_exposure)


@dataclass(frozen=True)
class TradeInstruction:
    symbol: str
    current_quantity: float
    target_quantity: float
    delta_quantity: float
    delta_value: float
    target_weight: float
    price: float
    action: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _action(delta_quantity: float, threshold: float) -> str:
    if delta_quantity > threshold:
        return "BUY"
    if delta_quantity < -threshold:
        return "SELL"
    return "HOLD"


def plan_trades(
    current_positions: Mapping[str, Position],
    target_positions: Mapping[str, Position],
    prices: Mapping[str, Optional[float]],
    weights: Mapping[str, float],
    *,
    threshold: float = TRADE_THRESHOLD,
) -> List[TradeInstruction]:
    """Per-symbol quantity deltas from the current book to the target book.

    Held symbols absent from the target are sold down to zero; symbols
    without a usable price are left out.
    """

    symbols = list(target_positions)
    symbols += [s for s in current_positions if s not in target_positions]
    trades: List[TradeInstruction] = []
    for symbol in symbols:
        price = prices.get(symbol)
        if price is None or not price > 0.0:
            continue
        current = current_positions.get(symbol)
        target = target_positions.get(symbol)
        cur_qty = current.quantity if current else 0.0
        cur_val = current.value if current else 0.0
        tgt_qty = target.quantity if target else 0.0
        tgt_val = target.value if target else 0.0
        delta = tgt_qty - cur_qty
        trades.append(
            TradeInstruction(
                symbol=symbol,
                current_quantity=cur_qty,
                target_quantity=tgt_qty,
                delta_quantity=delta,
                delta_value=tgt_val - cur_val,
                target_weight=float(weights.get(symbol, 0.0)),
                price=float(price),
                action=_action(delta, threshold),
            )
        )
    return trades


__all__ = [
    "TRADE_THRESHOLD",
    "TradeInstruction",
    "allocate_priced",
    "borrow_change",
    "calculate_positions",
    "calculate_target_exposure",
    "plan_trades",
]
