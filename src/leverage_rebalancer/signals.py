"""Drawdown, weight-deviation and realized-volatility deploy signals."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

from .config import RebalanceConfig
from .state.portfolio import PortfolioState, Position
from .utils import annualized_volatility, log_returns


@dataclass(frozen=True)
class DeploySignals:
    drawdown: float
    weight_deviation: float
    realized_volatility: Optional[float]
    drawdown_triggered: bool
    weight_deviation_triggered: bool
    volatility_triggered: bool
    deploy_fraction: float

    @property
    def triggered(self) -> bool:
        return self.drawdown_triggered or self.weight_deviation_triggered or self.volatility_triggered

    def reasons(self) -> Tuple[str, ...]:
        out = []
        if self.drawdown_triggered:
            out.append("drawdown")
        if self.weight_deviation_triggered:
            out.append("weight_deviation")
        if self.volatility_triggered:
            out.append("volatility")
        return tuple(out)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def compute_drawdown(equity: float, peak_equity: float) -> float:
    if peak_equity > 0.0:
        return float(equity) / float(peak_equity) - 1.0
    return 0.0


def compute_weight_deviation(
    positions: Mapping[str, Position],
    exposure: float,
    target_weights: Mapping[str, float],
) -> float:
    """Largest absolute gap between a held position's weight and its target."""

    if exposure <= 0.0 or not positions:
        return 0.0
    worst = 0.0
    for symbol, pos in positions.items():
        gap = abs(pos.value / exposure - float(target_weights.get(symbol, 0.0)))
        worst = max(worst, gap)
    return worst


def realized_volatility(
    equity_history: Sequence[float], lookback_days: int, trading_days: int
) -> Optional[float]:
    """Annualized volatility of the trailing ``lookback_days + 1`` equity points."""

    if len(equity_history) < 2:
        return None
    window = list(equity_history)[-min(lookback_days + 1, len(equity_history)):]
    return annualized_volatility(log_returns(window), trading_days)


def calculate_deploy_signals(
    state: PortfolioState,
    target_weights: Mapping[str, float],
    config: RebalanceConfig,
) -> DeploySignals:
    """Score the current state.

    A drawdown breach sets the deploy fraction on its own and the other two
    triggers are not evaluated. Otherwise weight deviation and low realized
    volatility are checked independently and may both fire. Any positive
    fraction is capped at ``config.gradual_deploy_factor``.
    """

    drawdown = compute_drawdown(state.equity, state.peak_equity)
    deviation = compute_weight_deviation(state.positions, state.exposure, target_weights)
    vol = realized_volatility(
        state.daily_equity_history,
        config.volatility_lookback_days,
        config.yearly_trading_days,
    )

    fraction = 0.0
    dd_hit = dev_hit = vol_hit = False
    if drawdown <= -config.drawdown_redeploy_threshold:
        fraction = 1.0
        dd_hit = True
    else:
        if deviation >= config.weight_deviation_threshold:
            fraction = 1.0
            dev_hit = True
        if vol is not None and vol <= config.volatility_redeploy_threshold:
            fraction = 1.0
            vol_hit = True

    if fraction > 0.0:
        fraction = min(fraction, config.gradual_deploy_factor)

    return DeploySignals(
        drawdown=float(drawdown),
        weight_deviation=float(deviation),
        realized_volatility=None if vol is None else float(vol),
        drawdown_triggered=dd_hit,
        weight_deviation_triggered=dev_hit,
        volatility_triggered=vol_hit,
        deploy_fraction=float(fraction),
    )


__all__ = [
    "DeploySignals",
    "calculate_deploy_signals",
    "compute_drawdown",
    "compute_weight_deviation",
    "realized_volatility",
]
