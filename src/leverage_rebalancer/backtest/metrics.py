"""Performance statistics over a simulated equity curve."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..risk.leverage import classify_leverage
from ..utils import log_returns, sample_std

if TYPE_CHECKING:  # pragma: no cover
    from .engine import BacktestResult

_EPS = 1e-12


def _drawdown_curve(curve: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    running_peak = np.maximum.accumulate(curve)
    drawdown = 1.0 - np.divide(
        curve,
        running_peak,
        out=np.ones_like(curve),
        where=running_peak > 0,
    )
    # a non-positive peak carries no meaningful drawdown
    drawdown = np.where(running_peak > 0, drawdown, 0.0)
    return running_peak, drawdown


def max_drawdown(equity_curve: Sequence[float]) -> float:
    """Return the maximum drawdown (as a positive fraction) of the equity curve."""

    equity = np.asarray(equity_curve, dtype=float)
    if equity.size == 0:
        return 0.0
    _, drawdown = _drawdown_curve(equity)
    return float(np.max(drawdown))


def compute_drawdown_events(equity: Sequence[float], dates: Sequence[Any]) -> List[Dict[str, Any]]:
    """Peak-to-recovery drawdown episodes; unrecovered episodes have ``recovery=None``."""

    curve = np.asarray(equity, dtype=float)
    if curve.size == 0:
        return []
    if len(dates) != curve.size:
        raise ValueError("Dates length must match equity length")
    running_peak, drawdown = _drawdown_curve(curve)

    def _event(peak_idx: int, trough_idx: int, end_idx: Optional[int]) -> Dict[str, Any]:
        peak_val = running_peak[peak_idx]
        trough_val = curve[trough_idx]
        depth = 0.0 if peak_val <= 0 else float(1.0 - trough_val / peak_val)
        length = (end_idx if end_idx is not None else curve.size) - peak_idx
        return {
            "peak": dates[peak_idx],
            "trough": dates[trough_idx],
            "recovery": dates[end_idx] if end_idx is not None else None,
            "depth": depth,
            "length": int(length),
        }

    events: List[Dict[str, Any]] = []
    in_drawdown = False
    peak_idx = trough_idx = 0
    trough_depth = 0.0
    for idx, depth in enumerate(drawdown):
        if depth > _EPS:
            if not in_drawdown:
                in_drawdown = True
                peak_idx = max(idx - 1, 0)
                trough_idx = idx
                trough_depth = float(depth)
            elif depth > trough_depth + _EPS:
                trough_idx = idx
                trough_depth = float(depth)
        elif in_drawdown:
            events.append(_event(peak_idx, trough_idx, idx))
            in_drawdown = False
            trough_depth = 0.0
    if in_drawdown:
        events.append(_event(peak_idx, trough_idx, None))
    return events


def annualized_return_stats(
    equity_curve: Sequence[float], trading_days: int, risk_free_rate: float
) -> Dict[str, Optional[float]]:
    """Annualized mean, volatility and Sharpe of daily log returns of equity."""

    rets = log_returns(equity_curve)
    if rets.size < 2:
        return {"ann_return": None, "ann_vol": None, "sharpe": None}
    ann_return = float(rets.mean()) * trading_days
    ann_vol = sample_std(rets) * math.sqrt(trading_days)
    sharpe = (ann_return - risk_free_rate) / ann_vol if ann_vol > 0 else None
    return {"ann_return": ann_return, "ann_vol": ann_vol, "sharpe": sharpe}


def summarize(result: "BacktestResult", trading_days: int, risk_free_rate: float) -> Dict[str, Any]:
    """Headline numbers for a finished backtest."""

    series = result.daily_series
    equity = [p.equity for p in series]
    dates = [p.date.isoformat() for p in series]
    final = result.final_state
    contributions = float(sum(e.contribution for e in result.events))
    total_return = (final.equity / contributions - 1.0) if contributions > 0 else None
    stats = annualized_return_stats(equity, trading_days, risk_free_rate)
    config = result.config
    advice = result.recommendation

    return {
        "final_equity": final.equity,
        "final_exposure": final.exposure,
        "final_leverage": final.leverage,
        "total_contributions": contributions,
        "total_return": total_return,
        "max_drawdown": max_drawdown(equity),
        "drawdown_events": compute_drawdown_events(equity, dates),
        "ann_return": stats["ann_return"],
        "ann_vol": stats["ann_vol"],
        "sharpe": stats["sharpe"],
        "rebalances": len(result.events),
        "dynamic_reoptimizations": sum(1 for e in result.events if e.dynamic),
        "deploy_triggers": sum(1 for e in result.events if e.signals.deploy_fraction > 0),
        "leverage_status": classify_leverage(
            final.leverage, config.min_leverage, config.max_leverage
        ).value,
        "extra_contribution": advice.extra_contribution if advice else 0.0,
        "reborrow_value": advice.purchase_value if advice else 0.0,
    }


__all__ = [
    "annualized_return_stats",
    "compute_drawdown_events",
    "max_drawdown",
    "summarize",
]
