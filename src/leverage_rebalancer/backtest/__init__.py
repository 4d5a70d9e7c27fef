"""Backtesting utilities for the leverage rebalancer."""

from .engine import BacktestResult, RebalanceEvent, compute_optimal_weights, run_backtest
from .metrics import compute_drawdown_events, max_drawdown, summarize

__all__ = [
    "BacktestResult",
    "RebalanceEvent",
    "compute_drawdown_events",
    "compute_optimal_weights",
    "max_drawdown",
    "run_backtest",
    "summarize",
]
