"""Leverage rebalancer public API."""
from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:  # runtime package version
    __version__ = version("leverage-rebalancer")
except PackageNotFoundError:  # editable/dev env
    __version__ = "0.0.0+local"

from .config import OptimizerConfig, RebalanceConfig
from .constraints import WeightBounds, WeightVector
from .optimizer import OptimizationResult, optimize_portfolio
from .signals import DeploySignals, calculate_deploy_signals
from .simulator import DailyPoint, SimulationResult, simulate_daily_equity_series
from .sizing import allocate_priced, calculate_positions, calculate_target_exposure
from .state.portfolio import PortfolioState, Position
from .backtest.engine import BacktestResult, RebalanceEvent, run_backtest

__all__ = [
    "BacktestResult",
    "DailyPoint",
    "DeploySignals",
    "OptimizationResult",
    "OptimizerConfig",
    "PortfolioState",
    "Position",
    "RebalanceConfig",
    "RebalanceEvent",
    "SimulationResult",
    "WeightBounds",
    "WeightVector",
    "__version__",
    "allocate_priced",
    "calculate_deploy_signals",
    "calculate_positions",
    "calculate_target_exposure",
    "optimize_portfolio",
    "run_backtest",
    "simulate_daily_equity_series",
]
