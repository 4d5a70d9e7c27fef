"""Sequential period loop tying the estimators, optimizer, signals and simulator together."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import RebalanceConfig
from ..constraints import WeightVector
from ..data.calendars import monthly_schedule, period_end
from ..data.prices import DateLike, PriceBook, to_date
from ..moments import estimate_moments_from_prices
from ..optimizer import OptimizationResult, optimize_portfolio
from ..risk.leverage import LeverageRecommendation, recommend
from ..signals import DeploySignals, calculate_deploy_signals
from ..simulator import DailyPoint, simulate_daily_equity_series
from ..sizing import (
    TradeInstruction,
    allocate_priced,
    borrow_change,
    calculate_target_exposure,
    plan_trades,
)
from ..state.portfolio import PortfolioState, Position
from ..utils import safe_ratio
from .metrics import summarize

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
RebalanceLogCallback = Callable[[Mapping[str, Any]], None]


@dataclass(frozen=True)
class RebalanceEvent:
    """Immutable record of one period's decision."""

    date: date
    period: int
    target_exposure: float
    positions: Mapping[str, Position]
    weights: WeightVector
    signals: DeploySignals
    equity: float
    contribution: float
    pnl: float
    borrow: float
    dynamic: bool
    prices: Mapping[str, float] = field(default_factory=dict)
    trades: Tuple[TradeInstruction, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "positions", MappingProxyType(dict(self.positions)))
        object.__setattr__(self, "prices", MappingProxyType(dict(self.prices)))
        object.__setattr__(self, "trades", tuple(self.trades))

    @property
    def leverage(self) -> float:
        return safe_ratio(self.target_exposure, self.equity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "period": int(self.period),
            "target_exposure": float(self.target_exposure),
            "equity": float(self.equity),
            "leverage": float(self.leverage),
            "contribution": float(self.contribution),
            "pnl": float(self.pnl),
            "borrow": float(self.borrow),
            "dynamic": bool(self.dynamic),
            "weights": self.weights.to_dict(),
            "signals": self.signals.to_dict(),
            "positions": {k: v.to_dict() for k, v in self.positions.items()},
            "prices": {k: float(v) for k, v in self.prices.items()},
            "trades": [t.to_dict() for t in self.trades],
        }


@dataclass(frozen=True)
class BacktestResult:
    events: Tuple[RebalanceEvent, ...]
    daily_series: Tuple[DailyPoint, ...]
    final_state: PortfolioState
    initial_weights: WeightVector
    config: RebalanceConfig
    metrics: Mapping[str, Any] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()
    recommendation: Optional[LeverageRecommendation] = None


def compute_optimal_weights(
    price_history: Mapping[str, Sequence[float]],
    config: RebalanceConfig,
    period: Optional[int] = None,
) -> Optional[OptimizationResult]:
    """Re-optimize weights from accumulated prices, or ``None`` when not permitted.

    ``None`` covers a disabled dynamic mode, a ``period`` before
    ``config.min_periods_for_reoptimization`` and insufficient history (fewer
    than two symbols with ``min_history_points`` prices or an aligned window
    shorter than ``min_aligned_observations``). A returned result may still be
    infeasible; check :attr:`OptimizationResult.feasible`.
    """

    if period is not None:
        if not config.use_dynamic_sharpe_rebalance:
            return None
        if period < config.min_periods_for_reoptimization:
            return None
    qualified = {
        symbol: list(prices)
        for symbol, prices in price_history.items()
        if len(prices) >= config.min_history_points
    }
    if len(qualified) < 2:
        logger.debug("Skipping re-optimization: %d symbols with enough history", len(qualified))
        return None
    moments = estimate_moments_from_prices(
        qualified,
        shrinkage=config.mean_return_shrinkage,
        min_history=1,
        min_window=config.min_aligned_observations,
        min_symbols=2,
    )
    if moments is None:
        logger.debug("Skipping re-optimization: aligned window too short")
        return None
    return optimize_portfolio(
        moments.symbols,
        moments.mean_returns,
        moments.covariance,
        config.optimizer_config(),
    )


def _initial_weights(history: PriceBook, symbols: Sequence[str], config: RebalanceConfig) -> WeightVector:
    result = compute_optimal_weights(history.history(), config)
    if result is not None and result.feasible:
        logger.info("Initial weights optimized (sharpe=%.3f)", result.sharpe_ratio)
        return result.weights.with_symbols(symbols)
    logger.warning("Initial optimization unavailable; starting from equal weights")
    return WeightVector.equal(list(symbols))


def _mark_to_market(
    positions: Mapping[str, Position], prices: Mapping[str, float]
) -> Dict[str, Position]:
    marked: Dict[str, Position] = {}
    for symbol, pos in positions.items():
        price = prices.get(symbol)
        # unpriced holdings keep their last value
        value = pos.quantity * price if price is not None else pos.value
        marked[symbol] = Position(pos.quantity, value)
    return marked


def run_backtest(
    prices: PriceBook,
    config: Optional[RebalanceConfig] = None,
    *,
    history: Optional[PriceBook] = None,
    initial_weights: Optional[Mapping[str, float]] = None,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    initial_capital: float = 10_000.0,
    contribution: float = 1_000.0,
    rebalance_dates: Optional[Sequence[DateLike]] = None,
    rebalance_callback: Optional[RebalanceLogCallback] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> BacktestResult:
    """Run the periodic contribute, score, size and simulate loop.

    Periods are processed strictly in order; each one consumes the state
    produced by the previous one. ``history`` seeds the price history used for
    re-optimization and defaults to the part of ``prices`` before ``start``.
    """

    cfg = config or RebalanceConfig()
    if initial_capital <= 0:
        raise ValueError("initial_capital must be positive")
    if contribution < 0:
        raise ValueError("contribution must be non-negative")
    if not len(prices):
        raise ValueError("prices must contain at least one symbol")

    if rebalance_dates is not None:
        schedule = sorted({to_date(d) for d in rebalance_dates})
    else:
        first = to_date(start) if start is not None else prices.first_date()
        last = to_date(end) if end is not None else prices.last_date()
        if first is None or last is None:
            raise ValueError("prices contain no observations")
        schedule = monthly_schedule(first, last)
    if not schedule:
        raise ValueError("no rebalance dates")

    seed_book = history if history is not None else prices.before(schedule[0])
    symbols = list(prices.symbols)
    if initial_weights is not None:
        weights = WeightVector(initial_weights)
    else:
        weights = _initial_weights(seed_book, symbols, cfg)
    starting_weights = weights

    state = PortfolioState.initial(initial_capital, seed_book.history())
    events: List[RebalanceEvent] = []
    daily: List[DailyPoint] = []
    warnings: List[str] = []
    last_prices: Dict[str, float] = {}
    total = len(schedule)
    if progress_callback is not None:
        progress_callback(0, total)

    for idx, when in enumerate(schedule):
        period = idx + 1
        tracked = list(weights) + [s for s in state.positions if s not in weights]
        found = {
            symbol: price
            for symbol, price in prices.prices_on(tracked, when).items()
            if price is not None and math.isfinite(price) and price > 0.0
        }
        if not found:
            logger.warning("Skipping %s: no prices available", when.isoformat())
            if progress_callback is not None:
                progress_callback(period, total)
            continue
        missing = [s for s in tracked if s not in found and weights.get(s, 0.0) > 0]
        if missing:
            logger.warning("%s: no price for %s", when.isoformat(), ", ".join(missing))
        last_prices.update(found)
        state = state.with_prices(found)

        marked = _mark_to_market(state.positions, found)
        current_exposure = float(sum(p.value for p in marked.values()))

        first_period = not events
        if first_period:
            paid = float(initial_capital)
            pnl = 0.0
            equity = float(initial_capital)
        else:
            paid = float(contribution)
            pnl = current_exposure - state.exposure
            equity = state.equity + pnl + paid

        dynamic = False
        optimized = compute_optimal_weights(state.price_history, cfg, period)
        if optimized is not None:
            if optimized.feasible:
                weights = optimized.weights.with_symbols(weights)
                dynamic = True
                logger.debug("Period %d re-optimized (sharpe=%.3f)", period, optimized.sharpe_ratio)
            else:
                logger.warning("Period %d re-optimization infeasible; keeping prior weights", period)

        state = state.replace(equity=equity, exposure=current_exposure, positions=marked)
        signals = calculate_deploy_signals(state, weights, cfg)

        target = calculate_target_exposure(
            equity,
            current_exposure,
            equity if first_period else paid,
            1.0 if first_period else signals.deploy_fraction,
            leverage=cfg.leverage,
            min_leverage=cfg.min_leverage,
        )
        positions = allocate_priced(target, weights, found, marked)
        if missing or any(s not in found for s in positions):
            # the book can only hold what trades today
            target = float(sum(p.value for p in positions.values()))
        borrow = target - equity
        trades = plan_trades(marked, positions, found, weights)

        sim = simulate_daily_equity_series(
            state,
            positions,
            borrow,
            prices,
            when,
            period_end(schedule, idx),
            target,
            equity,
        )
        daily.extend(sim.daily_series)
        state = sim.state.replace(
            positions=positions, exposure=sim.last_exposure, equity=sim.last_equity
        )

        event = RebalanceEvent(
            date=when,
            period=period,
            target_exposure=target,
            positions=positions,
            weights=weights,
            signals=signals,
            equity=equity,
            contribution=paid,
            pnl=pnl,
            borrow=borrow,
            dynamic=dynamic,
            prices=found,
            trades=tuple(trades),
        )
        events.append(event)
        logger.info(
            "%s equity=%.2f exposure=%.2f borrowed=%+.2f deploy=%.2f%s",
            when.isoformat(),
            equity,
            target,
            borrow_change(current_exposure, target),
            signals.deploy_fraction,
            " dynamic" if dynamic else "",
        )
        if rebalance_callback is not None:
            rebalance_callback(event.to_dict())
        if progress_callback is not None:
            progress_callback(period, total)

    if not events:
        warnings.append("no_rebalances")

    result = BacktestResult(
        events=tuple(events),
        daily_series=tuple(daily),
        final_state=state,
        initial_weights=starting_weights,
        config=cfg,
        warnings=tuple(warnings),
        recommendation=recommend(state, cfg, weights, last_prices) if events else None,
    )
    return replace(result, metrics=summarize(result, cfg.yearly_trading_days, cfg.risk_free_rate))


__all__ = [
    "BacktestResult",
    "RebalanceEvent",
    "compute_optimal_weights",
    "run_backtest",
]
