"""Mark-to-market walk of a fixed book between two rebalance dates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Optional, Tuple

from .data.prices import AssetSeries, DateLike, to_date
from .state.portfolio import PortfolioState, Position


@dataclass(frozen=True)
class DailyPoint:
    date: date
    equity: float
    exposure: float
    drawdown: float
    peak_equity: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "equity": float(self.equity),
            "exposure": float(self.exposure),
            "drawdown": float(self.drawdown),
            "peak_equity": float(self.peak_equity),
        }


@dataclass(frozen=True)
class SimulationResult:
    last_exposure: float
    last_equity: float
    daily_series: Tuple[DailyPoint, ...]
    state: PortfolioState
    used_fallback: bool = False


class _Cursor:
    """Forward-only pointer into one symbol's price series."""

    __slots__ = ("series", "index", "last")

    def __init__(self, series: Optional[AssetSeries]) -> None:
        self.series = series
        self.index = 0
        self.last: Optional[float] = None

    def advance(self, when: date) -> Optional[float]:
        series = self.series
        if series is None:
            return self.last
        while self.index < len(series.dates) and series.dates[self.index] <= when:
            price = series.prices[self.index]
            if math.isfinite(price) and price > 0.0:
                self.last = price
            self.index += 1
        return self.last


def simulate_daily_equity_series(
    state: PortfolioState,
    positions: Mapping[str, Position],
    borrow: float,
    prices: Mapping[str, AssetSeries],
    period_start: DateLike,
    period_end: DateLike,
    fallback_exposure: float,
    fallback_equity: float,
) -> SimulationResult:
    """Walk every trading date in ``[period_start, period_end]`` with fixed quantities.

    Dates come from the union of the held symbols' series inside the window
    plus both endpoints. Each symbol carries its last known price forward, and
    one with no price yet is held at its recorded value. Days on which no
    held symbol has a price are skipped; when that leaves nothing, a single
    point at ``period_start`` built from the fallback values is emitted
    instead. Every emitted equity is appended to the returned state's
    history and ratchets its peak.
    """

    start = to_date(period_start)
    end = to_date(period_end)
    days = {start, end}
    for symbol in positions:
        series = prices.get(symbol)
        if series is None:
            continue
        days.update(d for d in series.dates if start <= d <= end)

    cursors = {symbol: _Cursor(prices.get(symbol)) for symbol in positions}
    peak = state.peak_equity
    points: List[DailyPoint] = []

    for day in sorted(days):
        exposure = 0.0
        priced = False
        for symbol, pos in positions.items():
            price = cursors[symbol].advance(day)
            if price is None:
                exposure += pos.value
            else:
                exposure += pos.quantity * price
                priced = True
        if not priced:
            continue
        equity = exposure - borrow
        drawdown = equity / peak - 1.0 if peak > 0.0 else 0.0
        peak = max(peak, equity)
        points.append(DailyPoint(day, equity, exposure, drawdown, peak))

    if not points:
        peak = max(peak, fallback_equity)
        fallback = DailyPoint(start, float(fallback_equity), float(fallback_exposure), 0.0, peak)
        return SimulationResult(
            last_exposure=float(fallback_exposure),
            last_equity=float(fallback_equity),
            daily_series=(fallback,),
            state=state.with_equity_point(fallback_equity),
            used_fallback=True,
        )

    last = points[-1]
    return SimulationResult(
        last_exposure=last.exposure,
        last_equity=last.equity,
        daily_series=tuple(points),
        state=state.with_equity_points([p.equity for p in points]),
    )


__all__ = ["DailyPoint", "SimulationResult", "simulate_daily_equity_series"]
