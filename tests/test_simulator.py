from datetime import date

import pytest

from leverage_rebalancer.data.prices import AssetSeries
from leverage_rebalancer.simulator import simulate_daily_equity_series
from leverage_rebalancer.state.portfolio import PortfolioState, Position


def _series(symbol, pairs):
    return AssetSeries(symbol, tuple(d for d, _ in pairs), tuple(p for _, p in pairs))


PRICES = {
    "A": _series(
        "A",
        [
            (date(2021, 1, 4), 100.0),
            (date(2021, 1, 5), 110.0),
            (date(2021, 1, 7), 120.0),
            (date(2021, 2, 1), 999.0),
        ],
    ),
    "B": _series(
        "B",
        [
            (date(2021, 1, 4), 50.0),
            (date(2021, 1, 6), 40.0),
            (date(2021, 1, 7), float("nan")),
        ],
    ),
}


def test_carries_last_price_forward_across_gaps() -> None:
    state = PortfolioState(equity=150.0, exposure=150.0, peak_equity=150.0)
    positions = {"A": Position(1.0, 100.0), "B": Position(1.0, 50.0)}
    result = simulate_daily_equity_series(
        state, positions, 0.0, PRICES, date(2021, 1, 4), date(2021, 1, 8), 150.0, 150.0
    )
    assert not result.used_fallback
    days = [p.date for p in result.daily_series]
    assert days == [date(2021, 1, d) for d in (4, 5, 6, 7, 8)]
    equities = [p.equity for p in result.daily_series]
    # B's NaN on the 7th keeps its price from the 6th
    assert equities == pytest.approx([150.0, 160.0, 150.0, 160.0, 160.0])
    assert result.last_equity == pytest.approx(160.0)
    assert result.last_exposure == pytest.approx(160.0)


def test_borrow_is_subtracted_and_peak_ratchets() -> None:
    state = PortfolioState(equity=100.0, exposure=200.0, peak_equity=100.0)
    positions = {"A": Position(2.0, 200.0)}
    result = simulate_daily_equity_series(
        state, positions, 100.0, PRICES, date(2021, 1, 4), date(2021, 1, 7), 200.0, 100.0
    )
    equities = [p.equity for p in result.daily_series]
    assert equities == pytest.approx([100.0, 120.0, 140.0])
    peaks = [p.peak_equity for p in result.daily_series]
    assert peaks == sorted(peaks)
    # drawdown is measured against the peak before the day's update
    assert result.daily_series[-1].drawdown == pytest.approx(140.0 / 120.0 - 1.0)
    assert result.state.peak_equity == pytest.approx(140.0)
    assert result.state.daily_equity_history == pytest.approx(tuple(equities))


def test_prices_after_period_end_are_ignored() -> None:
    state = PortfolioState(equity=100.0, exposure=100.0, peak_equity=100.0)
    result = simulate_daily_equity_series(
        state, {"A": Position(1.0, 100.0)}, 0.0, PRICES, date(2021, 1, 6), date(2021, 1, 31), 0.0, 0.0
    )
    assert all(p.equity < 999.0 for p in result.daily_series)
    assert result.daily_series[-1].date == date(2021, 1, 31)


def test_fallback_point_when_nothing_is_priced() -> None:
    state = PortfolioState(equity=100.0, exposure=150.0, peak_equity=120.0, daily_equity_history=[120.0])
    result = simulate_daily_equity_series(
        state, {"Z": Position(1.0, 150.0)}, 50.0, PRICES, date(2021, 1, 4), date(2021, 1, 8), 150.0, 100.0
    )
    assert result.used_fallback
    assert len(result.daily_series) == 1
    point = result.daily_series[0]
    assert point.date == date(2021, 1, 4)
    assert point.equity == 100.0
    assert point.exposure == 150.0
    assert result.state.daily_equity_history == (120.0, 100.0)
    assert result.state.peak_equity == 120.0


def test_empty_book_uses_fallback() -> None:
    state = PortfolioState.initial(1000.0)
    result = simulate_daily_equity_series(
        state, {}, 0.0, PRICES, date(2021, 1, 4), date(2021, 1, 8), 0.0, 1000.0
    )
    assert result.used_fallback
    assert result.last_equity == 1000.0


def test_points_serialize() -> None:
    state = PortfolioState(equity=100.0, exposure=100.0, peak_equity=100.0)
    result = simulate_daily_equity_series(
        state, {"A": Position(1.0, 100.0)}, 0.0, PRICES, date(2021, 1, 4), date(2021, 1, 4), 0.0, 0.0
    )
    assert result.daily_series[0].to_dict() == {
        "date": "2021-01-04",
        "equity": 100.0,
        "exposure": 100.0,
        "drawdown": 0.0,
        "peak_equity": 100.0,
    }


def test_unpriced_holding_keeps_its_recorded_value() -> None:
    state = PortfolioState(equity=100.0, exposure=160.0, peak_equity=100.0)
    positions = {"A": Position(1.0, 100.0), "Z": Position(2.0, 60.0)}
    result = simulate_daily_equity_series(
        state, positions, 60.0, PRICES, date(2021, 1, 4), date(2021, 1, 5), 160.0, 100.0
    )
    assert [p.equity for p in result.daily_series] == pytest.approx([100.0, 110.0])
    assert [p.exposure for p in result.daily_series] == pytest.approx([160.0, 170.0])
