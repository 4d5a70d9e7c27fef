import pytest

from leverage_rebalancer.sizing import (
    allocate_priced,
    borrow_change,
    calculate_positions,
    calculate_target_exposure,
    plan_trades,
)
from leverage_rebalancer.state.portfolio import Position


def _target(new_equity, current, pending, fraction, leverage=2.0, min_leverage=1.5):
    return calculate_target_exposure(
        new_equity, current, pending, fraction, leverage=leverage, min_leverage=min_leverage
    )


def test_contribution_is_held_without_a_signal() -> None:
    # previous floor is 10000 * 1.5; the book already clears it
    assert _target(11000.0, 20000.0, 1000.0, 0.0) == 20000.0


def test_holding_does_not_apply_when_previous_floor_is_missed() -> None:
    assert _target(11000.0, 14000.0, 1000.0, 0.0) == pytest.approx(16500.0)


def test_floor_applies_without_pending_contribution() -> None:
    assert _target(10000.0, 12000.0, 0.0, 0.0) == pytest.approx(15000.0)
    assert _target(10000.0, 12000.0, 0.0, 0.5) == pytest.approx(15000.0)


def test_partial_deploy_adds_a_fraction_of_the_levered_contribution() -> None:
    assert _target(11000.0, 20000.0, 1000.0, 0.5) == pytest.approx(21000.0)
    assert _target(11000.0, 20000.0, 1000.0, 1.0) == pytest.approx(22000.0)


def test_tiny_deploy_fraction_disables_holding() -> None:
    # any non-zero fraction lifts the floor to the current equity
    assert _target(11000.0, 15200.0, 1000.0, 1e-9) == pytest.approx(16500.0)
    assert _target(11000.0, 15200.0, 1000.0, 0.0) == pytest.approx(15200.0)


def test_partial_deploy_below_floor_uses_floor() -> None:
    assert _target(11000.0, 10000.0, 1000.0, 0.5) == pytest.approx(16500.0)


def test_target_never_exceeds_leveraged_equity() -> None:
    assert _target(11000.0, 21900.0, 1000.0, 1.0) == pytest.approx(22000.0)
    assert _target(10000.0, 25000.0, 0.0, 0.0) == pytest.approx(20000.0)


def test_negative_equity_yields_zero_exposure() -> None:
    assert _target(-500.0, 3000.0, 0.0, 0.0) == 0.0
    assert _target(-500.0, 3000.0, 1000.0, 1.0) == 0.0


def test_calculate_positions_skips_unusable_prices() -> None:
    positions = calculate_positions(
        20000.0,
        {"A": 0.5, "B": 0.3, "C": 0.2, "D": 0.0},
        {"A": 100.0, "B": None, "C": 0.0, "D": 10.0},
    )
    assert set(positions) == {"A"}
    assert positions["A"].value == pytest.approx(10000.0)
    assert positions["A"].quantity == pytest.approx(100.0)


def test_allocate_priced_scales_up_tradable_symbols() -> None:
    positions = allocate_priced(
        20000.0,
        {"A": 0.5, "B": 0.3, "C": 0.2},
        {"A": 100.0, "B": 50.0, "C": None},
        {},
    )
    assert set(positions) == {"A", "B"}
    assert positions["A"].value == pytest.approx(12500.0)
    assert positions["B"].value == pytest.approx(7500.0)
    assert sum(p.value for p in positions.values()) == pytest.approx(20000.0)


def test_allocate_priced_carries_unpriced_holdings() -> None:
    held = {"A": Position(10.0, 1000.0), "B": Position(20.0, 1000.0), "C": Position(5.0, 400.0)}
    positions = allocate_priced(
        3000.0,
        {"A": 0.5, "B": 0.5},
        {"A": 100.0, "B": 0.0, "C": float("nan")},
        held,
    )
    assert positions["B"] == held["B"]
    assert positions["C"] == held["C"]
    assert positions["A"].value == pytest.approx(1600.0)
    assert sum(p.value for p in positions.values()) == pytest.approx(3000.0)


def test_allocate_priced_never_sells_carried_holdings() -> None:
    held = {"B": Position(20.0, 5000.0)}
    positions = allocate_priced(3000.0, {"A": 0.5, "B": 0.5}, {"A": 100.0}, held)
    assert positions["B"] == held["B"]
    assert positions["A"].value == 0.0


def test_borrow_change_tracks_exposure_delta() -> None:
    assert borrow_change(15000.0, 16500.0) == pytest.approx(1500.0)
    assert borrow_change(16500.0, 15000.0) == pytest.approx(-1500.0)


def test_plan_trades_actions() -> None:
    current = {"A": Position(10.0, 1000.0), "B": Position(5.0, 500.0), "C": Position(2.0, 200.0)}
    target = {"A": Position(12.0, 1200.0), "B": Position(5.0, 500.0)}
    prices = {"A": 100.0, "B": 100.0, "C": 100.0}
    trades = {t.symbol: t for t in plan_trades(current, target, prices, {"A": 0.7, "B": 0.3})}
    assert trades["A"].action == "BUY"
    assert trades["A"].delta_quantity == pytest.approx(2.0)
    assert trades["A"].delta_value == pytest.approx(200.0)
    assert trades["B"].action == "HOLD"
    assert trades["C"].action == "SELL"
    assert trades["C"].target_quantity == 0.0
    assert trades["C"].target_weight == 0.0


def test_plan_trades_skips_unpriced_symbols() -> None:
    trades = plan_trades({}, {"A": Position(1.0, 10.0)}, {"A": None}, {"A": 1.0})
    assert trades == []
