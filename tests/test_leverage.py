import pytest

from leverage_rebalancer.config import RebalanceConfig
from leverage_rebalancer.risk import (
    LeverageStatus,
    classify_leverage,
    extra_contribution,
    reborrow_purchases,
    recommend,
)
from leverage_rebalancer.state import PortfolioState

WEIGHTS = {"A": 0.6, "B": 0.4}
PRICES = {"A": 100.0, "B": 50.0}


def test_classify_leverage_with_tolerance() -> None:
    assert classify_leverage(1.495, 1.5, 2.5) is LeverageStatus.IN_RANGE
    assert classify_leverage(1.4, 1.5, 2.5) is LeverageStatus.LOW
    assert classify_leverage(2.505, 1.5, 2.5) is LeverageStatus.IN_RANGE
    assert classify_leverage(2.6, 1.5, 2.5) is LeverageStatus.HIGH


def test_extra_contribution_restores_max_leverage() -> None:
    assert extra_contribution(1000.0, 3000.0, 2.5) == pytest.approx(200.0)
    assert extra_contribution(1000.0, 2000.0, 2.5) == 0.0
    with pytest.raises(ValueError):
        extra_contribution(1000.0, 2000.0, 0.0)


def test_reborrow_purchases_follow_weights() -> None:
    purchases = reborrow_purchases(1000.0, 1200.0, 2.0, WEIGHTS, {"A": 100.0, "B": 50.0})
    assert [p.symbol for p in purchases] == ["A", "B"]
    assert sum(p.value for p in purchases) == pytest.approx(800.0)
    assert purchases[1].quantity == pytest.approx(320.0 / 50.0)


def test_reborrow_skips_small_increases_and_bad_prices() -> None:
    assert reborrow_purchases(1000.0, 1995.0, 2.0, WEIGHTS, PRICES) == []
    purchases = reborrow_purchases(1000.0, 1200.0, 2.0, WEIGHTS, {"A": None, "B": 50.0})
    assert [p.symbol for p in purchases] == ["B"]


def test_recommend_high_leverage() -> None:
    state = PortfolioState(equity=1000.0, exposure=3000.0, peak_equity=1000.0)
    advice = recommend(state, RebalanceConfig(), WEIGHTS, PRICES)
    assert advice.status is LeverageStatus.HIGH
    assert advice.extra_contribution == pytest.approx(200.0)
    assert advice.purchases == ()


def test_recommend_low_leverage() -> None:
    state = PortfolioState(equity=1000.0, exposure=1200.0, peak_equity=1000.0)
    advice = recommend(state, RebalanceConfig(), WEIGHTS, PRICES)
    assert advice.status is LeverageStatus.LOW
    assert advice.purchase_value == pytest.approx(800.0)
    payload = advice.to_dict()
    assert payload["status"] == "low"
    assert len(payload["purchases"]) == 2


def test_recommend_in_range() -> None:
    state = PortfolioState(equity=1000.0, exposure=2000.0, peak_equity=1000.0)
    advice = recommend(state, RebalanceConfig(), WEIGHTS, PRICES)
    assert advice.status is LeverageStatus.IN_RANGE
    assert advice.extra_contribution == 0.0
    assert advice.purchase_value == 0.0
