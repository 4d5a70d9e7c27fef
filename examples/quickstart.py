import numpy as np
import pandas as pd
from leverage_rebalancer import RebalanceConfig, optimize_portfolio, run_backtest
from leverage_rebalancer.data import PriceBook
from leverage_rebalancer.moments import estimate_moments_from_prices

rng = np.random.default_rng(42)
dates = pd.bdate_range("2019-01-01", "2021-12-31")
drift = np.array([0.0005, 0.0007, 0.0002])
vol = np.array([0.010, 0.014, 0.008])
shocks = rng.normal(drift, vol, size=(len(dates), 3))
frame = pd.DataFrame(100.0 * np.exp(np.cumsum(shocks, axis=0)), index=dates, columns=["SPY", "QQQ", "GLD"])

book = PriceBook.from_frame(frame)
cfg = RebalanceConfig(leverage=2.0, min_weight=0.1, max_weight=0.5)

history = book.before("2021-01-01")
moments = estimate_moments_from_prices(
    history.history(), shrinkage=cfg.mean_return_shrinkage, min_history=cfg.min_history_points
)
res = optimize_portfolio(moments.symbols, moments.mean_returns, moments.covariance, cfg.optimizer_config())
print("Sharpe:", round(res.sharpe_ratio, 4), "| Weights:", res.weights.to_dict())

bt = run_backtest(book.between("2021-01-01", "2021-12-31"), cfg, history=history)
m = bt.metrics
print("Rebalances:", m["rebalances"], "| Final equity:", round(m["final_equity"], 2))
print("Leverage:", round(m["final_leverage"], 2), f"({m['leverage_status']})")
