"""
Performance metric building blocks: returns, Sharpe, Sortino, drawdown, win rate, profit factor, expectancy.
Assumes period returns (daily for the backtester).
"""

from __future__ import annotations
from typing import List, Optional, Sequence

import numpy as np


def daily_returns(values: Sequence[float]) -> List[float]:
    """Simple returns between consecutive equity values."""
    if len(values) < 2:
        return []
    arr = np.asarray(values, dtype=float)
    prev = arr[:-1]
    rets = np.where(prev != 0, (arr[1:] - prev) / np.where(prev != 0, prev, 1), 0.0)
    return rets.tolist()


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe (population standard deviation). 0 when returns are flat."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def downside_deviation(returns: Sequence[float]) -> float:
    """sqrt(sum(min(r, 0)^2) / N), N counting every period."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    return float(np.sqrt(np.sum(np.minimum(arr, 0.0) ** 2) / len(arr)))


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sortino. 0 when there is no downside."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    dd = downside_deviation(arr)
    if dd <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / dd)


def drawdown_series(values: Sequence[float], initial: Optional[float] = None) -> np.ndarray:
    """Drawdown from the running high-water mark at each point, as a positive fraction."""
    if len(values) == 0:
        return np.array([])
    arr = np.asarray(values, dtype=float)
    peak = np.maximum.accumulate(arr)
    if initial is not None:
        peak = np.maximum(peak, initial)
    return (peak - arr) / np.where(peak != 0, peak, 1)


def max_drawdown(values: Sequence[float], initial: Optional[float] = None) -> float:
    """Max drawdown as a positive fraction (0.15 = 15%)."""
    dd = drawdown_series(values, initial)
    return float(dd.max()) if len(dd) else 0.0


def win_rate(pnls: Sequence[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss. inf with wins and no losses, 0 with neither."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: Sequence[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)
