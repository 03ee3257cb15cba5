"""
Enhanced performance analytics over a finished backtest: risk-adjusted ratios,
streaks, monthly consistency, tail risk, ulcer index and drawdown recovery.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np
import pandas as pd

from quant_research.analytics.metrics import daily_returns, drawdown_series, sharpe_ratio, sortino_ratio

if TYPE_CHECKING:
    from quant_research.backtesting.engine import BacktestResult, EquityPoint
    from quant_research.core.types import Trade


@dataclass(frozen=True)
class EnhancedMetrics:
    sortino_ratio: float
    information_ratio: float
    treynor_ratio: float
    largest_win: float
    largest_loss: float
    average_win_streak: float
    average_loss_streak: float
    current_streak: int
    longest_win_streak: int
    longest_loss_streak: int
    avg_holding_period: float
    profitable_months: int
    total_months: int
    monthly_win_rate: float
    value_at_risk_95: float
    conditional_var_95: float
    value_at_risk_99: float
    conditional_var_99: float
    ulcer_index: float
    stability_of_return: float
    consistency_score: float
    avg_recovery_days: float
    max_recovery_days: float


class PerformanceCalculator:
    """Computes EnhancedMetrics from a BacktestResult. Stateless apart from the annualization factor."""

    def __init__(self, periods_per_year: float = 252.0):
        self.periods_per_year = periods_per_year

    def calculate(self, result: "BacktestResult") -> EnhancedMetrics:
        values = [p.value for p in result.equity_curve]
        returns = daily_returns(values)
        pnls = [t.pnl for t in result.trades]
        win_streaks = _streaks(pnls, winning=True)
        loss_streaks = _streaks(pnls, winning=False)
        monthly = monthly_returns(result.equity_curve, result.config.initial_capital)
        profitable = sum(1 for r in monthly if r > 0)
        monthly_win_rate = profitable / len(monthly) if monthly else 0.0
        var95, cvar95 = value_at_risk(returns, 0.95)
        var99, cvar99 = value_at_risk(returns, 0.99)
        recoveries = recovery_days(result.equity_curve, result.config.initial_capital)

        return EnhancedMetrics(
            sortino_ratio=sortino_ratio(returns, periods_per_year=self.periods_per_year),
            # Zero benchmark: excess return equals the strategy return.
            information_ratio=sharpe_ratio(returns, periods_per_year=self.periods_per_year),
            treynor_ratio=treynor_ratio(result.summary.total_return, result.duration_days),
            largest_win=max((p for p in pnls if p > 0), default=0.0),
            largest_loss=min((p for p in pnls if p < 0), default=0.0),
            average_win_streak=float(np.mean(win_streaks)) if win_streaks else 0.0,
            average_loss_streak=float(np.mean(loss_streaks)) if loss_streaks else 0.0,
            current_streak=current_streak(pnls),
            longest_win_streak=max(win_streaks) if win_streaks else 0,
            longest_loss_streak=max(loss_streaks) if loss_streaks else 0,
            avg_holding_period=_avg_holding(result.trades),
            profitable_months=profitable,
            total_months=len(monthly),
            monthly_win_rate=monthly_win_rate,
            value_at_risk_95=var95,
            conditional_var_95=cvar95,
            value_at_risk_99=var99,
            conditional_var_99=cvar99,
            ulcer_index=ulcer_index(values, result.config.initial_capital),
            stability_of_return=stability_of_return(monthly),
            consistency_score=monthly_win_rate * 100.0,
            avg_recovery_days=float(np.mean(recoveries)) if recoveries else 0.0,
            max_recovery_days=float(max(recoveries)) if recoveries else 0.0,
        )


def treynor_ratio(total_return: float, duration_days: int) -> float:
    """Annualized return per unit of beta, with beta taken as 1."""
    years = duration_days / 365.0
    if years <= 0:
        return 0.0
    growth = 1.0 + total_return
    if growth <= 0:
        return -1.0
    return growth ** (1.0 / years) - 1.0


def value_at_risk(returns: Sequence[float], confidence: float) -> Tuple[float, float]:
    """
    Empirical (VaR, CVaR) of period returns at the given confidence.
    VaR is the sorted return at floor((1 - c) * n); CVaR averages the tail up to and including it.
    """
    if not returns:
        return 0.0, 0.0
    ordered = np.sort(np.asarray(returns, dtype=float))
    index = min(int(math.floor((1.0 - confidence) * len(ordered))), len(ordered) - 1)
    return float(ordered[index]), float(ordered[: index + 1].mean())


def ulcer_index(values: Sequence[float], initial: float) -> float:
    """Root mean square of percentage drawdowns from the running peak."""
    dd = drawdown_series(values, initial) * 100.0
    if len(dd) == 0:
        return 0.0
    return float(np.sqrt(np.mean(dd ** 2)))


def monthly_returns(equity_curve: Sequence["EquityPoint"], initial: float) -> List[float]:
    """Returns between month-end equity values, starting from the initial capital."""
    if not equity_curve:
        return []
    series = pd.Series(
        [p.value for p in equity_curve],
        index=pd.DatetimeIndex([p.date for p in equity_curve]),
    )
    month_end = series.groupby(series.index.to_period("M")).last()
    values = [initial] + month_end.tolist()
    return daily_returns(values)


def stability_of_return(monthly: Sequence[float]) -> float:
    """Mean over population standard deviation of monthly returns; 0 unless the mean is positive."""
    if not monthly:
        return 0.0
    arr = np.asarray(monthly, dtype=float)
    mean, std = arr.mean(), arr.std()
    if mean <= 0 or std <= 1e-12:
        return 0.0
    return float(mean / std)


def recovery_days(equity_curve: Sequence["EquityPoint"], initial: float) -> List[float]:
    """Calendar days from the first underwater point of each drawdown to a new high."""
    out: List[float] = []
    hwm = initial
    underwater_since = None
    for point in equity_curve:
        if point.value > hwm:
            if underwater_since is not None:
                out.append((point.date - underwater_since).total_seconds() / 86400.0)
                underwater_since = None
            hwm = point.value
        elif point.value < hwm and underwater_since is None:
            underwater_since = point.date
    return out


def current_streak(pnls: Sequence[float]) -> int:
    """Length of the trailing run of wins (positive) or non-wins (negative)."""
    if not pnls:
        return 0
    winning = pnls[-1] > 0
    n = 0
    for p in reversed(pnls):
        if (p > 0) != winning:
            break
        n += 1
    return n if winning else -n


def _streaks(pnls: Sequence[float], winning: bool) -> List[int]:
    out: List[int] = []
    run = 0
    for p in pnls:
        hit = p > 0 if winning else p < 0
        if hit:
            run += 1
        elif run:
            out.append(run)
            run = 0
    if run:
        out.append(run)
    return out


def _avg_holding(trades: Sequence["Trade"]) -> float:
    if not trades:
        return 0.0
    return sum(t.holding_period_days for t in trades) / len(trades)
