"""Analytics: metric building blocks and enhanced performance metrics."""

from quant_research.analytics.metrics import (
    daily_returns,
    downside_deviation,
    drawdown_series,
    expectancy,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)
from quant_research.analytics.performance import EnhancedMetrics, PerformanceCalculator

__all__ = [
    "daily_returns",
    "downside_deviation",
    "drawdown_series",
    "expectancy",
    "max_drawdown",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
    "EnhancedMetrics",
    "PerformanceCalculator",
]
