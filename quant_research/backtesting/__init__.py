"""Backtesting: day-by-day simulation with slippage, commission and kill switches."""

from quant_research.backtesting.engine import (
    BacktestConfig,
    BacktestEngine,
    BacktestResult,
    BacktestSummary,
    DrawdownPoint,
    EquityPoint,
    KillSwitchEvent,
    PortfolioSnapshot,
    run_backtest,
    summarize,
)
from quant_research.backtesting.pipeline import StrategyPipeline

__all__ = [
    "BacktestConfig",
    "BacktestEngine",
    "BacktestResult",
    "BacktestSummary",
    "DrawdownPoint",
    "EquityPoint",
    "KillSwitchEvent",
    "PortfolioSnapshot",
    "run_backtest",
    "summarize",
    "StrategyPipeline",
]
