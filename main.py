#!/usr/bin/env python3
"""
Quant research CLI: backtest | signals
Usage:
  python main.py backtest [--config config.yaml] [--source csv|polygon] [--symbols AAPL,MSFT]
  python main.py signals [--config config.yaml] [--source csv|polygon] [--vix 22 --adx 31]
"""

from __future__ import annotations
import argparse
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from quant_research.analytics.performance import PerformanceCalculator
from quant_research.backtesting.engine import BacktestConfig, run_backtest
from quant_research.backtesting.pipeline import StrategyPipeline
from quant_research.core.config import Config, load_config
from quant_research.core.errors import QuantResearchError
from quant_research.core.logger import setup_logging
from quant_research.data.cache import BarCache, CachedMarketData
from quant_research.data.csv_loader import CsvMarketData
from quant_research.data.polygon import PolygonMarketData
from quant_research.data.provider import MarketDataProvider, fetch_bars
from quant_research.signals.aggregator import aggregate, detect_market_regime
from quant_research.strategies.breakout import BreakoutStrategy
from quant_research.strategies.mean_reversion import MeanReversionStrategy
from quant_research.strategies.momentum import MomentumStrategy

logger = logging.getLogger("quant_research")


def _provider(config: Config, source: str) -> MarketDataProvider:
    if source == "csv":
        inner = CsvMarketData(config.data_dir)
    else:
        inner = PolygonMarketData(config.require_market_data_key(), timeout=config.request_timeout)
    return CachedMarketData(inner, BarCache(ttl_seconds=config.cache_ttl_seconds))


def _symbols(config: Config, override: Optional[str]) -> List[str]:
    if override:
        return [s.strip().upper() for s in override.split(",") if s.strip()]
    return config.symbols


def _date(value: Optional[str], fallback: datetime) -> datetime:
    return datetime.fromisoformat(str(value)) if value else fallback


def run_backtest_cmd(args: argparse.Namespace) -> int:
    """Run the three-strategy pipeline over historical daily bars."""
    config = load_config(args.config, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file, config.log_event_level)
    symbols = _symbols(config, args.symbols)
    if not symbols:
        logger.error("No symbols configured. Set `symbols` in config.yaml, SYMBOLS in .env, or --symbols")
        return 1
    end = _date(args.end or config.backtest_end, datetime.now().replace(hour=0, minute=0, second=0, microsecond=0))
    start = _date(args.start or config.backtest_start, end - timedelta(days=365))
    bt_config = BacktestConfig(
        strategy_name="momentum+mean_reversion+breakout",
        start_date=start,
        end_date=end,
        symbols=tuple(symbols),
        initial_capital=config.backtest_initial_capital,
        commission=config.commission,
        slippage=config.slippage,
        risk_limits=config.risk_limits,
        warmup_days=config.warmup_days,
        timeframe=config.timeframe,
    )
    pipeline = StrategyPipeline(
        momentum=MomentumStrategy(config.momentum),
        mean_reversion=MeanReversionStrategy(config.mean_reversion),
        breakout=BreakoutStrategy(config.breakout),
        weights=config.weights,
        risk_limits=config.risk_limits,
        min_confidence=config.min_confidence,
    )
    result = run_backtest(bt_config, pipeline, provider=_provider(config, args.source))
    s = result.summary
    m = PerformanceCalculator().calculate(result)
    print("\n--- Backtest Results ---")
    print(f"Period: {start.date()} to {end.date()} ({len(result.equity_curve)} trading days)")
    print(f"Total trades: {s.total_trades} (wins: {s.winning_trades}, losses: {s.losing_trades})")
    print(f"Total return: {s.total_return * 100:.2f}% (${s.total_return_dollar:,.2f})")
    print(f"Sharpe ratio: {s.sharpe_ratio:.2f}")
    print(f"Sortino ratio: {m.sortino_ratio:.2f}")
    print(f"Max drawdown: {s.max_drawdown * 100:.2f}% (${s.max_drawdown_dollar:,.2f})")
    print(f"Calmar ratio: {s.calmar_ratio:.2f}")
    print(f"Win rate: {s.win_rate * 100:.1f}%")
    print(f"Profit factor: {s.profit_factor:.2f}")
    print(f"Avg trade: {s.avg_trade:.2f} USD")
    print(f"VaR 95%: {m.value_at_risk_95 * 100:.2f}%  CVaR 95%: {m.conditional_var_95 * 100:.2f}%")
    print(f"Ulcer index: {m.ulcer_index:.2f}")
    print(f"Monthly win rate: {m.monthly_win_rate * 100:.1f}% ({m.profitable_months}/{m.total_months})")
    if result.kill_switch_events:
        print(f"Kill switch events: {len(result.kill_switch_events)}")
    return 0


def run_signals_cmd(args: argparse.Namespace) -> int:
    """Evaluate all strategies on the latest bars and print aggregated signals."""
    config = load_config(args.config, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file, config.log_event_level)
    symbols = _symbols(config, args.symbols)
    if not symbols:
        logger.error("No symbols configured. Set `symbols` in config.yaml, SYMBOLS in .env, or --symbols")
        return 1
    end = datetime.now()
    start = end - timedelta(days=args.lookback_days)
    bars = fetch_bars(_provider(config, args.source), symbols, start, end, config.timeframe)

    weights = config.weights
    if args.vix is not None or args.adx is not None:
        weights = detect_market_regime(
            args.vix if args.vix is not None else 20.0,
            args.adx if args.adx is not None else 25.0,
        )
        logger.info("Regime weights: momentum=%.2f mean_reversion=%.2f breakout=%.2f",
                    weights.momentum, weights.mean_reversion, weights.breakout)

    capital = args.capital or config.backtest_initial_capital
    decisions = aggregate(
        MomentumStrategy(config.momentum).evaluate(bars, capital),
        MeanReversionStrategy(config.mean_reversion).evaluate(bars, capital),
        BreakoutStrategy(config.breakout).evaluate(bars, capital),
        weights,
        config.min_confidence,
    )
    if not decisions:
        print("No signals above confidence threshold.")
        return 0
    print("\n--- Signals ---")
    for d in decisions:
        print(f"{d.symbol:<6} {d.action.value.upper():<4} qty={d.quantity:<6} conf={d.confidence:.2f}  "
              f"{d.reasoning.final_decision}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Quant research CLI")
    parser.add_argument("mode", choices=["backtest", "signals"], help="Run a backtest or print current signals")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--source", choices=["csv", "polygon"], default="csv",
                        help="Bars from CSV files (market_data.data_dir) or Polygon.io")
    parser.add_argument("--symbols", default=None, help="Comma-separated symbols (overrides config)")
    parser.add_argument("--start", default=None, help="Backtest start date (YYYY-MM-DD)")
    parser.add_argument("--end", default=None, help="Backtest end date (YYYY-MM-DD)")
    parser.add_argument("--lookback-days", type=int, default=180, help="History fetched for signals")
    parser.add_argument("--capital", type=float, default=None, help="Capital used for signal sizing")
    parser.add_argument("--vix", type=float, default=None, help="Volatility index for regime weights")
    parser.add_argument("--adx", type=float, default=None, help="Market ADX for regime weights")
    args = parser.parse_args()
    try:
        if args.mode == "backtest":
            return run_backtest_cmd(args)
        return run_signals_cmd(args)
    except QuantResearchError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
