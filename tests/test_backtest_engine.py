"""Tests for backtesting.engine and backtesting.pipeline."""

import threading
from datetime import datetime

import pandas as pd
import pytest

from quant_research.backtesting.engine import BacktestConfig, BacktestEngine, run_backtest
from quant_research.backtesting.pipeline import StrategyPipeline
from quant_research.core.errors import ConfigurationError, KillSwitchTriggered, MarketDataFetchError
from quant_research.core.events import RecordingEventSink
from quant_research.core.types import (
    ExitReason,
    KillSwitchAction,
    RiskLimits,
    SignalAction,
    StrategySignal,
)
from quant_research.data.provider import MarketDataProvider
from quant_research.risk.manager import KillSwitchResult

DAY0 = datetime(2024, 1, 1)


def _config(end_day=5, **kwargs):
    params = dict(
        strategy_name="test",
        start_date=DAY0,
        end_date=datetime(2024, 1, end_day),
        symbols=("AAA",),
        initial_capital=10000.0,
        commission=0.0,
        slippage=0.0,
        risk_limits=RiskLimits(trailing_stop_enabled=False),
    )
    params.update(kwargs)
    return BacktestConfig(**params)


def _buy(symbol="AAA", quantity=10, stop=None, target=None):
    return StrategySignal(action=SignalAction.BUY, symbol=symbol, quantity=quantity,
                          confidence=0.9, reason="test", stop_loss=stop, take_profit=target)


def _sell(symbol="AAA"):
    return StrategySignal(action=SignalAction.SELL, symbol=symbol, quantity=0,
                          confidence=0.9, reason="test")


def _script(orders_by_day):
    """Strategy function replaying fixed orders keyed by day offset."""
    def fn(day, history, portfolio):
        return orders_by_day.get((day - DAY0).days, [])
    return fn


def test_round_trip_costs(make_bars):
    data = {"AAA": make_bars([100.0] * 5)}
    result = run_backtest(_config(commission=1.0, slippage=0.001), _script({0: [_buy()]}), market_data=data)
    assert len(result.trades) == 1
    t = result.trades[0]
    assert t.entry_price == pytest.approx(100.1)
    assert t.exit_price == pytest.approx(99.9)
    assert t.pnl == pytest.approx(-4.0)
    assert t.commission == pytest.approx(2.0)
    assert t.slippage == pytest.approx(2.0)
    assert t.exit_reason == ExitReason.END_OF_BACKTEST
    assert t.holding_period_days == 4
    assert result.equity_curve[0].value == pytest.approx(9998.0)
    assert result.equity_curve[-1].value == pytest.approx(9996.0)
    assert result.summary.total_return_dollar == pytest.approx(-4.0)


def test_stop_loss_exit(make_bars):
    data = {"AAA": make_bars([100.0, 96.0, 96.0], lows=[99.0, 94.0, 95.0], highs=[101.0, 101.0, 97.0])}
    result = run_backtest(_config(end_day=3), _script({0: [_buy(stop=95.0, target=120.0)]}), market_data=data)
    t = result.trades[0]
    assert t.exit_reason == ExitReason.STOP_LOSS
    assert t.exit_price == 95.0
    assert t.pnl == pytest.approx(-50.0)


def test_stop_wins_when_both_levels_hit(make_bars):
    data = {"AAA": make_bars([100.0, 100.0, 100.0], lows=[99.0, 94.0, 99.0], highs=[101.0, 125.0, 101.0])}
    result = run_backtest(_config(end_day=3), _script({0: [_buy(stop=95.0, target=120.0)]}), market_data=data)
    assert result.trades[0].exit_reason == ExitReason.STOP_LOSS


def test_take_profit_exit(make_bars):
    data = {"AAA": make_bars([100.0, 110.0, 110.0], lows=[99.0, 99.0, 109.0], highs=[101.0, 121.0, 111.0])}
    result = run_backtest(_config(end_day=3), _script({0: [_buy(stop=95.0, target=120.0)]}), market_data=data)
    t = result.trades[0]
    assert t.exit_reason == ExitReason.TAKE_PROFIT
    assert t.pnl == pytest.approx(200.0)


def test_trailing_stop_ratchets(make_bars):
    data = {"AAA": make_bars([100.0, 108.0, 108.0], lows=[99.0, 105.0, 107.0], highs=[101.0, 110.0, 109.0])}
    config = _config(end_day=3, risk_limits=RiskLimits())
    result = run_backtest(config, _script({0: [_buy(stop=95.0)]}), market_data=data)
    t = result.trades[0]
    assert t.exit_reason == ExitReason.STOP_LOSS
    assert t.exit_price == pytest.approx(110.0 * 0.98)


def test_unaffordable_buy_is_skipped(make_bars):
    events = RecordingEventSink()
    data = {"AAA": make_bars([100.0] * 3)}
    result = run_backtest(_config(end_day=3), _script({0: [_buy(quantity=1000)]}),
                          market_data=data, events=events)
    assert result.trades == ()
    assert events.named("order_skipped")[0].fields["reason"] == "insufficient cash"


def test_sell_signal_closes_and_duplicate_buy_ignored(make_bars):
    data = {"AAA": make_bars([100.0, 102.0, 105.0, 103.0])}
    orders = {0: [_buy()], 1: [_buy()], 2: [_sell()]}
    result = run_backtest(_config(end_day=4), _script(orders), market_data=data)
    assert len(result.trades) == 1
    t = result.trades[0]
    assert t.exit_reason == ExitReason.SIGNAL
    assert t.quantity == 10
    assert t.pnl == pytest.approx(50.0)


def test_history_has_no_lookahead_and_includes_warmup(make_bars):
    data = {"AAA": make_bars([100.0] * 40, start="2023-12-01")}
    seen = []

    def fn(day, history, portfolio):
        bars = history["AAA"]
        assert bars["timestamp"].max() == pd.Timestamp(day)
        seen.append(len(bars))
        return []

    result = run_backtest(_config(end_day=9), fn, market_data=data)
    assert len(result.equity_curve) == 9
    assert seen[0] == 32
    assert seen == list(range(32, 41))


def test_drawdown_uses_running_high_water_mark(make_bars):
    data = {"AAA": make_bars([100.0, 120.0, 90.0, 130.0])}
    result = run_backtest(_config(end_day=4, initial_capital=1000.0), _script({0: [_buy()]}), market_data=data)
    assert [p.value for p in result.equity_curve] == pytest.approx([1000.0, 1200.0, 900.0, 1300.0])
    assert [p.drawdown for p in result.drawdown_curve] == pytest.approx([0.0, 0.0, 0.25, 0.0])
    s = result.summary
    assert s.max_drawdown == pytest.approx(0.25)
    assert s.max_drawdown_dollar == pytest.approx(300.0)
    assert s.total_return == pytest.approx(0.3)
    assert s.calmar_ratio == pytest.approx(1.2)


def test_kill_switch_liquidates(make_bars):
    data = {"AAA": make_bars([100.0] * 5)}

    def fn(day, history, portfolio):
        offset = (day - DAY0).days
        if offset == 0:
            return [_buy()]
        if offset == 2:
            raise KillSwitchTriggered(KillSwitchResult(True, "drawdown", KillSwitchAction.LIQUIDATE))
        return []

    result = run_backtest(_config(), fn, market_data=data)
    assert len(result.kill_switch_events) == 1
    assert result.kill_switch_events[0].action == KillSwitchAction.LIQUIDATE
    t = result.trades[0]
    assert t.exit_reason == ExitReason.SIGNAL
    assert t.exit_date == datetime(2024, 1, 3)


def test_kill_switch_pause_skips_orders(make_bars):
    data = {"AAA": make_bars([100.0] * 3)}

    def fn(day, history, portfolio):
        raise KillSwitchTriggered(KillSwitchResult(True, "daily loss", KillSwitchAction.PAUSE))

    result = run_backtest(_config(end_day=3), fn, market_data=data)
    assert result.trades == ()
    assert len(result.kill_switch_events) == 3


def test_cancellation_closes_positions(make_bars):
    data = {"AAA": make_bars([100.0, 101.0, 102.0, 103.0, 104.0])}
    cancel = threading.Event()

    def fn(day, history, portfolio):
        offset = (day - DAY0).days
        if offset == 0:
            return [_buy()]
        cancel.set()
        return []

    result = run_backtest(_config(), fn, market_data=data, cancel_event=cancel)
    assert result.cancelled is True
    assert len(result.equity_curve) == 2
    t = result.trades[0]
    assert t.exit_reason == ExitReason.END_OF_BACKTEST
    assert t.exit_price == 101.0
    assert result.equity_curve[-1].value == pytest.approx(10010.0)


def test_strategy_error_is_contained(make_bars):
    events = RecordingEventSink()
    data = {"AAA": make_bars([100.0] * 3)}

    def fn(day, history, portfolio):
        raise RuntimeError("boom")

    result = run_backtest(_config(end_day=3), fn, market_data=data, events=events)
    assert result.trades == ()
    assert len(events.named("strategy_error")) == 3


def test_portfolio_snapshot(make_bars):
    data = {"AAA": make_bars([100.0, 110.0, 110.0])}
    snapshots = []

    def fn(day, history, portfolio):
        snapshots.append(portfolio)
        return [_buy()] if (day - DAY0).days == 0 else []

    run_backtest(_config(end_day=3), fn, market_data=data)
    assert snapshots[0].positions == ()
    assert snapshots[1].held_symbols == ("AAA",)
    assert snapshots[1].equity == pytest.approx(10100.0)
    assert snapshots[1].status.daily_pnl_percent == pytest.approx(0.01)


def test_config_validation():
    with pytest.raises(ConfigurationError):
        _config(slippage=1.5)
    with pytest.raises(ConfigurationError):
        _config(initial_capital=0.0)
    with pytest.raises(ConfigurationError):
        _config(symbols=())
    with pytest.raises(ConfigurationError):
        BacktestConfig("x", datetime(2024, 2, 1), DAY0, ("AAA",))


class _DictProvider(MarketDataProvider):
    def __init__(self, frames):
        self.frames = frames
        self.calls = []

    def get_bars(self, symbol, start, end, timeframe="1Day"):
        self.calls.append((symbol, start, end))
        if symbol not in self.frames:
            raise MarketDataFetchError(symbol, "unknown")
        return self.frames[symbol]


def test_engine_loads_from_provider_with_warmup(make_bars):
    provider = _DictProvider({"AAA": make_bars([100.0] * 5)})
    config = _config(symbols=("AAA", "ZZZ"), warmup_days=30)
    result = BacktestEngine(config, provider=provider).run(_script({}))
    assert len(result.equity_curve) == 5
    fetched = {c[0]: c[1] for c in provider.calls}
    assert fetched["AAA"] == datetime(2023, 12, 2)


def test_engine_without_data_or_provider():
    with pytest.raises(ConfigurationError):
        BacktestEngine(_config()).run(_script({}))


def test_engine_with_no_bars_in_window(make_bars):
    data = {"AAA": make_bars([100.0] * 5, start="2023-01-01")}
    with pytest.raises(MarketDataFetchError):
        run_backtest(_config(), _script({}), market_data=data)


def _trend_then_reversal(make_bars, up=100, down=60):
    closes = [100.0 * 1.01 ** i for i in range(up)]
    closes += [closes[-1] * 0.99 ** (i + 1) for i in range(down)]
    return make_bars(closes, start="2023-01-02")


def test_pipeline_backtest_is_deterministic(make_bars, random_walk):
    data = {"AAA": _trend_then_reversal(make_bars), "BBB": random_walk(2, n=160)}
    config = BacktestConfig(
        strategy_name="pipeline",
        start_date=datetime(2023, 1, 2),
        end_date=datetime(2023, 6, 10),
        symbols=("AAA", "BBB"),
        initial_capital=100000.0,
    )

    def pipeline():
        return StrategyPipeline(min_confidence=0.2)

    first = run_backtest(config, pipeline(), market_data=data)
    second = run_backtest(config, pipeline(), market_data=data)
    assert len(first.trades) > 0
    assert any(t.symbol == "AAA" for t in first.trades)
    assert first.trades == second.trades
    assert first.equity_curve == second.equity_curve
    assert first.drawdown_curve == second.drawdown_curve
    assert first.summary == second.summary
    assert all(p.value > 0 for p in first.equity_curve)
    for t in first.trades:
        # entries are capped at 20% of equity by the risk check
        assert t.quantity * t.entry_price <= 0.2 * max(p.value for p in first.equity_curve) * 1.01


def _every_third_day(day, history, portfolio):
    """Fixed rule: buy every symbol on day 0 mod 3, sell on day 2 mod 3."""
    phase = day.toordinal() % 3
    if phase == 0:
        return [_buy(symbol, quantity=5) for symbol in sorted(history)]
    if phase == 2:
        return [_sell(symbol) for symbol in portfolio.held_symbols]
    return []


def test_fixed_rule_backtest_is_deterministic(random_walk):
    data = {"AAA": random_walk(1, n=60), "BBB": random_walk(2, n=60)}
    config = BacktestConfig(
        strategy_name="fixed",
        start_date=datetime(2023, 1, 2),
        end_date=datetime(2023, 3, 2),
        symbols=("AAA", "BBB"),
        initial_capital=10000.0,
    )
    runs = [run_backtest(config, _every_third_day, market_data=data) for _ in range(2)]
    assert len(runs[0].trades) >= 30
    assert {t.exit_reason for t in runs[0].trades} <= {ExitReason.SIGNAL, ExitReason.END_OF_BACKTEST}
    assert runs[0].trades == runs[1].trades
    assert runs[0].equity_curve == runs[1].equity_curve
    assert runs[0].summary == runs[1].summary
