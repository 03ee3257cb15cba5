"""
Backtest engine: day-by-day replay of daily bars, no lookahead, slippage and commission simulation.
"""

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from quant_research.analytics.metrics import (
    daily_returns,
    drawdown_series,
    expectancy,
    profit_factor,
    sharpe_ratio,
    win_rate,
)
from quant_research.core.errors import ConfigurationError, KillSwitchTriggered, MarketDataFetchError
from quant_research.core.events import EventSink, LoggingEventSink
from quant_research.core.types import (
    DEFAULT_RISK_LIMITS,
    ExitReason,
    KillSwitchAction,
    PortfolioStatus,
    Position,
    RiskLimits,
    SignalAction,
    SimulatedPosition,
    StrategySignal,
    Trade,
)
from quant_research.data.provider import MarketDataProvider, fetch_bars
from quant_research.risk.manager import update_trailing_stop

logger = logging.getLogger("quant_research.backtest")


@dataclass(frozen=True)
class BacktestConfig:
    strategy_name: str
    start_date: datetime
    end_date: datetime
    symbols: Tuple[str, ...]
    initial_capital: float = 100000.0
    commission: float = 1.0
    slippage: float = 0.001
    risk_limits: RiskLimits = DEFAULT_RISK_LIMITS
    strategy_id: str = ""
    # Calendar days of history loaded before start_date for indicator warmup.
    warmup_days: int = 120
    timeframe: str = "1Day"

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbols", tuple(s.upper() for s in self.symbols))
        if not self.symbols:
            raise ConfigurationError("backtest needs at least one symbol")
        if self.initial_capital <= 0:
            raise ConfigurationError(f"initial_capital must be positive, got {self.initial_capital}")
        if self.commission < 0:
            raise ConfigurationError(f"commission must be non-negative, got {self.commission}")
        if not 0.0 <= self.slippage < 1.0:
            raise ConfigurationError(f"slippage must be in [0, 1), got {self.slippage}")
        if self.start_date > self.end_date:
            raise ConfigurationError("start_date is after end_date")
        if self.warmup_days < 0:
            raise ConfigurationError("warmup_days must be non-negative")


@dataclass(frozen=True)
class EquityPoint:
    date: datetime
    value: float


@dataclass(frozen=True)
class DrawdownPoint:
    date: datetime
    drawdown: float


@dataclass(frozen=True)
class KillSwitchEvent:
    date: datetime
    action: KillSwitchAction
    reason: str


@dataclass(frozen=True)
class PortfolioSnapshot:
    """What the strategy function sees of the simulated portfolio on a given day."""
    date: datetime
    cash: float
    equity: float
    positions: Tuple[Position, ...]
    status: PortfolioStatus

    @property
    def held_symbols(self) -> Tuple[str, ...]:
        return tuple(p.symbol for p in self.positions)


@dataclass(frozen=True)
class BacktestSummary:
    total_return: float
    total_return_dollar: float
    sharpe_ratio: float
    max_drawdown: float
    max_drawdown_dollar: float
    calmar_ratio: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    avg_win: float
    avg_loss: float
    profit_factor: float
    avg_trade: float


@dataclass(frozen=True)
class BacktestResult:
    config: BacktestConfig
    summary: BacktestSummary
    equity_curve: Tuple[EquityPoint, ...]
    drawdown_curve: Tuple[DrawdownPoint, ...]
    trades: Tuple[Trade, ...]
    start_date: datetime
    end_date: datetime
    duration_days: int
    execution_time_ms: float
    kill_switch_events: Tuple[KillSwitchEvent, ...] = ()
    cancelled: bool = False


StrategyFunction = Callable[
    [datetime, Mapping[str, pd.DataFrame], PortfolioSnapshot],
    Sequence[StrategySignal],
]


class BacktestEngine:
    """
    Replays trading days in order. Each day: exits (stop before target, then trail),
    strategy call on bars up to and including the day, serial order execution, equity mark.
    Open positions are closed on the last day. Fully deterministic for the same inputs.
    """

    def __init__(
        self,
        config: BacktestConfig,
        provider: Optional[MarketDataProvider] = None,
        events: Optional[EventSink] = None,
    ):
        self.config = config
        self.provider = provider
        self.events = events or LoggingEventSink(logger)
        self._reset()

    def _reset(self) -> None:
        self._cash = self.config.initial_capital
        self._positions: Dict[str, SimulatedPosition] = {}
        self._trades: List[Trade] = []
        self._equity: List[EquityPoint] = []
        self._kill_events: List[KillSwitchEvent] = []
        self._high_water_mark = self.config.initial_capital

    def run(
        self,
        strategy_fn: StrategyFunction,
        market_data: Optional[Mapping[str, pd.DataFrame]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        """
        Run the simulation. market_data maps symbol to OHLCV bars (warmup history may start
        before start_date); when omitted, bars are fetched from the provider.
        """
        started = time.perf_counter()
        self._reset()
        cfg = self.config
        data = self._prepare(market_data if market_data is not None else self._load())
        days = self._trading_days(data)
        if not days:
            raise MarketDataFetchError(",".join(cfg.symbols), "no bars inside the backtest window")

        self.events.emit(
            "backtest_started", strategy=cfg.strategy_name, symbols=len(data),
            days=len(days), initial_capital=cfg.initial_capital,
        )
        cancelled = False
        last_day: Optional[pd.Timestamp] = None
        closes: Dict[str, float] = {}
        for i, day in enumerate(days):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            if i % 50 == 0:
                self.events.emit("backtest_progress", level="debug", day=i, total=len(days))

            cut = {sym: int(np.searchsorted(ts, day.to_datetime64(), side="right"))
                   for sym, (df, ts) in data.items()}
            today = {sym: df.iloc[cut[sym] - 1] for sym, (df, ts) in data.items()
                     if cut[sym] > 0 and ts[cut[sym] - 1] == day.to_datetime64()}
            closes = {sym: float(df["close"].iloc[cut[sym] - 1])
                      for sym, (df, ts) in data.items() if cut[sym] > 0}

            self._check_exits(day, today)

            history = {sym: df.iloc[:cut[sym]] for sym, (df, ts) in data.items()}
            snapshot = self._snapshot(day, closes)
            orders = self._call_strategy(strategy_fn, day, history, snapshot, closes)
            self._execute(orders, day, today)

            if i == len(days) - 1:
                self._close_all(day, closes, ExitReason.END_OF_BACKTEST)
            self._record_equity(day, closes)
            last_day = day

        if cancelled:
            self.events.emit("backtest_cancelled", level="warning", processed_days=len(self._equity))
            if last_day is not None and self._positions:
                self._close_all(last_day, closes, ExitReason.END_OF_BACKTEST)
                self._equity[-1] = EquityPoint(date=self._equity[-1].date, value=self._cash)

        result = self._build_result(started, cancelled)
        s = result.summary
        self.events.emit(
            "backtest_completed", strategy=cfg.strategy_name, total_return=s.total_return,
            sharpe=s.sharpe_ratio, max_drawdown=s.max_drawdown, win_rate=s.win_rate,
            trades=s.total_trades,
        )
        return result

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def _load(self) -> Dict[str, pd.DataFrame]:
        if self.provider is None:
            raise ConfigurationError("BacktestEngine needs market_data or a provider")
        cfg = self.config
        start = cfg.start_date - timedelta(days=cfg.warmup_days)
        return fetch_bars(self.provider, cfg.symbols, start, cfg.end_date, cfg.timeframe, events=self.events)

    def _prepare(self, market_data: Mapping[str, pd.DataFrame]) -> Dict[str, Tuple[pd.DataFrame, np.ndarray]]:
        prepared = {}
        for sym in self.config.symbols:
            df = market_data.get(sym)
            if df is None or df.empty:
                self.events.emit("backtest_symbol_missing", level="warning", symbol=sym)
                continue
            df = df.copy()
            df["timestamp"] = pd.to_datetime(df["timestamp"])
            if df["timestamp"].dt.tz is not None:
                df["timestamp"] = df["timestamp"].dt.tz_convert(None)
            df = df.sort_values("timestamp").drop_duplicates("timestamp", keep="last")
            df = df[df["timestamp"] <= pd.Timestamp(self.config.end_date)].reset_index(drop=True)
            prepared[sym] = (df, df["timestamp"].to_numpy())
        return prepared

    def _trading_days(self, data: Dict[str, Tuple[pd.DataFrame, np.ndarray]]) -> List[pd.Timestamp]:
        start = pd.Timestamp(self.config.start_date)
        end = pd.Timestamp(self.config.end_date)
        days = set()
        for df, _ in data.values():
            window = df["timestamp"][(df["timestamp"] >= start) & (df["timestamp"] <= end)]
            days.update(window.tolist())
        return sorted(days)

    # ------------------------------------------------------------------
    # Daily steps
    # ------------------------------------------------------------------

    def _check_exits(self, day: pd.Timestamp, today: Mapping[str, pd.Series]) -> None:
        limits = self.config.risk_limits
        for sym in list(self._positions):
            bar = today.get(sym)
            if bar is None:
                continue
            pos = self._positions[sym]
            high, low = float(bar["high"]), float(bar["low"])
            if pos.stop_loss is not None and low <= pos.stop_loss:
                self._close(sym, pos.stop_loss, day, ExitReason.STOP_LOSS)
                continue
            if pos.take_profit is not None and high >= pos.take_profit:
                self._close(sym, pos.take_profit, day, ExitReason.TAKE_PROFIT)
                continue
            pos.highest_price = max(pos.highest_price, high)
            if pos.stop_loss is not None:
                pos.stop_loss = update_trailing_stop(float(bar["close"]), pos.highest_price, pos.stop_loss, limits)

    def _call_strategy(
        self,
        strategy_fn: StrategyFunction,
        day: pd.Timestamp,
        history: Mapping[str, pd.DataFrame],
        snapshot: PortfolioSnapshot,
        closes: Mapping[str, float],
    ) -> List[StrategySignal]:
        try:
            return list(strategy_fn(day.to_pydatetime(), history, snapshot) or [])
        except KillSwitchTriggered as e:
            self._kill_events.append(KillSwitchEvent(date=day.to_pydatetime(), action=e.action, reason=e.result.reason))
            self.events.emit("kill_switch", level="warning", date=day.date(), action=e.action.value,
                             reason=e.result.reason)
            if e.action == KillSwitchAction.LIQUIDATE:
                self._close_all(day, closes, ExitReason.SIGNAL)
            return []
        except Exception as e:
            self.events.emit("strategy_error", level="error", date=day.date(), error=repr(e))
            return []

    def _execute(self, orders: Sequence[StrategySignal], day: pd.Timestamp, today: Mapping[str, pd.Series]) -> None:
        cfg = self.config
        for order in orders:
            bar = today.get(order.symbol)
            if bar is None:
                self.events.emit("order_skipped", level="debug", symbol=order.symbol, reason="no bar today")
                continue
            close = float(bar["close"])
            if order.action == SignalAction.SELL:
                if order.symbol in self._positions:
                    self._close(order.symbol, close, day, ExitReason.SIGNAL)
                continue
            if order.action != SignalAction.BUY or order.quantity <= 0:
                continue
            if order.symbol in self._positions:
                self.events.emit("order_skipped", level="debug", symbol=order.symbol, reason="already held")
                continue
            fill = close * (1.0 + cfg.slippage)
            cost = order.quantity * fill + cfg.commission
            if cost > self._cash:
                self.events.emit("order_skipped", level="warning", symbol=order.symbol,
                                 reason="insufficient cash", cost=cost, cash=self._cash)
                continue
            self._cash -= cost
            self._positions[order.symbol] = SimulatedPosition(
                symbol=order.symbol,
                quantity=order.quantity,
                entry_price=fill,
                entry_date=day.to_pydatetime(),
                stop_loss=order.stop_loss,
                take_profit=order.take_profit,
                highest_price=close,
                entry_slippage=close * cfg.slippage,
            )
            self.events.emit("position_opened", symbol=order.symbol, quantity=order.quantity,
                             price=fill, date=day.date())

    def _close(self, symbol: str, price: float, day: pd.Timestamp, reason: ExitReason) -> None:
        cfg = self.config
        pos = self._positions.pop(symbol)
        exit_slip = price * cfg.slippage
        fill = price - exit_slip
        pnl = (fill - pos.entry_price) * pos.quantity - 2 * cfg.commission
        exit_date = day.to_pydatetime()
        self._cash += pos.quantity * fill - cfg.commission
        self._trades.append(Trade(
            entry_date=pos.entry_date,
            exit_date=exit_date,
            symbol=symbol,
            side=SignalAction.BUY,
            entry_price=pos.entry_price,
            exit_price=fill,
            quantity=pos.quantity,
            pnl=pnl,
            pnl_percent=pnl / (pos.entry_price * pos.quantity),
            commission=2 * cfg.commission,
            slippage=(pos.entry_slippage + exit_slip) * pos.quantity,
            holding_period_days=round((exit_date - pos.entry_date).total_seconds() / 86400),
            exit_reason=reason,
        ))
        self.events.emit("position_closed", symbol=symbol, quantity=pos.quantity, price=fill,
                         pnl=pnl, reason=reason.value, date=day.date())

    def _close_all(self, day: pd.Timestamp, closes: Mapping[str, float], reason: ExitReason) -> None:
        for sym in list(self._positions):
            price = closes.get(sym, self._positions[sym].entry_price)
            self._close(sym, price, day, reason)

    def _market_value(self, closes: Mapping[str, float]) -> float:
        return sum(p.quantity * closes.get(sym, p.entry_price) for sym, p in self._positions.items())

    def _snapshot(self, day: pd.Timestamp, closes: Mapping[str, float]) -> PortfolioSnapshot:
        equity = self._cash + self._market_value(closes)
        previous = self._equity[-1].value if self._equity else self.config.initial_capital
        hwm = max(self._high_water_mark, equity)
        status = PortfolioStatus(
            total_value=equity,
            daily_pnl=equity - previous,
            daily_pnl_percent=(equity - previous) / previous if previous > 0 else 0.0,
            current_drawdown=(hwm - equity) / hwm if hwm > 0 else 0.0,
            high_water_mark=hwm,
        )
        positions = tuple(
            Position(symbol=sym, quantity=p.quantity, entry_price=p.entry_price,
                     current_price=closes.get(sym, p.entry_price))
            for sym, p in self._positions.items()
        )
        return PortfolioSnapshot(date=day.to_pydatetime(), cash=self._cash, equity=equity,
                                 positions=positions, status=status)

    def _record_equity(self, day: pd.Timestamp, closes: Mapping[str, float]) -> None:
        value = self._cash + self._market_value(closes)
        self._equity.append(EquityPoint(date=day.to_pydatetime(), value=value))
        if value > self._high_water_mark:
            self._high_water_mark = value

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _build_result(self, started: float, cancelled: bool) -> BacktestResult:
        cfg = self.config
        values = [p.value for p in self._equity]
        dd = drawdown_series(values, cfg.initial_capital)
        drawdown_curve = tuple(DrawdownPoint(date=p.date, drawdown=float(d)) for p, d in zip(self._equity, dd))
        summary = summarize(values, dd, self._trades, cfg.initial_capital)
        return BacktestResult(
            config=cfg,
            summary=summary,
            equity_curve=tuple(self._equity),
            drawdown_curve=drawdown_curve,
            trades=tuple(self._trades),
            start_date=cfg.start_date,
            end_date=cfg.end_date,
            duration_days=round((cfg.end_date - cfg.start_date).total_seconds() / 86400),
            execution_time_ms=(time.perf_counter() - started) * 1000.0,
            kill_switch_events=tuple(self._kill_events),
            cancelled=cancelled,
        )


def summarize(
    values: Sequence[float],
    drawdowns: np.ndarray,
    trades: Sequence[Trade],
    initial_capital: float,
) -> BacktestSummary:
    """Headline statistics from the equity values, their drawdowns and the trade log."""
    final = values[-1] if len(values) else initial_capital
    total_return = (final - initial_capital) / initial_capital
    if len(drawdowns):
        worst = int(np.argmax(drawdowns))
        max_dd = float(drawdowns[worst])
        peak = max(initial_capital, max(values[: worst + 1]))
        max_dd_dollar = peak - values[worst]
    else:
        max_dd, max_dd_dollar = 0.0, 0.0

    pnls = [t.pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    return BacktestSummary(
        total_return=total_return,
        total_return_dollar=final - initial_capital,
        sharpe_ratio=sharpe_ratio(daily_returns(values)),
        max_drawdown=max_dd,
        max_drawdown_dollar=max_dd_dollar,
        calmar_ratio=total_return / max_dd if max_dd > 0 else 0.0,
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate(pnls),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=abs(sum(losses) / len(losses)) if losses else 0.0,
        profit_factor=profit_factor(pnls),
        avg_trade=expectancy(pnls),
    )


def run_backtest(
    config: BacktestConfig,
    strategy_fn: StrategyFunction,
    market_data: Optional[Mapping[str, pd.DataFrame]] = None,
    provider: Optional[MarketDataProvider] = None,
    events: Optional[EventSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BacktestResult:
    """Functional entry point around BacktestEngine."""
    engine = BacktestEngine(config, provider=provider, events=events)
    return engine.run(strategy_fn, market_data=market_data, cancel_event=cancel_event)
