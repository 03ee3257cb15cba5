"""
Standard strategy function for the backtester: generators -> aggregator -> risk checks -> orders.
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Mapping, Optional

import pandas as pd

from quant_research.backtesting.engine import PortfolioSnapshot
from quant_research.core.errors import InsufficientData
from quant_research.core.events import EventSink, LoggingEventSink
from quant_research.core.types import (
    DEFAULT_RISK_LIMITS,
    Position,
    RiskLimits,
    SignalAction,
    StrategySignal,
    StrategyWeights,
)
from quant_research.indicators.technical import atr
from quant_research.risk.manager import RiskManager
from quant_research.signals.aggregator import aggregate
from quant_research.strategies.breakout import BreakoutStrategy
from quant_research.strategies.mean_reversion import MeanReversionStrategy
from quant_research.strategies.momentum import MomentumStrategy

# Fallback ATR as a fraction of price when there is not enough history for a real one.
FALLBACK_ATR_PCT = 0.02


class StrategyPipeline:
    """
    Callable used as `strategy_fn` by BacktestEngine.
    Raises KillSwitchTriggered when the portfolio breaches a limit; the engine pauses or liquidates.
    Buys are sized through validate_position_size and carry ATR stops; sells only close held symbols.
    """

    def __init__(
        self,
        momentum: Optional[MomentumStrategy] = None,
        mean_reversion: Optional[MeanReversionStrategy] = None,
        breakout: Optional[BreakoutStrategy] = None,
        weights: Optional[StrategyWeights] = None,
        risk_limits: Optional[RiskLimits] = None,
        min_confidence: float = 0.5,
        atr_period: int = 14,
        events: Optional[EventSink] = None,
    ):
        self.events = events or LoggingEventSink(logging.getLogger("quant_research.pipeline"))
        self.momentum = momentum or MomentumStrategy(events=events)
        self.mean_reversion = mean_reversion or MeanReversionStrategy(events=events)
        self.breakout = breakout or BreakoutStrategy(events=events)
        self.weights = weights or StrategyWeights()
        self.risk = RiskManager(risk_limits or DEFAULT_RISK_LIMITS)
        self.min_confidence = min_confidence
        self.atr_period = atr_period

    def __call__(
        self,
        day: datetime,
        history: Mapping[str, pd.DataFrame],
        portfolio: PortfolioSnapshot,
    ) -> List[StrategySignal]:
        self.risk.enforce_kill_switches(portfolio.status)

        capital = portfolio.equity
        decisions = aggregate(
            self.momentum.evaluate(history, capital),
            self.mean_reversion.evaluate(history, capital),
            self.breakout.evaluate(history, capital),
            self.weights,
            self.min_confidence,
            self.events,
        )

        held = {p.symbol: p for p in portfolio.positions}
        positions = list(portfolio.positions)
        orders: List[StrategySignal] = []
        for decision in decisions:
            symbol = decision.symbol
            if decision.action == SignalAction.SELL:
                if symbol in held:
                    orders.append(StrategySignal(
                        action=SignalAction.SELL,
                        symbol=symbol,
                        quantity=int(held[symbol].quantity),
                        confidence=decision.confidence,
                        reason=decision.reasoning.final_decision,
                    ))
                continue
            if decision.action != SignalAction.BUY or symbol in held:
                continue

            bars = history[symbol]
            price = float(bars["close"].iloc[-1])
            check = self.risk.validate(decision.quantity, price, capital, positions)
            if check.adjusted_quantity <= 0:
                self.events.emit("order_rejected", level="info", date=day.date(), symbol=symbol,
                                 reason=check.reason)
                continue
            try:
                current_atr = atr(bars, self.atr_period)
            except InsufficientData:
                current_atr = price * FALLBACK_ATR_PCT
            stop_loss, take_profit = self.risk.stops(price, current_atr)
            orders.append(StrategySignal(
                action=SignalAction.BUY,
                symbol=symbol,
                quantity=check.adjusted_quantity,
                confidence=decision.confidence,
                reason=decision.reasoning.final_decision,
                stop_loss=stop_loss,
                take_profit=take_profit,
                metadata={"atr": current_atr, "risk_check": check.reason},
            ))
            positions.append(Position(symbol=symbol, quantity=check.adjusted_quantity,
                                      entry_price=price, current_price=price))
        return orders
