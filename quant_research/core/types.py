"""
Core data types for bars, signals, positions, trades, and risk configuration.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

import pandas as pd

from quant_research.core.errors import ConfigurationError

BAR_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class SignalAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class ExitReason(str, Enum):
    SIGNAL = "signal"
    STOP_LOSS = "stop-loss"
    TAKE_PROFIT = "take-profit"
    END_OF_BACKTEST = "end-of-backtest"


class KillSwitchAction(str, Enum):
    CONTINUE = "continue"
    PAUSE = "pause"
    LIQUIDATE = "liquidate"


@dataclass(frozen=True)
class PriceBar:
    """OHLCV bar. Immutable once received from the market-data provider."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self) -> None:
        if self.volume < 0:
            raise ValueError(f"negative volume {self.volume} at {self.timestamp}")
        if not (self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high):
            raise ValueError(
                f"bar at {self.timestamp} violates low <= open/close <= high "
                f"(o={self.open} h={self.high} l={self.low} c={self.close})"
            )


def bars_to_frame(bars: Iterable[PriceBar]) -> pd.DataFrame:
    """Convert PriceBars into the OHLCV DataFrame used across the package."""
    rows = [
        (b.timestamp, b.open, b.high, b.low, b.close, b.volume)
        for b in bars
    ]
    df = pd.DataFrame(rows, columns=BAR_COLUMNS)
    if not df.empty:
        df["timestamp"] = pd.to_datetime(df["timestamp"])
    return df


@dataclass
class StrategySignal:
    """Per-symbol trade signal from one strategy (or an approved order)."""
    action: SignalAction
    symbol: str
    quantity: int
    confidence: float
    reason: str
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"quantity must be non-negative, got {self.quantity}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


@dataclass
class AggregationReasoning:
    """Contributing per-strategy signals plus the final explanation."""
    final_decision: str
    momentum: Optional[StrategySignal] = None
    mean_reversion: Optional[StrategySignal] = None
    breakout: Optional[StrategySignal] = None


@dataclass
class AggregatedSignal:
    """One merged decision per symbol per evaluation cycle."""
    action: SignalAction
    symbol: str
    quantity: int
    confidence: float
    reasoning: AggregationReasoning


@dataclass(frozen=True)
class StrategyWeights:
    """Per-strategy weights used by the aggregator, each in [0, 1]."""
    momentum: float = 0.40
    mean_reversion: float = 0.35
    breakout: float = 0.25

    def __post_init__(self) -> None:
        for name in ("momentum", "mean_reversion", "breakout"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"strategy weight {name}={value} outside [0, 1]")


@dataclass(frozen=True)
class RiskLimits:
    """Risk configuration. Fractions are of total capital (0.20 = 20%)."""
    max_positions: int = 5
    max_single_position: float = 0.20
    max_total_exposure: float = 0.60
    max_daily_loss: float = 0.03
    max_drawdown: float = 0.15
    stop_loss_multiplier: float = 2.0
    take_profit_multiplier: float = 3.0
    trailing_stop_enabled: bool = True
    trailing_stop_distance: float = 0.02

    def __post_init__(self) -> None:
        if self.max_positions < 0:
            raise ConfigurationError(f"max_positions must be >= 0, got {self.max_positions}")
        for name in ("max_single_position", "max_total_exposure", "max_daily_loss",
                     "max_drawdown", "trailing_stop_distance"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name}={value} must be a fraction in [0, 1]")
        if self.stop_loss_multiplier < 0 or self.take_profit_multiplier < 0:
            raise ConfigurationError("ATR multipliers must be non-negative")


DEFAULT_RISK_LIMITS = RiskLimits()


@dataclass(frozen=True)
class Position:
    """Open position as reported by the portfolio collaborator."""
    symbol: str
    quantity: float
    entry_price: float
    current_price: float

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price


@dataclass(frozen=True)
class PortfolioStatus:
    """Portfolio state used by the kill switches."""
    total_value: float
    daily_pnl: float
    daily_pnl_percent: float
    current_drawdown: float
    high_water_mark: float


@dataclass
class SimulatedPosition:
    """Open position inside a backtest. Owned by the engine."""
    symbol: str
    quantity: int
    entry_price: float
    entry_date: datetime
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    highest_price: float = 0.0
    entry_slippage: float = 0.0


@dataclass(frozen=True)
class Trade:
    """Closed trade. Immutable once appended to a run's trade log."""
    entry_date: datetime
    exit_date: datetime
    symbol: str
    side: SignalAction
    entry_price: float
    exit_price: float
    quantity: int
    pnl: float
    pnl_percent: float
    commission: float
    slippage: float
    holding_period_days: int
    exit_reason: ExitReason
