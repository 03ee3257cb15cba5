"""Core: config, types, errors, events, logging."""

from quant_research.core.config import load_config, Config
from quant_research.core.errors import (
    ConfigurationError,
    InsufficientData,
    KillSwitchTriggered,
    MarketDataFetchError,
    QuantResearchError,
)
from quant_research.core.events import EventSink, LoggingEventSink, RecordingEventSink
from quant_research.core.logger import setup_logging
from quant_research.core.types import (
    AggregatedSignal,
    PortfolioStatus,
    Position,
    PriceBar,
    RiskLimits,
    SignalAction,
    StrategySignal,
    StrategyWeights,
    Trade,
)

__all__ = [
    "load_config",
    "Config",
    "ConfigurationError",
    "InsufficientData",
    "KillSwitchTriggered",
    "MarketDataFetchError",
    "QuantResearchError",
    "EventSink",
    "LoggingEventSink",
    "RecordingEventSink",
    "setup_logging",
    "AggregatedSignal",
    "PortfolioStatus",
    "Position",
    "PriceBar",
    "RiskLimits",
    "SignalAction",
    "StrategySignal",
    "StrategyWeights",
    "Trade",
]
