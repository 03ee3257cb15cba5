"""Abstract strategy: per-symbol evaluation with failure isolation."""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from quant_research.core.errors import InsufficientData, MarketDataFetchError
from quant_research.core.events import EventSink, LoggingEventSink
from quant_research.core.types import PriceBar, StrategySignal, bars_to_frame
from quant_research.data.provider import MarketDataProvider, fetch_bars


Bars = Union[pd.DataFrame, Iterable[PriceBar]]


class BaseStrategy(ABC):
    """
    A strategy turns each symbol's bars into at most one StrategySignal.
    Failures for one symbol are reported and skipped; the batch always completes.
    """

    name: str = "base"

    def __init__(self, settings, events: Optional[EventSink] = None):
        self.settings = settings
        self.events = events or LoggingEventSink(logging.getLogger(f"quant_research.strategies.{self.name}"))

    @property
    def min_bars(self) -> int:
        return self.settings.min_bars

    @abstractmethod
    def evaluate_symbol(
        self,
        symbol: str,
        bars: pd.DataFrame,
        allocated_capital: float,
    ) -> Optional[StrategySignal]:
        """Return a signal for the latest bar, or None. May raise InsufficientData."""
        pass

    def evaluate(
        self,
        bars_by_symbol: Mapping[str, Bars],
        allocated_capital: float,
    ) -> List[StrategySignal]:
        """Evaluate every symbol; output follows input order. Bars may be DataFrames or PriceBar sequences."""
        if allocated_capital < 0:
            raise ValueError(f"allocated_capital must be non-negative, got {allocated_capital}")
        items = list(bars_by_symbol.items())

        def _one(item) -> Optional[StrategySignal]:
            symbol, bars = item
            return self._safe_evaluate(symbol, bars, allocated_capital)

        workers = getattr(self.settings, "max_workers", 1)
        if workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(_one, items))
        else:
            results = [_one(item) for item in items]
        signals = [s for s in results if s is not None]
        self.events.emit(
            "strategy_evaluated", level="debug",
            strategy=self.name, symbols=len(items), signals=len(signals),
        )
        return signals

    def run(
        self,
        symbols: Sequence[str],
        allocated_capital: float,
        provider: MarketDataProvider,
        start: datetime,
        end: datetime,
        timeframe: str = "1Day",
    ) -> List[StrategySignal]:
        """Fetch bars per symbol (failed fetches are skipped), then evaluate."""
        bars = fetch_bars(
            provider, symbols, start, end, timeframe,
            max_workers=max(getattr(self.settings, "max_workers", 1), 1),
            events=self.events,
        )
        return self.evaluate(bars, allocated_capital)

    def _safe_evaluate(
        self,
        symbol: str,
        bars: Bars,
        allocated_capital: float,
    ) -> Optional[StrategySignal]:
        try:
            if bars is not None and not isinstance(bars, pd.DataFrame):
                bars = bars_to_frame(bars)
            if bars is None or len(bars) < self.min_bars:
                raise InsufficientData(self.name, self.min_bars, 0 if bars is None else len(bars))
            signal = self.evaluate_symbol(symbol, bars, allocated_capital)
        except InsufficientData as e:
            self.events.emit("strategy_symbol_skipped", level="debug",
                             strategy=self.name, symbol=symbol, error=str(e))
            return None
        except (MarketDataFetchError, ValueError, KeyError, TypeError) as e:
            self.events.emit("strategy_symbol_failed", level="warning",
                             strategy=self.name, symbol=symbol, error=str(e))
            return None
        if signal is not None:
            self.events.emit(
                "signal_generated", strategy=self.name, symbol=symbol,
                action=signal.action.value, quantity=signal.quantity, confidence=signal.confidence,
            )
        return signal
