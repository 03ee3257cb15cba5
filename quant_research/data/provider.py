"""Abstract market data interface and concurrent per-symbol fetching."""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import pandas as pd

from quant_research.core.errors import MarketDataFetchError
from quant_research.core.events import EventSink, LoggingEventSink

logger = logging.getLogger("quant_research.data")


class MarketDataProvider(ABC):
    """Source of ordered OHLCV bars for a symbol and date range."""

    @abstractmethod
    def get_bars(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        """
        Return bars sorted by time with columns: timestamp, open, high, low, close, volume.
        Raise MarketDataFetchError on failure.
        """
        pass


def fetch_bars(
    provider: MarketDataProvider,
    symbols: Sequence[str],
    start: datetime,
    end: datetime,
    timeframe: str = "1Day",
    max_workers: int = 4,
    events: Optional[EventSink] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Fetch each symbol independently. A failing symbol is reported and left out;
    the others are still returned, in input order.
    """
    events = events or LoggingEventSink(logger)

    def _one(symbol: str) -> Optional[pd.DataFrame]:
        try:
            return provider.get_bars(symbol, start, end, timeframe)
        except MarketDataFetchError as e:
            events.emit("market_data_fetch_failed", level="warning", symbol=symbol, error=str(e))
            return None

    symbols = list(symbols)
    if max_workers > 1 and len(symbols) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            frames: List[Optional[pd.DataFrame]] = list(pool.map(_one, symbols))
    else:
        frames = [_one(s) for s in symbols]
    return {s: f for s, f in zip(symbols, frames) if f is not None}
