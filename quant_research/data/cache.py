"""
TTL-bounded bar cache, owned by the caller and injected where bars are needed.
"""

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from quant_research.data.provider import MarketDataProvider

logger = logging.getLogger("quant_research.data.cache")

CacheKey = Tuple[str, str, str, str]


@dataclass
class _Entry:
    bars: pd.DataFrame
    stored_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    symbols: List[str]
    oldest_age_seconds: Optional[float]
    hits: int
    misses: int


class BarCache:
    """Bars keyed by symbol + timeframe + date range. Entries expire after ttl_seconds."""

    def __init__(self, ttl_seconds: float = 24 * 3600, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, _Entry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(symbol: str, timeframe: str, start: datetime, end: datetime) -> CacheKey:
        return (symbol.upper(), timeframe, start.date().isoformat(), end.date().isoformat())

    def get(self, key: CacheKey) -> Optional[pd.DataFrame]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.stored_at > self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.bars.copy()

    def put(self, key: CacheKey, bars: pd.DataFrame) -> None:
        with self._lock:
            self._entries[key] = _Entry(bars=bars.copy(), stored_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Bar cache cleared")

    def stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            ages = [now - e.stored_at for e in self._entries.values()]
            return CacheStats(
                size=len(self._entries),
                symbols=sorted({k[0] for k in self._entries}),
                oldest_age_seconds=max(ages) if ages else None,
                hits=self._hits,
                misses=self._misses,
            )


class CachedMarketData(MarketDataProvider):
    """Wraps a provider with an explicit BarCache."""

    def __init__(self, provider: MarketDataProvider, cache: Optional[BarCache] = None):
        self.provider = provider
        self.cache = cache or BarCache()

    def get_bars(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        key = BarCache.make_key(symbol, timeframe, start, end)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s %s", symbol, timeframe)
            return cached
        bars = self.provider.get_bars(symbol, start, end, timeframe)
        self.cache.put(key, bars)
        return bars
