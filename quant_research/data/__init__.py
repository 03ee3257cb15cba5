"""Market data: provider interface, TTL cache, Polygon client, CSV loader."""

from quant_research.data.provider import MarketDataProvider, fetch_bars
from quant_research.data.cache import BarCache, CachedMarketData, CacheStats
from quant_research.data.polygon import PolygonMarketData
from quant_research.data.csv_loader import CsvMarketData, load_bars_csv

__all__ = [
    "MarketDataProvider",
    "fetch_bars",
    "BarCache",
    "CachedMarketData",
    "CacheStats",
    "PolygonMarketData",
    "CsvMarketData",
    "load_bars_csv",
]
