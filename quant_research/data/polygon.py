"""
Polygon.io aggregates client with retry on rate limits.
"""

from __future__ import annotations
import logging
import time
from datetime import datetime
from functools import wraps
from typing import Optional

import pandas as pd
import requests

from quant_research.core.errors import ConfigurationError, MarketDataFetchError
from quant_research.core.types import BAR_COLUMNS
from quant_research.data.provider import MarketDataProvider
from quant_research.utils.timeframes import parse_timeframe

logger = logging.getLogger("quant_research.data.polygon")

BASE_URL = "https://api.polygon.io/v2"


class RateLimited(Exception):
    pass


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on HTTP 429 with exponential backoff."""
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except RateLimited:
                    if attempt == max_retries - 1:
                        raise
                    delay = base_delay * (2 ** attempt)
                    logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                    time.sleep(delay)
        return wrapped
    return decorator


class PolygonMarketData(MarketDataProvider):
    """Daily and intraday bars from Polygon.io /v2/aggs."""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_delay: float = 1.0,
    ):
        if not api_key:
            raise ConfigurationError("POLYGON_API_KEY is not set")
        self._api_key = api_key
        self._session = session or requests.Session()
        self.timeout = timeout
        self.retry_delay = retry_delay

    def get_bars(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        multiplier, span = parse_timeframe(timeframe)
        url = (
            f"{BASE_URL}/aggs/ticker/{symbol.upper()}/range/{multiplier}/{span}/"
            f"{start.date().isoformat()}/{end.date().isoformat()}"
        )
        logger.info("Fetching %s %s %s..%s from Polygon", symbol, timeframe, start.date(), end.date())
        try:
            payload = retry_on_rate_limit(base_delay=self.retry_delay)(self._request)(url)
        except RateLimited:
            raise MarketDataFetchError(symbol, "rate limited by Polygon")
        except requests.RequestException as e:
            raise MarketDataFetchError(symbol, f"request failed: {e.__class__.__name__}")

        results = payload.get("results") or []
        if not results:
            raise MarketDataFetchError(symbol, "no data returned")
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime([r["t"] for r in results], unit="ms"),
                "open": [float(r["o"]) for r in results],
                "high": [float(r["h"]) for r in results],
                "low": [float(r["l"]) for r in results],
                "close": [float(r["c"]) for r in results],
                "volume": [float(r.get("v", 0.0)) for r in results],
            },
            columns=BAR_COLUMNS,
        )
        return df.sort_values("timestamp").reset_index(drop=True)

    def _request(self, url: str) -> dict:
        params = {"adjusted": "true", "sort": "asc", "limit": 50000, "apiKey": self._api_key}
        r = self._session.get(url, params=params, timeout=self.timeout)
        if r.status_code == 429:
            raise RateLimited()
        if r.status_code != 200:
            symbol = url.split("/ticker/")[1].split("/")[0]
            raise MarketDataFetchError(symbol, f"Polygon API error {r.status_code}")
        return r.json()
