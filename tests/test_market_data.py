"""Tests for the data layer: cache, provider fan-out, CSV and Polygon providers."""

from datetime import datetime

import pandas as pd
import pytest
import requests

from quant_research.core.errors import ConfigurationError, MarketDataFetchError
from quant_research.core.events import RecordingEventSink
from quant_research.data.cache import BarCache, CachedMarketData
from quant_research.data.csv_loader import CsvMarketData, load_bars_csv
from quant_research.data.polygon import PolygonMarketData
from quant_research.data.provider import MarketDataProvider, fetch_bars

START = datetime(2024, 1, 1)
END = datetime(2024, 1, 31)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingProvider(MarketDataProvider):
    def __init__(self, frames, failing=()):
        self.frames = frames
        self.failing = set(failing)
        self.calls = 0

    def get_bars(self, symbol, start, end, timeframe="1Day"):
        self.calls += 1
        if symbol in self.failing:
            raise MarketDataFetchError(symbol, "boom")
        return self.frames[symbol]


def test_cache_expires_after_ttl(make_bars):
    clock = FakeClock()
    cache = BarCache(ttl_seconds=60, clock=clock)
    key = BarCache.make_key("aapl", "1Day", START, END)
    cache.put(key, make_bars([1.0, 2.0]))
    assert cache.get(key) is not None
    clock.now += 61
    assert cache.get(key) is None
    stats = cache.stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.size == 0


def test_cache_stats_and_clear(make_bars):
    clock = FakeClock()
    cache = BarCache(ttl_seconds=60, clock=clock)
    cache.put(BarCache.make_key("msft", "1Day", START, END), make_bars([1.0]))
    clock.now += 10
    cache.put(BarCache.make_key("aapl", "1Day", START, END), make_bars([1.0]))
    stats = cache.stats()
    assert stats.size == 2
    assert stats.symbols == ["AAPL", "MSFT"]
    assert stats.oldest_age_seconds == 10
    cache.clear()
    assert cache.stats().size == 0
    assert cache.stats().oldest_age_seconds is None


def test_cache_returns_copies(make_bars):
    cache = BarCache()
    key = BarCache.make_key("AAPL", "1Day", START, END)
    cache.put(key, make_bars([1.0, 2.0]))
    first = cache.get(key)
    first.loc[0, "close"] = 99.0
    assert cache.get(key).loc[0, "close"] == 1.0


def test_cache_rejects_bad_ttl():
    with pytest.raises(ValueError):
        BarCache(ttl_seconds=0)


def test_cached_provider_fetches_once(make_bars):
    inner = CountingProvider({"AAPL": make_bars([1.0, 2.0, 3.0])})
    provider = CachedMarketData(inner, BarCache())
    a = provider.get_bars("AAPL", START, END)
    b = provider.get_bars("AAPL", START, END)
    assert inner.calls == 1
    pd.testing.assert_frame_equal(a, b)


def test_fetch_bars_isolates_failures(make_bars):
    events = RecordingEventSink()
    provider = CountingProvider({"AAPL": make_bars([1.0]), "MSFT": make_bars([2.0])}, failing={"BAD"})
    bars = fetch_bars(provider, ["MSFT", "BAD", "AAPL"], START, END, events=events)
    assert list(bars) == ["MSFT", "AAPL"]
    failed = events.named("market_data_fetch_failed")
    assert len(failed) == 1
    assert failed[0].fields["symbol"] == "BAD"


def test_csv_provider_filters_range(tmp_path):
    (tmp_path / "AAPL.csv").write_text(
        "Time,Open,High,Low,Close,Volume\n"
        "2024-01-03,11,12,10,11.5,200\n"
        "2023-12-29,10,11,9,10.5,100\n"
        "2024-02-05,12,13,11,12.5,300\n"
    )
    provider = CsvMarketData(tmp_path)
    df = provider.get_bars("aapl", datetime(2023, 12, 1), END)
    assert list(df.columns) == ["timestamp", "open", "high", "low", "close", "volume"]
    assert df["close"].tolist() == [10.5, 11.5]


def test_csv_provider_errors(tmp_path):
    provider = CsvMarketData(tmp_path)
    with pytest.raises(MarketDataFetchError):
        provider.get_bars("NOPE", START, END)
    (tmp_path / "BAD.csv").write_text("timestamp,open\n2024-01-02,1\n")
    with pytest.raises(MarketDataFetchError):
        provider.get_bars("BAD", START, END)


def test_load_bars_csv_defaults_volume(tmp_path):
    path = tmp_path / "X.csv"
    path.write_text("timestamp,open,high,low,close\n2024-01-02,1,2,0.5,1.5\n")
    df = load_bars_csv(path)
    assert df["volume"].tolist() == [0.0]


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        return self.responses.pop(0)


AGGS = {
    "results": [
        {"t": 1704240000000, "o": 11.0, "h": 12.0, "l": 10.0, "c": 11.5, "v": 200},
        {"t": 1704153600000, "o": 10.0, "h": 11.0, "l": 9.0, "c": 10.5, "v": 100},
    ]
}


def test_polygon_parses_aggregates():
    session = FakeSession([FakeResponse(200, AGGS)])
    client = PolygonMarketData("key", session=session)
    df = client.get_bars("aapl", START, END, "1Day")
    assert df["close"].tolist() == [10.5, 11.5]
    assert df["timestamp"].iloc[0] == pd.Timestamp("2024-01-02")
    url, params = session.requests[0]
    assert "/aggs/ticker/AAPL/range/1/day/2024-01-01/2024-01-31" in url
    assert params["apiKey"] == "key"


def test_polygon_retries_rate_limit():
    session = FakeSession([FakeResponse(429), FakeResponse(200, AGGS)])
    client = PolygonMarketData("key", session=session, retry_delay=0)
    df = client.get_bars("AAPL", START, END)
    assert len(df) == 2
    assert len(session.requests) == 2


def test_polygon_gives_up_after_retries():
    session = FakeSession([FakeResponse(429)] * 3)
    client = PolygonMarketData("key", session=session, retry_delay=0)
    with pytest.raises(MarketDataFetchError):
        client.get_bars("AAPL", START, END)


def test_polygon_http_error():
    client = PolygonMarketData("key", session=FakeSession([FakeResponse(500)]))
    with pytest.raises(MarketDataFetchError) as exc:
        client.get_bars("AAPL", START, END)
    assert exc.value.symbol == "AAPL"


def test_polygon_empty_results():
    client = PolygonMarketData("key", session=FakeSession([FakeResponse(200, {"results": []})]))
    with pytest.raises(MarketDataFetchError):
        client.get_bars("AAPL", START, END)


def test_polygon_network_error():
    class Broken:
        def get(self, url, params=None, timeout=None):
            raise requests.ConnectionError("down")

    client = PolygonMarketData("key", session=Broken())
    with pytest.raises(MarketDataFetchError):
        client.get_bars("AAPL", START, END)


def test_polygon_requires_key():
    with pytest.raises(ConfigurationError):
        PolygonMarketData("")
