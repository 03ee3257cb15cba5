"""Shared fixtures: synthetic OHLCV frames."""

import numpy as np
import pandas as pd
import pytest


def build_bars(closes, volumes=None, spread=1.0, start="2024-01-01", highs=None, lows=None, opens=None):
    closes = np.asarray(closes, dtype=float)
    n = len(closes)
    return pd.DataFrame({
        "timestamp": pd.date_range(start, periods=n, freq="D"),
        "open": closes if opens is None else np.asarray(opens, dtype=float),
        "high": closes + spread if highs is None else np.asarray(highs, dtype=float),
        "low": closes - spread if lows is None else np.asarray(lows, dtype=float),
        "close": closes,
        "volume": np.full(n, 1000.0) if volumes is None else np.asarray(volumes, dtype=float),
    })


@pytest.fixture
def make_bars():
    return build_bars


@pytest.fixture
def random_walk():
    """Deterministic random-walk bars for a symbol."""
    def _make(seed, n=250, start="2023-01-02", base=100.0):
        rng = np.random.default_rng(seed)
        closes = base * np.cumprod(1 + rng.normal(0.0005, 0.015, n))
        spread = closes * rng.uniform(0.002, 0.02, n)
        volumes = rng.integers(800_000, 1_500_000, n).astype(float)
        return build_bars(closes, volumes=volumes, start=start,
                          highs=closes + spread, lows=closes - spread)
    return _make
