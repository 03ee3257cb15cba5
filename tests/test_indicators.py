"""Unit tests for indicators.technical."""

import numpy as np
import pytest

from quant_research.core.errors import InsufficientData
from quant_research.indicators.technical import (
    adx,
    atr,
    bollinger_bands,
    donchian_channels,
    ema,
    ema_series,
    macd,
    rsi,
    sma,
    volume_profile,
    z_score,
)


def test_rsi_bounds():
    rng = np.random.default_rng(1)
    prices = 100 + np.cumsum(rng.normal(0, 1, 100))
    value = rsi(prices, 14)
    assert 0.0 <= value <= 100.0


def test_rsi_extremes():
    assert rsi(list(range(1, 31)), 14) == 100.0
    assert rsi(list(range(30, 0, -1)), 14) == 0.0


def test_rsi_insufficient_data():
    with pytest.raises(InsufficientData) as exc:
        rsi([1.0] * 14, 14)
    assert exc.value.required == 15
    assert isinstance(exc.value, ValueError)


def test_rsi_does_not_mutate_input():
    prices = [1.0, 2.0, 3.0] * 10
    before = list(prices)
    rsi(prices, 14)
    assert prices == before


def test_sma_and_ema():
    prices = [1.0, 2.0, 3.0, 4.0, 5.0]
    assert sma(prices, 5) == 3.0
    # seeded with SMA(3) = 2, then 2 + 0.5*(4-2) = 3, then 3 + 0.5*(5-3) = 4
    assert ema(prices, 3) == pytest.approx(4.0)
    assert len(ema_series(prices, 3)) == 3


def test_macd_rejects_fast_not_shorter():
    with pytest.raises(ValueError):
        macd([1.0] * 60, fast=26, slow=12)


def test_macd_needs_signal_history():
    with pytest.raises(InsufficientData):
        macd([1.0] * 30)


def test_macd_flat_is_zero_and_uptrend_positive():
    flat = macd([50.0] * 60)
    assert flat.macd == pytest.approx(0.0)
    assert flat.histogram == pytest.approx(0.0)
    up = macd([100 + 0.05 * i * i for i in range(60)])
    assert up.macd > 0
    assert up.histogram > 0


def test_bollinger_ordering_and_middle():
    rng = np.random.default_rng(2)
    prices = 100 + rng.normal(0, 2, 40)
    bands = bollinger_bands(prices, 20, 2.0)
    assert bands.lower <= bands.middle <= bands.upper
    assert bands.middle == pytest.approx(sma(prices, 20))


def test_bollinger_flat_window():
    bands = bollinger_bands([10.0] * 20, 20)
    assert bands.upper == bands.middle == bands.lower == 10.0
    assert bands.bandwidth == 0.0


def test_z_score_sign_and_flat():
    prices = [100.0] * 19 + [90.0]
    assert z_score(90.0, prices, 20) < 0
    assert z_score(110.0, prices, 20) > 0
    assert z_score(100.0, [100.0] * 20, 20) == 0.0


def test_atr_constant_range(make_bars):
    bars = make_bars([100.0] * 30, spread=1.0)
    assert atr(bars, 14) == pytest.approx(2.0)


def test_atr_accepts_price_bars(make_bars):
    from quant_research.core.types import PriceBar
    df = make_bars([100.0] * 20)
    bars = [PriceBar(r.timestamp.to_pydatetime(), r.open, r.high, r.low, r.close, r.volume)
            for r in df.itertuples()]
    assert atr(bars, 14) == pytest.approx(2.0)


def test_adx_uptrend(make_bars):
    bars = make_bars([100.0 + i for i in range(40)])
    result = adx(bars, 14)
    assert result.plus_di > result.minus_di
    assert result.adx == pytest.approx(100.0)


def test_adx_smoothed_needs_more_bars(make_bars):
    bars = make_bars([100.0 + i for i in range(20)])
    adx(bars, 14)
    with pytest.raises(InsufficientData):
        adx(bars, 14, smooth=True)


def test_volume_profile(make_bars):
    bars = make_bars([100.0] * 20, volumes=[1000.0] * 19 + [3000.0])
    vp = volume_profile(bars, 20)
    assert vp.avg_volume == pytest.approx(1100.0)
    assert vp.volume_ratio == pytest.approx(3000.0 / 1100.0)
    assert vp.is_above_average is True


def test_donchian_channels(make_bars):
    bars = make_bars([100.0 + i for i in range(25)], spread=1.0)
    ch = donchian_channels(bars, 20)
    assert ch.upper == 125.0
    assert ch.lower == 104.0
    assert ch.middle == pytest.approx(114.5)
