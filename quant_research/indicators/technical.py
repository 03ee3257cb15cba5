"""
Technical indicators over price sequences and OHLCV bar frames.

Every function is pure: it copies what it needs into numpy arrays, never mutates
its input, and raises InsufficientData when the history is shorter than the window.
Price inputs may be lists, numpy arrays or pandas Series. Bar inputs are OHLCV
DataFrames (or an iterable of PriceBar).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import numpy as np
import pandas as pd

from quant_research.core.errors import InsufficientData
from quant_research.core.types import PriceBar, bars_to_frame

Prices = Union[Sequence[float], np.ndarray, pd.Series]
Bars = Union[pd.DataFrame, Iterable[PriceBar]]


@dataclass(frozen=True)
class MACDResult:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float
    bandwidth: float


@dataclass(frozen=True)
class ADXResult:
    adx: float
    plus_di: float
    minus_di: float


@dataclass(frozen=True)
class VolumeProfile:
    avg_volume: float
    volume_ratio: float
    is_above_average: bool


@dataclass(frozen=True)
class DonchianChannels:
    upper: float
    middle: float
    lower: float


def _prices(prices: Prices) -> np.ndarray:
    return np.array(prices, dtype=float, copy=True)


def _frame(bars: Bars) -> pd.DataFrame:
    if isinstance(bars, pd.DataFrame):
        return bars
    return bars_to_frame(bars)


def _check_period(period: int) -> None:
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")


def _require(name: str, required: int, available: int) -> None:
    if available < required:
        raise InsufficientData(name, required, available)


def _seeded_ewm(values: np.ndarray, period: int, alpha: float) -> np.ndarray:
    """Exponential smoothing seeded with the mean of the first `period` values."""
    seed = values[:period].mean()
    series = pd.Series(np.concatenate(([seed], values[period:])))
    return series.ewm(alpha=alpha, adjust=False).mean().to_numpy()


def _true_range(df: pd.DataFrame) -> np.ndarray:
    high = df["high"].astype(float)
    low = df["low"].astype(float)
    prev_close = df["close"].astype(float).shift(1)
    tr = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1
    ).max(axis=1)
    return tr.iloc[1:].to_numpy()


# ---------------------------------------------------------------------------
# Moving averages
# ---------------------------------------------------------------------------

def sma(prices: Prices, period: int) -> float:
    """Arithmetic mean of the trailing `period` values."""
    _check_period(period)
    arr = _prices(prices)
    _require("SMA", period, len(arr))
    return float(arr[-period:].mean())


def ema_series(prices: Prices, period: int) -> np.ndarray:
    """
    EMA series seeded with the SMA of the first `period` values, multiplier 2/(period+1).
    Element i corresponds to input index period-1+i.
    """
    _check_period(period)
    arr = _prices(prices)
    _require("EMA", period, len(arr))
    return _seeded_ewm(arr, period, alpha=2.0 / (period + 1))


def ema(prices: Prices, period: int) -> float:
    """Latest EMA value."""
    return float(ema_series(prices, period)[-1])


# ---------------------------------------------------------------------------
# Oscillators
# ---------------------------------------------------------------------------

def rsi(prices: Prices, period: int = 14) -> float:
    """
    Relative Strength Index with Wilder smoothing. Returns 100 when average loss is zero.
    Needs period + 1 prices.
    """
    _check_period(period)
    arr = _prices(prices)
    _require("RSI", period + 1, len(arr))
    deltas = np.diff(arr)
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)
    avg_gain = _seeded_ewm(gains, period, alpha=1.0 / period)[-1]
    avg_loss = _seeded_ewm(losses, period, alpha=1.0 / period)[-1]
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100.0 - 100.0 / (1.0 + rs))


def macd(
    prices: Prices,
    fast: int = 12,
    slow: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    """
    MACD line = EMA(fast) - EMA(slow). Signal line = EMA(signal_period) of the
    MACD line history (not a two-point approximation). Needs slow + signal_period prices.
    """
    if fast >= slow:
        raise ValueError(f"fast period ({fast}) must be shorter than slow period ({slow})")
    arr = _prices(prices)
    _require("MACD", slow + signal_period, len(arr))
    fast_series = ema_series(arr, fast)
    slow_series = ema_series(arr, slow)
    # Align both series on the slow EMA's first index.
    macd_line = fast_series[slow - fast:] - slow_series
    signal_line = ema_series(macd_line, signal_period)
    macd_value = float(macd_line[-1])
    signal_value = float(signal_line[-1])
    return MACDResult(macd=macd_value, signal=signal_value, histogram=macd_value - signal_value)


def z_score(current_price: float, prices: Prices, period: int = 20) -> float:
    """Standard deviations between current_price and the trailing mean. 0 for a flat window."""
    _check_period(period)
    arr = _prices(prices)
    _require("Z-Score", period, len(arr))
    window = arr[-period:]
    if np.ptp(window) == 0:
        return 0.0
    std = window.std()
    if std == 0:
        return 0.0
    return float((current_price - window.mean()) / std)


# ---------------------------------------------------------------------------
# Volatility and bands
# ---------------------------------------------------------------------------

def bollinger_bands(prices: Prices, period: int = 20, std_dev: float = 2.0) -> BollingerBands:
    """Middle = SMA(period); upper/lower = middle +/- std_dev * population sigma."""
    middle = sma(prices, period)
    window = _prices(prices)[-period:]
    sigma = 0.0 if np.ptp(window) == 0 else float(window.std())
    upper = middle + std_dev * sigma
    lower = middle - std_dev * sigma
    bandwidth = (upper - lower) / middle if middle != 0 else 0.0
    return BollingerBands(upper=upper, middle=middle, lower=lower, bandwidth=bandwidth)


def atr_series(bars: Bars, period: int = 14) -> np.ndarray:
    """EMA-smoothed true range series. Needs period + 1 bars."""
    _check_period(period)
    df = _frame(bars)
    _require("ATR", period + 1, len(df))
    return ema_series(_true_range(df), period)


def atr(bars: Bars, period: int = 14) -> float:
    """Latest Average True Range."""
    return float(atr_series(bars, period)[-1])


def adx(bars: Bars, period: int = 14, smooth: bool = False) -> ADXResult:
    """
    Directional movement index. By default ADX is the latest DX value (no second
    smoothing pass). smooth=True applies the textbook EMA over the DX series and
    then needs 2 * period bars.
    """
    _check_period(period)
    df = _frame(bars)
    _require("ADX", 2 * period if smooth else period + 1, len(df))
    high = df["high"].astype(float).to_numpy()
    low = df["low"].astype(float).to_numpy()

    up_move = high[1:] - high[:-1]
    down_move = low[:-1] - low[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    avg_plus = ema_series(plus_dm, period)
    avg_minus = ema_series(minus_dm, period)
    avg_tr = ema_series(_true_range(df), period)

    with np.errstate(divide="ignore", invalid="ignore"):
        plus_di = np.where(avg_tr != 0, avg_plus / avg_tr * 100.0, 0.0)
        minus_di = np.where(avg_tr != 0, avg_minus / avg_tr * 100.0, 0.0)
        di_sum = plus_di + minus_di
        dx = np.where(di_sum != 0, np.abs(plus_di - minus_di) / di_sum * 100.0, 0.0)

    adx_value = float(ema_series(dx, period)[-1]) if smooth else float(dx[-1])
    return ADXResult(adx=adx_value, plus_di=float(plus_di[-1]), minus_di=float(minus_di[-1]))


# ---------------------------------------------------------------------------
# Volume and channels
# ---------------------------------------------------------------------------

def volume_profile(bars: Bars, period: int = 20) -> VolumeProfile:
    """Average volume over the window and the latest bar's ratio to it."""
    _check_period(period)
    df = _frame(bars)
    _require("Volume Profile", period, len(df))
    volumes = df["volume"].astype(float).to_numpy()
    avg_volume = float(volumes[-period:].mean())
    ratio = float(volumes[-1] / avg_volume) if avg_volume != 0 else 0.0
    return VolumeProfile(avg_volume=avg_volume, volume_ratio=ratio, is_above_average=ratio > 1.0)


def donchian_channels(bars: Bars, period: int = 20) -> DonchianChannels:
    """Highest high / lowest low over the trailing window."""
    _check_period(period)
    df = _frame(bars)
    _require("Donchian Channels", period, len(df))
    upper = float(df["high"].astype(float).iloc[-period:].max())
    lower = float(df["low"].astype(float).iloc[-period:].min())
    return DonchianChannels(upper=upper, middle=(upper + lower) / 2.0, lower=lower)
