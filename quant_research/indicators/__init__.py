"""Indicators: RSI, SMA/EMA, MACD, Bollinger, ATR, ADX, Z-Score, volume, Donchian."""

from quant_research.indicators.technical import (
    ADXResult,
    BollingerBands,
    DonchianChannels,
    MACDResult,
    VolumeProfile,
    adx,
    atr,
    atr_series,
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

__all__ = [
    "ADXResult",
    "BollingerBands",
    "DonchianChannels",
    "MACDResult",
    "VolumeProfile",
    "adx",
    "atr",
    "atr_series",
    "bollinger_bands",
    "donchian_channels",
    "ema",
    "ema_series",
    "macd",
    "rsi",
    "sma",
    "volume_profile",
    "z_score",
]
