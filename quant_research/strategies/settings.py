"""
Per-strategy settings. Every recognized option with its default; validated on construction.
"""

from __future__ import annotations
from dataclasses import dataclass, fields

from quant_research.core.errors import ConfigurationError


def _positive(obj, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value <= 0:
            raise ConfigurationError(f"{type(obj).__name__}.{name} must be positive, got {value}")


def _fraction(obj, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"{type(obj).__name__}.{name} must be in [0, 1], got {value}")


@dataclass(frozen=True)
class MomentumSettings:
    """RSI / MACD / ADX / SMA trend-following entry."""
    rsi_period: int = 14
    rsi_threshold: float = 50.0
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    adx_period: int = 14
    adx_threshold: float = 25.0
    sma_period: int = 50
    min_bars: int = 30
    allocation: float = 0.25
    min_confidence: float = 0.5
    max_workers: int = 1

    def __post_init__(self) -> None:
        _positive(self, "rsi_period", "macd_fast", "macd_slow", "macd_signal", "adx_period",
                  "sma_period", "min_bars", "max_workers")
        _fraction(self, "allocation", "min_confidence")
        if self.macd_fast >= self.macd_slow:
            raise ConfigurationError("macd_fast must be shorter than macd_slow")
        if not 0.0 < self.rsi_threshold < 100.0:
            raise ConfigurationError(f"rsi_threshold must be in (0, 100), got {self.rsi_threshold}")
        if not 0.0 <= self.adx_threshold < 100.0:
            raise ConfigurationError(f"adx_threshold must be in [0, 100), got {self.adx_threshold}")


@dataclass(frozen=True)
class MeanReversionSettings:
    """Bollinger / Z-Score / volume fade of statistically extreme moves."""
    bb_period: int = 20
    bb_std_dev: float = 2.0
    z_score_period: int = 20
    z_score_threshold: float = 2.0
    volume_period: int = 20
    volume_multiplier: float = 1.2
    min_bars: int = 20
    min_allocation: float = 0.15
    max_allocation: float = 0.25
    min_confidence: float = 0.5
    max_workers: int = 1

    def __post_init__(self) -> None:
        _positive(self, "bb_period", "bb_std_dev", "z_score_period", "z_score_threshold",
                  "volume_period", "volume_multiplier", "min_bars", "max_workers")
        _fraction(self, "min_allocation", "max_allocation", "min_confidence")
        if self.min_allocation > self.max_allocation:
            raise ConfigurationError("min_allocation must not exceed max_allocation")


@dataclass(frozen=True)
class BreakoutSettings:
    """Donchian breakout confirmed by a volume surge and ATR expansion."""
    donchian_period: int = 20
    volume_period: int = 20
    volume_multiplier: float = 2.0
    atr_period: int = 14
    atr_ma_period: int = 20
    atr_expansion: float = 1.5
    full_breakout_pct: float = 0.03
    allocation: float = 0.20
    min_confidence: float = 0.6
    max_workers: int = 1

    def __post_init__(self) -> None:
        _positive(self, "donchian_period", "volume_period", "volume_multiplier", "atr_period",
                  "atr_ma_period", "atr_expansion", "full_breakout_pct", "max_workers")
        _fraction(self, "allocation", "min_confidence")

    @property
    def min_bars(self) -> int:
        # The channel is measured over the bars before the one being tested.
        return self.donchian_period + 1


def settings_from_dict(cls, data: dict):
    """Build a settings dataclass from a mapping, rejecting unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} option(s): {sorted(unknown)}")
    return cls(**data)
