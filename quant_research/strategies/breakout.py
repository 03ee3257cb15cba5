"""
Breakout: price escapes the prior Donchian channel on a volume surge while ATR expands.
"""

from __future__ import annotations
import math
from typing import Optional

import pandas as pd

from quant_research.core.types import SignalAction, StrategySignal
from quant_research.indicators.technical import atr_series, donchian_channels, volume_profile
from quant_research.strategies.base import BaseStrategy
from quant_research.strategies.settings import BreakoutSettings


class BreakoutStrategy(BaseStrategy):
    """
    The channel is built from the bars before the latest one, so the latest close can exceed it.
    Confidence = 0.4 * volume surge + 0.3 * ATR expansion + 0.3 * breakout magnitude.
    """

    name = "breakout"

    def __init__(self, settings: Optional[BreakoutSettings] = None, events=None):
        super().__init__(settings or BreakoutSettings(), events)

    def evaluate_symbol(
        self,
        symbol: str,
        bars: pd.DataFrame,
        allocated_capital: float,
    ) -> Optional[StrategySignal]:
        s = self.settings
        price = float(bars["close"].iloc[-1])

        channel = donchian_channels(bars.iloc[:-1], s.donchian_period)
        volume = volume_profile(bars, s.volume_period)
        atrs = atr_series(bars, s.atr_period)
        current_atr = float(atrs[-1])
        atr_ma = float(atrs[-s.atr_ma_period:].mean())
        atr_ratio = current_atr / atr_ma if atr_ma > 0 else 0.0

        confirmed = volume.volume_ratio > s.volume_multiplier and atr_ratio > s.atr_expansion
        if price > channel.upper and confirmed:
            action = SignalAction.BUY
            magnitude = (price - channel.upper) / channel.upper
            level = f"broke above Donchian upper {channel.upper:.2f}"
        elif price < channel.lower and confirmed:
            action = SignalAction.SELL
            magnitude = (channel.lower - price) / channel.lower
            level = f"broke below Donchian lower {channel.lower:.2f}"
        else:
            return None

        confidence = (
            0.4 * _clip(volume.volume_ratio / (2.0 * s.volume_multiplier))
            + 0.3 * _clip(atr_ratio / (2.0 * s.atr_expansion))
            + 0.3 * _clip(magnitude / s.full_breakout_pct)
        )
        confidence = round(_clip(confidence), 4)
        if confidence <= s.min_confidence:
            return None

        quantity = math.floor(allocated_capital * s.allocation / price)
        if quantity <= 0:
            return None

        reason = (
            f"Breakout {action.value.upper()}: price {price:.2f} {level}, "
            f"volume surge {volume.volume_ratio:.1f}x, "
            f"ATR {current_atr:.2f} vs avg {atr_ma:.2f} ({atr_ratio:.1f}x)"
        )
        return StrategySignal(
            action=action,
            symbol=symbol,
            quantity=quantity,
            confidence=confidence,
            reason=reason,
            metadata={
                "strategy": self.name,
                "donchian_upper": channel.upper,
                "donchian_lower": channel.lower,
                "volume_ratio": volume.volume_ratio,
                "atr": current_atr,
                "atr_ma": atr_ma,
                "price": price,
            },
        )


def _clip(x: float) -> float:
    return max(0.0, min(1.0, x))
