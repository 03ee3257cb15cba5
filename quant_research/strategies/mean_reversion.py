"""
Mean reversion: fade statistically extreme moves that come with volume confirmation.
"""

from __future__ import annotations
import math
from typing import Optional

import pandas as pd

from quant_research.core.types import SignalAction, StrategySignal
from quant_research.indicators.technical import bollinger_bands, volume_profile, z_score
from quant_research.strategies.base import BaseStrategy
from quant_research.strategies.settings import MeanReversionSettings


class MeanReversionStrategy(BaseStrategy):
    """
    Buy: price below lower band, Z-Score below -threshold, volume ratio above multiplier.
    Sell: the mirror image above the upper band.
    Size scales from min_allocation to max_allocation with how far |Z| exceeds the threshold.
    """

    name = "mean_reversion"

    def __init__(self, settings: Optional[MeanReversionSettings] = None, events=None):
        super().__init__(settings or MeanReversionSettings(), events)

    def evaluate_symbol(
        self,
        symbol: str,
        bars: pd.DataFrame,
        allocated_capital: float,
    ) -> Optional[StrategySignal]:
        s = self.settings
        closes = bars["close"].astype(float).to_numpy()
        price = float(closes[-1])

        bands = bollinger_bands(closes, s.bb_period, s.bb_std_dev)
        z = z_score(price, closes, s.z_score_period)
        volume = volume_profile(bars, s.volume_period)
        volume_ok = volume.volume_ratio > s.volume_multiplier

        if price < bands.lower and z < -s.z_score_threshold and volume_ok:
            action = SignalAction.BUY
            band_distance = bands.lower - price
            half_width = bands.middle - bands.lower
        elif price > bands.upper and z > s.z_score_threshold and volume_ok:
            action = SignalAction.SELL
            band_distance = price - bands.upper
            half_width = bands.upper - bands.middle
        else:
            return None

        band_strength = band_distance / half_width if half_width > 0 else 1.0
        confidence = (
            0.4 * _clip(abs(z) / (1.5 * s.z_score_threshold))
            + 0.3 * _clip(band_strength)
            + 0.3 * _clip(volume.volume_ratio / (2.0 * s.volume_multiplier))
        )
        confidence = round(_clip(confidence), 4)
        if confidence <= s.min_confidence:
            return None

        extremeness = _clip((abs(z) - s.z_score_threshold) / s.z_score_threshold)
        allocation = min(
            s.max_allocation,
            s.min_allocation + (s.max_allocation - s.min_allocation) * extremeness,
        )
        quantity = math.floor(allocated_capital * allocation / price)
        if quantity <= 0:
            return None

        if action == SignalAction.BUY:
            setup = f"Oversold - price {price:.2f} below BB lower {bands.lower:.2f}"
        else:
            setup = f"Overbought - price {price:.2f} above BB upper {bands.upper:.2f}"
        reason = (
            f"Mean Reversion {action.value.upper()}: {setup}, Z-Score={z:.2f}, "
            f"Volume {volume.volume_ratio:.1f}x avg"
        )
        return StrategySignal(
            action=action,
            symbol=symbol,
            quantity=quantity,
            confidence=confidence,
            reason=reason,
            metadata={
                "strategy": self.name,
                "z_score": z,
                "bb_upper": bands.upper,
                "bb_middle": bands.middle,
                "bb_lower": bands.lower,
                "volume_ratio": volume.volume_ratio,
                "allocation": allocation,
                "price": price,
            },
        )


def _clip(x: float) -> float:
    return max(0.0, min(1.0, x))
