"""
Momentum: enter with an established trend.
Buy when RSI, MACD histogram, ADX and the trend SMA all agree; sell on the mirror image.
"""

from __future__ import annotations
import math
from typing import Optional

import pandas as pd

from quant_research.core.types import SignalAction, StrategySignal
from quant_research.indicators.technical import adx, macd, rsi, sma
from quant_research.strategies.base import BaseStrategy
from quant_research.strategies.settings import MomentumSettings

# Histogram size (as a fraction of price) that earns full MACD credit.
FULL_HISTOGRAM_PCT = 0.005
# Distance above the trend SMA that earns full trend credit.
FULL_TREND_PCT = 0.05


class MomentumStrategy(BaseStrategy):
    """
    Confidence = 0.4 * RSI strength + 0.3 * MACD histogram + 0.2 * ADX + 0.1 * trend.
    Size = allocation (25% by default) of allocated capital, rounded down to whole shares.
    """

    name = "momentum"

    def __init__(self, settings: Optional[MomentumSettings] = None, events=None):
        super().__init__(settings or MomentumSettings(), events)

    def evaluate_symbol(
        self,
        symbol: str,
        bars: pd.DataFrame,
        allocated_capital: float,
    ) -> Optional[StrategySignal]:
        s = self.settings
        closes = bars["close"].astype(float).to_numpy()
        price = float(closes[-1])

        rsi_value = rsi(closes, s.rsi_period)
        macd_value = macd(closes, s.macd_fast, s.macd_slow, s.macd_signal)
        adx_value = adx(bars, s.adx_period).adx
        trend_period = min(s.sma_period, len(closes))
        trend = sma(closes, trend_period)
        hist = macd_value.histogram

        if rsi_value > s.rsi_threshold and hist > 0 and adx_value > s.adx_threshold and price > trend:
            action = SignalAction.BUY
            rsi_strength = (rsi_value - s.rsi_threshold) / (100.0 - s.rsi_threshold)
            trend_strength = (price - trend) / trend
        elif (rsi_value < 100.0 - s.rsi_threshold and hist < 0
              and adx_value > s.adx_threshold and price < trend):
            action = SignalAction.SELL
            floor = 100.0 - s.rsi_threshold
            rsi_strength = (floor - rsi_value) / floor
            trend_strength = (trend - price) / trend
        else:
            return None

        confidence = (
            0.4 * _clip(rsi_strength)
            + 0.3 * _clip(abs(hist) / (FULL_HISTOGRAM_PCT * price))
            + 0.2 * _clip((adx_value - s.adx_threshold) / (100.0 - s.adx_threshold))
            + 0.1 * _clip(trend_strength / FULL_TREND_PCT)
        )
        confidence = round(_clip(confidence), 4)
        if confidence <= s.min_confidence:
            return None

        quantity = math.floor(allocated_capital * s.allocation / price)
        if quantity <= 0:
            return None

        side = "above" if action == SignalAction.BUY else "below"
        reason = (
            f"Momentum {action.value.upper()}: RSI={rsi_value:.1f}, "
            f"MACD histogram={hist:.4f}, ADX={adx_value:.1f}, "
            f"price {price:.2f} {side} SMA{trend_period}={trend:.2f}"
        )
        return StrategySignal(
            action=action,
            symbol=symbol,
            quantity=quantity,
            confidence=confidence,
            reason=reason,
            metadata={
                "strategy": self.name,
                "rsi": rsi_value,
                "macd_histogram": hist,
                "adx": adx_value,
                "sma": trend,
                "price": price,
            },
        )


def _clip(x: float) -> float:
    return max(0.0, min(1.0, x))
