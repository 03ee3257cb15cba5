"""
Position sizing methods. Each returns a whole number of shares (never negative).
"""

from __future__ import annotations
import math
from typing import Optional

DEFAULT_ATR_PCT = 0.02


def _shares(dollars: float, price: float) -> int:
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return max(0, math.floor(dollars / price))


def fixed_percent_size(capital: float, price: float, percent: float = 0.02) -> int:
    return _shares(capital * percent, price)


def kelly_size(
    capital: float,
    price: float,
    win_rate: float = 0.55,
    avg_win: float = 1.5,
    avg_loss: float = 1.0,
    safety_factor: float = 0.25,
    max_fraction: float = 0.05,
) -> int:
    """Quarter Kelly, capped at 5% of capital and floored at zero. f = (b*p - q) / b."""
    if avg_win <= 0 or avg_loss <= 0:
        return 0
    b = avg_win / avg_loss
    q = 1.0 - win_rate
    fraction = (b * win_rate - q) / b * safety_factor
    fraction = max(0.0, min(fraction, max_fraction))
    return _shares(capital * fraction, price)


def volatility_size(capital: float, price: float, atr: Optional[float] = None) -> int:
    """2% base risk scaled by min(0.5 / (ATR/price), 2): calmer names get larger positions."""
    atr = abs(atr) if atr else price * DEFAULT_ATR_PCT
    multiplier = min(0.5 / (atr / price), 2.0)
    return _shares(capital * 0.02 * multiplier, price)


def confidence_size(
    capital: float,
    price: float,
    confidence: float = 0.5,
    atr: Optional[float] = None,
) -> int:
    """
    capital * 2% * (0.5 + confidence), i.e. 1% at zero confidence up to 3% at full.
    With an ATR, the allocation is further scaled by max(0.5, 1 - ATR/price).
    """
    allocation = capital * 0.02 * (0.5 + confidence)
    if atr:
        allocation *= max(0.5, 1.0 - abs(atr) / price)
    return _shares(allocation, price)


def determine_optimal_position_size(
    capital: float,
    price: float,
    confidence: float,
    atr: Optional[float] = None,
    win_rate: float = 0.55,
    avg_win: float = 1.5,
    avg_loss: float = 1.0,
) -> int:
    """
    Floored median of the fixed, Kelly, volatility and confidence sizes.
    With four sizes the median is the mean of the two middle ones, not the upper-middle size alone.
    """
    sizes = sorted([
        fixed_percent_size(capital, price),
        kelly_size(capital, price, win_rate, avg_win, avg_loss),
        volatility_size(capital, price, atr),
        confidence_size(capital, price, confidence, atr),
    ])
    return math.floor((sizes[1] + sizes[2]) / 2)
