"""Signal generators: momentum, mean reversion, breakout."""

from quant_research.strategies.base import BaseStrategy
from quant_research.strategies.breakout import BreakoutStrategy
from quant_research.strategies.mean_reversion import MeanReversionStrategy
from quant_research.strategies.momentum import MomentumStrategy
from quant_research.strategies.settings import (
    BreakoutSettings,
    MeanReversionSettings,
    MomentumSettings,
    settings_from_dict,
)

__all__ = [
    "BaseStrategy",
    "BreakoutStrategy",
    "MeanReversionStrategy",
    "MomentumStrategy",
    "BreakoutSettings",
    "MeanReversionSettings",
    "MomentumSettings",
    "settings_from_dict",
]
