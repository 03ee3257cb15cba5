"""
Error taxonomy. Rejections from the risk manager are result values, not exceptions.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quant_research.risk.manager import KillSwitchResult


class QuantResearchError(Exception):
    """Base error for quant_research."""
    pass


class InsufficientData(QuantResearchError, ValueError):
    """Indicator called with a history shorter than its window."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {indicator}: need at least {required}, got {available}"
        )


class MarketDataFetchError(QuantResearchError):
    """Fetching bars for one symbol failed."""

    def __init__(self, symbol: str, message: str):
        self.symbol = symbol
        super().__init__(f"{symbol}: {message}")


class ConfigurationError(QuantResearchError):
    """Invalid or missing configuration. Fatal at startup."""
    pass


class KillSwitchTriggered(QuantResearchError):
    """A daily-loss or drawdown limit was breached. Callers must pause or liquidate."""

    def __init__(self, result: "KillSwitchResult"):
        self.result = result
        super().__init__(f"kill switch ({result.action.value}): {result.reason}")

    @property
    def action(self):
        return self.result.action
