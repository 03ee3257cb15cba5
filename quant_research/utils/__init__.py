"""Utils: timeframes."""

from quant_research.utils.timeframes import parse_timeframe

__all__ = ["parse_timeframe"]
