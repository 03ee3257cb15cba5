"""Signal aggregation and market regime weights."""

from quant_research.signals.aggregator import aggregate, detect_market_regime

__all__ = ["aggregate", "detect_market_regime"]
