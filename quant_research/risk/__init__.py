"""Risk management: position limits, stops, kill switches, position sizing."""

from quant_research.risk.manager import (
    KillSwitchResult,
    RiskManager,
    ValidationResult,
    calculate_stops,
    check_kill_switches,
    update_trailing_stop,
    validate_position_size,
)
from quant_research.risk.sizing import (
    confidence_size,
    determine_optimal_position_size,
    fixed_percent_size,
    kelly_size,
    volatility_size,
)

__all__ = [
    "KillSwitchResult",
    "RiskManager",
    "ValidationResult",
    "calculate_stops",
    "check_kill_switches",
    "update_trailing_stop",
    "validate_position_size",
    "confidence_size",
    "determine_optimal_position_size",
    "fixed_percent_size",
    "kelly_size",
    "volatility_size",
]
