"""
Risk manager: position limits, ATR stops, trailing stops, daily loss and drawdown kill switches.
Rejections are result values; only an enforced kill switch raises.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence, Tuple

from quant_research.core.errors import KillSwitchTriggered
from quant_research.core.types import (
    DEFAULT_RISK_LIMITS,
    KillSwitchAction,
    PortfolioStatus,
    Position,
    RiskLimits,
)

logger = logging.getLogger("quant_research.risk")


@dataclass(frozen=True)
class ValidationResult:
    """approved is True only when the request passes unchanged."""
    approved: bool
    adjusted_quantity: int
    reason: str


@dataclass(frozen=True)
class KillSwitchResult:
    triggered: bool
    reason: str
    action: KillSwitchAction


def validate_position_size(
    quantity: int,
    price: float,
    capital: float,
    positions: Sequence[Position],
    limits: RiskLimits = DEFAULT_RISK_LIMITS,
) -> ValidationResult:
    """
    Check a proposed buy against the single-position cap (shrink), the total-exposure cap
    (shrink, or reject when no headroom is left) and the open-position count (reject).
    """
    if quantity < 0:
        raise ValueError(f"quantity must be non-negative, got {quantity}")
    if price <= 0 or capital <= 0:
        raise ValueError("price and capital must be positive")

    adjusted = int(quantity)
    notes = []

    single_cap = capital * limits.max_single_position
    if adjusted * price > single_cap:
        pct = adjusted * price / capital
        adjusted = math.floor(single_cap / price)
        notes.append(
            f"Position size {pct * 100:.1f}% exceeds maximum "
            f"{limits.max_single_position * 100:.0f}% per position"
        )

    exposure = sum(p.market_value for p in positions)
    exposure_cap = capital * limits.max_total_exposure
    if exposure + adjusted * price > exposure_cap:
        headroom = max(0, math.floor((exposure_cap - exposure) / price))
        if headroom == 0:
            total_pct = (exposure + adjusted * price) / capital
            return ValidationResult(
                approved=False,
                adjusted_quantity=0,
                reason=(
                    f"Total exposure at {total_pct * 100:.1f}%, max "
                    f"{limits.max_total_exposure * 100:.0f}%. No capital available."
                ),
            )
        adjusted = min(adjusted, headroom)
        notes.append(
            f"Would exceed {limits.max_total_exposure * 100:.0f}% total exposure limit. "
            f"Current: {exposure / capital * 100:.1f}%"
        )

    if len(positions) >= limits.max_positions:
        return ValidationResult(
            approved=False,
            adjusted_quantity=0,
            reason=(
                f"Already at maximum number of positions ({limits.max_positions}). "
                "Cannot open new position."
            ),
        )

    if adjusted == quantity:
        return ValidationResult(approved=True, adjusted_quantity=adjusted, reason="Position size approved")
    return ValidationResult(approved=False, adjusted_quantity=adjusted, reason="; ".join(notes))


def calculate_stops(
    entry_price: float,
    atr: float,
    limits: RiskLimits = DEFAULT_RISK_LIMITS,
) -> Tuple[float, float]:
    """(stop_loss, take_profit) at ATR multiples around entry, rounded to cents."""
    distance = abs(atr)
    stop_loss = entry_price - distance * limits.stop_loss_multiplier
    take_profit = entry_price + distance * limits.take_profit_multiplier
    return round(stop_loss, 2), round(take_profit, 2)


def update_trailing_stop(
    current_price: float,
    highest_price: float,
    current_stop: float,
    limits: RiskLimits = DEFAULT_RISK_LIMITS,
) -> float:
    """Ratchet the stop up to trailing distance below the peak. Never moves down."""
    if not limits.trailing_stop_enabled:
        return current_stop
    peak = max(highest_price, current_price)
    return max(peak * (1.0 - limits.trailing_stop_distance), current_stop)


def check_kill_switches(
    status: PortfolioStatus,
    limits: RiskLimits = DEFAULT_RISK_LIMITS,
) -> KillSwitchResult:
    """Daily loss (pause) is checked before drawdown (liquidate)."""
    if abs(status.daily_pnl_percent) >= limits.max_daily_loss:
        return KillSwitchResult(
            triggered=True,
            reason=f"Daily loss limit exceeded: {status.daily_pnl_percent * 100:.2f}% daily loss",
            action=KillSwitchAction.PAUSE,
        )
    if status.current_drawdown >= limits.max_drawdown:
        return KillSwitchResult(
            triggered=True,
            reason=f"Maximum drawdown exceeded: {status.current_drawdown * 100:.2f}% drawdown",
            action=KillSwitchAction.LIQUIDATE,
        )
    return KillSwitchResult(triggered=False, reason="", action=KillSwitchAction.CONTINUE)


class RiskManager:
    """
    Stateful wrapper around the limit checks. Tracks the equity high-water mark and
    the start-of-day value so it can build a PortfolioStatus on demand.
    """

    def __init__(self, limits: Optional[RiskLimits] = None):
        self.limits = limits or DEFAULT_RISK_LIMITS
        self._peak_equity: float = 0.0
        self._current_equity: float = 0.0
        self._day_start_equity: float = 0.0
        self._day: Optional[date] = None

    def set_equity(self, equity: float, as_of: Optional[date] = None) -> None:
        """Update current equity. The first update of a new day fixes that day's opening value."""
        if as_of is not None and as_of != self._day:
            self._day = as_of
            self._day_start_equity = self._current_equity or equity
        elif self._day_start_equity == 0:
            self._day_start_equity = equity
        self._current_equity = equity
        if equity > self._peak_equity:
            self._peak_equity = equity

    def status(self) -> PortfolioStatus:
        equity = self._current_equity
        daily_pnl = equity - self._day_start_equity
        daily_pct = daily_pnl / self._day_start_equity if self._day_start_equity > 0 else 0.0
        drawdown = (self._peak_equity - equity) / self._peak_equity if self._peak_equity > 0 else 0.0
        return PortfolioStatus(
            total_value=equity,
            daily_pnl=daily_pnl,
            daily_pnl_percent=daily_pct,
            current_drawdown=max(0.0, drawdown),
            high_water_mark=self._peak_equity,
        )

    def validate(self, quantity: int, price: float, capital: float,
                 positions: Sequence[Position]) -> ValidationResult:
        result = validate_position_size(quantity, price, capital, positions, self.limits)
        if not result.approved:
            logger.info("Size %d @ %.2f adjusted to %d: %s", quantity, price,
                        result.adjusted_quantity, result.reason)
        return result

    def stops(self, entry_price: float, atr: float) -> Tuple[float, float]:
        return calculate_stops(entry_price, atr, self.limits)

    def trail(self, current_price: float, highest_price: float, current_stop: float) -> float:
        return update_trailing_stop(current_price, highest_price, current_stop, self.limits)

    def check(self, status: Optional[PortfolioStatus] = None) -> KillSwitchResult:
        return check_kill_switches(status or self.status(), self.limits)

    def enforce_kill_switches(self, status: Optional[PortfolioStatus] = None) -> None:
        """Raise KillSwitchTriggered when a limit is breached."""
        result = self.check(status)
        if result.triggered:
            logger.warning("Kill switch %s: %s", result.action.value, result.reason)
            raise KillSwitchTriggered(result)
